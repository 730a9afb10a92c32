"""Lookup service - teams, tasks and status display metadata.

Teams are grouped under tasks through ``LookupTeam.department``, which
holds the task name; ``get_task_team_mapping`` derives the grouping from
the active team rows instead of a hand-maintained table.

``seed_lookups`` loads the stock team, task and status rows used by a
fresh installation; it is idempotent and only inserts ids that are missing.
"""
import logging

from slam.models import db
from slam.models.lookup import LookupStatus, LookupTask, LookupTeam

logger = logging.getLogger(__name__)

DEFAULT_TEAMS = [
    ("TEAM-001", "Program Management Team", "Task 1", "program.manager@company.com"),
    ("TEAM-002", "APM Team", "Task 2", "apm.manager@company.com"),
    ("TEAM-003", "PPM Team", "Task 3", "ppm.manager@company.com"),
    ("TEAM-004", "Technical Evaluation Team", "Task 4", "tech.eval.manager@company.com"),
    ("TEAM-005", "Training Support Team", "Task 5", "training.manager@company.com"),
    ("TEAM-006", "Business Intelligence Team", "Task 6", "bi.manager@company.com"),
    ("TEAM-007", "Operational Support Team", "Task 7", "ops.support.manager@company.com"),
    ("TEAM-008", "Quality Support Team", "Task 8", "quality.manager@company.com"),
    ("TEAM-009", "Communication Team", "Task 9", "comm.manager@company.com"),
    ("TEAM-010", "TW/Template Team", "Task 2", "tw.manager@company.com"),
    ("TEAM-011", "Cost Team", "Task 2", "cost.manager@company.com"),
    ("TEAM-012", "Regional Financial Task Team", "Task 10", "regional.finance@company.com"),
]

DEFAULT_TASKS = [(f"TASK-{n:03d}", f"Task {n}") for n in range(1, 11)]

DEFAULT_STATUSES = [
    ("STATUS-001", "not-started", "#F8F9FA"),
    ("STATUS-002", "pending", "#6C757D"),
    ("STATUS-003", "ontrack", "#17A2B8"),
    ("STATUS-004", "at-risk", "#FFC107"),
    ("STATUS-005", "met", "#28A745"),
    ("STATUS-006", "exceeded", "#155724"),
    ("STATUS-007", "missed", "#DC3545"),
]


def get_teams(include_inactive=False):
    """Teams ordered by id; inactive teams hidden unless asked for."""
    query = LookupTeam.query
    if not include_inactive:
        query = query.filter(LookupTeam.is_active.is_(True))
    return [team.to_dict() for team in query.order_by(LookupTeam.team_id)]


def get_statuses():
    return [s.to_dict() for s in LookupStatus.query.order_by(LookupStatus.sort_order, LookupStatus.id)]


def get_tasks():
    return [t.to_dict() for t in LookupTask.query.order_by(LookupTask.id)]


def get_task_team_mapping():
    """Group active teams under their task.

    Returns:
        dict with ``mapping`` (task name -> [{id, name}]) plus the reverse
        lookups ``teamToTask``, ``teamIdToName`` and ``teamNameToId``.
    """
    mapping = {task["name"]: [] for task in get_tasks()}
    team_to_task, id_to_name, name_to_id = {}, {}, {}
    for team in get_teams():
        task = team["department"]
        if not task:
            continue
        mapping.setdefault(task, []).append({"id": team["id"], "name": team["name"]})
        team_to_task[team["id"]] = task
        id_to_name[team["id"]] = team["name"]
        name_to_id[team["name"]] = team["id"]
    return {
        "mapping": mapping,
        "teamToTask": team_to_task,
        "teamIdToName": id_to_name,
        "teamNameToId": name_to_id,
    }


def seed_lookups():
    """Insert missing default teams, tasks and statuses. Commits.

    Returns:
        dict: ``{"teams": <inserted>, "tasks": <inserted>, "statuses": <inserted>}``
    """
    existing_teams = {t.team_id for t in LookupTeam.query.with_entities(LookupTeam.team_id)}
    existing_tasks = {t.task_id for t in LookupTask.query.with_entities(LookupTask.task_id)}
    existing_statuses = {s.status_id for s in LookupStatus.query.with_entities(LookupStatus.status_id)}

    teams_added = 0
    for team_id, name, department, manager in DEFAULT_TEAMS:
        if team_id in existing_teams:
            continue
        db.session.add(LookupTeam(
            team_id=team_id,
            team_name=name,
            department=department,
            manager_email=manager,
            is_active=True,
        ))
        teams_added += 1

    tasks_added = 0
    for task_id, name in DEFAULT_TASKS:
        if task_id in existing_tasks:
            continue
        db.session.add(LookupTask(task_id=task_id, task_name=name))
        tasks_added += 1

    statuses_added = 0
    for order, (status_id, name, color) in enumerate(DEFAULT_STATUSES, start=1):
        if status_id in existing_statuses:
            continue
        db.session.add(LookupStatus(
            status_id=status_id,
            status_name=name,
            display_color=color,
            sort_order=order,
        ))
        statuses_added += 1

    db.session.commit()
    logger.info("Seeded %d teams, %d tasks and %d statuses", teams_added, tasks_added, statuses_added)
    return {"teams": teams_added, "tasks": tasks_added, "statuses": statuses_added}
