"""
SLAM - Relationship lookup and maintenance.

A relationship row links two SLAs with a typed, directional edge
("A depends-on B").  Lookup is undirected: an SLA sees every edge where it
is either end.
"""

import logging
import uuid

from sqlalchemy import inspect, or_
from sqlalchemy.exc import SQLAlchemyError

from slam.core.exceptions import ConflictError, NotFoundError, ValidationError
from slam.models import db
from slam.models.audit import write_activity
from slam.models.relationship import RELATIONSHIP_TYPES, SlaRelationship
from slam.models.sla import Sla
from slam.services.helpers.results import service_result
from slam.utils.helpers import commit_or_raise, is_blank

logger = logging.getLogger(__name__)


def relationships_for(sla_id: str) -> list[dict]:
    """Every relationship touching ``sla_id``; ``[]`` when the table is absent or unreadable."""
    if is_blank(sla_id):
        return []
    try:
        if not inspect(db.engine).has_table(SlaRelationship.__tablename__):
            return []
        rows = (
            SlaRelationship.query
            .filter(or_(
                SlaRelationship.source_sla_id == sla_id,
                SlaRelationship.target_sla_id == sla_id,
            ))
            .order_by(SlaRelationship.id)
            .all()
        )
    except SQLAlchemyError:
        logger.warning("Relationship lookup failed for %s", sla_id, exc_info=True)
        return []
    return [row.to_dict() for row in rows]


def _require_sla(sla_id):
    if not Sla.query.filter_by(sla_id=sla_id).first():
        raise NotFoundError("SLA", sla_id)


@service_result
def create_relationship(data: dict, actor: str = "system") -> dict:
    """Link two existing, distinct SLAs.

    Args:
        data: ``{sourceSlaId, targetSlaId, relationshipType, notes?}``.
        actor: Identity recorded as ``createdBy``.
    """
    data = data or {}
    source = str(data.get("sourceSlaId") or "").strip()
    target = str(data.get("targetSlaId") or "").strip()
    rel_type = str(data.get("relationshipType") or "").strip()

    errors = []
    if not source:
        errors.append("Source SLA ID is required")
    if not target:
        errors.append("Target SLA ID is required")
    if rel_type not in RELATIONSHIP_TYPES:
        errors.append(f"Relationship Type must be one of: {', '.join(sorted(RELATIONSHIP_TYPES))}")
    if source and source == target:
        errors.append("An SLA cannot be related to itself")
    if errors:
        raise ValidationError("; ".join(errors))

    _require_sla(source)
    _require_sla(target)

    duplicate = SlaRelationship.query.filter_by(
        source_sla_id=source, target_sla_id=target, relationship_type=rel_type,
    ).first()
    if duplicate:
        raise ConflictError("Relationship", "source/target/type", f"{source} {rel_type} {target}")

    rel = SlaRelationship(
        relationship_id=f"REL-{uuid.uuid4().hex[:12].upper()}",
        relationship_type=rel_type,
        source_sla_id=source,
        target_sla_id=target,
        notes=data.get("notes") or "",
        created_by=actor,
    )
    db.session.add(rel)
    db.session.flush()
    write_activity(
        sla_id=source,
        action_type="relationship-added",
        action_details=f"{source} {rel_type} {target}",
        actor=actor,
        new_value=rel.to_dict(),
    )
    commit_or_raise("Relationship")
    logger.info("Relationship %s created", rel.relationship_id, extra={"sla_id": source, "actor": actor})
    return {"success": True, "data": rel.to_dict(), "message": "Relationship created successfully"}


@service_result
def remove_relationship(relationship_id: str, actor: str = "system") -> dict:
    rel = SlaRelationship.query.filter_by(relationship_id=relationship_id).first()
    if rel is None:
        raise NotFoundError("Relationship", relationship_id)

    snapshot = rel.to_dict()
    db.session.delete(rel)
    write_activity(
        sla_id=rel.source_sla_id,
        action_type="relationship-removed",
        action_details=f"{rel.source_sla_id} {rel.relationship_type} {rel.target_sla_id}",
        actor=actor,
        old_value=snapshot,
    )
    commit_or_raise("Relationship")
    return {"success": True, "message": "Relationship removed successfully"}
