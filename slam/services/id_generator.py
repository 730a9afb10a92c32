"""
SLAM - SLA identifier generator.

Ids come from a persisted counter row (``id_counters.SLA_ID_COUNTER``)
locked for the duration of the create transaction, so two overlapping
creates can never be handed the same number and deleted rows never free
their ids.
"""

import logging
import re

from flask import current_app

from slam.models import db
from slam.models.counter import IdCounter
from slam.models.sla import Sla

logger = logging.getLogger(__name__)

SLA_COUNTER_NAME = "SLA_ID_COUNTER"


def format_sla_id(number: int) -> str:
    prefix = current_app.config.get("SLA_ID_PREFIX", "SLA")
    width = current_app.config.get("SLA_ID_WIDTH", 6)
    return f"{prefix}-{number:0{width}d}"


def highest_existing_number() -> int:
    """Largest numeric suffix among stored ``<prefix>-NNN`` ids (0 if none)."""
    prefix = current_app.config.get("SLA_ID_PREFIX", "SLA")
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
    highest = 0
    for (sla_id,) in db.session.query(Sla.sla_id).filter(Sla.sla_id.like(f"{prefix}-%")):
        match = pattern.match(sla_id or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def _locked_counter():
    return (
        db.session.query(IdCounter)
        .filter(IdCounter.name == SLA_COUNTER_NAME)
        .with_for_update()
        .first()
    )


def next_sla_id() -> str:
    """Reserve and return the next SLA id.

    Runs inside the caller's transaction; the counter row stays locked
    until the caller commits or rolls back.  A missing or zero counter is
    initialised from the highest id already in the table.
    """
    counter = _locked_counter()
    if counter is None:
        counter = IdCounter(name=SLA_COUNTER_NAME, value=0)
        db.session.add(counter)
    if not counter.value:
        counter.value = highest_existing_number()
        logger.info("Initialised %s at %d", SLA_COUNTER_NAME, counter.value)

    counter.value += 1
    db.session.flush()
    return format_sla_id(counter.value)


def current_counter_value() -> int | None:
    counter = db.session.get(IdCounter, SLA_COUNTER_NAME)
    return counter.value if counter else None


def reset_sla_id_counter(value: int = 0) -> int:
    """Set the counter so the next id issued is ``value + 1``. Commits."""
    if value < 0:
        raise ValueError("Counter value must be >= 0")
    counter = db.session.get(IdCounter, SLA_COUNTER_NAME)
    if counter is None:
        counter = IdCounter(name=SLA_COUNTER_NAME, value=value)
        db.session.add(counter)
    else:
        counter.value = value
    db.session.commit()
    logger.warning("%s reset to %d", SLA_COUNTER_NAME, value)
    return value
