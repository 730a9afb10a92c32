"""Store hygiene checks for the SLA table.

Reports problems an operator should fix by hand; never modifies data.
"""
import logging
from collections import Counter

from slam.models import db
from slam.models.sla import Sla
from slam.services.id_generator import current_counter_value, format_sla_id, highest_existing_number

logger = logging.getLogger(__name__)


def collect_store_diagnostics() -> dict:
    """Return a report of duplicate keys, blank keys and counter drift.

    Keys:
        rows:             total physical rows
        duplicate_ids:    SLA ids that appear more than once
        blank_key_rows:   row numbers whose SLA ID is empty
        counter_value:    persisted counter (None if never initialised)
        highest_id:       largest id number present
        counter_behind:   True when the next issued id would collide
        ok:               no problems found
    """
    keys = db.session.query(Sla.row_number, Sla.sla_id).order_by(Sla.row_number).all()

    counts = Counter(sla_id for _, sla_id in keys if sla_id and sla_id.strip())
    duplicates = sorted(sla_id for sla_id, n in counts.items() if n > 1)
    blank_rows = [row_number for row_number, sla_id in keys if not sla_id or not sla_id.strip()]

    counter_value = current_counter_value()
    highest = highest_existing_number()
    counter_behind = bool(counter_value) and counter_value < highest

    report = {
        "rows": len(keys),
        "duplicate_ids": duplicates,
        "blank_key_rows": blank_rows,
        "counter_value": counter_value,
        "highest_id": format_sla_id(highest) if highest else None,
        "counter_behind": counter_behind,
    }
    report["ok"] = not (duplicates or blank_rows or counter_behind)
    if not report["ok"]:
        logger.warning("Store diagnostics found problems: %s", report)
    return report
