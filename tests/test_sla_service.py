"""
SLAM Tests - SLA service: create, read, update, soft delete, bulk, activity.

Covers:
    - Create defaults, id assignment, derived progress
    - Optimistic locking with rowVersion (stale copies and racing writers)
    - Soft delete preserves every other field
    - Best-effort bulk operations
    - Activity log entries
"""

import pytest
from sqlalchemy import text

from slam.models import db
from slam.models.audit import ActivityLog
from slam.models.sla import Sla
from slam.services import sla_service
from slam.services.sla_service import (
    bulk_create_slas,
    bulk_update_slas,
    create_sla,
    delete_sla,
    get_activity,
    read_sla,
    update_sla,
)
from slam.utils.errors import E

CONFLICT_MESSAGE = "SLA has been modified by another user. Please refresh and try again."


def _read(sla_id):
    result = read_sla(sla_id)
    assert result["success"], result
    return result["data"]


# ═════════════════════════════════════════════════════════════════════════════
# CREATE
# ═════════════════════════════════════════════════════════════════════════════


class TestCreate:
    def test_first_create_returns_first_id(self, sla_payload):
        result = create_sla(sla_payload(), actor="ops@acme.com")
        assert result == {
            "success": True,
            "slaId": "SLA-000001",
            "message": "SLA created successfully",
        }

    def test_defaults_applied(self, make_sla):
        record = _read(make_sla())
        assert record["status"] == "not-started"
        assert record["frequency"] == "once"
        assert record["currentValue"] == 0
        assert record["isActive"] is True
        assert record["rowVersion"] == 1

    def test_audit_columns(self, make_sla):
        record = _read(make_sla())
        assert record["createdBy"] == "tester@acme.com"
        assert record["updatedBy"] == "tester@acme.com"
        assert record["createdAt"]
        assert record["createdAt"] == record["updatedAt"]

    def test_aliases_accepted(self, sla_payload):
        payload = sla_payload()
        payload["name"] = payload.pop("slaName")
        payload["type"] = payload.pop("slaType")
        result = create_sla(payload)
        assert result["success"], result
        assert _read(result["slaId"])["slaName"] == "Uptime"

    def test_progress_derived(self, make_sla):
        sla_id = make_sla(slaType="quantity", currentValue=45, targetValue=90)
        assert _read(sla_id)["progress"] == 50.0

    def test_progress_blank_without_target_ratio(self, make_sla):
        sla_id = make_sla(slaType="quantity", currentValue=5, targetValue=0)
        assert _read(sla_id)["progress"] == ""

    def test_range_midpoint_target(self, make_sla):
        sla_id = make_sla(
            slaType="quantity", targetValue=None,
            useRange=True, targetRangeMin=10, targetRangeMax=20,
        )
        record = _read(sla_id)
        assert record["targetValue"] == 15.0
        assert record["useRange"] is True

    def test_client_progress_ignored(self, make_sla):
        sla_id = make_sla(slaType="quantity", currentValue=1, targetValue=4, progress=99)
        assert _read(sla_id)["progress"] == 25.0

    def test_missing_required_fields(self):
        result = create_sla({"slaName": "Only a name"})
        assert result["success"] is False
        assert result["code"] == E.VALIDATION_INVALID
        assert "SLA Type is required" in result["error"]
        assert "Team ID is required" in result["error"]
        assert Sla.query.count() == 0

    def test_failed_create_does_not_consume_id(self, sla_payload, make_sla):
        assert create_sla(sla_payload(slaType="bogus"))["success"] is False
        assert make_sla() == "SLA-000001"

    def test_non_dict_payload(self):
        result = create_sla(["not", "a", "dict"])
        assert result["success"] is False
        assert result["code"] == E.VALIDATION_INVALID


# ═════════════════════════════════════════════════════════════════════════════
# READ
# ═════════════════════════════════════════════════════════════════════════════


class TestRead:
    def test_unknown_id(self):
        result = read_sla("SLA-999999")
        assert result == {"success": False, "error": "SLA not found", "code": E.NOT_FOUND}

    def test_read_is_idempotent(self, make_sla):
        sla_id = make_sla()
        assert _read(sla_id) == _read(sla_id)

    def test_record_has_every_field_and_relationships(self, make_sla):
        record = _read(make_sla())
        for name in ("slaId", "slaName", "progress", "rowVersion", "customFields", "tags"):
            assert name in record
        assert record["relationships"] == []

    def test_lists_round_trip_in_order(self, make_sla):
        sla_id = make_sla(
            tags=["zeta", "alpha", "mid"],
            notificationEmails=["b@acme.com", "a@acme.com"],
        )
        record = _read(sla_id)
        assert record["tags"] == ["zeta", "alpha", "mid"]
        assert record["notificationEmails"] == ["b@acme.com", "a@acme.com"]

    def test_custom_fields_round_trip(self, make_sla):
        sla_id = make_sla(customFields={"region": "EU", "tier": 1})
        assert _read(sla_id)["customFields"] == {"region": "EU", "tier": 1}

    def test_blank_custom_fields_read_as_empty_map(self, make_sla):
        assert _read(make_sla())["customFields"] == {}


# ═════════════════════════════════════════════════════════════════════════════
# UPDATE
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdate:
    def test_update_with_current_version(self, make_sla):
        sla_id = make_sla()
        result = update_sla(sla_id, {"status": "met", "rowVersion": 1})
        assert result == {"success": True, "message": "SLA updated successfully", "rowVersion": 2}
        assert _read(sla_id)["status"] == "met"

    def test_version_increments_by_one_per_update(self, make_sla):
        sla_id = make_sla()
        for expected in (2, 3, 4):
            result = update_sla(sla_id, {"description": f"v{expected}"})
            assert result["rowVersion"] == expected

    def test_empty_update_still_bumps_version(self, make_sla):
        sla_id = make_sla()
        result = update_sla(sla_id, {})
        assert result["success"]
        assert _read(sla_id)["rowVersion"] == 2

    def test_stale_version_rejected_and_row_unchanged(self, make_sla):
        sla_id = make_sla()
        assert update_sla(sla_id, {"description": "first", "rowVersion": 1})["success"]

        result = update_sla(sla_id, {"description": "second", "rowVersion": 1})
        assert result == {"success": False, "error": CONFLICT_MESSAGE, "code": E.CONFLICT_VERSION}

        record = _read(sla_id)
        assert record["description"] == "first"
        assert record["rowVersion"] == 2

    def test_stale_version_reported_before_validation(self, make_sla):
        sla_id = make_sla()
        update_sla(sla_id, {"description": "bump"})
        result = update_sla(sla_id, {"status": "x", "rowVersion": 1})
        assert result["code"] == E.CONFLICT_VERSION

    def test_zero_row_version_is_compared(self, make_sla):
        sla_id = make_sla()
        result = update_sla(sla_id, {"description": "x", "rowVersion": 0})
        assert result["code"] == E.CONFLICT_VERSION

    def test_non_integer_row_version(self, make_sla):
        result = update_sla(make_sla(), {"rowVersion": "abc"})
        assert result["code"] == E.VALIDATION_INVALID

    @pytest.mark.parametrize("supplied", [2.7, 1.5, True, "2.7"])
    def test_fractional_or_boolean_row_version_rejected(self, make_sla, supplied):
        sla_id = make_sla()
        update_sla(sla_id, {"description": "bump"})
        result = update_sla(sla_id, {"status": "missed", "rowVersion": supplied})
        assert result["success"] is False
        assert result["code"] == E.VALIDATION_INVALID
        assert result["error"] == "rowVersion must be an integer"
        assert _read(sla_id)["status"] == "not-started"
        assert _read(sla_id)["rowVersion"] == 2

    @pytest.mark.parametrize("supplied", [2.0, "2"])
    def test_integral_row_version_forms_accepted(self, make_sla, supplied):
        sla_id = make_sla()
        update_sla(sla_id, {"description": "bump"})
        result = update_sla(sla_id, {"status": "missed", "rowVersion": supplied})
        assert result["success"] is True
        assert result["rowVersion"] == 3

    def test_missing_version_is_last_write_wins(self, make_sla):
        sla_id = make_sla()
        assert update_sla(sla_id, {"description": "a"})["success"]
        assert update_sla(sla_id, {"description": "b"})["success"]
        assert _read(sla_id)["description"] == "b"

    def test_missing_version_rejected_when_required(self, app, make_sla):
        sla_id = make_sla()
        app.config["REQUIRE_ROW_VERSION"] = True
        try:
            result = update_sla(sla_id, {"description": "a"})
        finally:
            app.config["REQUIRE_ROW_VERSION"] = False
        assert result["success"] is False
        assert result["code"] == E.VALIDATION_INVALID
        assert "rowVersion is required" in result["error"]

    def test_racing_writer_detected_at_commit(self, make_sla, monkeypatch):
        sla_id = make_sla()
        real_validate = sla_service.validate_updates

        def _validate_then_race(*args, **kwargs):
            db.session.execute(
                text("UPDATE sla_master SET row_version = row_version + 1 WHERE sla_id = :k"),
                {"k": sla_id},
            )
            return real_validate(*args, **kwargs)

        monkeypatch.setattr(sla_service, "validate_updates", _validate_then_race)
        result = update_sla(sla_id, {"description": "lost", "rowVersion": 1})
        monkeypatch.undo()

        assert result["code"] == E.CONFLICT_VERSION
        assert result["error"] == CONFLICT_MESSAGE
        assert _read(sla_id)["description"] == ""

    def test_protected_fields_dropped(self, make_sla):
        sla_id = make_sla()
        result = update_sla(sla_id, {
            "description": "changed",
            "updatedBy": "mallory@acme.com",
            "createdBy": "mallory@acme.com",
            "progress": 12,
            "progressPercent": 12,
            "slaId": "SLA-777777",
        })
        assert result["success"], result
        record = _read(sla_id)
        assert record["description"] == "changed"
        assert record["updatedBy"] == "system"
        assert record["createdBy"] == "tester@acme.com"
        assert record["slaId"] == sla_id

    def test_unknown_fields_ignored(self, make_sla):
        sla_id = make_sla()
        assert update_sla(sla_id, {"favouriteColour": "teal"})["success"]

    def test_progress_recomputed_after_update(self, make_sla):
        sla_id = make_sla(slaType="quantity", currentValue=0, targetValue=200)
        update_sla(sla_id, {"currentValue": 50})
        assert _read(sla_id)["progress"] == 25.0

    def test_invalid_update_leaves_row_untouched(self, make_sla):
        sla_id = make_sla()
        result = update_sla(sla_id, {"description": "never", "endDate": "not-a-date"})
        assert result["code"] == E.VALIDATION_INVALID
        record = _read(sla_id)
        assert record["description"] == ""
        assert record["rowVersion"] == 1

    def test_clients_cannot_set_deleted_status(self, make_sla):
        result = update_sla(make_sla(), {"status": "deleted"})
        assert result["code"] == E.VALIDATION_INVALID

    def test_required_field_cannot_be_blanked(self, make_sla):
        result = update_sla(make_sla(), {"slaName": "  "})
        assert result["code"] == E.VALIDATION_INVALID

    def test_update_unknown_sla(self):
        result = update_sla("SLA-000404", {"status": "met"})
        assert result["code"] == E.NOT_FOUND


# ═════════════════════════════════════════════════════════════════════════════
# SOFT DELETE
# ═════════════════════════════════════════════════════════════════════════════


class TestSoftDelete:
    def test_delete_marks_row_and_keeps_data(self, make_sla):
        sla_id = make_sla(description="keep me", tags=["a", "b"])
        before = _read(sla_id)

        result = delete_sla(sla_id, row_version=1)
        assert result == {"success": True, "message": "SLA deleted successfully", "rowVersion": 2}

        after = _read(sla_id)
        assert after["status"] == "deleted"
        assert after["isActive"] is False
        for field in ("slaName", "slaType", "teamId", "description", "tags", "targetValue", "startDate"):
            assert after[field] == before[field]

    def test_row_is_not_physically_removed(self, make_sla):
        sla_id = make_sla()
        delete_sla(sla_id)
        assert Sla.query.filter_by(sla_id=sla_id).count() == 1

    def test_delete_with_stale_version(self, make_sla):
        sla_id = make_sla()
        update_sla(sla_id, {"description": "bump"})
        result = delete_sla(sla_id, row_version=1)
        assert result["code"] == E.CONFLICT_VERSION
        assert _read(sla_id)["status"] == "not-started"

    def test_delete_unknown(self):
        assert delete_sla("SLA-000404")["code"] == E.NOT_FOUND


# ═════════════════════════════════════════════════════════════════════════════
# BULK
# ═════════════════════════════════════════════════════════════════════════════


class TestBulk:
    def test_bulk_create_all_ok(self, sla_payload):
        result = bulk_create_slas([sla_payload(), sla_payload(slaName="Second")])
        assert result == {"success": True, "created": ["SLA-000001", "SLA-000002"], "errors": []}

    def test_bulk_create_partial(self, sla_payload):
        result = bulk_create_slas([
            sla_payload(),
            sla_payload(slaType="invalid"),
            sla_payload(slaName="Third"),
        ])
        assert result["success"] is False
        assert result["code"] == E.PARTIAL
        assert result["created"] == ["SLA-000001", "SLA-000002"]
        assert [e["index"] for e in result["errors"]] == [1]
        assert "SLA Type must be one of" in result["errors"][0]["error"]
        assert result["error"] == "1 of 3 items failed"

    def test_bulk_create_requires_list(self):
        result = bulk_create_slas({"slaName": "x"})
        assert result["code"] == E.VALIDATION_INVALID

    def test_bulk_update_partial(self, make_sla):
        first = make_sla()
        second = make_sla()
        result = bulk_update_slas([
            {"slaId": first, "data": {"status": "met"}},
            {"slaId": "SLA-000404", "data": {"status": "met"}},
            {"slaId": second, "updates": {"status": "missed", "rowVersion": 1}},
            {"data": {"status": "met"}},
        ])
        assert result["success"] is False
        assert result["updated"] == [first, second]
        assert [e["slaId"] for e in result["errors"]] == ["SLA-000404", None]
        assert _read(first)["status"] == "met"
        assert _read(second)["status"] == "missed"

    def test_bulk_update_empty_list(self):
        assert bulk_update_slas([]) == {"success": True, "updated": [], "errors": []}


# ═════════════════════════════════════════════════════════════════════════════
# ACTIVITY LOG
# ═════════════════════════════════════════════════════════════════════════════


class TestActivity:
    def test_lifecycle_is_logged(self, make_sla):
        sla_id = make_sla()
        update_sla(sla_id, {"status": "met"}, actor="ops@acme.com")
        delete_sla(sla_id, actor="ops@acme.com")

        entries = get_activity(sla_id)["data"]
        assert [e["actionType"] for e in entries] == ["created", "updated", "deleted"]
        assert entries[0]["userId"] == "tester@acme.com"
        assert entries[1]["oldValue"] == {"status": "not-started"}
        assert entries[1]["newValue"] == {"status": "met"}

    def test_failed_operations_are_not_logged(self, make_sla):
        sla_id = make_sla()
        update_sla(sla_id, {"rowVersion": 9})
        assert ActivityLog.query.filter_by(sla_id=sla_id).count() == 1

    def test_log_failure_does_not_undo_change(self, make_sla, monkeypatch):
        def _boom(**kwargs):
            raise RuntimeError("log store unavailable")

        monkeypatch.setattr(sla_service, "write_activity", _boom)
        sla_id = make_sla()
        result = update_sla(sla_id, {"status": "met"})
        monkeypatch.undo()

        assert result["success"] is True
        assert _read(sla_id)["status"] == "met"
        assert ActivityLog.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# END TO END
# ═════════════════════════════════════════════════════════════════════════════


class TestLifecycle:
    def test_create_update_conflict_delete(self, sla_payload):
        created = create_sla(sla_payload(slaType="quantity", currentValue=45, targetValue=90))
        assert created["slaId"] == "SLA-000001"
        record = _read("SLA-000001")
        assert record["progress"] == 50.0
        assert record["rowVersion"] == 1

        updated = update_sla("SLA-000001", {"currentValue": 90, "rowVersion": 1})
        assert updated["rowVersion"] == 2
        assert _read("SLA-000001")["progress"] == 100.0

        stale = update_sla("SLA-000001", {"currentValue": 10, "rowVersion": 1})
        assert stale["code"] == E.CONFLICT_VERSION

        deleted = delete_sla("SLA-000001", row_version=2)
        assert deleted["success"]
        final = _read("SLA-000001")
        assert final["status"] == "deleted"
        assert final["progress"] == 100.0
        assert final["rowVersion"] == 3
