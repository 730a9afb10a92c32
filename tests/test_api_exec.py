"""
SLAM Tests - /api/v1/exec action endpoint.

Covers:
    - Descriptor and invalid actions
    - Create / read / update / delete round trip over HTTP
    - Status codes mirroring error codes (400, 404, 409, 207, 415)
    - Query parameters as JSON
    - Relationships, activity, permissions and lookups
    - xlsx export
"""

import io
import json

from openpyxl import load_workbook

from slam.services.lookup_service import seed_lookups
from slam.utils.errors import E

URL = "/api/v1/exec"
ACTOR = {"X-User-Email": "ops@acme.com"}


def _post(client, action, **body):
    body["action"] = action
    return client.post(URL, json=body, headers=ACTOR)


def _get(client, action, **params):
    params["action"] = action
    return client.get(URL, query_string=params, headers=ACTOR)


def _create(client, sla_payload, **overrides):
    res = _post(client, "create", sla=sla_payload(**overrides))
    assert res.status_code == 200, res.get_json()
    return res.get_json()["slaId"]


# ═════════════════════════════════════════════════════════════════════════════
# DISPATCH
# ═════════════════════════════════════════════════════════════════════════════


class TestDispatch:
    def test_descriptor_without_action(self, client):
        res = client.get(URL)
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert "query" in data["actions"]["GET"]
        assert "bulkCreate" in data["actions"]["POST"]

    def test_invalid_get_action(self, client):
        res = _get(client, "dropTable")
        assert res.status_code == 400
        assert res.get_json() == {"success": False, "error": "Invalid action", "code": E.INVALID_ACTION}

    def test_invalid_post_action(self, client):
        res = _post(client, "explode")
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invalid action"

    def test_post_action_not_available_via_get(self, client):
        assert _get(client, "create").status_code == 400

    def test_body_must_be_object(self, client):
        res = client.post(URL, data="[1, 2]", content_type="application/json")
        assert res.status_code == 400
        assert res.get_json()["code"] == E.VALIDATION_INVALID

    def test_form_posts_rejected(self, client):
        res = client.post(URL, data={"action": "create"})
        assert res.status_code == 415

    def test_request_id_header(self, client):
        res = client.get(URL, headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


class TestCrud:
    def test_create_and_read(self, client, sla_payload):
        sla_id = _create(client, sla_payload, slaType="quantity", currentValue=45, targetValue=90)
        assert sla_id == "SLA-000001"

        res = _get(client, "read", id=sla_id)
        assert res.status_code == 200
        record = res.get_json()["data"]
        assert record["progress"] == 50.0
        assert record["rowVersion"] == 1
        assert record["createdBy"] == "ops@acme.com"

    def test_create_accepts_data_key(self, client, sla_payload):
        res = _post(client, "create", data=sla_payload())
        assert res.get_json()["success"] is True

    def test_create_validation_error(self, client, sla_payload):
        res = _post(client, "create", sla=sla_payload(slaType="nope"))
        assert res.status_code == 400
        body = res.get_json()
        assert body["success"] is False
        assert body["code"] == E.VALIDATION_INVALID
        assert "slaType" in body["details"]

    def test_read_missing(self, client):
        res = _get(client, "read", id="SLA-999999")
        assert res.status_code == 404
        assert res.get_json()["error"] == "SLA not found"

    def test_read_without_id(self, client):
        res = _get(client, "read")
        assert res.status_code == 400
        assert "id is required" in res.get_json()["error"]

    def test_update_and_conflict(self, client, sla_payload):
        sla_id = _create(client, sla_payload)

        res = _post(client, "update", slaId=sla_id, updates={"status": "met", "rowVersion": 1})
        assert res.status_code == 200
        assert res.get_json()["rowVersion"] == 2

        res = _post(client, "update", slaId=sla_id, updates={"status": "missed", "rowVersion": 1})
        assert res.status_code == 409
        assert res.get_json()["code"] == E.CONFLICT_VERSION

    def test_updated_by_comes_from_identity_header(self, client, sla_payload):
        sla_id = _create(client, sla_payload)
        client.post(URL, json={"action": "update", "slaId": sla_id, "updates": {"status": "met"}},
                    headers={"X-User-Email": "other@acme.com"})
        record = _get(client, "read", id=sla_id).get_json()["data"]
        assert record["updatedBy"] == "other@acme.com"
        assert record["createdBy"] == "ops@acme.com"

    def test_delete(self, client, sla_payload):
        sla_id = _create(client, sla_payload)
        res = _post(client, "delete", slaId=sla_id, rowVersion=1)
        assert res.status_code == 200
        assert res.get_json()["message"] == "SLA deleted successfully"
        record = _get(client, "read", id=sla_id).get_json()["data"]
        assert record["status"] == "deleted"
        assert record["isActive"] is False

    def test_bulk_create_partial_is_207(self, client, sla_payload):
        res = _post(client, "bulkCreate", slas=[sla_payload(), {"slaName": "broken"}])
        assert res.status_code == 207
        body = res.get_json()
        assert body["created"] == ["SLA-000001"]
        assert body["errors"][0]["index"] == 1

    def test_bulk_update(self, client, sla_payload):
        a = _create(client, sla_payload)
        b = _create(client, sla_payload)
        res = _post(client, "bulkUpdate", updates=[
            {"slaId": a, "data": {"status": "met"}},
            {"slaId": b, "data": {"status": "missed"}},
        ])
        assert res.status_code == 200
        assert res.get_json()["updated"] == [a, b]


# ═════════════════════════════════════════════════════════════════════════════
# QUERY
# ═════════════════════════════════════════════════════════════════════════════


class TestQuery:
    def test_query_with_json_params(self, client, sla_payload):
        for name in ("b", "a", "c"):
            _create(client, sla_payload, slaName=name)
        res = _get(
            client, "query",
            filters=json.dumps({"teamId": "TEAM-001"}),
            sort=json.dumps({"field": "slaName", "direction": "desc"}),
            pagination=json.dumps({"page": 1, "pageSize": 2}),
        )
        body = res.get_json()
        assert res.status_code == 200
        assert body["total"] == 3
        assert body["pageSize"] == 2
        assert [r["slaName"] for r in body["data"]] == ["c", "b"]

    def test_query_without_params_returns_everything(self, client, sla_payload):
        _create(client, sla_payload)
        body = _get(client, "query").get_json()
        assert body["total"] == 1
        assert body["page"] == 1

    def test_malformed_json_param(self, client):
        res = client.get(URL, query_string={"action": "query", "filters": "{not json"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Parameter 'filters' must be valid JSON"


# ═════════════════════════════════════════════════════════════════════════════
# RELATIONSHIPS / ACTIVITY / PERMISSIONS / LOOKUPS
# ═════════════════════════════════════════════════════════════════════════════


class TestAuxiliaryActions:
    def test_relationship_lifecycle(self, client, sla_payload):
        a = _create(client, sla_payload)
        b = _create(client, sla_payload)
        res = _post(client, "createRelationship", relationship={
            "sourceSlaId": a, "targetSlaId": b, "relationshipType": "depends-on",
        })
        assert res.status_code == 200
        rel_id = res.get_json()["data"]["relationshipId"]

        rels = _get(client, "getRelationships", id=b).get_json()["data"]
        assert [r["relationshipId"] for r in rels] == [rel_id]

        res = _post(client, "removeRelationship", relationshipId=rel_id)
        assert res.status_code == 200
        assert _get(client, "getRelationships", id=b).get_json()["data"] == []

    def test_duplicate_relationship_is_409(self, client, sla_payload):
        a = _create(client, sla_payload)
        b = _create(client, sla_payload)
        rel = {"sourceSlaId": a, "targetSlaId": b, "relationshipType": "blocks"}
        _post(client, "createRelationship", relationship=rel)
        assert _post(client, "createRelationship", relationship=rel).status_code == 409

    def test_activity(self, client, sla_payload):
        sla_id = _create(client, sla_payload)
        _post(client, "update", slaId=sla_id, updates={"status": "met"})
        entries = _get(client, "getActivity", id=sla_id).get_json()["data"]
        assert [e["actionType"] for e in entries] == ["created", "updated"]
        assert entries[1]["userId"] == "ops@acme.com"

    def test_get_permissions_defaults_to_caller(self, client):
        data = _get(client, "getPermissions").get_json()["data"]
        assert data["userEmail"] == "ops@acme.com"
        assert data["permissionType"] == "viewer"

    def test_check_permission(self, client, sla_payload):
        sla_id = _create(client, sla_payload)
        data = _get(client, "checkPermission", id=sla_id, operation="read").get_json()["data"]
        assert data == {"slaId": sla_id, "operation": "read", "allowed": True}
        assert _get(client, "checkPermission", id=sla_id, operation="edit").get_json()["data"]["allowed"] is False

    def test_check_permission_rejects_unknown_operation(self, client):
        res = _get(client, "checkPermission", id="SLA-000001", operation="fly")
        assert res.status_code == 400

    def test_lookups(self, client):
        seed_lookups()
        teams = _get(client, "getTeams").get_json()["data"]
        statuses = _get(client, "getStatuses").get_json()["data"]
        assert len(teams) == 12
        assert teams[0]["id"] == "TEAM-001"
        assert [s["statusName"] for s in statuses][:2] == ["not-started", "pending"]

    def test_task_lookups(self, client):
        seed_lookups()
        tasks = _get(client, "getTasks").get_json()["data"]
        assert len(tasks) == 10
        assert tasks[1] == {"id": "TASK-002", "name": "Task 2"}

        res = _get(client, "getTaskTeamMapping")
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert [t["id"] for t in data["mapping"]["Task 2"]] == ["TEAM-002", "TEAM-010", "TEAM-011"]
        assert data["teamIdToName"]["TEAM-001"] == "Program Management Team"


# ═════════════════════════════════════════════════════════════════════════════
# EXPORT
# ═════════════════════════════════════════════════════════════════════════════


class TestExport:
    def test_export_download(self, client, sla_payload):
        _create(client, sla_payload, status="met")
        _create(client, sla_payload, status="missed")
        res = client.get(f"{URL}/export.xlsx", query_string={"filters": json.dumps({"status": "met"})})
        assert res.status_code == 200
        assert res.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        assert "attachment; filename=SLA_Export_" in res.headers["Content-Disposition"]

        wb = load_workbook(io.BytesIO(res.data))
        assert wb["SLA_MASTER"].max_row == 2

    def test_export_bad_filters(self, client):
        res = client.get(f"{URL}/export.xlsx", query_string={"filters": "{"})
        assert res.status_code == 400
