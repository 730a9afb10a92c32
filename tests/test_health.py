"""
SLAM Tests - Health probes and app-level error handlers.
"""


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live(self, client, make_sla):
        make_sla()
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["sla_store"]["rows"] == 1
        assert body["checks"]["app"]["testing"] is True


class TestErrorHandlers:
    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_wrong_method_is_json_405(self, client):
        res = client.delete("/api/v1/exec")
        assert res.status_code == 405
        assert res.get_json()["success"] is False
