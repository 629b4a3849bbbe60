"""Tests for application-level behaviour: health, error envelopes, routing."""


class TestApp:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["database"] == "connected"

    async def test_health_database_down(self, client, monkeypatch):
        from patchmon_engine.deps import get_db

        async def down():
            return False

        monkeypatch.setattr(get_db(), "ping", down)
        resp = await client.get("/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "unhealthy"
        assert resp.json()["database"] == "disconnected"

    async def test_unknown_route(self, client):
        resp = await client.get("/api/v1/does-not-exist")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Route not found"}

    async def test_validation_envelope(self, client):
        resp = await client.post("/api/v1/auth/login", json={})
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Validation failed"
        assert body["code"] == "VALIDATION_ERROR"
        assert {e["field"] for e in body["errors"]} == {"username", "password"}

    async def test_method_not_allowed(self, client):
        resp = await client.get("/api/v1/auth/login")
        assert resp.status_code == 405
        assert resp.json() == {"error": "Method Not Allowed"}

    async def test_openapi_lists_routes(self, client):
        resp = await client.get("/openapi.json")
        paths = resp.json()["paths"]
        assert "/api/v1/hosts/update" in paths
        assert "/api/v1/auto-enrollment/enroll" in paths
