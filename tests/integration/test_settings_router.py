"""Integration tests for the server settings endpoints."""

P = "/api/v1/settings"


class TestSettingsRouter:
    async def test_get_defaults(self, client, admin_headers):
        resp = await client.get(P, headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["server_url"] == "http://localhost:3001"
        assert body["update_interval"] == 60
        assert body["signup_enabled"] is False

    async def test_update_rebuilds_server_url(self, client, admin_headers):
        resp = await client.put(P, json={
            "server_protocol": "https", "server_host": "PatchMon.Example.COM", "server_port": 8443,
        }, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Settings updated successfully"
        assert resp.json()["settings"]["server_url"] == "https://patchmon.example.com:8443"

        resp = await client.get(P, headers=admin_headers)
        assert resp.json()["server_url"] == "https://patchmon.example.com:8443"

    async def test_update_feeds_install_script(self, client, admin_headers, host_credentials):
        await client.put(P, json={"server_host": "pm.internal"}, headers=admin_headers)
        resp = await client.get("/api/v1/hosts/install", headers=host_credentials["headers"])
        assert 'export PATCHMON_URL="http://pm.internal:3001"' in resp.text

    async def test_invalid_values(self, client, admin_headers):
        resp = await client.put(P, json={"server_protocol": "ftp", "update_interval": 1},
                                headers=admin_headers)
        assert resp.status_code == 400
        fields = {e["field"] for e in resp.json()["errors"]}
        assert fields == {"server_protocol", "update_interval"}

    async def test_unknown_default_role(self, client, admin_headers):
        resp = await client.put(P, json={"default_user_role": "auditor"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Role 'auditor' is not configured"

    async def test_requires_manage_settings(self, client, user_headers):
        resp = await client.get(P, headers=user_headers)
        assert resp.status_code == 403
        resp = await client.put(P, json={"signup_enabled": True}, headers=user_headers)
        assert resp.status_code == 403
