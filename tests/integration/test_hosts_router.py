"""Integration tests for agent check-ins, script distribution and host admin endpoints."""

P = "/api/v1"

REPORT = {
    "packages": [
        {"name": "openssl", "currentVersion": "3.0.1", "availableVersion": "3.0.2",
         "needsUpdate": True, "isSecurityUpdate": True},
        {"name": "curl", "currentVersion": "7.81.0", "needsUpdate": False},
    ],
    "repositories": [
        {"name": "main", "url": "http://archive.ubuntu.com/ubuntu", "distribution": "jammy",
         "components": "main", "repoType": "deb", "isSecure": False},
    ],
    "osType": "Ubuntu",
    "osVersion": "22.04",
    "hostname": "web-01.internal",
    "ip": "10.0.0.5",
    "agentVersion": "1.2.8",
}


class TestAgentCheckIn:
    async def test_update(self, client, host_credentials):
        resp = await client.post(f"{P}/hosts/update", json=REPORT, headers=host_credentials["headers"])
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["message"] == "Host updated successfully"
        assert body["packagesProcessed"] == 2
        assert body["updatesAvailable"] == 1
        assert body["securityUpdates"] == 1
        assert body["crontabUpdate"]["command"] == "update-crontab"

    async def test_update_activates_host(self, client, admin_headers, host_credentials):
        await client.post(f"{P}/hosts/update", json=REPORT, headers=host_credentials["headers"])
        resp = await client.get(f"{P}/hosts/admin/list", headers=admin_headers)
        host = resp.json()[0]
        assert host["status"] == "active"
        assert host["effective_status"] == "active"
        assert host["os_type"] == "Ubuntu"
        assert host["hostname"] == "web-01.internal"

    async def test_update_without_crontab_hint(self, client, admin_headers, host_credentials):
        await client.patch(f"{P}/hosts/{host_credentials['id']}/auto-update",
                           json={"auto_update": False}, headers=admin_headers)
        resp = await client.post(f"{P}/hosts/update", json=REPORT, headers=host_credentials["headers"])
        assert resp.status_code == 200
        assert "crontabUpdate" not in resp.json()

    async def test_update_body_credentials(self, client, host_credentials):
        headers = host_credentials["headers"]
        payload = dict(REPORT, apiId=headers["X-API-ID"], apiKey=headers["X-API-KEY"])
        resp = await client.post(f"{P}/hosts/update", json=payload)
        assert resp.status_code == 200

    async def test_update_invalid_credentials(self, client, host_credentials):
        headers = dict(host_credentials["headers"], **{"X-API-KEY": "wrong"})
        resp = await client.post(f"{P}/hosts/update", json=REPORT, headers=headers)
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid API credentials"

    async def test_update_missing_credentials(self, client):
        resp = await client.post(f"{P}/hosts/update", json=REPORT)
        assert resp.status_code == 401
        assert resp.json()["error"] == "API ID and Key required"

    async def test_update_invalid_report(self, client, host_credentials):
        resp = await client.post(f"{P}/hosts/update", json={
            "packages": [{"name": "openssl", "needsUpdate": True}],
        }, headers=host_credentials["headers"])
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    async def test_ping(self, client, host_credentials):
        resp = await client.post(f"{P}/hosts/ping", json={"triggerCrontabUpdate": True},
                                 headers=host_credentials["headers"])
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Ping successful"
        assert body["friendlyName"] == "web-01"
        assert body["crontabUpdate"]["shouldUpdate"] is True

    async def test_ping_without_body(self, client, host_credentials):
        resp = await client.post(f"{P}/hosts/ping", headers=host_credentials["headers"])
        assert resp.status_code == 200
        assert "crontabUpdate" not in resp.json()

    async def test_info(self, client, host_credentials):
        resp = await client.get(f"{P}/hosts/info", headers=host_credentials["headers"])
        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] == host_credentials["id"]
        assert body["status"] == "pending"
        assert body["api_id"] == host_credentials["headers"]["X-API-ID"]

    async def test_agent_settings(self, client, host_credentials):
        resp = await client.get(f"{P}/hosts/settings", headers=host_credentials["headers"])
        assert resp.json() == {"auto_update": False, "host_auto_update": True}

    async def test_check_machine_id(self, client, host_credentials):
        resp = await client.post(f"{P}/hosts/check-machine-id", json={"machine_id": "nope"},
                                 headers=host_credentials["headers"])
        assert resp.json()["exists"] is False

    async def test_register_disabled(self, client):
        resp = await client.post(f"{P}/hosts/register", json={"hostname": "x"})
        assert resp.status_code == 400
        assert resp.json()["deprecated"] is True


class TestScripts:
    async def test_install_script(self, client, host_credentials):
        resp = await client.get(f"{P}/hosts/install", headers=host_credentials["headers"])
        assert resp.status_code == 200
        text = resp.text
        assert text.startswith("#!/bin/bash\n")
        assert 'export PATCHMON_URL="http://localhost:3001"' in text
        assert f'export API_ID="{host_credentials["headers"]["X-API-ID"]}"' in text
        assert 'export FORCE_INSTALL="false"' in text
        assert 'export CURL_FLAGS="-s"' in text

    async def test_install_script_force(self, client, host_credentials):
        resp = await client.get(f"{P}/hosts/install?force=true", headers=host_credentials["headers"])
        assert 'export FORCE_INSTALL="true"' in resp.text

    async def test_install_requires_credentials(self, client):
        resp = await client.get(f"{P}/hosts/install")
        assert resp.status_code == 401

    async def test_remove_script_is_public(self, client):
        resp = await client.get(f"{P}/hosts/remove")
        assert resp.status_code == 200
        assert 'export CURL_FLAGS="-s"' in resp.text
        assert "echo remove" in resp.text

    async def test_agent_download(self, client, host_credentials):
        resp = await client.get(f"{P}/hosts/agent/download", headers=host_credentials["headers"])
        assert resp.status_code == 200
        assert "\r" not in resp.text
        assert 'CURL_FLAGS="-s"' in resp.text
        assert "attachment" in resp.headers["content-disposition"]

    async def test_agent_download_unknown_version(self, client, host_credentials):
        resp = await client.get(f"{P}/hosts/agent/download?version=9.9.9",
                                headers=host_credentials["headers"])
        assert resp.status_code == 404

    async def test_agent_version(self, client):
        resp = await client.get(f"{P}/hosts/agent/version")
        assert resp.status_code == 200
        assert resp.json()["currentVersion"] == "1.2.8"

    async def test_missing_script(self, client, agents_dir):
        (agents_dir / "patchmon_remove.sh").unlink()
        resp = await client.get(f"{P}/hosts/remove")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Removal script not found"

    async def test_ignore_ssl_changes_curl_flags(self, client, admin_headers):
        await client.put(f"{P}/settings", json={"ignore_ssl_self_signed": True}, headers=admin_headers)
        resp = await client.get(f"{P}/hosts/remove")
        assert 'export CURL_FLAGS="-sk"' in resp.text


class TestHostAdmin:
    async def test_create_requires_permission(self, client, user_headers):
        resp = await client.post(f"{P}/hosts/create", json={"friendly_name": "db-01"}, headers=user_headers)
        assert resp.status_code == 403

    async def test_plain_user_can_list(self, client, user_headers, host_credentials):
        resp = await client.get(f"{P}/hosts/admin/list", headers=user_headers)
        assert resp.status_code == 200
        assert len(resp.json()) == 1

    async def test_duplicate_friendly_name(self, client, admin_headers, host_credentials):
        resp = await client.post(f"{P}/hosts/create", json={"friendly_name": "web-01"}, headers=admin_headers)
        assert resp.status_code == 409

    async def test_create_with_unknown_group(self, client, admin_headers):
        resp = await client.post(f"{P}/hosts/create", json={
            "friendly_name": "db-01", "hostGroupId": "missing",
        }, headers=admin_headers)
        assert resp.status_code == 400

    async def test_rename_conflict(self, client, admin_headers, host_credentials):
        resp = await client.post(f"{P}/hosts/create", json={"friendly_name": "db-01"}, headers=admin_headers)
        other_id = resp.json()["hostId"]
        resp = await client.patch(f"{P}/hosts/{other_id}/friendly-name",
                                  json={"friendly_name": "web-01"}, headers=admin_headers)
        assert resp.status_code == 409
        resp = await client.patch(f"{P}/hosts/{other_id}/friendly-name",
                                  json={"friendly_name": "db-02"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["host"]["friendly_name"] == "db-02"

    async def test_notes(self, client, admin_headers, host_credentials):
        resp = await client.patch(f"{P}/hosts/{host_credentials['id']}/notes",
                                  json={"notes": "rack 4"}, headers=admin_headers)
        assert resp.json()["host"]["notes"] == "rack 4"

    async def test_regenerate_credentials(self, client, admin_headers, host_credentials):
        resp = await client.post(f"{P}/hosts/{host_credentials['id']}/regenerate-credentials",
                                 headers=admin_headers)
        assert resp.status_code == 200
        new = resp.json()
        resp = await client.get(f"{P}/hosts/info", headers=host_credentials["headers"])
        assert resp.status_code == 401
        resp = await client.get(f"{P}/hosts/info", headers={
            "X-API-ID": new["apiId"], "X-API-KEY": new["apiKey"],
        })
        assert resp.status_code == 200

    async def test_delete(self, client, admin_headers, host_credentials):
        await client.post(f"{P}/hosts/update", json=REPORT, headers=host_credentials["headers"])
        resp = await client.delete(f"{P}/hosts/{host_credentials['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["deleted"]["friendly_name"] == "web-01"
        resp = await client.get(f"{P}/hosts/info", headers=host_credentials["headers"])
        assert resp.status_code == 401

    async def test_delete_unknown(self, client, admin_headers):
        resp = await client.delete(f"{P}/hosts/missing", headers=admin_headers)
        assert resp.status_code == 404

    async def test_bulk_delete(self, client, admin_headers, host_credentials):
        resp = await client.request("DELETE", f"{P}/hosts/bulk", json={
            "hostIds": [host_credentials["id"], "missing"],
        }, headers=admin_headers)
        assert resp.status_code == 404
        assert resp.json()["missingIds"] == ["missing"]

        resp = await client.request("DELETE", f"{P}/hosts/bulk", json={
            "hostIds": [host_credentials["id"]],
        }, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["deletedCount"] == 1
        assert resp.json()["message"] == "1 host deleted successfully"

    async def test_group_assignment(self, client, admin_headers, host_credentials):
        resp = await client.post(f"{P}/host-groups", json={"name": "web"}, headers=admin_headers)
        group_id = resp.json()["id"]

        resp = await client.put(f"{P}/hosts/{host_credentials['id']}/group",
                                json={"hostGroupId": group_id}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["host"]["host_group"]["name"] == "web"

        resp = await client.put(f"{P}/hosts/bulk/group", json={
            "hostIds": [host_credentials["id"]], "hostGroupId": None,
        }, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["hosts"][0]["host_group_id"] is None

    async def test_bulk_group_missing_hosts(self, client, admin_headers):
        resp = await client.put(f"{P}/hosts/bulk/group", json={"hostIds": ["missing"]},
                                headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["missingHostIds"] == ["missing"]
