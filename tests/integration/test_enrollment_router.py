"""Integration tests for auto-enrollment token administration and enrollment."""

P = "/api/v1/auto-enrollment"


async def _create_token(client, headers, **overrides):
    payload = {"token_name": "proxmox-lab", **overrides}
    resp = await client.post(f"{P}/tokens", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["token"]


def _enroll_headers(token):
    return {
        "X-Auto-Enrollment-Key": token["token_key"],
        "X-Auto-Enrollment-Secret": token["token_secret"],
    }


class TestTokenAdmin:
    async def test_create_returns_secret_once(self, client, admin_headers, admin_session):
        resp = await client.post(f"{P}/tokens", json={"token_name": "lab"}, headers=admin_headers)
        assert resp.status_code == 201
        body = resp.json()
        assert body["warning"].startswith("Save the token_secret now")
        token = body["token"]
        assert token["token_key"].startswith("patchmon_ae_")
        assert len(token["token_secret"]) == 96
        assert token["max_hosts_per_day"] == 100
        assert token["created_by"]["username"] == admin_session["user"]["username"]

        resp = await client.get(f"{P}/tokens/{token['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert "token_secret" not in resp.json()

    async def test_list_update_delete(self, client, admin_headers):
        token = await _create_token(client, admin_headers)
        resp = await client.get(f"{P}/tokens", headers=admin_headers)
        assert [t["id"] for t in resp.json()] == [token["id"]]

        resp = await client.patch(f"{P}/tokens/{token['id']}", json={
            "is_active": False, "max_hosts_per_day": 5,
        }, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["token"]["is_active"] is False
        assert resp.json()["token"]["max_hosts_per_day"] == 5

        resp = await client.delete(f"{P}/tokens/{token['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["deleted_token"]["token_name"] == "proxmox-lab"
        resp = await client.get(f"{P}/tokens/{token['id']}", headers=admin_headers)
        assert resp.status_code == 404

    async def test_unknown_default_group(self, client, admin_headers):
        resp = await client.post(f"{P}/tokens", json={
            "token_name": "lab", "default_host_group_id": "missing",
        }, headers=admin_headers)
        assert resp.status_code == 400

    async def test_requires_manage_settings(self, client, user_headers):
        resp = await client.get(f"{P}/tokens", headers=user_headers)
        assert resp.status_code == 403


class TestEnroll:
    async def test_enroll(self, client, admin_headers):
        resp = await client.post("/api/v1/host-groups", json={"name": "lxc"}, headers=admin_headers)
        group_id = resp.json()["id"]
        token = await _create_token(client, admin_headers, default_host_group_id=group_id)

        resp = await client.post(f"{P}/enroll", json={
            "friendly_name": "ct-101", "machine_id": "machine-101",
        }, headers=_enroll_headers(token))
        assert resp.status_code == 201, resp.text
        host = resp.json()["host"]
        assert host["status"] == "pending"
        assert host["host_group"]["name"] == "lxc"

        resp = await client.get("/api/v1/hosts/info", headers={
            "X-API-ID": host["api_id"], "X-API-KEY": host["api_key"],
        })
        assert resp.status_code == 200
        assert resp.json()["machine_id"] == "machine-101"

        resp = await client.get(f"{P}/tokens/{token['id']}", headers=admin_headers)
        assert resp.json()["hosts_created_today"] == 1
        assert resp.json()["last_used_at"] is not None

    async def test_enroll_conflict(self, client, admin_headers):
        token = await _create_token(client, admin_headers)
        payload = {"friendly_name": "ct-101", "machine_id": "machine-101"}
        await client.post(f"{P}/enroll", json=payload, headers=_enroll_headers(token))
        resp = await client.post(f"{P}/enroll", json=dict(payload, friendly_name="ct-102"),
                                 headers=_enroll_headers(token))
        assert resp.status_code == 409
        assert resp.json()["machine_id"] == "machine-101"

    async def test_missing_credentials(self, client):
        resp = await client.post(f"{P}/enroll", json={"friendly_name": "a", "machine_id": "m"})
        assert resp.status_code == 401

    async def test_bad_secret(self, client, admin_headers):
        token = await _create_token(client, admin_headers)
        headers = dict(_enroll_headers(token), **{"X-Auto-Enrollment-Secret": "wrong"})
        resp = await client.post(f"{P}/enroll", json={"friendly_name": "a", "machine_id": "m"},
                                 headers=headers)
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid token secret"

    async def test_inactive_token(self, client, admin_headers):
        token = await _create_token(client, admin_headers)
        await client.patch(f"{P}/tokens/{token['id']}", json={"is_active": False}, headers=admin_headers)
        resp = await client.post(f"{P}/enroll", json={"friendly_name": "a", "machine_id": "m"},
                                 headers=_enroll_headers(token))
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid or inactive token"

    async def test_ip_not_allowed(self, client, admin_headers):
        token = await _create_token(client, admin_headers, allowed_ip_ranges=["10.0.0.0/8"])
        resp = await client.post(f"{P}/enroll", json={"friendly_name": "a", "machine_id": "m"},
                                 headers=_enroll_headers(token))
        assert resp.status_code == 403
        assert resp.json()["error"] == "IP address not authorized for this token"

    async def test_ip_allowed(self, client, admin_headers):
        token = await _create_token(client, admin_headers, allowed_ip_ranges=["127.0.0.0/8"])
        resp = await client.post(f"{P}/enroll", json={"friendly_name": "a", "machine_id": "m"},
                                 headers=_enroll_headers(token))
        assert resp.status_code == 201

    async def test_forwarded_for_ignored_without_trusted_proxy(self, client, admin_headers):
        token = await _create_token(client, admin_headers, allowed_ip_ranges=["10.0.0.0/8"])
        headers = dict(_enroll_headers(token), **{"X-Forwarded-For": "10.1.2.3"})
        resp = await client.post(f"{P}/enroll", json={"friendly_name": "a", "machine_id": "m"},
                                 headers=headers)
        assert resp.status_code == 403

    async def test_daily_quota(self, client, admin_headers):
        token = await _create_token(client, admin_headers, max_hosts_per_day=1)
        resp = await client.post(f"{P}/enroll", json={"friendly_name": "a", "machine_id": "m1"},
                                 headers=_enroll_headers(token))
        assert resp.status_code == 201
        resp = await client.post(f"{P}/enroll", json={"friendly_name": "b", "machine_id": "m2"},
                                 headers=_enroll_headers(token))
        assert resp.status_code == 429
        assert resp.json()["message"] == "Maximum 1 hosts per day allowed for this token"


class TestBulkEnroll:
    async def test_mixed_outcomes(self, client, admin_headers):
        token = await _create_token(client, admin_headers)
        await client.post(f"{P}/enroll", json={"friendly_name": "old", "machine_id": "m-old"},
                          headers=_enroll_headers(token))

        resp = await client.post(f"{P}/enroll/bulk", json={"hosts": [
            {"friendly_name": "ct-1", "machine_id": "m-1"},
            {"friendly_name": "ct-2"},
            {"friendly_name": "again", "machine_id": "m-old"},
            {"friendly_name": "old", "machine_id": "m-3"},
        ]}, headers=_enroll_headers(token))
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["message"] == "Bulk enrollment completed: 1 succeeded, 2 failed, 1 skipped"
        results = body["results"]
        assert [r["friendly_name"] for r in results["success"]] == ["ct-1"]
        assert results["skipped"][0]["reason"] == "Machine already enrolled"
        errors = {r["friendly_name"]: r["error"] for r in results["failed"]}
        assert errors["ct-2"] == "Machine ID is required"
        assert errors["old"] == "Host with this friendly name already exists"

        resp = await client.get(f"{P}/tokens/{token['id']}", headers=admin_headers)
        assert resp.json()["hosts_created_today"] == 2

    async def test_too_many_hosts(self, client, admin_headers):
        token = await _create_token(client, admin_headers)
        hosts = [{"friendly_name": f"ct-{i}", "machine_id": f"m-{i}"} for i in range(51)]
        resp = await client.post(f"{P}/enroll/bulk", json={"hosts": hosts}, headers=_enroll_headers(token))
        assert resp.status_code == 400

    async def test_exceeds_remaining_quota(self, client, admin_headers):
        token = await _create_token(client, admin_headers, max_hosts_per_day=2)
        hosts = [{"friendly_name": f"ct-{i}", "machine_id": f"m-{i}"} for i in range(3)]
        resp = await client.post(f"{P}/enroll/bulk", json={"hosts": hosts}, headers=_enroll_headers(token))
        assert resp.status_code == 429
        assert resp.json()["message"] == "Only 2 hosts remaining in daily quota"


class TestProxmoxScript:
    async def test_script(self, client, admin_headers):
        token = await _create_token(client, admin_headers)
        resp = await client.get(f"{P}/proxmox-lxc", params={
            "token_key": token["token_key"], "token_secret": token["token_secret"],
        })
        assert resp.status_code == 200
        text = resp.text
        assert text.startswith("#!/bin/bash\n# PatchMon Auto-Enrollment Configuration (Auto-generated)\n")
        assert f'export AUTO_ENROLLMENT_KEY="{token["token_key"]}"' in text
        assert f'export AUTO_ENROLLMENT_SECRET="{token["token_secret"]}"' in text
        assert 'export PATCHMON_URL="http://localhost:3001"' in text
        assert "https://example.invalid" not in text
        assert "echo enroll" in text

    async def test_missing_params(self, client):
        resp = await client.get(f"{P}/proxmox-lxc")
        assert resp.status_code == 401

    async def test_bad_secret(self, client, admin_headers):
        token = await _create_token(client, admin_headers)
        resp = await client.get(f"{P}/proxmox-lxc", params={
            "token_key": token["token_key"], "token_secret": "wrong",
        })
        assert resp.status_code == 401
