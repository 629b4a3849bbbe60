"""Integration tests for the TFA enrolment endpoints."""

import pyotp

P = "/api/v1/tfa"


async def _enable(client, headers):
    resp = await client.get(f"{P}/setup", headers=headers)
    secret = resp.json()["secret"]
    resp = await client.post(f"{P}/verify-setup", json={"token": pyotp.TOTP(secret).now()}, headers=headers)
    assert resp.status_code == 200, resp.text
    return secret, resp.json()["backupCodes"]


class TestTfaRouter:
    async def test_setup_returns_otpauth_url(self, client, admin_headers):
        resp = await client.get(f"{P}/setup", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["otpauth_url"].startswith("otpauth://totp/")
        assert body["secret"] in body["otpauth_url"]

    async def test_enable_and_status(self, client, admin_headers):
        resp = await client.get(f"{P}/status", headers=admin_headers)
        assert resp.json() == {"enabled": False, "hasBackupCodes": False}

        _, codes = await _enable(client, admin_headers)
        assert len(codes) == 10

        resp = await client.get(f"{P}/status", headers=admin_headers)
        assert resp.json() == {"enabled": True, "hasBackupCodes": True}

        resp = await client.get(f"{P}/setup", headers=admin_headers)
        assert resp.status_code == 400

    async def test_verify_setup_wrong_code(self, client, admin_headers):
        await client.get(f"{P}/setup", headers=admin_headers)
        resp = await client.post(f"{P}/verify-setup", json={"token": "abcdef"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid verification code"

    async def test_verify_setup_without_secret(self, client, admin_headers):
        resp = await client.post(f"{P}/verify-setup", json={"token": "123456"}, headers=admin_headers)
        assert resp.status_code == 400

    async def test_regenerate_backup_codes(self, client, admin_headers):
        _, first = await _enable(client, admin_headers)
        resp = await client.post(f"{P}/regenerate-backup-codes", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["backupCodes"] != first

    async def test_disable(self, client, admin_headers):
        await _enable(client, admin_headers)
        resp = await client.post(f"{P}/disable", json={"password": "wrong"}, headers=admin_headers)
        assert resp.status_code == 400
        resp = await client.post(f"{P}/disable", json={"password": "admin-password"}, headers=admin_headers)
        assert resp.status_code == 200
        resp = await client.get(f"{P}/status", headers=admin_headers)
        assert resp.json()["enabled"] is False

    async def test_requires_login(self, client):
        resp = await client.get(f"{P}/status")
        assert resp.status_code == 401
