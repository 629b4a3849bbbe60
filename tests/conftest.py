"""Shared test fixtures for PatchMon-Engine."""

import os
import pytest
from httpx import ASGITransport, AsyncClient


JWT_SECRET = "test-jwt-secret-for-unit-tests"
ADMIN_USERNAME = "admin"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password"

AGENT_SCRIPT = """#!/bin/bash\r
AGENT_VERSION="1.2.8"\r
CURL_FLAGS=""\r
echo agent\r
"""

INSTALL_SCRIPT = """#!/bin/bash
echo "installing from $PATCHMON_URL"
"""

REMOVE_SCRIPT = """#!/bin/sh
echo remove
"""

PROXMOX_SCRIPT = """#!/bin/bash
# ===== CONFIGURATION =====
PATCHMON_URL="https://example.invalid"
AUTO_ENROLLMENT_KEY=""
# ===== COLOR OUTPUT =====
echo enroll
"""


@pytest.fixture
def jwt_secret():
    return JWT_SECRET


@pytest.fixture
def agents_dir(tmp_path):
    d = tmp_path / "agents"
    d.mkdir()
    (d / "patchmon-agent.sh").write_bytes(AGENT_SCRIPT.encode())
    (d / "patchmon_install.sh").write_text(INSTALL_SCRIPT)
    (d / "patchmon_remove.sh").write_text(REMOVE_SCRIPT)
    (d / "proxmox_auto_enroll.sh").write_text(PROXMOX_SCRIPT)
    return d


@pytest.fixture
def app(agents_dir):
    """Create a test app with in-memory DB."""
    os.environ["PATCHMON_ENVIRONMENT"] = "development"
    os.environ["PATCHMON_DB_URL"] = "sqlite+aiosqlite://"
    os.environ["PATCHMON_JWT_SECRET"] = JWT_SECRET
    os.environ["PATCHMON_RATE_LIMIT_ENABLED"] = "false"
    os.environ["PATCHMON_BCRYPT_PASSWORD_ROUNDS"] = "4"
    os.environ["PATCHMON_BCRYPT_TOKEN_ROUNDS"] = "4"
    os.environ["PATCHMON_AGENTS_DIR"] = str(agents_dir)
    os.environ["PATCHMON_TRUST_PROXY"] = "false"

    # Clear caches and singletons so new env vars take effect
    from patchmon_engine.common.config import get_settings
    get_settings.cache_clear()

    from patchmon_engine.deps import reset_singletons
    reset_singletons()

    from patchmon_engine.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from patchmon_engine.deps import get_db, get_permission_service
    db = get_db()
    await db.init()
    await db.create_all()
    async with db.get_session() as session:
        await get_permission_service().ensure_default_roles(session)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


async def _login(client, username, password):
    resp = await client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()


@pytest.fixture
def login(client):
    """Log in and return the login response body."""
    return lambda username, password: _login(client, username, password)


@pytest.fixture
async def admin_session(client):
    resp = await client.post("/api/v1/auth/setup-admin", json={
        "username": ADMIN_USERNAME, "email": ADMIN_EMAIL, "password": ADMIN_PASSWORD,
    })
    assert resp.status_code == 201, resp.text
    return await _login(client, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture
def admin_headers(admin_session):
    return {"Authorization": f"Bearer {admin_session['token']}"}


@pytest.fixture
async def user_headers(client, admin_headers):
    """A plain ``user`` role account."""
    resp = await client.post("/api/v1/auth/admin/users", json={
        "username": "viewer", "email": "viewer@example.com", "password": "viewer-pass",
    }, headers=admin_headers)
    assert resp.status_code == 201, resp.text
    data = await _login(client, "viewer", "viewer-pass")
    return {"Authorization": f"Bearer {data['token']}"}


@pytest.fixture
async def host_credentials(client, admin_headers):
    resp = await client.post(
        "/api/v1/hosts/create", json={"friendly_name": "web-01"}, headers=admin_headers
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()
    return {
        "id": data["hostId"],
        "headers": {"X-API-ID": data["apiId"], "X-API-KEY": data["apiKey"]},
    }
