"""Tests for role permission checks."""

import logging

import pytest

from patchmon_engine.auth.permissions import (
    ADMIN_ROLE,
    USER_ROLE,
    Permission,
    PermissionService,
    permissions_dict,
)
from patchmon_engine.common.config import PatchmonSettings
from patchmon_engine.common.database import DatabaseManager


@pytest.fixture
async def db():
    manager = DatabaseManager(PatchmonSettings(jwt_secret="x", db_url="sqlite+aiosqlite://"))
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def svc():
    return PermissionService()


class TestPermissionEnum:
    def test_ten_capabilities(self):
        assert len(Permission) == 10
        assert all(p.value.startswith("can_") for p in Permission)

    def test_description(self):
        assert Permission.MANAGE_HOSTS.description == "manage hosts"


class TestPermissionService:
    async def test_defaults_seeded(self, db, svc):
        async with db.get_session() as session:
            await svc.ensure_default_roles(session)
        async with db.get_session() as session:
            roles = {r.role for r in await svc.list_roles(session)}
            assert roles == {ADMIN_ROLE, USER_ROLE}
            admin = await svc.get_role(session, ADMIN_ROLE)
            assert all(permissions_dict(admin).values())
            user = await svc.get_role(session, USER_ROLE)
            assert permissions_dict(user)["can_view_hosts"] is True
            assert permissions_dict(user)["can_manage_hosts"] is False

    async def test_seeding_keeps_existing_rows(self, db, svc):
        async with db.get_session() as session:
            await svc.upsert_role(session, USER_ROLE, {Permission.MANAGE_HOSTS: True})
            await svc.ensure_default_roles(session)
        async with db.get_session() as session:
            row = await svc.get_role(session, USER_ROLE)
            assert row.can_manage_hosts is True

    async def test_check_allows_and_denies(self, db, svc):
        async with db.get_session() as session:
            await svc.ensure_default_roles(session)
            allowed = await svc.check(session, USER_ROLE, Permission.VIEW_HOSTS)
            denied = await svc.check(session, USER_ROLE, Permission.MANAGE_USERS)
        assert allowed.allowed
        assert not denied.allowed
        assert denied.reason == "Insufficient permissions"

    async def test_unknown_role_denied_and_logged(self, db, svc, caplog, monkeypatch):
        monkeypatch.setattr(logging.getLogger("patchmon_engine"), "propagate", True)
        caplog.set_level(logging.ERROR, logger="patchmon_engine.auth.permissions")
        async with db.get_session() as session:
            decision = await svc.check(session, "ghost", Permission.VIEW_DASHBOARD)
        assert not decision.allowed
        assert decision.reason == "Role not configured"
        assert any("ghost" in r.getMessage() for r in caplog.records)

    async def test_upsert_and_delete_custom_role(self, db, svc):
        granted = {p: p is Permission.VIEW_REPORTS for p in Permission}
        async with db.get_session() as session:
            row = await svc.upsert_role(session, "auditor", granted)
            assert row.can_view_reports is True
            assert row.can_view_hosts is False
        async with db.get_session() as session:
            assert await svc.delete_role(session, "auditor")
            assert not await svc.delete_role(session, "auditor")
