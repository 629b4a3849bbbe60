"""Tests for package catalog listing, detail and per-package host views."""

import pytest

from patchmon_engine.common.config import PatchmonSettings
from patchmon_engine.common.database import DatabaseManager
from patchmon_engine.common.exceptions import NotFoundError
from patchmon_engine.hosts.reconciliation import ReconciliationEngine
from patchmon_engine.hosts.schemas import HostReport
from patchmon_engine.hosts.service import HostService
from patchmon_engine.packages.service import PackageService, pagination
from patchmon_engine.server_settings.service import SettingsService


def make_settings(**overrides) -> PatchmonSettings:
    defaults = {"jwt_secret": "x", "db_url": "sqlite+aiosqlite://"}
    defaults.update(overrides)
    return PatchmonSettings(**defaults)


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def svc():
    return PackageService(make_settings())


def _pkg(name, current, available=None, security=False, **extra):
    return {
        "name": name,
        "currentVersion": current,
        "availableVersion": available,
        "needsUpdate": available is not None,
        "isSecurityUpdate": security,
        **extra,
    }


async def _report(db, name, packages, os_type="Ubuntu", hostname=None) -> str:
    settings = make_settings()
    hosts = HostService(settings, SettingsService(settings))
    async with db.get_session() as session:
        host, _ = await hosts.create_host(session, name)
        host_id = host.id
    await ReconciliationEngine(db).reconcile(host_id, HostReport.model_validate({
        "packages": packages, "osType": os_type, "hostname": hostname or f"{name}.internal",
    }))
    return host_id


@pytest.fixture
async def fleet(db):
    """Three hosts sharing openssl at different versions."""
    await _report(db, "web-01", [
        _pkg("openssl", "3.0.1", "3.0.2", security=True, description="TLS toolkit", category="security"),
        _pkg("curl", "7.81.0"),
    ])
    await _report(db, "web-02", [_pkg("openssl", "3.0.1", "3.0.2", security=True)])
    await _report(db, "db-01", [_pkg("openssl", "3.0.2"), _pkg("zlib", "1.2.11", "1.2.13")], os_type="Debian")


async def _package_id(db, svc, name):
    async with db.get_session() as session:
        packages, _ = await svc.list_packages(session, search=name)
    return next(p["id"] for p in packages if p["name"] == name)


def test_pagination():
    assert pagination(1, 50, 0) == {"page": 1, "limit": 50, "total": 0, "pages": 0}
    assert pagination(2, 25, 51) == {"page": 2, "limit": 25, "total": 51, "pages": 3}


class TestListPackages:
    async def test_ordered_by_name_with_stats(self, db, svc, fleet):
        async with db.get_session() as session:
            packages, total = await svc.list_packages(session)
        assert total == 3
        assert [p["name"] for p in packages] == ["curl", "openssl", "zlib"]
        openssl = packages[1]
        assert openssl["packageHostsCount"] == 3
        assert openssl["stats"] == {"totalInstalls": 3, "updatesNeeded": 2, "securityUpdates": 2}
        assert [h["friendlyName"] for h in openssl["packageHosts"]] == ["web-01", "web-02"]
        assert openssl["packageHosts"][0]["availableVersion"] == "3.0.2"

    async def test_pagination_slices(self, db, svc, fleet):
        async with db.get_session() as session:
            packages, total = await svc.list_packages(session, page=2, limit=2)
        assert total == 3
        assert [p["name"] for p in packages] == ["zlib"]

    async def test_search_is_case_insensitive_and_covers_description(self, db, svc, fleet):
        async with db.get_session() as session:
            by_name, _ = await svc.list_packages(session, search="OPENSSL")
            by_description, _ = await svc.list_packages(session, search="tls")
        assert [p["name"] for p in by_name] == ["openssl"]
        assert [p["name"] for p in by_description] == ["openssl"]

    async def test_category_filter(self, db, svc, fleet):
        async with db.get_session() as session:
            packages, total = await svc.list_packages(session, category="security")
        assert total == 1
        assert packages[0]["category"] == "security"

    async def test_update_filters(self, db, svc, fleet):
        async with db.get_session() as session:
            needing, _ = await svc.list_packages(session, needs_update=True)
            security, _ = await svc.list_packages(session, is_security_update=True)
            current, _ = await svc.list_packages(session, needs_update=False)
        assert [p["name"] for p in needing] == ["openssl", "zlib"]
        assert [p["name"] for p in security] == ["openssl"]
        # openssl is current on db-01, so it also has a host that needs nothing
        assert [p["name"] for p in current] == ["curl", "openssl"]


class TestPackageDetail:
    async def test_detail_stats_and_distributions(self, db, svc, fleet):
        package_id = await _package_id(db, svc, "openssl")
        async with db.get_session() as session:
            detail = await svc.package_detail(session, package_id)
        assert detail["name"] == "openssl"
        assert detail["latest_version"] == "3.0.2"
        assert detail["stats"] == {
            "totalInstalls": 3, "updatesNeeded": 2, "securityUpdates": 2, "upToDate": 1,
        }
        assert detail["distributions"]["versions"] == [
            {"version": "3.0.1", "count": 2}, {"version": "3.0.2", "count": 1},
        ]
        assert detail["distributions"]["osTypes"] == [
            {"osType": "Ubuntu", "count": 2}, {"osType": "Debian", "count": 1},
        ]
        assert [hp["host"]["friendly_name"] for hp in detail["host_packages"]] == [
            "db-01", "web-01", "web-02",
        ]

    async def test_unknown_package(self, db, svc):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError, match="Package not found"):
                await svc.package_detail(session, "missing")


class TestPackageHosts:
    async def test_sorted_and_paginated(self, db, svc, fleet):
        package_id = await _package_id(db, svc, "openssl")
        async with db.get_session() as session:
            hosts, total = await svc.package_hosts(
                session, package_id, limit=2, sort_by="friendly_name", sort_order="desc"
            )
        assert total == 3
        assert [h["friendlyName"] for h in hosts] == ["web-02", "web-01"]
        assert hosts[0]["currentVersion"] == "3.0.1"
        assert hosts[0]["needsUpdate"] is True

    async def test_search_by_hostname(self, db, svc, fleet):
        package_id = await _package_id(db, svc, "openssl")
        async with db.get_session() as session:
            hosts, total = await svc.package_hosts(session, package_id, search="DB-01.INT")
        assert total == 1
        assert hosts[0]["hostname"] == "db-01.internal"
        assert hosts[0]["osType"] == "Debian"

    async def test_unknown_package(self, db, svc):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await svc.package_hosts(session, "missing")
