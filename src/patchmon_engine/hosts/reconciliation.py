"""Apply an agent's package/repository snapshot to stored host state.

Each report is authoritative and total: packages or repositories missing
from it are no longer present on the host. The whole reconciliation runs in
one transaction holding a row lock on the host, so overlapping reports for
the same host apply one after the other. A failed attempt leaves host state
untouched but still appends an ``error`` row to the update history.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from patchmon_engine.common.database import DatabaseManager
from patchmon_engine.common.exceptions import NotFoundError, ReconciliationError
from patchmon_engine.common.models import as_utc, utcnow
from patchmon_engine.hosts.models import (
    HostModel,
    HostPackageModel,
    HostRepositoryModel,
    PackageModel,
    RepositoryModel,
    UpdateHistoryModel,
)
from patchmon_engine.hosts.schemas import HostReport, PackageReport, RepositoryReport

logger = logging.getLogger(__name__)

PENDING_MACHINE_PREFIX = "pending-"

_VERSION_TOKEN = re.compile(r"\d+|[A-Za-z]+")


def _version_key(version: str) -> list[tuple[int, int | str]]:
    return [
        (0, int(tok)) if tok.isdigit() else (1, tok.lower())
        for tok in _VERSION_TOKEN.findall(version)
    ]


def compare_versions(a: str, b: str) -> int:
    """Segment-wise comparison: numeric runs compare as numbers. Returns -1, 0 or 1."""
    ka, kb = _version_key(a), _version_key(b)
    if ka == kb:
        return 0
    return 1 if ka > kb else -1


def derive_host_status(
    host: HostModel,
    update_interval_minutes: int,
    multiplier: int,
    now: datetime | None = None,
) -> str:
    """View-time status: ``inactive`` once an active host has missed enough check-ins."""
    if host.status != "active" or host.last_update is None:
        return host.status
    now = now or utcnow()
    threshold = timedelta(minutes=update_interval_minutes * multiplier)
    if now - as_utc(host.last_update) > threshold:
        return "inactive"
    return host.status


@dataclass
class ReconciliationResult:
    host_id: str
    packages_processed: int
    updates_available: int
    security_updates: int
    auto_update: bool


class ReconciliationEngine:
    """Transactional delete-then-recreate of a host's packages and repositories."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def reconcile(self, host_id: str, report: HostReport) -> ReconciliationResult:
        updates_count = sum(1 for p in report.packages if p.needs_update)
        security_count = sum(1 for p in report.packages if p.is_security_update)

        try:
            async with self.db.get_session() as session:
                host = await self._lock_host(session, host_id)
                self._apply_host_updates(host, report)
                await self._sync_packages(session, host.id, report.packages)
                if report.repositories is not None:
                    await self._sync_repositories(session, host.id, report.repositories)
                session.add(
                    UpdateHistoryModel(
                        host_id=host.id,
                        packages_count=updates_count,
                        security_count=security_count,
                        status="success",
                    )
                )
                await session.flush()
                auto_update = host.auto_update
        except NotFoundError:
            raise
        except Exception as exc:
            logger.exception("Host update failed for host %s", host_id, extra={"host_id": host_id})
            await self._record_failure(host_id, exc)
            raise ReconciliationError() from exc

        logger.info(
            "Host %s reconciled: %d packages, %d updates, %d security",
            host_id, len(report.packages), updates_count, security_count,
            extra={"host_id": host_id},
        )
        return ReconciliationResult(
            host_id=host_id,
            packages_processed=len(report.packages),
            updates_available=updates_count,
            security_updates=security_count,
            auto_update=auto_update,
        )

    async def _lock_host(self, session: AsyncSession, host_id: str) -> HostModel:
        result = await session.execute(
            select(HostModel).where(HostModel.id == host_id).with_for_update()
        )
        host = result.scalar_one_or_none()
        if host is None:
            raise NotFoundError("Host not found")
        return host

    def _apply_host_updates(self, host: HostModel, report: HostReport) -> None:
        for column, value in report.metadata_updates().items():
            setattr(host, column, value)
        # A real machine id replaces the placeholder exactly once.
        if report.machine_id and host.machine_id.startswith(PENDING_MACHINE_PREFIX):
            host.machine_id = report.machine_id
        if host.status == "pending":
            host.status = "active"
        host.last_update = utcnow()

    async def _find_or_create_package(
        self, session: AsyncSession, entry: PackageReport
    ) -> PackageModel:
        result = await session.execute(
            select(PackageModel).where(PackageModel.name == entry.name)
        )
        package = result.scalar_one_or_none()
        if package is None:
            package = PackageModel(
                name=entry.name,
                description=entry.description,
                category=entry.category,
                latest_version=entry.available_version or entry.current_version,
            )
            session.add(package)
            await session.flush()
        elif entry.available_version and (
            package.latest_version is None
            or compare_versions(entry.available_version, package.latest_version) > 0
        ):
            package.latest_version = entry.available_version
        return package

    async def _sync_packages(
        self, session: AsyncSession, host_id: str, packages: list[PackageReport]
    ) -> None:
        await session.execute(
            delete(HostPackageModel).where(HostPackageModel.host_id == host_id)
        )
        now = utcnow()
        # Duplicate names in one report collapse onto a single row; the last entry wins.
        rows: dict[str, HostPackageModel] = {}
        for entry in packages:
            package = await self._find_or_create_package(session, entry)
            row = rows.get(package.id)
            if row is None:
                row = HostPackageModel(host_id=host_id, package_id=package.id)
                rows[package.id] = row
            row.current_version = entry.current_version
            row.available_version = entry.available_version
            row.needs_update = entry.needs_update
            row.is_security_update = entry.is_security_update
            row.last_checked = now
            session.add(row)
        await session.flush()

    async def _sync_repositories(
        self, session: AsyncSession, host_id: str, repositories: list[RepositoryReport]
    ) -> None:
        await session.execute(
            delete(HostRepositoryModel).where(HostRepositoryModel.host_id == host_id)
        )
        unique: dict[tuple[str, str, str], RepositoryReport] = {}
        for entry in repositories:
            unique.setdefault(entry.dedup_key, entry)

        now = utcnow()
        for entry in unique.values():
            result = await session.execute(
                select(RepositoryModel).where(
                    RepositoryModel.url == entry.url,
                    RepositoryModel.distribution == entry.distribution,
                    RepositoryModel.components == entry.components,
                )
            )
            repo = result.scalar_one_or_none()
            if repo is None:
                repo = RepositoryModel(
                    name=entry.name,
                    url=entry.url,
                    distribution=entry.distribution,
                    components=entry.components,
                    repo_type=entry.repo_type,
                    is_active=True,
                    is_secure=entry.is_secure,
                    description=f"{entry.repo_type} repository for {entry.distribution}",
                )
                session.add(repo)
                await session.flush()
            session.add(
                HostRepositoryModel(
                    host_id=host_id,
                    repository_id=repo.id,
                    is_enabled=entry.is_enabled,
                    last_checked=now,
                )
            )
        await session.flush()

    async def _record_failure(self, host_id: str, exc: Exception) -> None:
        try:
            async with self.db.get_session() as session:
                session.add(
                    UpdateHistoryModel(
                        host_id=host_id,
                        packages_count=0,
                        security_count=0,
                        status="error",
                        error_message=str(exc) or exc.__class__.__name__,
                    )
                )
        except Exception:
            logger.exception("Could not record failed update for host %s", host_id)
