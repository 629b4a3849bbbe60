"""Repository service: the software-source catalog and per-host repository links."""

import logging
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from patchmon_engine.common.config import PatchmonSettings
from patchmon_engine.common.exceptions import NotFoundError
from patchmon_engine.common.models import as_utc, utcnow
from patchmon_engine.hosts.models import HostModel, HostRepositoryModel, RepositoryModel

logger = logging.getLogger(__name__)

# Columns an administrator may edit; everything else comes from agent reports.
EDITABLE_FIELDS = ("name", "description", "is_active", "priority")
NULLABLE_FIELDS = ("description", "priority")


def repository_dict(repo: RepositoryModel) -> dict[str, Any]:
    return {
        "id": repo.id,
        "name": repo.name,
        "url": repo.url,
        "distribution": repo.distribution,
        "components": repo.components,
        "repo_type": repo.repo_type,
        "is_active": repo.is_active,
        "is_secure": repo.is_secure,
        "priority": repo.priority,
        "description": repo.description,
        "created_at": as_utc(repo.created_at),
        "updated_at": as_utc(repo.updated_at),
    }


class RepositoryService:
    """Repository listing, editing, per-host toggles and orphan cleanup."""

    def __init__(self, settings: PatchmonSettings):
        self.settings = settings

    async def get_repository(self, session: AsyncSession, repository_id: str) -> RepositoryModel:
        repo = await session.get(RepositoryModel, repository_id)
        if repo is None:
            raise NotFoundError(
                "Repository not found",
                extra={"details": "The repository may have been deleted or does not exist"},
            )
        return repo

    async def _links(self, session: AsyncSession, repository_id: str):
        result = await session.execute(
            select(HostRepositoryModel, HostModel)
            .join(HostModel, HostRepositoryModel.host_id == HostModel.id)
            .where(HostRepositoryModel.repository_id == repository_id)
            .order_by(HostModel.friendly_name.asc())
        )
        return result.all()

    async def count_hosts(self, session: AsyncSession, repository_id: str) -> int:
        return await session.scalar(
            select(func.count(HostRepositoryModel.id))
            .where(HostRepositoryModel.repository_id == repository_id)
        ) or 0

    async def list_repositories(self, session: AsyncSession) -> list[dict[str, Any]]:
        """Every repository with host counts, ordered by name then URL."""
        result = await session.execute(
            select(RepositoryModel).order_by(RepositoryModel.name.asc(), RepositoryModel.url.asc())
        )
        entries = []
        for repo in result.scalars().all():
            links = await self._links(session, repo.id)
            entry = repository_dict(repo)
            entry.update({
                "hostCount": len(links),
                "enabledHostCount": sum(1 for link, _ in links if link.is_enabled),
                "activeHostCount": sum(1 for _, host in links if host.status == "active"),
                "hosts": [
                    {
                        "id": host.id,
                        "friendlyName": host.friendly_name,
                        "status": host.status,
                        "isEnabled": link.is_enabled,
                        "lastChecked": as_utc(link.last_checked),
                    }
                    for link, host in links
                ],
            })
            entries.append(entry)
        return entries

    async def host_repositories(self, session: AsyncSession, host_id: str) -> list[dict[str, Any]]:
        result = await session.execute(
            select(HostRepositoryModel, RepositoryModel, HostModel)
            .join(RepositoryModel, HostRepositoryModel.repository_id == RepositoryModel.id)
            .join(HostModel, HostRepositoryModel.host_id == HostModel.id)
            .where(HostRepositoryModel.host_id == host_id)
            .order_by(RepositoryModel.name.asc())
        )
        return [
            {
                "id": link.id,
                "host_id": link.host_id,
                "repository_id": link.repository_id,
                "is_enabled": link.is_enabled,
                "last_checked": as_utc(link.last_checked),
                "repository": repository_dict(repo),
                "host": {"id": host.id, "friendly_name": host.friendly_name},
            }
            for link, repo, host in result.all()
        ]

    async def repository_detail(self, session: AsyncSession, repository_id: str) -> dict[str, Any]:
        repo = await self.get_repository(session, repository_id)
        detail = repository_dict(repo)
        detail["host_repositories"] = [
            {
                "id": link.id,
                "is_enabled": link.is_enabled,
                "last_checked": as_utc(link.last_checked),
                "host": {
                    "id": host.id,
                    "friendly_name": host.friendly_name,
                    "hostname": host.hostname,
                    "ip": host.ip,
                    "os_type": host.os_type,
                    "os_version": host.os_version,
                    "status": host.status,
                    "last_update": as_utc(host.last_update),
                },
            }
            for link, host in await self._links(session, repo.id)
        ]
        return detail

    async def update_repository(
        self, session: AsyncSession, repository_id: str, changes: dict[str, Any]
    ) -> RepositoryModel:
        repo = await self.get_repository(session, repository_id)
        for field in EDITABLE_FIELDS:
            if field not in changes:
                continue
            if changes[field] is None and field not in NULLABLE_FIELDS:
                continue
            setattr(repo, field, changes[field])
        await session.flush()
        logger.info("Updated repository %s (%s)", repo.name, repo.id)
        return repo

    async def set_host_repository_enabled(
        self, session: AsyncSession, host_id: str, repository_id: str, enabled: bool
    ) -> tuple[HostRepositoryModel, RepositoryModel, HostModel]:
        result = await session.execute(
            select(HostRepositoryModel, RepositoryModel, HostModel)
            .join(RepositoryModel, HostRepositoryModel.repository_id == RepositoryModel.id)
            .join(HostModel, HostRepositoryModel.host_id == HostModel.id)
            .where(
                HostRepositoryModel.host_id == host_id,
                HostRepositoryModel.repository_id == repository_id,
            )
        )
        row = result.first()
        if row is None:
            raise NotFoundError("Host repository not found")
        link, repo, host = row
        link.is_enabled = enabled
        link.last_checked = utcnow()
        await session.flush()
        logger.info(
            "Repository %s %s for host %s",
            repo.name, "enabled" if enabled else "disabled", host.friendly_name,
            extra={"host_id": host.id},
        )
        return link, repo, host

    async def stats(self, session: AsyncSession) -> dict[str, int]:
        total = await session.scalar(select(func.count(RepositoryModel.id))) or 0
        active = await session.scalar(
            select(func.count(RepositoryModel.id)).where(RepositoryModel.is_active.is_(True))
        ) or 0
        secure = await session.scalar(
            select(func.count(RepositoryModel.id)).where(RepositoryModel.is_secure.is_(True))
        ) or 0
        enabled_links = await session.scalar(
            select(func.count(HostRepositoryModel.id)).where(HostRepositoryModel.is_enabled.is_(True))
        ) or 0
        return {
            "totalRepositories": total,
            "activeRepositories": active,
            "secureRepositories": secure,
            "enabledHostRepositories": enabled_links,
            "securityPercentage": round(secure / total * 100) if total else 0,
        }

    async def _delete_rows(self, session: AsyncSession, repository_ids: list[str]) -> None:
        await session.execute(
            delete(HostRepositoryModel).where(HostRepositoryModel.repository_id.in_(repository_ids))
        )
        await session.execute(delete(RepositoryModel).where(RepositoryModel.id.in_(repository_ids)))

    async def delete_repository(self, session: AsyncSession, repository_id: str) -> dict[str, Any]:
        """Remove a repository and its host links. Returns what was deleted."""
        repo = await self.get_repository(session, repository_id)
        deleted = {
            "id": repo.id,
            "name": repo.name,
            "url": repo.url,
            "hostCount": await self.count_hosts(session, repo.id),
        }
        await self._delete_rows(session, [repo.id])
        logger.info("Deleted repository %s (%s)", repo.name, repo.id)
        return deleted

    async def cleanup_orphaned(self, session: AsyncSession) -> list[dict[str, str]]:
        """Delete repositories no host reports any more."""
        linked = select(HostRepositoryModel.repository_id)
        result = await session.execute(
            select(RepositoryModel).where(RepositoryModel.id.not_in(linked))
        )
        orphans = [{"id": r.id, "name": r.name, "url": r.url} for r in result.scalars().all()]
        if orphans:
            await self._delete_rows(session, [o["id"] for o in orphans])
            logger.info("Deleted %d orphaned repositories", len(orphans))
        return orphans
