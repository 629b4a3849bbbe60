"""Host service: admin host management, host groups and agent lookups."""

import logging
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from patchmon_engine.common.config import PatchmonSettings
from patchmon_engine.common.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationFailedError,
)
from patchmon_engine.common.models import generate_uuid, utcnow
from patchmon_engine.common.security import generate_api_credentials
from patchmon_engine.hosts.models import (
    AgentVersionModel,
    HostGroupModel,
    HostModel,
    HostPackageModel,
    HostRepositoryModel,
    UpdateHistoryModel,
)
from patchmon_engine.hosts.reconciliation import PENDING_MACHINE_PREFIX, derive_host_status
from patchmon_engine.server_settings.service import SettingsService

logger = logging.getLogger(__name__)


class HostService:
    """Host and host-group administration."""

    def __init__(self, settings: PatchmonSettings, settings_service: SettingsService):
        self.settings = settings
        self.settings_service = settings_service

    # ── Hosts ──

    async def get_host(self, session: AsyncSession, host_id: str) -> HostModel:
        host = await session.get(HostModel, host_id)
        if host is None:
            raise NotFoundError("Host not found")
        return host

    async def _ensure_friendly_name_free(
        self, session: AsyncSession, friendly_name: str, exclude_id: str | None = None
    ) -> None:
        query = select(HostModel.id).where(HostModel.friendly_name == friendly_name)
        if exclude_id:
            query = query.where(HostModel.id != exclude_id)
        result = await session.execute(query)
        if result.first() is not None:
            raise ConflictError("Host with this friendly name already exists")

    async def create_host(
        self,
        session: AsyncSession,
        friendly_name: str,
        host_group_id: str | None = None,
        machine_id: str | None = None,
        **fields: Any,
    ) -> tuple[HostModel, str]:
        """Create a pending host with fresh credentials. Returns (host, api_key)."""
        if host_group_id:
            await self.require_group(session, host_group_id)
        await self._ensure_friendly_name_free(session, friendly_name)

        api_id, api_key = generate_api_credentials()
        host = HostModel(
            machine_id=machine_id or f"{PENDING_MACHINE_PREFIX}{generate_uuid()}",
            friendly_name=friendly_name,
            api_id=api_id,
            api_key=api_key,
            status="pending",
            host_group_id=host_group_id,
            **fields,
        )
        session.add(host)
        await session.flush()
        logger.info("Created host %s (%s)", friendly_name, host.id)
        return host, api_key

    async def find_by_machine_id(self, session: AsyncSession, machine_id: str) -> HostModel | None:
        result = await session.execute(
            select(HostModel).where(HostModel.machine_id == machine_id)
        )
        return result.scalar_one_or_none()

    async def list_hosts(self, session: AsyncSession) -> list[dict[str, Any]]:
        server_settings = await self.settings_service.get(session)
        result = await session.execute(
            select(HostModel, HostGroupModel)
            .outerjoin(HostGroupModel, HostModel.host_group_id == HostGroupModel.id)
            .order_by(HostModel.created_at.desc())
        )
        return [
            {
                "host": host,
                "group": group,
                "effective_status": derive_host_status(
                    host,
                    server_settings.update_interval,
                    self.settings.stale_host_multiplier,
                ),
            }
            for host, group in result.all()
        ]

    async def _delete_host_rows(self, session: AsyncSession, host_ids: list[str]) -> None:
        for model in (HostPackageModel, HostRepositoryModel, UpdateHistoryModel):
            await session.execute(delete(model).where(model.host_id.in_(host_ids)))
        await session.execute(delete(HostModel).where(HostModel.id.in_(host_ids)))

    async def delete_host(self, session: AsyncSession, host_id: str) -> HostModel:
        host = await self.get_host(session, host_id)
        await self._delete_host_rows(session, [host.id])
        logger.info("Deleted host %s (%s)", host.friendly_name, host.id)
        return host

    async def bulk_delete(self, session: AsyncSession, host_ids: list[str]) -> list[dict[str, str]]:
        result = await session.execute(
            select(HostModel.id, HostModel.friendly_name).where(HostModel.id.in_(host_ids))
        )
        found = {row.id: row.friendly_name for row in result.all()}
        missing = [hid for hid in host_ids if hid not in found]
        if missing:
            raise NotFoundError("Some hosts were not found", extra={"missingIds": missing})
        await self._delete_host_rows(session, list(found))
        logger.info("Bulk deleted %d hosts", len(found))
        return [{"id": hid, "friendly_name": name} for hid, name in found.items()]

    async def regenerate_credentials(self, session: AsyncSession, host_id: str) -> HostModel:
        host = await self.get_host(session, host_id)
        host.api_id, host.api_key = generate_api_credentials()
        await session.flush()
        logger.info("Regenerated API credentials for host %s", host.id)
        return host

    async def assign_group(
        self, session: AsyncSession, host_id: str, host_group_id: str | None
    ) -> tuple[HostModel, HostGroupModel | None]:
        group = await self.require_group(session, host_group_id) if host_group_id else None
        host = await self.get_host(session, host_id)
        host.host_group_id = host_group_id
        await session.flush()
        return host, group

    async def bulk_assign_group(
        self, session: AsyncSession, host_ids: list[str], host_group_id: str | None
    ) -> list[HostModel]:
        if host_group_id:
            await self.require_group(session, host_group_id)
        result = await session.execute(select(HostModel).where(HostModel.id.in_(host_ids)))
        hosts = list(result.scalars().all())
        found = {h.id for h in hosts}
        missing = [hid for hid in host_ids if hid not in found]
        if missing:
            raise ValidationFailedError("Some hosts not found", extra={"missingHostIds": missing})
        for host in hosts:
            host.host_group_id = host_group_id
        await session.flush()
        return hosts

    async def update_friendly_name(
        self, session: AsyncSession, host_id: str, friendly_name: str
    ) -> HostModel:
        host = await self.get_host(session, host_id)
        await self._ensure_friendly_name_free(session, friendly_name, exclude_id=host.id)
        host.friendly_name = friendly_name
        await session.flush()
        return host

    async def update_notes(self, session: AsyncSession, host_id: str, notes: str | None) -> HostModel:
        host = await self.get_host(session, host_id)
        host.notes = notes
        await session.flush()
        return host

    async def set_auto_update(self, session: AsyncSession, host_id: str, enabled: bool) -> HostModel:
        host = await self.get_host(session, host_id)
        host.auto_update = enabled
        await session.flush()
        return host

    async def touch(self, session: AsyncSession, host_id: str) -> HostModel:
        host = await self.get_host(session, host_id)
        host.last_update = utcnow()
        await session.flush()
        return host

    # ── Groups ──

    async def require_group(self, session: AsyncSession, group_id: str) -> HostGroupModel:
        group = await session.get(HostGroupModel, group_id)
        if group is None:
            raise ValidationFailedError("Host group not found")
        return group

    async def get_group(self, session: AsyncSession, group_id: str) -> HostGroupModel:
        group = await session.get(HostGroupModel, group_id)
        if group is None:
            raise NotFoundError("Host group not found")
        return group

    async def count_group_hosts(self, session: AsyncSession, group_id: str) -> int:
        result = await session.execute(
            select(func.count()).select_from(HostModel).where(HostModel.host_group_id == group_id)
        )
        return result.scalar_one()

    async def list_groups(self, session: AsyncSession) -> list[tuple[HostGroupModel, int]]:
        counts = (
            select(HostModel.host_group_id, func.count().label("host_count"))
            .group_by(HostModel.host_group_id)
            .subquery()
        )
        result = await session.execute(
            select(HostGroupModel, func.coalesce(counts.c.host_count, 0))
            .outerjoin(counts, counts.c.host_group_id == HostGroupModel.id)
            .order_by(HostGroupModel.name)
        )
        return [(group, count) for group, count in result.all()]

    async def _ensure_group_name_free(
        self, session: AsyncSession, name: str, exclude_id: str | None = None
    ) -> None:
        query = select(HostGroupModel.id).where(HostGroupModel.name == name)
        if exclude_id:
            query = query.where(HostGroupModel.id != exclude_id)
        result = await session.execute(query)
        if result.first() is not None:
            raise ConflictError("A host group with this name already exists")

    async def create_group(
        self, session: AsyncSession, name: str, description: str | None = None, color: str = "#3B82F6"
    ) -> HostGroupModel:
        await self._ensure_group_name_free(session, name)
        group = HostGroupModel(name=name, description=description, color=color)
        session.add(group)
        await session.flush()
        return group

    async def update_group(
        self, session: AsyncSession, group_id: str, changes: dict[str, Any]
    ) -> HostGroupModel:
        group = await self.get_group(session, group_id)
        if changes.get("name"):
            await self._ensure_group_name_free(session, changes["name"], exclude_id=group.id)
        for key in ("name", "description", "color"):
            if key in changes and changes[key] is not None:
                setattr(group, key, changes[key])
        await session.flush()
        return group

    async def delete_group(self, session: AsyncSession, group_id: str) -> None:
        group = await self.get_group(session, group_id)
        if await self.count_group_hosts(session, group.id):
            raise ValidationFailedError("Cannot delete host group that contains hosts")
        await session.delete(group)
        await session.flush()

    # ── Agent versions ──

    async def get_agent_version(self, session: AsyncSession, version: str) -> AgentVersionModel:
        result = await session.execute(
            select(AgentVersionModel).where(AgentVersionModel.version == version)
        )
        row = result.scalar_one_or_none()
        if row is None or not row.script_content:
            raise NotFoundError("Agent version not found")
        return row
