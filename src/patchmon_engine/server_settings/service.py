"""Server settings: a single database row fronted by an explicit in-process cache."""

import logging
from dataclasses import dataclass, fields
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from patchmon_engine.common.config import PatchmonSettings
from patchmon_engine.server_settings.models import ServerSettingsModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerSettings:
    """Immutable view of the settings row handed out to callers."""

    id: str
    server_protocol: str
    server_host: str
    server_port: int
    server_url: str
    frontend_url: str
    update_interval: int
    auto_update: bool
    signup_enabled: bool
    default_user_role: str
    ignore_ssl_self_signed: bool

    @classmethod
    def from_row(cls, row: ServerSettingsModel) -> "ServerSettings":
        return cls(**{f.name: getattr(row, f.name) for f in fields(cls)})

    @property
    def curl_flags(self) -> str:
        return "-sk" if self.ignore_ssl_self_signed else "-s"


def build_server_url(protocol: str, host: str, port: int) -> str:
    return f"{protocol}://{host}:{port}".lower()


class SettingsService:
    """Loads, caches and updates the settings row.

    The cache is per process. Writes through this service invalidate it;
    other processes keep their copy until they call ``invalidate``.
    """

    UPDATABLE = {
        "server_protocol",
        "server_host",
        "server_port",
        "frontend_url",
        "update_interval",
        "auto_update",
        "signup_enabled",
        "default_user_role",
        "ignore_ssl_self_signed",
    }

    def __init__(self, settings: PatchmonSettings):
        self.settings = settings
        self._cached: ServerSettings | None = None

    def invalidate(self) -> None:
        self._cached = None

    async def _load_or_create(self, session: AsyncSession) -> ServerSettingsModel:
        result = await session.execute(select(ServerSettingsModel).limit(1))
        row = result.scalar_one_or_none()
        if row is None:
            row = ServerSettingsModel(server_url=self.settings.default_server_url)
            session.add(row)
            await session.flush()
            logger.info("Created default server settings")
        return row

    async def get(self, session: AsyncSession) -> ServerSettings:
        if self._cached is None:
            row = await self._load_or_create(session)
            self._cached = ServerSettings.from_row(row)
        return self._cached

    async def update(self, session: AsyncSession, changes: dict[str, Any]) -> ServerSettings:
        row = await self._load_or_create(session)
        for key, value in changes.items():
            if key in self.UPDATABLE and value is not None:
                setattr(row, key, value)
        row.server_url = build_server_url(row.server_protocol, row.server_host, row.server_port)
        await session.flush()
        self.invalidate()
        logger.info("Server settings updated: %s", ", ".join(sorted(changes)))
        return ServerSettings.from_row(row)
