"""Role-based capability checks."""

import enum
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from patchmon_engine.auth.models import RolePermissionModel

logger = logging.getLogger(__name__)


class Permission(str, enum.Enum):
    VIEW_DASHBOARD = "can_view_dashboard"
    VIEW_HOSTS = "can_view_hosts"
    MANAGE_HOSTS = "can_manage_hosts"
    VIEW_PACKAGES = "can_view_packages"
    MANAGE_PACKAGES = "can_manage_packages"
    VIEW_USERS = "can_view_users"
    MANAGE_USERS = "can_manage_users"
    VIEW_REPORTS = "can_view_reports"
    EXPORT_DATA = "can_export_data"
    MANAGE_SETTINGS = "can_manage_settings"

    @property
    def description(self) -> str:
        return self.value.removeprefix("can_").replace("_", " ")


ADMIN_ROLE = "admin"
USER_ROLE = "user"

DEFAULT_ROLE_PERMISSIONS: dict[str, set[Permission]] = {
    ADMIN_ROLE: set(Permission),
    USER_ROLE: {
        Permission.VIEW_DASHBOARD,
        Permission.VIEW_HOSTS,
        Permission.VIEW_PACKAGES,
        Permission.VIEW_REPORTS,
    },
}


@dataclass
class PermissionDecision:
    allowed: bool
    reason: str | None = None


class PermissionService:
    """Resolves a role name to its capability row and answers checks against it."""

    async def get_role(self, session: AsyncSession, role: str) -> RolePermissionModel | None:
        result = await session.execute(
            select(RolePermissionModel).where(RolePermissionModel.role == role)
        )
        return result.scalar_one_or_none()

    async def list_roles(self, session: AsyncSession) -> list[RolePermissionModel]:
        result = await session.execute(
            select(RolePermissionModel).order_by(RolePermissionModel.role)
        )
        return list(result.scalars().all())

    async def check(
        self, session: AsyncSession, role: str, permission: Permission
    ) -> PermissionDecision:
        row = await self.get_role(session, role)
        if row is None:
            # An unknown role is a misconfiguration; it grants nothing.
            logger.error("No permissions configured for role %r; denying %s", role, permission.value)
            return PermissionDecision(False, "Role not configured")
        if not getattr(row, permission.value):
            return PermissionDecision(False, "Insufficient permissions")
        return PermissionDecision(True)

    async def upsert_role(
        self, session: AsyncSession, role: str, granted: dict[Permission, bool]
    ) -> RolePermissionModel:
        row = await self.get_role(session, role)
        if row is None:
            row = RolePermissionModel(role=role)
            session.add(row)
        for permission, value in granted.items():
            setattr(row, permission.value, bool(value))
        await session.flush()
        return row

    async def delete_role(self, session: AsyncSession, role: str) -> bool:
        row = await self.get_role(session, role)
        if row is None:
            return False
        await session.delete(row)
        await session.flush()
        return True

    async def ensure_default_roles(self, session: AsyncSession) -> None:
        """Seed admin/user rows if missing; existing rows are left untouched."""
        for role, granted in DEFAULT_ROLE_PERMISSIONS.items():
            if await self.get_role(session, role) is not None:
                continue
            session.add(
                RolePermissionModel(
                    role=role, **{p.value: p in granted for p in Permission}
                )
            )
            logger.info("Created default permissions for role %r", role)
        await session.flush()


def permissions_dict(row: RolePermissionModel) -> dict[str, bool]:
    return {p.value: bool(getattr(row, p.value)) for p in Permission}
