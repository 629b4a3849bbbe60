"""Package catalog queries: listing, per-package detail and the hosts carrying a package."""

import math
from collections import Counter
from typing import Any

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from patchmon_engine.common.config import PatchmonSettings
from patchmon_engine.common.exceptions import NotFoundError
from patchmon_engine.common.models import as_utc
from patchmon_engine.hosts.models import HostModel, HostPackageModel, PackageModel

# Hosts shown inline with each package in the list view.
LIST_PREVIEW_HOSTS = 10

HOST_SORT_COLUMNS = {
    "friendly_name": HostModel.friendly_name,
    "hostname": HostModel.hostname,
    "os_type": HostModel.os_type,
    "needs_update": HostPackageModel.needs_update,
}


def pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)}


def _host_link_filter(**conditions: bool):
    """Packages with at least one host row matching every condition."""
    clauses = [getattr(HostPackageModel, column) == value for column, value in conditions.items()]
    return PackageModel.id.in_(select(HostPackageModel.package_id).where(and_(*clauses)))


class PackageService:
    """Read-side views over the package catalog built from agent reports."""

    def __init__(self, settings: PatchmonSettings):
        self.settings = settings

    async def get_package(self, session: AsyncSession, package_id: str) -> PackageModel:
        package = await session.get(PackageModel, package_id)
        if package is None:
            raise NotFoundError("Package not found")
        return package

    async def list_packages(
        self,
        session: AsyncSession,
        page: int = 1,
        limit: int = 50,
        search: str = "",
        category: str = "",
        needs_update: bool | None = None,
        is_security_update: bool | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """One page of packages ordered by name, with install and update counts."""
        filters = []
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(or_(
                func.lower(PackageModel.name).like(pattern),
                func.lower(PackageModel.description).like(pattern),
            ))
        if category:
            filters.append(PackageModel.category == category)
        if needs_update is not None:
            filters.append(_host_link_filter(needs_update=needs_update))
        if is_security_update is not None:
            filters.append(_host_link_filter(is_security_update=is_security_update))

        total = await session.scalar(select(func.count()).select_from(PackageModel).where(*filters))
        result = await session.execute(
            select(PackageModel)
            .where(*filters)
            .order_by(PackageModel.name.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        packages = list(result.scalars().all())
        return [await self._list_entry(session, package) for package in packages], total or 0

    async def _list_entry(self, session: AsyncSession, package: PackageModel) -> dict[str, Any]:
        stats = await self._stats(session, package.id)
        result = await session.execute(
            select(HostPackageModel, HostModel)
            .join(HostModel, HostPackageModel.host_id == HostModel.id)
            .where(HostPackageModel.package_id == package.id, HostPackageModel.needs_update.is_(True))
            .order_by(HostModel.friendly_name.asc())
            .limit(LIST_PREVIEW_HOSTS)
        )
        return {
            "id": package.id,
            "name": package.name,
            "description": package.description,
            "category": package.category,
            "latest_version": package.latest_version,
            "created_at": as_utc(package.created_at),
            "packageHostsCount": stats["totalInstalls"],
            "packageHosts": [
                {
                    "hostId": host.id,
                    "friendlyName": host.friendly_name,
                    "osType": host.os_type,
                    "currentVersion": link.current_version,
                    "availableVersion": link.available_version,
                    "needsUpdate": link.needs_update,
                    "isSecurityUpdate": link.is_security_update,
                }
                for link, host in result.all()
            ],
            "stats": {
                "totalInstalls": stats["totalInstalls"],
                "updatesNeeded": stats["updatesNeeded"],
                "securityUpdates": stats["securityUpdates"],
            },
        }

    async def _stats(self, session: AsyncSession, package_id: str) -> dict[str, int]:
        link = HostPackageModel
        needing = link.needs_update.is_(True)
        row = (await session.execute(
            select(
                func.count(link.id),
                func.coalesce(func.sum(case((needing, 1), else_=0)), 0),
                func.coalesce(
                    func.sum(case((and_(needing, link.is_security_update.is_(True)), 1), else_=0)), 0
                ),
            ).where(link.package_id == package_id)
        )).one()
        total, needing_count, security = row
        return {
            "totalInstalls": total,
            "updatesNeeded": needing_count,
            "securityUpdates": security,
            "upToDate": total - needing_count,
        }

    async def package_detail(self, session: AsyncSession, package_id: str) -> dict[str, Any]:
        """Package with every installing host, update counts and version/OS spread."""
        package = await self.get_package(session, package_id)
        result = await session.execute(
            select(HostPackageModel, HostModel)
            .join(HostModel, HostPackageModel.host_id == HostModel.id)
            .where(HostPackageModel.package_id == package.id)
            .order_by(HostModel.friendly_name.asc())
        )
        rows = result.all()
        versions = Counter(link.current_version for link, _ in rows)
        os_types = Counter(host.os_type for _, host in rows)
        return {
            "id": package.id,
            "name": package.name,
            "description": package.description,
            "category": package.category,
            "latest_version": package.latest_version,
            "created_at": as_utc(package.created_at),
            "updated_at": as_utc(package.updated_at),
            "host_packages": [
                {
                    "id": link.id,
                    "current_version": link.current_version,
                    "available_version": link.available_version,
                    "needs_update": link.needs_update,
                    "is_security_update": link.is_security_update,
                    "last_checked": as_utc(link.last_checked),
                    "host": {
                        "id": host.id,
                        "friendly_name": host.friendly_name,
                        "hostname": host.hostname,
                        "ip": host.ip,
                        "os_type": host.os_type,
                        "os_version": host.os_version,
                        "last_update": as_utc(host.last_update),
                    },
                }
                for link, host in rows
            ],
            "stats": await self._stats(session, package.id),
            "distributions": {
                "versions": [{"version": v, "count": c} for v, c in versions.most_common()],
                "osTypes": [{"osType": o, "count": c} for o, c in os_types.most_common()],
            },
        }

    async def package_hosts(
        self,
        session: AsyncSession,
        package_id: str,
        page: int = 1,
        limit: int = 25,
        search: str = "",
        sort_by: str = "friendly_name",
        sort_order: str = "asc",
    ) -> tuple[list[dict[str, Any]], int]:
        """Paginated hosts carrying a package, searchable by friendly name or hostname."""
        package = await self.get_package(session, package_id)
        filters = [HostPackageModel.package_id == package.id]
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(or_(
                func.lower(HostModel.friendly_name).like(pattern),
                func.lower(HostModel.hostname).like(pattern),
            ))

        column = HOST_SORT_COLUMNS.get(sort_by, HostModel.friendly_name)
        order = column.desc() if sort_order == "desc" else column.asc()

        on_host = HostPackageModel.host_id == HostModel.id
        total = await session.scalar(
            select(func.count(HostPackageModel.id)).join(HostModel, on_host).where(*filters)
        )
        result = await session.execute(
            select(HostPackageModel, HostModel)
            .join(HostModel, on_host)
            .where(*filters)
            .order_by(order)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        hosts = [
            {
                "hostId": host.id,
                "friendlyName": host.friendly_name,
                "hostname": host.hostname,
                "osType": host.os_type,
                "osVersion": host.os_version,
                "lastUpdate": as_utc(host.last_update),
                "currentVersion": link.current_version,
                "availableVersion": link.available_version,
                "needsUpdate": link.needs_update,
                "isSecurityUpdate": link.is_security_update,
                "lastChecked": as_utc(link.last_checked),
            }
            for link, host in result.all()
        ]
        return hosts, total or 0
