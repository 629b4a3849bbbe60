"""Packages API router: catalog listing, package detail and installing hosts."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from patchmon_engine.auth.dependencies import require_permission
from patchmon_engine.auth.permissions import Permission
from patchmon_engine.packages.service import pagination

router = APIRouter(prefix="/packages")


def _get_service():
    from patchmon_engine.deps import get_package_service
    return get_package_service()


def _get_db():
    from patchmon_engine.deps import get_db
    return get_db()


@router.get("")
async def list_packages(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=1000),
    search: str = Query(""),
    category: str = Query(""),
    needs_update: Optional[bool] = Query(None, alias="needsUpdate"),
    is_security_update: Optional[bool] = Query(None, alias="isSecurityUpdate"),
    _=Depends(require_permission(Permission.VIEW_PACKAGES)),
):
    async with _get_db().get_session() as session:
        packages, total = await _get_service().list_packages(
            session,
            page=page,
            limit=limit,
            search=search,
            category=category,
            needs_update=needs_update,
            is_security_update=is_security_update,
        )
    return {"packages": packages, "pagination": pagination(page, limit, total)}


@router.get("/{package_id}")
async def get_package(package_id: str, _=Depends(require_permission(Permission.VIEW_PACKAGES))):
    async with _get_db().get_session() as session:
        return await _get_service().package_detail(session, package_id)


@router.get("/{package_id}/hosts")
async def get_package_hosts(
    package_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=1000),
    search: str = Query(""),
    sort_by: Literal["friendly_name", "hostname", "os_type", "needs_update"] = Query(
        "friendly_name", alias="sortBy"
    ),
    sort_order: Literal["asc", "desc"] = Query("asc", alias="sortOrder"),
    _=Depends(require_permission(Permission.VIEW_PACKAGES)),
):
    async with _get_db().get_session() as session:
        hosts, total = await _get_service().package_hosts(
            session,
            package_id,
            page=page,
            limit=limit,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    return {"hosts": hosts, "pagination": pagination(page, limit, total)}
