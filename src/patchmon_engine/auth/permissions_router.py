"""Role permissions API router."""

from fastapi import APIRouter, Depends
from sqlalchemy import func, select

from patchmon_engine.auth.dependencies import AuthContext, require_permission, require_user
from patchmon_engine.auth.models import UserModel
from patchmon_engine.auth.permissions import ADMIN_ROLE, Permission, permissions_dict
from patchmon_engine.auth.schemas import RolePermissionsBody, RolePermissionsResponse
from patchmon_engine.common.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)

router = APIRouter(prefix="/permissions")


def _get_service():
    from patchmon_engine.deps import get_permission_service
    return get_permission_service()


def _get_db():
    from patchmon_engine.deps import get_db
    return get_db()


@router.get("/roles", response_model=list[RolePermissionsResponse])
async def list_roles(_=Depends(require_permission(Permission.MANAGE_SETTINGS))):
    async with _get_db().get_session() as session:
        rows = await _get_service().list_roles(session)
        return [RolePermissionsResponse.model_validate(r) for r in rows]


@router.get("/user-permissions")
async def user_permissions(auth: AuthContext = Depends(require_user)):
    async with _get_db().get_session() as session:
        row = await _get_service().get_role(session, auth.user.role)
    if row is None:
        return {"role": auth.user.role, **{p.value: False for p in Permission}}
    return {"role": auth.user.role, **permissions_dict(row)}


@router.put("/roles/{role}", response_model=RolePermissionsResponse)
async def upsert_role(
    role: str,
    body: RolePermissionsBody,
    _=Depends(require_permission(Permission.MANAGE_SETTINGS)),
):
    if role == ADMIN_ROLE:
        raise PermissionDeniedError("Cannot modify admin role permissions")
    granted = {p: getattr(body, p.value) for p in Permission}
    async with _get_db().get_session() as session:
        row = await _get_service().upsert_role(session, role, granted)
        return RolePermissionsResponse.model_validate(row)


@router.delete("/roles/{role}")
async def delete_role(
    role: str,
    _=Depends(require_permission(Permission.MANAGE_SETTINGS)),
):
    if role == ADMIN_ROLE:
        raise PermissionDeniedError("Cannot delete admin role")
    async with _get_db().get_session() as session:
        result = await session.execute(
            select(func.count()).select_from(UserModel).where(UserModel.role == role)
        )
        assigned = result.scalar_one()
        if assigned:
            raise ValidationFailedError(
                f"Cannot delete role: {assigned} user(s) are currently assigned to it"
            )
        if not await _get_service().delete_role(session, role):
            raise NotFoundError("Role not found")
    return {"message": f"Role {role} deleted successfully"}
