"""Server settings API router."""

from dataclasses import asdict

from fastapi import APIRouter, Depends

from patchmon_engine.auth.permissions import Permission
from patchmon_engine.auth.dependencies import require_permission
from patchmon_engine.common.exceptions import ValidationFailedError
from patchmon_engine.server_settings.schemas import SettingsResponse, SettingsUpdate

router = APIRouter(prefix="/settings")


def _get_service():
    from patchmon_engine.deps import get_settings_service
    return get_settings_service()


def _get_permissions():
    from patchmon_engine.deps import get_permission_service
    return get_permission_service()


def _get_db():
    from patchmon_engine.deps import get_db
    return get_db()


@router.get("", response_model=SettingsResponse)
async def get_server_settings(_=Depends(require_permission(Permission.MANAGE_SETTINGS))):
    async with _get_db().get_session() as session:
        current = await _get_service().get(session)
    return SettingsResponse(**asdict(current))


@router.put("")
async def update_server_settings(
    body: SettingsUpdate,
    _=Depends(require_permission(Permission.MANAGE_SETTINGS)),
):
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    async with _get_db().get_session() as session:
        role = changes.get("default_user_role")
        if role and await _get_permissions().get_role(session, role) is None:
            raise ValidationFailedError(f"Role '{role}' is not configured")
        updated = await _get_service().update(session, changes)
    return {
        "message": "Settings updated successfully",
        "settings": SettingsResponse(**asdict(updated)),
    }
