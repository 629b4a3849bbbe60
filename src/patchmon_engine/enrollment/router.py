"""Auto-enrollment API router."""

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import PlainTextResponse

from patchmon_engine.auth.dependencies import AuthContext, require_permission
from patchmon_engine.auth.permissions import Permission
from patchmon_engine.common.config import get_settings
from patchmon_engine.common.exceptions import AuthenticationError
from patchmon_engine.common.models import as_utc
from patchmon_engine.common.security import get_client_ip
from patchmon_engine.enrollment.models import AutoEnrollmentTokenModel
from patchmon_engine.enrollment.schemas import (
    BulkEnrollRequest,
    EnrollRequest,
    TokenCreate,
    TokenResponse,
    TokenUpdate,
)
from patchmon_engine.hosts import scripts
from patchmon_engine.hosts.models import HostGroupModel

router = APIRouter(prefix="/auto-enrollment")


def _get_service():
    from patchmon_engine.deps import get_enrollment_service
    return get_enrollment_service()


def _get_settings_service():
    from patchmon_engine.deps import get_settings_service
    return get_settings_service()


def _get_db():
    from patchmon_engine.deps import get_db
    return get_db()


def _token_response(token: AutoEnrollmentTokenModel) -> TokenResponse:
    return TokenResponse(
        id=token.id,
        token_name=token.token_name,
        token_key=token.token_key,
        is_active=token.is_active,
        allowed_ip_ranges=token.allowed_ip_ranges or [],
        max_hosts_per_day=token.max_hosts_per_day,
        hosts_created_today=token.hosts_created_today,
        last_reset_date=token.last_reset_date,
        default_host_group_id=token.default_host_group_id,
        created_by_user_id=token.created_by_user_id,
        last_used_at=as_utc(token.last_used_at),
        expires_at=as_utc(token.expires_at),
        created_at=as_utc(token.created_at),
        metadata=token.metadata_ or {},
    )


def _group_dict(group: HostGroupModel | None) -> dict | None:
    if group is None:
        return None
    return {"id": group.id, "name": group.name, "color": group.color}


# ── Token administration ──

@router.post("/tokens", status_code=201)
async def create_token(
    body: TokenCreate,
    auth: AuthContext = Depends(require_permission(Permission.MANAGE_SETTINGS)),
):
    async with _get_db().get_session() as session:
        token, secret = await _get_service().create_token(
            session,
            body.token_name,
            created_by_user_id=auth.user.id,
            max_hosts_per_day=body.max_hosts_per_day,
            allowed_ip_ranges=body.allowed_ip_ranges,
            default_host_group_id=body.default_host_group_id,
            expires_at=body.expires_at,
            metadata=body.metadata,
        )
        group = (
            await session.get(HostGroupModel, token.default_host_group_id)
            if token.default_host_group_id else None
        )
        return {
            "message": "Auto-enrollment token created successfully",
            "token": {
                "id": token.id,
                "token_name": token.token_name,
                "token_key": token.token_key,
                "token_secret": secret,
                "max_hosts_per_day": token.max_hosts_per_day,
                "default_host_group": _group_dict(group),
                "created_by": {"id": auth.user.id, "username": auth.user.username},
                "expires_at": as_utc(token.expires_at),
            },
            "warning": "Save the token_secret now - it cannot be retrieved later!",
        }


@router.get("/tokens", response_model=list[TokenResponse])
async def list_tokens(_=Depends(require_permission(Permission.MANAGE_SETTINGS))):
    async with _get_db().get_session() as session:
        tokens = await _get_service().list_tokens(session)
        return [_token_response(t) for t in tokens]


@router.get("/tokens/{token_id}", response_model=TokenResponse)
async def get_token(token_id: str, _=Depends(require_permission(Permission.MANAGE_SETTINGS))):
    async with _get_db().get_session() as session:
        return _token_response(await _get_service().get_token(session, token_id))


@router.patch("/tokens/{token_id}")
async def update_token(
    token_id: str,
    body: TokenUpdate,
    _=Depends(require_permission(Permission.MANAGE_SETTINGS)),
):
    async with _get_db().get_session() as session:
        token = await _get_service().update_token(
            session, token_id, body.model_dump(exclude_unset=True)
        )
        return {"message": "Token updated successfully", "token": _token_response(token)}


@router.delete("/tokens/{token_id}")
async def delete_token(token_id: str, _=Depends(require_permission(Permission.MANAGE_SETTINGS))):
    async with _get_db().get_session() as session:
        token = await _get_service().delete_token(session, token_id)
    return {
        "message": "Auto-enrollment token deleted successfully",
        "deleted_token": {"id": token.id, "token_name": token.token_name},
    }


# ── Enrollment ──

@router.post("/enroll", status_code=201)
async def enroll(
    request: Request,
    body: EnrollRequest,
    x_key: str | None = Header(None, alias="X-Auto-Enrollment-Key"),
    x_secret: str | None = Header(None, alias="X-Auto-Enrollment-Secret"),
):
    svc = _get_service()
    client_ip = get_client_ip(request, get_settings().trust_proxy)
    async with _get_db().get_session() as session:
        token = await svc.authenticate(session, x_key, x_secret, client_ip)
        host, api_key = await svc.enroll(session, token, body.friendly_name, body.machine_id)
        group = (
            await session.get(HostGroupModel, host.host_group_id) if host.host_group_id else None
        )
        return {
            "message": "Host enrolled successfully",
            "host": {
                "id": host.id,
                "friendly_name": host.friendly_name,
                "api_id": host.api_id,
                "api_key": api_key,
                "host_group": _group_dict(group),
                "status": host.status,
            },
        }


@router.post("/enroll/bulk", status_code=201)
async def enroll_bulk(
    request: Request,
    body: BulkEnrollRequest,
    x_key: str | None = Header(None, alias="X-Auto-Enrollment-Key"),
    x_secret: str | None = Header(None, alias="X-Auto-Enrollment-Secret"),
):
    svc = _get_service()
    client_ip = get_client_ip(request, get_settings().trust_proxy)
    async with _get_db().get_session() as session:
        token = await svc.authenticate(session, x_key, x_secret, client_ip)
        results = await svc.enroll_bulk(
            session, token, [entry.model_dump() for entry in body.hosts]
        )
    return {
        "message": (
            f"Bulk enrollment completed: {len(results['success'])} succeeded, "
            f"{len(results['failed'])} failed, {len(results['skipped'])} skipped"
        ),
        "results": results,
    }


@router.get("/proxmox-lxc")
async def proxmox_lxc_script(
    token_key: str | None = Query(None),
    token_secret: str | None = Query(None),
):
    if not token_key or not token_secret:
        raise AuthenticationError("Token key and secret required as query parameters")
    async with _get_db().get_session() as session:
        token = await _get_service().verify_credentials(session, token_key, token_secret)
        server_settings = await _get_settings_service().get(session)
    template = scripts.ScriptStore(get_settings().agents_dir).read(scripts.PROXMOX_SCRIPT)
    body = scripts.render_proxmox_script(
        template,
        server_url=server_settings.server_url,
        token_key=token.token_key,
        token_secret=token_secret,
        curl_flags=server_settings.curl_flags,
    )
    return PlainTextResponse(
        body,
        headers={"Content-Disposition": f'inline; filename="{scripts.PROXMOX_SCRIPT}"'},
    )
