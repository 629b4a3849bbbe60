"""FastAPI dependencies that authenticate users, agents and permission checks."""

from dataclasses import dataclass

from fastapi import Depends, Header, Request
from sqlalchemy import select

from patchmon_engine.auth.models import UserModel
from patchmon_engine.auth.permissions import Permission
from patchmon_engine.auth.sessions import SessionInvalidReason, SessionValidation
from patchmon_engine.common.exceptions import AuthenticationError, PermissionDeniedError
from patchmon_engine.common.models import utcnow
from patchmon_engine.common.security import verify_api_key
from patchmon_engine.hosts.models import HostModel

_REASON_MESSAGES = {
    SessionInvalidReason.NOT_FOUND: "Invalid session",
    SessionInvalidReason.REVOKED: "Session has been revoked",
    SessionInvalidReason.EXPIRED: "Session has expired",
    SessionInvalidReason.TOKEN_MISMATCH: "Invalid token",
    SessionInvalidReason.USER_INACTIVE: "User account is inactive",
}


@dataclass
class AuthContext:
    """The authenticated user and the session the request arrived on."""
    user: UserModel
    session_id: str


def _extract_bearer(request: Request, authorization: str | None) -> str | None:
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    return request.cookies.get("token")


def _failure_message(validation: SessionValidation) -> str:
    if validation.reason is SessionInvalidReason.INACTIVE:
        return validation.message
    return _REASON_MESSAGES[validation.reason]


async def authenticate_token(token: str) -> AuthContext:
    from patchmon_engine.deps import get_db, get_session_manager

    manager = get_session_manager()
    claims = manager.decode_access_token(token)
    session_id = claims.get("sessionId")
    if not session_id:
        raise AuthenticationError("Invalid token", reason="Invalid token")

    db = get_db()
    context = None
    # Revocations made during validation must commit, so raise after the block.
    async with db.get_session() as session:
        validation = await manager.validate_session(session, session_id, token)
        if validation.valid:
            await manager.update_session_activity(session, session_id)
            validation.user.last_login = utcnow()
            context = AuthContext(user=validation.user, session_id=session_id)

    if context is None:
        raise AuthenticationError(_failure_message(validation), reason=validation.reason.value)
    return context


async def require_user(
    request: Request,
    authorization: str | None = Header(None),
) -> AuthContext:
    token = _extract_bearer(request, authorization)
    if not token:
        raise AuthenticationError("Access token required", reason="Access token required")
    return await authenticate_token(token)


async def optional_user(
    request: Request,
    authorization: str | None = Header(None),
) -> AuthContext | None:
    token = _extract_bearer(request, authorization)
    if not token:
        return None
    try:
        return await authenticate_token(token)
    except AuthenticationError:
        return None


def require_permission(permission: Permission):
    """Dependency factory: authenticated user whose role grants ``permission``."""

    async def dependency(auth: AuthContext = Depends(require_user)) -> AuthContext:
        from patchmon_engine.deps import get_db, get_permission_service

        async with get_db().get_session() as session:
            decision = await get_permission_service().check(session, auth.user.role, permission)
        if not decision.allowed:
            raise PermissionDeniedError(
                "Insufficient permissions",
                reason=decision.reason,
                extra={"message": f"You don't have permission to {permission.description}"},
            )
        return auth

    return dependency


async def require_host_credentials(
    request: Request,
    x_api_id: str | None = Header(None, alias="X-API-ID"),
    x_api_key: str | None = Header(None, alias="X-API-KEY"),
) -> HostModel:
    """Authenticate an agent by its static API id/key pair."""
    api_id, api_key = x_api_id, x_api_key
    if not api_id or not api_key:
        # Older agents sent the pair in the JSON body.
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            api_id = api_id or body.get("apiId")
            api_key = api_key or body.get("apiKey")
    if not api_id or not api_key:
        raise AuthenticationError("API ID and Key required", reason="Credentials required")

    from patchmon_engine.deps import get_db

    async with get_db().get_session() as session:
        result = await session.execute(select(HostModel).where(HostModel.api_id == api_id))
        host = result.scalar_one_or_none()
    if host is None or not verify_api_key(api_key, host.api_key):
        raise AuthenticationError("Invalid API credentials", reason="Invalid credentials")
    return host
