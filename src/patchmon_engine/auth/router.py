"""Authentication and user-management API router."""

from fastapi import APIRouter, Depends, Request

from patchmon_engine.auth.dependencies import AuthContext, require_permission, require_user
from patchmon_engine.auth.permissions import Permission
from patchmon_engine.auth.schemas import (
    AdminCreateUserRequest,
    AdminUpdateUserRequest,
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    ProfileUpdateRequest,
    RefreshRequest,
    RefreshResponse,
    ResetPasswordRequest,
    SessionResponse,
    SetupAdminRequest,
    SignupRequest,
    TfaRequiredResponse,
    UserResponse,
    VerifyTfaRequest,
)
from patchmon_engine.common.config import get_settings
from patchmon_engine.common.exceptions import AuthenticationError, NotFoundError
from patchmon_engine.common.models import as_utc
from patchmon_engine.common.ratelimit import auth_limit, limiter
from patchmon_engine.common.security import get_client_ip

router = APIRouter(prefix="/auth")


def _get_service():
    from patchmon_engine.deps import get_user_service
    return get_user_service()


def _get_sessions():
    from patchmon_engine.deps import get_session_manager
    return get_session_manager()


def _get_db():
    from patchmon_engine.deps import get_db
    return get_db()


def _login_response(user, issued, message: str = "Login successful") -> LoginResponse:
    return LoginResponse(
        message=message,
        token=issued.access_token,
        refresh_token=issued.refresh_token,
        expires_at=issued.expires_at,
        user=UserResponse.model_validate(user),
    )


# ── Login / logout ──

@router.post("/login")
@limiter.limit(auth_limit)
async def login(request: Request, body: LoginRequest):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        user = await svc.authenticate(session, body.username, body.password)
        if user.tfa_enabled:
            return TfaRequiredResponse(username=user.username)
        issued = await svc.start_session(
            session, user, get_client_ip(request, get_settings().trust_proxy), request.headers.get("user-agent")
        )
        return _login_response(user, issued)


@router.post("/verify-tfa", response_model=LoginResponse)
@limiter.limit(auth_limit)
async def verify_tfa(request: Request, body: VerifyTfaRequest):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        user = await svc.verify_tfa_login(session, body.username, body.token)
        issued = await svc.start_session(
            session, user, get_client_ip(request, get_settings().trust_proxy), request.headers.get("user-agent")
        )
        return _login_response(user, issued)


@router.post("/refresh-token", response_model=RefreshResponse)
async def refresh_token(body: RefreshRequest):
    db = _get_db()
    failure = None
    # Revocations made during validation must commit, so raise after the block.
    async with db.get_session() as session:
        try:
            result = await _get_sessions().refresh_access_token(session, body.refresh_token)
        except AuthenticationError as exc:
            failure = exc
        else:
            return RefreshResponse(
                token=result.access_token, user=UserResponse.model_validate(result.user)
            )
    raise failure


@router.post("/logout")
async def logout(auth: AuthContext = Depends(require_user)):
    db = _get_db()
    async with db.get_session() as session:
        await _get_sessions().revoke_session(session, auth.session_id)
    return {"message": "Logout successful"}


# ── Signup / first-time setup ──

@router.get("/signup-enabled")
async def signup_enabled():
    from patchmon_engine.deps import get_settings_service

    db = _get_db()
    async with db.get_session() as session:
        server_settings = await get_settings_service().get(session)
    return {"signupEnabled": server_settings.signup_enabled}


@router.post("/signup", response_model=LoginResponse, status_code=201)
@limiter.limit(auth_limit)
async def signup(request: Request, body: SignupRequest):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        user = await svc.signup(session, **body.model_dump())
        issued = await svc.start_session(
            session, user, get_client_ip(request, get_settings().trust_proxy), request.headers.get("user-agent")
        )
        return _login_response(user, issued, message="User created successfully")


@router.get("/check-admin-users")
async def check_admin_users():
    db = _get_db()
    async with db.get_session() as session:
        count = await _get_service().count_admins(session, active_only=False)
    return {"hasAdminUsers": count > 0, "adminCount": count}


@router.post("/setup-admin", status_code=201)
async def setup_admin(body: SetupAdminRequest):
    db = _get_db()
    async with db.get_session() as session:
        user = await _get_service().setup_admin(session, **body.model_dump())
        return {
            "message": "Admin user created successfully",
            "user": UserResponse.model_validate(user),
        }


# ── Own profile and sessions ──

@router.get("/profile", response_model=UserResponse)
async def get_profile(auth: AuthContext = Depends(require_user)):
    return UserResponse.model_validate(auth.user)


@router.put("/profile")
async def update_profile(body: ProfileUpdateRequest, auth: AuthContext = Depends(require_user)):
    db = _get_db()
    async with db.get_session() as session:
        user = await _get_service().update_profile(
            session, auth.user.id, body.model_dump(exclude_unset=True)
        )
        return {"message": "Profile updated successfully", "user": UserResponse.model_validate(user)}


@router.put("/change-password")
async def change_password(body: ChangePasswordRequest, auth: AuthContext = Depends(require_user)):
    db = _get_db()
    async with db.get_session() as session:
        await _get_service().change_password(
            session, auth.user.id, body.currentPassword, body.newPassword
        )
    return {"message": "Password changed successfully"}


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(auth: AuthContext = Depends(require_user)):
    db = _get_db()
    async with db.get_session() as session:
        rows = await _get_sessions().get_user_sessions(session, auth.user.id)
        return [
            SessionResponse(
                id=r.id,
                ip_address=r.ip_address,
                user_agent=r.user_agent,
                last_activity=as_utc(r.last_activity),
                created_at=as_utc(r.created_at),
                expires_at=as_utc(r.expires_at),
                is_current=r.id == auth.session_id,
            )
            for r in rows
        ]


@router.delete("/sessions/{session_id}")
async def revoke_own_session(session_id: str, auth: AuthContext = Depends(require_user)):
    db = _get_db()
    sessions = _get_sessions()
    async with db.get_session() as session:
        owned = {r.id for r in await sessions.get_user_sessions(session, auth.user.id)}
        if session_id not in owned:
            raise NotFoundError("Session not found")
        await sessions.revoke_session(session, session_id)
    return {"message": "Session revoked successfully"}


# ── Admin user management ──

@router.get("/admin/users", response_model=list[UserResponse])
async def list_users(_=Depends(require_permission(Permission.VIEW_USERS))):
    db = _get_db()
    async with db.get_session() as session:
        users = await _get_service().list_users(session)
        return [UserResponse.model_validate(u) for u in users]


@router.post("/admin/users", status_code=201)
async def create_user(
    body: AdminCreateUserRequest,
    _=Depends(require_permission(Permission.MANAGE_USERS)),
):
    db = _get_db()
    async with db.get_session() as session:
        user = await _get_service().create_user(session, **body.model_dump())
        return {"message": "User created successfully", "user": UserResponse.model_validate(user)}


@router.put("/admin/users/{user_id}")
async def update_user(
    user_id: str,
    body: AdminUpdateUserRequest,
    _=Depends(require_permission(Permission.MANAGE_USERS)),
):
    db = _get_db()
    async with db.get_session() as session:
        user = await _get_service().update_user(
            session, user_id, body.model_dump(exclude_unset=True)
        )
        return {"message": "User updated successfully", "user": UserResponse.model_validate(user)}


@router.delete("/admin/users/{user_id}")
async def delete_user(
    user_id: str,
    auth: AuthContext = Depends(require_permission(Permission.MANAGE_USERS)),
):
    db = _get_db()
    async with db.get_session() as session:
        await _get_service().delete_user(session, user_id, auth.user.id)
    return {"message": "User deleted successfully"}


@router.post("/admin/users/{user_id}/reset-password")
async def reset_password(
    user_id: str,
    body: ResetPasswordRequest,
    _=Depends(require_permission(Permission.MANAGE_USERS)),
):
    db = _get_db()
    async with db.get_session() as session:
        user = await _get_service().reset_password(session, user_id, body.newPassword)
        return {
            "message": "Password reset successfully",
            "user": {"id": user.id, "username": user.username, "email": user.email},
        }
