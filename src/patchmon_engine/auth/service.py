"""User service: login, signup, profile, admin user management and TFA enrolment."""

import logging
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from patchmon_engine.auth import tfa
from patchmon_engine.auth.models import UserModel, UserSessionModel
from patchmon_engine.auth.permissions import ADMIN_ROLE
from patchmon_engine.auth.sessions import IssuedSession, SessionManager
from patchmon_engine.common.config import PatchmonSettings
from patchmon_engine.common.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from patchmon_engine.common.models import utcnow
from patchmon_engine.common.security import hash_password_async, verify_password_async
from patchmon_engine.enrollment.models import AutoEnrollmentTokenModel
from patchmon_engine.server_settings.service import SettingsService

logger = logging.getLogger(__name__)


class UserService:
    """Interactive user accounts and their credentials."""

    def __init__(
        self,
        settings: PatchmonSettings,
        sessions: SessionManager,
        settings_service: SettingsService,
    ):
        self.settings = settings
        self.sessions = sessions
        self.settings_service = settings_service

    async def _hash(self, password: str) -> str:
        return await hash_password_async(password, self.settings.bcrypt_password_rounds)

    # ── Lookup ──

    async def get_user(self, session: AsyncSession, user_id: str) -> UserModel:
        user = await session.get(UserModel, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_by_username(self, session: AsyncSession, username: str) -> UserModel | None:
        result = await session.execute(
            select(UserModel).where(
                or_(UserModel.username == username, UserModel.email == username)
            )
        )
        return result.scalar_one_or_none()

    async def _ensure_unique(
        self,
        session: AsyncSession,
        username: str | None,
        email: str | None,
        exclude_id: str | None = None,
    ) -> None:
        clauses = []
        if username:
            clauses.append(UserModel.username == username)
        if email:
            clauses.append(UserModel.email == email)
        if not clauses:
            return
        query = select(UserModel.id).where(or_(*clauses))
        if exclude_id:
            query = query.where(UserModel.id != exclude_id)
        result = await session.execute(query.limit(1))
        if result.scalar_one_or_none() is not None:
            raise ConflictError("Username or email already exists")

    async def count_admins(self, session: AsyncSession, active_only: bool = True) -> int:
        query = select(func.count()).select_from(UserModel).where(UserModel.role == ADMIN_ROLE)
        if active_only:
            query = query.where(UserModel.is_active.is_(True))
        result = await session.execute(query)
        return result.scalar_one()

    # ── Login ──

    async def authenticate(
        self, session: AsyncSession, username: str, password: str
    ) -> UserModel:
        user = await self.get_by_username(session, username)
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid credentials", reason="Invalid credentials")
        if not await verify_password_async(password, user.password_hash):
            raise AuthenticationError("Invalid credentials", reason="Invalid credentials")
        return user

    async def start_session(
        self,
        session: AsyncSession,
        user: UserModel,
        ip_address: str | None,
        user_agent: str | None,
    ) -> IssuedSession:
        user.last_login = utcnow()
        issued = await self.sessions.create_session(session, user.id, ip_address, user_agent)
        logger.info(
            "User %s logged in (session %s)", user.username, issued.session_id,
            extra={"user_id": user.id, "session_id": issued.session_id, "client_ip": ip_address},
        )
        return issued

    async def verify_tfa_login(
        self, session: AsyncSession, username: str, token: str
    ) -> UserModel:
        user = await self.get_by_username(session, username)
        if user is None or not user.is_active or not user.tfa_enabled or not user.tfa_secret:
            raise AuthenticationError("Invalid credentials", reason="Invalid credentials")
        if not await tfa.verify_second_factor(session, user, token):
            raise AuthenticationError("Invalid verification code", reason="Invalid verification code")
        return user

    # ── Accounts ──

    async def create_user(
        self,
        session: AsyncSession,
        username: str,
        email: str,
        password: str,
        role: str = "user",
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> UserModel:
        await self._ensure_unique(session, username, email)
        user = UserModel(
            username=username,
            email=email,
            password_hash=await self._hash(password),
            role=role,
            first_name=first_name,
            last_name=last_name,
            is_active=True,
        )
        session.add(user)
        await session.flush()
        logger.info("Created user %s with role %s", username, role)
        return user

    async def signup(self, session: AsyncSession, **fields: Any) -> UserModel:
        server_settings = await self.settings_service.get(session)
        if not server_settings.signup_enabled:
            raise PermissionDeniedError("User signup is currently disabled")
        return await self.create_user(
            session, role=server_settings.default_user_role, **fields
        )

    async def setup_admin(self, session: AsyncSession, **fields: Any) -> UserModel:
        if await self.count_admins(session, active_only=False) > 0:
            raise ValidationFailedError("Admin users already exist. This endpoint is only for first-time setup.")
        return await self.create_user(session, role=ADMIN_ROLE, **fields)

    async def list_users(self, session: AsyncSession) -> list[UserModel]:
        result = await session.execute(select(UserModel).order_by(UserModel.created_at.desc()))
        return list(result.scalars().all())

    async def update_profile(
        self, session: AsyncSession, user_id: str, changes: dict[str, Any]
    ) -> UserModel:
        user = await self.get_user(session, user_id)
        await self._ensure_unique(
            session, changes.get("username"), changes.get("email"), exclude_id=user.id
        )
        for key in ("username", "email", "first_name", "last_name"):
            if changes.get(key) is not None:
                setattr(user, key, changes[key])
        await session.flush()
        return user

    async def update_user(
        self, session: AsyncSession, user_id: str, changes: dict[str, Any]
    ) -> UserModel:
        user = await self.get_user(session, user_id)
        await self._ensure_unique(
            session, changes.get("username"), changes.get("email"), exclude_id=user.id
        )

        demoting = changes.get("role") not in (None, ADMIN_ROLE) and user.role == ADMIN_ROLE
        deactivating = changes.get("is_active") is False and user.is_active
        if user.role == ADMIN_ROLE and (demoting or deactivating):
            if await self.count_admins(session) <= 1:
                raise ValidationFailedError("Cannot deactivate or demote the last admin user")

        for key in ("username", "email", "first_name", "last_name", "role", "is_active"):
            if changes.get(key) is not None:
                setattr(user, key, changes[key])
        await session.flush()

        if deactivating:
            revoked = await self.sessions.revoke_all_user_sessions(session, user.id)
            logger.info("User %s deactivated, %d session(s) revoked", user.username, revoked)
        return user

    async def delete_user(
        self, session: AsyncSession, user_id: str, acting_user_id: str
    ) -> None:
        if user_id == acting_user_id:
            raise ValidationFailedError("Cannot delete your own account")
        user = await self.get_user(session, user_id)
        if user.role == ADMIN_ROLE and await self.count_admins(session, active_only=False) <= 1:
            raise ValidationFailedError("Cannot delete the last admin user")

        await session.execute(
            update(AutoEnrollmentTokenModel)
            .where(AutoEnrollmentTokenModel.created_by_user_id == user.id)
            .values(created_by_user_id=None)
        )
        await session.execute(
            delete(UserSessionModel).where(UserSessionModel.user_id == user.id)
        )
        await session.delete(user)
        await session.flush()
        logger.info("Deleted user %s", user.username)

    async def change_password(
        self, session: AsyncSession, user_id: str, current: str, new: str
    ) -> None:
        user = await self.get_user(session, user_id)
        if not await verify_password_async(current, user.password_hash):
            raise ValidationFailedError("Current password is incorrect")
        user.password_hash = await self._hash(new)
        await session.flush()

    async def reset_password(self, session: AsyncSession, user_id: str, new: str) -> UserModel:
        user = await self.get_user(session, user_id)
        if not user.is_active:
            raise ValidationFailedError("Cannot reset password for inactive user")
        user.password_hash = await self._hash(new)
        await self.sessions.revoke_all_user_sessions(session, user.id)
        await session.flush()
        logger.info("Password reset for user %s", user.username)
        return user

    # ── TFA enrolment ──

    async def begin_tfa_setup(self, session: AsyncSession, user_id: str) -> tuple[str, str]:
        user = await self.get_user(session, user_id)
        if user.tfa_enabled:
            raise ValidationFailedError("Two-factor authentication is already enabled for this account")
        user.tfa_secret = tfa.generate_tfa_secret()
        await session.flush()
        return user.tfa_secret, tfa.provisioning_uri(user.tfa_secret, user.username)

    async def confirm_tfa_setup(
        self, session: AsyncSession, user_id: str, token: str
    ) -> list[str]:
        user = await self.get_user(session, user_id)
        if not user.tfa_secret:
            raise ValidationFailedError("No TFA secret found. Please start the setup process first.")
        if not tfa.verify_totp(user.tfa_secret, token):
            raise ValidationFailedError("Invalid verification code")
        codes = tfa.generate_backup_codes()
        user.tfa_enabled = True
        user.tfa_backup_codes = tfa.encode_backup_codes(codes)
        await session.flush()
        return codes

    async def disable_tfa(self, session: AsyncSession, user_id: str, password: str) -> None:
        user = await self.get_user(session, user_id)
        if not user.tfa_enabled:
            raise ValidationFailedError("Two-factor authentication is not enabled for this account")
        if not await verify_password_async(password, user.password_hash):
            raise ValidationFailedError("Invalid password")
        user.tfa_enabled = False
        user.tfa_secret = None
        user.tfa_backup_codes = None
        await session.flush()

    async def regenerate_backup_codes(self, session: AsyncSession, user_id: str) -> list[str]:
        user = await self.get_user(session, user_id)
        if not user.tfa_enabled:
            raise ValidationFailedError("Two-factor authentication is not enabled for this account")
        codes = tfa.generate_backup_codes()
        user.tfa_backup_codes = tfa.encode_backup_codes(codes)
        await session.flush()
        return codes
