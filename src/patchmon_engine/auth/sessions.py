"""Server-side session lifecycle: create, validate, refresh, revoke, collect.

A session is valid only while it is not revoked, has not passed its hard
expiry, has seen activity within the inactivity timeout, and belongs to an
active user. Access tokens are short-lived JWTs carrying the session id;
refresh tokens are opaque random strings. Only SHA-256 digests of either
are stored.
"""

import asyncio
import enum
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

import jwt
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from patchmon_engine.auth.models import UserModel, UserSessionModel
from patchmon_engine.common.config import PatchmonSettings
from patchmon_engine.common.exceptions import AuthenticationError
from patchmon_engine.common.models import as_utc, generate_uuid, utcnow
from patchmon_engine.common.security import hash_token

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


class SessionInvalidReason(str, enum.Enum):
    NOT_FOUND = "Session not found"
    REVOKED = "Session revoked"
    EXPIRED = "Session expired"
    INACTIVE = "Session inactive"
    TOKEN_MISMATCH = "Token mismatch"
    USER_INACTIVE = "User inactive"


@dataclass
class IssuedSession:
    session_id: str
    access_token: str
    refresh_token: str
    expires_at: datetime


@dataclass
class SessionValidation:
    valid: bool
    reason: SessionInvalidReason | None = None
    message: str | None = None
    session: UserSessionModel | None = None
    user: UserModel | None = None

    @classmethod
    def invalid(cls, reason: SessionInvalidReason, message: str | None = None) -> "SessionValidation":
        return cls(valid=False, reason=reason, message=message or reason.value)


@dataclass
class RefreshResult:
    access_token: str
    user: UserModel
    session_id: str


class SessionManager:
    """Creates and enforces server-side sessions backing JWT access tokens."""

    def __init__(self, settings: PatchmonSettings):
        self.settings = settings

    # ── Tokens ──

    def generate_access_token(self, user_id: str, session_id: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userId": user_id,
            "sessionId": session_id,
            "iat": now,
            "exp": now + self.settings.access_token_ttl,
        }
        return jwt.encode(payload, self.settings.jwt_secret, algorithm=JWT_ALGORITHM)

    def decode_access_token(self, token: str) -> dict:
        try:
            return jwt.decode(token, self.settings.jwt_secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired", reason="Token expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token", reason="Invalid token")

    @staticmethod
    def generate_refresh_token() -> str:
        return secrets.token_hex(64)

    # ── Lifecycle ──

    async def create_session(
        self,
        session: AsyncSession,
        user_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> IssuedSession:
        now = utcnow()
        session_id = generate_uuid()
        access_token = self.generate_access_token(user_id, session_id)
        refresh_token = self.generate_refresh_token()
        row = UserSessionModel(
            id=session_id,
            user_id=user_id,
            refresh_token_hash=hash_token(refresh_token),
            access_token_hash=hash_token(access_token),
            ip_address=ip_address,
            user_agent=user_agent,
            last_activity=now,
            expires_at=now + self.settings.refresh_token_ttl,
        )
        session.add(row)
        await session.flush()

        return IssuedSession(
            session_id=row.id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=row.expires_at,
        )

    async def validate_session(
        self,
        session: AsyncSession,
        session_id: str,
        access_token: str | None,
    ) -> SessionValidation:
        """Check a session in a fixed order, revoking it when it has lapsed.

        ``access_token=None`` skips the token comparison; refresh uses this
        because it authenticates with the refresh token instead.
        """
        row = await session.get(UserSessionModel, session_id)
        if row is None:
            return SessionValidation.invalid(SessionInvalidReason.NOT_FOUND)

        if row.is_revoked:
            return SessionValidation.invalid(SessionInvalidReason.REVOKED)

        now = utcnow()
        if now > as_utc(row.expires_at):
            await self.revoke_session(session, session_id)
            return SessionValidation.invalid(SessionInvalidReason.EXPIRED)

        if now - as_utc(row.last_activity) > self.settings.inactivity_timeout:
            await self.revoke_session(session, session_id)
            minutes = self.settings.session_inactivity_timeout_minutes
            return SessionValidation.invalid(
                SessionInvalidReason.INACTIVE,
                f"Session timed out after {minutes} minutes of inactivity",
            )

        if access_token is not None and row.access_token_hash != hash_token(access_token):
            return SessionValidation.invalid(SessionInvalidReason.TOKEN_MISMATCH)

        user = await session.get(UserModel, row.user_id)
        if user is None or not user.is_active:
            await self.revoke_session(session, session_id)
            return SessionValidation.invalid(SessionInvalidReason.USER_INACTIVE)

        return SessionValidation(valid=True, session=row, user=user)

    async def update_session_activity(self, session: AsyncSession, session_id: str) -> None:
        await session.execute(
            update(UserSessionModel)
            .where(UserSessionModel.id == session_id)
            .values(last_activity=utcnow())
        )

    async def refresh_access_token(
        self, session: AsyncSession, refresh_token: str
    ) -> RefreshResult:
        """Mint a new access token and rotate the stored access-token digest."""
        result = await session.execute(
            select(UserSessionModel).where(
                UserSessionModel.refresh_token_hash == hash_token(refresh_token)
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise AuthenticationError("Invalid refresh token", reason="Invalid refresh token")

        validation = await self.validate_session(session, row.id, None)
        if not validation.valid:
            raise AuthenticationError(validation.message, reason=validation.reason.value)

        access_token = self.generate_access_token(row.user_id, row.id)
        row.access_token_hash = hash_token(access_token)
        row.last_activity = utcnow()
        await session.flush()

        return RefreshResult(access_token=access_token, user=validation.user, session_id=row.id)

    async def revoke_session(self, session: AsyncSession, session_id: str) -> None:
        await session.execute(
            update(UserSessionModel)
            .where(UserSessionModel.id == session_id)
            .values(is_revoked=True)
        )

    async def revoke_all_user_sessions(self, session: AsyncSession, user_id: str) -> int:
        result = await session.execute(
            update(UserSessionModel)
            .where(UserSessionModel.user_id == user_id, UserSessionModel.is_revoked.is_(False))
            .values(is_revoked=True)
        )
        return result.rowcount or 0

    async def get_user_sessions(self, session: AsyncSession, user_id: str) -> list[UserSessionModel]:
        result = await session.execute(
            select(UserSessionModel)
            .where(
                UserSessionModel.user_id == user_id,
                UserSessionModel.is_revoked.is_(False),
                UserSessionModel.expires_at > utcnow(),
            )
            .order_by(UserSessionModel.last_activity.desc())
        )
        return list(result.scalars().all())

    async def cleanup_expired_sessions(self, session: AsyncSession) -> int:
        result = await session.execute(
            delete(UserSessionModel).where(
                or_(
                    UserSessionModel.expires_at < utcnow(),
                    UserSessionModel.is_revoked.is_(True),
                )
            )
        )
        count = result.rowcount or 0
        logger.info("Cleaned up %d expired or revoked sessions", count)
        return count


class SessionCleanupScheduler:
    """Runs ``cleanup_expired_sessions`` on a fixed interval in the background."""

    def __init__(self, manager: SessionManager, db, interval_seconds: float):
        self.manager = manager
        self.db = db
        self.interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> int:
        async with self.db.get_session() as session:
            return await self.manager.cleanup_expired_sessions(session)

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Session cleanup failed")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Session cleanup scheduler started (interval %ss)", self.interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Session cleanup scheduler stopped")
