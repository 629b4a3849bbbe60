"""SQLAlchemy models for users, sessions and role permissions."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from patchmon_engine.common.models import Base, TimestampMixin, generate_uuid, utcnow


class UserModel(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), default="user", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    tfa_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    tfa_secret: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # JSON-encoded list kept as text so it can be compared in a conditional UPDATE.
    tfa_backup_codes: Mapped[str | None] = mapped_column(Text, nullable=True)


class UserSessionModel(Base):
    __tablename__ = "user_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    refresh_token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    access_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class RolePermissionModel(Base, TimestampMixin):
    __tablename__ = "role_permissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    role: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    can_view_dashboard: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_view_hosts: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_manage_hosts: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view_packages: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_manage_packages: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view_users: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_manage_users: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view_reports: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_export_data: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_manage_settings: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
