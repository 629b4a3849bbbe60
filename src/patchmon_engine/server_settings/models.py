"""SQLAlchemy model for the single server-settings row."""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from patchmon_engine.common.models import Base, TimestampMixin, generate_uuid


class ServerSettingsModel(Base, TimestampMixin):
    __tablename__ = "settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    server_protocol: Mapped[str] = mapped_column(String(10), default="http", nullable=False)
    server_host: Mapped[str] = mapped_column(String(255), default="localhost", nullable=False)
    server_port: Mapped[int] = mapped_column(Integer, default=3001, nullable=False)
    server_url: Mapped[str] = mapped_column(String(1024), default="http://localhost:3001", nullable=False)
    frontend_url: Mapped[str] = mapped_column(String(1024), default="http://localhost:3000", nullable=False)
    update_interval: Mapped[int] = mapped_column(Integer, default=60, nullable=False)  # minutes
    auto_update: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    signup_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    default_user_role: Mapped[str] = mapped_column(String(50), default="user", nullable=False)
    ignore_ssl_self_signed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
