"""SQLAlchemy model for auto-enrollment tokens."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from patchmon_engine.common.models import Base, TimestampMixin, generate_uuid


class AutoEnrollmentTokenModel(Base, TimestampMixin):
    __tablename__ = "auto_enrollment_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    token_name: Mapped[str] = mapped_column(String(255), nullable=False)
    token_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    token_secret: Mapped[str] = mapped_column(String(255), nullable=False)  # bcrypt hash
    created_by_user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    allowed_ip_ranges: Mapped[list] = mapped_column(JSON, default=list)
    max_hosts_per_day: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    hosts_created_today: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reset_date: Mapped[str | None] = mapped_column(String(10), nullable=True)  # YYYY-MM-DD, UTC
    default_host_group_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("host_groups.id", ondelete="SET NULL"), nullable=True
    )
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
