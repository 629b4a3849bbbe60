"""SQLAlchemy models for hosts, groups, the package/repository catalogs and audit history."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from patchmon_engine.common.models import Base, TimestampMixin, generate_uuid, utcnow


class HostGroupModel(Base, TimestampMixin):
    __tablename__ = "host_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(7), default="#3B82F6")


class HostModel(Base, TimestampMixin):
    __tablename__ = "hosts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    machine_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    friendly_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    api_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    api_key: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    last_update: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    host_group_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("host_groups.id", ondelete="SET NULL"), nullable=True, index=True
    )

    hostname: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    os_type: Mapped[str] = mapped_column(String(100), default="unknown")
    os_version: Mapped[str] = mapped_column(String(100), default="unknown")
    architecture: Mapped[str | None] = mapped_column(String(50), nullable=True)
    agent_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    auto_update: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Hardware
    cpu_model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cpu_cores: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ram_installed: Mapped[float | None] = mapped_column(Float, nullable=True)
    swap_size: Mapped[float | None] = mapped_column(Float, nullable=True)
    disk_details: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Network
    gateway_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    dns_servers: Mapped[list | None] = mapped_column(JSON, nullable=True)
    network_interfaces: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # System
    kernel_version: Mapped[str | None] = mapped_column(String(255), nullable=True)
    selinux_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    system_uptime: Mapped[str | None] = mapped_column(String(255), nullable=True)
    load_average: Mapped[list | None] = mapped_column(JSON, nullable=True)


class PackageModel(Base, TimestampMixin):
    __tablename__ = "packages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    latest_version: Mapped[str | None] = mapped_column(String(255), nullable=True)


class HostPackageModel(Base):
    __tablename__ = "host_packages"
    __table_args__ = (
        UniqueConstraint("host_id", "package_id", name="uq_host_package"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    host_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("hosts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    package_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("packages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    current_version: Mapped[str] = mapped_column(String(255), nullable=False)
    available_version: Mapped[str | None] = mapped_column(String(255), nullable=True)
    needs_update: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_security_update: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_checked: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class RepositoryModel(Base, TimestampMixin):
    __tablename__ = "repositories"
    __table_args__ = (
        UniqueConstraint("url", "distribution", "components", name="uq_repository_source"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(1024), nullable=False)
    distribution: Mapped[str] = mapped_column(String(255), nullable=False)
    components: Mapped[str] = mapped_column(String(255), nullable=False)
    repo_type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_secure: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    priority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class HostRepositoryModel(Base):
    __tablename__ = "host_repositories"
    __table_args__ = (
        UniqueConstraint("host_id", "repository_id", name="uq_host_repository"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    host_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("hosts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    repository_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("repositories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_checked: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class UpdateHistoryModel(Base):
    """Append-only record of each agent report, successful or not."""

    __tablename__ = "update_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    host_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("hosts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    packages_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    security_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    status: Mapped[str] = mapped_column(String(20), default="success", nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class AgentVersionModel(Base, TimestampMixin):
    __tablename__ = "agent_versions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    version: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    release_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    download_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    min_server_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    script_content: Mapped[str | None] = mapped_column(Text, nullable=True)
