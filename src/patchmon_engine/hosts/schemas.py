"""Pydantic schemas for hosts, host groups and agent reports."""

import ipaddress
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Agent report ──

class PackageReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    current_version: str = Field(..., alias="currentVersion", min_length=1)
    available_version: Optional[str] = Field(default=None, alias="availableVersion", min_length=1)
    needs_update: bool = Field(..., alias="needsUpdate")
    is_security_update: bool = Field(default=False, alias="isSecurityUpdate")
    description: Optional[str] = None
    category: Optional[str] = None


class RepositoryReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    distribution: str = ""
    components: str = ""
    repo_type: str = Field(..., alias="repoType", min_length=1)
    is_secure: bool = Field(default=False, alias="isSecure")
    is_enabled: bool = Field(default=True, alias="isEnabled")

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.url, self.distribution, self.components)


# Report field name -> host column; only fields the agent actually sent are applied.
HOST_METADATA_FIELDS = {
    "os_type": "os_type",
    "os_version": "os_version",
    "hostname": "hostname",
    "ip": "ip",
    "architecture": "architecture",
    "agent_version": "agent_version",
    "cpu_model": "cpu_model",
    "cpu_cores": "cpu_cores",
    "ram_installed": "ram_installed",
    "swap_size": "swap_size",
    "disk_details": "disk_details",
    "gateway_ip": "gateway_ip",
    "dns_servers": "dns_servers",
    "network_interfaces": "network_interfaces",
    "kernel_version": "kernel_version",
    "selinux_status": "selinux_status",
    "system_uptime": "system_uptime",
    "load_average": "load_average",
}


class HostReport(BaseModel):
    """One agent check-in: the full package snapshot plus optional metadata."""

    model_config = ConfigDict(populate_by_name=True)

    packages: list[PackageReport]
    repositories: Optional[list[RepositoryReport]] = None
    machine_id: Optional[str] = Field(default=None, alias="machineId")

    os_type: Optional[str] = Field(default=None, alias="osType")
    os_version: Optional[str] = Field(default=None, alias="osVersion")
    hostname: Optional[str] = None
    ip: Optional[str] = None
    architecture: Optional[str] = None
    agent_version: Optional[str] = Field(default=None, alias="agentVersion", min_length=1)

    cpu_model: Optional[str] = Field(default=None, alias="cpuModel")
    cpu_cores: Optional[int] = Field(default=None, alias="cpuCores", ge=1)
    ram_installed: Optional[float] = Field(default=None, alias="ramInstalled", gt=0)
    swap_size: Optional[float] = Field(default=None, alias="swapSize", ge=0)
    disk_details: Optional[list[Any]] = Field(default=None, alias="diskDetails")

    gateway_ip: Optional[str] = Field(default=None, alias="gatewayIp")
    dns_servers: Optional[list[Any]] = Field(default=None, alias="dnsServers")
    network_interfaces: Optional[list[Any]] = Field(default=None, alias="networkInterfaces")

    kernel_version: Optional[str] = Field(default=None, alias="kernelVersion")
    selinux_status: Optional[Literal["enabled", "disabled", "permissive"]] = Field(
        default=None, alias="selinuxStatus"
    )
    system_uptime: Optional[str] = Field(default=None, alias="systemUptime")
    load_average: Optional[list[Any]] = Field(default=None, alias="loadAverage")

    @field_validator("gateway_ip")
    @classmethod
    def _valid_ip(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            ipaddress.ip_address(value)
        return value

    def metadata_updates(self) -> dict[str, Any]:
        return {
            column: getattr(self, name)
            for name, column in HOST_METADATA_FIELDS.items()
            if name in self.model_fields_set and getattr(self, name) is not None
        }


class PingRequest(BaseModel):
    triggerCrontabUpdate: bool = False


class MachineIdCheckRequest(BaseModel):
    machine_id: str = Field(..., min_length=1)


# ── Admin ──

class HostCreate(BaseModel):
    friendly_name: str = Field(..., min_length=1, max_length=255)
    hostGroupId: Optional[str] = None


class HostGroupAssignment(BaseModel):
    hostGroupId: Optional[str] = None


class BulkGroupAssignment(BaseModel):
    hostIds: list[str] = Field(..., min_length=1)
    hostGroupId: Optional[str] = None


class BulkDeleteRequest(BaseModel):
    hostIds: list[str] = Field(..., min_length=1)


class FriendlyNameUpdate(BaseModel):
    friendly_name: str = Field(..., min_length=1, max_length=100)


class NotesUpdate(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=1000)


class AutoUpdateToggle(BaseModel):
    auto_update: bool


class HostGroupSummary(BaseModel):
    id: str
    name: str
    color: str

    model_config = {"from_attributes": True}


class HostSummary(BaseModel):
    id: str
    friendly_name: str
    hostname: Optional[str] = None
    ip: Optional[str] = None
    os_type: str
    os_version: str
    architecture: Optional[str] = None
    agent_version: Optional[str] = None
    api_id: str
    machine_id: str
    status: str
    effective_status: str
    auto_update: bool
    notes: Optional[str] = None
    last_update: Optional[datetime] = None
    created_at: Optional[datetime] = None
    host_group: Optional[HostGroupSummary] = None


# ── Host groups ──

class HostGroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    color: str = Field(default="#3B82F6", pattern=r"^#[0-9A-Fa-f]{6}$")


class HostGroupUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class HostGroupResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    color: str
    host_count: int = 0
    created_at: Optional[datetime] = None
