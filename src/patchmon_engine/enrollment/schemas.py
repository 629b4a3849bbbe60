"""Pydantic schemas for auto-enrollment endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class TokenCreate(BaseModel):
    token_name: str = Field(..., min_length=1, max_length=255)
    max_hosts_per_day: int = Field(default=100, ge=1, le=1000)
    allowed_ip_ranges: list[str] = Field(default_factory=list)
    default_host_group_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TokenUpdate(BaseModel):
    is_active: Optional[bool] = None
    max_hosts_per_day: Optional[int] = Field(default=None, ge=1, le=1000)
    allowed_ip_ranges: Optional[list[str]] = None
    default_host_group_id: Optional[str] = None
    expires_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    id: str
    token_name: str
    token_key: str
    is_active: bool
    allowed_ip_ranges: list[str]
    max_hosts_per_day: int
    hosts_created_today: int
    last_reset_date: Optional[str] = None
    default_host_group_id: Optional[str] = None
    created_by_user_id: Optional[str] = None
    last_used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class EnrollRequest(BaseModel):
    friendly_name: str = Field(..., min_length=1, max_length=255)
    machine_id: str = Field(..., min_length=1, max_length=255)
    metadata: Optional[dict[str, Any]] = None


class BulkHostEntry(BaseModel):
    friendly_name: str = Field(..., min_length=1, max_length=255)
    machine_id: Optional[str] = Field(default=None, max_length=255)


class BulkEnrollRequest(BaseModel):
    hosts: list[BulkHostEntry] = Field(..., min_length=1, max_length=50)
