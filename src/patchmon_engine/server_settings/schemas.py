"""Pydantic schemas for the server settings endpoints."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class SettingsResponse(BaseModel):
    id: str
    server_protocol: str
    server_host: str
    server_port: int
    server_url: str
    frontend_url: str
    update_interval: int
    auto_update: bool
    signup_enabled: bool
    default_user_role: str
    ignore_ssl_self_signed: bool


class SettingsUpdate(BaseModel):
    server_protocol: Optional[Literal["http", "https"]] = None
    server_host: Optional[str] = Field(default=None, min_length=1, max_length=255)
    server_port: Optional[int] = Field(default=None, ge=1, le=65535)
    frontend_url: Optional[str] = Field(default=None, min_length=1, max_length=1024)
    update_interval: Optional[int] = Field(default=None, ge=5, le=1440)
    auto_update: Optional[bool] = None
    signup_enabled: Optional[bool] = None
    default_user_role: Optional[str] = Field(default=None, min_length=1, max_length=50)
    ignore_ssl_self_signed: Optional[bool] = None
