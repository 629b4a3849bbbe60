"""Pydantic schemas for authentication, users, TFA and role permissions."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ── Users ──

class UserResponse(BaseModel):
    id: str
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    is_active: bool
    tfa_enabled: bool = False
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    message: str = "Login successful"
    token: str
    refresh_token: str
    expires_at: datetime
    user: UserResponse


class TfaRequiredResponse(BaseModel):
    message: str = "TFA verification required"
    requiresTfa: bool = True
    username: str


class VerifyTfaRequest(BaseModel):
    username: str = Field(..., min_length=1)
    token: str = Field(..., min_length=6, max_length=6)


class SignupRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=255)
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6)
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)


class AdminCreateUserRequest(SignupRequest):
    role: str = Field(default="user", min_length=1, max_length=50)


class AdminUpdateUserRequest(BaseModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)
    role: Optional[str] = Field(default=None, min_length=1, max_length=50)
    is_active: Optional[bool] = None


class ProfileUpdateRequest(BaseModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)


class ChangePasswordRequest(BaseModel):
    currentPassword: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=6)


class ResetPasswordRequest(BaseModel):
    newPassword: str = Field(..., min_length=6)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class RefreshResponse(BaseModel):
    message: str = "Token refreshed successfully"
    token: str
    user: UserResponse


class SessionResponse(BaseModel):
    id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    last_activity: datetime
    created_at: datetime
    expires_at: datetime
    is_current: bool = False


class SetupAdminRequest(SignupRequest):
    pass


# ── TFA ──

class TfaSetupResponse(BaseModel):
    secret: str
    otpauth_url: str


class TfaTokenRequest(BaseModel):
    token: str = Field(..., min_length=6, max_length=6)


class TfaDisableRequest(BaseModel):
    password: str = Field(..., min_length=1)


class BackupCodesResponse(BaseModel):
    message: str
    backupCodes: list[str]


class TfaStatusResponse(BaseModel):
    enabled: bool
    hasBackupCodes: bool


# ── Role permissions ──

class RolePermissionsBody(BaseModel):
    can_view_dashboard: bool = False
    can_view_hosts: bool = False
    can_manage_hosts: bool = False
    can_view_packages: bool = False
    can_manage_packages: bool = False
    can_view_users: bool = False
    can_manage_users: bool = False
    can_view_reports: bool = False
    can_export_data: bool = False
    can_manage_settings: bool = False


class RolePermissionsResponse(RolePermissionsBody):
    id: str
    role: str

    model_config = {"from_attributes": True}
