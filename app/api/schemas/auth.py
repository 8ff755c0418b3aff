from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class DeviceFields(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=255)
    device_name: str | None = Field(default=None, max_length=255)
    device_model: str | None = Field(default=None, max_length=255)
    os_version: str | None = Field(default=None, max_length=64)
    app_version: str | None = Field(default=None, max_length=64)
    push_token: str | None = Field(default=None, max_length=512)


class GoogleAuthRequest(DeviceFields):
    id_token: str = Field(..., min_length=1)
    access_token: str | None = None


class AppleUserName(BaseModel):
    first_name: str | None = Field(default=None, max_length=120)
    last_name: str | None = Field(default=None, max_length=120)


class AppleUserHint(BaseModel):
    email: str | None = Field(default=None, max_length=255)
    name: AppleUserName | None = None


class AppleAuthRequest(DeviceFields):
    identity_token: str = Field(..., min_length=1)
    authorization_code: str = Field(..., min_length=1)
    user: AppleUserHint | None = None


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)
    device_id: str = Field(..., min_length=1, max_length=255)


class LogoutRequest(BaseModel):
    session_id: str | None = None
    device_id: str | None = None
    all_devices: bool = False


class UpdateProfileRequest(BaseModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    avatar_url: str | None = Field(default=None, max_length=2048, pattern=r"^https?://")
    timezone: str | None = Field(default=None, min_length=1, max_length=50)
    locale: str | None = Field(default=None, min_length=1, max_length=10)
    phone_number: str | None = Field(default=None, max_length=20)


class AuthUserResponse(BaseModel):
    id: str
    email: str
    email_verified: bool
    full_name: str
    avatar_url: str | None = None
    timezone: str
    locale: str
    subscription_tier: str
    subscription_status: str
    trial_ends_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    phone_number: str | None = None


class AuthBundleResponse(BaseModel):
    user: AuthUserResponse
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    is_new_user: bool


class RefreshResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class SessionResponse(BaseModel):
    id: str
    device_id: str
    device_name: str | None = None
    device_model: str | None = None
    last_active_at: datetime
    created_at: datetime
    is_current: bool


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
