from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Mapping

from app.domain.entities.session import AuthSession, DeviceInfo
from app.domain.entities.user import AuthProvider


@dataclass(frozen=True)
class VerifiedIdentity:
    provider: AuthProvider
    subject: str
    email: str | None
    email_verified: bool
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    picture: str | None = None
    is_private_email: bool = False


@dataclass(frozen=True)
class ProviderTokens:
    access_token: str
    refresh_token: str | None
    id_token: str | None
    expires_in: int


@dataclass(frozen=True)
class ProviderProfile:
    name: str | None
    given_name: str | None
    family_name: str | None
    picture: str | None


@dataclass(frozen=True)
class ProviderCredential:
    identity_token: str
    authorization_code: str | None = None
    access_token: str | None = None
    email_hint: str | None = None
    full_name_hint: str | None = None


@dataclass(frozen=True)
class AuthenticateInput:
    provider: AuthProvider
    credential: ProviderCredential
    device: DeviceInfo


@dataclass(frozen=True)
class AuthUserOutput:
    id: str
    email: str
    email_verified: bool
    full_name: str
    avatar_url: str | None
    timezone: str
    locale: str
    subscription_tier: str
    subscription_status: str
    trial_ends_at: datetime | None
    created_at: datetime
    updated_at: datetime
    phone_number: str | None = None


@dataclass(frozen=True)
class AuthBundleOutput:
    user: AuthUserOutput
    session_id: str
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_at: datetime
    is_new_user: bool


@dataclass(frozen=True)
class CreatedSession:
    session: AuthSession
    refresh_token: str
    refresh_expires_at: datetime


@dataclass(frozen=True)
class RotatedTokens:
    session: AuthSession
    access_token: str
    expires_in: int
    refresh_token: str
    refresh_expires_at: datetime


@dataclass(frozen=True)
class RefreshSessionInput:
    refresh_token: str
    device_id: str


@dataclass(frozen=True)
class RefreshSessionOutput:
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_at: datetime


@dataclass(frozen=True)
class LogoutInput:
    user_id: str
    session_id: str | None = None
    device_id: str | None = None
    all_devices: bool = False


@dataclass(frozen=True)
class LogoutOutput:
    revoked_count: int


@dataclass(frozen=True)
class UpdateProfileInput:
    user_id: str
    changes: Mapping[str, str | None]


@dataclass(frozen=True)
class SessionSummaryOutput:
    id: str
    device_id: str
    device_name: str | None
    device_model: str | None
    last_active_at: datetime
    created_at: datetime
    is_current: bool
