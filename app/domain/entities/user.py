from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal


AuthProvider = Literal["google", "apple"]
SubscriptionTier = Literal["free", "pro", "business", "enterprise"]

# Columns a user may change on their own profile.
PROFILE_FIELDS = ("full_name", "avatar_url", "timezone", "locale", "phone_number")


@dataclass(frozen=True)
class User:
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
    deleted_at: datetime | None = None
    phone_number: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class IdentityLink:
    id: str
    user_id: str
    provider: AuthProvider
    provider_subject: str
    provider_email: str | None
    access_token_encrypted: bytes | None
    refresh_token_encrypted: bytes | None
    token_expires_at: datetime | None
    created_at: datetime
