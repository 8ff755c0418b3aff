from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class DeviceInfo:
    device_id: str
    device_name: str | None = None
    device_model: str | None = None
    os_version: str | None = None
    app_version: str | None = None
    push_token: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AuthSession:
    id: str
    user_id: str
    device_id: str
    device_name: str | None
    device_model: str | None
    os_version: str | None
    app_version: str | None
    push_token: str | None
    ip_address: str | None
    user_agent: str | None
    refresh_token_hash: str
    family_id: str
    expires_at: datetime
    revoked_at: datetime | None
    last_active_at: datetime
    created_at: datetime

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def is_active(self, now: datetime) -> bool:
        return not self.is_revoked and not self.is_expired(now)
