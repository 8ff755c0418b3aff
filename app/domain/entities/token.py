from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class AccessTokenClaims:
    user_id: str
    email: str
    tier: str
    token_id: str
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class RefreshTokenClaims:
    user_id: str
    session_id: str
    device_id: str
    family_id: str
    token_id: str
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class IssuedAccessToken:
    token: str
    expires_in: int


@dataclass(frozen=True)
class IssuedRefreshToken:
    token: str
    expires_at: datetime
