from __future__ import annotations

from datetime import datetime
from typing import Protocol

from app.domain.entities.token import (
    AccessTokenClaims,
    IssuedAccessToken,
    IssuedRefreshToken,
    RefreshTokenClaims,
)


class TokenPort(Protocol):
    def issue_access_token(
        self,
        *,
        user_id: str,
        email: str,
        tier: str,
        now: datetime,
    ) -> IssuedAccessToken:
        ...

    def issue_refresh_token(
        self,
        *,
        user_id: str,
        session_id: str,
        device_id: str,
        family_id: str,
        now: datetime,
    ) -> IssuedRefreshToken:
        ...

    def verify_access_token(self, *, token: str) -> AccessTokenClaims:
        ...

    def verify_refresh_token(self, *, token: str) -> RefreshTokenClaims:
        ...

    def hash_refresh_token(self, *, refresh_token: str) -> str:
        ...
