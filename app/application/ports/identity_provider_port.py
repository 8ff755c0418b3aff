from __future__ import annotations

from typing import Protocol

from app.application.dto.auth import ProviderProfile, ProviderTokens, VerifiedIdentity
from app.domain.entities.user import AuthProvider


class IdentityProviderPort(Protocol):
    provider: AuthProvider
    requires_authorization_code: bool

    def verify_identity(self, *, identity_token: str) -> VerifiedIdentity:
        ...

    def exchange_authorization_code(self, *, code: str) -> ProviderTokens:
        ...

    def fetch_profile(self, *, access_token: str) -> ProviderProfile | None:
        ...

    def revoke_tokens(self, *, refresh_token: str) -> None:
        ...
