from __future__ import annotations

from datetime import datetime
from typing import Callable, Mapping, Protocol, TypeVar

from app.domain.entities.user import AuthProvider, IdentityLink, User


TAuthResult = TypeVar("TAuthResult")


class AuthPort(Protocol):
    def execute_in_transaction(self, fn: Callable[[AuthPort], TAuthResult]) -> TAuthResult:
        ...

    def get_user_by_id(self, *, user_id: str) -> User | None:
        ...

    def get_user_by_email(self, *, email: str) -> User | None:
        ...

    def create_user(
        self,
        *,
        user_id: str,
        email: str,
        email_verified: bool,
        full_name: str,
        avatar_url: str | None,
        trial_ends_at: datetime | None,
        created_at: datetime,
    ) -> User:
        ...

    def create_default_settings(self, *, user_id: str, created_at: datetime) -> None:
        ...

    def mark_user_deleted(self, *, user_id: str, deleted_at: datetime) -> None:
        ...

    def update_user_profile(
        self,
        *,
        user_id: str,
        changes: Mapping[str, str | None],
        updated_at: datetime,
    ) -> User | None:
        ...

    def create_identity_link(
        self,
        *,
        link_id: str,
        user_id: str,
        provider: AuthProvider,
        provider_subject: str,
        provider_email: str | None,
        created_at: datetime,
    ) -> IdentityLink:
        ...

    def get_identity_link(
        self,
        *,
        provider: AuthProvider,
        provider_subject: str,
    ) -> IdentityLink | None:
        ...

    def get_identity_link_for_user_provider(
        self,
        *,
        user_id: str,
        provider: AuthProvider,
    ) -> IdentityLink | None:
        ...

    def list_identity_links_for_user(self, *, user_id: str) -> list[IdentityLink]:
        ...

    def store_provider_tokens(
        self,
        *,
        provider: AuthProvider,
        provider_subject: str,
        access_token_encrypted: bytes,
        refresh_token_encrypted: bytes | None,
        token_expires_at: datetime,
    ) -> None:
        ...
