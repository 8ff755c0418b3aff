from __future__ import annotations

from datetime import datetime
from typing import Protocol

from app.domain.entities.session import AuthSession, DeviceInfo


class SessionStorePort(Protocol):
    def create_session(
        self,
        *,
        session_id: str,
        user_id: str,
        device: DeviceInfo,
        refresh_token_hash: str,
        family_id: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> AuthSession:
        ...

    def get_session_by_id(self, *, session_id: str) -> AuthSession | None:
        ...

    def get_session_for_user(self, *, session_id: str, user_id: str) -> AuthSession | None:
        ...

    def list_active_sessions(self, *, user_id: str, now: datetime) -> list[AuthSession]:
        ...

    def rotate_refresh_token_hash(
        self,
        *,
        session_id: str,
        expected_hash: str,
        new_hash: str,
        expires_at: datetime,
        last_active_at: datetime,
    ) -> bool:
        """Swap the stored hash only if it still equals ``expected_hash`` on a live session."""
        ...

    def revoke_session(self, *, session_id: str, revoked_at: datetime) -> int:
        ...

    def revoke_sessions_for_user(self, *, user_id: str, revoked_at: datetime) -> int:
        ...

    def revoke_sessions_for_device(self, *, user_id: str, device_id: str, revoked_at: datetime) -> int:
        ...

    def revoke_family(self, *, family_id: str, revoked_at: datetime) -> int:
        ...
