from __future__ import annotations

from typing import Any, Mapping

from app.domain.entities.session import AuthSession
from app.domain.entities.user import IdentityLink, User


def _as_str(value: Any) -> str:
    return str(value)


def _as_bytes(value: Any) -> bytes | None:
    if value is None:
        return None
    return bytes(value)


def map_row_to_user(row: Mapping[str, Any]) -> User:
    return User(
        id=_as_str(row["id"]),
        email=row["email"],
        email_verified=bool(row["email_verified"]),
        full_name=row["full_name"],
        avatar_url=row.get("avatar_url"),
        timezone=row["timezone"],
        locale=row["locale"],
        subscription_tier=row["subscription_tier"],
        subscription_status=row["subscription_status"],
        trial_ends_at=row.get("trial_ends_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        deleted_at=row.get("deleted_at"),
        phone_number=row.get("phone_number"),
    )


def map_row_to_identity_link(row: Mapping[str, Any]) -> IdentityLink:
    return IdentityLink(
        id=_as_str(row["id"]),
        user_id=_as_str(row["user_id"]),
        provider=row["provider"],
        provider_subject=row["provider_subject"],
        provider_email=row.get("provider_email"),
        access_token_encrypted=_as_bytes(row.get("access_token_encrypted")),
        refresh_token_encrypted=_as_bytes(row.get("refresh_token_encrypted")),
        token_expires_at=row.get("token_expires_at"),
        created_at=row["created_at"],
    )


def map_row_to_auth_session(row: Mapping[str, Any]) -> AuthSession:
    return AuthSession(
        id=_as_str(row["id"]),
        user_id=_as_str(row["user_id"]),
        device_id=row["device_id"],
        device_name=row.get("device_name"),
        device_model=row.get("device_model"),
        os_version=row.get("os_version"),
        app_version=row.get("app_version"),
        push_token=row.get("push_token"),
        ip_address=row.get("ip_address"),
        user_agent=row.get("user_agent"),
        refresh_token_hash=row["refresh_token_hash"],
        family_id=_as_str(row["family_id"]),
        expires_at=row["expires_at"],
        revoked_at=row.get("revoked_at"),
        last_active_at=row["last_active_at"],
        created_at=row["created_at"],
    )
