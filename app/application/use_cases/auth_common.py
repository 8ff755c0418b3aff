from __future__ import annotations

from datetime import datetime, timezone

from app.application.dto.auth import AuthUserOutput
from app.domain.entities.user import User


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def build_auth_user_output(user: User) -> AuthUserOutput:
    return AuthUserOutput(
        id=user.id,
        email=user.email,
        email_verified=user.email_verified,
        full_name=user.full_name,
        avatar_url=user.avatar_url,
        timezone=user.timezone,
        locale=user.locale,
        subscription_tier=user.subscription_tier,
        subscription_status=user.subscription_status,
        trial_ends_at=user.trial_ends_at,
        created_at=user.created_at,
        updated_at=user.updated_at,
        phone_number=user.phone_number,
    )
