from __future__ import annotations

import logging

from app.application.dto.auth import AuthUserOutput, UpdateProfileInput
from app.application.ports.auth_port import AuthPort
from app.domain.entities.user import PROFILE_FIELDS
from app.domain.exceptions import InvalidInputError, NotFoundError

from .auth_common import build_auth_user_output, utcnow


logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = frozenset({"full_name", "timezone", "locale"})


class UpdateProfileUseCase:
    """Partial update of the caller's own profile.

    Only keys present in ``changes`` are written. ``avatar_url`` and
    ``phone_number`` may be cleared with ``None``; the other fields may not.
    """

    def __init__(self, *, auth_port: AuthPort):
        self._auth_port = auth_port

    def execute(self, command: UpdateProfileInput) -> AuthUserOutput:
        user = self._auth_port.get_user_by_id(user_id=command.user_id)
        if user is None or user.is_deleted:
            raise NotFoundError("User")

        changes: dict[str, str | None] = {}
        for name, value in command.changes.items():
            if name not in PROFILE_FIELDS:
                raise InvalidInputError(f"Field '{name}' cannot be updated.")
            cleaned = value.strip() if isinstance(value, str) else None
            if not cleaned:
                if name in _REQUIRED_FIELDS:
                    raise InvalidInputError(f"Field '{name}' cannot be empty.")
                cleaned = None
            changes[name] = cleaned

        if not changes:
            return build_auth_user_output(user)

        updated = self._auth_port.update_user_profile(
            user_id=user.id,
            changes=changes,
            updated_at=utcnow(),
        )
        if updated is None:
            raise NotFoundError("User")
        logger.info("auth: profile_updated user_id=%s fields=%s", user.id, ",".join(sorted(changes)))
        return build_auth_user_output(updated)
