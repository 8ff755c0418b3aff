from __future__ import annotations

import logging
from uuid import UUID

from app.application.dto.auth import LogoutInput, LogoutOutput
from app.application.ports.session_store_port import SessionStorePort
from app.application.services.session_manager import SessionManager
from app.domain.exceptions import NotFoundError


logger = logging.getLogger(__name__)


class LogoutSessionUseCase:
    """Revoke sessions for the calling user.

    Only one selector is honored, checked in the order all_devices, session_id,
    device_id. With none set nothing is revoked.
    """

    def __init__(self, *, session_store: SessionStorePort, session_manager: SessionManager):
        self._session_store = session_store
        self._session_manager = session_manager

    def execute(self, command: LogoutInput) -> LogoutOutput:
        if command.all_devices:
            revoked = self._session_manager.revoke_all_for_user(user_id=command.user_id)
            scope = "all_devices"
        elif command.session_id:
            if not _is_uuid(command.session_id):
                raise NotFoundError("Session")
            session = self._session_store.get_session_for_user(
                session_id=command.session_id,
                user_id=command.user_id,
            )
            if session is None:
                raise NotFoundError("Session")
            revoked = self._session_manager.revoke(session_id=session.id)
            scope = "session"
        elif command.device_id:
            revoked = self._session_manager.revoke_all_for_device(
                user_id=command.user_id,
                device_id=command.device_id,
            )
            scope = "device"
        else:
            return LogoutOutput(revoked_count=0)

        logger.info("auth: logout user_id=%s scope=%s revoked=%s", command.user_id, scope, revoked)
        return LogoutOutput(revoked_count=revoked)


def _is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except ValueError:
        return False
    return True
