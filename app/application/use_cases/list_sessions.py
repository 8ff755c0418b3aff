from __future__ import annotations

from app.application.dto.auth import SessionSummaryOutput
from app.application.services.session_manager import SessionManager


class ListSessionsUseCase:
    def __init__(self, *, session_manager: SessionManager):
        self._session_manager = session_manager

    def execute(self, *, user_id: str) -> list[SessionSummaryOutput]:
        sessions = self._session_manager.list_active_sessions(user_id=user_id)
        # Most recently active first; that one is reported as the current session.
        return [
            SessionSummaryOutput(
                id=session.id,
                device_id=session.device_id,
                device_name=session.device_name,
                device_model=session.device_model,
                last_active_at=session.last_active_at,
                created_at=session.created_at,
                is_current=index == 0,
            )
            for index, session in enumerate(sessions)
        ]
