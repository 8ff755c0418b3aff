from __future__ import annotations

from app.application.dto.auth import RefreshSessionInput, RefreshSessionOutput
from app.application.ports.token_port import TokenPort
from app.application.services.session_manager import SessionManager
from app.domain.exceptions import UnauthorizedError


class RefreshSessionUseCase:
    def __init__(self, *, token_port: TokenPort, session_manager: SessionManager):
        self._token_port = token_port
        self._session_manager = session_manager

    def execute(self, command: RefreshSessionInput) -> RefreshSessionOutput:
        token = command.refresh_token.strip()
        if not token:
            raise UnauthorizedError("Missing refresh token.")
        device_id = command.device_id.strip()
        if not device_id:
            raise UnauthorizedError("Missing device id.")

        claims = self._token_port.verify_refresh_token(token=token)
        if claims.device_id != device_id:
            raise UnauthorizedError("Device mismatch.")

        rotated = self._session_manager.rotate(refresh_token=token)
        return RefreshSessionOutput(
            access_token=rotated.access_token,
            refresh_token=rotated.refresh_token,
            expires_in=rotated.expires_in,
            refresh_expires_at=rotated.refresh_expires_at,
        )
