from __future__ import annotations

from app.application.ports.auth_port import AuthPort
from app.application.ports.token_port import TokenPort
from app.domain.entities.user import User
from app.domain.exceptions import UnauthorizedError


class GetCurrentUserUseCase:
    def __init__(self, *, auth_port: AuthPort, token_port: TokenPort):
        self._auth_port = auth_port
        self._token_port = token_port

    def execute(self, *, access_token: str) -> User:
        claims = self._token_port.verify_access_token(token=access_token)
        user = self._auth_port.get_user_by_id(user_id=claims.user_id)
        if user is None or user.is_deleted:
            raise UnauthorizedError("User not found.")
        return user
