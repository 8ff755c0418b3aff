from __future__ import annotations

import logging
from typing import Mapping

from app.application.ports.auth_port import AuthPort
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.ports.token_cipher_port import TokenCipherPort
from app.application.services.session_manager import SessionManager
from app.domain.entities.user import IdentityLink
from app.domain.exceptions import InternalError, NotFoundError

from .auth_common import utcnow


logger = logging.getLogger(__name__)


class DeleteAccountUseCase:
    def __init__(
        self,
        *,
        auth_port: AuthPort,
        session_manager: SessionManager,
        identity_providers: Mapping[str, IdentityProviderPort],
        token_cipher: TokenCipherPort | None = None,
    ):
        self._auth_port = auth_port
        self._session_manager = session_manager
        self._identity_providers = identity_providers
        self._token_cipher = token_cipher

    def execute(self, *, user_id: str) -> None:
        user = self._auth_port.get_user_by_id(user_id=user_id)
        if user is None or user.is_deleted:
            raise NotFoundError("User")

        links = self._auth_port.list_identity_links_for_user(user_id=user_id)
        self._auth_port.mark_user_deleted(user_id=user_id, deleted_at=utcnow())
        revoked = self._session_manager.revoke_all_for_user(user_id=user_id)
        logger.info("auth: account_deleted user_id=%s sessions_revoked=%s", user_id, revoked)

        for link in links:
            self._revoke_provider_tokens(link)

    def _revoke_provider_tokens(self, link: IdentityLink) -> None:
        if link.refresh_token_encrypted is None or self._token_cipher is None:
            return
        provider = self._identity_providers.get(link.provider)
        if provider is None:
            return
        try:
            refresh_token = self._token_cipher.decrypt(link.refresh_token_encrypted)
        except InternalError as exc:
            logger.warning(
                "auth: provider_revoke_skipped provider=%s user_id=%s error=%s",
                link.provider,
                link.user_id,
                exc,
            )
            return
        provider.revoke_tokens(refresh_token=refresh_token)
