from __future__ import annotations

import logging
from datetime import timedelta
from typing import Mapping
from uuid import uuid4

from app.application.dto.auth import (
    AuthBundleOutput,
    AuthenticateInput,
    ProviderCredential,
    ProviderProfile,
    ProviderTokens,
    VerifiedIdentity,
)
from app.application.ports.auth_port import AuthPort
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.ports.token_cipher_port import TokenCipherPort
from app.application.ports.token_port import TokenPort
from app.application.services.session_manager import SessionManager
from app.domain.entities.user import User
from app.domain.exceptions import (
    ConflictError,
    InvalidCredentialError,
    NotFoundError,
    UnauthorizedError,
)

from .auth_common import build_auth_user_output, normalize_email, utcnow


logger = logging.getLogger(__name__)

TRIAL_PERIOD = timedelta(days=14)

DEFAULT_FULL_NAMES = {
    "google": "Google User",
    "apple": "Apple User",
}


class AuthenticateWithProviderUseCase:
    def __init__(
        self,
        *,
        auth_port: AuthPort,
        identity_providers: Mapping[str, IdentityProviderPort],
        session_manager: SessionManager,
        token_port: TokenPort,
        token_cipher: TokenCipherPort | None = None,
    ):
        self._auth_port = auth_port
        self._identity_providers = identity_providers
        self._session_manager = session_manager
        self._token_port = token_port
        self._token_cipher = token_cipher

    def execute(self, command: AuthenticateInput) -> AuthBundleOutput:
        provider = self._identity_providers.get(command.provider)
        if provider is None:
            raise UnauthorizedError("Unsupported identity provider.")

        credential = command.credential
        identity_token = credential.identity_token.strip()
        if not identity_token:
            raise InvalidCredentialError("Authentication failed.")
        identity = provider.verify_identity(identity_token=identity_token)

        provider_tokens: ProviderTokens | None = None
        if provider.requires_authorization_code:
            code = (credential.authorization_code or "").strip()
            if not code:
                raise InvalidCredentialError("Authentication failed.")
            provider_tokens = provider.exchange_authorization_code(code=code)

        profile: ProviderProfile | None = None
        if credential.access_token:
            profile = provider.fetch_profile(access_token=credential.access_token)

        # Only a provider-verified email may attach this identity to an existing account.
        can_link_by_email = bool(identity.email) and identity.email_verified
        raw_email = identity.email or credential.email_hint
        if not raw_email or not raw_email.strip():
            raise UnauthorizedError("Email address is required.")
        email = normalize_email(raw_email)
        full_name = _resolve_full_name(identity=identity, profile=profile, credential=credential)
        avatar_url = (profile.picture if profile else None) or identity.picture

        def _tx(auth_port: AuthPort) -> tuple[User, bool]:
            now = utcnow()
            link = auth_port.get_identity_link(
                provider=identity.provider,
                provider_subject=identity.subject,
            )
            if link is not None:
                user = auth_port.get_user_by_id(user_id=link.user_id)
                if user is None:
                    raise NotFoundError("User")
                _ensure_not_deleted(user)
                return user, False

            is_new_user = False
            user = auth_port.get_user_by_email(email=email)
            if user is None:
                user = auth_port.create_user(
                    user_id=str(uuid4()),
                    email=email,
                    email_verified=can_link_by_email,
                    full_name=full_name,
                    avatar_url=avatar_url,
                    trial_ends_at=now + TRIAL_PERIOD,
                    created_at=now,
                )
                auth_port.create_default_settings(user_id=user.id, created_at=now)
                is_new_user = True
            elif not can_link_by_email:
                logger.warning(
                    "auth: unverified_email_link_refused provider=%s user_id=%s",
                    identity.provider,
                    user.id,
                )
                raise ConflictError("An account with this email already exists.")
            else:
                _ensure_not_deleted(user)
                existing = auth_port.get_identity_link_for_user_provider(
                    user_id=user.id,
                    provider=identity.provider,
                )
                if existing is not None and existing.provider_subject != identity.subject:
                    logger.warning(
                        "auth: identity_link_conflict provider=%s user_id=%s",
                        identity.provider,
                        user.id,
                    )
                    raise ConflictError("Account is already linked to a different identity for this provider.")

            auth_port.create_identity_link(
                link_id=str(uuid4()),
                user_id=user.id,
                provider=identity.provider,
                provider_subject=identity.subject,
                provider_email=identity.email,
                created_at=now,
            )
            return user, is_new_user

        user, is_new_user = self._auth_port.execute_in_transaction(_tx)

        if provider_tokens is not None:
            self._store_provider_tokens(identity=identity, tokens=provider_tokens)

        created = self._session_manager.create_session(user_id=user.id, device=command.device)
        access = self._token_port.issue_access_token(
            user_id=user.id,
            email=user.email,
            tier=user.subscription_tier,
            now=utcnow(),
        )
        logger.info(
            "auth: authenticated provider=%s user_id=%s session_id=%s is_new_user=%s",
            identity.provider,
            user.id,
            created.session.id,
            is_new_user,
        )
        return AuthBundleOutput(
            user=build_auth_user_output(user),
            session_id=created.session.id,
            access_token=access.token,
            refresh_token=created.refresh_token,
            expires_in=access.expires_in,
            refresh_expires_at=created.refresh_expires_at,
            is_new_user=is_new_user,
        )

    def _store_provider_tokens(self, *, identity: VerifiedIdentity, tokens: ProviderTokens) -> None:
        if self._token_cipher is None:
            logger.warning("auth: provider_tokens_not_stored provider=%s reason=no_cipher", identity.provider)
            return
        self._auth_port.store_provider_tokens(
            provider=identity.provider,
            provider_subject=identity.subject,
            access_token_encrypted=self._token_cipher.encrypt(tokens.access_token),
            refresh_token_encrypted=(
                self._token_cipher.encrypt(tokens.refresh_token) if tokens.refresh_token else None
            ),
            token_expires_at=utcnow() + timedelta(seconds=tokens.expires_in),
        )


def _ensure_not_deleted(user: User) -> None:
    if user.is_deleted:
        raise UnauthorizedError("Account has been deleted.")


def _join_names(given: str | None, family: str | None) -> str | None:
    joined = " ".join(part.strip() for part in (given, family) if part and part.strip())
    return joined or None


def _resolve_full_name(
    *,
    identity: VerifiedIdentity,
    profile: ProviderProfile | None,
    credential: ProviderCredential,
) -> str:
    candidates = [
        credential.full_name_hint,
        identity.name,
        _join_names(identity.given_name, identity.family_name),
    ]
    if profile is not None:
        candidates.extend([profile.name, _join_names(profile.given_name, profile.family_name)])
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return DEFAULT_FULL_NAMES.get(identity.provider, "User")
