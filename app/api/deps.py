from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from app.api.errors import http_error
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.services.session_manager import SessionManager
from app.application.use_cases.authenticate_with_provider import AuthenticateWithProviderUseCase
from app.application.use_cases.delete_account import DeleteAccountUseCase
from app.application.use_cases.get_current_user import GetCurrentUserUseCase
from app.application.use_cases.list_sessions import ListSessionsUseCase
from app.application.use_cases.logout_session import LogoutSessionUseCase
from app.application.use_cases.refresh_session import RefreshSessionUseCase
from app.application.use_cases.update_profile import UpdateProfileUseCase
from app.domain.entities.user import User
from app.domain.exceptions import DomainError
from app.infrastructure.clients.identity.apple_identity_client import (
    APPLE_JWKS_URL,
    AppleIdentityClient,
)
from app.infrastructure.clients.identity.google_identity_client import (
    GOOGLE_JWKS_URL,
    GoogleIdentityClient,
)
from app.infrastructure.clients.identity.jwks import JwksKeyCache
from app.infrastructure.db.engine import get_engine
from app.infrastructure.db.repositories.accounts_repository import SqlAccountsRepository
from app.infrastructure.security.token_cipher import AesGcmTokenCipher
from app.infrastructure.security.token_service import JwtTokenService
from app.shared.config import get_settings


logger = logging.getLogger(__name__)


def _get_db_engine():
    settings = get_settings()
    if not settings.postgres_dsn:
        raise HTTPException(status_code=500, detail="POSTGRES_DSN is required.")
    return get_engine(settings.postgres_dsn)


def _get_accounts_repository() -> SqlAccountsRepository:
    return SqlAccountsRepository(_get_db_engine())


@lru_cache(maxsize=1)
def _get_token_service() -> JwtTokenService:
    settings = get_settings()
    if not settings.jwt_access_secret or not settings.jwt_refresh_secret:
        raise HTTPException(status_code=500, detail="JWT_ACCESS_SECRET and JWT_REFRESH_SECRET are required.")
    try:
        return JwtTokenService(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_expiry=settings.jwt_access_expiry,
            refresh_expiry=settings.jwt_refresh_expiry,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
        )
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@lru_cache(maxsize=1)
def _get_token_cipher() -> AesGcmTokenCipher | None:
    settings = get_settings()
    if not settings.encryption_key:
        logger.warning("deps: encryption_key_missing provider_tokens=not_stored")
        return None
    return AesGcmTokenCipher(key_hex=settings.encryption_key)


@lru_cache(maxsize=1)
def _get_google_identity_client() -> GoogleIdentityClient:
    settings = get_settings()
    if not settings.google_client_id:
        raise HTTPException(status_code=500, detail="GOOGLE_CLIENT_ID is required.")
    return GoogleIdentityClient(
        client_id=settings.google_client_id,
        key_cache=JwksKeyCache(
            jwks_url=GOOGLE_JWKS_URL,
            cache_ttl_seconds=settings.identity_keys_cache_ttl_seconds,
            timeout_seconds=settings.identity_http_timeout_seconds,
        ),
        timeout_seconds=settings.identity_http_timeout_seconds,
    )


@lru_cache(maxsize=1)
def _get_apple_identity_client() -> AppleIdentityClient:
    settings = get_settings()
    if not settings.apple_bundle_id:
        raise HTTPException(status_code=500, detail="APPLE_BUNDLE_ID is required.")
    if not (settings.apple_team_id and settings.apple_key_id and settings.apple_private_key):
        raise HTTPException(
            status_code=500,
            detail="APPLE_TEAM_ID, APPLE_KEY_ID and APPLE_PRIVATE_KEY are required.",
        )
    return AppleIdentityClient(
        team_id=settings.apple_team_id,
        key_id=settings.apple_key_id,
        bundle_id=settings.apple_bundle_id,
        private_key=settings.apple_private_key,
        key_cache=JwksKeyCache(
            jwks_url=APPLE_JWKS_URL,
            cache_ttl_seconds=settings.identity_keys_cache_ttl_seconds,
            timeout_seconds=settings.identity_http_timeout_seconds,
        ),
        timeout_seconds=settings.identity_http_timeout_seconds,
    )


def _get_identity_providers() -> dict[str, IdentityProviderPort]:
    # Providers are resolved lazily so a missing Apple config does not break Google sign-in.
    settings = get_settings()
    providers: dict[str, IdentityProviderPort] = {}
    if settings.google_client_id:
        providers["google"] = _get_google_identity_client()
    if settings.apple_bundle_id:
        providers["apple"] = _get_apple_identity_client()
    return providers


def _get_session_manager() -> SessionManager:
    repository = _get_accounts_repository()
    return SessionManager(
        session_store=repository,
        auth_port=repository,
        token_port=_get_token_service(),
    )


def get_google_auth_use_case() -> AuthenticateWithProviderUseCase:
    return AuthenticateWithProviderUseCase(
        auth_port=_get_accounts_repository(),
        identity_providers={"google": _get_google_identity_client()},
        session_manager=_get_session_manager(),
        token_port=_get_token_service(),
        token_cipher=_get_token_cipher(),
    )


def get_apple_auth_use_case() -> AuthenticateWithProviderUseCase:
    return AuthenticateWithProviderUseCase(
        auth_port=_get_accounts_repository(),
        identity_providers={"apple": _get_apple_identity_client()},
        session_manager=_get_session_manager(),
        token_port=_get_token_service(),
        token_cipher=_get_token_cipher(),
    )


def get_refresh_session_use_case() -> RefreshSessionUseCase:
    return RefreshSessionUseCase(
        token_port=_get_token_service(),
        session_manager=_get_session_manager(),
    )


def get_logout_session_use_case() -> LogoutSessionUseCase:
    return LogoutSessionUseCase(
        session_store=_get_accounts_repository(),
        session_manager=_get_session_manager(),
    )


def get_list_sessions_use_case() -> ListSessionsUseCase:
    return ListSessionsUseCase(session_manager=_get_session_manager())


def get_delete_account_use_case() -> DeleteAccountUseCase:
    return DeleteAccountUseCase(
        auth_port=_get_accounts_repository(),
        session_manager=_get_session_manager(),
        identity_providers=_get_identity_providers(),
        token_cipher=_get_token_cipher(),
    )


def get_update_profile_use_case() -> UpdateProfileUseCase:
    return UpdateProfileUseCase(auth_port=_get_accounts_repository())


def get_current_user_use_case() -> GetCurrentUserUseCase:
    return GetCurrentUserUseCase(
        auth_port=_get_accounts_repository(),
        token_port=_get_token_service(),
    )


def get_current_user(
    authorization: str | None = Header(default=None),
    use_case: GetCurrentUserUseCase = Depends(get_current_user_use_case),
) -> User:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHORIZED", "message": "Invalid authorization header."},
        )
    token = authorization.replace("Bearer ", "", 1).strip()
    if not token:
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHORIZED", "message": "Missing access token."},
        )

    try:
        return use_case.execute(access_token=token)
    except DomainError as exc:
        raise http_error(exc) from exc
