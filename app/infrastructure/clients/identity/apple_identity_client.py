from __future__ import annotations

import logging
import time

import httpx
import jwt

from app.application.dto.auth import ProviderProfile, ProviderTokens, VerifiedIdentity
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.domain.exceptions import InternalError, InvalidCredentialError, ProviderUnavailableError

from .jwks import AUTHENTICATION_FAILED, JwksKeyCache, claim_bool, claim_str, verify_identity_token


logger = logging.getLogger(__name__)

APPLE_JWKS_URL = "https://appleid.apple.com/auth/keys"
APPLE_ISSUER = "https://appleid.apple.com"
APPLE_TOKEN_URL = "https://appleid.apple.com/auth/token"
APPLE_REVOKE_URL = "https://appleid.apple.com/auth/revoke"
# Apple rejects client secrets that live longer than six months.
CLIENT_SECRET_TTL_SECONDS = 15777000


class AppleIdentityClient(IdentityProviderPort):
    provider = "apple"
    requires_authorization_code = True

    def __init__(
        self,
        *,
        team_id: str,
        key_id: str,
        bundle_id: str,
        private_key: str,
        key_cache: JwksKeyCache,
        timeout_seconds: float = 10,
        transport: httpx.BaseTransport | None = None,
    ):
        self._team_id = team_id
        self._key_id = key_id
        self._bundle_id = bundle_id
        self._private_key = private_key
        self._key_cache = key_cache
        self.timeout = timeout_seconds
        self._transport = transport

    def verify_identity(self, *, identity_token: str) -> VerifiedIdentity:
        claims = verify_identity_token(
            token=identity_token,
            key_cache=self._key_cache,
            issuers=(APPLE_ISSUER,),
            audience=self._bundle_id,
        )
        subject = claim_str(claims, "sub")
        if subject is None:
            raise InvalidCredentialError(AUTHENTICATION_FAILED)

        # Apple only includes the email on some sign-ins.
        return VerifiedIdentity(
            provider="apple",
            subject=subject,
            email=claim_str(claims, "email"),
            email_verified=claim_bool(claims.get("email_verified", False)),
            is_private_email=claim_bool(claims.get("is_private_email", False)),
        )

    def build_client_secret(self, *, now: int | None = None) -> str:
        issued_at = int(time.time()) if now is None else now
        payload = {
            "iss": self._team_id,
            "iat": issued_at,
            "exp": issued_at + CLIENT_SECRET_TTL_SECONDS,
            "aud": APPLE_ISSUER,
            "sub": self._bundle_id,
        }
        try:
            return jwt.encode(
                payload,
                self._private_key,
                algorithm="ES256",
                headers={"kid": self._key_id},
            )
        except (ValueError, TypeError, jwt.PyJWTError) as exc:
            raise InternalError("Apple client secret could not be signed.") from exc

    def exchange_authorization_code(self, *, code: str) -> ProviderTokens:
        form = {
            "client_id": self._bundle_id,
            "client_secret": self.build_client_secret(),
            "code": code,
            "grant_type": "authorization_code",
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(APPLE_TOKEN_URL, data=form)
        except httpx.HTTPError as exc:
            logger.warning("apple_identity_client: token_exchange_failed error=%s", type(exc).__name__)
            raise ProviderUnavailableError("Apple token endpoint is unavailable.") from exc

        if 400 <= response.status_code < 500:
            logger.info("apple_identity_client: code_rejected status=%s", response.status_code)
            raise InvalidCredentialError(AUTHENTICATION_FAILED)
        if response.status_code >= 500:
            logger.warning("apple_identity_client: token_exchange_failed status=%s", response.status_code)
            raise ProviderUnavailableError("Apple token endpoint is unavailable.")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderUnavailableError("Apple token endpoint returned invalid JSON.") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("access_token"), str):
            raise ProviderUnavailableError("Apple token endpoint returned an unexpected payload.")

        expires_in = payload.get("expires_in")
        return ProviderTokens(
            access_token=payload["access_token"],
            refresh_token=claim_str(payload, "refresh_token"),
            id_token=claim_str(payload, "id_token"),
            expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else 3600,
        )

    def fetch_profile(self, *, access_token: str) -> ProviderProfile | None:
        return None

    def revoke_tokens(self, *, refresh_token: str) -> None:
        try:
            client_secret = self.build_client_secret()
        except InternalError:
            logger.warning("apple_identity_client: revoke_skipped reason=client_secret")
            return
        form = {
            "client_id": self._bundle_id,
            "client_secret": client_secret,
            "token": refresh_token,
            "token_type_hint": "refresh_token",
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(APPLE_REVOKE_URL, data=form)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("apple_identity_client: revoke_failed error=%s", type(exc).__name__)
