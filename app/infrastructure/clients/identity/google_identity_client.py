from __future__ import annotations

import logging

import httpx

from app.application.dto.auth import ProviderProfile, ProviderTokens, VerifiedIdentity
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.domain.exceptions import InvalidCredentialError

from .jwks import AUTHENTICATION_FAILED, JwksKeyCache, claim_bool, claim_str, verify_identity_token


logger = logging.getLogger(__name__)

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"


class GoogleIdentityClient(IdentityProviderPort):
    provider = "google"
    requires_authorization_code = False

    def __init__(
        self,
        *,
        client_id: str,
        key_cache: JwksKeyCache,
        timeout_seconds: float = 10,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client_id = client_id
        self._key_cache = key_cache
        self.timeout = timeout_seconds
        self._transport = transport

    def verify_identity(self, *, identity_token: str) -> VerifiedIdentity:
        claims = verify_identity_token(
            token=identity_token,
            key_cache=self._key_cache,
            issuers=GOOGLE_ISSUERS,
            audience=self._client_id,
        )
        subject = claim_str(claims, "sub")
        if subject is None:
            raise InvalidCredentialError(AUTHENTICATION_FAILED)

        return VerifiedIdentity(
            provider="google",
            subject=subject,
            email=claim_str(claims, "email"),
            email_verified=claim_bool(claims.get("email_verified", False)),
            name=claim_str(claims, "name"),
            given_name=claim_str(claims, "given_name"),
            family_name=claim_str(claims, "family_name"),
            picture=claim_str(claims, "picture"),
        )

    def exchange_authorization_code(self, *, code: str) -> ProviderTokens:
        raise InvalidCredentialError("Google sign-in does not use authorization codes.")

    def fetch_profile(self, *, access_token: str) -> ProviderProfile | None:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(
                    GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("google_identity_client: userinfo_failed error=%s", type(exc).__name__)
            return None

        if not isinstance(payload, dict):
            return None
        return ProviderProfile(
            name=claim_str(payload, "name"),
            given_name=claim_str(payload, "given_name"),
            family_name=claim_str(payload, "family_name"),
            picture=claim_str(payload, "picture"),
        )

    def revoke_tokens(self, *, refresh_token: str) -> None:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(GOOGLE_REVOKE_URL, data={"token": refresh_token})
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("google_identity_client: revoke_failed error=%s", type(exc).__name__)
