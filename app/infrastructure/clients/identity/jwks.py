"""Provider signing-key cache and identity-token verification shared by every provider."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Iterable

import httpx
import jwt

from app.domain.exceptions import InvalidCredentialError, ProviderUnavailableError


logger = logging.getLogger(__name__)

AUTHENTICATION_FAILED = "Authentication failed."


@dataclass(frozen=True)
class JwksSnapshot:
    keys: dict[str, dict[str, Any]] = field(default_factory=dict)
    fetched_at: float = 0.0


class JwksKeyCache:
    """Process-wide key set for one provider.

    Readers take the current snapshot without locking; refreshes build a new
    snapshot and swap the reference under the lock, so a reader never sees a
    half-populated key set.
    """

    def __init__(
        self,
        *,
        jwks_url: str,
        cache_ttl_seconds: float = 86400,
        timeout_seconds: float = 10,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.jwks_url = jwks_url
        self.cache_ttl_seconds = cache_ttl_seconds
        self.timeout = timeout_seconds
        self._transport = transport
        self._clock = clock
        self._snapshot: JwksSnapshot | None = None
        self._lock = Lock()

    def get_key(self, kid: str, *, force_refresh: bool = False) -> dict[str, Any] | None:
        return self._current(force_refresh=force_refresh).keys.get(kid)

    def resolve_key(self, kid: str) -> dict[str, Any] | None:
        """Look up ``kid``, refetching once unless the key set was just loaded by this call."""
        requested_at = self._clock()
        snapshot = self._current(force_refresh=False)
        key = snapshot.keys.get(kid)
        if key is None and snapshot.fetched_at < requested_at:
            key = self.get_key(kid, force_refresh=True)
        return key

    def invalidate(self) -> None:
        with self._lock:
            self._snapshot = None

    def _is_fresh(self, snapshot: JwksSnapshot | None, now: float) -> bool:
        return snapshot is not None and (now - snapshot.fetched_at) < self.cache_ttl_seconds

    def _current(self, *, force_refresh: bool) -> JwksSnapshot:
        requested_at = self._clock()
        snapshot = self._snapshot
        if not force_refresh and self._is_fresh(snapshot, requested_at):
            return snapshot

        with self._lock:
            snapshot = self._snapshot
            if snapshot is not None:
                # Another request refreshed while this one waited on the lock.
                if force_refresh and snapshot.fetched_at > requested_at:
                    return snapshot
                if not force_refresh and self._is_fresh(snapshot, self._clock()):
                    return snapshot
            fresh = self._fetch()
            self._snapshot = fresh
            return fresh

    def _fetch(self) -> JwksSnapshot:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(self.jwks_url)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            logger.warning("jwks_key_cache: fetch_failed url=%s error=%s", self.jwks_url, exc)
            raise ProviderUnavailableError("Identity provider keys are unavailable.") from exc
        except ValueError as exc:
            logger.warning("jwks_key_cache: invalid_json url=%s", self.jwks_url)
            raise ProviderUnavailableError("Identity provider returned an invalid key set.") from exc

        raw_keys = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(raw_keys, list):
            logger.warning("jwks_key_cache: malformed_key_set url=%s", self.jwks_url)
            raise ProviderUnavailableError("Identity provider returned an invalid key set.")

        keys = {
            key["kid"]: key
            for key in raw_keys
            if isinstance(key, dict) and isinstance(key.get("kid"), str)
        }
        logger.info("jwks_key_cache: refreshed url=%s keys=%s", self.jwks_url, len(keys))
        return JwksSnapshot(keys=keys, fetched_at=self._clock())


def verify_identity_token(
    *,
    token: str,
    key_cache: JwksKeyCache,
    issuers: Iterable[str],
    audience: str,
    algorithms: tuple[str, ...] = ("RS256",),
    now: float | None = None,
) -> dict[str, Any]:
    """Verify signature, issuer, audience and expiry of a provider identity token.

    An unknown ``kid`` triggers at most one forced refresh of the key set.
    """
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as exc:
        raise InvalidCredentialError(AUTHENTICATION_FAILED) from exc

    kid = header.get("kid")
    if not kid or not isinstance(kid, str):
        logger.info("identity_token: missing_kid")
        raise InvalidCredentialError(AUTHENTICATION_FAILED)

    key_data = key_cache.resolve_key(kid)
    if key_data is None:
        logger.info("identity_token: unknown_kid kid=%s url=%s", kid, key_cache.jwks_url)
        raise InvalidCredentialError(AUTHENTICATION_FAILED)

    try:
        signing_key = jwt.PyJWK(key_data)
    except jwt.PyJWTError as exc:
        raise ProviderUnavailableError("Identity provider returned an unusable key.") from exc

    try:
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=list(algorithms),
            audience=audience,
            options={"require": ["iss", "aud", "exp", "sub"]},
        )
    except jwt.PyJWTError as exc:
        logger.info("identity_token: rejected kid=%s reason=%s", kid, type(exc).__name__)
        raise InvalidCredentialError(AUTHENTICATION_FAILED) from exc

    if claims.get("iss") not in set(issuers):
        logger.info("identity_token: rejected kid=%s reason=issuer", kid)
        raise InvalidCredentialError(AUTHENTICATION_FAILED)

    exp = claims.get("exp")
    current = time.time() if now is None else now
    if not isinstance(exp, (int, float)) or exp <= current:
        raise InvalidCredentialError(AUTHENTICATION_FAILED)

    return claims


def claim_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def claim_str(claims: dict[str, Any], key: str) -> str | None:
    value = claims.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
