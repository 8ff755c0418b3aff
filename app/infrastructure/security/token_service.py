from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone

import jwt

from app.application.ports.token_port import TokenPort
from app.domain.entities.token import (
    AccessTokenClaims,
    IssuedAccessToken,
    IssuedRefreshToken,
    RefreshTokenClaims,
)
from app.domain.exceptions import InvalidTokenError, TokenExpiredError
from app.shared.durations import parse_duration_seconds


_ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32


class JwtTokenService(TokenPort):
    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        access_expiry: str,
        refresh_expiry: str,
        issuer: str,
        audience: str,
    ):
        if len(access_secret or "") < MIN_SECRET_LENGTH or len(refresh_secret or "") < MIN_SECRET_LENGTH:
            raise ValueError(f"Access and refresh secrets must be at least {MIN_SECRET_LENGTH} characters.")
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh secrets must differ.")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self._access_ttl_seconds = parse_duration_seconds(access_expiry)
        self._refresh_ttl_seconds = parse_duration_seconds(refresh_expiry)
        self._issuer = issuer
        self._audience = audience

    @property
    def access_ttl_seconds(self) -> int:
        return self._access_ttl_seconds

    def issue_access_token(
        self,
        *,
        user_id: str,
        email: str,
        tier: str,
        now: datetime | None = None,
    ) -> IssuedAccessToken:
        issued_at = now or utcnow()
        exp = issued_at + timedelta(seconds=self._access_ttl_seconds)
        payload = {
            "sub": user_id,
            "email": email,
            "tier": tier,
            "type": "access",
            "jti": _token_id(),
            "iss": self._issuer,
            "aud": self._audience,
            "iat": int(issued_at.timestamp()),
            "exp": int(exp.timestamp()),
        }
        token = jwt.encode(payload, self._access_secret, algorithm=_ALGORITHM)
        return IssuedAccessToken(token=token, expires_in=self._access_ttl_seconds)

    def issue_refresh_token(
        self,
        *,
        user_id: str,
        session_id: str,
        device_id: str,
        family_id: str,
        now: datetime | None = None,
    ) -> IssuedRefreshToken:
        issued_at = now or utcnow()
        exp = issued_at + timedelta(seconds=self._refresh_ttl_seconds)
        payload = {
            "sub": user_id,
            "sid": session_id,
            "did": device_id,
            "fam": family_id,
            "type": "refresh",
            "jti": _token_id(),
            "iss": self._issuer,
            "aud": self._audience,
            "iat": int(issued_at.timestamp()),
            "exp": int(exp.timestamp()),
        }
        token = jwt.encode(payload, self._refresh_secret, algorithm=_ALGORITHM)
        return IssuedRefreshToken(token=token, expires_at=exp.replace(microsecond=0))

    def verify_access_token(self, *, token: str) -> AccessTokenClaims:
        payload = self._decode(token=token, secret=self._access_secret, token_type="access")
        return AccessTokenClaims(
            user_id=_required_str(payload, "sub"),
            email=_required_str(payload, "email"),
            tier=_required_str(payload, "tier"),
            token_id=_required_str(payload, "jti"),
            issued_at=_required_int(payload, "iat"),
            expires_at=_required_int(payload, "exp"),
        )

    def verify_refresh_token(self, *, token: str) -> RefreshTokenClaims:
        payload = self._decode(token=token, secret=self._refresh_secret, token_type="refresh")
        return RefreshTokenClaims(
            user_id=_required_str(payload, "sub"),
            session_id=_required_str(payload, "sid"),
            device_id=_required_str(payload, "did"),
            family_id=_required_str(payload, "fam"),
            token_id=_required_str(payload, "jti"),
            issued_at=_required_int(payload, "iat"),
            expires_at=_required_int(payload, "exp"),
        )

    def hash_refresh_token(self, *, refresh_token: str) -> str:
        return hashlib.sha256(refresh_token.encode("utf-8")).hexdigest()

    def _decode(self, *, token: str, secret: str, token_type: str) -> dict:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                audience=self._audience,
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError(token_type) from exc
        except jwt.PyJWTError as exc:
            raise InvalidTokenError(f"Invalid {token_type} token.") from exc

        if payload.get("type") != token_type:
            raise InvalidTokenError("Invalid token type.")
        return payload


def _token_id() -> str:
    return secrets.token_hex(16)


def _required_str(payload: dict, key: str) -> str:
    value = payload.get(key)
    if not value or not isinstance(value, str):
        raise InvalidTokenError(f"Invalid token claim: {key}.")
    return value


def _required_int(payload: dict, key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidTokenError(f"Invalid token claim: {key}.")
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
