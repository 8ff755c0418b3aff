from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


def _csv(name: str, default: str = "") -> tuple[str, ...]:
    value = _env(name, default) or ""
    return tuple(item.strip() for item in value.split(",") if item.strip())


def normalize_private_key(value: str) -> str:
    """Accept a PEM key pasted with literal ``\\n`` sequences or base64 encoded."""
    key = value.strip()
    if not key:
        return ""
    if "-" not in key and " " not in key and "\n" not in key:
        try:
            decoded = base64.b64decode(key, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            decoded = ""
        if "-----BEGIN" in decoded:
            return decoded
    return key.replace("\\\\n", "\n").replace("\\n", "\n")


@dataclass(frozen=True)
class Settings:
    postgres_dsn: str
    jwt_access_secret: str
    jwt_refresh_secret: str
    jwt_access_expiry: str
    jwt_refresh_expiry: str
    jwt_issuer: str
    jwt_audience: str
    google_client_id: str
    apple_team_id: str
    apple_key_id: str
    apple_bundle_id: str
    apple_private_key: str
    identity_keys_cache_ttl_seconds: float
    identity_http_timeout_seconds: float
    encryption_key: str
    log_level: str
    cors_origins: tuple[str, ...]


def get_settings() -> Settings:
    return Settings(
        postgres_dsn=_env("POSTGRES_DSN", ""),
        jwt_access_secret=_env("JWT_ACCESS_SECRET", ""),
        jwt_refresh_secret=_env("JWT_REFRESH_SECRET", ""),
        jwt_access_expiry=_env("JWT_ACCESS_EXPIRY", "15m"),
        jwt_refresh_expiry=_env("JWT_REFRESH_EXPIRY", "30d"),
        jwt_issuer=_env("JWT_ISSUER", "mileagemax-pro"),
        jwt_audience=_env("JWT_AUDIENCE", "mileagemax-pro-ios"),
        google_client_id=_env("GOOGLE_CLIENT_ID", ""),
        apple_team_id=_env("APPLE_TEAM_ID", ""),
        apple_key_id=_env("APPLE_KEY_ID", ""),
        apple_bundle_id=_env("APPLE_BUNDLE_ID", ""),
        apple_private_key=normalize_private_key(_env("APPLE_PRIVATE_KEY", "")),
        identity_keys_cache_ttl_seconds=float(_env("IDENTITY_KEYS_CACHE_TTL_SECONDS", "86400")),
        identity_http_timeout_seconds=float(_env("IDENTITY_HTTP_TIMEOUT_SECONDS", "10")),
        encryption_key=_env("ENCRYPTION_KEY", ""),
        log_level=_env("LOG_LEVEL", "INFO"),
        cors_origins=_csv("CORS_ORIGINS", "http://localhost:3000"),
    )
