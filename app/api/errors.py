from __future__ import annotations

import logging

from fastapi import HTTPException

from app.domain.exceptions import (
    ConflictError,
    DomainError,
    InvalidCredentialError,
    InvalidInputError,
    InvalidTokenError,
    NotFoundError,
    ProviderUnavailableError,
    RefreshTokenReuseError,
    SessionRevokedError,
    TokenExpiredError,
    UnauthorizedError,
)


logger = logging.getLogger(__name__)

# Checked in order, so subclasses come before their bases.
_ERROR_MAP: tuple[tuple[type[DomainError], int, str], ...] = (
    (RefreshTokenReuseError, 401, "SESSION_REVOKED"),
    (SessionRevokedError, 401, "SESSION_REVOKED"),
    (TokenExpiredError, 401, "TOKEN_EXPIRED"),
    (InvalidCredentialError, 401, "INVALID_CREDENTIAL"),
    (InvalidTokenError, 401, "INVALID_TOKEN"),
    (UnauthorizedError, 401, "UNAUTHORIZED"),
    (NotFoundError, 404, "NOT_FOUND"),
    (ConflictError, 409, "CONFLICT"),
    (InvalidInputError, 422, "INVALID_INPUT"),
    (ProviderUnavailableError, 502, "PROVIDER_UNAVAILABLE"),
)


def http_error(exc: DomainError) -> HTTPException:
    for error_type, status_code, code in _ERROR_MAP:
        if isinstance(exc, error_type):
            message = "Authentication failed." if error_type is InvalidCredentialError else str(exc)
            return HTTPException(status_code=status_code, detail={"code": code, "message": message})

    logger.error("api: internal_error type=%s error=%s", type(exc).__name__, exc)
    return HTTPException(
        status_code=500,
        detail={"code": "INTERNAL_ERROR", "message": "Internal server error."},
    )
