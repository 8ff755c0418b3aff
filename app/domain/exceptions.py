from __future__ import annotations


class DomainError(Exception):
    """Base for domain errors."""


class UnauthorizedError(DomainError):
    """Missing or unacceptable credential, or a device binding mismatch."""


class InvalidCredentialError(UnauthorizedError):
    """Identity token from an external provider failed verification."""


class InvalidTokenError(UnauthorizedError):
    """Session token failed signature or claim verification."""


class RefreshTokenReuseError(InvalidTokenError):
    """A superseded refresh token was presented again; its family is revoked."""


class TokenExpiredError(UnauthorizedError):
    def __init__(self, token_type: str = "access"):
        super().__init__(f"{token_type.capitalize()} token expired.")
        self.token_type = token_type


class SessionRevokedError(UnauthorizedError):
    def __init__(self, message: str = "Session has been revoked."):
        super().__init__(message)


class InvalidInputError(DomainError):
    """Request data passed schema checks but breaks a domain rule."""


class NotFoundError(DomainError):
    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found.")
        self.resource = resource


class ConflictError(DomainError):
    """Identity linkage is in an unexpected state."""


class InternalError(DomainError):
    """Unexpected failure on our side or upstream."""


class ProviderUnavailableError(InternalError):
    """Identity provider unreachable, timed out or answered with garbage."""
