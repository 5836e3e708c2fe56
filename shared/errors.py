"""
Shared error handling for the token service.
"""

from typing import Dict, Any, Optional, Tuple, Type
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for token service errors."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class TokenError(AccessLayerException):
    """Base class for token lifecycle errors.

    Subclasses set ``default_code`` and ``default_message`` so callers can
    discriminate on either the class or ``code``.
    """

    default_code = "TOKEN_ERROR"
    default_message = "Token error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(self.default_code, message or self.default_message, details)


class ConfigurationError(TokenError):
    """No key versions are configured."""

    default_code = "TOKEN_CONFIGURATION_ERROR"
    default_message = "No key versions configured"


class MissingClaimError(TokenError):
    """A claim required by the active key version was not supplied."""

    default_code = "TOKEN_MISSING_CLAIM"
    default_message = "Required claim is missing"

    def __init__(self, claim: str, details: Optional[Dict[str, Any]] = None):
        self.claim = claim
        merged = {"claim": claim}
        merged.update(details or {})
        super().__init__(f'Invalid value given for claim "{claim}"', merged)


class MalformedTokenError(TokenError):
    """Token text or its binary payload cannot be decoded."""

    default_code = "TOKEN_MALFORMED"
    default_message = "Token is malformed"


class MalformedPayloadError(MalformedTokenError):
    """Decrypted payload is not a valid serialized tuple."""

    default_code = "TOKEN_MALFORMED_PAYLOAD"
    default_message = "Token payload is malformed"


class InvalidVersionError(TokenError):
    """No configured key version decrypts the token."""

    default_code = "TOKEN_INVALID_VERSION"
    default_message = "Cannot decode token by given versions"


class ExpiredTokenError(TokenError):
    """Token expiry is in the past."""

    default_code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class RevokedTokenError(TokenError):
    """Token identifier is present in the revocation registry."""

    default_code = "TOKEN_REVOKED"
    default_message = "Token has been revoked"


class StoreUnavailableError(TokenError):
    """Revocation store could not be reached."""

    default_code = "TOKEN_STORE_UNAVAILABLE"
    default_message = "Revocation store unavailable"


# Kinds that make a token unusable; revoking such a token is a no-op.
REVOKE_NOOP_ERRORS: Tuple[Type[TokenError], ...] = (
    MalformedTokenError,
    InvalidVersionError,
    ExpiredTokenError,
    RevokedTokenError,
)
