"""
Threema Gateway exception hierarchy.

All exceptions inherit from GatewayError for easy catching. Protocol errors
(ApiError) are recoverable per request; construction errors signal bad
configuration and are raised before any network activity.
"""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base exception for all threema_gateway errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ApiError(GatewayError):
    """Gateway request failed."""

    def __init__(
        self, message: str, *, code: int | None = None, endpoint: str | None = None
    ) -> None:
        super().__init__(message, code=code, endpoint=endpoint)
        self.code = code
        self.endpoint = endpoint


class BadSenderOrRecipientError(ApiError):
    """The recipient is invalid or the account is not set up for this mode."""

    def __init__(self, message: str = "Bad sender or recipient", *, endpoint: str | None = None) -> None:
        super().__init__(message, code=400, endpoint=endpoint)


class BadCredentialsError(ApiError):
    """API identity or secret is incorrect."""

    def __init__(self, message: str = "Bad credentials", *, endpoint: str | None = None) -> None:
        super().__init__(message, code=401, endpoint=endpoint)


class NoCreditsError(ApiError):
    """No credits remain."""

    def __init__(self, message: str = "No credits remaining", *, endpoint: str | None = None) -> None:
        super().__init__(message, code=402, endpoint=endpoint)


class IdNotFoundError(ApiError):
    """Target ID not found."""

    def __init__(self, message: str = "ID not found", *, endpoint: str | None = None) -> None:
        super().__init__(message, code=404, endpoint=endpoint)


class MessageTooLongError(ApiError):
    """Message is too long, either rejected by the server or before encryption."""

    def __init__(
        self,
        message: str = "Message too long",
        *,
        code: int | None = 413,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(message, code=code, endpoint=endpoint)


class ServerError(ApiError):
    """Internal server error."""

    def __init__(self, message: str = "Internal server error", *, endpoint: str | None = None) -> None:
        super().__init__(message, code=500, endpoint=endpoint)


class BadHashLengthError(ApiError):
    """A hashed lookup value has the wrong length."""

    def __init__(self, message: str = "Bad hash length", *, endpoint: str | None = None) -> None:
        super().__init__(message, code=400, endpoint=endpoint)


class TransportError(ApiError):
    """Network-level failure (connection error, timeout, unreadable body)."""


class UnparsedResponseError(ApiError):
    """The response body could not be interpreted."""


class UnexpectedStatusError(ApiError):
    """Response status code without a known meaning."""

    def __init__(self, code: int, *, endpoint: str | None = None) -> None:
        super().__init__(f"Bad response status code: {code}", code=code, endpoint=endpoint)


class ConstructionError(GatewayError):
    """Invalid keys or configuration, detected at setup time."""


class InvalidKeyError(ConstructionError):
    """Key material has the wrong length."""


class InvalidKeyEncodingError(InvalidKeyError):
    """Key material could not be decoded."""


class InvalidNonceError(ConstructionError):
    """Nonce has the wrong length."""


class InvalidBlobIdError(ConstructionError, ValueError):
    """Blob id is not 16 bytes or not valid hex."""


class InvalidFieldError(ConstructionError, ValueError):
    """A message field is out of range (blob key length, file or image size)."""


class MissingPrivateKeyError(ConstructionError):
    """End-to-end mode requested without a private key."""

    def __init__(self, message: str = "Private key required for end-to-end mode") -> None:
        super().__init__(message)


class InvalidEndpointError(ConstructionError):
    """Custom endpoint is not an http(s) URL."""

    def __init__(self, message: str, *, endpoint: str) -> None:
        super().__init__(message, endpoint=endpoint)
        self.endpoint = endpoint


class ConfigError(ConstructionError):
    """Settings are missing or invalid."""


class CryptoError(GatewayError):
    """Cryptographic operation failed."""


class AuthenticationFailure(CryptoError):
    """Ciphertext failed authentication (tampering or key/nonce mismatch)."""

    def __init__(self, message: str = "Decryption failed: message could not be authenticated") -> None:
        super().__init__(message)


class BadMacError(CryptoError):
    """Incoming callback MAC does not match."""


class MessageDecodeError(GatewayError):
    """Decrypted plaintext is not a well-formed message."""
