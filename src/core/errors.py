"""Error taxonomy shared by the store, the Notion integration and the server."""

from __future__ import annotations

from typing import Optional

__all__ = [
    "AppError",
    "ValidationError",
    "ConversionError",
    "NotFoundError",
    "RemoteServiceError",
    "CryptoFormatError",
]


class AppError(RuntimeError):
    """Base class; carries a machine code and the HTTP status it maps to."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(AppError):
    """Malformed input: bad id, bad key format, oversize content."""

    code = "VALIDATION_ERROR"
    status_code = 400


class ConversionError(ValidationError):
    """Markdown could not be turned into Notion blocks."""

    code = "CONVERSION_ERROR"


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404


class RemoteServiceError(AppError):
    """A Notion API call failed; ``message`` is already user facing."""

    code = "REMOTE_ERROR"
    status_code = 500


class CryptoFormatError(AppError):
    """Stored ciphertext is malformed or cannot be decrypted."""

    code = "CRYPTO_FORMAT_ERROR"
    status_code = 500
