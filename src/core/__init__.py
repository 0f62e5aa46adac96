"""Configuration, errors, validation and secret handling."""

from .config import Config, load_config, validate_config  # noqa: F401
from .errors import (
    AppError,
    ConversionError,
    CryptoFormatError,
    NotFoundError,
    RemoteServiceError,
    ValidationError,
)  # noqa: F401
