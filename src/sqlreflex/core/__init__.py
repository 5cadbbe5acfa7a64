"""sqlreflex core module - shared errors and masking helpers."""

from sqlreflex.core.errors import (
    ConfigError,
    CursorError,
    CursorRegressionError,
    InvalidCursorError,
    InvalidCursorStateError,
    MetadataDisabledError,
    ReflexError,
    StorageError,
    TransientStorageError,
    WriteRejectedError,
)
from sqlreflex.core.security import (
    is_sensitive_field,
    mask_database_url,
    sanitize_for_logging,
)

__all__ = [
    # Errors
    "ReflexError",
    "StorageError",
    "TransientStorageError",
    "WriteRejectedError",
    "MetadataDisabledError",
    "CursorError",
    "CursorRegressionError",
    "InvalidCursorStateError",
    "InvalidCursorError",
    "ConfigError",
    # Security
    "is_sensitive_field",
    "mask_database_url",
    "sanitize_for_logging",
]
