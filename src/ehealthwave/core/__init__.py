"""Core Module.

This module provides core functionality for the eHealthWave system.
"""

from .exceptions import (
    ConfigurationError,
    EHealthWaveError,
    NotificationError,
    SecretGenerationError,
    StorageUnavailableError,
    ValidationError,
)

__all__ = [
    "EHealthWaveError",
    "ValidationError",
    "StorageUnavailableError",
    "SecretGenerationError",
    "NotificationError",
    "ConfigurationError",
]
