"""Core Exceptions Module.

This module defines custom exceptions used throughout the eHealthWave system.
Expected access denials (expired, unknown, spent or revoked secrets) are not
exceptions; they are returned as values by the services.
"""

from typing import Optional


class EHealthWaveError(Exception):
    """Base exception for all eHealthWave errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        """Initialize exception.

        Args:
            message: Error message
            code: Optional error code
        """
        super().__init__(message)
        self.code = code


class ValidationError(EHealthWaveError):
    """Raised when caller input is malformed."""

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError."""
        super().__init__(message, "VALIDATION_FAILED")


class StorageUnavailableError(EHealthWaveError):
    """Raised when the grant store or ledger cannot be read or written."""

    def __init__(self, message: str = "Storage unavailable"):
        """Initialize StorageUnavailableError."""
        super().__init__(message, "STORAGE_UNAVAILABLE")


class SecretGenerationError(EHealthWaveError):
    """Raised when no unused secret could be generated."""

    def __init__(self, message: str = "Could not generate a unique secret"):
        """Initialize SecretGenerationError."""
        super().__init__(message, "SECRET_GENERATION_FAILED")


class NotificationError(EHealthWaveError):
    """Raised by notification senders when delivery fails."""

    def __init__(self, message: str = "Notification delivery failed"):
        """Initialize NotificationError."""
        super().__init__(message, "NOTIFICATION_FAILED")


class ConfigurationError(EHealthWaveError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str = "Invalid configuration"):
        """Initialize ConfigurationError."""
        super().__init__(message, "CONFIGURATION_ERROR")
