"""Base configuration settings."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_TOKEN_LENGTH = 12


class Settings(BaseSettings):
    """Application settings.

    Values are read from the environment (prefixed ``EHEALTHWAVE_``) and from
    an optional ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="EHEALTHWAVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "eHealthWave"
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"

    # Storage. None keeps grants and the ledger in process memory.
    database_url: Optional[str] = Field(
        default=None, description="SQLAlchemy URL for durable grant/ledger storage"
    )

    # Grant lifetimes
    default_pin_validity_minutes: int = 60
    default_token_validity_minutes: int = 30

    # Secret generation
    token_length: int = MIN_TOKEN_LENGTH
    secret_generation_max_attempts: int = 32

    # PIN guess limiting
    pin_guess_limit_enabled: bool = True
    pin_max_failed_attempts: int = 5
    pin_lockout_minutes: int = 15

    # Ledger
    genesis_message: str = "Genesis Block for eHealthWave"

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only console and json renderers exist."""
        v = v.lower()
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v

    @field_validator("token_length")
    @classmethod
    def validate_token_length(cls, v: int) -> int:
        """Keep sharing tokens long enough to resist guessing."""
        if v < MIN_TOKEN_LENGTH:
            raise ValueError(
                f"token_length must be at least {MIN_TOKEN_LENGTH} characters"
            )
        return v

    @field_validator(
        "default_pin_validity_minutes",
        "default_token_validity_minutes",
        "secret_generation_max_attempts",
        "pin_max_failed_attempts",
        "pin_lockout_minutes",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate that limits and lifetimes are positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v
