"""Configuration module for eHealthWave."""

from ehealthwave.config.base import Settings
from ehealthwave.config.loader import get_settings

__all__ = ["Settings", "get_settings"]
