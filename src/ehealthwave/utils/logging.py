"""Logging configuration for eHealthWave.

Services log through structlog with event names and key/value context.
Emergency PINs and sharing tokens must never reach a log sink, so every
event passes through ``redact_secrets`` before it is rendered.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional

import structlog
from structlog.stdlib import BoundLogger, LoggerFactory

from ehealthwave.config import Settings, get_settings

REDACTED = "[REDACTED]"
SECRET_KEYS = frozenset({"secret", "pin", "token", "display_secret"})


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask grant secrets passed as log context."""
    for key in SECRET_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure stdlib logging and structlog for the application.

    Args:
        settings: Settings to read level and format from; loaded if omitted
    """
    settings = settings or get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            render_processor(settings),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=True,
    )


def render_processor(settings: Optional[Settings] = None) -> Any:
    """JSON lines for log shipping, console output otherwise."""
    settings = settings or get_settings()

    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def get_logger(name: str) -> BoundLogger:
    """Get a configured logger instance."""
    bound_logger: BoundLogger = structlog.get_logger(name)
    return bound_logger
