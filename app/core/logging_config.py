"""Structured logging configuration using structlog."""
import logging
import sys
from typing import Optional

import structlog

from app.core.config import settings


def setup_logging(level: str = "INFO", json_logs: Optional[bool] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines. Defaults to True in production and
                   to a human readable console renderer otherwise.
    """
    if json_logs is None:
        json_logs = settings.ENVIRONMENT == "production"

    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger bound to ``name``."""
    return structlog.get_logger(name)


def mask_phone_number(phone_number: Optional[str]) -> str:
    """Mask all but the last four characters of a phone number."""
    if not phone_number or len(phone_number) < 4:
        return "****"
    return "*" * (len(phone_number) - 4) + phone_number[-4:]


def mask_code(code: Optional[str]) -> Optional[str]:
    """Keep the first two characters of a presented code for correlation."""
    if not code:
        return None
    return code[:2] + "****"
