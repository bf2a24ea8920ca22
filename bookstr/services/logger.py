"""Centralized logging service using loguru."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from bookstr.config import settings

# Remove default handler
logger.remove()

# Add console handler with color
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

if settings.log_to_file:
    LOG_DIR = Path(settings.log_dir)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.add(
        LOG_DIR / "bookstr_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG",
        rotation="00:00",  # New file at midnight
        retention="7 days",
        compression="zip",
    )

# Reduce noise from framework/network libraries
for logger_name in (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "sse_starlette.sse",
    "httpx",
    "httpcore",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def log_query_step(
    attempt_id: str,
    step: str,
    status: str,
    data: Optional[dict] = None,
) -> None:
    """Log a step of a query attempt."""
    step_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "attempt_id": attempt_id,
        "step": step,
        "status": status,
        "data": data,
    }
    logger.info(f"QUERY_STEP: {step_data}")


def log_source_failure(source_id: str, error: Any) -> None:
    """Log a failed or timed out source. Never fatal."""
    failure = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source_id": source_id,
        "error": str(error),
        "error_type": type(error).__name__,
    }
    logger.warning(f"SOURCE_FAILED: {failure}")


def log_event(
    event_type: str,
    message: str,
    **kwargs,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {event_data}")
