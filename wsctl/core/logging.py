"""Structured logging for wsctl: rotating file handler, child exit logging."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from typing import Any

from wsctl.core.config import AppConfig

LOGGER_NAME = "wsctl"


def setup_logging(
    config: AppConfig,
    log_file: str = "wsctl.log",
    max_bytes: int = 5 * 1024 * 1024,  # 5MB
    backup_count: int = 3,
    file_logging: bool = True,
) -> logging.Logger:
    """Configure the wsctl logger from the given config.

    Calling it again replaces the handlers, so each invocation gets exactly
    one console handler and at most one file handler.
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console handler (WARNING and above only)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if file_logging:
        try:
            config.logs_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                config.logs_dir / log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning("File logging disabled, cannot write to %s: %s", config.logs_dir, e)
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def log_child_exit(
    tool: str,
    command: str,
    exit_code: int,
    duration_ms: float,
) -> None:
    """Log the outcome of a bridged tool invocation."""
    logger = logging.getLogger(LOGGER_NAME)
    if exit_code != 0:
        logger.info("Tool exit name=%s cmd=%r code=%d duration=%.0fms", tool, command, exit_code, duration_ms)
    else:
        logger.debug("Tool exit name=%s cmd=%r code=0 duration=%.0fms", tool, command, duration_ms)


def log_error(
    category: str,
    message: str,
    **extra: Any,
) -> None:
    """Log a classified error."""
    logger = logging.getLogger(LOGGER_NAME)
    extra_str = " ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""
    logger.error("Error category=%s message=%s %s", category, message, extra_str)
