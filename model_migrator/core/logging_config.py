"""Logging configuration for the model migrator with dual output (console + file)."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from ..constants import LOG_FILE_NAME, LOG_FORMAT, SECURITY_FIELDS

_SENSITIVE = {field.lower() for field in SECURITY_FIELDS}


def redact_sensitive_fields(logger: Any, method_name: str, event_dict: dict) -> dict:
    """structlog processor replacing key and token values with a marker."""
    for key in event_dict:
        if key.lower() in _SENSITIVE:
            event_dict[key] = "[REDACTED]"
    return event_dict


def setup_logging(
    log_dir: Path | str | None = Path("logs"),
    log_level: str | None = None,
    max_file_size_mb: int = 10,
) -> None:
    """Setup logging: console plus an optional size-capped JSON log file.

    Creates one log file, migrator.log, holding the full run transcript of
    probe diagnostics, per-model phases and the batch summary.

    Args:
        log_dir: Directory for the log file, or None for console-only logging
        log_level: Log level (defaults to LOG_LEVEL env var or INFO)
        max_file_size_mb: Max file size before truncation (no backup files kept)
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    log_level_num = getattr(logging, log_level.upper(), logging.INFO)

    # Clear any existing handlers to prevent duplicates
    logging.getLogger().handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level_num)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level_num)
    root_logger.addHandler(console_handler)

    file_handler: RotatingFileHandler | None = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=0,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level_num)
        root_logger.addHandler(file_handler)

    # aiohttp access noise stays out of the transcript unless debugging
    if log_level_num > logging.DEBUG:
        logging.getLogger("aiohttp").setLevel(logging.WARNING)

    from structlog.stdlib import BoundLogger, LoggerFactory, ProcessorFormatter

    renderer = (
        structlog.dev.ConsoleRenderer()
        if sys.stderr.isatty()
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            redact_sensitive_fields,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=True,
    )
    console_handler.setFormatter(
        ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=[structlog.processors.add_log_level],
        )
    )
    if file_handler is not None:
        file_handler.setFormatter(
            ProcessorFormatter(processor=structlog.processors.JSONRenderer())
        )

    logger = structlog.get_logger("migrator")
    logger.info(
        "Logging system initialized",
        log_dir=str(Path(log_dir).absolute()) if log_dir is not None else None,
        log_level=log_level,
        max_file_size_mb=max_file_size_mb,
    )


def setup_basic_logging(log_level: str) -> logging.Logger:
    """Fallback console logging when the structured setup cannot be applied."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    return logging.getLogger("model_migrator")


def get_migrator_logger() -> Any:
    """Get logger for run-level migrator operations."""
    return structlog.get_logger("migrator")
