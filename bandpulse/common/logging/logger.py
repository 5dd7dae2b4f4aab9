"""Centralized logging configuration."""

import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

from .formatters import JSONFormatter, StructuredLogAdapter
from .correlation import CorrelationLogFilter
from .logging_config import get_logging_config


# Global flag to track if logging is configured
_logging_configured = False


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    json_format: Optional[bool] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
    component: str = "default",
    force: bool = False,
) -> None:
    """
    Configure application-wide logging.

    Uses centralized logging-config.yaml for component-specific configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR). If None, uses centralized config
        log_file: Path to local log file (optional)
        json_format: Use JSON formatter for structured logs. If None, uses centralized config
        max_bytes: Max file size before rotation
        backup_count: Number of backup files
        component: Component name for centralized config (cli, worker, dispatcher)
        force: Reconfigure even if logging was already set up
    """
    global _logging_configured
    if _logging_configured and not force:
        return

    log_config = get_logging_config()

    if level is None:
        level = log_config.get_level(component)
    if json_format is None:
        json_format = log_config.get_json_format(component)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    correlation_filter = CorrelationLogFilter()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, level.upper()))
    console_handler.addFilter(correlation_filter)

    if json_format:
        console_handler.setFormatter(JSONFormatter(include_path=False))
    else:
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(job_id)s] %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(getattr(logging, level.upper()))
        file_handler.addFilter(correlation_filter)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    for module_name, module_level in log_config.module_levels().items():
        logging.getLogger(module_name).setLevel(getattr(logging, module_level))

    _logging_configured = True


def get_logger(name: str) -> StructuredLogAdapter:
    """
    Get structured logger adapter for a module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        StructuredLogAdapter with job ID support
    """
    return StructuredLogAdapter(logging.getLogger(name))
