"""Structured logging for bandpulse."""

from .logger import setup_logging, get_logger
from .logging_config import LoggingConfig, get_logging_config
from .formatters import JSONFormatter, StructuredLogAdapter
from .correlation import (
    CorrelationLogFilter,
    generate_correlation_id,
    generate_job_id,
    get_correlation_id,
    set_correlation_id,
    get_job_id,
    set_job_id,
    job_context,
)

__all__ = [
    # Logger
    'setup_logging',
    'get_logger',
    # Logging config
    'LoggingConfig',
    'get_logging_config',
    # Structured logging
    'JSONFormatter',
    'StructuredLogAdapter',
    # Correlation
    'CorrelationLogFilter',
    'generate_correlation_id',
    'generate_job_id',
    'get_correlation_id',
    'set_correlation_id',
    'get_job_id',
    'set_job_id',
    'job_context',
]
