"""Correlation and job ID context for log tracing."""

import uuid
import logging
import contextvars
from contextlib import contextmanager
from typing import Iterator, Optional


# Context variable for correlation ID (thread-safe, async-safe)
correlation_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

# Context variable for job ID
job_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job_id", default=None
)


def generate_correlation_id() -> str:
    """Generate unique correlation ID."""
    return str(uuid.uuid4())[:8]


def generate_job_id() -> str:
    """Generate unique job ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    """Get current correlation ID from context."""
    return correlation_id_var.get()


def set_correlation_id(cid: str | None):
    """Set correlation ID in context."""
    correlation_id_var.set(cid)


def get_job_id() -> str | None:
    """Get current job ID from context."""
    return job_id_var.get()


def set_job_id(jid: str | None):
    """Set job ID in context."""
    job_id_var.set(jid)


@contextmanager
def job_context(job_id: str, correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind job ID (and correlation ID) to the current context.

    Used by worker units so every log record and error raised while a job
    runs carries its identifier. Previous values are restored on exit.

    Usage:
        with job_context(job_id):
            task.execute(context)
    """
    job_token = job_id_var.set(job_id)
    cid_token = correlation_id_var.set(correlation_id or job_id[:8])
    try:
        yield job_id
    finally:
        job_id_var.reset(job_token)
        correlation_id_var.reset(cid_token)


class CorrelationLogFilter(logging.Filter):
    """
    Logging filter that adds correlation_id and job_id to log records.

    Use with standard logging to auto-inject context vars.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.job_id = get_job_id()
        return True
