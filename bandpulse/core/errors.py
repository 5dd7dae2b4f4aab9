"""
Custom error classes with structured logging and error propagation.

All errors include job context and structured data for observability.
Errors cross the worker boundary as dictionaries (to_dict) and are rebuilt
on the caller side with error_from_dict.
"""

import logging
from typing import Optional, Dict, Any, Type

from bandpulse.common.logging import get_logger
from bandpulse.common.logging.correlation import get_correlation_id, get_job_id

logger = get_logger(__name__)


class BandPulseError(Exception):
    """
    Base error class for all application errors.

    Automatically logs errors with job context when raised.
    """

    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        log: bool = True,
    ):
        """
        Initialize error with structured context.

        Args:
            message: Human-readable error message
            data: Structured data for observability
            cause: Original exception that caused this error
            log: Log on construction (off when rebuilding an error that
                 was already logged where it was raised)
        """
        super().__init__(message)
        self.message = message
        self.data = data or {}
        self.cause = cause

        self.correlation_id = get_correlation_id()
        self.job_id = get_job_id()

        if log:
            self._log_error()

    def _log_error(self):
        """Log error with structured data."""
        log_data = {
            "error_type": self.__class__.__name__,
            "correlation_id": self.correlation_id,
            "job_id": self.job_id,
            **self.data,
        }

        if self.cause:
            log_data["cause"] = str(self.cause)

        logger.log(
            self.log_level,
            self.message,
            extra={"structured_data": log_data},
            exc_info=self.cause if self.cause is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "data": self.data,
            "correlation_id": self.correlation_id,
            "job_id": self.job_id,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(BandPulseError):
    """Invalid job parameters (window/hop size, engine name, band definition)."""
    pass


class ComputationError(BandPulseError):
    """Unexpected failure inside a computation unit."""
    pass


class EmptyInputError(BandPulseError):
    """
    Zero-length PCM or empty chunk sequence.

    Not fatal: the task layer turns it into an empty result.
    """

    log_level = logging.DEBUG


class DispatcherError(BandPulseError):
    """Job dispatcher misuse (submit after shutdown, unknown request type)."""
    pass


class JobCancelledError(BandPulseError):
    """Result requested for a job the caller abandoned."""

    log_level = logging.INFO


_ERROR_TYPES: Dict[str, Type[BandPulseError]] = {
    cls.__name__: cls
    for cls in (
        BandPulseError,
        ConfigurationError,
        ComputationError,
        EmptyInputError,
        DispatcherError,
        JobCancelledError,
    )
}


def error_from_dict(payload: Dict[str, Any]) -> BandPulseError:
    """
    Rebuild a typed error from its serialized form.

    Unknown error names map to ComputationError. The rebuilt error is not
    logged again and keeps the job and correlation ids of the serialized error.

    Args:
        payload: Dictionary produced by BandPulseError.to_dict()

    Returns:
        Error instance of the serialized type
    """
    error_cls = _ERROR_TYPES.get(payload.get("error", ""), ComputationError)
    data = dict(payload.get("data") or {})
    if payload.get("cause"):
        data.setdefault("cause", payload["cause"])
    error = error_cls(payload.get("message", "Unknown error"), data=data, log=False)
    error.correlation_id = payload.get("correlation_id") or error.correlation_id
    error.job_id = payload.get("job_id") or error.job_id
    return error
