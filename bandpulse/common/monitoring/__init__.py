"""Monitoring - per-job processing metrics."""

from .metrics import JobMetrics

__all__ = ["JobMetrics"]
