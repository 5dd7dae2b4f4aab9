"""
Settings - Application configuration using dataclasses.

Environment variables:
- BANDPULSE_WORKERS: Number of worker units in the pool
- BANDPULSE_WORKER_BACKEND: process, thread
- BANDPULSE_ANALYZE_PROGRESS_INTERVAL: Chunks between spectral progress messages
- BANDPULSE_WAVEFORM_PROGRESS_INTERVAL: Points between waveform progress messages
- BANDPULSE_DEFAULT_ENGINE: Onset engine used when a request names none
- BANDPULSE_SAMPLE_RATE: Decode sample rate for the CLI (0 = native)

Logging levels and format are resolved by LoggingConfig (logging-config.yaml,
LOG_LEVEL, LOG_LEVEL_<COMPONENT>, LOG_JSON_FORMAT).
"""

import os
from enum import Enum
from typing import Optional
from dataclasses import dataclass, field


class WorkerBackend(str, Enum):
    """Worker pool backend options."""
    PROCESS = "process"
    THREAD = "thread"


def _default_workers() -> int:
    return min(4, os.cpu_count() or 1)


@dataclass
class Settings:
    """Application settings from environment."""

    # Worker pool
    workers: int = field(
        default_factory=lambda: int(os.getenv("BANDPULSE_WORKERS", str(_default_workers())))
    )
    worker_backend: WorkerBackend = field(
        default_factory=lambda: WorkerBackend(os.getenv("BANDPULSE_WORKER_BACKEND", "process"))
    )

    # Progress cadence
    analyze_progress_interval: int = field(
        default_factory=lambda: int(os.getenv("BANDPULSE_ANALYZE_PROGRESS_INTERVAL", "500"))
    )
    waveform_progress_interval: int = field(
        default_factory=lambda: int(os.getenv("BANDPULSE_WAVEFORM_PROGRESS_INTERVAL", "100"))
    )

    # Analysis defaults
    default_engine: str = field(
        default_factory=lambda: os.getenv("BANDPULSE_DEFAULT_ENGINE", "spectral-flux")
    )
    sample_rate: int = field(
        default_factory=lambda: int(os.getenv("BANDPULSE_SAMPLE_RATE", "44100"))
    )


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
