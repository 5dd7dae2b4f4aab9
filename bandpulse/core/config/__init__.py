"""
Config - Application configuration.

- settings.py: Dataclass settings from environment
"""

from .settings import Settings, WorkerBackend, get_settings, reset_settings

__all__ = [
    "Settings",
    "WorkerBackend",
    "get_settings",
    "reset_settings",
]
