"""Adapters - audio file I/O."""

from .audio_loader import load_audio, get_duration, write_audio

__all__ = ["load_audio", "get_duration", "write_audio"]
