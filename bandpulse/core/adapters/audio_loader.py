"""
Audio Loader - Decode audio files to float32 PCM.

The only place that reads audio files; everything downstream works on
in-memory buffers. Decoding goes through librosa, writing through
soundfile.
"""

import numpy as np
import librosa
import soundfile as sf
from pathlib import Path
from typing import Optional, Tuple, Union

from bandpulse.core.errors import ConfigurationError


def load_audio(
    path: Union[str, Path],
    sr: Optional[int] = None,
    mono: bool = True,
    duration: Optional[float] = None,
    offset: float = 0.0,
) -> Tuple[np.ndarray, int]:
    """
    Load an audio file.

    Args:
        path: Path to audio file
        sr: Target sample rate (None or 0 = native)
        mono: Mix down to mono; otherwise (channels, samples)
        duration: Seconds to load (None = entire file)
        offset: Start offset in seconds

    Returns:
        Tuple of (pcm, sample_rate); pcm is contiguous float32

    Raises:
        ConfigurationError: Missing file or a file librosa cannot decode
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError("Audio file not found", data={"path": str(path)})
    try:
        y, actual_sr = librosa.load(
            str(path), sr=sr or None, mono=mono, duration=duration, offset=offset
        )
    except Exception as e:
        # Undecodable or unsupported file
        raise ConfigurationError(
            "Failed to decode audio file",
            data={"path": str(path), "reason": str(e)},
            cause=e,
        ) from e
    return np.ascontiguousarray(y, dtype=np.float32), int(actual_sr)


def get_duration(path: Union[str, Path]) -> float:
    """Audio file duration in seconds without decoding it."""
    try:
        return float(librosa.get_duration(path=str(path)))
    except Exception as e:
        raise ConfigurationError(
            "Failed to read audio duration",
            data={"path": str(path), "reason": str(e)},
            cause=e,
        ) from e


def write_audio(path: Union[str, Path], pcm: np.ndarray, sample_rate: int) -> Path:
    """
    Write mono float PCM as a 32-bit float WAV file.

    Parent directories are created as needed.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(str(path), np.asarray(pcm, dtype=np.float32), int(sample_rate), subtype="FLOAT")
    return path
