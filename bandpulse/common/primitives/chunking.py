"""
Chunking Primitives - PCM buffer normalization and overlapping windows.

Pure numpy. Chunks are views into the source buffer (no copies); block
access goes through stride tricks so a whole range of chunks can be handed
to a vectorized FFT at once.
"""

import numpy as np
from typing import Iterator, Sequence, Union

from bandpulse.core.errors import ConfigurationError


PCMInput = Union[np.ndarray, bytes, bytearray, memoryview, Sequence[float]]


def as_pcm(buffer: PCMInput) -> np.ndarray:
    """
    Convert any accepted PCM input to a float32 numpy array.

    Bytes-like input is interpreted as little-endian float32 samples.
    Arrays keep their shape (1-D mono or 2-D channels x samples).

    Args:
        buffer: ndarray, raw float32 bytes, or a sequence of floats

    Returns:
        Contiguous float32 array
    """
    if isinstance(buffer, (bytes, bytearray, memoryview)):
        raw = bytes(buffer)
        if len(raw) % 4 != 0:
            raise ConfigurationError(
                "PCM byte buffer length must be a multiple of 4",
                data={"n_bytes": len(raw)},
            )
        return np.frombuffer(raw, dtype="<f4").astype(np.float32)

    pcm = np.asarray(buffer, dtype=np.float32)
    if pcm.ndim > 2:
        raise ConfigurationError(
            "PCM must be 1-D (mono) or 2-D (channels x samples)",
            data={"shape": list(pcm.shape)},
        )
    return np.ascontiguousarray(pcm)


def to_mono(pcm: np.ndarray) -> np.ndarray:
    """Average all channels of a (channels x samples) buffer."""
    if pcm.ndim > 1:
        pcm = np.mean(pcm, axis=0)
    return np.ascontiguousarray(pcm, dtype=np.float32)


def first_channel(pcm: np.ndarray) -> np.ndarray:
    """Channel 0 of a (channels x samples) buffer; mono input passes through."""
    if pcm.ndim > 1:
        pcm = pcm[0]
    return np.ascontiguousarray(pcm, dtype=np.float32)


def validate_window(window_size: int, hop_size: int) -> None:
    """Raise ConfigurationError unless both sizes are positive integers."""
    for name, value in (("window_size", window_size), ("hop_size", hop_size)):
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
            raise ConfigurationError(
                f"{name} must be a positive integer",
                data={name: value},
            )


def count_chunks(n_samples: int, window_size: int, hop_size: int) -> int:
    """
    Number of full windows that fit in a buffer.

    floor((N - window) / hop) + 1 for N >= window, else 0.
    """
    if n_samples < window_size:
        return 0
    return (n_samples - window_size) // hop_size + 1


class ChunkSequence:
    """
    Lazy, restartable sequence of overlapping PCM windows.

    Iterating yields views pcm[start:start + window_size] for
    start = 0, hop, 2*hop, ... while start + window_size <= len(pcm).
    A buffer shorter than one window gives an empty sequence.

    Usage:
        chunks = ChunkSequence(pcm, window_size=1024, hop_size=512)
        for chunk in chunks:
            ...
        block = chunks.frames(0, 500)   # (500, 1024) strided view
    """

    def __init__(self, pcm: np.ndarray, window_size: int, hop_size: int):
        validate_window(window_size, hop_size)
        self.pcm = to_mono(as_pcm(pcm))
        self.window_size = int(window_size)
        self.hop_size = int(hop_size)

    def __len__(self) -> int:
        return count_chunks(len(self.pcm), self.window_size, self.hop_size)

    def __iter__(self) -> Iterator[np.ndarray]:
        for idx in range(len(self)):
            start = idx * self.hop_size
            yield self.pcm[start:start + self.window_size]

    def __getitem__(self, idx: int) -> np.ndarray:
        n = len(self)
        if idx < 0:
            idx += n
        if not 0 <= idx < n:
            raise IndexError(f"chunk index {idx} out of range for {n} chunks")
        start = idx * self.hop_size
        return self.pcm[start:start + self.window_size]

    def frames(self, start: int = 0, stop: int | None = None) -> np.ndarray:
        """
        Read-only 2-D view over chunks [start, stop).

        Args:
            start: First chunk index
            stop: One past the last chunk index (default: all)

        Returns:
            Array of shape (stop - start, window_size)
        """
        n = len(self)
        stop = n if stop is None else min(stop, n)
        start = max(0, start)
        if stop <= start:
            return np.empty((0, self.window_size), dtype=np.float32)

        base = self.pcm[start * self.hop_size:]
        return np.lib.stride_tricks.as_strided(
            base,
            shape=(stop - start, self.window_size),
            strides=(self.hop_size * base.strides[0], base.strides[0]),
            writeable=False,
        )

    def __repr__(self) -> str:
        return (
            f"ChunkSequence(n_samples={len(self.pcm)}, window_size={self.window_size}, "
            f"hop_size={self.hop_size}, n_chunks={len(self)})"
        )


def chunk_pcm(pcm: PCMInput, window_size: int, hop_size: int) -> ChunkSequence:
    """Build a ChunkSequence over a PCM buffer."""
    return ChunkSequence(as_pcm(pcm), window_size, hop_size)
