"""
Spectrum Primitives - FFT magnitude sequence over chunked PCM.

PURE NUMPY/SCIPY IMPLEMENTATION.

Architecture:
    SpectrumContext          # per-job FFT context (window, sizes), never global
    compute_fft_sequence()   # block-vectorized rfft over ChunkSequence views
    downsample_2d()          # display reduction (frames x bins)
    normalize_log_magnitude  # log10 mapping to [0, 1] for display

Magnitudes are |X_f| / window_size for f < window_size // 2, so a full-scale
sine at an exact bin frequency reads 0.5.
"""

import numpy as np
import scipy.fft
import scipy.signal
from typing import Callable, Optional

from bandpulse.core.errors import ConfigurationError, EmptyInputError
from .chunking import ChunkSequence, PCMInput, as_pcm, to_mono, validate_window


# Args: (processed, total)
ProgressCallback = Callable[[int, int], None]

SUPPORTED_WINDOWS = ("rectangular", "hann", "hamming", "blackman")

FIRST_CHUNK_PREVIEW_BINS = 8


def is_power_of_two(n: int) -> bool:
    return n >= 2 and (n & (n - 1)) == 0


class SpectrumContext:
    """
    Reusable FFT computation context owned by one job.

    Holds the validated window size and the precomputed analysis window.
    Create one per job and pass it explicitly; no module-level FFT state.

    Args:
        window_size: FFT length (power of two >= 2)
        window: Analysis window name ("rectangular" applies none)
    """

    def __init__(self, window_size: int, window: str = "rectangular"):
        if isinstance(window_size, bool) or not isinstance(window_size, (int, np.integer)):
            raise ConfigurationError(
                "window_size must be an integer",
                data={"window_size": window_size},
            )
        if not is_power_of_two(int(window_size)):
            raise ConfigurationError(
                "window_size must be a power of two",
                data={"window_size": int(window_size)},
            )
        if window not in SUPPORTED_WINDOWS:
            raise ConfigurationError(
                f"Unknown analysis window '{window}'",
                data={"window": window, "supported": list(SUPPORTED_WINDOWS)},
            )

        self.window_size = int(window_size)
        self.window_name = window
        self.num_bins = self.window_size // 2

        if window == "rectangular":
            self._window = None
        else:
            self._window = np.ascontiguousarray(
                scipy.signal.get_window(window, self.window_size, fftbins=True),
                dtype=np.float32,
            )

    def magnitudes(self, frames: np.ndarray) -> np.ndarray:
        """
        Normalized magnitude spectra for one or more frames.

        Args:
            frames: (window_size,) or (n_frames, window_size)

        Returns:
            float32 array (..., window_size // 2)
        """
        if frames.shape[-1] != self.window_size:
            raise ConfigurationError(
                "Frame length does not match FFT size",
                data={"frame_length": int(frames.shape[-1]), "window_size": self.window_size},
            )
        if self._window is not None:
            frames = frames * self._window
        spectrum = scipy.fft.rfft(frames, n=self.window_size, axis=-1)
        mags = np.abs(spectrum[..., :self.num_bins]) / self.window_size
        return np.ascontiguousarray(mags, dtype=np.float32)

    def bin_frequencies(self, sample_rate: float) -> np.ndarray:
        """Frequency (Hz) of each bin: f * sr / (2 * num_bins)."""
        return np.arange(self.num_bins, dtype=np.float32) * sample_rate / (2 * self.num_bins)


def compute_fft_sequence(
    pcm: PCMInput,
    window_size: int,
    hop_size: int,
    context: Optional[SpectrumContext] = None,
    progress_callback: Optional[ProgressCallback] = None,
    progress_interval: int = 500,
) -> np.ndarray:
    """
    Magnitude spectrum for every chunk of a PCM buffer.

    Chunks are processed in blocks of progress_interval frames; after each
    block (and always on the final chunk) progress_callback(processed, total)
    is invoked when there is more than one chunk.

    Args:
        pcm: PCM buffer
        window_size: Samples per chunk (power of two)
        hop_size: Stride between chunk starts
        context: Existing SpectrumContext (created if None)
        progress_callback: Optional (processed, total) callback
        progress_interval: Chunks per block

    Returns:
        float32 array (num_chunks, window_size // 2); zero rows when the
        buffer is shorter than one window
    """
    validate_window(window_size, hop_size)
    if context is None:
        context = SpectrumContext(window_size)
    elif context.window_size != window_size:
        raise ConfigurationError(
            "SpectrumContext size does not match window_size",
            data={"context_size": context.window_size, "window_size": window_size},
        )

    chunks = ChunkSequence(to_mono(as_pcm(pcm)), window_size, hop_size)
    total = len(chunks)
    sequence = np.zeros((total, context.num_bins), dtype=np.float32)
    if total == 0:
        return sequence

    block = max(1, int(progress_interval))
    for start in range(0, total, block):
        stop = min(start + block, total)
        sequence[start:stop] = context.magnitudes(chunks.frames(start, stop))
        if progress_callback is not None and total > 1:
            progress_callback(stop, total)

    return sequence


def require_chunks(n_samples: int, window_size: int) -> None:
    """Raise EmptyInputError when the buffer cannot hold one window."""
    if n_samples < window_size:
        raise EmptyInputError(
            "PCM buffer shorter than one analysis window",
            data={"n_samples": int(n_samples), "window_size": int(window_size)},
        )


def normalize_log_magnitude(sequence: np.ndarray) -> np.ndarray:
    """
    Map magnitudes to [0, 1] on a log scale.

    log10(max(1e-8, m)) is shifted by +8 and divided by 8, then clipped.
    """
    log_mag = np.log10(np.maximum(sequence, 1e-8)) + 8.0
    return np.clip(log_mag / 8.0, 0.0, 1.0).astype(np.float32)


def downsample_2d(sequence: np.ndarray, max_frames: int, max_bins: int) -> np.ndarray:
    """
    Block-average a (frames x bins) array down to at most max_frames x max_bins.

    Arrays already within both limits are returned unchanged. Otherwise the
    output is exactly (max_frames, max_bins); each output cell averages the
    source cells floor(i*step)..floor((i+1)*step) in both directions.

    Args:
        sequence: 2-D array
        max_frames: Target frame count
        max_bins: Target bin count

    Returns:
        float32 array
    """
    src_frames, src_bins = sequence.shape if sequence.ndim == 2 else (0, 0)
    if src_frames <= max_frames and src_bins <= max_bins:
        return sequence

    def _edges(n_src: int, n_dst: int) -> np.ndarray:
        return np.floor(np.arange(n_dst + 1) * (n_src / n_dst)).astype(np.int64)

    def _block_mean(arr: np.ndarray, edges: np.ndarray, axis: int) -> np.ndarray:
        # Empty blocks (n_dst > n_src) average to zero
        counts = np.diff(edges)
        cumsum = np.cumsum(arr, axis=axis, dtype=np.float64)
        zero_shape = list(arr.shape)
        zero_shape[axis] = 1
        cumsum = np.concatenate([np.zeros(zero_shape), cumsum], axis=axis)
        sums = np.diff(np.take(cumsum, edges, axis=axis), axis=axis)
        shape = [1] * arr.ndim
        shape[axis] = -1
        safe = np.where(counts > 0, counts, 1).reshape(shape)
        return np.where(counts.reshape(shape) > 0, sums / safe, 0.0)

    by_bins = _block_mean(sequence, _edges(src_bins, max_bins), axis=1)
    by_frames = _block_mean(by_bins, _edges(src_frames, max_frames), axis=0)
    return by_frames.astype(np.float32)
