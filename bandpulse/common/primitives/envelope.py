"""
Envelope Primitives - Min/max waveform downsampling for rendering.
"""

import numpy as np
from typing import Callable, Optional

from bandpulse.core.errors import ConfigurationError


# Args: (processed, total)
ProgressCallback = Callable[[int, int], None]


def segment_edges(n_samples: int, num_points: int) -> np.ndarray:
    """
    Segment boundaries floor(i * N / P) for i in 0..P.

    Segment i covers [edges[i], edges[i + 1]).
    """
    return (np.arange(num_points + 1, dtype=np.int64) * n_samples) // num_points


def downsample_minmax(
    pcm: np.ndarray,
    num_points: int,
    progress_callback: Optional[ProgressCallback] = None,
    progress_interval: int = 100,
) -> np.ndarray:
    """
    Min/max envelope of a PCM buffer.

    The buffer is split into num_points contiguous, non-overlapping
    segments as evenly as integer division allows. Segments with no
    samples (num_points > len(pcm)) produce (0, 0).

    Args:
        pcm: Mono float PCM
        num_points: Number of (min, max) pairs to produce
        progress_callback: Optional (processed, total) callback
        progress_interval: Points per progress message

    Returns:
        float32 array of shape (num_points, 2): column 0 = min, column 1 = max
    """
    if isinstance(num_points, bool) or not isinstance(num_points, (int, np.integer)) or num_points <= 0:
        raise ConfigurationError(
            "num_points must be a positive integer",
            data={"num_points": num_points},
        )

    pcm = np.asarray(pcm, dtype=np.float32)
    n = len(pcm)
    edges = segment_edges(n, num_points)
    envelope = np.zeros((num_points, 2), dtype=np.float32)

    block = max(1, int(progress_interval))
    for p0 in range(0, num_points, block):
        p1 = min(p0 + block, num_points)
        starts = edges[p0:p1]
        ends = edges[p0 + 1:p1 + 1]
        non_empty = ends > starts

        if np.any(non_empty):
            lo, hi = int(starts[0]), int(ends[-1])
            # Segments are contiguous, so dropping empty ones leaves each
            # remaining segment ending at the next remaining start
            offsets = starts[non_empty] - lo
            segment = pcm[lo:hi]
            rows = np.nonzero(non_empty)[0] + p0
            envelope[rows, 0] = np.minimum.reduceat(segment, offsets)
            envelope[rows, 1] = np.maximum.reduceat(segment, offsets)

        if progress_callback is not None:
            progress_callback(p1, num_points)

    return envelope


def interleave_pairs(envelope: np.ndarray) -> np.ndarray:
    """Flatten (P, 2) pairs to [min0, max0, min1, max1, ...]."""
    return np.ascontiguousarray(envelope, dtype=np.float32).reshape(-1)
