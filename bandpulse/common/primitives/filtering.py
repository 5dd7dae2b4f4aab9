"""
Filtering Primitives - Biquad bandpass, smoothing, robust statistics, finite differences.

Uses scipy.signal for the IIR pass and vectorized numpy for the
series operators. Every function is stateless: filter state lives only
inside a single call.
"""

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from scipy.signal import lfilter
from typing import Optional, Tuple

from bandpulse.core.errors import ConfigurationError


DERIVATIVE_MODES = ("forward", "centered", "moving-average")


def biquad_bandpass_coefficients(
    freq: float,
    q: float,
    sample_rate: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Bandpass biquad coefficients (constant 0 dB peak gain).

    w0 = 2*pi*freq/sr, alpha = sin(w0) / (2q)
    b = [alpha, 0, -alpha], a = [1 + alpha, -2cos(w0), 1 - alpha]
    Both vectors are divided by a0.

    Args:
        freq: Centre frequency in Hz (0 < freq < sr / 2)
        q: Quality factor (> 0)
        sample_rate: Sample rate in Hz

    Returns:
        Tuple of (b, a) float64 arrays with a[0] == 1
    """
    if sample_rate <= 0:
        raise ConfigurationError("sample_rate must be positive", data={"sample_rate": sample_rate})
    if not 0 < freq < sample_rate / 2:
        raise ConfigurationError(
            "Band frequency must lie between 0 and Nyquist",
            data={"freq": freq, "nyquist": sample_rate / 2},
        )
    if q <= 0:
        raise ConfigurationError("Band quality factor must be positive", data={"q": q})

    w0 = 2.0 * np.pi * freq / sample_rate
    alpha = np.sin(w0) / (2.0 * q)

    b = np.array([alpha, 0.0, -alpha], dtype=np.float64)
    a = np.array([1.0 + alpha, -2.0 * np.cos(w0), 1.0 - alpha], dtype=np.float64)

    return b / a[0], a / a[0]


def biquad_bandpass(
    pcm: np.ndarray,
    sample_rate: float,
    freq: float,
    q: float = 1.0,
) -> np.ndarray:
    """
    Filter a PCM buffer through one bandpass biquad.

    Single causal Direct-Form-1 pass starting from zero state
    (x1 = x2 = y1 = y2 = 0).

    Args:
        pcm: Mono float PCM
        sample_rate: Sample rate in Hz
        freq: Centre frequency in Hz
        q: Quality factor

    Returns:
        float32 array, same length as pcm
    """
    b, a = biquad_bandpass_coefficients(freq, q, sample_rate)
    if len(pcm) == 0:
        return np.zeros(0, dtype=np.float32)
    filtered = lfilter(b, a, np.asarray(pcm, dtype=np.float64))
    return np.ascontiguousarray(filtered, dtype=np.float32)


def moving_average(x: np.ndarray, window: int) -> np.ndarray:
    """
    Trailing moving average.

    out[i] = mean(x[max(0, i - window + 1) : i + 1]); window <= 1 copies x.
    """
    x = np.asarray(x, dtype=np.float64)
    if window <= 1 or len(x) == 0:
        return x.copy()

    cumsum = np.concatenate([[0.0], np.cumsum(x)])
    idx = np.arange(len(x))
    lo = np.maximum(0, idx - window + 1)
    return (cumsum[idx + 1] - cumsum[lo]) / (idx + 1 - lo)


def _centered_windows(x: np.ndarray, window: int) -> np.ndarray:
    # Row i covers x[i - window // 2 : i + ceil(window / 2)], NaN outside x
    before = window // 2
    after = window - before - 1
    padded = np.pad(x, (before, after), constant_values=np.nan)
    return sliding_window_view(padded, window)


def moving_median(x: np.ndarray, window: int) -> np.ndarray:
    """
    Centered moving median, truncated at the edges.

    Even-sized windows average the two middle values.
    """
    x = np.asarray(x, dtype=np.float64)
    if window <= 1 or len(x) == 0:
        return x.copy()
    return np.nanmedian(_centered_windows(x, window), axis=1)


def moving_mad(x: np.ndarray, window: int, medians: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Centered moving median absolute deviation.

    Deviations in each window are taken from that window's median
    (medians[i], computed with moving_median when not given).
    """
    x = np.asarray(x, dtype=np.float64)
    if len(x) == 0:
        return x.copy()
    if window <= 1:
        return np.zeros_like(x)
    if medians is None:
        medians = moving_median(x, window)
    deviations = np.abs(_centered_windows(x, window) - np.asarray(medians, dtype=np.float64)[:, None])
    return np.nanmedian(deviations, axis=1)


def _difference(x: np.ndarray, window: int, mode: str) -> np.ndarray:
    n = len(x)
    out = np.zeros(n, dtype=np.float64)
    if n == 0:
        return out

    if mode == "forward":
        if n > window:
            out[window:] = x[window:] - x[:-window]
    elif mode == "centered":
        if n > 2 * window:
            out[window:n - window] = (x[2 * window:] - x[:n - 2 * window]) / (2 * window)
    elif mode == "moving-average":
        # Mean of the last `window` unit steps ending at i
        step = np.zeros(n, dtype=np.float64)
        step[1:] = np.diff(x)
        cumsum = np.concatenate([[0.0], np.cumsum(step)])
        if n > window:
            idx = np.arange(window, n)
            out[window:] = (cumsum[idx + 1] - cumsum[idx + 1 - window]) / window
    return out


def nth_derivative(
    x: np.ndarray,
    n: int = 1,
    window: int = 1,
    mode: str = "forward",
) -> np.ndarray:
    """
    Apply a finite-difference operator n times.

    Modes:
        forward:         d[i] = x[i] - x[i - w], zero for i < w
        centered:        d[i] = (x[i + w] - x[i - w]) / 2w, zero near both edges
        moving-average:  mean of the w unit steps ending at i, zero for i < w

    Output is aligned 1:1 with the input.

    Args:
        x: 1-D series
        n: Derivative order (0 returns a copy)
        window: Difference span in samples (>= 1)
        mode: One of DERIVATIVE_MODES

    Returns:
        float64 array, same length as x
    """
    if mode not in DERIVATIVE_MODES:
        raise ConfigurationError(
            f"Unknown derivative mode '{mode}'",
            data={"mode": mode, "supported": list(DERIVATIVE_MODES)},
        )
    if window < 1:
        raise ConfigurationError("Derivative window must be >= 1", data={"window": window})

    result = np.asarray(x, dtype=np.float64).copy()
    for _ in range(max(0, n)):
        result = _difference(result, window, mode)
    return result


def normalize_zscore(x: np.ndarray, eps: float = 1e-10) -> np.ndarray:
    """
    Z-score normalization; a constant series maps to zeros.

    Args:
        x: Input series
        eps: Std values below this are treated as 1

    Returns:
        float64 array with mean 0 and std 1 (when std > eps)
    """
    x = np.asarray(x, dtype=np.float64)
    if len(x) == 0:
        return x.copy()
    std = np.std(x)
    if std <= eps:
        std = 1.0
    return (x - np.mean(x)) / std
