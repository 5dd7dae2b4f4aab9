"""
Band Feature Task - Per-band time series and adaptive thresholds.

For each band, picks the FFT bin nearest the band frequency and derives:
- magnitudes: the bin's column of the FFT sequence
- derivatives / second_derivatives: finite differences over time
- impulse_strengths: per the configured impulse mode (|second derivative| by default)
- slider bounds and a resolved threshold for impulse triggering

Pure function of its inputs: identical inputs give bit-identical outputs.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Sequence, Tuple

from .base import JobContext, TaskResult, BaseTask
from bandpulse.common.logging import get_logger
from bandpulse.common.primitives import (
    moving_average,
    moving_median,
    moving_mad,
    nth_derivative,
    normalize_zscore,
)
from bandpulse.core.errors import ConfigurationError, EmptyInputError
from bandpulse.modules.analysis.config import (
    BandDefinition,
    BandFeatureConfig,
    BandLike,
    coerce_bands,
)

logger = get_logger(__name__)

SLIDER_STEPS = 100
MIN_SLIDER_STEP = 0.001


@dataclass(frozen=True)
class SliderBounds:
    """Threshold slider range for one band."""
    min: float
    max: float
    step: float

    @property
    def midpoint(self) -> float:
        return (self.min + self.max) / 2.0

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def to_dict(self) -> Dict[str, float]:
        return {'min': self.min, 'max': self.max, 'step': self.step}


def compute_bin_index(freq: float, num_bins: int, sample_rate: float) -> int:
    """
    FFT bin nearest to freq.

    round(freq * 2 * num_bins / sample_rate), clamped to [0, num_bins - 1].
    """
    if num_bins <= 0:
        return 0
    if sample_rate <= 0:
        raise ConfigurationError("sample_rate must be positive", data={"sample_rate": sample_rate})
    idx = int(np.floor(freq * 2 * num_bins / sample_rate + 0.5))
    return min(max(idx, 0), num_bins - 1)


def compute_slider_bounds(impulse_strengths: np.ndarray) -> SliderBounds:
    """
    Slider range over a (visible) impulse-strength series.

    min = min(0, min|d2|), max = max(1, max|d2|); a degenerate range is
    widened to one unit. step = max((max - min) / 100, 0.001).
    """
    values = np.abs(np.asarray(impulse_strengths, dtype=np.float64))
    if values.size:
        lo = min(0.0, float(values.min()))
        hi = max(1.0, float(values.max()))
    else:
        lo, hi = 0.0, 1.0
    if hi == lo:
        hi = lo + 1.0
    step = max((hi - lo) / SLIDER_STEPS, MIN_SLIDER_STEP)
    return SliderBounds(min=lo, max=hi, step=step)


def resolve_threshold(threshold: Optional[float], bounds: SliderBounds) -> float:
    """Keep a threshold inside the slider range; otherwise use the midpoint."""
    if threshold is None or not np.isfinite(threshold) or not bounds.contains(float(threshold)):
        return bounds.midpoint
    return float(threshold)


def find_impulses(impulse_strengths: np.ndarray, threshold: float) -> np.ndarray:
    """Indices where impulse strength strictly exceeds the threshold."""
    return np.flatnonzero(np.asarray(impulse_strengths) > threshold)


def positive_flux(series: np.ndarray) -> np.ndarray:
    """max(0, x[i] - x[i - 1]); the first frame is zero."""
    series = np.asarray(series, dtype=np.float64)
    flux = np.zeros(len(series), dtype=np.float64)
    if len(series) > 1:
        flux[1:] = np.maximum(0.0, np.diff(series))
    return flux


def adaptive_flux_impulses(
    flux: np.ndarray,
    window: int = 21,
    k: float = 2.0,
    min_separation: int = 3,
) -> np.ndarray:
    """
    Keep flux values above a moving median + k * MAD threshold.

    A candidate closer than min_separation frames to the previously kept
    one is dropped. Everything not kept is zero.

    Args:
        flux: Non-negative flux series
        window: Moving median / MAD window in frames
        k: MAD multiplier
        min_separation: Minimum distance between kept frames

    Returns:
        float64 array, same length as flux
    """
    flux = np.asarray(flux, dtype=np.float64)
    kept = np.zeros_like(flux)
    if len(flux) == 0:
        return kept

    medians = moving_median(flux, window)
    threshold = medians + k * moving_mad(flux, window, medians)

    last = -min_separation
    for i in np.flatnonzero(flux > threshold):
        if i - last >= min_separation:
            kept[i] = flux[i]
            last = i
    return kept


def visible_slice(times: np.ndarray, time_range: Optional[Tuple[float, float]]) -> slice:
    """Index slice of frames whose time lies in [start, end]; full range when None."""
    if time_range is None:
        return slice(0, len(times))
    start, end = time_range
    if end < start:
        start, end = end, start
    lo = int(np.searchsorted(times, start, side='left'))
    hi = int(np.searchsorted(times, end, side='right'))
    return slice(lo, hi)


@dataclass
class BandFeatureSeries:
    """
    Feature series for one band, aligned with the FFT sequence time axis.

    Attributes:
        band: Source band definition
        band_index: Position of the band in the request
        bin_index: FFT column used
        times: Frame times in seconds (i * hop_size / sample_rate)
        magnitudes: Bin magnitude per frame
        derivatives: First derivative
        second_derivatives: Second derivative
        impulse_strengths: Strength series of the configured impulse mode
        normalized_impulse_strengths: Z-scored impulse strengths (display aid)
        slider: Threshold slider bounds over the visible range
        threshold: Resolved threshold
        impulse_indices: Frames where impulse_strengths > threshold
    """
    band: BandDefinition
    band_index: int
    bin_index: int
    times: np.ndarray
    magnitudes: np.ndarray
    derivatives: np.ndarray
    second_derivatives: np.ndarray
    impulse_strengths: np.ndarray
    normalized_impulse_strengths: np.ndarray
    slider: SliderBounds
    threshold: float
    impulse_indices: np.ndarray

    @property
    def name(self) -> str:
        return self.band.name

    @property
    def impulse_times(self) -> np.ndarray:
        return self.times[self.impulse_indices]

    def __len__(self) -> int:
        return len(self.magnitudes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.band.name,
            'freq': self.band.freq,
            'color': self.band.color,
            'band_index': self.band_index,
            'bin_index': self.bin_index,
            'times': self.times.tolist(),
            'magnitudes': self.magnitudes.tolist(),
            'derivatives': self.derivatives.tolist(),
            'second_derivatives': self.second_derivatives.tolist(),
            'impulse_strengths': self.impulse_strengths.tolist(),
            'normalized_impulse_strengths': self.normalized_impulse_strengths.tolist(),
            'slider': self.slider.to_dict(),
            'threshold': self.threshold,
            'impulse_indices': self.impulse_indices.tolist(),
            'impulse_times': self.impulse_times.tolist(),
        }


@dataclass
class BandFeatureResult(TaskResult):
    """
    Result of band feature extraction.

    Attributes:
        bands: One BandFeatureSeries per requested band, request order
        num_frames: Shared length of every series
    """
    success: bool = True
    task_name: str = "BandFeatures"
    processing_time_sec: float = 0.0
    error: Optional[str] = None

    bands: List[BandFeatureSeries] = field(default_factory=list)
    num_frames: int = 0

    def get_band(self, name: str) -> BandFeatureSeries:
        for series in self.bands:
            if series.name == name:
                return series
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()
        base.update({
            'num_frames': self.num_frames,
            'bands': [series.to_dict() for series in self.bands],
        })
        return base


class BandFeatureTask(BaseTask):
    """
    Extract per-band series from a precomputed FFT sequence.

    Thresholds are keyed by band name; missing or out-of-range values
    resolve to the slider midpoint.
    """

    def __init__(
        self,
        bands: Sequence[BandLike],
        hop_size: int,
        thresholds: Optional[Dict[str, float]] = None,
        time_range: Optional[Tuple[float, float]] = None,
        config: Optional[BandFeatureConfig] = None,
    ):
        if isinstance(hop_size, bool) or not isinstance(hop_size, (int, np.integer)) or hop_size <= 0:
            raise ConfigurationError("hop_size must be a positive integer", data={"hop_size": hop_size})
        self.bands = coerce_bands(bands)
        self.hop_size = int(hop_size)
        self.thresholds = dict(thresholds or {})
        self.time_range = time_range
        self.config = config or BandFeatureConfig()

    @property
    def name(self) -> str:
        return "BandFeatures"

    def _frame_times(self, num_frames: int, sample_rate: float) -> np.ndarray:
        return np.arange(num_frames, dtype=np.float64) * self.hop_size / sample_rate

    def _base_series(self, column: np.ndarray) -> np.ndarray:
        # Smoothing applies to linear magnitudes, before the log
        series = np.asarray(column, dtype=np.float64)
        if self.config.smoothing > 1:
            series = moving_average(series, self.config.smoothing)
        if self.config.log_domain:
            series = np.log10(np.maximum(series, 1e-8))
        return series

    def _impulse_strengths(
        self,
        magnitudes: np.ndarray,
        base: np.ndarray,
        d1: np.ndarray,
        d2: np.ndarray,
    ) -> np.ndarray:
        config = self.config
        if config.impulse_mode == "spectral-flux":
            return adaptive_flux_impulses(
                positive_flux(base),
                window=config.flux_window,
                k=config.flux_k,
                min_separation=config.flux_min_separation,
            )

        if config.impulse_mode == "first-derivative":
            strengths = np.abs(d1)
        elif config.impulse_mode == "z-score":
            strengths = normalize_zscore(d1)
        else:
            strengths = np.abs(d2)

        if config.magnitude_floor is not None:
            strengths = np.where(magnitudes > config.magnitude_floor, strengths, 0.0)
        return strengths

    def extract_band(
        self,
        fft_sequence: np.ndarray,
        band: BandDefinition,
        sample_rate: float,
        times: np.ndarray,
        band_index: int = 0,
    ) -> BandFeatureSeries:
        """Compute the full series for one band."""
        num_frames, num_bins = fft_sequence.shape
        bin_index = compute_bin_index(band.freq, num_bins, sample_rate)

        if num_bins:
            magnitudes = np.array(fft_sequence[:, bin_index], dtype=np.float32)
        else:
            magnitudes = np.zeros(num_frames, dtype=np.float32)

        base = self._base_series(magnitudes)
        mode = self.config.derivative_mode
        window = self.config.derivative_window
        d1 = nth_derivative(base, 1, window, mode)
        d2 = nth_derivative(d1, 1, window, mode)
        strengths = self._impulse_strengths(magnitudes, base, d1, d2)

        bounds = compute_slider_bounds(strengths[visible_slice(times, self.time_range)])
        threshold = resolve_threshold(self.thresholds.get(band.name), bounds)

        return BandFeatureSeries(
            band=band,
            band_index=band_index,
            bin_index=bin_index,
            times=times,
            magnitudes=magnitudes,
            derivatives=d1,
            second_derivatives=d2,
            impulse_strengths=strengths,
            normalized_impulse_strengths=normalize_zscore(strengths),
            slider=bounds,
            threshold=threshold,
            impulse_indices=find_impulses(strengths, threshold),
        )

    def _validate(self, context: JobContext) -> np.ndarray:
        if not context.sample_rate or context.sample_rate <= 0:
            raise ConfigurationError(
                "sample_rate must be positive",
                data={"sample_rate": context.sample_rate},
            )
        fft_sequence = context.fft_sequence
        if fft_sequence is None:
            raise ConfigurationError("Band feature extraction requires an FFT sequence")
        if fft_sequence.ndim != 2:
            raise ConfigurationError(
                "FFT sequence must be 2-D (frames x bins)",
                data={"shape": list(fft_sequence.shape)},
            )
        return fft_sequence

    def execute(self, context: JobContext) -> BandFeatureResult:
        """
        Extract series for every band.

        Args:
            context: Job context with fft_sequence and sample_rate

        Returns:
            BandFeatureResult
        """
        fft_sequence = self._validate(context)
        if fft_sequence.shape[0] == 0:
            raise EmptyInputError("FFT sequence has no frames", data={"shape": list(fft_sequence.shape)})

        times = self._frame_times(fft_sequence.shape[0], context.sample_rate)
        series = [
            self.extract_band(fft_sequence, band, context.sample_rate, times, band_index)
            for band_index, band in enumerate(self.bands)
        ]

        logger.debug("Band features extracted", data={
            'num_frames': int(fft_sequence.shape[0]),
            'impulse_mode': self.config.impulse_mode,
            'bands': [s.name for s in series],
            'impulses': {s.name: int(len(s.impulse_indices)) for s in series},
        })

        return BandFeatureResult(bands=series, num_frames=int(fft_sequence.shape[0]))

    def empty_result(self, context: JobContext) -> BandFeatureResult:
        # Empty series still carry bounds and resolved thresholds
        num_bins = context.fft_sequence.shape[1] if context.fft_sequence is not None and context.fft_sequence.ndim == 2 else 0
        empty = np.zeros((0, num_bins), dtype=np.float32)
        times = np.zeros(0, dtype=np.float64)
        series = [
            self.extract_band(empty, band, context.sample_rate, times, band_index)
            for band_index, band in enumerate(self.bands)
        ]
        return BandFeatureResult(bands=series, num_frames=0)
