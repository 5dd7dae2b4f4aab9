"""
Spectral Analysis Task - Magnitude spectrum for every chunk of a PCM buffer.

Produces the FFT sequence consumed by band feature extraction, a short
summary for callers, and optional display-sized sequences:
- summary: chunk count, sizes, first-chunk preview, durations
- fft_sequence: (num_chunks, window_size // 2) magnitudes
- display_sequence: block-averaged to max_frames x max_bins
- normalized_display_sequence: log-magnitude mapped to [0, 1], then block-averaged

Uses Primitives layer for all mathematical operations.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

from .base import JobContext, TaskResult, BaseTask
from bandpulse.common.logging import get_logger
from bandpulse.common.primitives import (
    SpectrumContext,
    FIRST_CHUNK_PREVIEW_BINS,
    compute_fft_sequence,
    count_chunks,
    require_chunks,
    downsample_2d,
    normalize_log_magnitude,
    validate_window,
)

logger = get_logger(__name__)


@dataclass
class SpectralAnalysisResult(TaskResult):
    """
    Result of spectral analysis.

    Attributes:
        summary: num_chunks, window_size, hop_size, first_chunk_preview,
                 chunk_duration_ms, total_duration_ms
        fft_sequence: (num_chunks, window_size // 2) float32 magnitudes
        display_sequence: Downsampled sequence (only when limits were given)
        normalized_display_sequence: Log-normalized display sequence
    """
    success: bool = True
    task_name: str = "SpectralAnalysis"
    processing_time_sec: float = 0.0
    error: Optional[str] = None

    summary: Dict[str, Any] = field(default_factory=dict)
    fft_sequence: Optional[np.ndarray] = None
    display_sequence: Optional[np.ndarray] = None
    normalized_display_sequence: Optional[np.ndarray] = None

    @property
    def num_chunks(self) -> int:
        return int(self.summary.get('num_chunks', 0))

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()

        def _list(arr):
            return arr.tolist() if isinstance(arr, np.ndarray) else arr

        base.update({
            'summary': self.summary,
            'fft_sequence': _list(self.fft_sequence),
            'display_sequence': _list(self.display_sequence),
            'normalized_display_sequence': _list(self.normalized_display_sequence),
        })
        return base


class SpectralAnalysisTask(BaseTask):
    """
    Chunk the PCM, run the FFT per chunk, and summarize.

    The FFT context is created per execute() call, never shared between
    jobs. Progress is reported every progress_interval chunks.
    """

    def __init__(
        self,
        window_size: int = 1024,
        hop_size: int = 512,
        window: str = "rectangular",
        max_frames: Optional[int] = None,
        max_bins: Optional[int] = None,
        progress_interval: int = 500,
    ):
        """
        Initialize spectral analysis task.

        Args:
            window_size: FFT length in samples (power of two)
            hop_size: Stride between chunk starts
            window: Analysis window name
            max_frames: Display frame limit (display output only when set)
            max_bins: Display bin limit
            progress_interval: Chunks between progress messages
        """
        validate_window(window_size, hop_size)
        self.window_size = window_size
        self.hop_size = hop_size
        self.window = window
        self.max_frames = max_frames
        self.max_bins = max_bins
        self.progress_interval = progress_interval

    @property
    def name(self) -> str:
        return "SpectralAnalysis"

    @property
    def wants_display(self) -> bool:
        return self.max_frames is not None or self.max_bins is not None

    def _summary(self, fft_sequence: np.ndarray, sample_rate: Optional[int], n_samples: int) -> Dict[str, Any]:
        num_chunks = int(fft_sequence.shape[0])
        preview = fft_sequence[0, :FIRST_CHUNK_PREVIEW_BINS].tolist() if num_chunks else []

        chunk_duration_ms = 0.0
        total_duration_ms = 0.0
        if sample_rate:
            chunk_duration_ms = self.window_size / sample_rate * 1000.0
            total_duration_ms = n_samples / sample_rate * 1000.0

        return {
            'num_chunks': num_chunks,
            'window_size': self.window_size,
            'hop_size': self.hop_size,
            'first_chunk_preview': [float(v) for v in preview],
            'chunk_duration_ms': chunk_duration_ms,
            'total_duration_ms': total_duration_ms,
        }

    def execute(self, context: JobContext) -> SpectralAnalysisResult:
        """
        Compute the FFT sequence.

        Args:
            context: Job context with PCM

        Returns:
            SpectralAnalysisResult
        """
        spectrum = SpectrumContext(self.window_size, self.window)
        n_samples = context.n_samples
        require_chunks(n_samples, self.window_size)

        logger.debug("Spectral analysis started", data={
            'n_samples': n_samples,
            'num_chunks': count_chunks(n_samples, self.window_size, self.hop_size),
            'window_size': self.window_size,
            'hop_size': self.hop_size,
        })

        fft_sequence = compute_fft_sequence(
            context.pcm,
            self.window_size,
            self.hop_size,
            context=spectrum,
            progress_callback=context.report_progress,
            progress_interval=self.progress_interval,
        )

        result = SpectralAnalysisResult(
            summary=self._summary(fft_sequence, context.sample_rate, n_samples),
            fft_sequence=fft_sequence,
        )

        if self.wants_display:
            max_frames = self.max_frames or 200
            max_bins = self.max_bins or 64
            result.display_sequence = downsample_2d(fft_sequence, max_frames, max_bins)
            # Normalized per frame before averaging
            result.normalized_display_sequence = downsample_2d(
                normalize_log_magnitude(fft_sequence), max_frames, max_bins
            )

        return result

    def empty_result(self, context: JobContext) -> SpectralAnalysisResult:
        # Window validity is still enforced for empty input
        spectrum = SpectrumContext(self.window_size, self.window)
        fft_sequence = np.zeros((0, spectrum.num_bins), dtype=np.float32)
        result = SpectralAnalysisResult(
            summary=self._summary(fft_sequence, context.sample_rate, context.n_samples),
            fft_sequence=fft_sequence,
        )
        if self.wants_display:
            result.display_sequence = fft_sequence
            result.normalized_display_sequence = fft_sequence
        return result
