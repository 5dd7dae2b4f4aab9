"""
Waveform Task - Min/max envelope for waveform rendering.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

from .base import JobContext, TaskResult, BaseTask
from bandpulse.common.primitives import downsample_minmax, interleave_pairs, to_mono
from bandpulse.core.errors import ConfigurationError


@dataclass
class WaveformResult(TaskResult):
    """
    Result of waveform downsampling.

    Attributes:
        waveform: (num_points, 2) float32 array of (min, max) pairs
        duration: Buffer duration in seconds (0 without a sample rate)
        sample_rate: Sample rate in Hz
    """
    success: bool = True
    task_name: str = "Waveform"
    processing_time_sec: float = 0.0
    error: Optional[str] = None

    waveform: np.ndarray = field(default_factory=lambda: np.zeros((0, 2), dtype=np.float32))
    duration: float = 0.0
    sample_rate: int = 0

    @property
    def num_points(self) -> int:
        return int(self.waveform.shape[0])

    @property
    def interleaved(self) -> np.ndarray:
        """[min0, max0, min1, max1, ...]"""
        return interleave_pairs(self.waveform)

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()
        base.update({
            'waveform': self.waveform.tolist(),
            'duration': self.duration,
            'sample_rate': self.sample_rate,
        })
        return base


class WaveformTask(BaseTask):
    """Downsample PCM to num_points (min, max) pairs."""

    def __init__(self, num_points: int, progress_interval: int = 100):
        if isinstance(num_points, bool) or not isinstance(num_points, (int, np.integer)) or num_points <= 0:
            raise ConfigurationError(
                "num_points must be a positive integer",
                data={"num_points": num_points},
            )
        self.num_points = int(num_points)
        self.progress_interval = progress_interval

    @property
    def name(self) -> str:
        return "Waveform"

    def execute(self, context: JobContext) -> WaveformResult:
        pcm = to_mono(context.pcm) if context.pcm is not None else np.zeros(0, dtype=np.float32)
        waveform = downsample_minmax(
            pcm,
            self.num_points,
            progress_callback=context.report_progress,
            progress_interval=self.progress_interval,
        )
        return WaveformResult(
            waveform=waveform,
            duration=context.duration_sec,
            sample_rate=int(context.sample_rate or 0),
        )

    def empty_result(self, context: JobContext) -> WaveformResult:
        return WaveformResult(
            waveform=np.zeros((self.num_points, 2), dtype=np.float32),
            sample_rate=int(context.sample_rate or 0),
        )
