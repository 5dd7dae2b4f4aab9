"""
Band Filter Task - Bandpass biquad filter bank over PCM.

Each band is filtered independently with fresh filter state, so the
per-band outputs never depend on band order.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Sequence

from .base import JobContext, TaskResult, BaseTask
from bandpulse.common.logging import get_logger
from bandpulse.common.primitives import biquad_bandpass, biquad_bandpass_coefficients, to_mono
from bandpulse.core.errors import ConfigurationError, EmptyInputError
from bandpulse.modules.analysis.config import BandLike, coerce_bands

logger = get_logger(__name__)


@dataclass
class FilteredBand:
    """Filtered PCM for one band."""
    name: str
    color: str
    freq: float
    q: float
    pcm: np.ndarray

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'color': self.color,
            'freq': self.freq,
            'q': self.q,
            'pcm': self.pcm.tolist(),
        }


@dataclass
class BandFilterResult(TaskResult):
    """
    Result of the filter bank.

    Attributes:
        bands: One FilteredBand per requested band, request order
        sample_rate: Sample rate of the filtered PCM
    """
    success: bool = True
    task_name: str = "BandFilter"
    processing_time_sec: float = 0.0
    error: Optional[str] = None

    bands: List[FilteredBand] = field(default_factory=list)
    sample_rate: int = 0

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()
        base.update({
            'sample_rate': self.sample_rate,
            'bands': [band.to_dict() for band in self.bands],
        })
        return base


class BandFilterTask(BaseTask):
    """Run every band through its own bandpass biquad."""

    def __init__(self, bands: Sequence[BandLike]):
        self.bands = coerce_bands(bands)

    @property
    def name(self) -> str:
        return "BandFilter"

    def _check(self, context: JobContext) -> None:
        sample_rate = context.sample_rate
        if not sample_rate or sample_rate <= 0:
            raise ConfigurationError("sample_rate must be positive", data={"sample_rate": sample_rate})
        # Validate every band before filtering any of them
        for band in self.bands:
            try:
                biquad_bandpass_coefficients(band.freq, band.q, sample_rate)
            except ConfigurationError as e:
                raise ConfigurationError(
                    f"Invalid filter band '{band.name}'",
                    data={"band": band.to_dict(), **e.data},
                    cause=e,
                )

    def execute(self, context: JobContext) -> BandFilterResult:
        self._check(context)
        if context.n_samples == 0:
            raise EmptyInputError("PCM buffer is empty")

        pcm = to_mono(context.pcm)
        total = len(self.bands)
        filtered = []
        for i, band in enumerate(self.bands):
            out = biquad_bandpass(pcm, context.sample_rate, band.freq, band.q)
            filtered.append(FilteredBand(band.name, band.color, band.freq, band.q, out))
            context.report_progress(i + 1, total)

        logger.debug("Filter bank finished", data={'bands': total, 'n_samples': len(pcm)})
        return BandFilterResult(bands=filtered, sample_rate=int(context.sample_rate))

    def empty_result(self, context: JobContext) -> BandFilterResult:
        return BandFilterResult(
            bands=[
                FilteredBand(b.name, b.color, b.freq, b.q, np.zeros(0, dtype=np.float32))
                for b in self.bands
            ],
            sample_rate=int(context.sample_rate or 0),
        )
