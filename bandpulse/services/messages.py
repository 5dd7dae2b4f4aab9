"""
Job requests and worker messages.

Requests are immutable once submitted: detach() gives the job a private
read-only copy of every array it carries. Messages are plain picklable
dataclasses so they cross process boundaries unchanged.

Message order for one job:
    StartedMessage -> ProgressMessage* -> ResultMessage | ErrorMessage
"""

import time
import numpy as np
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union, Mapping

from bandpulse.common.primitives import PCMInput, as_pcm
from bandpulse.core.config import Settings
from bandpulse.modules.analysis.config import (
    BandDefinition,
    BandFeatureConfig,
    BandLike,
    OnsetParams,
    coerce_bands,
)
from bandpulse.modules.analysis.tasks import (
    BaseTask,
    JobContext,
    ProgressCallback,
    TaskResult,
    create_job_context,
    SpectralAnalysisTask,
    BandFeatureTask,
    BandFilterTask,
    OnsetDetectionTask,
    WaveformTask,
)


def _frozen_copy(array: Optional[PCMInput]) -> Optional[np.ndarray]:
    if array is None:
        return None
    copy = np.array(as_pcm(array), dtype=np.float32, copy=True)
    copy.setflags(write=False)
    return copy


class JobRequest:
    """
    Base for typed job requests.

    Subclasses are dataclasses that declare `kind`, build their task from
    settings and their context from the request payload.
    """

    kind: str = ""
    job_id: Optional[str] = None

    def detach(self) -> 'JobRequest':
        """Copy of this request that owns private read-only buffers."""
        return self

    def build_task(self, settings: Settings) -> BaseTask:
        raise NotImplementedError

    def build_context(self, progress_callback: Optional[ProgressCallback] = None) -> JobContext:
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        """Small loggable summary (no sample data)."""
        return {"kind": self.kind, "job_id": self.job_id}


@dataclass
class AnalyzeRequest(JobRequest):
    """Chunk + FFT a PCM buffer."""
    pcm: PCMInput
    window_size: int
    hop_size: int
    sample_rate: Optional[int] = None
    job_id: Optional[str] = None
    max_frames: Optional[int] = None
    max_bins: Optional[int] = None
    window: str = "rectangular"

    kind = "analyze"

    def detach(self) -> 'AnalyzeRequest':
        return replace(self, pcm=_frozen_copy(self.pcm))

    def build_task(self, settings: Settings) -> SpectralAnalysisTask:
        return SpectralAnalysisTask(
            window_size=self.window_size,
            hop_size=self.hop_size,
            window=self.window,
            max_frames=self.max_frames,
            max_bins=self.max_bins,
            progress_interval=settings.analyze_progress_interval,
        )

    def build_context(self, progress_callback=None) -> JobContext:
        return create_job_context(self.pcm, self.sample_rate, self.job_id, progress_callback=progress_callback)

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info.update(window_size=self.window_size, hop_size=self.hop_size)
        return info


@dataclass
class BandDataRequest(JobRequest):
    """Per-band series from a precomputed FFT sequence."""
    fft_sequence: Any
    bands: Sequence[BandLike]
    sample_rate: int
    hop_size: int
    thresholds: Optional[Dict[str, float]] = None
    time_range: Optional[Tuple[float, float]] = None
    config: Optional[BandFeatureConfig] = None
    job_id: Optional[str] = None

    kind = "band_data"

    def detach(self) -> 'BandDataRequest':
        fft_sequence = np.array(self.fft_sequence, dtype=np.float32, copy=True)
        fft_sequence.setflags(write=False)
        return replace(
            self,
            fft_sequence=fft_sequence,
            bands=coerce_bands(self.bands),
            thresholds=dict(self.thresholds or {}),
        )

    def build_task(self, settings: Settings) -> BandFeatureTask:
        return BandFeatureTask(
            bands=self.bands,
            hop_size=self.hop_size,
            thresholds=self.thresholds,
            time_range=self.time_range,
            config=self.config,
        )

    def build_context(self, progress_callback=None) -> JobContext:
        return create_job_context(
            sample_rate=self.sample_rate,
            job_id=self.job_id,
            fft_sequence=self.fft_sequence,
            progress_callback=progress_callback,
        )


@dataclass
class BandFilterRequest(JobRequest):
    """Bandpass every band over a PCM buffer."""
    pcm: PCMInput
    sample_rate: int
    bands: Sequence[BandLike]
    job_id: Optional[str] = None

    kind = "band_filter"

    def detach(self) -> 'BandFilterRequest':
        return replace(self, pcm=_frozen_copy(self.pcm), bands=coerce_bands(self.bands))

    def build_task(self, settings: Settings) -> BandFilterTask:
        return BandFilterTask(self.bands)

    def build_context(self, progress_callback=None) -> JobContext:
        return create_job_context(self.pcm, self.sample_rate, self.job_id, progress_callback=progress_callback)


@dataclass
class OnsetRequest(JobRequest):
    """Onset detection with a named engine (settings default when None)."""
    pcm: PCMInput
    sample_rate: int
    params: Union[OnsetParams, Mapping[str, Any], None] = None
    engine: Optional[str] = None
    job_id: Optional[str] = None

    kind = "onsets"

    def detach(self) -> 'OnsetRequest':
        params = self.params if isinstance(self.params, OnsetParams) else OnsetParams.from_dict(self.params)
        return replace(self, pcm=_frozen_copy(self.pcm), params=params)

    def build_task(self, settings: Settings) -> OnsetDetectionTask:
        return OnsetDetectionTask(engine=self.engine or settings.default_engine, params=self.params)

    def build_context(self, progress_callback=None) -> JobContext:
        return create_job_context(self.pcm, self.sample_rate, self.job_id, progress_callback=progress_callback)

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info.update(engine=self.engine)
        return info


@dataclass
class WaveformRequest(JobRequest):
    """Min/max envelope of a PCM buffer."""
    pcm: PCMInput
    sample_rate: int
    num_points: int
    job_id: Optional[str] = None

    kind = "waveform"

    def detach(self) -> 'WaveformRequest':
        return replace(self, pcm=_frozen_copy(self.pcm))

    def build_task(self, settings: Settings) -> WaveformTask:
        return WaveformTask(self.num_points, progress_interval=settings.waveform_progress_interval)

    def build_context(self, progress_callback=None) -> JobContext:
        return create_job_context(self.pcm, self.sample_rate, self.job_id, progress_callback=progress_callback)

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info.update(num_points=self.num_points)
        return info


REQUEST_KINDS: List[str] = [
    AnalyzeRequest.kind,
    BandDataRequest.kind,
    BandFilterRequest.kind,
    OnsetRequest.kind,
    WaveformRequest.kind,
]


# =============================================================================
# Worker -> caller messages
# =============================================================================

@dataclass
class JobMessage:
    """Base for every message a worker unit posts."""
    job_id: str
    timestamp: float = field(default_factory=time.time)

    terminal = False

    @property
    def type(self) -> str:
        return self.__class__.__name__.replace("Message", "").lower()

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "job_id": self.job_id, "timestamp": self.timestamp}


@dataclass
class StartedMessage(JobMessage):
    kind: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind
        return data


@dataclass
class ProgressMessage(JobMessage):
    processed: int = 0
    total: int = 0

    @property
    def fraction(self) -> float:
        return self.processed / self.total if self.total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(processed=self.processed, total=self.total)
        return data


@dataclass
class ResultMessage(JobMessage):
    result: Optional[TaskResult] = None

    terminal = True

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["result"] = self.result.to_dict() if self.result is not None else None
        return data


@dataclass
class ErrorMessage(JobMessage):
    error: Dict[str, Any] = field(default_factory=dict)

    terminal = True

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["error"] = self.error
        return data
