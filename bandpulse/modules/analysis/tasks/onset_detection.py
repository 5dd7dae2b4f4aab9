"""
Onset Detection Task - Run one detection engine over channel 0.

Unknown engines and engine failures come back as a result with `error`
set; the task itself only raises for empty input.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Mapping, Union

from .base import JobContext, TaskResult, BaseTask
from .detection_engines import DetectionEvent, get_engine
from bandpulse.common.logging import get_logger
from bandpulse.common.primitives import first_channel
from bandpulse.core.errors import BandPulseError, ConfigurationError, EmptyInputError
from bandpulse.modules.analysis.config import OnsetParams

logger = get_logger(__name__)


@dataclass
class OnsetDetectionResult(TaskResult):
    """
    Result of onset detection.

    Attributes:
        engine: Engine name used
        events: Detected onsets in computation order
        detection_function: Engine detection function (may be empty)
        times: Frame times for detection_function
        error_type: Error class name when the engine failed
    """
    success: bool = True
    task_name: str = "OnsetDetection"
    processing_time_sec: float = 0.0
    error: Optional[str] = None

    engine: str = ""
    events: List[DetectionEvent] = field(default_factory=list)
    detection_function: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float64))
    times: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float64))
    error_type: Optional[str] = None

    @property
    def event_times(self) -> List[float]:
        return [e.time for e in self.events]

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()
        base.update({
            'engine': self.engine,
            'events': [e.to_dict() for e in self.events],
            'detection_function': np.asarray(self.detection_function).tolist(),
            'times': np.asarray(self.times).tolist(),
            'error_type': self.error_type,
        })
        return base


class OnsetDetectionTask(BaseTask):
    """Detect onsets with a named engine."""

    def __init__(
        self,
        engine: str = "spectral-flux",
        params: Union[OnsetParams, Mapping[str, Any], None] = None,
    ):
        self.engine = engine
        self.params = params if isinstance(params, OnsetParams) else OnsetParams.from_dict(params)

    @property
    def name(self) -> str:
        return "OnsetDetection"

    def execute(self, context: JobContext) -> OnsetDetectionResult:
        try:
            engine = get_engine(self.engine)
            if not context.sample_rate or context.sample_rate <= 0:
                raise ConfigurationError(
                    "sample_rate must be positive",
                    data={"sample_rate": context.sample_rate},
                )
            if context.n_samples == 0:
                raise EmptyInputError("PCM buffer is empty")
            detection = engine.detect(first_channel(context.pcm), context.sample_rate, self.params)
        except EmptyInputError:
            raise
        except BandPulseError as e:
            return OnsetDetectionResult(
                success=False,
                engine=self.engine,
                error=e.message,
                error_type=e.__class__.__name__,
            )

        logger.debug("Onset detection finished", data={
            'engine': self.engine,
            'events': len(detection.events),
            'frames': int(len(detection.times)),
        })

        return OnsetDetectionResult(
            engine=self.engine,
            events=detection.events,
            detection_function=detection.detection_function,
            times=detection.times,
        )

    def empty_result(self, context: JobContext) -> OnsetDetectionResult:
        return OnsetDetectionResult(engine=self.engine)
