"""
Base classes for Tasks layer.

JobContext holds the data one job operates on.
TaskResult is the base class for all task outputs.
ProgressCallback lets tasks report (processed, total) to the worker unit.
"""

import time
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Callable

from bandpulse.common.logging import get_logger
from bandpulse.common.primitives import PCMInput, as_pcm
from bandpulse.core.errors import EmptyInputError

logger = get_logger(__name__)


# Type alias for progress callback
# Args: (processed: int, total: int)
ProgressCallback = Callable[[int, int], None]


@dataclass
class JobContext:
    """
    Data owned by one job for its lifetime.

    Attributes:
        pcm: PCM buffer (float32; 1-D mono or 2-D channels x samples), read-only
        sample_rate: Sample rate in Hz (None when the job has no time axis)
        job_id: Identifier echoed on every message
        fft_sequence: Precomputed FFT sequence (band feature jobs)
        progress_callback: Optional callback for progress updates
        metadata: Additional caller-supplied data
    """
    pcm: Optional[np.ndarray] = None
    sample_rate: Optional[int] = None
    job_id: Optional[str] = None
    fft_sequence: Optional[np.ndarray] = None
    progress_callback: Optional[ProgressCallback] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def report_progress(self, processed: int, total: int):
        """Report progress to callback if set."""
        if self.progress_callback:
            self.progress_callback(processed, total)

    @property
    def n_samples(self) -> int:
        if self.pcm is None:
            return 0
        return int(self.pcm.shape[-1])

    @property
    def duration_sec(self) -> float:
        if not self.sample_rate:
            return 0.0
        return self.n_samples / self.sample_rate


def create_job_context(
    pcm: Optional[PCMInput] = None,
    sample_rate: Optional[int] = None,
    job_id: Optional[str] = None,
    fft_sequence: Optional[np.ndarray] = None,
    progress_callback: Optional[ProgressCallback] = None,
    **metadata
) -> JobContext:
    """
    Create JobContext from raw inputs.

    PCM is copied into a private float32 array and frozen, so the job owns
    it exclusively and nothing can mutate it mid-computation.

    Example:
        >>> ctx = create_job_context(pcm_bytes, sample_rate=44100, job_id="abc")
        >>> result = WaveformTask(num_points=800).execute_timed(ctx)
    """
    frozen_pcm = None
    if pcm is not None:
        frozen_pcm = np.array(as_pcm(pcm), dtype=np.float32, copy=True)
        frozen_pcm.setflags(write=False)

    frozen_fft = None
    if fft_sequence is not None:
        frozen_fft = np.array(fft_sequence, dtype=np.float32, copy=True)
        if frozen_fft.ndim == 1 and frozen_fft.size == 0:
            frozen_fft = frozen_fft.reshape(0, 0)
        frozen_fft.setflags(write=False)

    return JobContext(
        pcm=frozen_pcm,
        sample_rate=sample_rate,
        job_id=job_id,
        fft_sequence=frozen_fft,
        progress_callback=progress_callback,
        metadata=metadata,
    )


@dataclass
class TaskResult:
    """
    Base result for all tasks.

    All task results inherit from this class and add their specific
    output fields.

    Attributes:
        success: Whether the task completed successfully
        task_name: Name of the task
        processing_time_sec: How long the task took
        job_id: Job identifier (echoed for correlation)
        empty: True when the input was empty and the result is a placeholder
        error: Error message if success is False
    """
    success: bool
    task_name: str
    processing_time_sec: float
    job_id: Optional[str] = None
    empty: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            'success': self.success,
            'task_name': self.task_name,
            'processing_time_sec': self.processing_time_sec,
            'job_id': self.job_id,
            'empty': self.empty,
            'error': self.error,
        }


class BaseTask(ABC):
    """
    Abstract base class for all tasks.

    Each task implements execute() and empty_result(). Tasks are
    stateless across calls: configuration lives in __init__, data in
    the JobContext.

    Example:
        class MyTask(BaseTask):
            def execute(self, context: JobContext) -> MyResult:
                envelope = downsample_minmax(context.pcm, 100)
                return MyResult(success=True, ...)
    """

    @property
    def name(self) -> str:
        """Task name (class name by default)."""
        return self.__class__.__name__

    @abstractmethod
    def execute(self, context: JobContext) -> TaskResult:
        """
        Execute the task on the given job context.

        Args:
            context: JobContext with the job's data

        Returns:
            TaskResult subclass with task-specific outputs
        """
        pass

    @abstractmethod
    def empty_result(self, context: JobContext) -> TaskResult:
        """Placeholder result for empty input."""
        pass

    def execute_timed(self, context: JobContext) -> TaskResult:
        """
        Execute the task and measure processing time.

        EmptyInputError is not a failure: it yields empty_result().
        Any other error propagates to the worker unit.
        """
        start = time.perf_counter()
        try:
            result = self.execute(context)
        except EmptyInputError:
            logger.debug("Empty input, returning empty result", data={"task": self.name})
            result = self.empty_result(context)
            result.empty = True
        result.processing_time_sec = time.perf_counter() - start
        result.job_id = context.job_id
        return result
