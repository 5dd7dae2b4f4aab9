"""
Layer 3: SERVICES - Job dispatch and worker units.

Usage:
    from bandpulse.services import JobDispatcher, AnalyzeRequest

    with JobDispatcher(backend="thread") as dispatcher:
        result = dispatcher.run(AnalyzeRequest(pcm, 1024, 512, sample_rate=44100))
"""

from .messages import (
    JobRequest,
    AnalyzeRequest,
    BandDataRequest,
    BandFilterRequest,
    OnsetRequest,
    WaveformRequest,
    REQUEST_KINDS,
    JobMessage,
    StartedMessage,
    ProgressMessage,
    ResultMessage,
    ErrorMessage,
)
from .worker import execute_job, init_worker
from .dispatcher import JobDispatcher, JobHandle, JobState, ProgressHandler

__all__ = [
    # Requests
    'JobRequest',
    'AnalyzeRequest',
    'BandDataRequest',
    'BandFilterRequest',
    'OnsetRequest',
    'WaveformRequest',
    'REQUEST_KINDS',
    # Messages
    'JobMessage',
    'StartedMessage',
    'ProgressMessage',
    'ResultMessage',
    'ErrorMessage',
    # Execution
    'execute_job',
    'init_worker',
    'JobDispatcher',
    'JobHandle',
    'JobState',
    'ProgressHandler',
]
