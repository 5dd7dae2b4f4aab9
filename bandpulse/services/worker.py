"""
Worker unit - Runs one job and posts its messages to the shared channel.

execute_job() is the only entry point a pool calls. It must be a
module-level function so ProcessPoolExecutor can pickle it.

Guarantees per job:
- StartedMessage first, then ProgressMessage* in emission order
- exactly one terminal ResultMessage or ErrorMessage, always last
- no exception escapes: anything unexpected becomes ComputationError
"""

from typing import Any, Optional

from bandpulse.common.logging import get_logger, job_context, setup_logging
from bandpulse.common.monitoring import JobMetrics
from bandpulse.core.config import Settings
from bandpulse.core.errors import BandPulseError, ComputationError
from .messages import (
    JobRequest,
    StartedMessage,
    ProgressMessage,
    ResultMessage,
    ErrorMessage,
)

logger = get_logger(__name__)


def init_worker(level: Optional[str] = None, json_format: Optional[bool] = None) -> None:
    """Pool initializer: configure logging inside a fresh worker process."""
    setup_logging(level=level, json_format=json_format, component="worker")


def execute_job(job_id: str, request: JobRequest, channel: Any, settings: Settings) -> bool:
    """
    Execute one job inside a worker unit.

    Args:
        job_id: Job identifier echoed on every message
        request: Detached job request
        channel: Queue-like object with put()
        settings: Settings snapshot from the dispatcher

    Returns:
        True when the job produced a result, False on error
    """
    with job_context(job_id):
        metrics = JobMetrics(job_id, request.kind)
        channel.put(StartedMessage(job_id=job_id, kind=request.kind))
        logger.debug("Job started", data=request.describe())

        def on_progress(processed: int, total: int) -> None:
            channel.put(ProgressMessage(job_id=job_id, processed=int(processed), total=int(total)))
            metrics.progress_sent()

        try:
            task = request.build_task(settings)
            context = request.build_context(progress_callback=on_progress)
            context.job_id = job_id
            result = task.execute_timed(context)
        except BandPulseError as e:
            metrics.finish(success=False)
            channel.put(ErrorMessage(job_id=job_id, error=e.to_dict()))
            return False
        except Exception as e:
            error = ComputationError(
                f"{request.kind} job failed: {e}",
                data={"kind": request.kind, "exception": e.__class__.__name__},
                cause=e,
            )
            metrics.finish(success=False)
            channel.put(ErrorMessage(job_id=job_id, error=error.to_dict()))
            return False

        metrics.finish(success=result.success)
        channel.put(ResultMessage(job_id=job_id, result=result))
        return True
