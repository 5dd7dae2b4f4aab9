"""
Job Dispatcher - Off-thread execution of analysis jobs.

A fixed pool of worker units (processes or threads) runs jobs; every unit
posts its messages to one shared channel. A single pump thread drains the
channel and routes each message to its JobHandle by job id, so messages
of one job arrive in the order they were emitted.

Backends:
    process  # ProcessPoolExecutor + multiprocessing manager queue
    thread   # ThreadPoolExecutor + queue.Queue

Usage:
    with JobDispatcher(workers=2, backend="thread") as dispatcher:
        handle = dispatcher.submit(WaveformRequest(pcm, 44100, 800))
        for message in handle.messages():
            ...
        result = handle.result()
"""

import queue
import threading
import multiprocessing
from concurrent.futures import Future, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from bandpulse.common.logging import get_logger, generate_job_id, get_logging_config
from bandpulse.core.config import Settings, WorkerBackend, get_settings
from bandpulse.core.errors import (
    ComputationError,
    DispatcherError,
    JobCancelledError,
    error_from_dict,
)
from bandpulse.modules.analysis.tasks import TaskResult
from .messages import (
    JobRequest,
    JobMessage,
    StartedMessage,
    ProgressMessage,
    ResultMessage,
    ErrorMessage,
)
from .worker import execute_job, init_worker

logger = get_logger(__name__)


# Args: (message)
ProgressHandler = Callable[[ProgressMessage], None]

_STOP = None


class JobState(str, Enum):
    """Job lifecycle states."""
    SUBMITTED = "submitted"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)


class JobHandle:
    """
    Caller-side view of one submitted job.

    Updated by the dispatcher pump thread; all reads are thread-safe.
    """

    def __init__(self, job_id: str, kind: str, on_progress: Optional[ProgressHandler] = None):
        self.job_id = job_id
        self.kind = kind
        self._on_progress = on_progress
        self._cond = threading.Condition()
        self._messages: List[JobMessage] = []
        self._state = JobState.SUBMITTED
        self._progress: Optional[ProgressMessage] = None
        self._terminal: Optional[JobMessage] = None
        self._future: Optional[Future] = None

    def __repr__(self) -> str:
        return f"JobHandle(job_id={self.job_id!r}, kind={self.kind!r}, state={self._state.value})"

    @property
    def state(self) -> JobState:
        with self._cond:
            return self._state

    @property
    def progress(self) -> Optional[ProgressMessage]:
        """Latest progress message, if any."""
        with self._cond:
            return self._progress

    @property
    def done(self) -> bool:
        with self._cond:
            return self._state.is_terminal

    def _deliver(self, message: JobMessage) -> bool:
        """Record a message; returns False when the job no longer accepts messages."""
        with self._cond:
            if self._state.is_terminal:
                return False
            self._messages.append(message)
            if isinstance(message, StartedMessage):
                self._state = JobState.RUNNING
            elif isinstance(message, ProgressMessage):
                self._state = JobState.RUNNING
                self._progress = message
            elif isinstance(message, ResultMessage):
                self._state = JobState.COMPLETED
                self._terminal = message
            elif isinstance(message, ErrorMessage):
                self._state = JobState.FAILED
                self._terminal = message
            self._cond.notify_all()

        if isinstance(message, ProgressMessage) and self._on_progress is not None:
            try:
                self._on_progress(message)
            except Exception:
                logger.exception("Progress callback failed", data={"job_id": self.job_id})
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job is terminal; returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._state.is_terminal, timeout=timeout)

    def result(self, timeout: Optional[float] = None) -> TaskResult:
        """
        Wait for the job and return its result.

        Raises:
            TimeoutError: Job not finished within timeout
            JobCancelledError: Job was cancelled
            BandPulseError subclass: Job failed (rebuilt from the error message)
        """
        if not self.wait(timeout):
            raise TimeoutError(f"Job {self.job_id} not finished after {timeout}s")
        with self._cond:
            state, terminal = self._state, self._terminal
        if state is JobState.CANCELLED:
            raise JobCancelledError("Job was cancelled", data={"job_id": self.job_id})
        if isinstance(terminal, ErrorMessage):
            raise error_from_dict(terminal.error)
        return terminal.result

    def messages(self, timeout: Optional[float] = None) -> Iterator[JobMessage]:
        """
        Iterate over this job's messages as they arrive.

        Stops after the terminal message (or on cancellation). timeout
        bounds each wait for the next message.
        """
        index = 0
        while True:
            with self._cond:
                ready = self._cond.wait_for(
                    lambda: len(self._messages) > index or self._state.is_terminal,
                    timeout=timeout,
                )
                if not ready:
                    raise TimeoutError(f"No message from job {self.job_id} after {timeout}s")
                pending = self._messages[index:]
                finished = self._state.is_terminal
            for message in pending:
                yield message
            index += len(pending)
            # Terminal jobs accept no further messages
            if finished:
                return

    def cancel(self) -> bool:
        """
        Abandon the job.

        A queued job never starts; a running job runs to completion in its
        unit but every later message is discarded.

        Returns:
            False when the job was already terminal
        """
        with self._cond:
            if self._state.is_terminal:
                return False
            self._state = JobState.CANCELLED
            self._cond.notify_all()
        if self._future is not None:
            self._future.cancel()
        logger.info("Job cancelled", data={"job_id": self.job_id, "kind": self.kind})
        return True


class JobDispatcher:
    """
    Pool of worker units plus a message pump.

    submit() never blocks on computation. Jobs do not share state; each
    request is detached (private read-only buffers) before it is queued.
    """

    def __init__(
        self,
        workers: Optional[int] = None,
        backend: Union[str, WorkerBackend, None] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            workers: Pool size (default: settings.workers)
            backend: "process" or "thread" (default: settings.worker_backend)
            settings: Settings snapshot passed to every job
        """
        self.settings = settings or get_settings()
        self.workers = int(workers or self.settings.workers)
        if self.workers <= 0:
            raise DispatcherError("workers must be positive", data={"workers": self.workers})
        try:
            self.backend = WorkerBackend(backend or self.settings.worker_backend)
        except ValueError as e:
            raise DispatcherError(
                f"Unknown worker backend '{backend}'",
                data={"backend": str(backend), "supported": [b.value for b in WorkerBackend]},
                cause=e,
            )

        self._lock = threading.Lock()
        self._jobs: Dict[str, JobHandle] = {}
        self._closed = False
        self._completed = 0
        self._failed = 0
        self._manager = None

        if self.backend is WorkerBackend.PROCESS:
            self._manager = multiprocessing.Manager()
            self._channel = self._manager.Queue()
            log_config = get_logging_config()
            self._executor = ProcessPoolExecutor(
                max_workers=self.workers,
                initializer=init_worker,
                initargs=(log_config.get_level("worker"), log_config.get_json_format("worker")),
            )
        else:
            self._channel = queue.Queue()
            self._executor = ThreadPoolExecutor(
                max_workers=self.workers,
                thread_name_prefix="bandpulse-worker",
            )

        self._pump = threading.Thread(target=self._pump_messages, name="bandpulse-pump", daemon=True)
        self._pump.start()

        logger.info("Dispatcher started", data={"backend": self.backend.value, "workers": self.workers})

    def __enter__(self) -> 'JobDispatcher':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        request: JobRequest,
        on_progress: Optional[ProgressHandler] = None,
        job_id: Optional[str] = None,
    ) -> JobHandle:
        """
        Queue a job and return immediately.

        Args:
            request: One of the request dataclasses
            on_progress: Called on the pump thread for each progress message
            job_id: Explicit job id (default: request.job_id or a new uuid)

        Returns:
            JobHandle for the queued job
        """
        if not isinstance(request, JobRequest):
            raise DispatcherError(
                "Unsupported request type",
                data={"type": type(request).__name__},
            )

        job_id = job_id or request.job_id or generate_job_id()
        detached = replace(request.detach(), job_id=job_id)
        handle = JobHandle(job_id, request.kind, on_progress)

        with self._lock:
            if self._closed:
                raise DispatcherError("Dispatcher is shut down", data={"job_id": job_id})
            existing = self._jobs.get(job_id)
            if existing is not None:
                # A cancelled job keeps its id until its unit finishes
                raise DispatcherError(
                    "Job id already in use",
                    data={"job_id": job_id, "state": existing.state.value},
                )
            self._jobs[job_id] = handle
            future = self._executor.submit(execute_job, job_id, detached, self._channel, self.settings)
            handle._future = future

        future.add_done_callback(lambda f, h=handle: self._on_future_done(h, f))
        logger.debug("Job submitted", data=detached.describe())
        return handle

    def run(
        self,
        request: JobRequest,
        on_progress: Optional[ProgressHandler] = None,
        timeout: Optional[float] = None,
    ) -> TaskResult:
        """Submit and wait for the result."""
        return self.submit(request, on_progress=on_progress).result(timeout)

    def get_job(self, job_id: str) -> Optional[JobHandle]:
        with self._lock:
            return self._jobs.get(job_id)

    def cancel(self, job_id: str) -> bool:
        """
        Cancel a job by id; False when unknown or already finished.

        The handle stays registered until the unit running it posts its
        terminal message, so the id cannot be reused while stale messages
        for it may still arrive.
        """
        handle = self.get_job(job_id)
        if handle is None:
            return False
        return handle.cancel()

    # ------------------------------------------------------------------
    # Message routing
    # ------------------------------------------------------------------

    def _pump_messages(self) -> None:
        while True:
            message = self._channel.get()
            if message is _STOP:
                break
            self._route(message)

    def _route(self, message: JobMessage) -> None:
        with self._lock:
            handle = self._jobs.get(message.job_id)
        if handle is None:
            # Unknown job
            return
        delivered = handle._deliver(message)
        if message.terminal:
            with self._lock:
                if self._jobs.get(message.job_id) is handle:
                    del self._jobs[message.job_id]
                if not delivered:
                    return
                if isinstance(message, ResultMessage):
                    self._completed += 1
                else:
                    self._failed += 1

    def _on_future_done(self, handle: JobHandle, future: Future) -> None:
        if future.cancelled():
            # Never started, so no message will arrive for it
            with self._lock:
                if self._jobs.get(handle.job_id) is handle:
                    del self._jobs[handle.job_id]
            return
        exc = future.exception()
        if exc is None:
            return
        # The unit died before posting a terminal message (broken pool,
        # unpicklable request)
        error = ComputationError(
            f"Worker unit failed: {exc}",
            data={"job_id": handle.job_id, "kind": handle.kind},
            cause=exc,
        )
        self._route(ErrorMessage(job_id=handle.job_id, error=error.to_dict()))

    # ------------------------------------------------------------------
    # Introspection and shutdown
    # ------------------------------------------------------------------

    def get_info(self) -> Dict[str, Any]:
        """Active and queued job counts per request kind."""
        active: Dict[str, int] = {}
        queued: Dict[str, int] = {}
        with self._lock:
            handles = list(self._jobs.values())
            completed, failed = self._completed, self._failed
        for handle in handles:
            state = handle.state
            if state is JobState.RUNNING:
                active[handle.kind] = active.get(handle.kind, 0) + 1
            elif state is JobState.SUBMITTED:
                queued[handle.kind] = queued.get(handle.kind, 0) + 1
        return {
            "backend": self.backend.value,
            "workers": self.workers,
            "active": active,
            "queued": queued,
            "completed": completed,
            "failed": failed,
            "closed": self._closed,
        }

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting jobs and release the pool.

        Args:
            wait: Wait for queued and running jobs to finish. With
                  wait=False every unfinished job is cancelled.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._jobs.values())

        if not wait:
            for handle in pending:
                handle.cancel()

        self._executor.shutdown(wait=True, cancel_futures=not wait)
        self._channel.put(_STOP)
        self._pump.join()
        if self._manager is not None:
            self._manager.shutdown()

        logger.info("Dispatcher stopped", data={
            "backend": self.backend.value,
            "completed": self._completed,
            "failed": self._failed,
        })
