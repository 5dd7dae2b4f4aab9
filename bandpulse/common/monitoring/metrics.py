"""Per-job resource metrics."""

import time
import psutil
from typing import Optional, Dict, Any

from bandpulse.common.logging import get_logger

logger = get_logger(__name__)


class JobMetrics:
    """
    Track processing time and memory of one job inside its worker unit.

    Tracks:
    - Wall-clock processing time
    - Resident memory at start/end and the delta
    - Number of progress messages emitted

    Usage:
        metrics = JobMetrics(job_id, kind="analyze")
        ...
        metrics.progress_sent()
        metrics.finish(success=True)
    """

    def __init__(self, job_id: str, kind: str):
        self.job_id = job_id
        self.kind = kind
        self.process = psutil.Process()
        self.start_time = time.perf_counter()
        self.start_rss_mb = self._rss_mb()
        self.progress_messages = 0
        self.elapsed_sec: Optional[float] = None
        self.end_rss_mb: Optional[float] = None

    def _rss_mb(self) -> float:
        return self.process.memory_info().rss / 1024 / 1024

    def progress_sent(self) -> None:
        self.progress_messages += 1

    def finish(self, success: bool) -> Dict[str, Any]:
        """Stop the clock and log a structured summary."""
        self.elapsed_sec = time.perf_counter() - self.start_time
        self.end_rss_mb = self._rss_mb()
        summary = self.to_dict()
        summary["success"] = success
        logger.info("Job finished", data=summary)
        return summary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "kind": self.kind,
            "elapsed_sec": round(self.elapsed_sec, 4) if self.elapsed_sec is not None else None,
            "start_rss_mb": round(self.start_rss_mb, 1),
            "end_rss_mb": round(self.end_rss_mb, 1) if self.end_rss_mb is not None else None,
            "rss_delta_mb": (
                round(self.end_rss_mb - self.start_rss_mb, 1)
                if self.end_rss_mb is not None else None
            ),
            "progress_messages": self.progress_messages,
        }
