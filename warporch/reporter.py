"""
Result Reporter - hands the final JobResult back to the dispatch layer.

Delivery is the only thing retried here. A failed delivery never causes the
job to be executed again; the same JobResult is re-sent.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from warporch.config import WarporchConfig
from warporch.errors import TransportError
from warporch.schemas import JobResult
from warporch.utils import retry_with_backoff

logger = logging.getLogger(__name__)


class ResultReporter(ABC):
    """
    Abstract base class for result transports.

    Implementations raise TransportError when delivery fails and may be
    retried; any other exception is a programming error and propagates.
    """

    @abstractmethod
    def report(self, result: JobResult) -> None:
        """Deliver ``result``. Returning normally acknowledges delivery."""
        pass


class InMemoryReporter(ResultReporter):
    """Collects results in a list. Used by tests and embedders."""

    def __init__(self) -> None:
        self.results: list[JobResult] = []
        self._lock = threading.Lock()

    def report(self, result: JobResult) -> None:
        with self._lock:
            self.results.append(result)

    def get(self, job_id: str) -> Optional[JobResult]:
        with self._lock:
            for result in self.results:
                if result.job_id == job_id:
                    return result
        return None


class LogReporter(ResultReporter):
    """Emits the result as one structured log line."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def report(self, result: JobResult) -> None:
        self._log.info(
            f"Job result: {result.status.value}",
            extra={
                "job_id": result.job_id,
                "event": "job.result",
                "metadata": result.to_dict(),
            },
        )


def deliver_result(
    reporter: ResultReporter,
    result: JobResult,
    settings: Optional[WarporchConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Deliver a JobResult, retrying on TransportError.

    Raises:
        TransportError: If every delivery attempt failed
    """
    settings = settings or WarporchConfig()
    try:
        retry_with_backoff(
            lambda: reporter.report(result),
            retry_on=(TransportError,),
            max_attempts=settings.report_max_attempts,
            backoff_seconds=settings.report_backoff_seconds,
            backoff_multiplier=settings.backoff_multiplier,
            logger=logger,
            sleep=sleep,
        )
    except TransportError:
        logger.error(
            f"Giving up on delivering result for job {result.job_id}",
            extra={"job_id": result.job_id, "event": "job.result_undelivered"},
        )
        raise
    logger.info(
        f"Delivered result for job {result.job_id}",
        extra={"job_id": result.job_id, "event": "job.result_delivered"},
    )
