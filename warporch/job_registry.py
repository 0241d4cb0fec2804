"""
In-flight job registry.

Tracks which configuration fingerprints are currently executing so that a
second job for the same configuration is rejected instead of racing the
first one on-chain. Entries are inserted when a job starts and removed when
it reaches a terminal state.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from warporch.errors import WarporchError

logger = logging.getLogger(__name__)


class AlreadyInFlightError(WarporchError):
    """Raised when a fingerprint is already claimed by a running job."""

    kind = "AlreadyInFlight"

    def __init__(self, fingerprint: str, job_id: str):
        self.fingerprint = fingerprint
        self.job_id = job_id
        super().__init__(f"configuration {fingerprint} is already being deployed by job {job_id}")


@dataclass(frozen=True)
class InFlightJob:
    job_id: str
    fingerprint: str


class InFlightRegistry:
    """Thread-safe map of configuration fingerprint -> running job."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_fingerprint: dict[str, InFlightJob] = {}

    def claim(self, fingerprint: str, job_id: str) -> InFlightJob:
        """
        Register a job as running.

        Raises:
            AlreadyInFlightError: If another job holds the fingerprint
        """
        with self._lock:
            current = self._by_fingerprint.get(fingerprint)
            if current is not None:
                raise AlreadyInFlightError(fingerprint, current.job_id)
            entry = InFlightJob(job_id=job_id, fingerprint=fingerprint)
            self._by_fingerprint[fingerprint] = entry
        logger.debug(f"Claimed {fingerprint}", extra={"job_id": job_id})
        return entry

    def release(self, fingerprint: str, job_id: str) -> None:
        with self._lock:
            current = self._by_fingerprint.get(fingerprint)
            if current is not None and current.job_id == job_id:
                del self._by_fingerprint[fingerprint]
        logger.debug(f"Released {fingerprint}", extra={"job_id": job_id})

    @contextmanager
    def hold(self, fingerprint: str, job_id: str) -> Iterator[InFlightJob]:
        """Claim for the duration of the block; always released on exit."""
        entry = self.claim(fingerprint, job_id)
        try:
            yield entry
        finally:
            self.release(fingerprint, job_id)

    def is_in_flight(self, fingerprint: str) -> bool:
        with self._lock:
            return fingerprint in self._by_fingerprint

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_fingerprint)
