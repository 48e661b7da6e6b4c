"""
JobQueue - deduplicating work queue keyed by charity identifier.

An identifier is held from enqueue until its job is completed or failed.
Enqueueing it again while it is held is a no-op, so at most one job per
identifier is ever queued or in flight. Releasing it makes it eligible for
the next discovery pass.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from charity_oracle.models import JobOrigin, JobState, VerificationJob

logger = logging.getLogger(__name__)


class QueueClosed(Exception):
    """Raised by dequeue() once the queue is closed and drained."""


class JobQueue:
    """FIFO of verification jobs with per-identifier dedup."""

    def __init__(self) -> None:
        self._jobs: Dict[int, VerificationJob] = {}
        self._ready: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self.merged_count = 0
        self.completed_count = 0
        self.failed_count = 0

    def enqueue(self, charity_id: int, origin: JobOrigin, submitter: Optional[str] = None) -> bool:
        """Queue a job. Returns False when the identifier is already held."""
        if self._closed:
            logger.debug(f"Queue closed; dropping charity {charity_id} from {origin.value}")
            return False

        existing = self._jobs.get(charity_id)
        if existing is not None:
            self.merged_count += 1
            if submitter and not existing.submitter:
                existing.submitter = submitter
            logger.debug(
                f"Charity {charity_id} already {existing.state.value}; merged {origin.value} request"
            )
            return False

        job = VerificationJob(charity_id=charity_id, origin=origin, submitter=submitter)
        self._jobs[charity_id] = job
        self._ready.put_nowait(job)
        logger.info(f"Queued charity {charity_id} ({origin.value}), {self._ready.qsize()} waiting")
        return True

    async def dequeue(self) -> VerificationJob:
        """Wait for the next job and mark it in flight.

        Raises:
            QueueClosed: when the queue has been closed and nothing is left
        """
        job = await self._ready.get()
        if job is None:
            # Wake-up sentinel from close(); leave one for the other consumers.
            self._ready.put_nowait(None)
            raise QueueClosed()
        job.state = JobState.SCORING
        job.attempts += 1
        return job

    def mark_submitting(self, charity_id: int) -> None:
        job = self._jobs.get(charity_id)
        if job is not None:
            job.state = JobState.SUBMITTING

    def complete(self, charity_id: int) -> None:
        job = self._jobs.pop(charity_id, None)
        if job is None:
            return
        job.state = JobState.DONE
        self.completed_count += 1
        logger.info(f"Released charity {charity_id} (done)")

    def fail(self, charity_id: int, error: str) -> None:
        job = self._jobs.pop(charity_id, None)
        if job is None:
            return
        job.state = JobState.FAILED
        job.error = error
        self.failed_count += 1
        logger.warning(f"Released charity {charity_id} (failed): {error}")

    def close(self, drop_waiting: bool = True) -> None:
        """Stop accepting jobs.

        With ``drop_waiting`` the jobs not yet started are discarded; without
        it consumers keep receiving them until the queue is empty. Jobs
        already dequeued stay held until their worker resolves them.
        """
        if self._closed:
            return
        self._closed = True
        dropped = 0
        while drop_waiting and not self._ready.empty():
            job = self._ready.get_nowait()
            if job is not None:
                self._jobs.pop(job.charity_id, None)
                dropped += 1
        self._ready.put_nowait(None)
        if dropped:
            logger.info(f"Queue closed; dropped {dropped} queued jobs")

    def is_held(self, charity_id: int) -> bool:
        return charity_id in self._jobs

    def get_job(self, charity_id: int) -> Optional[VerificationJob]:
        return self._jobs.get(charity_id)

    @property
    def waiting_count(self) -> int:
        return sum(1 for job in self._jobs.values() if job.state == JobState.QUEUED)

    @property
    def in_flight_count(self) -> int:
        return sum(1 for job in self._jobs.values() if job.is_active)

    def get_status(self) -> dict:
        return {
            "waiting": self.waiting_count,
            "in_flight": self.in_flight_count,
            "merged": self.merged_count,
            "completed": self.completed_count,
            "failed": self.failed_count,
            "closed": self._closed,
        }
