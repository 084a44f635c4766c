"""
Client Poller: wait for a job to reach a terminal status.

Polling is single-flight per job id and guarded by a per-job circuit breaker.
Both live in a ``PollerState`` owned by the caller, so independent pollers
(and tests) never share state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Set

from wardrobe_gateway.jobs import Job, JobStatus

from .config import ClientSettings
from .errors import (
    AlreadyPolling,
    CircuitOpen,
    JobNotVisible,
    JobReadError,
    PollError,
    PollTimeout,
)

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_INTERVAL_MS = 2000
DEFAULT_MAX_INTERVAL_MS = 10000
DEFAULT_FAILURE_THRESHOLD = 5


class JobReader(Protocol):
    async def get_job(self, job_id: str) -> Optional[Job]: ...


def backoff_schedule(
    count: int,
    initial_ms: int = DEFAULT_INITIAL_INTERVAL_MS,
    max_ms: int = DEFAULT_MAX_INTERVAL_MS,
) -> List[int]:
    """The first ``count`` sleep intervals: doubling from ``initial_ms``, capped at ``max_ms``."""
    intervals = []
    interval = initial_ms
    for _ in range(max(0, count)):
        intervals.append(min(interval, max_ms))
        interval = min(interval * 2, max_ms)
    return intervals


class PollerState:
    """In-flight job ids and failure counters shared by the pollers of one client."""

    def __init__(self, failure_threshold: int = DEFAULT_FAILURE_THRESHOLD):
        self.failure_threshold = failure_threshold
        self._lock = asyncio.Lock()
        self._in_flight: Set[str] = set()
        self._failures: Dict[str, int] = {}

    async def acquire(self, job_id: str) -> None:
        async with self._lock:
            if job_id in self._in_flight:
                raise AlreadyPolling(job_id)
            if self._failures.get(job_id, 0) >= self.failure_threshold:
                raise CircuitOpen(job_id)
            self._in_flight.add(job_id)

    async def release(self, job_id: str) -> None:
        async with self._lock:
            self._in_flight.discard(job_id)

    async def record_failure(self, job_id: str) -> int:
        async with self._lock:
            count = self._failures.get(job_id, 0) + 1
            self._failures[job_id] = count
            return count

    async def record_success(self, job_id: str) -> None:
        async with self._lock:
            self._failures.pop(job_id, None)

    async def reset(self, job_id: str) -> None:
        async with self._lock:
            self._failures.pop(job_id, None)
            self._in_flight.discard(job_id)

    def failures(self, job_id: str) -> int:
        return self._failures.get(job_id, 0)

    def is_open(self, job_id: str) -> bool:
        return self.failures(job_id) >= self.failure_threshold

    def is_polling(self, job_id: str) -> bool:
        return job_id in self._in_flight


class JobPoller:
    def __init__(
        self,
        reader: JobReader,
        state: Optional[PollerState] = None,
        settings: Optional[ClientSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = settings or ClientSettings()
        self.reader = reader
        self.state = state or PollerState(settings.failure_threshold)
        self.default_max_attempts = settings.max_attempts
        self.initial_interval_ms = settings.initial_interval_ms
        self.max_interval_ms = settings.max_interval_ms
        self._sleep = sleep

    async def poll(
        self,
        job_id: str,
        max_attempts: Optional[int] = None,
        initial_interval_ms: Optional[int] = None,
    ) -> Job:
        """
        Read the job until it is ``succeeded`` or ``failed`` and return it.

        Raises:
            AlreadyPolling: another poll of ``job_id`` is in progress
            CircuitOpen: too many failures for ``job_id``; the store is not read
            JobReadError: the store read failed
            JobNotVisible: the job never appeared within ``max_attempts``
            PollTimeout: the job was still not terminal after ``max_attempts``
        """
        attempts = max_attempts or self.default_max_attempts
        initial = initial_interval_ms or self.initial_interval_ms
        await self.state.acquire(job_id)
        try:
            return await self._poll(job_id, attempts, initial)
        finally:
            await self.state.release(job_id)

    async def _poll(self, job_id: str, attempts: int, initial_ms: int) -> Job:
        delays = backoff_schedule(attempts - 1, initial_ms, self.max_interval_ms)
        for attempt in range(attempts):
            job = await self._read(job_id)
            if job is None:
                if attempt == attempts - 1:
                    await self.state.record_failure(job_id)
                    raise JobNotVisible(job_id)
            elif job.status is JobStatus.SUCCEEDED:
                await self.state.record_success(job_id)
                logger.info(f"Job {job_id} succeeded after {attempt + 1} read(s)")
                return job
            elif job.status is JobStatus.FAILED:
                failures = await self.state.record_failure(job_id)
                logger.warning(f"Job {job_id} failed: {job.error} (failure {failures})")
                return job

            if attempt < attempts - 1:
                await self._sleep(delays[attempt] / 1000)

        logger.warning(f"Polling job {job_id} timed out after {attempts} attempts")
        raise PollTimeout(job_id)

    async def _read(self, job_id: str) -> Optional[Job]:
        try:
            return await self.reader.get_job(job_id)
        except JobReadError:
            await self.state.record_failure(job_id)
            raise
        except Exception as e:
            await self.state.record_failure(job_id)
            raise JobReadError(job_id, f"Failed to read job {job_id}: {e}") from e

    async def poll_with_final_check(
        self,
        job_id: str,
        max_attempts: Optional[int] = None,
        initial_interval_ms: Optional[int] = None,
    ) -> Job:
        """``poll``, then one direct read on failure; a terminal job from that read wins."""
        try:
            return await self.poll(job_id, max_attempts, initial_interval_ms)
        except PollError as e:
            logger.info(f"Polling job {job_id} ended with '{e}', doing final check")
            job = await self._final_read(job_id)
            if job is not None and job.is_terminal:
                return job
            raise

    async def _final_read(self, job_id: str) -> Optional[Job]:
        try:
            return await self.reader.get_job(job_id)
        except Exception as e:
            logger.warning(f"Final check for job {job_id} failed: {e}")
            return None

    async def wait_for_completion(
        self,
        job_id: str,
        max_attempts: Optional[int] = None,
        initial_interval_ms: Optional[int] = None,
    ) -> Job:
        """Poll until the job is terminal, starting over whenever a round times out."""
        while True:
            try:
                return await self.poll_with_final_check(job_id, max_attempts, initial_interval_ms)
            except PollTimeout:
                logger.info(f"Job {job_id} still processing, continuing to wait")
