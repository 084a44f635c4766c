"""
Job Store: the ``ai_jobs`` table used as a durable queue.

Every mutation after the claim is conditioned on ``status = running`` so a
partial write can never land after the terminal write, and a claim is a
conditional ``queued -> running`` update so two dispatches cannot both win.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional, Protocol

from .errors import InvalidTransition, JobConflict, JobNotFound
from .jobs import Job, JobStatus, ensure_transition, utcnow
from .supabase_rest import SupabaseRestClient, eq

logger = logging.getLogger(__name__)

JOBS_TABLE = "ai_jobs"


class JobStore(Protocol):
    async def get(self, job_id: str) -> Optional[Job]: ...

    async def create(self, owner_user_id: str, job_type: str, input: Dict[str, Any]) -> Job: ...

    async def claim(self, job_id: str, owner_user_id: str) -> Job: ...

    async def write_partial(self, job_id: str, result: Dict[str, Any]) -> bool: ...

    async def complete(self, job_id: str, result: Any) -> Job: ...

    async def fail(self, job_id: str, error: str) -> Job: ...


def _reject_claim(job: Job) -> None:
    if job.status is JobStatus.RUNNING:
        raise JobConflict("Job already running")
    if job.status.is_terminal:
        raise JobConflict(f"Job already {job.status.value}")


class SupabaseJobStore:
    """Job Store backed by the Supabase ``ai_jobs`` table."""

    def __init__(self, rest: SupabaseRestClient, table: str = JOBS_TABLE):
        self.rest = rest
        self.table = table

    async def get(self, job_id: str) -> Optional[Job]:
        row = await self.rest.select_one(self.table, {"id": eq(job_id)})
        return Job.from_row(row) if row else None

    async def create(self, owner_user_id: str, job_type: str, input: Dict[str, Any]) -> Job:
        rows = await self.rest.insert(
            self.table,
            {
                "owner_user_id": owner_user_id,
                "job_type": job_type,
                "input": input,
                "status": JobStatus.QUEUED.value,
            },
        )
        return Job.from_row(rows[0])

    async def claim(self, job_id: str, owner_user_id: str) -> Job:
        row = await self.rest.select_one(
            self.table, {"id": eq(job_id), "owner_user_id": eq(owner_user_id)}
        )
        if row is None:
            raise JobNotFound("Job not found")
        _reject_claim(Job.from_row(row))

        updated = await self.rest.update(
            self.table,
            {"status": JobStatus.RUNNING.value, "updated_at": utcnow().isoformat()},
            {
                "id": eq(job_id),
                "owner_user_id": eq(owner_user_id),
                "status": eq(JobStatus.QUEUED.value),
            },
        )
        if not updated:
            # Another dispatch claimed it between the read and the update
            raise JobConflict("Job already running")
        return Job.from_row(updated[0])

    async def write_partial(self, job_id: str, result: Dict[str, Any]) -> bool:
        updated = await self.rest.update(
            self.table,
            {"result": result, "updated_at": utcnow().isoformat()},
            {"id": eq(job_id), "status": eq(JobStatus.RUNNING.value)},
        )
        return bool(updated)

    async def _finish(self, job_id: str, values: Dict[str, Any]) -> Job:
        values["updated_at"] = utcnow().isoformat()
        updated = await self.rest.update(
            self.table, values, {"id": eq(job_id), "status": eq(JobStatus.RUNNING.value)}
        )
        if not updated:
            raise InvalidTransition(f"job {job_id} is no longer running")
        return Job.from_row(updated[0])

    async def complete(self, job_id: str, result: Any) -> Job:
        return await self._finish(
            job_id, {"status": JobStatus.SUCCEEDED.value, "result": result, "error": None}
        )

    async def fail(self, job_id: str, error: str) -> Job:
        return await self._finish(job_id, {"status": JobStatus.FAILED.value, "error": error})


class MemoryJobStore:
    """In-process Job Store for local runs; same semantics as the table store."""

    def __init__(self) -> None:
        self.jobs: Dict[str, Job] = {}
        self._lock = asyncio.Lock()

    async def get(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    async def create(self, owner_user_id: str, job_type: str, input: Dict[str, Any]) -> Job:
        job = Job(id=uuid.uuid4().hex, owner_user_id=owner_user_id, job_type=job_type, input=input)
        async with self._lock:
            self.jobs[job.id] = job
        return job

    async def claim(self, job_id: str, owner_user_id: str) -> Job:
        async with self._lock:
            job = self.jobs.get(job_id)
            if job is None or job.owner_user_id != owner_user_id:
                raise JobNotFound("Job not found")
            _reject_claim(job)
            job.touch(status=JobStatus.RUNNING)
            return job

    async def write_partial(self, job_id: str, result: Dict[str, Any]) -> bool:
        async with self._lock:
            job = self.jobs.get(job_id)
            if job is None or job.status is not JobStatus.RUNNING:
                return False
            job.result = result
            job.touch()
            return True

    async def complete(self, job_id: str, result: Any) -> Job:
        async with self._lock:
            job = self._running(job_id)
            ensure_transition(job.status, JobStatus.SUCCEEDED)
            job.result = result
            job.touch(status=JobStatus.SUCCEEDED)
            return job

    async def fail(self, job_id: str, error: str) -> Job:
        async with self._lock:
            job = self._running(job_id)
            job.touch(status=JobStatus.FAILED, error=error)
            return job

    def _running(self, job_id: str) -> Job:
        job = self.jobs.get(job_id)
        if job is None or job.status is not JobStatus.RUNNING:
            raise InvalidTransition(f"job {job_id} is no longer running")
        return job
