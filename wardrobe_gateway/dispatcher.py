"""
Job Dispatcher: authenticate, claim, route, run and record one job.

A dispatch always ends in exactly one terminal write once the claim has
succeeded. Handler failures never escape ``dispatch``; they are recorded on the
job row and reported through ``DispatchOutcome``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from .auth import AuthClient
from .errors import JobError, MissingJobId, UnknownJobType
from .handlers import HANDLERS, Handler, HandlerContext, PartialResultPublisher
from .job_store import JobStore
from .jobs import Job, JobStatus, JobType
from .timing import JobTimer

logger = logging.getLogger(__name__)

ContextBuilder = Callable[[Job, str, PartialResultPublisher, JobTimer], HandlerContext]


@dataclass
class HandlerOutcome:
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class DispatchOutcome:
    job_id: str
    status: JobStatus
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    timings: Dict[str, int] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status is JobStatus.SUCCEEDED


class JobDispatcher:
    def __init__(
        self,
        auth: AuthClient,
        store: JobStore,
        build_context: ContextBuilder,
        handlers: Optional[Mapping[JobType, Handler]] = None,
    ):
        self.auth = auth
        self.store = store
        self.build_context = build_context
        self.handlers = dict(HANDLERS if handlers is None else handlers)

    async def dispatch(self, job_id: Optional[str], auth_token: Optional[str]) -> DispatchOutcome:
        """
        Run one job to a terminal state.

        Raises:
            Unauthorized: token missing or rejected by Supabase Auth
            MissingJobId: no job id supplied
            JobNotFound: job absent or owned by another user
            JobConflict: job already running or finished
        """
        user = await self.auth.get_user(auth_token)
        if not job_id:
            raise MissingJobId("job_id is required")

        job = await self.store.claim(job_id, user.id)
        logger.info(f"Claimed job {job.id} ({job.job_type}) for user {user.id}")

        timer = JobTimer(job.id)
        publisher = PartialResultPublisher(self.store, job.id)
        try:
            outcome = await self._run(job, user.id, publisher, timer)
        except asyncio.CancelledError:
            outcome = HandlerOutcome(error="Job cancelled")
            await self._record(job, outcome, publisher, timer)
            raise

        final = await self._record(job, outcome, publisher, timer)
        return DispatchOutcome(
            job_id=job.id,
            status=final.status,
            result=outcome.result,
            error=outcome.error,
            timings=timer.breakdown(),
        )

    async def _run(
        self, job: Job, owner_id: str, publisher: PartialResultPublisher, timer: JobTimer
    ) -> HandlerOutcome:
        handler = self.handlers.get(job.type) if job.type is not None else None
        if handler is None:
            error = UnknownJobType(job.job_type)
            logger.error(f"Job {job.id}: {error.message}")
            return HandlerOutcome(error=error.message)

        ctx = self.build_context(job, owner_id, publisher, timer)
        try:
            result = await handler(ctx, job.input)
        except JobError as e:
            logger.error(f"Job {job.id} ({job.job_type}) failed: [{e.code}] {e.message}")
            return HandlerOutcome(error=e.message)
        except Exception as e:
            logger.exception(f"Job {job.id} ({job.job_type}) failed unexpectedly")
            return HandlerOutcome(error=str(e) or e.__class__.__name__)
        return HandlerOutcome(result=result)

    async def _record(
        self,
        job: Job,
        outcome: HandlerOutcome,
        publisher: PartialResultPublisher,
        timer: JobTimer,
    ) -> Job:
        try:
            if outcome.succeeded:
                final = await self.store.complete(job.id, outcome.result)
            else:
                final = await self.store.fail(job.id, outcome.error)
        finally:
            await publisher.close()
            timer.log(JobStatus.SUCCEEDED.value if outcome.succeeded else JobStatus.FAILED.value)
        return final
