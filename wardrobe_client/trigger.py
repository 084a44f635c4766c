"""Fire-and-forget trigger of the job runner endpoint."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set, Union

import httpx

from wardrobe_gateway.jobs import Job, JobType

from .errors import TriggerError
from .jobs_api import JobsApi

logger = logging.getLogger(__name__)


class JobTrigger:
    """
    Starts server-side execution of a job without waiting for it.

    The POST runs as its own task with a short timeout. The runner keeps
    processing after the client gives up, so timeouts are expected and only
    logged; completion is observed by polling the job row.
    """

    def __init__(
        self,
        runner_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.runner_url = runner_url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._tasks: Set[asyncio.Task] = set()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def trigger(self, job_id: str, access_token: Optional[str]) -> asyncio.Task:
        """
        Schedule the runner call and return its task immediately.

        Raises:
            TriggerError: no access token or a runner URL that is not http(s)
        """
        if not access_token:
            raise TriggerError("No active session")
        if not self.runner_url.startswith(("http://", "https://")):
            raise TriggerError(f"Invalid runner URL configuration: {self.runner_url!r}")

        task = asyncio.create_task(self._post(job_id, access_token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _post(self, job_id: str, access_token: str) -> None:
        client = await self._get_client()
        try:
            response = await client.post(
                self.runner_url,
                json={"job_id": job_id},
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            logger.info(f"Trigger for job {job_id} timed out; runner continues in background")
            return
        except httpx.HTTPError as e:
            logger.error(f"Failed to trigger job {job_id} at {self.runner_url}: {e}")
            return

        if response.is_error:
            logger.warning(
                f"Trigger for job {job_id} returned {response.status_code}: {response.text[:200]}"
            )


async def create_and_trigger_job(
    api: JobsApi,
    trigger: JobTrigger,
    owner_user_id: str,
    job_type: Union[JobType, str],
    input: Dict[str, Any],
    access_token: Optional[str],
) -> Job:
    """Insert a job and trigger it; a failed trigger leaves the job queued."""
    job = await api.create_job(owner_user_id, job_type, input)
    try:
        trigger.trigger(job.id, access_token)
    except TriggerError as e:
        logger.warning(f"Job {job.id} created but not triggered: {e}")
    return job
