"""Job rows read and written with the signed-in user's access token."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

import httpx

from wardrobe_gateway.jobs import Job, JobStatus, JobType
from wardrobe_gateway.supabase_rest import eq

from .errors import JobCreateError, JobReadError

logger = logging.getLogger(__name__)

JOBS_TABLE = "ai_jobs"


class JobsApi:
    """PostgREST access to ``ai_jobs``; row-level security scopes rows to the user."""

    def __init__(
        self,
        supabase_url: str,
        anon_key: str,
        access_token: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = supabase_url.rstrip("/")
        self.anon_key = anon_key
        self.access_token = access_token
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    @property
    def _table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{JOBS_TABLE}"

    async def create_job(
        self, owner_user_id: str, job_type: Union[JobType, str], input: Dict[str, Any]
    ) -> Job:
        """Insert a ``queued`` job and return the stored row."""
        raw_type = job_type.value if isinstance(job_type, JobType) else str(job_type)
        client = await self._get_client()
        headers = self._headers()
        headers["Prefer"] = "return=representation"
        try:
            response = await client.post(
                self._table_url,
                json={
                    "owner_user_id": owner_user_id,
                    "job_type": raw_type,
                    "input": input,
                    "status": JobStatus.QUEUED.value,
                },
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise JobCreateError(f"Failed to create {raw_type} job: {e}") from e

        if response.status_code not in (200, 201):
            raise JobCreateError(
                f"Failed to create {raw_type} job: {response.status_code} {response.text[:200]}"
            )
        rows = response.json()
        if not rows:
            raise JobCreateError(f"Failed to create {raw_type} job: no row returned")
        job = Job.from_row(rows[0])
        logger.info(f"Created {raw_type} job {job.id}")
        return job

    async def get_job(self, job_id: str) -> Optional[Job]:
        """Read one job; ``None`` when the row is not (yet) visible."""
        client = await self._get_client()
        try:
            response = await client.get(
                self._table_url,
                params={"id": eq(job_id), "select": "*"},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise JobReadError(job_id, f"Failed to read job {job_id}: {e}") from e

        if response.status_code != 200:
            raise JobReadError(
                job_id, f"Failed to read job {job_id}: {response.status_code} {response.text[:200]}"
            )
        rows = response.json()
        return Job.from_row(rows[0]) if rows else None
