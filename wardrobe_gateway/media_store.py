"""Supabase Storage client: signed URLs, object upload and byte fetches."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from .errors import DownloadFailed, UploadFailed

logger = logging.getLogger(__name__)


class MediaStore:
    """HTTP client for the Supabase Storage API.

    ``fetch`` is used for signed URLs and therefore sends no credentials.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str = "media",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _auth_headers(self) -> dict:
        return {"apikey": self.service_key, "Authorization": f"Bearer {self.service_key}"}

    def _object_path(self, bucket: Optional[str], key: str) -> str:
        return f"{quote(bucket or self.bucket)}/{quote(key.lstrip('/'))}"

    async def create_signed_url(
        self, key: str, expires_in: int = 60, bucket: Optional[str] = None
    ) -> str:
        """Return an absolute signed URL for ``key`` valid for ``expires_in`` seconds."""
        client = await self._get_client()
        url = f"{self.base_url}/storage/v1/object/sign/{self._object_path(bucket, key)}"
        try:
            response = await client.post(
                url, json={"expiresIn": expires_in}, headers=self._auth_headers()
            )
        except httpx.HTTPError as e:
            raise DownloadFailed(f"Failed to sign URL for {key}: {e}") from e

        if response.status_code != 200:
            raise DownloadFailed(
                f"Failed to sign URL for {key}: {response.status_code} {response.text}"
            )
        body = response.json()
        signed = body.get("signedURL") or body.get("signedUrl")
        if not signed:
            raise DownloadFailed(f"Failed to sign URL for {key}: empty response")
        if signed.startswith("http"):
            return signed
        return f"{self.base_url}/storage/v1{signed}"

    async def fetch(self, url: str) -> bytes:
        client = await self._get_client()
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise DownloadFailed(f"Failed to fetch image: {e}") from e
        if not 200 <= response.status_code < 300:
            raise DownloadFailed(f"Failed to fetch image: {response.status_code}")
        return response.content

    async def download_object(
        self, key: str, bucket: Optional[str] = None, expires_in: int = 60
    ) -> bytes:
        url = await self.create_signed_url(key, expires_in=expires_in, bucket=bucket)
        return await self.fetch(url)

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "image/jpeg",
        bucket: Optional[str] = None,
        upsert: bool = True,
    ) -> str:
        """Upload ``data`` under ``key`` and return the stored key."""
        client = await self._get_client()
        url = f"{self.base_url}/storage/v1/object/{self._object_path(bucket, key)}"
        headers = self._auth_headers()
        headers.update(
            {
                "Content-Type": content_type,
                "Cache-Control": "3600",
                "x-upsert": "true" if upsert else "false",
            }
        )
        try:
            response = await client.post(url, content=data, headers=headers)
        except httpx.HTTPError as e:
            raise UploadFailed(f"Failed to upload: {e}") from e

        if response.status_code not in (200, 201):
            logger.error(f"Storage upload of {key} returned {response.status_code}: {response.text}")
            raise UploadFailed(f"Failed to upload: {response.status_code} {response.text}")
        logger.info(f"Uploaded {len(data)} bytes to {bucket or self.bucket}/{key}")
        return key
