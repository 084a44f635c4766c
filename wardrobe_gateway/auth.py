"""Caller identity resolution against Supabase Auth."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .errors import Unauthorized

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: Optional[str] = None


def extract_bearer_token(header: Optional[str]) -> str:
    """Return the token from an ``Authorization: Bearer`` header or raise."""
    if not header or not header.startswith(BEARER_PREFIX):
        raise Unauthorized("Missing or invalid authorization header")
    token = header[len(BEARER_PREFIX):].strip()
    if not token:
        raise Unauthorized("Missing or invalid authorization header")
    return token


class AuthClient:
    """Resolves a user access token to a user via ``GET /auth/v1/user``."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
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

    async def get_user(self, token: Optional[str]) -> AuthenticatedUser:
        if not token:
            raise Unauthorized("Missing or invalid authorization header")

        client = await self._get_client()
        try:
            response = await client.get(
                f"{self.base_url}/auth/v1/user",
                headers={"apikey": self.api_key, "Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Auth lookup failed: {e}")
            raise Unauthorized("Invalid token") from e

        if response.status_code != 200:
            raise Unauthorized("Invalid token")

        data = response.json()
        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            raise Unauthorized("Invalid token")
        return AuthenticatedUser(id=str(user_id), email=data.get("email"))
