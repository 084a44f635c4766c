"""
Thin async client for the Supabase REST (PostgREST) API.

Filters use PostgREST operator syntax, e.g. ``{"id": eq(job_id)}`` which is
sent as ``?id=eq.<job_id>``. All requests are authenticated with the service
role key; callers are responsible for scoping rows by owner.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import httpx

from .errors import SupabaseError

logger = logging.getLogger(__name__)

Filters = Mapping[str, str]


def eq(value: Any) -> str:
    return f"eq.{value}"


def ilike(value: str) -> str:
    return f"ilike.{value}"


def is_null() -> str:
    return "is.null"


def in_list(values: Iterable[Any]) -> str:
    quoted = ",".join(f'"{value}"' for value in values)
    return f"in.({quoted})"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"{response.status_code}: {response.text}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


class SupabaseRestClient:
    """HTTP client for PostgREST tables and RPC functions."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
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

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(
                method, url, params=params, json=json, headers=self._headers(prefer)
            )
        except httpx.HTTPError as e:
            raise SupabaseError(f"Supabase request failed: {e}") from e
        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(f"Supabase {method} {url} returned {response.status_code}: {message}")
            raise SupabaseError(message)
        if not response.content:
            return None
        return response.json()

    async def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, str] = {"select": columns}
        params.update(filters or {})
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        rows = await self._send("GET", self._table_url(table), params=params)
        return list(rows or [])

    async def select_one(
        self,
        table: str,
        filters: Filters,
        columns: str = "*",
    ) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, filters, columns=columns, limit=1)
        return rows[0] if rows else None

    async def insert(
        self,
        table: str,
        rows: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
    ) -> List[Dict[str, Any]]:
        payload = [dict(rows)] if isinstance(rows, Mapping) else [dict(row) for row in rows]
        created = await self._send(
            "POST", self._table_url(table), json=payload, prefer="return=representation"
        )
        return list(created or [])

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        filters: Filters,
    ) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("refusing to update without filters")
        updated = await self._send(
            "PATCH",
            self._table_url(table),
            params=dict(filters),
            json=dict(values),
            prefer="return=representation",
        )
        return list(updated or [])

    async def rpc(self, function: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._send(
            "POST", f"{self.base_url}/rest/v1/rpc/{function}", json=dict(params or {})
        )
