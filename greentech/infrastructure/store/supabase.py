"""
Supabase Record Store
=====================

Record API over Supabase's PostgREST endpoint (``<project>/rest/v1``).

Filters are sent as ``column=eq.value`` query parameters, ordering as
``order=column.desc`` and inserts/updates ask for the affected rows back with
``Prefer: return=representation``. Any transport failure or non-2xx response
raises :class:`StoreError`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests

from greentech.domain.exceptions import StoreError
from greentech.infrastructure.store.base import RecordStore, require_columns, writable_values

logger = logging.getLogger(__name__)


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{'true' if value else 'false'}"
    return f"eq.{value}"


class SupabaseRecordStore(RecordStore):
    """Remote store backed by a Supabase project."""

    name = "supabase"

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        access_token: Optional[str] = None,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Args:
            url: Project URL, e.g. ``https://xyz.supabase.co``
            api_key: Project anon/service key (``apikey`` header)
            access_token: User JWT from the auth flow; falls back to ``api_key``
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
        """
        if not url or not api_key:
            raise StoreError("Supabase URL and API key are required")
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {access_token or api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    def set_access_token(self, access_token: str) -> None:
        """Swap in a refreshed user JWT."""
        self._session.headers["Authorization"] = f"Bearer {access_token}"

    def close(self) -> None:
        self._session.close()

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/{table}"
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as exc:
            raise StoreError(f"Supabase {method} {table} timed out after {self.timeout}s") from exc
        except requests.exceptions.RequestException as exc:
            raise StoreError(f"Supabase {method} {table} failed: {exc}") from exc

        if response.status_code >= 400:
            raise StoreError(
                f"Supabase {method} {table} returned {response.status_code}: {response.text[:200]}",
                detail={"status": response.status_code, "table": table},
            )

        if not response.content:
            return []
        try:
            body = response.json()
        except ValueError as exc:
            raise StoreError(f"Supabase {method} {table} returned invalid JSON") from exc
        if isinstance(body, dict):
            return [body]
        return list(body)

    def insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        cols = writable_values(table, values, operation="insert")
        rows = self._request("POST", table, json=cols, prefer="return=representation")
        if not rows:
            raise StoreError(f"Supabase insert into {table} returned no row")
        logger.debug("Inserted %s row id=%s", table, rows[0].get("id"))
        return rows[0]

    def select(
        self,
        table: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: str = "created_at",
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        filters = dict(filters or {})
        require_columns(table, list(filters) + [order_by], context=f"select:{table}")

        params: Dict[str, Any] = {"select": "*"}
        params.update({column: _filter_value(value) for column, value in filters.items()})
        params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = int(limit)
        return self._request("GET", table, params=params)

    def update(self, table: str, filters: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        if not filters:
            raise StoreError(f"update:{table} requires at least one filter")
        require_columns(table, list(filters), context=f"update:{table}")
        cols = writable_values(table, values, operation="update")
        if not cols:
            return 0
        params = {column: _filter_value(value) for column, value in filters.items()}
        rows = self._request("PATCH", table, params=params, json=cols, prefer="return=representation")
        return len(rows)
