"""Async PostgREST client wrapper for Supabase.

This is the single point of Supabase HTTP interaction for the share-link
repositories. Beyond plain CRUD it supports what the admin listing needs:
repeated filters on one column, ``or=(...)`` groups, offsets, and exact
row counts read from the ``Content-Range`` header.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import httpx

from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)

# Module-level shared client for connection pooling in app runtimes/tests.
_shared_async_client: httpx.AsyncClient | None = None


def _get_shared_async_client() -> httpx.AsyncClient:
    global _shared_async_client
    if _shared_async_client is None:
        _shared_async_client = httpx.AsyncClient()
    return _shared_async_client


def _reset_shared_async_client_for_tests() -> None:
    """Test helper: clear shared client cache (does not close the instance)."""
    global _shared_async_client
    _shared_async_client = None


@dataclass(frozen=True, slots=True)
class PostgrestFilter:
    column: str
    op: str
    value: Any


Filters = Sequence[PostgrestFilter] | Mapping[str, tuple[str, Any] | Any] | None


def _split_schema_table(table: str, default_schema: str) -> tuple[str, str]:
    # "share.share_links" selects the schema through Accept-Profile and
    # Content-Profile headers.
    if "." in table:
        schema, name = table.split(".", 1)
        return schema.strip(), name.strip()
    return default_schema, table.strip()


def _encode_filter_value(op: str, value: Any) -> str:
    if op == "is":
        if value is None:
            return "null"
        if value is True:
            return "true"
        if value is False:
            return "false"
        return str(value)

    if op == "in":
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("in operator requires an iterable of values")
        items = []
        for v in value:
            if isinstance(v, str):
                items.append(json.dumps(v))
            elif v is None:
                items.append("null")
            else:
                items.append(str(v))
        return f"({','.join(items)})"

    if value is None:
        raise ValueError(f"{op} does not support None; use op='is' with value=None")

    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _normalize_filters(filters: Filters) -> list[PostgrestFilter]:
    if not filters:
        return []
    if isinstance(filters, Mapping):
        result = []
        for col, cond in filters.items():
            if isinstance(cond, tuple) and len(cond) == 2:
                op, val = cond
            else:
                op, val = "eq", cond
            result.append(PostgrestFilter(str(col), str(op), val))
        return result
    return list(filters)


def _filters_to_params(filters: Filters) -> list[tuple[str, str]]:
    # A list of pairs so one column can carry several conditions
    # (e.g. created_at=gte.X&created_at=lte.Y).
    return [
        (f.column, f"{f.op}.{_encode_filter_value(f.op, f.value)}")
        for f in _normalize_filters(filters)
    ]


def _quote_group_value(raw: str) -> str:
    # Values inside or=(...) may contain reserved characters; PostgREST
    # accepts them double-quoted with backslash escapes.
    escaped = raw.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def or_group(conditions: Sequence[PostgrestFilter]) -> tuple[str, str]:
    """Build an ``or=(a.op.v,b.op.v)`` query parameter."""
    parts = [
        f"{c.column}.{c.op}.{_quote_group_value(_encode_filter_value(c.op, c.value))}"
        for c in conditions
    ]
    return "or", f"({','.join(parts)})"


def parse_content_range_total(header: str | None) -> int | None:
    """Total from ``Content-Range: 0-24/123`` (or ``*/0``)."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else None


class SupabaseClient:
    """Minimal async PostgREST client (service role) with typed results."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        default_schema: str = "public",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self._supabase_url = supabase_url.rstrip("/")
        self._service_role_key = service_role_key
        self._default_schema = default_schema or "public"
        self._timeout_seconds = float(timeout_seconds)
        self._client = http_client or _get_shared_async_client()

    @property
    def base_rest_url(self) -> str:
        return f"{self._supabase_url}/rest/v1"

    def _auth_headers(self) -> dict[str, str]:
        # Never log these headers.
        return {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
        }

    def _schema_headers(self, schema: str, method: str) -> dict[str, str]:
        headers: dict[str, str] = {}
        if schema:
            headers["Accept-Profile"] = schema
            if method.upper() in ("POST", "PATCH", "PUT", "DELETE"):
                headers["Content-Profile"] = schema
        return headers

    def _raise_for_error(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        message = resp.text
        code = details = hint = None

        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("message") or message
                code = payload.get("code")
                details = payload.get("details")
                hint = payload.get("hint")
        except ValueError:
            pass

        err_cls: type[SupabaseError]
        if resp.status_code in (401, 403):
            err_cls = SupabaseAuthError
        elif resp.status_code == 404:
            err_cls = SupabaseNotFoundError
        elif resp.status_code == 409 or code == "23505":
            err_cls = SupabaseConflictError
        else:
            err_cls = SupabaseError

        raise err_cls(
            status_code=resp.status_code,
            message=message,
            code=code,
            details=details,
            hint=hint,
        )

    @staticmethod
    def _expect_list(resp: httpx.Response, operation: str) -> list[dict[str, Any]]:
        payload = resp.json()
        if not isinstance(payload, list):
            raise SupabaseError(
                status_code=500, message=f"expected list response from {operation}",
            )
        return payload

    async def _send(
        self,
        method: str,
        table_or_path: str,
        *,
        schema: str | None = None,
        params: list[tuple[str, str]] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        """Issue one PostgREST request and raise on an error status.

        ``table_or_path`` may be schema-qualified (``share.share_links``);
        the schema is then selected through the profile headers.
        """
        if schema is None:
            schema, table_or_path = _split_schema_table(
                table_or_path, self._default_schema,
            )
        headers = {**self._auth_headers(), **self._schema_headers(schema, method)}
        if prefer:
            headers["Prefer"] = prefer

        resp = await self._client.request(
            method,
            f"{self.base_rest_url}/{table_or_path}",
            params=params,
            json=json_body,
            headers=headers,
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
        return resp

    @staticmethod
    def _select_params(
        filters: Filters,
        columns: str,
        limit: int | None,
        offset: int | None,
        order: str | None,
        any_of: Sequence[PostgrestFilter] | None,
    ) -> list[tuple[str, str]]:
        params = _filters_to_params(filters)
        if any_of:
            params.append(or_group(any_of))
        params.append(("select", columns))
        if limit is not None:
            params.append(("limit", str(int(limit))))
        if offset:
            params.append(("offset", str(int(offset))))
        if order:
            params.append(("order", order))
        return params

    async def select(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        offset: int | None = None,
        order: str | None = None,
        any_of: Sequence[PostgrestFilter] | None = None,
    ) -> list[dict[str, Any]]:
        resp = await self._send(
            "GET", table,
            params=self._select_params(filters, columns, limit, offset, order, any_of),
        )
        return self._expect_list(resp, "select")

    async def select_page(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: str = "*",
        limit: int,
        offset: int = 0,
        order: str | None = None,
        any_of: Sequence[PostgrestFilter] | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """Select one page plus the exact total row count."""
        resp = await self._send(
            "GET", table,
            params=self._select_params(filters, columns, limit, offset, order, any_of),
            prefer="count=exact",
        )
        rows = self._expect_list(resp, "select")
        total = parse_content_range_total(resp.headers.get("content-range"))
        return rows, total if total is not None else offset + len(rows)

    async def insert(
        self,
        table: str,
        data: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        resp = await self._send(
            "POST", table, json_body=data, prefer="return=representation",
        )
        return self._expect_list(resp, "insert")

    async def update(
        self,
        table: str,
        filters: Filters,
        data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        resp = await self._send(
            "PATCH", table,
            params=_filters_to_params(filters),
            json_body=data,
            prefer="return=representation",
        )
        return self._expect_list(resp, "update")

    async def rpc(
        self,
        function_name: str,
        params: Mapping[str, Any] | None = None,
        *,
        schema: str | None = None,
    ) -> Any:
        resp = await self._send(
            "POST", f"rpc/{function_name}",
            schema=schema or self._default_schema,
            json_body=params or {},
        )
        return resp.json()
