"""Supabase-backed ShareLinkRepository implementation.

Persists share links and access logs in the ``share`` schema via PostgREST
(see ``asset_share/migrations/001_share_links.sql``):

  - ``share.share_links``: one row per link
  - ``share.share_link_access_logs``: append-only access log
  - ``share.share_link_summaries``: view joining asset and creator
    names for operator search
  - ``share.record_share_link_access``: counter bump + log insert in one
    transaction; returns no row when the link is inactive
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Mapping

from asset_share.sharing.errors import ShareLinkInactive
from asset_share.sharing.model import (
    EXPIRING_SOON_WINDOW,
    AccessLogEntry,
    AccessType,
    ExpiryStatus,
    RequestMeta,
    ShareLink,
    ShareLinkFilter,
    ShareLinkQuery,
    ShareLinkSort,
    ShareLinkSummary,
)
from asset_share.sharing.repository import MUTABLE_FIELDS

from .errors import translate_errors
from .supabase_client import PostgrestFilter, SupabaseClient

SCHEMA = "share"

_LINK_COLUMNS = (
    "id,token,asset_id,created_by_id,password_hash,allow_download,expires_at,"
    "is_active,view_count,download_count,last_accessed_at,created_at,updated_at"
)


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _to_json(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def row_to_link(row: Mapping[str, Any]) -> ShareLink:
    return ShareLink(
        id=str(row["id"]),
        token=row["token"],
        asset_id=str(row["asset_id"]),
        created_by_id=str(row["created_by_id"]),
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row.get("updated_at") or row["created_at"]),
        password_hash=row.get("password_hash"),
        allow_download=bool(row.get("allow_download", True)),
        expires_at=_parse_ts(row.get("expires_at")),
        is_active=bool(row.get("is_active", True)),
        view_count=int(row.get("view_count") or 0),
        download_count=int(row.get("download_count") or 0),
        last_accessed_at=_parse_ts(row.get("last_accessed_at")),
    )


def row_to_log_entry(row: Mapping[str, Any]) -> AccessLogEntry:
    return AccessLogEntry(
        id=str(row["id"]),
        share_link_id=str(row["share_link_id"]),
        access_type=AccessType(row["access_type"]),
        created_at=_parse_ts(row["created_at"]),
        ip_address=row.get("ip_address"),
        user_agent=row.get("user_agent"),
        country=row.get("country"),
        referrer=row.get("referrer"),
    )


def filter_conditions(flt: ShareLinkFilter, now: datetime) -> list[PostgrestFilter]:
    """Translate a listing filter into PostgREST conditions (ANDed)."""
    conds: list[PostgrestFilter] = []
    if flt.created_by_id is not None:
        conds.append(PostgrestFilter("created_by_id", "eq", flt.created_by_id))
    if flt.is_active is not None:
        conds.append(PostgrestFilter("is_active", "is", flt.is_active))
    if flt.has_password is not None:
        conds.append(PostgrestFilter("has_password", "is", flt.has_password))

    if flt.expiry_status is ExpiryStatus.EXPIRED:
        conds.append(PostgrestFilter("expires_at", "lt", now))
    elif flt.expiry_status is ExpiryStatus.EXPIRING_SOON:
        conds.append(PostgrestFilter("expires_at", "gte", now))
        conds.append(PostgrestFilter("expires_at", "lt", now + EXPIRING_SOON_WINDOW))
    elif flt.expiry_status is ExpiryStatus.NEVER:
        conds.append(PostgrestFilter("expires_at", "is", None))

    if flt.created_from is not None:
        conds.append(PostgrestFilter("created_at", "gte", flt.created_from))
    if flt.created_to is not None:
        conds.append(PostgrestFilter("created_at", "lte", flt.created_to))
    return conds


# share_links.id is a uuid column; PostgREST rejects anything else with 22P02.
def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
        return True
    except (ValueError, TypeError):
        return False


def _escape_like(text: str) -> str:
    """Make LIKE metacharacters match literally."""
    text = text.replace("\\", "\\\\")
    return text.replace("%", "\\%").replace("_", "\\_")


def search_conditions(search: str | None) -> list[PostgrestFilter]:
    """Case-insensitive substring match on asset name or creator (ORed).

    The needle is matched literally, like the in-memory ``matches_filter``.
    """
    if not search:
        return []
    # PostgREST uses * as the LIKE wildcard and has no escape for it.
    pattern = f"*{_escape_like(search.replace('*', ''))}*"
    return [
        PostgrestFilter(column, "ilike", pattern)
        for column in ("asset_name", "creator_name", "creator_email")
    ]


def order_clause(sort: ShareLinkSort) -> str:
    direction = sort.order.value
    return f"{sort.key.value}.{direction}.nullslast,id.{direction}"


class SupabaseShareLinkRepository:
    """ShareLinkRepository backed by the ``share`` schema via PostgREST."""

    TABLE = f"{SCHEMA}.share_links"
    LOG_TABLE = f"{SCHEMA}.share_link_access_logs"
    SUMMARY_VIEW = f"{SCHEMA}.share_link_summaries"
    RECORD_FUNCTION = "record_share_link_access"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def create(self, link: ShareLink) -> ShareLink:
        row = {
            "token": link.token,
            "asset_id": link.asset_id,
            "created_by_id": link.created_by_id,
            "password_hash": link.password_hash,
            "allow_download": link.allow_download,
            "expires_at": _to_json(link.expires_at),
            "is_active": link.is_active,
            "created_at": _to_json(link.created_at),
            "updated_at": _to_json(link.updated_at),
        }
        with translate_errors("create share link"):
            rows = await self._client.insert(self.TABLE, row)
        return row_to_link(rows[0])

    async def _get_one(self, column: str, value: str) -> ShareLink | None:
        with translate_errors("get share link"):
            rows = await self._client.select(
                self.TABLE,
                filters={column: ("eq", value)},
                columns=_LINK_COLUMNS,
                limit=1,
            )
        return row_to_link(rows[0]) if rows else None

    async def get(self, share_id: str) -> ShareLink | None:
        if not _is_uuid(share_id):
            return None
        return await self._get_one("id", share_id)

    async def get_by_token(self, token: str) -> ShareLink | None:
        return await self._get_one("token", token)

    async def update(
        self, share_id: str, changes: Mapping[str, Any],
    ) -> ShareLink | None:
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Immutable share link fields: {sorted(unknown)}")
        if not _is_uuid(share_id):
            return None
        data = {name: _to_json(value) for name, value in changes.items()}
        with translate_errors("update share link"):
            rows = await self._client.update(
                self.TABLE, filters={"id": ("eq", share_id)}, data=data,
            )
        return row_to_link(rows[0]) if rows else None

    async def record_access(
        self,
        share_id: str,
        access_type: AccessType,
        meta: RequestMeta,
        at: datetime,
    ) -> AccessLogEntry:
        params = {
            "p_share_link_id": share_id,
            "p_access_type": access_type.value,
            "p_accessed_at": at.isoformat(),
            "p_ip_address": meta.ip_address,
            "p_user_agent": meta.user_agent,
            "p_country": meta.country,
            "p_referrer": meta.referrer,
        }
        with translate_errors("record share access"):
            rows = await self._client.rpc(self.RECORD_FUNCTION, params, schema=SCHEMA)
        if not rows:
            raise ShareLinkInactive()
        return row_to_log_entry(rows[0] if isinstance(rows, list) else rows)

    async def search(
        self, query: ShareLinkQuery,
    ) -> tuple[list[ShareLinkSummary], int]:
        with translate_errors("search share links"):
            rows, total = await self._client.select_page(
                self.SUMMARY_VIEW,
                filter_conditions(query.filter, query.now),
                any_of=search_conditions(query.filter.search),
                order=order_clause(query.sort),
                limit=query.limit,
                offset=query.offset,
            )
        items = [
            ShareLinkSummary(
                link=row_to_link(row),
                asset_name=row.get("asset_name"),
                creator_name=row.get("creator_name"),
                creator_email=row.get("creator_email"),
            )
            for row in rows
        ]
        return items, total

    async def list_access_logs(
        self, share_id: str, *, offset: int, limit: int,
    ) -> tuple[list[AccessLogEntry], int]:
        if not _is_uuid(share_id):
            return [], 0
        with translate_errors("list access logs"):
            rows, total = await self._client.select_page(
                self.LOG_TABLE,
                filters={"share_link_id": ("eq", share_id)},
                order="created_at.desc,id.desc",
                limit=limit,
                offset=offset,
            )
        return [row_to_log_entry(r) for r in rows], total

    async def all_access_logs(self, share_id: str) -> list[AccessLogEntry]:
        if not _is_uuid(share_id):
            return []
        with translate_errors("list access logs"):
            rows = await self._client.select(
                self.LOG_TABLE,
                filters={"share_link_id": ("eq", share_id)},
                order="created_at.desc,id.desc",
            )
        return [row_to_log_entry(r) for r in rows]

    async def list_for_asset(self, asset_id: str) -> list[ShareLink]:
        with translate_errors("list asset share links"):
            rows = await self._client.select(
                self.TABLE,
                filters={"asset_id": ("eq", asset_id)},
                columns=_LINK_COLUMNS,
                order="created_at.desc,id.desc",
            )
        return [row_to_link(r) for r in rows]
