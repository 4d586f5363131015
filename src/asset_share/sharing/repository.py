"""Share-link storage protocol and in-memory implementation.

The repository is the only place ShareLink and AccessLogEntry rows change.
Two operations carry the concurrency guarantees the engine relies on:

  - ``get_by_token`` returns a detached snapshot taken in one read, so an
    evaluation never mixes fields from before and after a revoke.
  - ``record_access`` increments the matching counter in place and appends
    the log entry as one atomic step, refusing when the link is inactive.

Implementations: InMemoryShareLinkRepository (local dev, tests),
SupabaseShareLinkRepository (production, see ``asset_share.db.share_repo``).
"""

from __future__ import annotations

import itertools
import threading
import uuid
from datetime import datetime
from typing import Any, Mapping, Protocol, runtime_checkable

from asset_share.external import AssetStore, UserDirectory

from .errors import ShareConflict, ShareLinkInactive
from .model import (
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
    SortKey,
    SortOrder,
)

# Fields the lifecycle manager is allowed to change.
MUTABLE_FIELDS = frozenset({
    'password_hash',
    'allow_download',
    'expires_at',
    'is_active',
    'updated_at',
})


# ── Repository protocol ──────────────────────────────────────────────


@runtime_checkable
class ShareLinkRepository(Protocol):
    """Abstract share-link and access-log storage."""

    async def create(self, link: ShareLink) -> ShareLink:
        """Persist a new link and assign its id.

        Raises:
            ShareConflict: The token is already in use.
        """
        ...

    async def get(self, share_id: str) -> ShareLink | None: ...

    async def get_by_token(self, token: str) -> ShareLink | None: ...

    async def update(
        self, share_id: str, changes: Mapping[str, Any],
    ) -> ShareLink | None:
        """Apply ``changes`` (subset of MUTABLE_FIELDS); None if missing."""
        ...

    async def record_access(
        self,
        share_id: str,
        access_type: AccessType,
        meta: RequestMeta,
        at: datetime,
    ) -> AccessLogEntry:
        """Atomically bump the counter and append one log entry.

        Raises:
            ShareLinkInactive: The link is missing or revoked at write time.
        """
        ...

    async def search(
        self, query: ShareLinkQuery,
    ) -> tuple[list[ShareLinkSummary], int]: ...

    async def list_access_logs(
        self, share_id: str, *, offset: int, limit: int,
    ) -> tuple[list[AccessLogEntry], int]: ...

    async def all_access_logs(self, share_id: str) -> list[AccessLogEntry]: ...

    async def list_for_asset(self, asset_id: str) -> list[ShareLink]: ...


# ── Shared filtering / ordering rules ────────────────────────────────


def matches_filter(
    summary: ShareLinkSummary, flt: ShareLinkFilter, now: datetime,
) -> bool:
    """Reference implementation of the admin listing filter."""
    link = summary.link

    if flt.created_by_id is not None and link.created_by_id != flt.created_by_id:
        return False
    if flt.is_active is not None and link.is_active != flt.is_active:
        return False
    if flt.has_password is not None and link.has_password != flt.has_password:
        return False

    expires_at = link.expires_at
    if flt.expiry_status is ExpiryStatus.EXPIRED:
        if expires_at is None or not expires_at < now:
            return False
    elif flt.expiry_status is ExpiryStatus.EXPIRING_SOON:
        if expires_at is None or not (now <= expires_at < now + EXPIRING_SOON_WINDOW):
            return False
    elif flt.expiry_status is ExpiryStatus.NEVER:
        if expires_at is not None:
            return False

    if flt.created_from is not None and link.created_at < flt.created_from:
        return False
    if flt.created_to is not None and link.created_at > flt.created_to:
        return False

    if flt.search:
        needle = flt.search.casefold()
        haystack = (summary.asset_name, summary.creator_name, summary.creator_email)
        if not any(h and needle in h.casefold() for h in haystack):
            return False

    return True


def _sort_value(summary: ShareLinkSummary, key: SortKey) -> Any:
    link = summary.link
    if key is SortKey.ASSET_NAME:
        return summary.asset_name.casefold() if summary.asset_name else None
    return getattr(link, key.value)


def sort_summaries(
    items: list[ShareLinkSummary], sort: ShareLinkSort,
) -> list[ShareLinkSummary]:
    """Order by the sort key, ties by id in the same direction, nulls last."""
    reverse = sort.order is SortOrder.DESC
    present = [s for s in items if _sort_value(s, sort.key) is not None]
    missing = [s for s in items if _sort_value(s, sort.key) is None]
    present.sort(key=lambda s: (_sort_value(s, sort.key), s.link.id), reverse=reverse)
    missing.sort(key=lambda s: s.link.id, reverse=reverse)
    return present + missing


# ── In-memory implementation ─────────────────────────────────────────


class InMemoryShareLinkRepository:
    """Dict-backed store that is safe under threads and asyncio tasks.

    A single ``threading.Lock`` guards every read and write. No ``await``
    happens while it is held, so it never blocks the event loop for longer
    than a dict operation.
    """

    def __init__(
        self,
        *,
        asset_store: AssetStore | None = None,
        user_directory: UserDirectory | None = None,
    ) -> None:
        self._asset_store = asset_store
        self._user_directory = user_directory
        self._lock = threading.Lock()
        self._links: dict[str, ShareLink] = {}
        self._by_token: dict[str, str] = {}
        self._logs: dict[str, list[AccessLogEntry]] = {}
        self._log_ids = itertools.count(1)

    async def create(self, link: ShareLink) -> ShareLink:
        with self._lock:
            if link.token in self._by_token:
                raise ShareConflict('Share token already in use.')
            stored = link.snapshot()
            stored.id = f'shl_{uuid.uuid4().hex}'
            self._links[stored.id] = stored
            self._by_token[stored.token] = stored.id
            self._logs[stored.id] = []
            return stored.snapshot()

    async def get(self, share_id: str) -> ShareLink | None:
        with self._lock:
            link = self._links.get(share_id)
            return link.snapshot() if link else None

    async def get_by_token(self, token: str) -> ShareLink | None:
        with self._lock:
            share_id = self._by_token.get(token)
            if share_id is None:
                return None
            return self._links[share_id].snapshot()

    async def update(
        self, share_id: str, changes: Mapping[str, Any],
    ) -> ShareLink | None:
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f'Immutable share link fields: {sorted(unknown)}')
        with self._lock:
            link = self._links.get(share_id)
            if link is None:
                return None
            for name, value in changes.items():
                setattr(link, name, value)
            return link.snapshot()

    async def record_access(
        self,
        share_id: str,
        access_type: AccessType,
        meta: RequestMeta,
        at: datetime,
    ) -> AccessLogEntry:
        with self._lock:
            link = self._links.get(share_id)
            if link is None or not link.is_active:
                raise ShareLinkInactive()
            # Build the entry before touching the counter so a failure
            # leaves both untouched.
            entry = self._new_log_entry(share_id, access_type, meta, at)
            self._logs[share_id].append(entry)
            if access_type is AccessType.DOWNLOAD:
                link.download_count += 1
            else:
                link.view_count += 1
            link.last_accessed_at = at
            return entry

    def _new_log_entry(
        self,
        share_id: str,
        access_type: AccessType,
        meta: RequestMeta,
        at: datetime,
    ) -> AccessLogEntry:
        return AccessLogEntry(
            id=f'log_{next(self._log_ids):010d}',
            share_link_id=share_id,
            access_type=access_type,
            created_at=at,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
            country=meta.country,
            referrer=meta.referrer,
        )

    async def search(
        self, query: ShareLinkQuery,
    ) -> tuple[list[ShareLinkSummary], int]:
        with self._lock:
            links = [link.snapshot() for link in self._links.values()]

        summaries = [await self._summarize(link) for link in links]
        matching = [
            s for s in summaries if matches_filter(s, query.filter, query.now)
        ]
        ordered = sort_summaries(matching, query.sort)
        return ordered[query.offset:query.offset + query.limit], len(ordered)

    async def _summarize(self, link: ShareLink) -> ShareLinkSummary:
        asset_name = creator_name = creator_email = None
        if self._asset_store is not None:
            asset = await self._asset_store.get_asset(link.asset_id)
            asset_name = asset.name if asset else None
        if self._user_directory is not None:
            user = await self._user_directory.get_user(link.created_by_id)
            if user is not None:
                creator_name, creator_email = user.name, user.email
        return ShareLinkSummary(
            link=link,
            asset_name=asset_name,
            creator_name=creator_name,
            creator_email=creator_email,
        )

    async def list_access_logs(
        self, share_id: str, *, offset: int, limit: int,
    ) -> tuple[list[AccessLogEntry], int]:
        entries = await self.all_access_logs(share_id)
        return entries[offset:offset + limit], len(entries)

    async def all_access_logs(self, share_id: str) -> list[AccessLogEntry]:
        """All entries for a link, newest first."""
        with self._lock:
            entries = list(self._logs.get(share_id, ()))
        entries.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return entries

    async def list_for_asset(self, asset_id: str) -> list[ShareLink]:
        with self._lock:
            links = [
                l.snapshot() for l in self._links.values() if l.asset_id == asset_id
            ]
        links.sort(key=lambda l: (l.created_at, l.id), reverse=True)
        return links
