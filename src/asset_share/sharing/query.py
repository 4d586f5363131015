"""Admin query engine: operator-facing listings, access logs and stats.

All operations are read-only. Expiry buckets are derived from the clock at
query time and never persisted.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime

from asset_share.clock import Clock

from .errors import ShareValidationError
from .lifecycle import LifecycleManager
from .model import (
    AccessLogEntry,
    AccessType,
    ExpiryStatus,
    Page,
    ShareLink,
    ShareLinkFilter,
    ShareLinkQuery,
    ShareLinkSort,
    ShareLinkStats,
    ShareLinkSummary,
    SortKey,
    SortOrder,
)
from .repository import ShareLinkRepository

# ── Bounds ────────────────────────────────────────────────────────────

DEFAULT_PAGE_SIZE = 25
MIN_PAGE_SIZE = 5
MAX_PAGE_SIZE = 100

DEFAULT_LOG_PAGE_SIZE = 50
MIN_LOG_PAGE_SIZE = 1
MAX_LOG_PAGE_SIZE = 100

TOP_COUNTRIES = 5


def _validate_page(page: int, page_size: int, lo: int, hi: int) -> None:
    if page < 1:
        raise ShareValidationError('page must be >= 1.')
    if not lo <= page_size <= hi:
        raise ShareValidationError(f'page_size must be between {lo} and {hi}.')


def _require_timezone(value: datetime | None, field_name: str) -> None:
    if value is not None and (value.tzinfo is None or value.utcoffset() is None):
        raise ShareValidationError(f'{field_name} must include a timezone offset.')


def parse_enum(enum_cls, value, field_name: str):
    """Coerce ``value`` into ``enum_cls`` or raise ShareValidationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ', '.join(m.value for m in enum_cls)
        raise ShareValidationError(
            f'{field_name} must be one of: {allowed}.'
        ) from None


class AdminQueryEngine:
    def __init__(
        self,
        repo: ShareLinkRepository,
        clock: Clock,
        lifecycle: LifecycleManager,
    ) -> None:
        self._repo = repo
        self._clock = clock
        self._lifecycle = lifecycle

    @property
    def clock(self) -> Clock:
        return self._clock

    async def list(
        self,
        flt: ShareLinkFilter | None = None,
        sort: ShareLinkSort | None = None,
        *,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[ShareLinkSummary]:
        """Filter, sort and paginate share links.

        Raises:
            ShareValidationError: page/page_size out of range, or a
                created_from/created_to bound that is naive or inverted.
        """
        flt = flt or ShareLinkFilter()
        sort = sort or ShareLinkSort()
        _validate_page(page, page_size, MIN_PAGE_SIZE, MAX_PAGE_SIZE)

        flt_status = parse_enum(ExpiryStatus, flt.expiry_status, 'expiry_status')
        sort = ShareLinkSort(
            key=parse_enum(SortKey, sort.key, 'sort_by'),
            order=parse_enum(SortOrder, sort.order, 'sort_order'),
        )
        _require_timezone(flt.created_from, 'created_from')
        _require_timezone(flt.created_to, 'created_to')
        if (
            flt.created_from is not None
            and flt.created_to is not None
            and flt.created_from > flt.created_to
        ):
            raise ShareValidationError('created_from must not be after created_to.')

        search = flt.search.strip() if flt.search else None
        flt = ShareLinkFilter(
            search=search or None,
            is_active=flt.is_active,
            has_password=flt.has_password,
            expiry_status=flt_status,
            created_from=flt.created_from,
            created_to=flt.created_to,
            created_by_id=flt.created_by_id,
        )

        query = ShareLinkQuery(
            filter=flt,
            sort=sort,
            offset=(page - 1) * page_size,
            limit=page_size,
            now=self._clock.now(),
        )
        items, total = await self._repo.search(query)
        return Page(items=items, total_count=total, page=page, page_size=page_size)

    async def access_logs(
        self,
        share_id: str,
        *,
        page: int = 1,
        page_size: int = DEFAULT_LOG_PAGE_SIZE,
        actor_id: str | None = None,
        is_admin: bool = False,
    ) -> Page[AccessLogEntry]:
        """Access log entries for one link, newest first."""
        _validate_page(page, page_size, MIN_LOG_PAGE_SIZE, MAX_LOG_PAGE_SIZE)
        await self._lifecycle.get(share_id, actor_id=actor_id, is_admin=is_admin)
        items, total = await self._repo.list_access_logs(
            share_id, offset=(page - 1) * page_size, limit=page_size,
        )
        return Page(items=items, total_count=total, page=page, page_size=page_size)

    async def stats(
        self,
        share_id: str,
        *,
        actor_id: str | None = None,
        is_admin: bool = False,
    ) -> ShareLinkStats:
        link = await self._lifecycle.get(share_id, actor_id=actor_id, is_admin=is_admin)
        entries = await self._repo.all_access_logs(share_id)
        return compute_stats(link, entries, self._clock.now())

    async def list_for_asset(
        self,
        asset_id: str,
        *,
        actor_id: str | None = None,
        is_admin: bool = False,
    ) -> list[ShareLink]:
        links = await self._repo.list_for_asset(asset_id)
        if actor_id is not None and not is_admin:
            links = [l for l in links if l.created_by_id == actor_id]
        return links


def compute_stats(
    link: ShareLink, entries: list[AccessLogEntry], now: datetime,
) -> ShareLinkStats:
    by_type = Counter(e.access_type.value for e in entries)
    countries = Counter(e.country for e in entries if e.country)
    visitors = {e.ip_address for e in entries if e.ip_address}
    return ShareLinkStats(
        total_accesses=len(entries),
        unique_visitors=len(visitors),
        view_count=link.view_count,
        download_count=link.download_count,
        access_by_type={t.value: by_type.get(t.value, 0) for t in AccessType},
        top_countries=countries.most_common(TOP_COUNTRIES),
        is_active=link.is_active,
        is_expired=link.is_expired(now),
        created_at=link.created_at,
        last_accessed_at=link.last_accessed_at,
    )
