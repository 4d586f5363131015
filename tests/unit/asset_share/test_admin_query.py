"""Tests for the admin query engine.

Validates:
  - Expiry buckets are derived from the clock at query time.
  - EXPIRED returns exactly the links whose expiry is strictly before now.
  - Sorting is deterministic (ties by id, nulls last) so pages never overlap.
  - Search spans asset name, creator name and creator email.
  - Non-admin callers only see and inspect their own links.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio

from asset_share.sharing.errors import (
    ShareForbidden,
    ShareLinkNotFound,
    ShareValidationError,
)
from asset_share.sharing.model import (
    AccessType,
    ExpiryStatus,
    RequestMeta,
    ShareLinkFilter,
    ShareLinkSort,
    SortKey,
    SortOrder,
)


async def _ids(engine, **filter_kwargs) -> set[str]:
    page = await engine.query.list(ShareLinkFilter(**filter_kwargs), page_size=100)
    return {s.link.id for s in page.items}


@pytest_asyncio.fixture
async def expiry_links(engine):
    """Links expiring in +1h, +2h, +3h and never, with the clock moved +2h."""
    start = engine.clock.now()
    links = {}
    for label, hours in (('h1', 1), ('h2', 2), ('h3', 3)):
        links[label] = await engine.issuer.issue(
            'asset_1', 'user_1', expires_at=start + timedelta(hours=hours),
        )
    links['never'] = await engine.issuer.issue('asset_1', 'user_1')
    engine.clock.advance(timedelta(hours=2))
    return links


# =====================================================================
# Expiry buckets
# =====================================================================


class TestExpiryBuckets:

    @pytest.mark.asyncio
    async def test_expired_is_strictly_before_now(self, engine, expiry_links):
        ids = await _ids(engine, expiry_status=ExpiryStatus.EXPIRED)
        assert ids == {expiry_links['h1'].id}

    @pytest.mark.asyncio
    async def test_expiring_soon(self, engine, expiry_links):
        ids = await _ids(engine, expiry_status=ExpiryStatus.EXPIRING_SOON)
        assert ids == {expiry_links['h2'].id, expiry_links['h3'].id}

    @pytest.mark.asyncio
    async def test_expiring_soon_excludes_beyond_24h(self, engine):
        far = await engine.issuer.issue(
            'asset_1', 'user_1', expires_at=engine.clock.now() + timedelta(hours=25),
        )
        ids = await _ids(engine, expiry_status=ExpiryStatus.EXPIRING_SOON)
        assert far.id not in ids

    @pytest.mark.asyncio
    async def test_never(self, engine, expiry_links):
        ids = await _ids(engine, expiry_status=ExpiryStatus.NEVER)
        assert ids == {expiry_links['never'].id}

    @pytest.mark.asyncio
    async def test_all(self, engine, expiry_links):
        ids = await _ids(engine, expiry_status=ExpiryStatus.ALL)
        assert ids == {l.id for l in expiry_links.values()}

    @pytest.mark.asyncio
    async def test_buckets_follow_the_clock(self, engine, expiry_links):
        engine.clock.advance(timedelta(hours=2))
        ids = await _ids(engine, expiry_status=ExpiryStatus.EXPIRED)
        assert ids == {expiry_links['h1'].id, expiry_links['h2'].id, expiry_links['h3'].id}

    @pytest.mark.asyncio
    async def test_status_string_is_accepted(self, engine, expiry_links):
        ids = await _ids(engine, expiry_status='NEVER')
        assert ids == {expiry_links['never'].id}


# =====================================================================
# Flag filters and search
# =====================================================================


class TestFilters:

    @pytest.mark.asyncio
    async def test_is_active_and_has_password(self, engine):
        plain = await engine.issuer.issue('asset_1', 'user_1')
        protected = await engine.issuer.issue('asset_1', 'user_1', password='pw')
        revoked = await engine.issuer.issue('asset_2', 'user_1')
        await engine.lifecycle.revoke(revoked.id)

        assert await _ids(engine, is_active=False) == {revoked.id}
        assert await _ids(engine, is_active=True) == {plain.id, protected.id}
        assert await _ids(engine, has_password=True) == {protected.id}
        assert await _ids(engine, has_password=False) == {plain.id, revoked.id}

    @pytest.mark.asyncio
    @pytest.mark.parametrize('search, expected', [
        ('quarterly', {'asset_1'}),
        ('LOGO', {'asset_2'}),
        ('bob', {'asset_2'}),
        ('alice@example', {'asset_1'}),
        ('example.com', {'asset_1', 'asset_2'}),
        ('nothing-matches', set()),
    ])
    async def test_search(self, engine, search, expected):
        await engine.issuer.issue('asset_1', 'user_1')
        await engine.issuer.issue('asset_2', 'user_2')
        page = await engine.query.list(ShareLinkFilter(search=search))
        assert {s.link.asset_id for s in page.items} == expected

    @pytest.mark.asyncio
    async def test_blank_search_matches_everything(self, engine):
        await engine.issuer.issue('asset_1', 'user_1')
        page = await engine.query.list(ShareLinkFilter(search='   '))
        assert page.total_count == 1

    @pytest.mark.asyncio
    async def test_created_range(self, engine):
        early = await engine.issuer.issue('asset_1', 'user_1')
        engine.clock.advance(timedelta(days=1))
        late = await engine.issuer.issue('asset_1', 'user_1')

        ids = await _ids(engine, created_from=late.created_at)
        assert ids == {late.id}
        ids = await _ids(engine, created_to=early.created_at)
        assert ids == {early.id}

    @pytest.mark.asyncio
    async def test_summaries_carry_asset_and_creator(self, engine):
        await engine.issuer.issue('asset_1', 'user_1')
        (summary,) = (await engine.query.list()).items
        assert summary.asset_name == 'Quarterly Report.pdf'
        assert summary.creator_name == 'Alice Admin'
        assert summary.creator_email == 'alice@example.com'

    @pytest.mark.asyncio
    async def test_creator_scope(self, engine):
        mine = await engine.issuer.issue('asset_1', 'user_1')
        await engine.issuer.issue('asset_1', 'user_2')
        assert await _ids(engine, created_by_id='user_1') == {mine.id}


# =====================================================================
# Sorting and pagination
# =====================================================================


class TestSortAndPage:

    @pytest.mark.asyncio
    async def test_ties_broken_by_id(self, engine):
        links = [await engine.issuer.issue('asset_1', 'user_1') for _ in range(6)]
        for order in (SortOrder.ASC, SortOrder.DESC):
            page = await engine.query.list(
                sort=ShareLinkSort(SortKey.VIEW_COUNT, order), page_size=10,
            )
            expected = sorted((l.id for l in links), reverse=order is SortOrder.DESC)
            assert [s.link.id for s in page.items] == expected

    @pytest.mark.asyncio
    async def test_sort_by_view_count(self, engine):
        quiet = await engine.issuer.issue('asset_1', 'user_1')
        busy = await engine.issuer.issue('asset_1', 'user_1')
        for _ in range(3):
            await engine.recorder.record(busy, AccessType.VIEW)
        await engine.recorder.record(quiet, AccessType.VIEW)

        page = await engine.query.list(
            sort=ShareLinkSort(SortKey.VIEW_COUNT, SortOrder.DESC),
        )
        assert [s.link.id for s in page.items] == [busy.id, quiet.id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize('order', [SortOrder.ASC, SortOrder.DESC])
    async def test_null_expiry_sorts_last(self, engine, order):
        never = await engine.issuer.issue('asset_1', 'user_1')
        soon = await engine.issuer.issue(
            'asset_1', 'user_1', expires_at=engine.clock.now() + timedelta(hours=1),
        )
        later = await engine.issuer.issue(
            'asset_1', 'user_1', expires_at=engine.clock.now() + timedelta(days=1),
        )
        page = await engine.query.list(sort=ShareLinkSort(SortKey.EXPIRES_AT, order))
        ids = [s.link.id for s in page.items]
        assert ids[-1] == never.id
        if order is SortOrder.ASC:
            assert ids[:2] == [soon.id, later.id]
        else:
            assert ids[:2] == [later.id, soon.id]

    @pytest.mark.asyncio
    async def test_sort_by_asset_name(self, engine):
        report = await engine.issuer.issue('asset_1', 'user_1')
        logo = await engine.issuer.issue('asset_2', 'user_1')
        page = await engine.query.list(sort=ShareLinkSort(SortKey.ASSET_NAME, SortOrder.ASC))
        assert [s.link.id for s in page.items] == [logo.id, report.id]

    @pytest.mark.asyncio
    async def test_default_sort_is_newest_first(self, engine):
        first = await engine.issuer.issue('asset_1', 'user_1')
        engine.clock.advance(timedelta(seconds=1))
        second = await engine.issuer.issue('asset_1', 'user_1')
        page = await engine.query.list()
        assert [s.link.id for s in page.items] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_pages_partition_the_result(self, engine):
        for _ in range(12):
            await engine.issuer.issue('asset_1', 'user_1')

        seen = []
        for number, size in ((1, 5), (2, 5), (3, 2)):
            page = await engine.query.list(page=number, page_size=5)
            assert len(page.items) == size
            assert page.total_count == 12
            assert page.has_more is (number < 3)
            seen.extend(s.link.id for s in page.items)
        assert len(set(seen)) == 12

    @pytest.mark.asyncio
    async def test_page_past_the_end_is_empty(self, engine):
        await engine.issuer.issue('asset_1', 'user_1')
        page = await engine.query.list(page=4, page_size=5)
        assert page.items == []
        assert page.total_count == 1
        assert not page.has_more


class TestListValidation:

    @pytest.mark.asyncio
    @pytest.mark.parametrize('page, page_size', [(0, 25), (1, 4), (1, 101), (-1, 10)])
    async def test_bad_paging(self, engine, page, page_size):
        with pytest.raises(ShareValidationError):
            await engine.query.list(page=page, page_size=page_size)

    @pytest.mark.asyncio
    async def test_unknown_expiry_status(self, engine):
        with pytest.raises(ShareValidationError):
            await engine.query.list(ShareLinkFilter(expiry_status='SOMETIMES'))

    @pytest.mark.asyncio
    async def test_unknown_sort_key(self, engine):
        with pytest.raises(ShareValidationError):
            await engine.query.list(sort=ShareLinkSort(key='token'))

    @pytest.mark.asyncio
    async def test_inverted_created_range(self, engine):
        now = engine.clock.now()
        with pytest.raises(ShareValidationError):
            await engine.query.list(ShareLinkFilter(
                created_from=now, created_to=now - timedelta(days=1),
            ))

    @pytest.mark.asyncio
    @pytest.mark.parametrize('field', ['created_from', 'created_to'])
    async def test_created_bound_without_timezone(self, engine, field):
        naive = engine.clock.now().replace(tzinfo=None)
        with pytest.raises(ShareValidationError, match=field):
            await engine.query.list(ShareLinkFilter(**{field: naive}))


# =====================================================================
# Access logs and stats
# =====================================================================


class TestLogsAndStats:

    @pytest.mark.asyncio
    async def test_access_logs_paginate_newest_first(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1')
        for _ in range(3):
            await engine.recorder.record(link, AccessType.VIEW)
            engine.clock.advance(timedelta(minutes=1))

        page = await engine.query.access_logs(link.id, page=1, page_size=2)
        assert page.total_count == 3
        assert page.has_more
        assert page.items[0].created_at > page.items[1].created_at

    @pytest.mark.asyncio
    async def test_access_logs_scoped_to_creator(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1')
        with pytest.raises(ShareForbidden):
            await engine.query.access_logs(link.id, actor_id='user_2')
        page = await engine.query.access_logs(link.id, actor_id='user_2', is_admin=True)
        assert page.total_count == 0

    @pytest.mark.asyncio
    async def test_access_logs_unknown_link(self, engine):
        with pytest.raises(ShareLinkNotFound):
            await engine.query.access_logs('shl_missing')

    @pytest.mark.asyncio
    async def test_stats(self, engine):
        link = await engine.issuer.issue(
            'asset_1', 'user_1', expires_at=engine.clock.now() + timedelta(hours=1),
        )
        visits = [
            ('10.0.0.1', 'DE', AccessType.VIEW),
            ('10.0.0.1', 'DE', AccessType.DOWNLOAD),
            ('10.0.0.2', 'US', AccessType.VIEW),
            ('10.0.0.3', None, AccessType.VIEW),
        ]
        for ip, country, access_type in visits:
            await engine.recorder.record(
                link, access_type, RequestMeta(ip_address=ip, country=country),
            )

        stats = await engine.query.stats(link.id)
        assert stats.total_accesses == 4
        assert stats.unique_visitors == 3
        assert stats.view_count == 3
        assert stats.download_count == 1
        assert stats.access_by_type == {'VIEW': 3, 'DOWNLOAD': 1}
        assert stats.top_countries == [('DE', 2), ('US', 1)]
        assert stats.is_active and not stats.is_expired
        assert stats.last_accessed_at == engine.clock.now()

        engine.clock.advance(timedelta(hours=1))
        assert (await engine.query.stats(link.id)).is_expired

    @pytest.mark.asyncio
    async def test_stats_for_unused_link(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1')
        data = (await engine.query.stats(link.id)).to_dict()
        assert data['total_accesses'] == 0
        assert data['access_by_type'] == {'VIEW': 0, 'DOWNLOAD': 0}
        assert data['top_countries'] == []
        assert data['last_accessed_at'] is None


class TestListForAsset:

    @pytest.mark.asyncio
    async def test_lists_links_of_one_asset(self, engine):
        a = await engine.issuer.issue('asset_1', 'user_1')
        engine.clock.advance(timedelta(seconds=1))
        b = await engine.issuer.issue('asset_1', 'user_2')
        await engine.issuer.issue('asset_2', 'user_1')

        links = await engine.query.list_for_asset('asset_1')
        assert [l.id for l in links] == [b.id, a.id]

    @pytest.mark.asyncio
    async def test_non_admin_sees_own_links_only(self, engine):
        mine = await engine.issuer.issue('asset_1', 'user_1')
        await engine.issuer.issue('asset_1', 'user_2')
        links = await engine.query.list_for_asset('asset_1', actor_id='user_1')
        assert [l.id for l in links] == [mine.id]
