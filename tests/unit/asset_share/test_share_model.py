"""Tests for share-link model types and token helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from asset_share.sharing.model import (
    TOKEN_PATTERN,
    Decision,
    DenyReason,
    LinkStatus,
    Page,
    ShareLink,
    ShareLinkSummary,
    generate_share_token,
    is_well_formed_token,
    share_url,
)

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def _link(**overrides) -> ShareLink:
    fields = dict(
        id='shl_1',
        token=generate_share_token(),
        asset_id='asset_1',
        created_by_id='user_1',
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return ShareLink(**fields)


class TestShareToken:

    def test_token_is_43_urlsafe_chars(self):
        token = generate_share_token()
        assert len(token) == 43
        assert TOKEN_PATTERN.fullmatch(token)
        assert '=' not in token

    def test_tokens_are_unique(self):
        tokens = {generate_share_token() for _ in range(500)}
        assert len(tokens) == 500

    @pytest.mark.parametrize('token', [
        '',
        None,
        'abc123',
        'a' * 42,
        'a' * 129,
        'a' * 42 + '=',
        'a' * 40 + '/../',
        'a' * 42 + ' ',
    ])
    def test_malformed_tokens_rejected(self, token):
        assert not is_well_formed_token(token)

    def test_generated_token_well_formed(self):
        assert is_well_formed_token(generate_share_token())

    def test_share_url_strips_trailing_slash(self):
        assert share_url('https://share.example.com/', 'tok') == 'https://share.example.com/s/tok'


class TestShareLinkStatus:

    def test_never_expiring_link_is_active(self):
        link = _link()
        assert not link.is_expired(NOW + timedelta(days=3650))
        assert link.status(NOW) is LinkStatus.ACTIVE

    def test_expiry_boundary_is_inclusive(self):
        link = _link(expires_at=NOW)
        assert link.is_expired(NOW)
        assert not link.is_expired(NOW - timedelta(microseconds=1))

    def test_revoked_wins_over_expired(self):
        link = _link(is_active=False, expires_at=NOW - timedelta(hours=1))
        assert link.status(NOW) is LinkStatus.REVOKED

    def test_expired_status(self):
        link = _link(expires_at=NOW - timedelta(seconds=1))
        assert link.status(NOW) is LinkStatus.EXPIRED

    def test_snapshot_is_detached(self):
        link = _link()
        snap = link.snapshot()
        link.view_count = 99
        assert snap.view_count == 0

    def test_public_dict_omits_password_hash(self):
        link = _link(password_hash='$argon2id$v=19$m=1024,t=1,p=1$abc$def')
        data = link.to_public_dict()
        assert 'password_hash' not in data
        assert data['has_password'] is True
        assert 'token' not in data


class TestDecision:

    def test_allow(self):
        link = _link()
        d = Decision.allow(link)
        assert d.allowed
        assert d.reason is None
        assert d.public_reason is None
        assert d.link is link

    @pytest.mark.parametrize('reason', [DenyReason.REVOKED, DenyReason.EXPIRED])
    def test_internal_reasons_collapse_to_not_found(self, reason):
        d = Decision.deny(reason, _link())
        assert not d.allowed
        assert d.reason is reason
        assert d.public_reason is DenyReason.NOT_FOUND

    @pytest.mark.parametrize('reason', [
        DenyReason.NOT_FOUND,
        DenyReason.PASSWORD_REQUIRED,
        DenyReason.PASSWORD_INCORRECT,
        DenyReason.DOWNLOAD_NOT_ALLOWED,
    ])
    def test_public_reasons_pass_through(self, reason):
        assert Decision.deny(reason).public_reason is reason


class TestPage:

    def test_has_more_and_total_pages(self):
        page = Page(items=[1] * 25, total_count=60, page=1, page_size=25)
        assert page.has_more
        assert page.total_pages == 3

    def test_last_page(self):
        page = Page(items=[1] * 10, total_count=60, page=3, page_size=25)
        assert not page.has_more

    def test_empty(self):
        page = Page(items=[], total_count=0, page=1, page_size=25)
        assert not page.has_more
        assert page.total_pages == 0


def test_summary_dict_includes_url_and_status():
    link = _link(is_active=False)
    summary = ShareLinkSummary(
        link=link, asset_name='Report', creator_name='Alice', creator_email='a@x.io',
    )
    data = summary.to_dict(now=NOW, base_url='https://share.example.com')
    assert data['url'] == f'https://share.example.com/s/{link.token}'
    assert data['status'] == 'REVOKED'
    assert data['asset_name'] == 'Report'
    assert data['creator_email'] == 'a@x.io'
