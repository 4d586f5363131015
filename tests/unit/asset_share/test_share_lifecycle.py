"""Tests for revoke / reactivate / settings edits."""

from __future__ import annotations

from datetime import timedelta

import pytest

from asset_share.sharing.audit import (
    SHARE_REACTIVATED,
    SHARE_REVOKED,
    SHARE_UPDATED,
)
from asset_share.sharing.errors import (
    ShareConflict,
    ShareForbidden,
    ShareLinkNotFound,
    ShareValidationError,
)
from asset_share.sharing.lifecycle import UNSET
from asset_share.sharing.model import AccessType, DenyReason


class TestRevokeReactivate:

    @pytest.mark.asyncio
    async def test_revoke_is_idempotent(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1')
        engine.clock.advance(timedelta(minutes=1))
        first = await engine.lifecycle.revoke(link.id)
        engine.clock.advance(timedelta(minutes=1))
        second = await engine.lifecycle.revoke(link.id)

        assert first.is_active is False
        assert second == first
        assert len(engine.audit.find(SHARE_REVOKED, link.id)) == 1

    @pytest.mark.asyncio
    async def test_reactivate_is_idempotent(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1')
        unchanged = await engine.lifecycle.reactivate(link.id)
        assert unchanged == link
        assert engine.audit.find(SHARE_REACTIVATED) == []

        await engine.lifecycle.revoke(link.id)
        first = await engine.lifecycle.reactivate(link.id)
        second = await engine.lifecycle.reactivate(link.id)
        assert first.is_active and second == first
        assert len(engine.audit.find(SHARE_REACTIVATED, link.id)) == 1

    @pytest.mark.asyncio
    async def test_revoke_preserves_counters_and_settings(self, engine):
        link = await engine.issuer.issue(
            'asset_1', 'user_1', password='abc123', allow_download=False,
        )
        await engine.recorder.record(link, AccessType.VIEW)
        await engine.recorder.record(link, AccessType.VIEW)

        revoked = await engine.lifecycle.revoke(link.id)
        restored = await engine.lifecycle.reactivate(link.id)

        for state in (revoked, restored):
            assert state.view_count == 2
            assert state.password_hash == link.password_hash
            assert state.allow_download is False
        assert len(await engine.repo.all_access_logs(link.id)) == 2

    @pytest.mark.asyncio
    async def test_reactivate_never_extends_expiry(self, engine):
        expires = engine.clock.now() + timedelta(hours=1)
        link = await engine.issuer.issue('asset_1', 'user_1', expires_at=expires)
        await engine.lifecycle.revoke(link.id)
        engine.clock.advance(timedelta(hours=3))

        restored = await engine.lifecycle.reactivate(link.id)
        assert restored.expires_at == expires
        assert (await engine.evaluator.evaluate(link.token)).reason is DenyReason.EXPIRED

        edited = await engine.lifecycle.update_settings(
            link.id, expires_at=engine.clock.now() + timedelta(hours=1),
        )
        assert edited.is_active
        assert (await engine.evaluator.evaluate(link.token)).allowed

    @pytest.mark.asyncio
    async def test_unknown_link(self, engine):
        with pytest.raises(ShareLinkNotFound):
            await engine.lifecycle.revoke('shl_missing')


class TestAuthorization:

    @pytest.mark.asyncio
    async def test_other_user_forbidden(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1')
        with pytest.raises(ShareForbidden):
            await engine.lifecycle.revoke(link.id, actor_id='user_2')
        assert (await engine.repo.get(link.id)).is_active

    @pytest.mark.asyncio
    async def test_admin_may_manage_any_link(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1')
        revoked = await engine.lifecycle.revoke(link.id, actor_id='user_2', is_admin=True)
        assert revoked.is_active is False
        assert engine.audit.find(SHARE_REVOKED, link.id)[0].actor_user_id == 'user_2'

    @pytest.mark.asyncio
    async def test_creator_may_manage_own_link(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1')
        updated = await engine.lifecycle.update_settings(
            link.id, allow_download=False, actor_id='user_1',
        )
        assert updated.allow_download is False


class TestUpdateSettings:

    @pytest.mark.asyncio
    async def test_unset_leaves_everything(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1', password='abc123')
        same = await engine.lifecycle.update_settings(
            link.id, expires_at=UNSET, password=UNSET, allow_download=UNSET,
        )
        assert same == link
        assert engine.audit.find(SHARE_UPDATED) == []

    @pytest.mark.asyncio
    async def test_remove_password(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1', password='abc123')
        updated = await engine.lifecycle.update_settings(link.id, password=None)
        assert updated.password_hash is None
        assert (await engine.evaluator.evaluate(link.token)).allowed

    @pytest.mark.asyncio
    async def test_set_password(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1')
        await engine.lifecycle.update_settings(link.id, password='n3w')
        d = await engine.evaluator.evaluate(link.token)
        assert d.reason is DenyReason.PASSWORD_REQUIRED
        assert (await engine.evaluator.evaluate(link.token, 'n3w')).allowed

    @pytest.mark.asyncio
    async def test_clear_expiry(self, engine):
        link = await engine.issuer.issue(
            'asset_1', 'user_1', expires_at=engine.clock.now() + timedelta(hours=1),
        )
        updated = await engine.lifecycle.update_settings(link.id, expires_at=None)
        assert updated.expires_at is None

    @pytest.mark.asyncio
    async def test_past_expiry_rejected(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1')
        with pytest.raises(ShareValidationError):
            await engine.lifecycle.update_settings(
                link.id, expires_at=engine.clock.now() - timedelta(minutes=1),
            )
        assert (await engine.repo.get(link.id)).expires_at is None

    @pytest.mark.asyncio
    async def test_update_bumps_updated_at_and_audits_fields(self, engine):
        link = await engine.issuer.issue('asset_1', 'user_1')
        engine.clock.advance(timedelta(minutes=5))
        updated = await engine.lifecycle.update_settings(
            link.id, allow_download=False, password='pw',
        )
        assert updated.updated_at == engine.clock.now()
        assert updated.created_at == link.created_at
        (event,) = engine.audit.find(SHARE_UPDATED, link.id)
        assert event.detail == 'fields=allow_download,password'

    @pytest.mark.asyncio
    async def test_link_removed_concurrently(self, engine, monkeypatch):
        link = await engine.issuer.issue('asset_1', 'user_1')

        async def vanished(share_id, changes):
            return None

        monkeypatch.setattr(engine.repo, 'update', vanished)
        with pytest.raises(ShareConflict):
            await engine.lifecycle.update_settings(link.id, allow_download=False)
