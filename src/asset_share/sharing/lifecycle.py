"""Lifecycle manager: revoke, reactivate and edit share links.

None of these operations touch counters or access logs. Revoke and
reactivate are idempotent: repeating them returns the current state
without writing. Reactivation never changes ``expires_at``, so a link
whose expiry has passed stays denied until its settings are edited.

Authorization: when an ``actor_id`` is supplied, only the link's creator
or an admin may change it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any

from asset_share.clock import Clock

from .audit import (
    ShareAuditEmitter,
    emit_share_reactivated,
    emit_share_revoked,
    emit_share_updated,
)
from .errors import ShareConflict, ShareForbidden, ShareLinkNotFound
from .issuer import validate_future_expiry, validate_password
from .model import ShareLink
from .passwords import SharePasswordHasher
from .repository import ShareLinkRepository

logger = logging.getLogger(__name__)


class Unset(Enum):
    """Marker for "leave this setting unchanged"."""

    UNSET = 'UNSET'


UNSET = Unset.UNSET


class LifecycleManager:
    def __init__(
        self,
        repo: ShareLinkRepository,
        hasher: SharePasswordHasher,
        clock: Clock,
        *,
        audit: ShareAuditEmitter | None = None,
    ) -> None:
        self._repo = repo
        self._hasher = hasher
        self._clock = clock
        self._audit = audit

    async def get(
        self,
        share_id: str,
        *,
        actor_id: str | None = None,
        is_admin: bool = False,
    ) -> ShareLink:
        """Load a link the actor is allowed to manage.

        Raises:
            ShareLinkNotFound: No link with ``share_id``.
            ShareForbidden: Actor is neither the creator nor an admin.
        """
        link = await self._repo.get(share_id)
        if link is None:
            raise ShareLinkNotFound(f'Share link {share_id} not found.')
        if actor_id is not None and not is_admin and link.created_by_id != actor_id:
            raise ShareForbidden('You do not have permission to manage this share link.')
        return link

    async def revoke(
        self,
        share_id: str,
        *,
        actor_id: str | None = None,
        is_admin: bool = False,
    ) -> ShareLink:
        link = await self.get(share_id, actor_id=actor_id, is_admin=is_admin)
        if not link.is_active:
            return link

        updated = await self._apply(link, {'is_active': False})
        logger.info('Share link %s revoked by %s', share_id, actor_id or 'system')
        if self._audit is not None:
            await emit_share_revoked(
                self._audit,
                share_id=share_id,
                asset_id=updated.asset_id,
                user_id=actor_id or '',
            )
        return updated

    async def reactivate(
        self,
        share_id: str,
        *,
        actor_id: str | None = None,
        is_admin: bool = False,
    ) -> ShareLink:
        link = await self.get(share_id, actor_id=actor_id, is_admin=is_admin)
        if link.is_active:
            return link

        updated = await self._apply(link, {'is_active': True})
        if updated.is_expired(self._clock.now()):
            logger.info('Share link %s reactivated but still expired', share_id)
        else:
            logger.info('Share link %s reactivated by %s', share_id, actor_id or 'system')
        if self._audit is not None:
            await emit_share_reactivated(
                self._audit,
                share_id=share_id,
                asset_id=updated.asset_id,
                user_id=actor_id or '',
            )
        return updated

    async def update_settings(
        self,
        share_id: str,
        *,
        expires_at: datetime | None | Unset = UNSET,
        password: str | None | Unset = UNSET,
        allow_download: bool | Unset = UNSET,
        actor_id: str | None = None,
        is_admin: bool = False,
    ) -> ShareLink:
        """Partially update link settings.

        ``UNSET`` leaves a field alone. ``password=None`` removes password
        protection; ``expires_at=None`` makes the link never expire.

        Raises:
            ShareValidationError: New expiry not in the future, or an
                empty password.
            ShareLinkNotFound / ShareForbidden: See ``get``.
            ShareConflict: The link vanished while being updated.
        """
        link = await self.get(share_id, actor_id=actor_id, is_admin=is_admin)

        changes: dict[str, Any] = {}
        if expires_at is not UNSET:
            validate_future_expiry(expires_at, self._clock.now())
            changes['expires_at'] = expires_at
        if password is not UNSET:
            if password is None:
                changes['password_hash'] = None
            else:
                validate_password(password)
                changes['password_hash'] = await self._hasher.hash(password)
        if allow_download is not UNSET:
            changes['allow_download'] = bool(allow_download)

        if not changes:
            return link

        updated = await self._apply(link, changes)
        fields = [
            'password' if name == 'password_hash' else name for name in changes
        ]
        logger.info('Share link %s settings updated: %s', share_id, ', '.join(fields))
        if self._audit is not None:
            await emit_share_updated(
                self._audit,
                share_id=share_id,
                asset_id=updated.asset_id,
                user_id=actor_id or '',
                fields=fields,
            )
        return updated

    async def _apply(self, link: ShareLink, changes: dict[str, Any]) -> ShareLink:
        updated = await self._repo.update(
            link.id, {**changes, 'updated_at': self._clock.now()},
        )
        if updated is None:
            raise ShareConflict(f'Share link {link.id} was removed concurrently.')
        return updated
