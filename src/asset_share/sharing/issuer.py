"""Token issuer: mints new share links.

Each link gets a fresh 256-bit URL-safe token, an optional Argon2 password
hash, an optional future expiry and a download flag. New links start
active with zero counters.
"""

from __future__ import annotations

import logging
from datetime import datetime

from asset_share.clock import Clock
from asset_share.external import AssetStore

from .audit import ShareAuditEmitter, emit_share_created, redact_token
from .errors import AssetNotFound, ShareConflict, ShareValidationError
from .model import ShareLink, generate_share_token
from .passwords import SharePasswordHasher
from .repository import ShareLinkRepository

logger = logging.getLogger(__name__)

MAX_TOKEN_ATTEMPTS = 3


def validate_future_expiry(expires_at: datetime | None, now: datetime) -> None:
    """Reject naive or non-future expiry instants."""
    if expires_at is None:
        return
    if expires_at.tzinfo is None or expires_at.utcoffset() is None:
        raise ShareValidationError('expires_at must include a timezone offset.')
    if expires_at <= now:
        raise ShareValidationError('expires_at must be in the future.')


def validate_password(password: str) -> None:
    if not password:
        raise ShareValidationError('password must not be empty.')


class TokenIssuer:
    """Creates ShareLink records."""

    def __init__(
        self,
        repo: ShareLinkRepository,
        hasher: SharePasswordHasher,
        clock: Clock,
        *,
        asset_store: AssetStore | None = None,
        audit: ShareAuditEmitter | None = None,
    ) -> None:
        self._repo = repo
        self._hasher = hasher
        self._clock = clock
        self._asset_store = asset_store
        self._audit = audit

    async def issue(
        self,
        asset_id: str,
        created_by_id: str,
        *,
        expires_at: datetime | None = None,
        password: str | None = None,
        allow_download: bool = True,
    ) -> ShareLink:
        """Mint and persist a new share link.

        Raises:
            ShareValidationError: Past/naive expiry, empty password, or an
                asset with no uploaded file.
            AssetNotFound: The asset store does not know ``asset_id``.
            ShareConflict: Token collisions exhausted every attempt.
        """
        if not asset_id:
            raise ShareValidationError('asset_id is required.')
        if not created_by_id:
            raise ShareValidationError('created_by_id is required.')

        now = self._clock.now()
        validate_future_expiry(expires_at, now)
        if password is not None:
            validate_password(password)

        if self._asset_store is not None:
            asset = await self._asset_store.get_asset(asset_id)
            if asset is None:
                raise AssetNotFound(f'Asset {asset_id} not found.')
            if not asset.has_file:
                raise ShareValidationError(
                    'Cannot share an asset whose file has not been uploaded.'
                )

        password_hash = await self._hasher.hash(password) if password else None

        link = await self._persist(
            asset_id=asset_id,
            created_by_id=created_by_id,
            password_hash=password_hash,
            allow_download=allow_download,
            expires_at=expires_at,
            now=now,
        )
        logger.info(
            'Share link %s created for asset %s (token=%s)',
            link.id, asset_id, redact_token(link.token),
        )

        if self._audit is not None:
            await emit_share_created(
                self._audit,
                share_id=link.id,
                asset_id=asset_id,
                token=link.token,
                user_id=created_by_id,
                has_password=link.has_password,
                expires_at=expires_at,
            )
        return link

    async def _persist(self, *, now: datetime, **fields) -> ShareLink:
        for attempt in range(1, MAX_TOKEN_ATTEMPTS + 1):
            link = ShareLink(
                id='',  # Assigned by repository.
                token=generate_share_token(),
                created_at=now,
                updated_at=now,
                is_active=True,
                view_count=0,
                download_count=0,
                **fields,
            )
            try:
                return await self._repo.create(link)
            except ShareConflict:
                logger.warning('Share token collision (attempt %d)', attempt)
        raise ShareConflict('Could not allocate a unique share token.')
