"""Counter & audit recorder for allowed accesses."""

from __future__ import annotations

import logging

from asset_share.clock import Clock

from .model import AccessLogEntry, AccessType, RequestMeta, ShareLink
from .repository import ShareLinkRepository

logger = logging.getLogger(__name__)


class AccessRecorder:
    """Counts one logical access and appends its audit log entry.

    Call once per access, after an Allow decision. The counter bump and the
    log insert are a single repository operation, so they land together or
    not at all. A link revoked between evaluation and recording raises
    ``ShareLinkInactive`` and nothing is written.
    """

    def __init__(self, repo: ShareLinkRepository, clock: Clock) -> None:
        self._repo = repo
        self._clock = clock

    async def record(
        self,
        link: ShareLink,
        access_type: AccessType,
        meta: RequestMeta | None = None,
    ) -> AccessLogEntry:
        entry = await self._repo.record_access(
            link.id, access_type, meta or RequestMeta(), self._clock.now(),
        )
        logger.debug('Recorded %s access on share link %s', access_type.value, link.id)
        return entry
