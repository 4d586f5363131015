"""Supabase-backed ShareAuditEmitter implementation.

Writes share audit events to ``share.share_audit_events`` via PostgREST.
Emit is fire-and-forget: DB errors are logged but never propagate to the
operation that produced the event.
"""

from __future__ import annotations

import logging

from asset_share.observability.logging import request_id_ctx
from asset_share.sharing.audit import ShareAuditEvent, redact_string

from .supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


class SupabaseShareAuditEmitter:
    """ShareAuditEmitter backed by ``share.share_audit_events``."""

    TABLE = "share.share_audit_events"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def emit(self, event: ShareAuditEvent) -> None:
        """Write an audit event. Errors are logged, not raised."""
        row = {
            "event_type": event.event_type,
            "share_link_id": event.share_id,
            "asset_id": event.asset_id,
            "token_prefix": event.token_prefix,
            "actor_user_id": event.actor_user_id or None,
            "detail": redact_string(event.detail),
            "request_id": request_id_ctx.get() or None,
            "created_at": event.timestamp.isoformat(),
        }
        try:
            await self._client.insert(self.TABLE, row)
        except Exception:
            logger.exception(
                "Audit emit failed for event=%s share=%s",
                event.event_type,
                event.share_id or "?",
            )
