"""Share-link operator audit events and token redaction.

Records the administrative history of each link (created, updated,
revoked, reactivated) and denied access attempts. These events complement
the per-access ``AccessLogEntry`` rows, which only cover successful access.

Security invariant:
  Plaintext tokens must NEVER appear in audit event data.
  Only token prefixes (first 8 chars) are included for correlation.

This module provides:
  1. ``ShareAuditEvent``: structured audit record.
  2. ``ShareAuditEmitter``: protocol for event sinks.
  3. ``InMemoryShareAuditEmitter`` / ``LoggingShareAuditEmitter``: sinks
     for tests and local development.
  4. ``redact_token`` / ``redact_string``: safe token truncation.
  5. ``emit_share_*``: convenience functions for each operation type.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────────

TOKEN_PREFIX_LENGTH = 8  # Characters to keep for correlation.

# URL-safe base64 runs long enough to be a share token.
_TOKEN_PATTERN = re.compile(r'[A-Za-z0-9_-]{20,}')

SHARE_CREATED = 'share.created'
SHARE_UPDATED = 'share.updated'
SHARE_REVOKED = 'share.revoked'
SHARE_REACTIVATED = 'share.reactivated'
SHARE_DENIED = 'share.denied'


# ── Token redaction ──────────────────────────────────────────────────


def redact_token(token: str | None) -> str:
    """Return ``<prefix>...`` or ``<redacted>`` for missing/short tokens."""
    if not token or len(token) < TOKEN_PREFIX_LENGTH:
        return '<redacted>'
    return f'{token[:TOKEN_PREFIX_LENGTH]}...'


def redact_string(text: str) -> str:
    """Replace token-like substrings of ``text`` with redacted prefixes."""
    return _TOKEN_PATTERN.sub(lambda m: redact_token(m.group(0)), text)


# ── Audit event model ───────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ShareAuditEvent:
    """Structured audit event for share-link operations.

    Attributes:
        event_type: One of the ``SHARE_*`` constants.
        share_id: Link id, when the link is known.
        asset_id: Asset the link points at, when known.
        token_prefix: First 8 chars of the token (correlation only).
        actor_user_id: Who performed the action ('' for anonymous holders).
        detail: Extra context (changed fields, deny reason).
        timestamp: When the event occurred.
    """

    event_type: str
    share_id: str | None = None
    asset_id: str | None = None
    token_prefix: str = '<redacted>'
    actor_user_id: str = ''
    detail: str = ''
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dict safe for JSON logging."""
        return {
            'event_type': self.event_type,
            'share_id': self.share_id,
            'asset_id': self.asset_id,
            'token_prefix': self.token_prefix,
            'actor_user_id': self.actor_user_id,
            'detail': self.detail,
            'timestamp': self.timestamp.isoformat(),
        }


# ── Emitter protocol ────────────────────────────────────────────────


class ShareAuditEmitter(Protocol):
    """Abstract audit event sink."""

    async def emit(self, event: ShareAuditEvent) -> None: ...


# ── Implementations ─────────────────────────────────────────────────


class InMemoryShareAuditEmitter:
    """Test audit emitter that stores events in memory."""

    def __init__(self) -> None:
        self.events: list[ShareAuditEvent] = []

    async def emit(self, event: ShareAuditEvent) -> None:
        self.events.append(event)

    def find(
        self,
        event_type: str | None = None,
        share_id: str | None = None,
    ) -> list[ShareAuditEvent]:
        """Filter events by type and/or share id."""
        result = self.events
        if event_type:
            result = [e for e in result if e.event_type == event_type]
        if share_id:
            result = [e for e in result if e.share_id == share_id]
        return result


class LoggingShareAuditEmitter:
    """Writes audit events to the application log."""

    async def emit(self, event: ShareAuditEvent) -> None:
        logger.info('share_audit %s', event.event_type, extra={'audit': event.to_dict()})


# ── Convenience emitters ─────────────────────────────────────────────


async def emit_share_created(
    emitter: ShareAuditEmitter,
    *,
    share_id: str,
    asset_id: str,
    token: str,
    user_id: str,
    has_password: bool,
    expires_at: datetime | None,
) -> ShareAuditEvent:
    """Emit a share.created audit event."""
    expiry = expires_at.isoformat() if expires_at else 'never'
    event = ShareAuditEvent(
        event_type=SHARE_CREATED,
        share_id=share_id,
        asset_id=asset_id,
        token_prefix=redact_token(token),
        actor_user_id=user_id,
        detail=f'has_password={has_password} expires_at={expiry}',
    )
    await emitter.emit(event)
    return event


async def emit_share_updated(
    emitter: ShareAuditEmitter,
    *,
    share_id: str,
    asset_id: str,
    user_id: str,
    fields: list[str],
) -> ShareAuditEvent:
    """Emit a share.updated audit event naming the changed settings."""
    event = ShareAuditEvent(
        event_type=SHARE_UPDATED,
        share_id=share_id,
        asset_id=asset_id,
        actor_user_id=user_id,
        detail='fields=' + ','.join(sorted(fields)),
    )
    await emitter.emit(event)
    return event


async def emit_share_revoked(
    emitter: ShareAuditEmitter,
    *,
    share_id: str,
    asset_id: str,
    user_id: str,
) -> ShareAuditEvent:
    """Emit a share.revoked audit event."""
    event = ShareAuditEvent(
        event_type=SHARE_REVOKED,
        share_id=share_id,
        asset_id=asset_id,
        actor_user_id=user_id,
    )
    await emitter.emit(event)
    return event


async def emit_share_reactivated(
    emitter: ShareAuditEmitter,
    *,
    share_id: str,
    asset_id: str,
    user_id: str,
) -> ShareAuditEvent:
    """Emit a share.reactivated audit event."""
    event = ShareAuditEvent(
        event_type=SHARE_REACTIVATED,
        share_id=share_id,
        asset_id=asset_id,
        actor_user_id=user_id,
    )
    await emitter.emit(event)
    return event


async def emit_share_denied(
    emitter: ShareAuditEmitter,
    *,
    token: str,
    reason: str,
    share_id: str | None = None,
    asset_id: str | None = None,
) -> ShareAuditEvent:
    """Emit a share.denied audit event with the internal deny reason."""
    event = ShareAuditEvent(
        event_type=SHARE_DENIED,
        share_id=share_id,
        asset_id=asset_id,
        token_prefix=redact_token(token),
        detail=reason,
    )
    await emitter.emit(event)
    return event
