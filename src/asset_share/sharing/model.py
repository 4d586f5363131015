"""Share-link domain model.

Defines the records owned by the engine and the value types that flow
between its components:

  1. ``ShareLink`` / ``AccessLogEntry``: persisted records.
  2. ``AccessType``, ``DenyReason``, ``Decision``: evaluation results.
  3. ``RequestMeta``: best-effort request metadata for the audit log.
  4. ``ShareLinkFilter`` / ``ShareLinkSort`` / ``ShareLinkQuery`` /
     ``ShareLinkSummary`` / ``Page``: admin listing types.
  5. ``generate_share_token`` / ``is_well_formed_token``: token helpers.

Token format:
  ``secrets.token_urlsafe(32)``: 256 random bits rendered as 43 URL-safe
  base64 characters with no ``=`` padding. Anything that does not match
  ``TOKEN_PATTERN`` is rejected before a storage read.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Generic, TypeVar

# ── Constants ─────────────────────────────────────────────────────────

TOKEN_BYTES = 32  # 256-bit tokens.
TOKEN_PATTERN = re.compile(r'^[A-Za-z0-9_-]{43,128}$')
EXPIRING_SOON_WINDOW = timedelta(hours=24)


# ── Token operations ──────────────────────────────────────────────────


def generate_share_token() -> str:
    """Generate a cryptographically random URL-safe share token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def is_well_formed_token(token: str | None) -> bool:
    """True when ``token`` matches the public token wire format."""
    return bool(token) and TOKEN_PATTERN.fullmatch(token) is not None


def share_url(base_url: str, token: str) -> str:
    """Public URL a holder opens to reach the shared asset."""
    return f'{base_url.rstrip("/")}/s/{token}'


# ── Enumerations ──────────────────────────────────────────────────────


class AccessType(str, Enum):
    VIEW = 'VIEW'
    DOWNLOAD = 'DOWNLOAD'


class DenyReason(str, Enum):
    NOT_FOUND = 'NOT_FOUND'
    REVOKED = 'REVOKED'
    EXPIRED = 'EXPIRED'
    PASSWORD_REQUIRED = 'PASSWORD_REQUIRED'
    PASSWORD_INCORRECT = 'PASSWORD_INCORRECT'
    DOWNLOAD_NOT_ALLOWED = 'DOWNLOAD_NOT_ALLOWED'


# Reasons an unauthenticated caller may see verbatim. Everything else
# collapses to NOT_FOUND so link existence is never revealed.
PUBLIC_DENY_REASONS = frozenset({
    DenyReason.NOT_FOUND,
    DenyReason.PASSWORD_REQUIRED,
    DenyReason.PASSWORD_INCORRECT,
    DenyReason.DOWNLOAD_NOT_ALLOWED,
})


class LinkStatus(str, Enum):
    """Operator-visible state of a link at a given instant."""

    ACTIVE = 'ACTIVE'
    REVOKED = 'REVOKED'
    EXPIRED = 'EXPIRED'


class ExpiryStatus(str, Enum):
    ALL = 'ALL'
    EXPIRED = 'EXPIRED'
    EXPIRING_SOON = 'EXPIRING_SOON'
    NEVER = 'NEVER'


class SortKey(str, Enum):
    CREATED_AT = 'created_at'
    EXPIRES_AT = 'expires_at'
    VIEW_COUNT = 'view_count'
    DOWNLOAD_COUNT = 'download_count'
    ASSET_NAME = 'asset_name'


class SortOrder(str, Enum):
    ASC = 'asc'
    DESC = 'desc'


# ── Records ───────────────────────────────────────────────────────────


@dataclass
class ShareLink:
    """A token paired with the access policy for one asset.

    Attributes:
        id: Stable identity assigned by the repository.
        token: Public credential; unique and never reused.
        asset_id: Reference into the external asset store.
        created_by_id: Opaque identity of the creator.
        password_hash: Argon2 hash, or None when no password is required.
        allow_download: Whether DOWNLOAD access is permitted.
        expires_at: Expiry instant, or None for "never expires".
        is_active: False once administratively revoked.
        view_count / download_count: Monotonic usage counters.
        last_accessed_at: When the last access was recorded.
    """

    id: str
    token: str
    asset_id: str
    created_by_id: str
    created_at: datetime
    updated_at: datetime
    password_hash: str | None = None
    allow_download: bool = True
    expires_at: datetime | None = None
    is_active: bool = True
    view_count: int = 0
    download_count: int = 0
    last_accessed_at: datetime | None = None

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def status(self, now: datetime) -> LinkStatus:
        if not self.is_active:
            return LinkStatus.REVOKED
        if self.is_expired(now):
            return LinkStatus.EXPIRED
        return LinkStatus.ACTIVE

    def snapshot(self) -> ShareLink:
        """Detached copy, so callers never observe later mutations."""
        return replace(self)

    def to_public_dict(self) -> dict[str, Any]:
        """Serialize without the password hash."""
        return {
            'id': self.id,
            'asset_id': self.asset_id,
            'created_by_id': self.created_by_id,
            'allow_download': self.allow_download,
            'has_password': self.has_password,
            'expires_at': _iso(self.expires_at),
            'is_active': self.is_active,
            'view_count': self.view_count,
            'download_count': self.download_count,
            'last_accessed_at': _iso(self.last_accessed_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


@dataclass(frozen=True, slots=True)
class RequestMeta:
    """Best-effort description of who made a request."""

    ip_address: str | None = None
    user_agent: str | None = None
    country: str | None = None
    referrer: str | None = None


@dataclass(frozen=True, slots=True)
class AccessLogEntry:
    """One recorded access. Never mutated or deleted once written."""

    id: str
    share_link_id: str
    access_type: AccessType
    created_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    country: str | None = None
    referrer: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'share_link_id': self.share_link_id,
            'access_type': self.access_type.value,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'country': self.country,
            'referrer': self.referrer,
            'created_at': _iso(self.created_at),
        }


# ── Decisions ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of evaluating a token against current policy and time.

    ``link`` is set on Allow and on denials that happened after the link
    was found; it is for internal use and must not be echoed to the
    anonymous caller.
    """

    reason: DenyReason | None = None
    link: ShareLink | None = None

    @classmethod
    def allow(cls, link: ShareLink) -> Decision:
        return cls(reason=None, link=link)

    @classmethod
    def deny(cls, reason: DenyReason, link: ShareLink | None = None) -> Decision:
        return cls(reason=reason, link=link)

    @property
    def allowed(self) -> bool:
        return self.reason is None

    @property
    def public_reason(self) -> DenyReason | None:
        """The reason as an unauthenticated caller may see it."""
        if self.reason is None or self.reason in PUBLIC_DENY_REASONS:
            return self.reason
        return DenyReason.NOT_FOUND


# ── Listing ───────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ShareLinkFilter:
    search: str | None = None
    is_active: bool | None = None
    has_password: bool | None = None
    expiry_status: ExpiryStatus = ExpiryStatus.ALL
    created_from: datetime | None = None
    created_to: datetime | None = None
    created_by_id: str | None = None


@dataclass(frozen=True, slots=True)
class ShareLinkSort:
    key: SortKey = SortKey.CREATED_AT
    order: SortOrder = SortOrder.DESC


@dataclass(frozen=True, slots=True)
class ShareLinkQuery:
    """Fully validated listing request handed to a repository.

    ``now`` pins the clock value used for expiry buckets so one query sees
    one instant.
    """

    filter: ShareLinkFilter
    sort: ShareLinkSort
    offset: int
    limit: int
    now: datetime


@dataclass(frozen=True, slots=True)
class ShareLinkSummary:
    """A link joined with its asset and creator for operator listings."""

    link: ShareLink
    asset_name: str | None = None
    creator_name: str | None = None
    creator_email: str | None = None

    def to_dict(self, *, now: datetime, base_url: str) -> dict[str, Any]:
        return {
            **self.link.to_public_dict(),
            'token': self.link.token,
            'url': share_url(base_url, self.link.token),
            'status': self.link.status(now).value,
            'asset_name': self.asset_name,
            'creator_name': self.creator_name,
            'creator_email': self.creator_email,
        }


T = TypeVar('T')


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    total_count: int
    page: int
    page_size: int

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total_count

    @property
    def total_pages(self) -> int:
        return -(-self.total_count // self.page_size) if self.page_size else 0


@dataclass(frozen=True, slots=True)
class ShareLinkStats:
    total_accesses: int
    unique_visitors: int
    view_count: int
    download_count: int
    access_by_type: dict[str, int] = field(default_factory=dict)
    top_countries: list[tuple[str, int]] = field(default_factory=list)
    is_active: bool = True
    is_expired: bool = False
    created_at: datetime | None = None
    last_accessed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'total_accesses': self.total_accesses,
            'unique_visitors': self.unique_visitors,
            'view_count': self.view_count,
            'download_count': self.download_count,
            'access_by_type': dict(self.access_by_type),
            'top_countries': [
                {'country': c, 'count': n} for c, n in self.top_countries
            ],
            'is_active': self.is_active,
            'is_expired': self.is_expired,
            'created_at': _iso(self.created_at),
            'last_accessed_at': _iso(self.last_accessed_at),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
