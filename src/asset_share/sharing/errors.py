"""Share-link error taxonomy.

Every failure the engine raises derives from ``ShareError`` and carries a
stable machine ``code`` plus the HTTP status the transport layer should use.

Access decisions are NOT errors: the evaluator returns ``Decision`` values
for expected deny outcomes (revoked, expired, bad password ...). Exceptions
are reserved for bad input, missing records, authorization and genuine
backend failures.
"""

from __future__ import annotations


class ShareError(Exception):
    """Base class for share-link engine failures."""

    code: str = 'share_error'
    status_code: int = 500

    def __init__(self, detail: str = '') -> None:
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {'error': self.code, 'detail': self.detail}


class ShareLinkNotFound(ShareError):
    """Share link not found."""

    code = 'share_not_found'
    status_code = 404


class AssetNotFound(ShareError):
    """Asset not found."""

    code = 'asset_not_found'
    status_code = 404


class ShareLinkInactive(ShareError):
    """Share link was revoked before the access could be recorded.

    Surfaced publicly exactly like ``ShareLinkNotFound``.
    """

    code = 'share_not_found'
    status_code = 404


class ShareValidationError(ShareError, ValueError):
    """Invalid input to create, update or list."""

    code = 'validation_error'
    status_code = 400


class ShareConflict(ShareError):
    """Concurrent modification or unique-token violation."""

    code = 'conflict'
    status_code = 409


class ShareForbidden(ShareError):
    """Caller may not manage this share link."""

    code = 'forbidden'
    status_code = 403


class ShareUnavailable(ShareError):
    """Storage or hashing backend unavailable; safe to retry."""

    code = 'unavailable'
    status_code = 503
