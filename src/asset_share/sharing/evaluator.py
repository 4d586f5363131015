"""Access evaluator: decides whether a token grants the requested access.

Evaluation order is fixed and each step short-circuits:

  0. Malformed token              → Deny(NOT_FOUND), no storage read
  1. Unknown token                → Deny(NOT_FOUND)
  2. Revoked (is_active False)    → Deny(REVOKED)
  3. expires_at <= now            → Deny(EXPIRED)
  4. Password set, none supplied  → Deny(PASSWORD_REQUIRED)
     Password set, mismatch       → Deny(PASSWORD_INCORRECT)
  5. DOWNLOAD on a view-only link → Deny(DOWNLOAD_NOT_ALLOWED)
  6. Otherwise                    → Allow(link)

Every step reads the same snapshot returned by one repository call, so a
revoke that finished before evaluation started is always observed.
Evaluation never writes; calling it repeatedly (e.g. to render a password
prompt) does not touch counters.
"""

from __future__ import annotations

from asset_share.clock import Clock

from .model import AccessType, Decision, DenyReason, is_well_formed_token
from .passwords import SharePasswordHasher
from .repository import ShareLinkRepository


class AccessEvaluator:
    """Read-only policy check for share tokens."""

    def __init__(
        self,
        repo: ShareLinkRepository,
        hasher: SharePasswordHasher,
        clock: Clock,
    ) -> None:
        self._repo = repo
        self._hasher = hasher
        self._clock = clock

    async def evaluate(
        self,
        token: str,
        supplied_password: str | None = None,
        requested_type: AccessType = AccessType.VIEW,
    ) -> Decision:
        if not is_well_formed_token(token):
            return Decision.deny(DenyReason.NOT_FOUND)

        link = await self._repo.get_by_token(token)
        if link is None:
            return Decision.deny(DenyReason.NOT_FOUND)

        if not link.is_active:
            return Decision.deny(DenyReason.REVOKED, link)

        if link.is_expired(self._clock.now()):
            return Decision.deny(DenyReason.EXPIRED, link)

        if link.password_hash is not None:
            if not supplied_password:
                return Decision.deny(DenyReason.PASSWORD_REQUIRED, link)
            if not await self._hasher.verify(link.password_hash, supplied_password):
                return Decision.deny(DenyReason.PASSWORD_INCORRECT, link)

        if requested_type is AccessType.DOWNLOAD and not link.allow_download:
            return Decision.deny(DenyReason.DOWNLOAD_NOT_ALLOWED, link)

        return Decision.allow(link)
