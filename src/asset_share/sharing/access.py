"""Public share-link access endpoint.

  GET /api/v1/s/{token}?access_type=VIEW|DOWNLOAD → resolve a shared asset

Token resolution:
  - Malformed, unknown, revoked and expired tokens → 404 share_not_found.
    The caller cannot tell these apart.
  - Password-protected links read the password from ``X-Share-Password``:
    missing → 401 password_required, wrong → 401 password_incorrect.
  - DOWNLOAD on a view-only link → 403 download_not_allowed.

Recording:
  - Each 200 response counts exactly one access of the requested type and
    appends one access log entry with the caller's request metadata.
  - Denied attempts are never counted; they are audited as share.denied.

This module provides:
  ``create_share_access_router``: FastAPI router factory.
  ``request_meta_from``: best-effort client metadata from headers.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from asset_share.external import AssetStore
from asset_share.observability.metrics import observe_decision, observe_recorded

from .audit import ShareAuditEmitter, emit_share_denied, redact_token
from .errors import ShareLinkInactive
from .evaluator import AccessEvaluator
from .model import AccessType, DenyReason, RequestMeta
from .query import parse_enum
from .recorder import AccessRecorder

logger = logging.getLogger(__name__)

PASSWORD_HEADER = 'X-Share-Password'

# Checked in order; the first non-empty value wins.
_CLIENT_IP_HEADERS = (
    'x-forwarded-for',
    'x-real-ip',
    'cf-connecting-ip',
    'true-client-ip',
)

_DENY_RESPONSES: dict[DenyReason, tuple[int, str, str]] = {
    DenyReason.NOT_FOUND: (404, 'share_not_found', 'Share link not found.'),
    DenyReason.PASSWORD_REQUIRED: (
        401, 'password_required', 'This share link requires a password.',
    ),
    DenyReason.PASSWORD_INCORRECT: (
        401, 'password_incorrect', 'The password is incorrect.',
    ),
    DenyReason.DOWNLOAD_NOT_ALLOWED: (
        403, 'download_not_allowed', 'Downloads are disabled for this share link.',
    ),
}


def _not_found() -> JSONResponse:
    status, code, detail = _DENY_RESPONSES[DenyReason.NOT_FOUND]
    return JSONResponse(status_code=status, content={'error': code, 'detail': detail})


def request_meta_from(request: Request) -> RequestMeta:
    """Collect client IP, user agent, referrer and country from a request.

    ``x-forwarded-for`` may carry a proxy chain; the first hop is the client.
    """
    headers = request.headers
    ip_address = None
    for name in _CLIENT_IP_HEADERS:
        value = headers.get(name, '').split(',')[0].strip()
        if value:
            ip_address = value
            break
    if ip_address is None and request.client is not None:
        ip_address = request.client.host

    return RequestMeta(
        ip_address=ip_address or None,
        user_agent=headers.get('user-agent') or None,
        country=(headers.get('cf-ipcountry') or '').upper() or None,
        referrer=headers.get('referer') or None,
    )


def create_share_access_router(
    evaluator: AccessEvaluator,
    recorder: AccessRecorder,
    asset_store: AssetStore,
    *,
    audit: ShareAuditEmitter | None = None,
) -> APIRouter:
    """Create the anonymous share access router.

    Args:
        evaluator: Access policy check.
        recorder: Counter and access-log writer.
        asset_store: Resolves the shared asset's name and content type.
        audit: Optional sink for share.denied events.
    """
    router = APIRouter(tags=['share-access'])

    @router.get('/api/v1/s/{token}')
    async def access_share(
        token: str,
        request: Request,
        access_type: str = AccessType.VIEW.value,
        x_share_password: str | None = Header(default=None, alias=PASSWORD_HEADER),
    ):
        """Resolve a share token and record the access."""
        requested = parse_enum(AccessType, access_type.upper(), 'access_type')
        decision = await evaluator.evaluate(token, x_share_password, requested)

        if not decision.allowed:
            observe_decision(decision.reason.value)
            link = decision.link
            logger.info(
                'Share access denied: token=%s reason=%s',
                redact_token(token), decision.reason.value,
            )
            if audit is not None:
                await emit_share_denied(
                    audit,
                    token=token,
                    reason=decision.reason.value,
                    share_id=link.id if link else None,
                    asset_id=link.asset_id if link else None,
                )
            status, code, detail = _DENY_RESPONSES[decision.public_reason]
            return JSONResponse(
                status_code=status, content={'error': code, 'detail': detail},
            )

        link = decision.link
        asset = await asset_store.get_asset(link.asset_id)
        if asset is None:
            # The asset was deleted out from under a live link.
            logger.warning('Share link %s points at missing asset %s', link.id, link.asset_id)
            observe_decision(DenyReason.NOT_FOUND.value)
            return _not_found()

        try:
            await recorder.record(link, requested, request_meta_from(request))
        except ShareLinkInactive:
            logger.info('Share link %s revoked before access was recorded', link.id)
            observe_decision(DenyReason.REVOKED.value)
            return _not_found()

        observe_recorded(requested.value)
        return {
            'asset_id': link.asset_id,
            'asset_name': asset.name,
            'content_type': asset.content_type,
            'allow_download': link.allow_download,
            'access_type': requested.value,
        }

    return router
