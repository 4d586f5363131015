"""Share-link management API endpoints.

  POST  /api/v1/share-links                       → create share link
  GET   /api/v1/share-links                       → filtered, paginated listing
  PATCH /api/v1/share-links/{share_id}            → edit expiry/password/download
  POST  /api/v1/share-links/{share_id}/revoke     → revoke (idempotent)
  POST  /api/v1/share-links/{share_id}/reactivate → reactivate (idempotent)
  GET   /api/v1/share-links/{share_id}/access-logs
  GET   /api/v1/share-links/{share_id}/stats
  GET   /api/v1/assets/{asset_id}/share-links     → links for one asset

Auth contract:
  - All endpoints require an authenticated identity (AuthIdentity).
  - Non-admin callers only see and manage links they created.

Token exposure:
  - Tokens are returned to the operator who manages them, together with
    the public share URL. Password hashes are never returned.

This module provides:
  ``create_share_link_router``: FastAPI router factory with injected deps.
  ``register_share_error_handlers``: maps ``ShareError`` to JSON responses.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from asset_share.observability.metrics import observe_issued
from asset_share.security.auth_guard import get_auth_identity
from asset_share.security.token_verify import AuthIdentity

from .errors import ShareError, ShareUnavailable, ShareValidationError
from .issuer import TokenIssuer
from .lifecycle import UNSET, LifecycleManager
from .model import (
    ExpiryStatus,
    ShareLink,
    ShareLinkFilter,
    ShareLinkSort,
    SortKey,
    SortOrder,
    share_url,
)
from .query import (
    DEFAULT_LOG_PAGE_SIZE,
    DEFAULT_PAGE_SIZE,
    AdminQueryEngine,
    parse_enum,
)

RETRY_AFTER_SECONDS = 5


# ── Request schemas ──────────────────────────────────────────────────


class CreateShareLinkRequest(BaseModel):
    """Request body for share link creation."""

    asset_id: str = Field(..., min_length=1, description='Asset to share')
    expires_at: datetime | None = Field(
        default=None, description='Expiry instant with offset; omit for never',
    )
    password: str | None = Field(default=None, description='Optional access password')
    allow_download: bool = Field(default=True)


class UpdateShareLinkRequest(BaseModel):
    """Partial settings update.

    Omitted fields are left unchanged. ``password: null`` removes the
    password; ``expires_at: null`` removes the expiry.
    """

    expires_at: datetime | None = None
    password: str | None = None
    allow_download: bool | None = None


# ── Error mapping ────────────────────────────────────────────────────


def share_error_response(exc: ShareError) -> JSONResponse:
    headers = None
    if isinstance(exc, ShareUnavailable):
        headers = {'Retry-After': str(RETRY_AFTER_SECONDS)}
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=headers,
    )


def register_share_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ShareError)
    async def _handle_share_error(request: Request, exc: ShareError):
        return share_error_response(exc)


# ── Serialization ────────────────────────────────────────────────────


def _link_payload(link: ShareLink, base_url: str, now: datetime) -> dict:
    return {
        **link.to_public_dict(),
        'token': link.token,
        'url': share_url(base_url, link.token),
        'status': link.status(now).value,
    }


def _page_payload(page, items: list[dict]) -> dict:
    return {
        'items': items,
        'total_count': page.total_count,
        'page': page.page,
        'page_size': page.page_size,
        'total_pages': page.total_pages,
        'has_more': page.has_more,
    }


# ── Route factory ────────────────────────────────────────────────────


def create_share_link_router(
    issuer: TokenIssuer,
    lifecycle: LifecycleManager,
    query: AdminQueryEngine,
    *,
    public_base_url: str,
) -> APIRouter:
    """Create share-link management router with injected dependencies.

    Args:
        issuer: Mints new links.
        lifecycle: Revoke/reactivate/edit.
        query: Listings, access logs and stats.
        public_base_url: Base for the ``url`` field of returned links.

    Returns:
        FastAPI router with share-link management routes.
    """
    router = APIRouter(tags=['share-links'])
    clock = query.clock

    def _payload(link: ShareLink) -> dict:
        return _link_payload(link, public_base_url, clock.now())

    @router.post('/api/v1/share-links', status_code=201)
    async def create_share_link(
        body: CreateShareLinkRequest,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Create a share link for an asset. Returns the token and URL."""
        link = await issuer.issue(
            body.asset_id,
            identity.user_id,
            expires_at=body.expires_at,
            password=body.password,
            allow_download=body.allow_download,
        )
        observe_issued(has_password=link.has_password)
        return _payload(link)

    @router.get('/api/v1/share-links')
    async def list_share_links(
        search: str | None = None,
        is_active: bool | None = None,
        has_password: bool | None = None,
        expiry_status: str = ExpiryStatus.ALL.value,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        sort_by: str = SortKey.CREATED_AT.value,
        sort_order: str = SortOrder.DESC.value,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """List share links with search, filters, sorting and pagination."""
        flt = ShareLinkFilter(
            search=search,
            is_active=is_active,
            has_password=has_password,
            expiry_status=parse_enum(ExpiryStatus, expiry_status, 'expiry_status'),
            created_from=created_from,
            created_to=created_to,
            created_by_id=None if identity.is_admin else identity.user_id,
        )
        sort = ShareLinkSort(
            key=parse_enum(SortKey, sort_by, 'sort_by'),
            order=parse_enum(SortOrder, sort_order.lower(), 'sort_order'),
        )
        result = await query.list(flt, sort, page=page, page_size=page_size)
        now = clock.now()
        return _page_payload(
            result,
            [s.to_dict(now=now, base_url=public_base_url) for s in result.items],
        )

    @router.patch('/api/v1/share-links/{share_id}')
    async def update_share_link(
        share_id: str,
        body: UpdateShareLinkRequest,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Edit expiry, password or download permission."""
        sent = body.model_fields_set
        if 'allow_download' in sent and body.allow_download is None:
            raise ShareValidationError('allow_download must be true or false.')
        link = await lifecycle.update_settings(
            share_id,
            expires_at=body.expires_at if 'expires_at' in sent else UNSET,
            password=body.password if 'password' in sent else UNSET,
            allow_download=body.allow_download if 'allow_download' in sent else UNSET,
            actor_id=identity.user_id,
            is_admin=identity.is_admin,
        )
        return _payload(link)

    @router.post('/api/v1/share-links/{share_id}/revoke')
    async def revoke_share_link(
        share_id: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Revoke a share link. Idempotent."""
        link = await lifecycle.revoke(
            share_id, actor_id=identity.user_id, is_admin=identity.is_admin,
        )
        return _payload(link)

    @router.post('/api/v1/share-links/{share_id}/reactivate')
    async def reactivate_share_link(
        share_id: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Reactivate a revoked link. Does not extend its expiry."""
        link = await lifecycle.reactivate(
            share_id, actor_id=identity.user_id, is_admin=identity.is_admin,
        )
        return _payload(link)

    @router.get('/api/v1/share-links/{share_id}/access-logs')
    async def list_access_logs(
        share_id: str,
        page: int = 1,
        page_size: int = DEFAULT_LOG_PAGE_SIZE,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        result = await query.access_logs(
            share_id,
            page=page,
            page_size=page_size,
            actor_id=identity.user_id,
            is_admin=identity.is_admin,
        )
        return _page_payload(result, [e.to_dict() for e in result.items])

    @router.get('/api/v1/share-links/{share_id}/stats')
    async def share_link_stats(
        share_id: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        stats = await query.stats(
            share_id, actor_id=identity.user_id, is_admin=identity.is_admin,
        )
        return stats.to_dict()

    @router.get('/api/v1/assets/{asset_id}/share-links')
    async def list_asset_share_links(
        asset_id: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        links = await query.list_for_asset(
            asset_id, actor_id=identity.user_id, is_admin=identity.is_admin,
        )
        return {'asset_id': asset_id, 'share_links': [_payload(l) for l in links]}

    return router
