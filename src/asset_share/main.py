"""Share-link engine FastAPI application factory.

The create_app() factory is the single entry point for building the ASGI
application. It wires middleware (request-ID, logging, metrics, CORS, auth
guard), the management and public routers, and injects repository and
collaborator implementations via dependency injection.

Usage:
    # Local development (in-memory storage)
    from asset_share import create_app, ShareEngineSettings
    app = create_app(ShareEngineSettings())
    # The asset store starts empty; POST /api/v1/share-links answers
    # 404 asset_not_found until assets are registered or injected:
    app.state.deps.asset_store.add(AssetInfo(id="asset_1", name="Report.pdf"))

    # Non-local (Supabase repos built from settings)
    app = create_app(ShareEngineSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, share_repo=repo, clock=FixedClock(), ...)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .clock import Clock, SystemClock
from .external import (
    AssetStore,
    InMemoryAssetStore,
    InMemoryUserDirectory,
    UserDirectory,
)
from .observability.logging import configure_logging
from .observability.metrics import metrics_text
from .observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)
from .security.auth_guard import AuthGuardMiddleware
from .security.token_verify import TokenVerifier, create_token_verifier
from .settings import ShareEngineSettings
from .sharing.access import create_share_access_router
from .sharing.audit import LoggingShareAuditEmitter, ShareAuditEmitter
from .sharing.evaluator import AccessEvaluator
from .sharing.issuer import TokenIssuer
from .sharing.lifecycle import LifecycleManager
from .sharing.passwords import SharePasswordHasher
from .sharing.query import AdminQueryEngine
from .sharing.recorder import AccessRecorder
from .sharing.repository import InMemoryShareLinkRepository, ShareLinkRepository
from .sharing.routes import create_share_link_router, register_share_error_handlers

logger = logging.getLogger(__name__)

# HS256 secret used only when a local run configures no JWT source.
LOCAL_DEV_JWT_SECRET = "local-dev-only-share-engine-jwt-secret"


@dataclass(frozen=True)
class AppDependencies:
    """Container for all injected collaborators and engine components.

    Stored on ``app.state.deps`` so tests and route handlers can reach them.
    """

    share_repo: ShareLinkRepository
    asset_store: AssetStore
    user_directory: UserDirectory | None
    audit_emitter: ShareAuditEmitter
    clock: Clock
    hasher: SharePasswordHasher
    token_verifier: TokenVerifier
    issuer: TokenIssuer
    evaluator: AccessEvaluator
    recorder: AccessRecorder
    lifecycle: LifecycleManager
    query: AdminQueryEngine


def _build_supabase_backends(
    settings: ShareEngineSettings,
) -> tuple[ShareLinkRepository, AssetStore, UserDirectory, ShareAuditEmitter]:
    from .db import (
        SupabaseAssetStore,
        SupabaseClient,
        SupabaseShareAuditEmitter,
        SupabaseShareLinkRepository,
        SupabaseUserDirectory,
    )

    client = SupabaseClient(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
    )
    return (
        SupabaseShareLinkRepository(client),
        SupabaseAssetStore(client),
        SupabaseUserDirectory(client),
        SupabaseShareAuditEmitter(client),
    )


def _build_token_verifier(settings: ShareEngineSettings) -> TokenVerifier:
    secret = settings.jwt_secret
    if not secret and not settings.jwks_url and settings.is_local:
        logger.warning("No JWT source configured; using the local development secret")
        secret = LOCAL_DEV_JWT_SECRET
    return create_token_verifier(
        jwks_url=settings.jwks_url or None,
        jwt_secret=secret or None,
        audience=settings.jwt_audience,
    )


def create_app(
    settings: ShareEngineSettings | None = None,
    *,
    share_repo: ShareLinkRepository | None = None,
    asset_store: AssetStore | None = None,
    user_directory: UserDirectory | None = None,
    audit_emitter: ShareAuditEmitter | None = None,
    clock: Clock | None = None,
    token_verifier: TokenVerifier | None = None,
    hasher: SharePasswordHasher | None = None,
) -> FastAPI:
    """Create a configured share-link FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        share_repo..hasher: Collaborator overrides. When None, local mode
            uses in-memory implementations and non-local mode builds
            Supabase-backed ones from ``settings``.

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = ShareEngineSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Share engine settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    configure_logging(
        level=settings.log_level,
        json_output=settings.log_format == "json",
    )

    if settings.is_local:
        asset_store = asset_store or InMemoryAssetStore()
        user_directory = user_directory or InMemoryUserDirectory()
        share_repo = share_repo or InMemoryShareLinkRepository(
            asset_store=asset_store, user_directory=user_directory,
        )
        audit_emitter = audit_emitter or LoggingShareAuditEmitter()
    elif None in (share_repo, asset_store, audit_emitter):
        sb_repo, sb_assets, sb_users, sb_audit = _build_supabase_backends(settings)
        share_repo = share_repo or sb_repo
        asset_store = asset_store or sb_assets
        user_directory = user_directory or sb_users
        audit_emitter = audit_emitter or sb_audit

    clock = clock or SystemClock()
    hasher = hasher or SharePasswordHasher(
        time_cost=settings.argon2_time_cost,
        memory_cost=settings.argon2_memory_cost,
        parallelism=settings.argon2_parallelism,
    )
    token_verifier = token_verifier or _build_token_verifier(settings)

    lifecycle = LifecycleManager(share_repo, hasher, clock, audit=audit_emitter)
    deps = AppDependencies(
        share_repo=share_repo,
        asset_store=asset_store,
        user_directory=user_directory,
        audit_emitter=audit_emitter,
        clock=clock,
        hasher=hasher,
        token_verifier=token_verifier,
        issuer=TokenIssuer(
            share_repo, hasher, clock, asset_store=asset_store, audit=audit_emitter,
        ),
        evaluator=AccessEvaluator(share_repo, hasher, clock),
        recorder=AccessRecorder(share_repo, clock),
        lifecycle=lifecycle,
        query=AdminQueryEngine(share_repo, clock, lifecycle),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Share engine startup (environment=%s)", settings.environment)
        yield
        logger.info("Share engine shutdown")

    app = FastAPI(
        title="Asset Share",
        description="Share-link issuance, access evaluation and administration",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings

    # ── Middleware stack (last added runs first) ─────────────────
    # Order of execution: RequestID -> Logging -> Metrics -> CORS -> AuthGuard

    app.add_middleware(AuthGuardMiddleware, token_verifier=token_verifier)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    register_share_error_handlers(app)
    app.include_router(
        create_share_link_router(
            deps.issuer,
            deps.lifecycle,
            deps.query,
            public_base_url=settings.public_base_url,
        )
    )
    app.include_router(
        create_share_access_router(
            deps.evaluator,
            deps.recorder,
            deps.asset_store,
            audit=audit_emitter,
        )
    )

    return app


# For uvicorn, use --factory flag:
#   uvicorn asset_share.main:create_app --factory
# This avoids executing create_app() at import time.
