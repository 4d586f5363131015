"""Request-scoped middleware for the share-link API.

Added to the app in reverse order of execution (see ``create_app``):

  RequestIdMiddleware -> RequestLoggingMiddleware -> MetricsMiddleware

Paths are normalized before they reach a metric label or a log line, so
share tokens and link ids never leave the process.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.datastructures import MutableHeaders
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .logging import get_logger, request_id_ctx
from .metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_FLIGHT,
    HTTP_REQUESTS_TOTAL,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9\-]{8,128}$")

_PATH_TEMPLATES = (
    (re.compile(r"^/api/v1/s/[^/]+"), "/api/v1/s/{token}"),
    (re.compile(r"^/api/v1/share-links/[^/]+"), "/api/v1/share-links/{id}"),
    (re.compile(r"^/api/v1/assets/[^/]+"), "/api/v1/assets/{asset_id}"),
)


def normalize_path(path: str) -> str:
    """Route template for ``path``; unknown paths pass through unchanged."""
    for pattern, template in _PATH_TEMPLATES:
        path, n = pattern.subn(template, path, count=1)
        if n:
            break
    return path


def _accept_request_id(raw: str | None) -> str:
    if raw and _VALID_REQUEST_ID.match(raw):
        return raw
    return str(uuid.uuid4())


class RequestIdMiddleware:
    """Bind a request id for the lifetime of each HTTP request.

    A well-formed incoming ``X-Request-ID`` is reused; anything else is
    replaced. The id is exposed as ``request.state.request_id``, through
    ``request_id_ctx`` for log lines, and echoed on the response.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        rid = _accept_request_id(Request(scope).headers.get(REQUEST_ID_HEADER))
        scope.setdefault("state", {})["request_id"] = rid

        async def send_with_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = rid
            await send(message)

        token = request_id_ctx.set(rid)
        try:
            await self.app(scope, receive, send_with_id)
        finally:
            request_id_ctx.reset(token)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        method = request.method
        path = normalize_path(request.url.path)
        status = "500"

        HTTP_REQUESTS_IN_FLIGHT.inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            HTTP_REQUESTS_IN_FLIGHT.dec()
            HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status=status).inc()
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(
                time.perf_counter() - start,
            )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One ``request_completed`` line per request; 5xx at error level."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        log = logger.error if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            method=request.method,
            path=normalize_path(request.url.path),
            status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return response
