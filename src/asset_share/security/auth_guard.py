"""Auth guard for share-link management routes.

Only operator routes require authentication. The public access route
(``/api/v1/s/{token}``) is reachable anonymously; its only credential is
the share token itself.
"""

from __future__ import annotations

from fastapi import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .token_verify import (
    AuthIdentity,
    TokenVerificationError,
    TokenVerifier,
    extract_bearer_token,
)

# Path prefixes that require a verified identity.
DEFAULT_PROTECTED_PREFIXES: tuple[str, ...] = (
    '/api/v1/share-links',
    '/api/v1/assets',
)


def _unauthorized(code: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={'error': 'unauthorized', 'code': code, 'detail': detail},
        headers={'WWW-Authenticate': 'Bearer'},
    )


class AuthGuardMiddleware(BaseHTTPMiddleware):
    """Verify bearer tokens and set ``request.state.auth_identity``.

    Protected paths without valid credentials get a 401. Other paths pass
    through; a valid token there still populates the identity.
    """

    def __init__(
        self,
        app,
        token_verifier: TokenVerifier,
        protected_prefixes: tuple[str, ...] = DEFAULT_PROTECTED_PREFIXES,
    ) -> None:
        super().__init__(app)
        self._verifier = token_verifier
        self._protected_prefixes = protected_prefixes

    def _is_protected(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self._protected_prefixes)

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.auth_identity = None
        protected = self._is_protected(request.url.path)

        if request.method == 'OPTIONS':
            return await call_next(request)

        token = extract_bearer_token(request)
        if token:
            try:
                request.state.auth_identity = self._verifier.verify(token)
            except TokenVerificationError as exc:
                if protected:
                    return _unauthorized(exc.code, exc.detail)
        elif protected:
            return _unauthorized('no_credentials', 'Authentication required')

        return await call_next(request)


def get_auth_identity(request: Request) -> AuthIdentity:
    """FastAPI dependency returning the verified caller.

    Raises:
        HTTPException: 401 if the request carries no verified identity.
    """
    identity: AuthIdentity | None = getattr(request.state, 'auth_identity', None)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={
                'error': 'unauthorized',
                'code': 'no_credentials',
                'detail': 'Authentication required',
            },
            headers={'WWW-Authenticate': 'Bearer'},
        )
    return identity
