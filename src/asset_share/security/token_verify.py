"""Bearer JWT verification for share-link management routes.

The identity provider is external; this module only verifies the access
token it issued and extracts who the caller is. The engine stores nothing
beyond ``AuthIdentity.user_id`` (as a link's ``created_by_id``).

Key sources:
  - JWKS endpoint (RS256) when an identity-provider URL is configured.
  - Static shared secret (HS256) for local development and tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import jwt
from jwt import PyJWKClient, PyJWKClientError
from starlette.requests import Request

# ── Constants ─────────────────────────────────────────────────────────

DEFAULT_AUDIENCE = 'authenticated'
ADMIN_ROLE = 'admin'
JWKS_CACHE_TTL_SECONDS = 300
BEARER_PREFIX = 'Bearer '

# ── Types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AuthIdentity:
    """Verified identity extracted from a valid JWT.

    Attributes:
        user_id: Opaque user id (``sub`` claim).
        email: Normalized email address, may be empty.
        role: ``authenticated`` or ``admin``.
        raw_claims: Full decoded payload.
    """

    user_id: str
    email: str = ''
    role: str = 'authenticated'
    raw_claims: dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


class TokenVerificationError(Exception):
    """Raised when token verification fails."""

    def __init__(self, code: str, detail: str = '') -> None:
        self.code = code
        self.detail = detail
        super().__init__(f'{code}: {detail}' if detail else code)


# ── Key providers ────────────────────────────────────────────────────


class KeyProvider(Protocol):
    def get_signing_key(self, token: str) -> Any: ...


class JWKSKeyProvider:
    """Signing keys from a JWKS endpoint, cached by PyJWKClient."""

    def __init__(self, jwks_url: str, cache_ttl: int = JWKS_CACHE_TTL_SECONDS) -> None:
        self._client = PyJWKClient(jwks_url, cache_jwk_set=True, lifespan=cache_ttl)

    def get_signing_key(self, token: str) -> Any:
        try:
            return self._client.get_signing_key_from_jwt(token).key
        except PyJWKClientError as exc:
            raise TokenVerificationError('jwks_fetch_error', str(exc)) from exc


class StaticKeyProvider:
    """Static HS256 secret (local development only)."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def get_signing_key(self, token: str) -> str:
        return self._secret


# ── Token Verifier ───────────────────────────────────────────────────


class TokenVerifier:
    """Verifies JWTs and extracts identity claims."""

    def __init__(
        self,
        key_provider: KeyProvider,
        audience: str = DEFAULT_AUDIENCE,
        algorithms: list[str] | None = None,
    ) -> None:
        self._key_provider = key_provider
        self._audience = audience
        self._algorithms = algorithms or ['RS256']

    def verify(self, token: str) -> AuthIdentity:
        """Verify ``token`` and return the identity.

        Raises:
            TokenVerificationError: On any verification failure.
        """
        if not token or not token.strip():
            raise TokenVerificationError('empty_token')

        key = self._key_provider.get_signing_key(token)
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=self._algorithms,
                audience=self._audience,
                options={'require': ['sub', 'exp', 'aud']},
            )
        except jwt.ExpiredSignatureError:
            raise TokenVerificationError('token_expired')
        except jwt.InvalidAudienceError:
            raise TokenVerificationError('invalid_audience', f'expected {self._audience}')
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError('invalid_token', str(exc))

        user_id = claims.get('sub')
        if not user_id:
            raise TokenVerificationError('missing_sub_claim')

        email = claims.get('email') or ''
        # Operator privileges come from app_metadata.role when present.
        app_meta = claims.get('app_metadata') or {}
        role = app_meta.get('role') or claims.get('role') or 'authenticated'

        return AuthIdentity(
            user_id=str(user_id),
            email=email.lower(),
            role=role,
            raw_claims=claims,
        )


# ── Helpers ──────────────────────────────────────────────────────────


def extract_bearer_token(request: Request) -> str | None:
    """Bearer token from the Authorization header, if any."""
    auth_header = request.headers.get('authorization', '')
    if auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip()
    return None


def create_token_verifier(
    *,
    jwks_url: str | None = None,
    jwt_secret: str | None = None,
    audience: str = DEFAULT_AUDIENCE,
) -> TokenVerifier:
    """Prefer JWKS (RS256); fall back to a static HS256 secret.

    Raises:
        ValueError: If neither source is configured.
    """
    if jwks_url:
        return TokenVerifier(JWKSKeyProvider(jwks_url), audience, ['RS256'])
    if jwt_secret:
        return TokenVerifier(StaticKeyProvider(jwt_secret), audience, ['HS256'])
    raise ValueError('Either jwks_url (RS256) or jwt_secret (HS256) is required')
