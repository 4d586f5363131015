"""Share engine configuration settings.

ShareEngineSettings is the single configuration object accepted by
create_app(). It is a plain dataclass (not env-coupled) so tests can inject
config without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

VALID_LOG_FORMATS = frozenset({"json", "console"})
MIN_JWT_SECRET_LENGTH = 32

DEFAULT_PUBLIC_BASE_URL = "http://localhost:8000"
DEFAULT_JWT_AUDIENCE = "authenticated"
DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "http://localhost:5173",
    "http://localhost:3000",
)
DEFAULT_ARGON2_TIME_COST = 2
DEFAULT_ARGON2_MEMORY_COST = 65536  # KiB
DEFAULT_ARGON2_PARALLELISM = 1


def _env_int(env: dict[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class ShareEngineSettings:
    """Configuration for the share-link FastAPI application.

    All fields have sensible defaults for local development.
    Non-local environments must supply Supabase credentials and a JWT
    verification source.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    """Origin used to build share URLs ({base}/s/{token})."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL (e.g. https://xyz.supabase.co)."""

    supabase_service_role_key: str = ""
    """Supabase service-role key for PostgREST calls. Never log this."""

    # ── Auth ───────────────────────────────────────────────────────
    jwt_secret: str = ""
    """HS256 secret for operator bearer tokens."""

    jwks_url: str = ""
    """JWKS endpoint for RS256 operator tokens. Preferred over jwt_secret."""

    jwt_audience: str = DEFAULT_JWT_AUDIENCE

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS

    # ── Password hashing (Argon2id) ────────────────────────────────
    argon2_time_cost: int = DEFAULT_ARGON2_TIME_COST
    argon2_memory_cost: int = DEFAULT_ARGON2_MEMORY_COST
    argon2_parallelism: int = DEFAULT_ARGON2_PARALLELISM

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.public_base_url:
            errors.append("public_base_url is required")
        if self.log_format not in VALID_LOG_FORMATS:
            errors.append(
                f"log_format must be one of {sorted(VALID_LOG_FORMATS)}, got {self.log_format!r}"
            )
        if self.argon2_time_cost < 1:
            errors.append("argon2_time_cost must be >= 1")
        if self.argon2_memory_cost < 8 * self.argon2_parallelism:
            errors.append("argon2_memory_cost must be >= 8 * argon2_parallelism")
        if self.argon2_parallelism < 1:
            errors.append("argon2_parallelism must be >= 1")

        if not self.is_local:
            if not self.supabase_url:
                errors.append(f"{self.environment}: supabase_url is required")
            if not self.supabase_service_role_key:
                errors.append(
                    f"{self.environment}: supabase_service_role_key is required"
                )
            if not self.jwks_url and len(self.jwt_secret) < MIN_JWT_SECRET_LENGTH:
                errors.append(
                    f"{self.environment}: jwks_url or a jwt_secret of >= "
                    f"{MIN_JWT_SECRET_LENGTH} characters is required"
                )
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ShareEngineSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct ShareEngineSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = (
            tuple(o.strip() for o in cors_raw.split(",") if o.strip())
            if cors_raw
            else DEFAULT_CORS_ORIGINS
        )

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            public_base_url=env.get("PUBLIC_BASE_URL", DEFAULT_PUBLIC_BASE_URL),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            jwt_secret=env.get("JWT_SECRET", ""),
            jwks_url=env.get("JWKS_URL", ""),
            jwt_audience=env.get("JWT_AUDIENCE", DEFAULT_JWT_AUDIENCE),
            cors_origins=cors,
            argon2_time_cost=_env_int(env, "ARGON2_TIME_COST", DEFAULT_ARGON2_TIME_COST),
            argon2_memory_cost=_env_int(env, "ARGON2_MEMORY_COST", DEFAULT_ARGON2_MEMORY_COST),
            argon2_parallelism=_env_int(env, "ARGON2_PARALLELISM", DEFAULT_ARGON2_PARALLELISM),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_format=env.get("LOG_FORMAT", "json").lower(),
        )
