"""Supabase client error hierarchy and its mapping onto share errors.

These errors never carry httpx.Response objects or request headers, so
they are safe to log. Repositories translate them at their boundary with
``translate_errors`` so engine code only ever sees ``ShareError``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import httpx

from asset_share.sharing.errors import ShareConflict, ShareUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SupabaseError(Exception):
    """A failed PostgREST request."""

    status_code: int
    message: str
    code: str | None = None
    details: str | None = None
    hint: str | None = None

    def __str__(self) -> str:
        bits: list[str] = [f"SupabaseError(status={self.status_code})", self.message]
        if self.code:
            bits.append(f"code={self.code}")
        if self.details:
            bits.append(f"details={self.details}")
        return " ".join(bits)


class SupabaseAuthError(SupabaseError):
    """401/403: bad service key or row-level security rejection."""


class SupabaseNotFoundError(SupabaseError):
    """404: missing table, view or RPC function."""


class SupabaseConflictError(SupabaseError):
    """409: unique violation (e.g. duplicate share token)."""


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """Re-raise Supabase and transport failures as share errors.

    Unique violations become ``ShareConflict``; everything else becomes
    ``ShareUnavailable`` so callers may retry.
    """
    try:
        yield
    except SupabaseConflictError as exc:
        raise ShareConflict(exc.message) from exc
    except SupabaseError as exc:
        logger.error("Supabase %s failed: %s", operation, exc)
        raise ShareUnavailable(f"Storage unavailable during {operation}.") from exc
    except httpx.HTTPError as exc:
        logger.error("Supabase %s transport error: %s", operation, type(exc).__name__)
        raise ShareUnavailable(f"Storage unavailable during {operation}.") from exc
