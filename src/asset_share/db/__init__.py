"""Supabase persistence for share links, assets and audit events."""

from .asset_repo import SupabaseAssetStore, SupabaseUserDirectory
from .audit_emitter import SupabaseShareAuditEmitter
from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)
from .share_repo import SupabaseShareLinkRepository
from .supabase_client import PostgrestFilter, SupabaseClient

__all__ = [
    "PostgrestFilter",
    "SupabaseAssetStore",
    "SupabaseAuthError",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseError",
    "SupabaseNotFoundError",
    "SupabaseShareAuditEmitter",
    "SupabaseShareLinkRepository",
    "SupabaseUserDirectory",
]
