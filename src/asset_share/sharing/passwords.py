"""Argon2id password hashing for protected share links.

Only the encoded Argon2 hash is ever stored. Hashing and verification are
slow and memory-hard, so both run in a worker thread to keep
the event loop free for other access attempts. Verification compares in
constant time inside argon2-cffi.

Backend failures (hashing errors, corrupt stored hashes) are reported as
``ShareUnavailable``; a plain mismatch is just ``False``.
"""

from __future__ import annotations

import asyncio
import logging

from argon2 import PasswordHasher
from argon2.exceptions import (
    HashingError,
    InvalidHashError,
    VerificationError,
    VerifyMismatchError,
)

from asset_share.observability.metrics import PASSWORD_HASH_SECONDS

from .errors import ShareUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIME_COST = 2
DEFAULT_MEMORY_COST = 65536  # KiB
DEFAULT_PARALLELISM = 1


class SharePasswordHasher:
    """Async facade over ``argon2.PasswordHasher``."""

    def __init__(
        self,
        *,
        time_cost: int = DEFAULT_TIME_COST,
        memory_cost: int = DEFAULT_MEMORY_COST,
        parallelism: int = DEFAULT_PARALLELISM,
    ) -> None:
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
        )

    async def hash(self, password: str) -> str:
        try:
            with PASSWORD_HASH_SECONDS.labels(operation='hash').time():
                return await asyncio.to_thread(self._hasher.hash, password)
        except HashingError as exc:
            logger.error('Password hashing failed: %s', exc)
            raise ShareUnavailable('Password hashing backend failed.') from exc

    async def verify(self, password_hash: str, password: str) -> bool:
        with PASSWORD_HASH_SECONDS.labels(operation='verify').time():
            return await asyncio.to_thread(self._verify_sync, password_hash, password)

    def _verify_sync(self, password_hash: str, password: str) -> bool:
        try:
            return self._hasher.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError) as exc:
            logger.error('Stored password hash could not be verified: %s', exc)
            raise ShareUnavailable('Password verification backend failed.') from exc
