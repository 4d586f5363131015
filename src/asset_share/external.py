"""Narrow interfaces to collaborators outside the engine.

  - ``AssetStore`` resolves an asset id to its name, type and file location.
    The engine never reads asset bytes.
  - ``UserDirectory`` resolves an opaque creator id to a display name and
    email for operator search.

In-memory implementations back local development and tests; the Supabase
asset store lives in ``asset_share.db.asset_repo``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class AssetInfo:
    id: str
    name: str
    content_type: str | None = None
    asset_type: str | None = None
    file_key: str | None = None

    @property
    def has_file(self) -> bool:
        return bool(self.file_key)


@dataclass(frozen=True, slots=True)
class UserInfo:
    id: str
    name: str | None = None
    email: str | None = None


@runtime_checkable
class AssetStore(Protocol):
    async def get_asset(self, asset_id: str) -> AssetInfo | None: ...


@runtime_checkable
class UserDirectory(Protocol):
    async def get_user(self, user_id: str) -> UserInfo | None: ...


class InMemoryAssetStore:
    def __init__(self, assets: list[AssetInfo] | None = None) -> None:
        self._assets: dict[str, AssetInfo] = {a.id: a for a in assets or []}

    def add(self, asset: AssetInfo) -> AssetInfo:
        self._assets[asset.id] = asset
        return asset

    async def get_asset(self, asset_id: str) -> AssetInfo | None:
        return self._assets.get(asset_id)


class InMemoryUserDirectory:
    def __init__(self, users: list[UserInfo] | None = None) -> None:
        self._users: dict[str, UserInfo] = {u.id: u for u in users or []}

    def add(self, user: UserInfo) -> UserInfo:
        self._users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> UserInfo | None:
        return self._users.get(user_id)
