"""Supabase-backed asset and user lookups.

Read-only views onto tables owned by the surrounding asset-management
system. Share links reference assets and creators by id only; these
lookups resolve display data for the public access response.
"""

from __future__ import annotations

from asset_share.external import AssetInfo, UserInfo

from .errors import translate_errors
from .supabase_client import SupabaseClient


class SupabaseAssetStore:
    """AssetStore backed by ``public.assets``."""

    TABLE = "public.assets"
    COLUMNS = "id,name,content_type,asset_type,file_key"

    def __init__(self, client: SupabaseClient, table: str | None = None) -> None:
        self._client = client
        self._table = table or self.TABLE

    async def get_asset(self, asset_id: str) -> AssetInfo | None:
        with translate_errors("get asset"):
            rows = await self._client.select(
                self._table,
                filters={"id": ("eq", asset_id)},
                columns=self.COLUMNS,
                limit=1,
            )
        if not rows:
            return None
        row = rows[0]
        return AssetInfo(
            id=str(row["id"]),
            name=row.get("name") or "",
            content_type=row.get("content_type"),
            asset_type=row.get("asset_type"),
            file_key=row.get("file_key"),
        )


class SupabaseUserDirectory:
    """UserDirectory backed by ``public.users``."""

    TABLE = "public.users"

    def __init__(self, client: SupabaseClient, table: str | None = None) -> None:
        self._client = client
        self._table = table or self.TABLE

    async def get_user(self, user_id: str) -> UserInfo | None:
        with translate_errors("get user"):
            rows = await self._client.select(
                self._table,
                filters={"id": ("eq", user_id)},
                columns="id,name,email",
                limit=1,
            )
        if not rows:
            return None
        row = rows[0]
        return UserInfo(id=str(row["id"]), name=row.get("name"), email=row.get("email"))
