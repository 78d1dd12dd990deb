from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

from medrecords.core.settings import settings
from medrecords.infrastructure.supabase.client import get_async_supabase_client


class SupabaseRecordStore:
    """PostgREST tables used as the Record Store."""

    def __init__(self, client_factory: Callable[[], Awaitable[Any]] = get_async_supabase_client):
        self._client_factory = client_factory
        self._client = None

    async def get_client(self):
        if self._client is None:
            self._client = await self._client_factory()
        return self._client

    async def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        client = await self.get_client()
        res = await client.table(collection).insert(document).execute()
        rows = res.data or []
        return rows[0] if rows else {}

    async def ping(self, table: Optional[str] = None) -> int:
        """One-row read used by the readiness probe; returns the rows seen."""
        client = await self.get_client()
        res = await client.table(table or settings.PATIENTS_TABLE).select("id").limit(1).execute()
        return len(res.data or [])
