from __future__ import annotations

from typing import Any, Awaitable, Callable, List, Optional

import structlog

from medrecords.core.settings import settings
from medrecords.infrastructure.supabase.client import get_async_supabase_client

logger = structlog.get_logger(__name__)


class SupabaseObjectStore:
    """Supabase Storage bucket used as the Object Store for record scans."""

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        client_factory: Callable[[], Awaitable[Any]] = get_async_supabase_client,
    ):
        self.bucket_name = bucket_name or settings.MEDICAL_RECORDS_BUCKET
        self._client_factory = client_factory
        self._client = None

    async def get_client(self):
        if self._client is None:
            self._client = await self._client_factory()
        return self._client

    async def _bucket(self):
        client = await self.get_client()
        return client.storage.from_(self.bucket_name)

    async def put(self, path: str, data: bytes, content_type: str) -> None:
        bucket = await self._bucket()
        # Paths are unique per call; never overwrite an existing object.
        await bucket.upload(
            path,
            data,
            file_options={"content-type": content_type, "upsert": "false"},
        )

    async def resolve_public_url(self, path: str) -> str:
        bucket = await self._bucket()
        url = await bucket.get_public_url(path)
        return str(url or "").rstrip("?")

    async def remove(self, paths: List[str]) -> None:
        if not paths:
            return
        bucket = await self._bucket()
        await bucket.remove(list(paths))
        logger.info("storage_objects_removed", bucket=self.bucket_name, count=len(paths))
