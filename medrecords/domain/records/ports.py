from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from medrecords.domain.records.models import IdentityContext, SubmissionProgress


class IdentityProviderPort(Protocol):
    async def current_identity(self) -> Optional[IdentityContext]: ...


class ObjectStorePort(Protocol):
    async def put(self, path: str, data: bytes, content_type: str) -> None: ...

    async def resolve_public_url(self, path: str) -> str: ...

    async def remove(self, paths: List[str]) -> None: ...


class RecordStorePort(Protocol):
    async def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]: ...


class ProgressListener(Protocol):
    def __call__(self, progress: SubmissionProgress) -> None: ...
