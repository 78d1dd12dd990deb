from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import structlog

from medrecords.domain.records.models import IdentityContext
from medrecords.infrastructure.supabase.client import get_async_supabase_client

logger = structlog.get_logger(__name__)


class SupabaseIdentityProvider:
    """
    Resolves the caller from a Supabase access token.

    The token is checked against Supabase Auth on every call, so an expired or
    revoked session is seen at submit time rather than when the form opened.
    """

    def __init__(
        self,
        access_token: Optional[str],
        client_factory: Callable[[], Awaitable[Any]] = get_async_supabase_client,
    ):
        self.access_token = str(access_token or "").strip() or None
        self._client_factory = client_factory

    async def current_identity(self) -> Optional[IdentityContext]:
        if not self.access_token:
            return None
        client = await self._client_factory()
        response = await client.auth.get_user(self.access_token)
        user = getattr(response, "user", None) if response is not None else None
        if user is None or not getattr(user, "id", None):
            logger.info("identity_not_found")
            return None
        return IdentityContext(subject_id=str(user.id), email=getattr(user, "email", None))
