from __future__ import annotations

from typing import Optional

from fastapi import Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

bearer_auth = HTTPBearer(
    auto_error=False,
    scheme_name="BearerAuth",
    description="Supabase access token of the signed-in clinician.",
)


async def get_access_token(
    bearer_credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_auth),
) -> Optional[str]:
    """
    Returns the raw bearer token, or None.

    A missing token is not rejected here: the submission pipeline turns it
    into an auth failure at its identity gate.
    """
    if not bearer_credentials or str(bearer_credentials.scheme or "").lower() != "bearer":
        return None
    return (bearer_credentials.credentials or "").strip() or None
