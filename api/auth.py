"""
Caller identity for the API.

Callers authenticate with the Supabase access token issued to the frontend:
`Authorization: Bearer <token>`. The token is verified by Supabase Auth and
the user ID becomes the caller ID the services authorize against.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from repositories.client import get_supabase

logger = logging.getLogger(__name__)

# Missing credentials are reported as 401 below rather than by the scheme.
auth_scheme = HTTPBearer(auto_error=False, description="Supabase access token required")


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
) -> UUID:
    """
    FastAPI dependency resolving the authenticated caller.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        response = get_supabase().auth.get_user(credentials.credentials)
    except Exception as e:
        logger.info("Rejected access token", extra={"error": str(e)})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    user = getattr(response, "user", None)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return UUID(str(user.id))


__all__ = ["auth_scheme", "get_current_user_id"]
