"""FastAPI authentication dependencies."""

from __future__ import annotations

import uuid

import jwt
from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from civicquest.auth.jwt import verify_token

_bearer = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> uuid.UUID:
    """
    Extract and verify the bearer JWT, return the user's UUID.

    The profile itself is not loaded here: POST /profiles runs before one
    exists. Raises 401 on failure.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    return uuid.UUID(str(payload["sub"]))
