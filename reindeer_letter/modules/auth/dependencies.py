"""Authentication dependencies for the API.

Provides the Principal for protecting routes. The letter core trusts the
id carried by a valid access token as given, so no database lookup happens
here.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from reindeer_letter.core.errors import UnauthorizedError
from reindeer_letter.core.security import ACCESS_TOKEN_TYPE, decode_token
from reindeer_letter.modules.letters.access import Principal

bearer_scheme = HTTPBearer(auto_error=False)


def principal_from_token(token: str) -> Optional[Principal]:
    """Decode an access token into a Principal, or None if invalid."""
    payload = decode_token(token, expected_type=ACCESS_TOKEN_TYPE)
    if payload is None:
        return None
    try:
        return Principal(id=int(payload["sub"]), email=payload.get("email", ""))
    except (TypeError, ValueError):
        return None


async def get_current_principal_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Principal]:
    """
    Optional authentication dependency.

    Returns the principal if a valid bearer token was sent, None otherwise.

    Usage:
        @router.post("/letters")
        async def create(principal: Principal | None = Depends(get_current_principal_optional)):
            ...
    """
    if credentials is None:
        return None
    return principal_from_token(credentials.credentials)


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """
    FastAPI dependency to get the authenticated principal.

    Raises:
        UnauthorizedError: 401 if no token, or the token is invalid/expired
    """
    if credentials is None:
        raise UnauthorizedError("Not authenticated. Please log in.")

    principal = principal_from_token(credentials.credentials)
    if principal is None:
        raise UnauthorizedError("Session expired or invalid. Please log in again.")

    return principal
