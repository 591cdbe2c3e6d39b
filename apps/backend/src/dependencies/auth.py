from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from core.security import decode_token


# --------------------------------------------------------------------------- #
# Common constants / helpers
# --------------------------------------------------------------------------- #
LOGGER = logging.getLogger(__name__)
BEARER = "Bearer"


def unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    """Return the canonical 401 response."""
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": BEARER},
    )


# Tokens are issued by the external auth service; this API only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


# --------------------------------------------------------------------------- #
# The dependency
# --------------------------------------------------------------------------- #
async def get_current_owner(
    token: Annotated[str, Depends(oauth2_scheme)],
) -> str:
    """
    Resolve the owner id of the caller from a JWT.

    Checkpoints are keyed by this value, so two tokens with the same `sub`
    see the same sessions.

    Raises
    ------
    HTTPException(401)
        If the token is missing, malformed, expired, or has no subject.
    """
    token_data = decode_token(token)

    sub = getattr(token_data, "sub", None)
    if not sub or not sub.strip():
        LOGGER.debug("Token missing 'sub' claim")
        raise unauthorized()

    return sub.strip()


CurrentOwner = Annotated[str, Depends(get_current_owner)]
