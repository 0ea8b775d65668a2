"""Bearer-credential checks for operator-only surfaces."""

import logging
import secrets
from typing import Annotated

from fastapi import Header, HTTPException

from chatdesk.config import get_settings
from chatdesk.errors import AuthorizationError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


def extract_bearer(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX) :].strip()
    return token or None


def verify_operator_token(token: str | None, valid_tokens: list[str] | None = None) -> None:
    """Check an operator credential.

    Args:
        token: The presented token.
        valid_tokens: Accepted tokens. Defaults to the configured tokens.

    Raises:
        AuthorizationError: If the token is missing or not accepted.
    """
    if valid_tokens is None:
        valid_tokens = get_settings().operator_tokens
    if not token:
        raise AuthorizationError("Missing operator credential")
    # Compare against every token so timing does not reveal which one matched
    matched = False
    for candidate in valid_tokens:
        if secrets.compare_digest(token.encode(), candidate.encode()):
            matched = True
    if not matched:
        raise AuthorizationError("Invalid operator credential")


async def require_operator(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """FastAPI dependency guarding operator endpoints.

    Returns:
        The accepted token.

    Raises:
        HTTPException: 401 if the credential is missing or invalid.
    """
    token = extract_bearer(authorization)
    try:
        verify_operator_token(token)
    except AuthorizationError as e:
        logger.warning("Rejected operator request: %s", e)
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    return token
