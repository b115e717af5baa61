# API Security - Session token guarding the vault API
#
# The token is issued at startup and handed to the local frontend through
# GET /api/session. Wiping the vault rotates it, so a client that held the
# old token has to fetch the new one before touching the fresh vault.

import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

logger = logging.getLogger(__name__)


class SessionToken:
    """One URL-safe 256-bit token per vault lifetime."""

    def __init__(self):
        self._value: Optional[str] = None

    @property
    def issued(self) -> bool:
        return self._value is not None

    def issue(self) -> str:
        self._value = secrets.token_urlsafe(32)
        return self._value

    def value(self) -> str:
        if self._value is None:
            raise RuntimeError("Session token not initialized. Call initialize_session_token() first.")
        return self._value

    def matches(self, candidate: str) -> bool:
        return self._value is not None and secrets.compare_digest(candidate, self._value)


_session = SessionToken()


def initialize_session_token() -> str:
    """Issue the token for this backend instance."""
    return _session.issue()


def rotate_session_token() -> str:
    """
    Replace the token after the vault is wiped.

    Returns:
        The new token; the previous one is rejected from now on
    """
    token = _session.issue()
    logger.info("Session token rotated")
    return token


def get_session_token() -> str:
    return _session.value()


async def verify_session_token(x_session_token: Optional[str] = Header(None)) -> str:
    """
    FastAPI dependency checking the X-Session-Token header.

    Raises:
        HTTPException: 503 before startup, 401 if missing or stale
    """
    if not _session.issued:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session token not initialized"
        )

    if x_session_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Session-Token header"
        )

    if not _session.matches(x_session_token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token"
        )

    return x_session_token
