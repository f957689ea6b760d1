"""
Management sessions for the Event Check-in Application

A session authorizes management of exactly one event. Clients hold the
bearer token ``"{id}.{secret}"``; only the SHA-256 digest of the secret
is stored. Expiry is checked lazily when a token is presented, and any
failure simply yields no session.
"""

import logging
import time
from typing import Callable, Iterable, Optional, Tuple

from flask import Request, Response

from .exceptions import DataAccessException
from .models import Session
from .repositories import SessionRepository
from .security import constant_time_equal, generate_secure_random_string, hash_secret

logger = logging.getLogger(__name__)


TOKEN_SEPARATOR = "."
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class SessionManager:
    """
    Issues, validates and revokes management sessions

    Sessions move from active to expired (detected on lookup, when the
    row is also deleted) or to revoked (explicit deletion).
    """

    def __init__(self, repository: SessionRepository, ttl_seconds: int,
                 clock: Callable[[], float] = time.time):
        """
        Initialize session manager

        Args:
            repository: Storage for session rows
            ttl_seconds: Maximum session lifetime from creation
            clock: Returns the current unix time in seconds
        """
        self.repository = repository
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def _now(self) -> int:
        return int(self.clock())

    def create(self, event_id: int) -> Tuple[Session, str]:
        """
        Create a session bound to one event

        Args:
            event_id: Event the session grants management access to

        Returns:
            The stored session and the bearer token to hand to the client
        """
        session_id = generate_secure_random_string()
        secret = generate_secure_random_string()

        session = Session(
            session_id=session_id,
            secret_hash=hash_secret(secret),
            event_id=event_id,
            created_at=self._now(),
        )
        self.repository.insert_session(session)
        logger.info(f"Created management session {session_id} for event {event_id}")

        return session, f"{session_id}{TOKEN_SEPARATOR}{secret}"

    def validate(self, token: Optional[str]) -> Optional[Session]:
        """
        Resolve a bearer token to its session

        Malformed, unknown, expired and wrong-secret tokens all return
        None without telling the caller which case applied.

        Args:
            token: Token presented by the client

        Returns:
            Session if the token is valid, otherwise None
        """
        if not token:
            return None

        parts = token.split(TOKEN_SEPARATOR)
        if len(parts) != 2:
            return None
        session_id, secret = parts

        try:
            session = self.repository.get_session(session_id)
            if session is None:
                return None

            if self._now() - session.created_at >= self.ttl_seconds:
                self.repository.delete_session(session_id)
                logger.info(f"Session {session_id} expired")
                return None
        except DataAccessException as e:
            logger.error(f"Session lookup failed: {e}")
            return None

        if not constant_time_equal(hash_secret(secret), session.secret_hash):
            return None

        return session

    def revoke(self, session_id: str) -> None:
        """Delete a session; revoking an unknown id is a no-op"""
        self.repository.delete_session(session_id)
        logger.info(f"Revoked session {session_id}")


def set_session_cookie(response: Response, token: str, cookie_name: str,
                       max_age: int, secure: bool = True) -> None:
    """Attach the session token cookie to a response"""
    response.set_cookie(
        cookie_name,
        token,
        max_age=max_age,
        path="/",
        secure=secure,
        httponly=True,
        samesite="Lax",
    )


def clear_session_cookie(response: Response, cookie_name: str, secure: bool = True) -> None:
    """Remove the session cookie using the same attributes it was set with"""
    response.delete_cookie(
        cookie_name,
        path="/",
        secure=secure,
        httponly=True,
        samesite="Lax",
    )


def verify_request_origin(method: str, origin: Optional[str], host: Optional[str],
                          schemes: Iterable[str] = ("https", "http")) -> bool:
    """
    Same-origin check for state-changing requests

    Safe methods always pass. Anything else needs an ``Origin`` header
    equal to ``scheme://Host`` for one of the accepted schemes.

    Args:
        method: HTTP method
        origin: Value of the Origin header, if any
        host: Value of the Host header, if any
        schemes: Accepted URL schemes

    Returns:
        True if the request may proceed
    """
    if method.upper() in SAFE_METHODS:
        return True
    if not origin or not host:
        return False
    return any(origin == f"{scheme}://{host}" for scheme in schemes)


def token_from_request(request: Request, cookie_name: str) -> Optional[str]:
    return request.cookies.get(cookie_name)
