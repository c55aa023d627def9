"""Session-cookie authentication for staff accounts.

Credentials are compared in plaintext against the user table.  A successful
login issues a random token (``secrets.token_urlsafe``) that is stored in an
in-memory session registry and handed back as a cookie; the registry is lost
on restart along with everything else.
"""

import logging
import secrets
from typing import Dict, Optional

from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyCookie

from config import settings
from entities import User
from store import EntityStore

logger = logging.getLogger(__name__)

session_cookie = APIKeyCookie(name=settings.session_cookie_name, auto_error=False)


class SessionManager:
    """Maps session tokens to user ids."""

    def __init__(self) -> None:
        self._sessions: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, user: User) -> str:
        token = secrets.token_urlsafe(32)
        while token in self._sessions:
            token = secrets.token_urlsafe(32)
        self._sessions[token] = user.id
        return token

    def resolve(self, token: Optional[str]) -> Optional[int]:
        if not token:
            return None
        return self._sessions.get(token)

    def destroy(self, token: Optional[str]) -> bool:
        """Forget a token.  Returns True if it was active."""
        if not token:
            return False
        return self._sessions.pop(token, None) is not None

    def clear(self) -> None:
        self._sessions.clear()


def authenticate(store: EntityStore, username: str, password: str) -> Optional[User]:
    """Return the user if the username and password match, else None."""
    user = store.get_user_by_username(username)
    if user is None or user.password != password:
        logger.warning("Failed login attempt for %r", username)
        return None
    return user


def current_user(request: Request, token: Optional[str] = Security(session_cookie)) -> User:
    """Dependency: the logged-in user, or 401."""
    sessions: SessionManager = request.app.state.sessions
    user_id = sessions.resolve(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = request.app.state.library.store.get_user(user_id)
    if user is None:
        sessions.destroy(token)
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_session(request: Request, token: Optional[str] = Security(session_cookie)) -> Optional[User]:
    """Dependency guarding data routes; a no-op unless ``REQUIRE_AUTH`` is on."""
    if not settings.require_auth:
        return None
    return current_user(request, token)
