"""
Session storage for Firebase Auth and an in-memory test implementation.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Optional, Protocol

import requests
from firebase_admin import auth
from firebase_admin.exceptions import FirebaseError

from shared.api import SessionUser

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_SIGN_UP_URL = (
    "https://identitytoolkit.googleapis.com/v1/accounts:signUp"
)


class SessionError(Exception):
    """Raised when a session cannot be created."""


@dataclass
class SessionRecord:
    session_id: str
    user: SessionUser
    expires_at: float


class SessionStore(Protocol):
    """Defines the operations the API needs from the session system."""

    def create_anonymous_session(self) -> SessionRecord:
        ...

    def get_user(self, session_id: str) -> Optional[SessionUser]:
        ...

    def delete_session(self, session_id: str) -> None:
        ...


class InMemorySessionStore:
    """Test double for the session system."""

    def __init__(self, max_age_seconds: int = 14 * 24 * 3600):
        self.max_age_seconds = max_age_seconds
        self.sessions: Dict[str, SessionRecord] = {}

    def create_anonymous_session(self) -> SessionRecord:
        user = SessionUser(id=uuid.uuid4().hex, is_anonymous=True)
        record = SessionRecord(
            session_id=uuid.uuid4().hex,
            user=user,
            expires_at=time.time() + self.max_age_seconds,
        )
        self.sessions[record.session_id] = record
        return record

    def add_session(self, user: SessionUser) -> SessionRecord:
        """Registers a session for an existing account (useful in tests)."""
        record = SessionRecord(
            session_id=uuid.uuid4().hex,
            user=user,
            expires_at=time.time() + self.max_age_seconds,
        )
        self.sessions[record.session_id] = record
        return record

    def get_user(self, session_id: str) -> Optional[SessionUser]:
        record = self.sessions.get(session_id)
        if record is None:
            return None
        if record.expires_at < time.time():
            self.sessions.pop(session_id, None)
            return None
        return record.user

    def delete_session(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)

    def reset(self) -> None:
        self.sessions.clear()


class FirebaseSessionStore:
    """
    Firebase Auth session cookies.

    Anonymous accounts are created through the Identity Toolkit REST API,
    whose ID token is exchanged for a session cookie.
    """

    def __init__(self, web_api_key: str, max_age_seconds: int = 14 * 24 * 3600):
        if not web_api_key:
            raise ValueError("FIREBASE_WEB_API_KEY is required for FirebaseSessionStore")
        self.web_api_key = web_api_key
        self.max_age_seconds = max_age_seconds

    def create_anonymous_session(self) -> SessionRecord:
        try:
            response = requests.post(
                IDENTITY_TOOLKIT_SIGN_UP_URL,
                params={"key": self.web_api_key},
                json={"returnSecureToken": True},
                timeout=10,
            )
            response.raise_for_status()
            payload = response.json()
            session_cookie = auth.create_session_cookie(
                payload["idToken"], expires_in=timedelta(seconds=self.max_age_seconds)
            )
            user_id = payload["localId"]
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            raise SessionError(f"Anonymous sign-up failed: {e}") from e
        except FirebaseError as e:
            raise SessionError(f"Session cookie creation failed: {e}") from e

        if isinstance(session_cookie, bytes):
            session_cookie = session_cookie.decode("utf-8")
        return SessionRecord(
            session_id=session_cookie,
            user=SessionUser(id=user_id, is_anonymous=True),
            expires_at=time.time() + self.max_age_seconds,
        )

    def get_user(self, session_id: str) -> Optional[SessionUser]:
        try:
            claims = auth.verify_session_cookie(session_id, check_revoked=True)
        except (auth.InvalidSessionCookieError, auth.UserDisabledError) as e:
            logger.info("Rejected session cookie: %s", e)
            return None
        sign_in_provider = claims.get("firebase", {}).get("sign_in_provider")
        return SessionUser(
            id=claims["uid"],
            name=claims.get("name", ""),
            email=claims.get("email"),
            is_anonymous=sign_in_provider == "anonymous",
        )

    def delete_session(self, session_id: str) -> None:
        user = self.get_user(session_id)
        if user:
            auth.revoke_refresh_tokens(user.id)
