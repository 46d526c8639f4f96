"""
Session state for a client of the capsule backend.

`SessionManager` mirrors the signed-in account. Anonymous login is
best-effort: failures leave the client unauthenticated and are reported in
the returned dict instead of raising.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from dacite import from_dict

from shared.api import SessionUser
from shared.json_utils import convert_keys

logger = logging.getLogger(__name__)


def _user_from_payload(payload: Optional[dict]) -> Optional[SessionUser]:
    if not payload:
        return None
    return from_dict(
        data_class=SessionUser, data=convert_keys(payload, "camel_to_snake")
    )


def _error_message(error: Exception) -> str:
    return str(error) or "Unknown error"


class SessionManager:
    def __init__(self, http_client: httpx.AsyncClient, api_prefix: str = "/api"):
        self.http_client = http_client
        self.session_path = f"{api_prefix}/session"
        self.user: Optional[SessionUser] = None
        self.is_loading = True

    async def init_auth(self) -> Optional[SessionUser]:
        """Loads the current account; any failure means no session."""
        self.is_loading = True
        try:
            response = await self.http_client.get(self.session_path)
            response.raise_for_status()
            self.user = _user_from_payload(response.json().get("user"))
        except (httpx.HTTPError, ValueError) as e:
            logger.info("No active session: %s", e)
            self.user = None
        finally:
            self.is_loading = False
        return self.user

    async def login_anonymously(self) -> dict[str, Any]:
        try:
            response = await self.http_client.post(f"{self.session_path}/anonymous")
            response.raise_for_status()
            user = _user_from_payload(response.json().get("user"))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Anonymous login failed: %s", e)
            return {"success": False, "error": _error_message(e)}
        self.user = user
        return {"success": True, "user": user}

    async def logout(self) -> dict[str, Any]:
        try:
            response = await self.http_client.delete(self.session_path)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Logout failed: %s", e)
            return {"success": False, "error": _error_message(e)}
        self.user = None
        return {"success": True}
