from __future__ import annotations

import threading
from typing import Optional

from loguru import logger

from eventsync.api_client import ON_UNAUTHORIZED_RETURN_NONE, ApiClient
from eventsync.errors import AuthenticationRequired, ServerRejected
from eventsync.models import UserAccount
from eventsync.query_cache import QueryCache


USER_PATH = "/api/user"


class AuthSession:
    """Tracks the authenticated user of the shared HTTP session.

    Switching users (login or logout) drops the whole query cache so nothing
    fetched for one account is ever served to another.
    """

    def __init__(self, api: ApiClient, cache: QueryCache) -> None:
        self.api = api
        self.cache = cache
        self._user: Optional[UserAccount] = None
        self._lock = threading.RLock()

    @property
    def current_user(self) -> Optional[UserAccount]:
        with self._lock:
            return self._user

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    def require_user(self) -> UserAccount:
        user = self.current_user
        if user is None:
            raise AuthenticationRequired()
        return user

    def set_user(self, user: Optional[UserAccount]) -> None:
        with self._lock:
            previous = self._user
            self._user = user
        if (previous.id if previous else None) != (user.id if user else None):
            self.cache.clear()

    def refresh(self) -> Optional[UserAccount]:
        payload = self.api.get_json(USER_PATH, on_unauthorized=ON_UNAUTHORIZED_RETURN_NONE)
        user = UserAccount.from_dict(payload) if isinstance(payload, dict) and "id" in payload else None
        self.set_user(user)
        return user

    def login(self, username: str, password: str) -> UserAccount:
        try:
            payload = self.api.request_json("POST", "/api/login", {"username": username, "password": password})
        except ServerRejected as exc:
            if exc.status_code == 401:
                raise AuthenticationRequired("Invalid username or password") from exc
            raise
        if not isinstance(payload, dict) or "id" not in payload:
            # The login response is expected to carry the user; fall back to asking for it.
            user = self.refresh()
            if user is None:
                raise AuthenticationRequired("Login did not establish a session")
            return user
        user = UserAccount.from_dict(payload)
        self.set_user(user)
        logger.info("logged in as {} (id={})", user.username, user.id)
        return user

    def logout(self) -> None:
        self.api.request("POST", "/api/logout")
        with self._lock:
            self._user = None
        self.cache.clear()
        logger.info("logged out")
