from __future__ import annotations

from typing import Optional

import requests

from eventsync.api_client import ApiClient
from eventsync.catalog import Catalog
from eventsync.history import HistoryManager
from eventsync.models import AppConfig
from eventsync.notifier import Notifier
from eventsync.preferences import PreferenceManager
from eventsync.query_cache import QueryCache
from eventsync.saved_items import SavedItemsSynchronizer
from eventsync.session import AuthSession


class EventClient:
    """Wires every manager to one HTTP session, one cache and one notifier."""

    def __init__(
        self,
        config: AppConfig,
        *,
        http_session: Optional[requests.Session] = None,
        cache: Optional[QueryCache] = None,
    ) -> None:
        self.config = config
        self.api = ApiClient(config.api, session=http_session)
        self.cache = cache or QueryCache(
            stale_seconds=config.cache.stale_seconds,
            gc_seconds=config.cache.gc_seconds,
        )
        self.notifier = Notifier(max_entries=config.notifications.max_entries)
        self.session = AuthSession(self.api, self.cache)
        self.saved_items = SavedItemsSynchronizer(self.api, self.cache, self.session, self.notifier)
        self.preferences = PreferenceManager(self.api, self.cache, self.session, self.notifier)
        self.education = HistoryManager("education", self.api, self.cache, self.notifier)
        self.work = HistoryManager("work", self.api, self.cache, self.notifier)
        self.catalog = Catalog(self.api, self.cache)

    def history(self, resource: str) -> HistoryManager:
        if resource == "education":
            return self.education
        if resource == "work":
            return self.work
        raise ValueError(f"Unknown history resource: {resource!r}")

    def login_from_config(self) -> bool:
        auth = self.config.auth
        if not auth.username or not auth.password:
            return False
        self.session.login(auth.username, auth.password)
        return True
