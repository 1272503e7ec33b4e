from __future__ import annotations

import threading
from typing import Any

from loguru import logger

from eventsync.api_client import ApiClient
from eventsync.errors import ApiError, AuthenticationRequired, FetchError, SaveFailed, UnsaveFailed
from eventsync.models import KIND_EVENT, KIND_PLACE, MutationResult, SavableItem, normalize_kind
from eventsync.notifier import Notifier
from eventsync.query_cache import QueryCache
from eventsync.session import AuthSession


SAVED_LIST_PATHS = {
    KIND_EVENT: "/api/user/saved-events",
    KIND_PLACE: "/api/user/saved-places",
}
SAVE_PATHS = {
    KIND_EVENT: "/api/events/{id}/save",
    KIND_PLACE: "/api/places/{id}/save",
}

ACTION_SAVE = "save"
ACTION_UNSAVE = "unsave"

STATE_UNSAVED = "unsaved"
STATE_SAVE_PENDING = "save_pending"
STATE_SAVED = "saved"
STATE_UNSAVE_PENDING = "unsave_pending"


def saved_set_key(kind: str) -> tuple[str]:
    return (SAVED_LIST_PATHS[normalize_kind(kind)],)


def _item_id(record: Any) -> int | None:
    raw = record.get("id") if isinstance(record, dict) else record
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _saved_ids(records: Any) -> set[int]:
    if not isinstance(records, list):
        return set()
    ids = {_item_id(record) for record in records}
    ids.discard(None)
    return ids


class SavedItemsSynchronizer:
    """Save/unsave of events and places kept consistent through the query cache.

    Saved state is never stored locally: an item is saved when its id is in the
    cached saved list for its kind. A successful mutation invalidates (and
    refetches) that list only, so every reader sees the server's post-mutation
    state. Failures leave the cache untouched and become notifications.
    """

    def __init__(
        self,
        api: ApiClient,
        cache: QueryCache,
        session: AuthSession,
        notifier: Notifier,
    ) -> None:
        self.api = api
        self.cache = cache
        self.session = session
        self.notifier = notifier
        self._pending: dict[SavableItem, str] = {}
        self._lock = threading.Lock()

    def saved_items(self, kind: str) -> list[dict[str, Any]]:
        kind = normalize_kind(kind)
        if not self.session.is_authenticated:
            return []
        path = SAVED_LIST_PATHS[kind]

        def load() -> list[dict[str, Any]]:
            return self.api.get_json(path) or []

        try:
            return self.cache.fetch(saved_set_key(kind), load)
        except ApiError as exc:
            raise FetchError(f"Failed to fetch saved {kind}s: {exc.message}") from exc

    def refresh(self, kind: str) -> list[dict[str, Any]]:
        self.cache.invalidate(saved_set_key(kind))
        return self.saved_items(kind)

    def is_item_saved(self, item_id: int, kind: str) -> bool:
        if not self.session.is_authenticated:
            return False
        records = self.cache.peek(saved_set_key(kind), [])
        return int(item_id) in _saved_ids(records)

    def is_pending(self, item_id: int, kind: str) -> bool:
        with self._lock:
            return SavableItem.of(item_id, kind) in self._pending

    def item_state(self, item_id: int, kind: str) -> str:
        item = SavableItem.of(item_id, kind)
        with self._lock:
            pending = self._pending.get(item)
        if pending == ACTION_SAVE:
            return STATE_SAVE_PENDING
        if pending == ACTION_UNSAVE:
            return STATE_UNSAVE_PENDING
        return STATE_SAVED if self.is_item_saved(item.id, item.kind) else STATE_UNSAVED

    def toggle_save(self, item_id: int, kind: str) -> MutationResult:
        item = SavableItem.of(item_id, kind)
        if self.is_item_saved(item.id, item.kind):
            return self._mutate(item, ACTION_UNSAVE)
        return self._mutate(item, ACTION_SAVE)

    def save(self, item_id: int, kind: str) -> MutationResult:
        return self._mutate(SavableItem.of(item_id, kind), ACTION_SAVE)

    def unsave(self, item_id: int, kind: str) -> MutationResult:
        return self._mutate(SavableItem.of(item_id, kind), ACTION_UNSAVE)

    def _mutate(self, item: SavableItem, action: str) -> MutationResult:
        noun = item.label.lower()
        if not self.session.is_authenticated:
            self.notifier.notify("Login required", f"Please login to {action} this {noun}")
            raise AuthenticationRequired(f"Please login to {action} this {noun}")

        with self._lock:
            if item in self._pending:
                logger.debug("{} of {} {} skipped, mutation in flight", action, noun, item.id)
                return MutationResult(
                    ok=False,
                    action=action,
                    item=item,
                    message=f"A change to this {noun} is already in progress",
                    skipped=True,
                )
            self._pending[item] = action

        method = "POST" if action == ACTION_SAVE else "DELETE"
        path = SAVE_PATHS[item.kind].format(id=item.id)
        try:
            try:
                self.api.request(method, path)
            except ApiError as exc:
                failure_cls = SaveFailed if action == ACTION_SAVE else UnsaveFailed
                failure = failure_cls(exc.message or f"Failed to {action} {noun}", details=exc.to_dict())
                logger.warning("{} of {} {} failed: {}", action, noun, item.id, failure.message)
                self.notifier.error(failure.message)
                return MutationResult(
                    ok=False,
                    action=action,
                    item=item,
                    message=f"Failed to {action} {noun}",
                    error=failure.code,
                )
            self.cache.invalidate(saved_set_key(item.kind), refetch=True)
        finally:
            with self._lock:
                self._pending.pop(item, None)

        if action == ACTION_SAVE:
            message = f"{item.label} added to saved items"
        else:
            message = f"{item.label} removed from saved items"
        logger.info("{} {} {}", action, noun, item.id)
        self.notifier.success(message)
        return MutationResult(ok=True, action=action, item=item, message=message)
