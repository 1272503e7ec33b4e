from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from eventsync.api_client import ApiClient
from eventsync.errors import ApiError, AuthenticationRequired, FetchError
from eventsync.models import LocationPreference, MutationResult
from eventsync.notifier import Notifier
from eventsync.query_cache import QueryCache
from eventsync.session import AuthSession


PREFERENCES_PATH = "/api/user/preferences"
RECOMMENDED_PATH = "/api/events/recommended"
PREFERENCES_KEY = (PREFERENCES_PATH,)
RECOMMENDED_KEY = (RECOMMENDED_PATH,)


@dataclass
class PreferenceEdit:
    changed: bool
    reason: str
    preferences: dict[str, Any]


def _categories(preferences: dict[str, Any]) -> list[int]:
    output: list[int] = []
    for raw in preferences.get("categories") or []:
        try:
            category_id = int(raw)
        except (TypeError, ValueError):
            continue
        if category_id not in output:
            output.append(category_id)
    return output


def _locations(preferences: dict[str, Any]) -> list[dict[str, Any]]:
    return [dict(item) for item in preferences.get("locations") or [] if isinstance(item, dict)]


def with_preference(preferences: dict[str, Any], key: str, value: Any) -> PreferenceEdit:
    updated = copy.deepcopy(preferences)
    changed = updated.get(key) != value
    updated[key] = value
    return PreferenceEdit(changed=changed, reason="set" if changed else "no_changes", preferences=updated)


def with_category_added(preferences: dict[str, Any], category_id: int) -> PreferenceEdit:
    categories = _categories(preferences)
    if int(category_id) in categories:
        return PreferenceEdit(changed=False, reason="already_present", preferences=copy.deepcopy(preferences))
    updated = copy.deepcopy(preferences)
    updated["categories"] = categories + [int(category_id)]
    return PreferenceEdit(changed=True, reason="added", preferences=updated)


def with_category_removed(preferences: dict[str, Any], category_id: int) -> PreferenceEdit:
    categories = _categories(preferences)
    remaining = [item for item in categories if item != int(category_id)]
    updated = copy.deepcopy(preferences)
    updated["categories"] = remaining
    changed = len(remaining) != len(categories)
    return PreferenceEdit(changed=changed, reason="removed" if changed else "not_present", preferences=updated)


def with_location_added(preferences: dict[str, Any], location: LocationPreference) -> PreferenceEdit:
    locations = _locations(preferences)
    for existing in locations:
        if LocationPreference.from_dict(existing).coordinates == location.coordinates:
            return PreferenceEdit(changed=False, reason="already_present", preferences=copy.deepcopy(preferences))
    updated = copy.deepcopy(preferences)
    updated["locations"] = locations + [location.to_dict()]
    return PreferenceEdit(changed=True, reason="added", preferences=updated)


def with_location_removed(preferences: dict[str, Any], name: str) -> PreferenceEdit:
    locations = _locations(preferences)
    remaining = [item for item in locations if item.get("name") != name]
    updated = copy.deepcopy(preferences)
    updated["locations"] = remaining
    changed = len(remaining) != len(locations)
    return PreferenceEdit(changed=changed, reason="removed" if changed else "not_present", preferences=updated)


class PreferenceManager:
    """Read-modify-write access to the user's recommendation preferences.

    Every write sends the whole mapping built from the last snapshot read, so two
    overlapping writes from the same client are last-write-wins and the earlier
    change can be lost. The server contract has no version precondition to guard
    against that.
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

    def get_preferences(self) -> dict[str, Any]:
        if not self.session.is_authenticated:
            return {}

        def load() -> dict[str, Any]:
            payload = self.api.get_json(PREFERENCES_PATH)
            return payload if isinstance(payload, dict) else {}

        try:
            return copy.deepcopy(self.cache.fetch(PREFERENCES_KEY, load))
        except ApiError as exc:
            raise FetchError(f"Failed to fetch preferences: {exc.message}") from exc

    def recommended_events(self, limit: int | None = None) -> list[dict[str, Any]]:
        if not self.session.is_authenticated:
            return []
        params = {"limit": int(limit)} if limit else None
        key = RECOMMENDED_KEY + ((int(limit),) if limit else ())

        def load() -> list[dict[str, Any]]:
            return self.api.get_json(RECOMMENDED_PATH, params=params) or []

        try:
            return self.cache.fetch(key, load)
        except ApiError as exc:
            raise FetchError(f"Failed to fetch recommended events: {exc.message}") from exc

    def update_preferences(self, preferences: dict[str, Any]) -> MutationResult:
        self._require_user()
        return self._persist(dict(preferences), action="update_preferences")

    def set_preference(self, key: str, value: Any) -> MutationResult:
        self._require_user()
        return self._apply(lambda current: with_preference(current, key, value), "set_preference", always=True)

    def add_category_preference(self, category_id: int) -> MutationResult:
        self._require_user()
        return self._apply(lambda current: with_category_added(current, category_id), "add_category")

    def remove_category_preference(self, category_id: int) -> MutationResult:
        self._require_user()
        return self._apply(lambda current: with_category_removed(current, category_id), "remove_category", always=True)

    def add_location_preference(self, location: LocationPreference | dict[str, Any]) -> MutationResult:
        self._require_user()
        if isinstance(location, dict):
            location = LocationPreference.from_dict(location)
        return self._apply(lambda current: with_location_added(current, location), "add_location")

    def remove_location_preference(self, name: str) -> MutationResult:
        self._require_user()
        return self._apply(lambda current: with_location_removed(current, name), "remove_location", always=True)

    def _require_user(self) -> None:
        if not self.session.is_authenticated:
            self.notifier.notify("Login required", "Please login to update your preferences")
            raise AuthenticationRequired("Please login to update your preferences")

    def _apply(
        self,
        edit_fn: Callable[[dict[str, Any]], PreferenceEdit],
        action: str,
        *,
        always: bool = False,
    ) -> MutationResult:
        try:
            current = self.get_preferences()
        except FetchError as exc:
            self.notifier.error(exc.message, title="Failed to update preferences")
            return MutationResult(ok=False, action=action, message="Failed to update preferences", error=exc.code)
        edit: PreferenceEdit = edit_fn(current)
        if not edit.changed and not always:
            logger.debug("{} skipped: {}", action, edit.reason)
            return MutationResult(ok=True, action=action, message=edit.reason, skipped=True)
        return self._persist(edit.preferences, action=action)

    def _persist(self, preferences: dict[str, Any], *, action: str) -> MutationResult:
        try:
            self.api.request_json("PUT", PREFERENCES_PATH, preferences)
        except ApiError as exc:
            logger.warning("{} failed: {}", action, exc.message)
            self.notifier.error(exc.message, title="Failed to update preferences")
            return MutationResult(ok=False, action=action, message="Failed to update preferences", error=exc.code)
        self.cache.invalidate(PREFERENCES_KEY, refetch=True)
        self.cache.invalidate(RECOMMENDED_KEY, refetch=True)
        logger.info("{} persisted", action)
        self.notifier.notify("Preferences updated", "Your preferences have been updated successfully")
        return MutationResult(ok=True, action=action, message="Preferences updated")
