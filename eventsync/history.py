from __future__ import annotations

from typing import Any

from loguru import logger

from eventsync.api_client import ApiClient
from eventsync.errors import ApiError, FetchError, NotFound
from eventsync.models import HISTORY_RESOURCES
from eventsync.notifier import Notifier
from eventsync.query_cache import QueryCache


REQUIRED_FIELDS = {
    "education": ("schoolName",),
    "work": ("companyName", "position"),
}


def _owner_id(record: Any) -> int | None:
    if not isinstance(record, dict):
        return None
    try:
        return int(record.get("userId"))
    except (TypeError, ValueError):
        return None


def _first_owner(*records: Any) -> int | None:
    for record in records:
        owner = _owner_id(record)
        if owner is not None:
            return owner
    return None


class HistoryManager:
    """List/detail CRUD over one per-user history resource (education or work)."""

    def __init__(self, resource: str, api: ApiClient, cache: QueryCache, notifier: Notifier) -> None:
        if resource not in HISTORY_RESOURCES:
            raise ValueError(f"Unknown history resource: {resource!r}")
        self.resource = resource
        self.api = api
        self.cache = cache
        self.notifier = notifier

    @property
    def label(self) -> str:
        return self.resource.capitalize()

    def list_key(self, user_id: int) -> tuple[Any, ...]:
        return ("/api/users", int(user_id), self.resource)

    def detail_key(self, record_id: int) -> tuple[Any, ...]:
        return (f"/api/{self.resource}", int(record_id))

    def list_by_user(self, user_id: int) -> list[dict[str, Any]]:
        path = f"/api/users/{int(user_id)}/{self.resource}"

        def load() -> list[dict[str, Any]]:
            return self.api.get_json(path) or []

        try:
            return self.cache.fetch(self.list_key(user_id), load)
        except ApiError as exc:
            raise FetchError(f"Failed to fetch {self.resource} history", details=dict(exc.details)) from exc

    def get_by_id(self, record_id: int) -> dict[str, Any]:
        path = f"/api/{self.resource}/{int(record_id)}"

        def load() -> dict[str, Any]:
            payload = self.api.get_json(path)
            if not isinstance(payload, dict):
                raise NotFound(404, f"{self.label} record {record_id} not found")
            return payload

        try:
            return self.cache.fetch(self.detail_key(record_id), load)
        except NotFound as exc:
            raise FetchError(
                f"{self.label} record {record_id} not found",
                details={"status_code": 404},
            ) from exc
        except ApiError as exc:
            raise FetchError(f"Failed to fetch {self.resource} details", details=dict(exc.details)) from exc

    def create(self, record: dict[str, Any]) -> dict[str, Any]:
        missing = [name for name in REQUIRED_FIELDS[self.resource] if not str(record.get(name) or "").strip()]
        if missing:
            raise ValueError(f"Missing required {self.resource} fields: {', '.join(missing)}")
        created = self._send("POST", f"/api/{self.resource}", record, failure=f"Failed to add {self.resource}")
        user_id = _first_owner(created, record)
        if user_id is not None:
            self.cache.invalidate(self.list_key(user_id), refetch=True)
        logger.info("created {} record {} for user {}", self.resource, (created or {}).get("id"), user_id)
        self.notifier.success(f"{self.label} history added")
        return created

    def update(self, record_id: int, fields: dict[str, Any]) -> dict[str, Any]:
        cached = self.cache.peek(self.detail_key(record_id))
        updated = self._send(
            "PUT",
            f"/api/{self.resource}/{int(record_id)}",
            fields,
            failure=f"Failed to update {self.resource}",
        )
        self.cache.invalidate(self.detail_key(record_id), refetch=True)
        user_id = _first_owner(updated, fields, cached)
        if user_id is not None:
            self.cache.invalidate(self.list_key(user_id), refetch=True)
        logger.info("updated {} record {}", self.resource, record_id)
        self.notifier.success(f"{self.label} history updated")
        return updated

    def delete(self, record_id: int, user_id: int) -> None:
        self._send("DELETE", f"/api/{self.resource}/{int(record_id)}", None, failure=f"Failed to delete {self.resource}")
        self.cache.invalidate(self.detail_key(record_id))
        self.cache.invalidate(self.list_key(user_id), refetch=True)
        logger.info("deleted {} record {} of user {}", self.resource, record_id, user_id)
        self.notifier.success(f"{self.label} history removed")

    def _send(self, method: str, path: str, payload: Any, *, failure: str) -> Any:
        try:
            result = self.api.request_json(method, path, payload)
        except ApiError as exc:
            logger.warning("{} {} failed: {}", method, path, exc.message)
            self.notifier.error(exc.message, title=failure)
            raise
        return result if result is not None or method == "DELETE" else {}
