from __future__ import annotations

from typing import Any

from eventsync.api_client import ApiClient
from eventsync.errors import ApiError, FetchError
from eventsync.query_cache import QueryCache


SEARCH_PATH = "/api/search/events"


def search_params(
    *,
    query: str | None = None,
    category_id: int | None = None,
    is_free: bool | None = None,
    is_virtual: bool | None = None,
    max_price: float | None = None,
    limit: int = 20,
    offset: int = 0,
) -> dict[str, Any]:
    params: dict[str, Any] = {"limit": max(1, int(limit)), "offset": max(0, int(offset))}
    text = str(query or "").strip()
    if text:
        params["query"] = text
    if category_id is not None:
        params["categoryId"] = int(category_id)
    if is_free is not None:
        params["isFree"] = "true" if is_free else "false"
    if is_virtual is not None:
        params["isVirtual"] = "true" if is_virtual else "false"
    if max_price is not None:
        params["maxPrice"] = float(max_price)
    return params


class Catalog:
    """Cached read-only queries for browsing events, places and the feed."""

    def __init__(self, api: ApiClient, cache: QueryCache) -> None:
        self.api = api
        self.cache = cache

    def _get(self, key: tuple[Any, ...], path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        def load() -> list[dict[str, Any]]:
            return self.api.get_json(path, params=params) or []

        try:
            return self.cache.fetch(key, load)
        except ApiError as exc:
            raise FetchError(f"Failed to fetch {path}", details=dict(exc.details)) from exc

    def events(self) -> list[dict[str, Any]]:
        return self._get(("/api/events",), "/api/events")

    def upcoming_events(self) -> list[dict[str, Any]]:
        return self._get(("/api/events/upcoming",), "/api/events/upcoming")

    def live_events(self) -> list[dict[str, Any]]:
        return self._get(("/api/events/live",), "/api/events/live")

    def places(self) -> list[dict[str, Any]]:
        return self._get(("/api/places",), "/api/places")

    def places_by_category(self, category_id: int) -> list[dict[str, Any]]:
        return self._get(
            ("/api/places", "category", int(category_id)),
            f"/api/places/category/{int(category_id)}",
        )

    def categories(self) -> list[dict[str, Any]]:
        return self._get(("/api/categories",), "/api/categories")

    def posts(self) -> list[dict[str, Any]]:
        return self._get(("/api/posts",), "/api/posts")

    def search_events(self, **filters: Any) -> list[dict[str, Any]]:
        params = search_params(**filters)
        key = (SEARCH_PATH,) + tuple(sorted(params.items()))
        return self._get(key, SEARCH_PATH, params)
