from __future__ import annotations

import os
from typing import Any, Optional

import requests
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from eventsync.client import EventClient
from eventsync.config_manager import ConfigManager
from eventsync.errors import ApiError, AuthenticationRequired, FetchError, code_for_status
from eventsync.logging_config import setup_logging
from eventsync.models import HISTORY_RESOURCES, normalize_kind


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class PreferenceValueRequest(BaseModel):
    value: Any = None


class LocationRequest(BaseModel):
    latitude: str = Field(min_length=1)
    longitude: str = Field(min_length=1)
    name: str = ""


class EducationRecordRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    userId: int
    schoolName: str = Field(min_length=1)
    degree: Optional[str] = None
    fieldOfStudy: Optional[str] = None
    startYear: Optional[int] = None
    graduationYear: Optional[int] = None
    description: Optional[str] = None
    imageUrl: Optional[str] = None


class WorkRecordRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    userId: int
    companyName: str = Field(min_length=1)
    position: str = Field(min_length=1)
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    isCurrentPosition: bool = False
    location: Optional[str] = None
    description: Optional[str] = None
    workLink: Optional[str] = None
    imageUrl: Optional[str] = None


RECORD_MODELS = {"education": EducationRecordRequest, "work": WorkRecordRequest}


class AppContext:
    def __init__(self, config_path: str, http_session: Optional[requests.Session] = None) -> None:
        self.config_manager = ConfigManager(config_path)
        self.http_session = http_session
        self.client = self._build_client()

    def _build_client(self) -> EventClient:
        return EventClient(self.config_manager.load(), http_session=self.http_session)

    def reload(self) -> None:
        self.client = self._build_client()


def _http_error(exc: ApiError) -> HTTPException:
    if isinstance(exc, AuthenticationRequired):
        return HTTPException(status_code=401, detail=exc.to_dict())
    upstream_status = int(exc.details.get("status_code") or 0)
    if upstream_status == 404:
        return HTTPException(status_code=404, detail=exc.to_dict())
    detail = exc.to_dict()
    if upstream_status:
        detail["upstream"] = code_for_status(upstream_status)
    return HTTPException(status_code=502, detail=detail)


def _resource(resource: str) -> str:
    if resource not in HISTORY_RESOURCES:
        raise HTTPException(status_code=404, detail=f"Unknown history resource: {resource}")
    return resource


def _kind(kind: str) -> str:
    try:
        return normalize_kind(kind)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def create_app(http_session: Optional[requests.Session] = None) -> FastAPI:
    config_path = os.getenv("EVENTSYNC_CONFIG_PATH", "config.yaml")
    context = AppContext(config_path=config_path, http_session=http_session)
    setup_logging(context.config_manager.load().logging)

    app = FastAPI(title="Eventsync Companion", version="0.1.0")
    app.state.context = context

    def client() -> EventClient:
        return app.state.context.client

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.context.config_manager.masked()

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        app.state.context.config_manager.update(request.payload)
        app.state.context.reload()
        return {"message": "config updated", "config": app.state.context.config_manager.masked()}

    @app.get("/api/session")
    def get_session() -> dict[str, Any]:
        user = client().session.current_user
        return {"authenticated": user is not None, "user": user.to_dict() if user else None}

    @app.post("/api/session/login")
    def login(request: LoginRequest) -> dict[str, Any]:
        auth = client().config.auth
        username = request.username or auth.username
        password = request.password or auth.password
        if not username or not password:
            raise HTTPException(status_code=400, detail="username and password required")
        try:
            user = client().session.login(username, password)
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"authenticated": True, "user": user.to_dict()}

    @app.post("/api/session/logout")
    def logout() -> dict[str, Any]:
        try:
            client().session.logout()
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"authenticated": False}

    @app.get("/api/saved/{kind}")
    def list_saved(kind: str) -> dict[str, Any]:
        kind = _kind(kind)
        try:
            items = client().saved_items.saved_items(kind)
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"kind": kind, "items": items}

    @app.get("/api/saved/{kind}/{item_id}")
    def saved_state(kind: str, item_id: int) -> dict[str, Any]:
        kind = _kind(kind)
        synchronizer = client().saved_items
        return {
            "id": item_id,
            "kind": kind,
            "saved": synchronizer.is_item_saved(item_id, kind),
            "state": synchronizer.item_state(item_id, kind),
        }

    @app.post("/api/saved/{kind}/{item_id}/toggle")
    def toggle_saved(kind: str, item_id: int) -> dict[str, Any]:
        kind = _kind(kind)
        synchronizer = client().saved_items
        try:
            # Make sure the saved list is loaded so the toggle direction is known.
            synchronizer.saved_items(kind)
            result = synchronizer.toggle_save(item_id, kind)
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"result": result.to_dict(), "state": synchronizer.item_state(item_id, kind)}

    @app.get("/api/preferences")
    def get_preferences() -> dict[str, Any]:
        try:
            return {"preferences": client().preferences.get_preferences()}
        except ApiError as exc:
            raise _http_error(exc) from exc

    @app.put("/api/preferences/{key}")
    def put_preference(key: str, request: PreferenceValueRequest) -> dict[str, Any]:
        try:
            result = client().preferences.set_preference(key, request.value)
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"result": result.to_dict()}

    @app.post("/api/preferences/categories/{category_id}")
    def add_category(category_id: int) -> dict[str, Any]:
        try:
            result = client().preferences.add_category_preference(category_id)
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"result": result.to_dict()}

    @app.delete("/api/preferences/categories/{category_id}")
    def remove_category(category_id: int) -> dict[str, Any]:
        try:
            result = client().preferences.remove_category_preference(category_id)
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"result": result.to_dict()}

    @app.post("/api/preferences/locations")
    def add_location(request: LocationRequest) -> dict[str, Any]:
        try:
            result = client().preferences.add_location_preference(request.model_dump())
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"result": result.to_dict()}

    @app.delete("/api/preferences/locations/{name}")
    def remove_location(name: str) -> dict[str, Any]:
        try:
            result = client().preferences.remove_location_preference(name)
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"result": result.to_dict()}

    @app.get("/api/recommended")
    def recommended(limit: int | None = None) -> dict[str, Any]:
        try:
            return {"events": client().preferences.recommended_events(limit=limit)}
        except ApiError as exc:
            raise _http_error(exc) from exc

    @app.get("/api/history/{resource}/users/{user_id}")
    def history_list(resource: str, user_id: int) -> dict[str, Any]:
        manager = client().history(_resource(resource))
        try:
            return {"records": manager.list_by_user(user_id)}
        except FetchError as exc:
            raise _http_error(exc) from exc

    @app.get("/api/history/{resource}/{record_id}")
    def history_detail(resource: str, record_id: int) -> dict[str, Any]:
        manager = client().history(_resource(resource))
        try:
            return {"record": manager.get_by_id(record_id)}
        except FetchError as exc:
            raise _http_error(exc) from exc

    @app.post("/api/history/{resource}")
    def history_create(resource: str, payload: dict[str, Any]) -> dict[str, Any]:
        resource = _resource(resource)
        try:
            record = RECORD_MODELS[resource].model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.errors()) from exc
        try:
            created = client().history(resource).create(record.model_dump(exclude_none=True))
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"record": created}

    @app.put("/api/history/{resource}/{record_id}")
    def history_update(resource: str, record_id: int, payload: dict[str, Any]) -> dict[str, Any]:
        manager = client().history(_resource(resource))
        try:
            updated = manager.update(record_id, payload)
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"record": updated}

    @app.delete("/api/history/{resource}/{record_id}")
    def history_delete(resource: str, record_id: int, user_id: int) -> dict[str, Any]:
        manager = client().history(_resource(resource))
        try:
            manager.delete(record_id, user_id)
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"deleted": record_id}

    @app.get("/api/catalog/events")
    def catalog_events(scope: str = "all") -> dict[str, Any]:
        catalog = client().catalog
        readers = {
            "all": catalog.events,
            "upcoming": catalog.upcoming_events,
            "live": catalog.live_events,
        }
        if scope not in readers:
            raise HTTPException(status_code=400, detail=f"Unknown scope: {scope}")
        try:
            return {"events": readers[scope]()}
        except ApiError as exc:
            raise _http_error(exc) from exc

    @app.get("/api/catalog/places")
    def catalog_places(category_id: int | None = None) -> dict[str, Any]:
        catalog = client().catalog
        try:
            if category_id is not None:
                return {"places": catalog.places_by_category(category_id)}
            return {"places": catalog.places()}
        except ApiError as exc:
            raise _http_error(exc) from exc

    @app.get("/api/catalog/categories")
    def catalog_categories() -> dict[str, Any]:
        try:
            return {"categories": client().catalog.categories()}
        except ApiError as exc:
            raise _http_error(exc) from exc

    @app.get("/api/catalog/search")
    def catalog_search(
        query: str = "",
        category_id: int | None = None,
        is_free: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        try:
            events = client().catalog.search_events(
                query=query,
                category_id=category_id,
                is_free=is_free,
                limit=limit,
                offset=offset,
            )
        except ApiError as exc:
            raise _http_error(exc) from exc
        return {"events": events}

    @app.get("/api/feed")
    def feed() -> dict[str, Any]:
        try:
            return {"posts": client().catalog.posts()}
        except ApiError as exc:
            raise _http_error(exc) from exc

    @app.get("/api/notifications")
    def notifications(limit: int = 20) -> dict[str, Any]:
        return {"notifications": [item.to_dict() for item in client().notifier.recent(limit=limit)]}

    @app.delete("/api/notifications")
    def clear_notifications() -> dict[str, Any]:
        client().notifier.clear()
        return {"notifications": []}

    return app
