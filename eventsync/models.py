from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


KIND_EVENT = "event"
KIND_PLACE = "place"
ITEM_KINDS = (KIND_EVENT, KIND_PLACE)

HISTORY_RESOURCES = ("education", "work")

DEFAULT_BASE_URL = "http://localhost:5000"


def normalize_kind(value: Any) -> str:
    kind = str(value or "").strip().lower()
    if kind.endswith("s"):
        kind = kind[:-1]
    if kind not in ITEM_KINDS:
        raise ValueError(f"Unknown item kind: {value!r}")
    return kind


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


@dataclass
class ApiConfig:
    base_url: str = DEFAULT_BASE_URL
    session_cookie: str = ""
    timeout_seconds: int = 30

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ApiConfig":
        data = data or {}
        return cls(
            base_url=str(data.get("base_url", DEFAULT_BASE_URL)).strip().rstrip("/") or DEFAULT_BASE_URL,
            session_cookie=str(data.get("session_cookie", "")).strip(),
            timeout_seconds=max(1, int(data.get("timeout_seconds", 30))),
        )


@dataclass
class AuthConfig:
    username: str = ""
    password: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AuthConfig":
        data = data or {}
        return cls(
            username=str(data.get("username", "")).strip(),
            password=str(data.get("password", "")).strip(),
        )


@dataclass
class CacheConfig:
    stale_seconds: int = 300
    gc_seconds: int = 600

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CacheConfig":
        data = data or {}
        stale_seconds = max(0, int(data.get("stale_seconds", 300)))
        gc_seconds = max(stale_seconds, int(data.get("gc_seconds", 600)))
        return cls(stale_seconds=stale_seconds, gc_seconds=gc_seconds)


@dataclass
class NotificationConfig:
    max_entries: int = 50

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "NotificationConfig":
        data = data or {}
        return cls(max_entries=max(1, int(data.get("max_entries", 50))))


@dataclass
class LoggingConfig:
    environment: str = "development"
    level: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "LoggingConfig":
        data = data or {}
        environment = str(data.get("environment", "development")).strip().lower()
        if environment not in {"development", "production"}:
            environment = "development"
        return cls(
            environment=environment,
            level=str(data.get("level", "")).strip().upper(),
        )


@dataclass
class AppConfig:
    api: ApiConfig = field(default_factory=ApiConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            api=ApiConfig.from_dict(data.get("api")),
            auth=AuthConfig.from_dict(data.get("auth")),
            cache=CacheConfig.from_dict(data.get("cache")),
            notifications=NotificationConfig.from_dict(data.get("notifications")),
            logging=LoggingConfig.from_dict(data.get("logging")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_app_config() -> AppConfig:
    return AppConfig()


@dataclass(frozen=True)
class SavableItem:
    id: int
    kind: str

    @classmethod
    def of(cls, item_id: Any, kind: Any) -> "SavableItem":
        return cls(id=int(item_id), kind=normalize_kind(kind))

    @property
    def label(self) -> str:
        return "Event" if self.kind == KIND_EVENT else "Place"


@dataclass
class LocationPreference:
    latitude: str
    longitude: str
    name: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "LocationPreference":
        data = data or {}
        return cls(
            latitude=str(data.get("latitude", "")).strip(),
            longitude=str(data.get("longitude", "")).strip(),
            name=str(data.get("name", "") or ""),
        )

    @property
    def coordinates(self) -> tuple[str, str]:
        return (self.latitude, self.longitude)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class UserAccount:
    id: int
    username: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserAccount":
        extra = {k: v for k, v in data.items() if k not in {"id", "username", "password"}}
        return cls(id=int(data["id"]), username=str(data.get("username", "") or ""), extra=extra)

    def to_dict(self) -> dict[str, Any]:
        payload = dict(self.extra)
        payload["id"] = self.id
        payload["username"] = self.username
        return payload


@dataclass
class Notification:
    title: str
    description: str = ""
    variant: str = "default"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "variant": self.variant,
            "created_at": serialize_datetime(self.created_at),
        }


@dataclass
class MutationResult:
    ok: bool
    action: str
    message: str = ""
    item: SavableItem | None = None
    error: str = ""
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "action": self.action,
            "message": self.message,
            "item": asdict(self.item) if self.item else None,
            "error": self.error,
            "skipped": self.skipped,
        }
