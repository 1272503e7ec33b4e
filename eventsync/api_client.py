from __future__ import annotations

from typing import Any

import requests
from loguru import logger

from eventsync.errors import NetworkFailure, NotFound, ServerRejected
from eventsync.models import ApiConfig


GET_CACHE_CONTROL = "max-age=300"
ON_UNAUTHORIZED_THROW = "throw"
ON_UNAUTHORIZED_RETURN_NONE = "return_none"


def parse_cookie_header(raw: str) -> dict[str, str]:
    cookies: dict[str, str] = {}
    for part in (raw or "").split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name.strip():
            cookies[name.strip()] = value.strip()
    return cookies


def _error_text(response: requests.Response) -> str:
    text = (response.text or "").strip()
    return text[:300] or str(response.reason or "")


class ApiClient:
    """Thin JSON wrapper over the events REST API.

    Every request goes through one ``requests.Session`` so the server's session
    cookie set by ``/api/login`` is replayed on later calls. A configured
    ``session_cookie`` only seeds the cookie jar; once the server sets a cookie
    of the same name, the seeded one is dropped. Non-2xx responses are
    raised as ``ServerRejected`` (``NotFound`` for 404) and transport failures as
    ``NetworkFailure``.
    """

    def __init__(self, config: ApiConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()
        self._seeded_cookies: set[str] = set()
        for name, value in parse_cookie_header(config.session_cookie).items():
            # No domain: sent to any host until the server sets its own cookie.
            self.session.cookies.set(name, value)
            self._seeded_cookies.add(name)

    def _drop_replaced_cookies(self, response: requests.Response) -> None:
        for name in list(self._seeded_cookies):
            if name in response.cookies:
                self.session.cookies.clear("", "/", name)
                self._seeded_cookies.discard(name)

    def url_for(self, path: str) -> str:
        base = self.config.base_url.rstrip("/")
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{base}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        payload: Any = None,
        *,
        params: dict[str, Any] | None = None,
    ) -> requests.Response:
        method = method.upper()
        headers: dict[str, str] = {}
        if payload is not None:
            headers["Content-Type"] = "application/json"
        if method == "GET":
            headers["Cache-Control"] = GET_CACHE_CONTROL

        logger.debug("{} {}", method, path)
        try:
            response = self.session.request(
                method,
                self.url_for(path),
                headers=headers,
                json=payload,
                params=params,
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.warning("{} {} failed: {}: {}", method, path, type(exc).__name__, exc)
            raise NetworkFailure(f"{type(exc).__name__}: {exc}") from exc

        self._drop_replaced_cookies(response)
        if not response.ok:
            text = _error_text(response)
            logger.warning("{} {} rejected with HTTP {}", method, path, response.status_code)
            if response.status_code == 404:
                raise NotFound(response.status_code, text)
            raise ServerRejected(response.status_code, text)
        return response

    def request_json(
        self,
        method: str,
        path: str,
        payload: Any = None,
        *,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = self.request(method, path, payload, params=params)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            # Some endpoints answer mutations with a bare "OK".
            return None

    def get_json(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        on_unauthorized: str = ON_UNAUTHORIZED_THROW,
    ) -> Any:
        try:
            return self.request_json("GET", path, params=params)
        except ServerRejected as exc:
            if exc.status_code == 401 and on_unauthorized == ON_UNAUTHORIZED_RETURN_NONE:
                return None
            raise
