import threading
import unittest
from http.server import BaseHTTPRequestHandler, HTTPServer

import requests

from eventsync.api_client import ON_UNAUTHORIZED_RETURN_NONE, ApiClient
from eventsync.errors import NetworkFailure, NotFound, ServerRejected
from eventsync.models import ApiConfig

from fake_api import FakeApiSession, make_response


class ApiClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.http = FakeApiSession()
        self.client = ApiClient(ApiConfig.from_dict({"base_url": "https://events.example.com/"}), session=self.http)

    def test_get_sends_cache_control_and_parses_json(self) -> None:
        self.http.route("GET", "/api/events", make_response(200, [{"id": 1}]))

        payload = self.client.get_json("/api/events", params={"limit": 5})

        self.assertEqual(payload, [{"id": 1}])
        call = self.http.calls[0]
        self.assertEqual(call["url"], "https://events.example.com/api/events")
        self.assertEqual(call["headers"]["Cache-Control"], "max-age=300")
        self.assertNotIn("Content-Type", call["headers"])
        self.assertEqual(call["params"], {"limit": 5})

    def test_body_sets_json_content_type(self) -> None:
        self.http.route("PUT", "/api/user/preferences", make_response(200, {"categories": [1]}))

        self.client.request_json("PUT", "/api/user/preferences", {"categories": [1]})

        call = self.http.calls[0]
        self.assertEqual(call["headers"]["Content-Type"], "application/json")
        self.assertNotIn("Cache-Control", call["headers"])
        self.assertEqual(call["json"], {"categories": [1]})

    def test_non_2xx_raises_server_rejected_with_status_and_text(self) -> None:
        self.http.route("POST", "/api/events/1/save", make_response(500, text="Internal server error"))

        with self.assertRaises(ServerRejected) as ctx:
            self.client.request("POST", "/api/events/1/save")

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.message, "500: Internal server error")
        self.assertEqual(ctx.exception.details["status_code"], 500)

    def test_404_raises_not_found(self) -> None:
        with self.assertRaises(NotFound):
            self.client.get_json("/api/work/99")

    def test_transport_error_raises_network_failure(self) -> None:
        def offline(*_args: object) -> requests.Response:
            raise requests.ConnectionError("connection refused")

        self.http.route("GET", "/api/posts", offline)

        with self.assertRaises(NetworkFailure) as ctx:
            self.client.get_json("/api/posts")
        self.assertIn("ConnectionError", ctx.exception.message)

    def test_unauthorized_can_map_to_none(self) -> None:
        self.http.route("GET", "/api/user", make_response(401, text="Unauthorized"))

        self.assertIsNone(self.client.get_json("/api/user", on_unauthorized=ON_UNAUTHORIZED_RETURN_NONE))
        with self.assertRaises(ServerRejected):
            self.client.get_json("/api/user")

    def test_empty_or_plain_text_body_returns_none(self) -> None:
        self.http.route("POST", "/api/logout", make_response(200, text="OK"))
        self.http.route("DELETE", r"/api/work/\d+", make_response(200))

        self.assertIsNone(self.client.request_json("POST", "/api/logout"))
        self.assertIsNone(self.client.request_json("DELETE", "/api/work/4"))

    def test_session_cookie_from_config_seeds_the_jar(self) -> None:
        http = FakeApiSession()
        ApiClient(ApiConfig.from_dict({"session_cookie": "connect.sid=abc; theme=dark"}), session=http)
        self.assertEqual(http.cookies.get("connect.sid"), "abc")
        self.assertEqual(http.cookies.get("theme"), "dark")
        self.assertNotIn("Cookie", http.headers)


class _CookieHandler(BaseHTTPRequestHandler):
    seen_cookies: list[str] = []

    def _reply(self, body: bytes, cookie: str | None = None) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        if cookie:
            self.send_header("Set-Cookie", cookie)
        self.end_headers()
        self.wfile.write(body)

    def do_POST(self) -> None:
        self.rfile.read(int(self.headers.get("Content-Length") or 0))
        self._reply(b'{"id": 3, "username": "ada"}', cookie="connect.sid=fresh; Path=/; HttpOnly")

    def do_GET(self) -> None:
        self.seen_cookies.append(self.headers.get("Cookie", ""))
        self._reply(b"[]")

    def log_message(self, *_args: object) -> None:
        pass


class SessionCookieTests(unittest.TestCase):
    def setUp(self) -> None:
        _CookieHandler.seen_cookies = []
        self.server = HTTPServer(("127.0.0.1", 0), _CookieHandler)
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()
        host, port = self.server.server_address
        self.client = ApiClient(
            ApiConfig.from_dict({"base_url": f"http://{host}:{port}", "session_cookie": "connect.sid=stale"})
        )
        self.client.session.trust_env = False

    def tearDown(self) -> None:
        self.server.shutdown()
        self.server.server_close()
        self.client.session.close()

    def test_cookie_set_at_login_replaces_configured_one(self) -> None:
        self.client.get_json("/api/user/saved-events")
        self.client.request_json("POST", "/api/login", {"username": "ada", "password": "secret"})
        self.client.get_json("/api/user/saved-events")

        self.assertEqual(_CookieHandler.seen_cookies[0], "connect.sid=stale")
        self.assertEqual(_CookieHandler.seen_cookies[1], "connect.sid=fresh")


if __name__ == "__main__":
    unittest.main()
