"""Test client for perch applications.

Drives any ASGI callable (a ``Micro`` or a ``Runner``) in-process and
returns the same frozen ``Response`` type the micro object sends.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

from perch._internal.asgi import ASGIApp
from perch.http.cookies import parse_cookies
from perch.http.response import Response


class TestClient:
    """Async test client. No sockets, no HTTP parsing.

    Cookies set by responses are kept and sent back on later requests,
    so sessions work across calls.

    Usage::

        async with TestClient(runner) as client:
            response = await client.get("/")
            assert response.status == 200
    """

    __test__ = False  # Tell pytest this is not a test class

    __slots__ = ("app", "cookies")

    def __init__(self, app: ASGIApp) -> None:
        self.app = app
        self.cookies: dict[str, str] = {}

    async def __aenter__(self) -> TestClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        pass

    async def get(self, path: str, *, headers: dict[str, str] | None = None) -> Response:
        return await self.request("GET", path, headers=headers)

    async def post(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        data: dict[str, str] | None = None,
    ) -> Response:
        """Send a POST; *data* is sent urlencoded."""
        merged = dict(headers or {})
        if data is not None:
            body = urlencode(data).encode("latin-1")
            merged.setdefault("content-type", "application/x-www-form-urlencoded")
        return await self.request("POST", path, headers=merged, body=body)

    async def put(self, path: str, *, headers: dict[str, str] | None = None) -> Response:
        return await self.request("PUT", path, headers=headers)

    async def delete(self, path: str, *, headers: dict[str, str] | None = None) -> Response:
        return await self.request("DELETE", path, headers=headers)

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> Response:
        """Send an arbitrary request through the ASGI app."""
        path_part, _, query_string = path.partition("?")

        send_headers = {k.lower(): v for k, v in (headers or {}).items()}
        if self.cookies and "cookie" not in send_headers:
            send_headers["cookie"] = "; ".join(f"{k}={v}" for k, v in self.cookies.items())
        raw_headers = [
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, value in send_headers.items()
        ]

        scope: dict[str, Any] = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": method.upper(),
            "path": path_part,
            "raw_path": path_part.encode("latin-1"),
            "query_string": query_string.encode("latin-1"),
            "root_path": "",
            "headers": raw_headers,
            "server": ("testserver", 80),
            "client": ("127.0.0.1", 0),
        }

        request_body = body or b""
        body_sent = False

        async def receive() -> dict[str, Any]:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": request_body, "more_body": False}
            return {"type": "http.disconnect"}

        status = 200
        response_headers: list[tuple[bytes, bytes]] = []
        body_parts: list[bytes] = []

        async def send(message: dict[str, Any]) -> None:
            nonlocal status, response_headers
            if message["type"] == "http.response.start":
                status = message["status"]
                response_headers = list(message.get("headers", []))
            elif message["type"] == "http.response.body":
                body_parts.append(message.get("body", b""))

        await self.app(scope, receive, send)

        content_type = "text/html; charset=utf-8"
        extra_headers: list[tuple[str, str]] = []
        for name_b, value_b in response_headers:
            name = name_b.decode("latin-1")
            value = value_b.decode("latin-1")
            if name == "content-type":
                content_type = value
            elif name == "set-cookie":
                extra_headers.append((name, value))
                self._store_cookie(value)
            elif name != "content-length":
                extra_headers.append((name, value))

        return Response(
            body=b"".join(body_parts),
            status=status,
            content_type=content_type,
            headers=tuple(extra_headers),
        )

    def _store_cookie(self, header: str) -> None:
        pair, _, attributes = header.partition(";")
        for name, value in parse_cookies(pair).items():
            if "max-age=0" in attributes.lower():
                self.cookies.pop(name, None)
            else:
                self.cookies[name] = value
