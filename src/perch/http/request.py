"""Immutable HTTP request.

Metadata is frozen at creation. The body is read once (the micro object
does this before dispatch) and cached, so urlencoded form values can be
read synchronously through ``request.post``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from perch._internal.asgi import Receive
from perch.http.cookies import parse_cookies
from perch.http.headers import Headers
from perch.http.query import QueryParams

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request."""

    method: str
    path: str
    headers: Headers
    query: QueryParams
    cookies: Mapping[str, str]
    path_params: dict[str, str]
    http_version: str
    client: tuple[str, int] | None

    # ASGI receive callable for body streaming
    _receive: Receive

    # Mutable cache for body and parsed form (the dict itself is mutable)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def url(self) -> str:
        """Path plus query string."""
        qs = self.query.raw
        if qs:
            return f"{self.path}?{qs.decode('latin-1')}"
        return self.path

    # -- Body --

    async def body(self) -> bytes:
        """Read the full request body. Cached after the first call."""
        if "_body" in self._cache:
            return self._cache["_body"]
        chunks = [chunk async for chunk in self.stream()]
        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def stream(self) -> AsyncGenerator[bytes]:
        """Stream the request body in chunks."""
        while True:
            message = await self._receive()
            body = message.get("body", b"")
            if body:
                yield body
            if not message.get("more_body", False):
                break

    @property
    def post(self) -> QueryParams:
        """Urlencoded form fields from the already-read body.

        Empty when the body has not been read yet or is not urlencoded.
        """
        if "_post" in self._cache:
            return self._cache["_post"]
        content_type = (self.content_type or "").split(";", 1)[0].strip().lower()
        raw = self._cache.get("_body", b"")
        result = QueryParams(raw if content_type == FORM_CONTENT_TYPE else b"")
        if "_body" in self._cache:
            self._cache["_post"] = result
        return result

    def with_path_params(self, path_params: dict[str, str]) -> Request:
        """Return a copy carrying the matched route parameters (cache shared)."""
        return replace(self, path_params=path_params, _cache=self._cache)

    # -- Factory --

    @classmethod
    def from_asgi(cls, scope: Mapping[str, Any], receive: Receive) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        headers = Headers(tuple(scope.get("headers", ())))
        client = scope.get("client")
        return cls(
            method=scope["method"].upper(),
            path=scope["path"],
            headers=headers,
            query=QueryParams(scope.get("query_string", b"")),
            cookies=parse_cookies(headers.get("cookie", "")),
            path_params={},
            http_version=scope.get("http_version", "1.1"),
            client=tuple(client) if client else None,
            _receive=receive,
        )
