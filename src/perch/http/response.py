"""HTTP responses.

``Response`` is the frozen value sent over ASGI (and returned by the test
client). ``ResponseWriter`` is the mutable per-request builder the micro
object exposes as ``micro.response``: handlers set the status, send
headers, redirect and write body text through it, then the micro object
calls ``build()`` once the handler returns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from http import HTTPStatus

from perch.http.cookies import SetCookie

logger = logging.getLogger("perch.server")


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response. Each ``with_*`` call returns a new Response."""

    body: str | bytes = ""
    status: int = 200
    content_type: str = "text/html; charset=utf-8"
    headers: tuple[tuple[str, str], ...] = ()
    cookies: tuple[SetCookie, ...] = ()

    def with_status(self, status: int) -> Response:
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> Response:
        return replace(self, headers=(*self.headers, (name, value)))

    def with_cookie(self, cookie: SetCookie) -> Response:
        return replace(self, cookies=(*self.cookies, cookie))

    def header(self, name: str, default: str | None = None) -> str | None:
        """Return the first header value for *name* (case-insensitive)."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return default

    @property
    def body_bytes(self) -> bytes:
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return self.body

    @property
    def text(self) -> str:
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body


class ResponseWriter:
    """Mutable response state for the request being handled.

    Once ``send_headers()`` has been called the status line and headers
    are committed: later status/header changes are ignored and logged.
    Body text can still be written.
    """

    __slots__ = (
        "_body",
        "_cookies",
        "_headers",
        "_headers_sent",
        "base_uri",
        "content_type",
        "reason",
        "status",
    )

    def __init__(self, *, base_uri: str = "/") -> None:
        self.base_uri = base_uri
        self.status: int = 200
        self.reason: str = HTTPStatus.OK.phrase
        self.content_type: str = "text/html; charset=utf-8"
        self._headers: list[tuple[str, str]] = []
        self._cookies: list[SetCookie] = []
        self._body: list[str] = []
        self._headers_sent = False

    # -- Status and headers --

    @property
    def headers_sent(self) -> bool:
        return self._headers_sent

    def _committed(self, what: str) -> bool:
        if self._headers_sent:
            logger.warning("Ignoring %s: headers were already sent", what)
            return True
        return False

    def set_status_code(self, status: int, message: str | None = None) -> ResponseWriter:
        """Set the status code and reason phrase."""
        if self._committed(f"status {status}"):
            return self
        self.status = status
        if message:
            self.reason = message
        else:
            try:
                self.reason = HTTPStatus(status).phrase
            except ValueError:
                self.reason = ""
        return self

    def set_header(self, name: str, value: str) -> ResponseWriter:
        """Set a header, replacing any earlier value under the same name."""
        if self._committed(f"header {name}"):
            return self
        wanted = name.lower()
        self._headers = [(k, v) for k, v in self._headers if k.lower() != wanted]
        self._headers.append((name, value))
        return self

    def set_cookie(self, cookie: SetCookie) -> ResponseWriter:
        if self._committed(f"cookie {cookie.name}"):
            return self
        self._cookies.append(cookie)
        return self

    def redirect(
        self,
        location: str,
        *,
        external: bool = False,
        status: int = 302,
    ) -> ResponseWriter:
        """Point the response at another location.

        Internal locations are joined onto ``base_uri`` as-is, so a
        location that already starts with ``/`` ends up doubled
        (``"/foo"`` -> ``"//foo"``). Callers strip it first.
        """
        target = location if external else f"{self.base_uri}{location}"
        self.set_status_code(status)
        return self.set_header("Location", target)

    def send_headers(self) -> ResponseWriter:
        """Commit the status line and headers."""
        self._headers_sent = True
        return self

    # -- Body --

    def write(self, text: str) -> None:
        """Append text to the response body."""
        self._body.append(text)

    @property
    def body(self) -> str:
        return "".join(self._body)

    def build(self) -> Response:
        """Freeze the accumulated state into a ``Response``."""
        return Response(
            body=self.body,
            status=self.status,
            content_type=self.content_type,
            headers=tuple(self._headers),
            cookies=tuple(self._cookies),
        )
