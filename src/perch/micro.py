"""Micro application object — container, router and request pipeline.

The runner drives an instance of ``Micro``: it registers one callable per
route and method, then hands requests to ``handle()``. Handlers receive
the captured path parameters as positional arguments and talk to the
current request, response and session through ``micro.request``,
``micro.response`` and ``micro.session``.

Handlers write to the response instead of returning it; return values
are ignored.
"""

from __future__ import annotations

import html
import logging
import traceback
from collections.abc import Callable, Iterable
from contextvars import Token
from typing import Any

from perch._internal.asgi import Receive, Scope, Send
from perch._internal.invoke import invoke
from perch.context import (
    get_request,
    get_response,
    get_session,
    request_var,
    response_var,
    session_var,
    state_var,
)
from perch.di import Container
from perch.errors import HTTPError, MethodNotAllowed, NotFound
from perch.http.request import Request
from perch.http.response import Response, ResponseWriter
from perch.routing.route import Route, RouteMatch
from perch.routing.router import Router
from perch.server.sender import send_response
from perch.session import Session, SessionConfig

logger = logging.getLogger("perch.server")

Handler = Callable[..., Any]


class Micro:
    """Route table plus ASGI request handling.

    Usage::

        micro = Micro()

        def hello(name):
            micro.response.write(f"Hello {name}")

        micro.get("/hello/{name}", hello)
        micro.run()
    """

    __slots__ = ("_not_found", "base_uri", "debug", "di", "router", "session_config")

    def __init__(
        self,
        di: Container | None = None,
        *,
        base_uri: str = "/",
        debug: bool = False,
        session_config: SessionConfig | None = None,
    ) -> None:
        self.di = di if di is not None else Container()
        self.router = Router()
        self.base_uri = base_uri
        self.debug = debug
        self.session_config = session_config
        self._not_found: Handler | None = None

    # -- Route registration --

    def map(self, pattern: str, handler: Handler, methods: Iterable[str]) -> Route:
        """Register *handler* for *pattern* under each of *methods*."""
        route = Route(
            path=pattern,
            handler=handler,
            methods=frozenset(m.upper() for m in methods),
        )
        self.router.add(route)
        return route

    def get(self, pattern: str, handler: Handler) -> Route:
        return self.map(pattern, handler, ("GET",))

    def post(self, pattern: str, handler: Handler) -> Route:
        return self.map(pattern, handler, ("POST",))

    def put(self, pattern: str, handler: Handler) -> Route:
        return self.map(pattern, handler, ("PUT",))

    def patch(self, pattern: str, handler: Handler) -> Route:
        return self.map(pattern, handler, ("PATCH",))

    def delete(self, pattern: str, handler: Handler) -> Route:
        return self.map(pattern, handler, ("DELETE",))

    def head(self, pattern: str, handler: Handler) -> Route:
        return self.map(pattern, handler, ("HEAD",))

    def options(self, pattern: str, handler: Handler) -> Route:
        return self.map(pattern, handler, ("OPTIONS",))

    def not_found(self, handler: Handler) -> None:
        """Call *handler* (no arguments) when no route matches path and method."""
        self._not_found = handler

    # -- Request-scoped services --

    @property
    def request(self) -> Request:
        return get_request()

    @property
    def response(self) -> ResponseWriter:
        return get_response()

    @property
    def session(self) -> Session:
        return get_session()

    # -- Request handling --

    async def handle(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Process one HTTP request: match, call the handler, send the response."""
        if scope["type"] != "http":
            return

        if not self.router.compiled:
            self.router.compile()

        request = Request.from_asgi(scope, receive)
        await request.body()

        match: RouteMatch | None
        try:
            match = self.router.match(request.method, request.path)
        except (NotFound, MethodNotAllowed) as exc:
            logger.debug("%s %s — %s", request.method, request.path, exc)
            if self._not_found is None:
                await send_response(_error_response(exc), send)
                return
            match = None
        else:
            request = request.with_path_params(match.path_params)

        writer = ResponseWriter(base_uri=self.base_uri)
        session = Session(self.session_config, request.cookies)

        request_token: Token[Request] = request_var.set(request)
        response_token: Token[ResponseWriter] = response_var.set(writer)
        session_token: Token[Session] = session_var.set(session)
        state_token: Token[dict[str, Any]] = state_var.set({})
        try:
            if match is None:
                await invoke(self._not_found)
            else:
                await invoke(match.route.handler, *match.args)
            response = writer.build()
            cookie = session.to_cookie()
            if cookie is not None:
                response = response.with_cookie(cookie)
        except HTTPError as exc:
            logger.debug("%d %s %s — %s", exc.status, request.method, request.path, exc.detail)
            response = _error_response(exc)
        except Exception as exc:
            logger.exception("500 %s %s", request.method, request.path)
            response = self._internal_error_response(exc)
        finally:
            state_var.reset(state_token)
            session_var.reset(session_token)
            response_var.reset(response_token)
            request_var.reset(request_token)

        await send_response(response, send)

    def _internal_error_response(self, exc: Exception) -> Response:
        if not self.debug:
            return Response(body="Internal Server Error", status=500)
        trace = "".join(traceback.format_exception(exc))
        body = f"<h1>500 Internal Server Error</h1><pre>{html.escape(trace)}</pre>"
        return Response(body=body, status=500)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        await self.handle(scope, receive, send)

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Compile the router at startup and acknowledge shutdown."""
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                if not self.router.compiled:
                    self.router.compile()
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return

    def run(self, host: str = "127.0.0.1", port: int = 8000) -> None:
        """Serve this object with uvicorn (``pip install perch[server]``)."""
        import uvicorn

        self.router.compile()
        uvicorn.run(self, host=host, port=port, log_level="debug" if self.debug else "info")


def _error_response(exc: HTTPError) -> Response:
    response = Response(body=exc.detail or f"Error {exc.status}", status=exc.status)
    for name, value in exc.headers:
        response = response.with_header(name, value)
    return response
