"""Application runner.

Subclass ``Runner``, register routes in ``init()``, and implement one
method per route and HTTP method plus any access checks::

    class Site(Runner):
        def init(self):
            self.template.set_template_dir("templates")
            self.set_page_template("page.html")
            self.register_routes([
                ("/", None, "home"),
                ("/clipart/{term}", "login_required", "clipart"),
                ("/clipart/{term}/{page:[0-9]+}", "login_required:1|not_banned", "clipart", "get|post"),
            ])

        def accesscheck_login_required(self, strict="0"):
            if not self.session_value("user"):
                raise Forbidden()

        def home_get(self):
            return "<p>Welcome</p>"

    site = Site("app.ini", "/var/site/writable")
    site.run()

Access checks are pipe-separated; arguments follow the check name,
separated by colons, and arrive as strings (use ``1`` for true). A check
rejects the request by raising; nothing after it runs.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from perch._internal.asgi import Receive, Scope, Send
from perch._internal.invoke import invoke
from perch.config import AppConfig, apply_timezone
from perch.context import request_state
from perch.di import Container
from perch.errors import (
    ConfigurationError,
    FolderNotWritable,
    HandlerNotFound,
    RoutesAlreadyRegistered,
)
from perch.factory import FactoryLoader
from perch.micro import Micro
from perch.session import SessionConfig
from perch.templating.base import TemplateInterface

logger = logging.getLogger("perch.runner")

# (pattern, access_checks, handler_name[, methods])
type RouteEntry = tuple[str, str | None, str] | tuple[str, str | None, str, str | None]

HANDLER_SEPARATOR = "_"
ACCESS_CHECK_PREFIX = "accesscheck_"
DEFAULT_METHODS = "get"
WRAPPERS_STATE_KEY = "perch.runner.wrappers"


@dataclass(frozen=True, slots=True)
class AccessCheck:
    """One parsed access check, bound to the runner method that implements it."""

    name: str
    args: tuple[str, ...]
    predicate: Callable[..., Any]


def parse_access_checks(value: str | None) -> list[tuple[str, tuple[str, ...]]]:
    """Split ``"a:1|b"`` into ``[("a", ("1",)), ("b", ())]``. Empty names are skipped."""
    if not value:
        return []
    checks: list[tuple[str, tuple[str, ...]]] = []
    for item in value.split("|"):
        name, *args = item.split(":")
        name = name.strip()
        if name:
            checks.append((name, tuple(args)))
    return checks


def parse_methods(value: str | None) -> list[str]:
    """Split ``"get|post"`` into lower-cased method names (default ``get``)."""
    methods = [m.strip().lower() for m in (value or DEFAULT_METHODS).split("|")]
    return [m for m in methods if m] or [DEFAULT_METHODS]


class Runner(ABC):
    """Base class of a routed application.

    Construction loads the config, checks the writable folder, sets the
    process timezone, builds the micro object and the template backend,
    then calls ``init()``. The micro object and template backend can be
    injected instead of built from config.
    """

    def __init__(
        self,
        config_file: str | os.PathLike[str] | None,
        writable_folder: str | os.PathLike[str],
        *,
        config: AppConfig | None = None,
        micro: Micro | None = None,
        template: TemplateInterface | None = None,
        loader: FactoryLoader | None = None,
    ) -> None:
        self.config = config if config is not None else AppConfig()
        if config_file is not None:
            self.config.load(config_file)
        elif not self.config.loaded:
            msg = "Runner needs a config file or an already loaded AppConfig."
            raise ConfigurationError(msg)

        folder = Path(writable_folder)
        if not (folder.is_dir() and os.access(folder, os.W_OK)):
            msg = f"Folder is not writable: {folder}"
            raise FolderNotWritable(msg)
        self.writable_folder = folder

        self.timezone = apply_timezone(self.config)

        self.micro = micro if micro is not None else self.create_micro()

        self.loader = loader if loader is not None else FactoryLoader.default(self.config)
        self.template: TemplateInterface = (
            template
            if template is not None
            else self.loader.load("Template", as_singleton=False, params=str(folder))
        )

        self.routes: tuple[RouteEntry, ...] | None = None
        # Wrapper templates chosen in init(); handlers override them per request
        self._default_wrappers: dict[str, str | None] = {"layout": None, "page": None}
        # handler base name -> method -> bound handler
        self._handlers: dict[str, dict[str, Callable[..., Any]]] = {}
        # access check string -> bound checks
        self._access_checks: dict[str, tuple[AccessCheck, ...]] = {}

        self.init()

    @abstractmethod
    def init(self) -> None:
        """Set up templates and call ``register_routes()``."""

    # -- Composition --

    def create_micro(self) -> Micro:
        """Build the micro object and its container from config."""
        di = Container()
        di.set_shared("config", self.config)

        if self.config.get_bool("runner", "database_service"):
            settings = self.config.get_section("database")
            di.set_shared("db", lambda: self.create_database(settings))

        return Micro(
            di,
            base_uri=self.config.get("app", "base_uri", "/"),
            debug=self.config.get_bool("app", "debug"),
            session_config=SessionConfig(
                secret_key=self.config.get("session", "secret_key", ""),
                cookie_name=self.config.get("session", "cookie_name", "perch_session"),
                max_age=self.config.get_int("session", "max_age", 86400),
                secure=self.config.get_bool("session", "secure"),
            ),
        )

    def create_database(self, settings: dict[str, str]) -> Any:
        """Build the ``db`` service from the ``[database]`` section.

        Override when ``[runner] database_service = on``.
        """
        msg = (
            f"{type(self).__name__} enables [runner] database_service "
            "but does not override create_database()."
        )
        raise ConfigurationError(msg)

    # -- Routes --

    def register_routes(self, routes: Iterable[Sequence[Any]]) -> None:
        """Register the route table. Allowed once per runner.

        Each entry is ``(pattern, access_checks, handler_name[, methods])``;
        methods are pipe-separated and default to ``get``. Handler and
        access check methods are looked up now, so a typo fails at startup.
        """
        if self.routes is not None:
            msg = "Routes have already been registered"
            raise RoutesAlreadyRegistered(msg)

        entries: list[RouteEntry] = []
        for route in routes:
            if not 3 <= len(route) <= 4:
                msg = f"Route entries need 3 or 4 items, got {route!r}"
                raise ConfigurationError(msg)
            entries.append(tuple(route))  # type: ignore[arg-type]
        self.routes = tuple(entries)

        self.micro.not_found(self._handle_not_found)

        for entry in entries:
            pattern, access_checks, handler_name = entry[0], entry[1], entry[2]
            methods = parse_methods(entry[3] if len(entry) == 4 else None)

            self._bind_access_checks(access_checks)
            for method in methods:
                self._bind_handler(handler_name, method)

            callback = self._route_callback(handler_name, access_checks)
            for method in methods:
                self.micro.map(pattern, callback, (method,))
            logger.debug("Registered %s %s -> %s", "|".join(methods).upper(), pattern, handler_name)

    def _route_callback(self, handler_name: str, access_checks: str | None) -> Callable[..., Any]:
        async def callback(*args: str) -> None:
            await self.dispatch(handler_name, access_checks, args)

        callback.__qualname__ = f"{type(self).__qualname__}.{handler_name}"
        return callback

    def _bind_handler(self, handler_name: str, method: str) -> Callable[..., Any]:
        by_method = self._handlers.setdefault(handler_name, {})
        handler = by_method.get(method)
        if handler is None:
            attr = f"{handler_name}{HANDLER_SEPARATOR}{method}"
            handler = getattr(self, attr, None)
            if not callable(handler):
                msg = f"{type(self).__name__} has no handler method {attr}()"
                raise HandlerNotFound(msg)
            by_method[method] = handler
        return handler

    def _bind_access_checks(self, access_checks: str | None) -> tuple[AccessCheck, ...]:
        key = access_checks or ""
        checks = self._access_checks.get(key)
        if checks is None:
            bound: list[AccessCheck] = []
            for name, args in parse_access_checks(access_checks):
                attr = f"{ACCESS_CHECK_PREFIX}{name}"
                predicate = getattr(self, attr, None)
                if not callable(predicate):
                    msg = f"{type(self).__name__} has no access check method {attr}()"
                    raise HandlerNotFound(msg)
                bound.append(AccessCheck(name, args, predicate))
            checks = tuple(bound)
            self._access_checks[key] = checks
        return checks

    # -- Dispatch --

    async def dispatch(
        self,
        handler_name: str,
        access_checks: str | None,
        args: Sequence[Any] = (),
    ) -> None:
        """Run access checks, call the handler, wrap and write its output.

        The handler is ``<handler_name>_<request method>``. Its return value
        is rendered through the layout template and then the page template
        (each as ``content``) when those are set.
        """
        for check in self._bind_access_checks(access_checks):
            logger.debug("Access check %s%r before %s", check.name, check.args, handler_name)
            await invoke(check.predicate, *check.args)

        handler = self._bind_handler(handler_name, self.micro.request.method.lower())
        output = await invoke(handler, *args)

        wrappers = self._wrappers()
        if wrappers["layout"]:
            output = self.template.load_template(wrappers["layout"], _content(output))
        if wrappers["page"]:
            output = self.template.load_template(wrappers["page"], _content(output))

        if output is not None:
            self.micro.response.write(str(output))

    async def _handle_not_found(self) -> None:
        self.set_status_code(404, "Not Found")
        await invoke(self.show_404_page)

    def show_404_page(self) -> None:
        """Write the 404 page body. Override for a custom page."""
        self.micro.response.write("<h1>Page Not Found</h1>")

    # -- Response helpers --

    def set_status_code(self, status: int, message: str) -> None:
        """Set the HTTP status and send headers."""
        self.micro.response.set_status_code(status, message).send_headers()

    def redirect(self, path: str) -> None:
        """Redirect to another route of this application."""
        # The micro redirect prefixes base_uri; drop one slash so it isn't doubled
        if path.startswith("/"):
            path = path[1:]
        self.micro.response.redirect(path).send_headers()

    # -- Templates --

    def _wrappers(self) -> dict[str, str | None]:
        """Wrapper templates in effect: the request's copy inside a request, else the defaults."""
        state = request_state()
        if state is None:
            return self._default_wrappers
        wrappers = state.get(WRAPPERS_STATE_KEY)
        if wrappers is None:
            wrappers = state[WRAPPERS_STATE_KEY] = dict(self._default_wrappers)
        return wrappers

    @property
    def page_template(self) -> str | None:
        return self._wrappers()["page"]

    @property
    def layout_template(self) -> str | None:
        return self._wrappers()["layout"]

    def set_page_template(self, template: str | None) -> None:
        """Set the outermost wrapper template (``None`` to disable).

        Called from ``init()`` this sets the default for every request;
        called while handling a request it only affects that response.
        """
        self._wrappers()["page"] = template

    def set_layout_template(self, template: str | None) -> None:
        """Set the wrapper template applied directly around handler output.

        Scoped like ``set_page_template()``.
        """
        self._wrappers()["layout"] = template

    def set_is_ajax_response(self) -> None:
        """Turn off both wrapper templates for this response."""
        self.set_layout_template(None)
        self.set_page_template(None)

    # -- Request values --

    def get_value(self, name: str, default: Any = "") -> Any:
        """A query string value, or *default*."""
        return self.micro.request.query.get(name, default)

    def post_value(self, name: str, default: Any = "") -> Any:
        """A urlencoded form value, or *default*."""
        return self.micro.request.post.get(name, default)

    def session_value(self, name: str, default: Any = "") -> Any:
        """A session value, or *default*."""
        return self.micro.session.get(name, default)

    def set_session_value(self, name: str, value: Any) -> None:
        """Store a session value, starting the session if needed."""
        self.micro.session[name] = value

    def unset_session_value(self, name: str) -> None:
        """Remove a session value, starting the session if needed."""
        self.micro.session.discard(name)

    # -- Serving --

    def run(self, host: str | None = None, port: int | None = None) -> None:
        """Serve the application (blocks)."""
        self.micro.run(
            host or self.config.get("server", "host", "127.0.0.1"),
            port or self.config.get_int("server", "port", 8000),
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI entry point, delegating to the micro object."""
        await self.micro(scope, receive, send)


def _content(output: Any) -> dict[str, Any]:
    # A handler that returns nothing still gets its wrappers, with empty content
    return {"content": "" if output is None else output}
