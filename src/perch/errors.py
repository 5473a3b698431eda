"""Perch exception hierarchy.

Shared across config, factory, templating, micro and runner so every
module raises and catches the same types.
"""

from dataclasses import dataclass


class PerchError(Exception):
    """Base for all perch-specific errors."""


class ConfigurationError(PerchError):
    """Raised when setup-time wiring is invalid.

    Startup failures (config, factory, runner setup) derive from this.
    """


# -- Config --


class ConfigAlreadyLoaded(ConfigurationError):  # noqa: N818
    """A config object was asked to load a second file."""


class ConfigParseError(ConfigurationError):
    """The ini file is missing, unreadable, or malformed."""


class ConfigSectionNotFound(ConfigurationError, LookupError):  # noqa: N818
    """A whole section was requested but is not in the config."""


# -- Factory --


class FactoryClassNotFound(ConfigurationError, LookupError):  # noqa: N818
    """The configured implementation name does not resolve to a class."""


class FactoryInvalidOption(ConfigurationError):  # noqa: N818
    """The implementation does not extend the base and implement the interface."""


# -- Runner setup --


class FolderNotWritable(ConfigurationError):  # noqa: N818
    """The writable folder handed to the runner is not a writable directory."""


class RoutesAlreadyRegistered(ConfigurationError):  # noqa: N818
    """``register_routes()`` was called a second time on the same runner."""


class HandlerNotFound(ConfigurationError, LookupError):  # noqa: N818
    """A route entry names a handler or access check the runner does not define."""


# -- DI --


class ServiceNotFound(PerchError, LookupError):  # noqa: N818
    """No service is registered under the requested name."""


# -- Templating --


class TemplateDirNotSet(PerchError):  # noqa: N818
    """``load_template()`` was called before ``set_template_dir()``."""


class TemplateNotFound(PerchError, LookupError):  # noqa: N818
    """The template backend cannot locate the named template."""


# -- HTTP --


@dataclass(frozen=True, slots=True)
class HTTPError(PerchError):
    """An error that maps directly to an HTTP status code.

    Raised by the router, access checks, or handlers. The micro object
    catches these and turns them into a response with ``status``.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818 — conventional name in web frameworks
    """404 — no route matched the request path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class Forbidden(HTTPError):  # noqa: N818 — conventional name in web frameworks
    """403 — an access check refused the request."""

    def __init__(self, detail: str = "Forbidden") -> None:
        super().__init__(status=403, detail=detail)


class MethodNotAllowed(HTTPError):  # noqa: N818 — conventional name in web frameworks
    """405 — route exists but not for this HTTP method.

    Includes an ``Allow`` header listing the valid methods.
    """

    def __init__(self, allowed: frozenset[str], detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        default_detail = f"Method not allowed. Allowed methods: {allow_value}"
        super().__init__(
            status=405,
            detail=detail or default_detail,
            headers=(("Allow", allow_value),),
        )
