"""Perch — a route-table runner for ASGI applications.

Loads an ini config, builds a micro application object (container,
trie router, request/response/session services), turns a declarative
route table into router registrations guarded by access checks, and
wraps handler output in layout/page templates rendered by a configured
template backend (kida by default).

Basic usage::

    from perch import Runner

    class Site(Runner):
        def init(self):
            self.template.set_template_dir("templates")
            self.register_routes([("/", None, "home")])

        def home_get(self):
            return "<h1>Hello</h1>"

    Site("app.ini", "writable").run()
"""

__version__ = "0.1.0"
__all__ = [
    "AppConfig",
    "Capability",
    "ConfigurationError",
    "Container",
    "FactoryLoader",
    "Forbidden",
    "HTTPError",
    "KidaTemplate",
    "Micro",
    "NotFound",
    "PerchError",
    "Request",
    "Response",
    "Runner",
    "Template",
    "TemplateInterface",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import perch`` cheap; kida is only imported when the
    template backend is actually used.
    """
    if name == "Runner":
        from perch.runner import Runner

        return Runner

    if name == "Micro":
        from perch.micro import Micro

        return Micro

    if name == "AppConfig":
        from perch.config import AppConfig

        return AppConfig

    if name in ("Capability", "FactoryLoader"):
        from perch import factory as _factory

        return getattr(_factory, name)

    if name == "Container":
        from perch.di import Container

        return Container

    if name in ("Template", "TemplateInterface"):
        from perch.templating import base as _base

        return getattr(_base, name)

    if name == "KidaTemplate":
        from perch.templating.kida_template import KidaTemplate

        return KidaTemplate

    if name == "Request":
        from perch.http.request import Request

        return Request

    if name == "Response":
        from perch.http.response import Response

        return Response

    if name in ("PerchError", "ConfigurationError", "HTTPError", "NotFound", "Forbidden"):
        from perch import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
