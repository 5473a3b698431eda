"""Request-scoped context via ContextVar.

The micro object sets these before calling a route handler and resets
them afterwards. Outside a request, ``get_request()`` raises
``LookupError`` and ``current_request()`` returns ``None``.

``state_var`` holds a plain dict that lives exactly as long as one
request. Components keep per-request overrides of their shared setup
there (the runner's wrapper templates, template variables persisted by a
handler), so nothing a handler changes outlives its response.
"""

from contextvars import ContextVar
from typing import Any

from perch.http.request import Request
from perch.http.response import ResponseWriter
from perch.session import Session

request_var: ContextVar[Request] = ContextVar("perch_request")
response_var: ContextVar[ResponseWriter] = ContextVar("perch_response")
session_var: ContextVar[Session] = ContextVar("perch_session")
state_var: ContextVar[dict[str, Any]] = ContextVar("perch_state")


def get_request() -> Request:
    """Return the current request. Raises ``LookupError`` outside a request."""
    return request_var.get()


def current_request() -> Request | None:
    """Return the current request, or ``None`` outside a request."""
    return request_var.get(None)


def get_response() -> ResponseWriter:
    """Return the response being built. Raises ``LookupError`` outside a request."""
    return response_var.get()


def get_session() -> Session:
    """Return the request's session. Raises ``LookupError`` outside a request."""
    return session_var.get()


def request_state() -> dict[str, Any] | None:
    """Return the current request's scratch dict, or ``None`` outside a request."""
    return state_var.get(None)
