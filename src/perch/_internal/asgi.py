"""ASGI callable type aliases.

Raw ASGI shapes used by the micro object, the sender and the test
client. Users interact with ``Request`` and ``ResponseWriter`` instead.
"""

from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any, TypeAlias

Scope: TypeAlias = MutableMapping[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[MutableMapping[str, Any]]]
Send: TypeAlias = Callable[[MutableMapping[str, Any]], Awaitable[None]]

# Any ASGI 3 application
ASGIApp: TypeAlias = Callable[[Scope, Receive, Send], Awaitable[None]]
