"""Dependency container.

Named services registered during setup and looked up by the runner and
by application code. A definition is either a ready instance or a
zero-argument factory; shared factories are built once and cached::

    di = Container()
    di.set_shared("db", lambda: Database(**config.get_section("database")))
    di.get("db")
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from perch.errors import ServiceNotFound


@dataclass(slots=True)
class _Service:
    definition: Any
    shared: bool
    instance: Any = None
    resolved: bool = False


class Container:
    """Name -> service registry with optional shared (build-once) services."""

    __slots__ = ("_services",)

    def __init__(self) -> None:
        self._services: dict[str, _Service] = {}

    def set(self, name: str, definition: Callable[[], Any] | Any, *, shared: bool = False) -> None:
        """Register *definition* under *name*, replacing any earlier one.

        Callables are treated as factories and called on ``get()``.
        Anything else is returned as-is.
        """
        self._services[name] = _Service(definition, shared)

    def set_shared(self, name: str, definition: Callable[[], Any] | Any) -> None:
        self.set(name, definition, shared=True)

    def get(self, name: str) -> Any:
        """Resolve a service. Raises ``ServiceNotFound`` if *name* is unknown."""
        service = self._services.get(name)
        if service is None:
            msg = f"Service {name!r} is not registered in the container"
            raise ServiceNotFound(msg)

        if service.resolved:
            return service.instance

        definition = service.definition
        value = definition() if callable(definition) else definition
        if service.shared:
            service.instance = value
            service.resolved = True
        return value

    def has(self, name: str) -> bool:
        return name in self._services

    def remove(self, name: str) -> None:
        self._services.pop(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._services

    def __repr__(self) -> str:
        return f"Container({sorted(self._services)!r})"
