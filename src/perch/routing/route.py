"""Route and RouteMatch frozen dataclasses."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route pattern.

    Static:      ``/users``            (is_param=False)
    Param:       ``/{id}``             (param_name="id", constraint="str")
    Converter:   ``/{id:int}``         (constraint="int")
    Regex:       ``/{page:[0-9]+}``    (constraint="[0-9]+")
    """

    value: str
    is_param: bool = False
    param_name: str | None = None
    constraint: str = "str"


@dataclass(frozen=True, slots=True)
class Route:
    """A registered route: one pattern, one handler, a set of methods."""

    path: str
    handler: Callable[..., Any]
    methods: frozenset[str]
    name: str | None = None


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match.

    ``path_params`` keeps the order the placeholders appear in the pattern.
    """

    route: Route
    path_params: dict[str, str]

    @property
    def args(self) -> tuple[str, ...]:
        """Captured values as positional handler arguments."""
        return tuple(self.path_params.values())
