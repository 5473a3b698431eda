"""Trie router.

Routes are registered during setup and compiled into an immutable
lookup structure before the first request is matched.
"""

import re
from dataclasses import dataclass

from perch.errors import ConfigurationError, MethodNotAllowed, NotFound
from perch.routing.params import compile_constraint
from perch.routing.route import PathSegment, Route, RouteMatch

# Flask/werkzeug style ``<name>`` placeholders are a common mistake
_ANGLE_PARAM = re.compile(r"<[^<>/]+>")


def _split_pattern(path: str) -> list[str]:
    """Split on ``/`` outside of ``{...}``, keeping a placeholder in one piece."""
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    for char in path:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if char == "/" and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return [p for p in parts if p]


def parse_path(path: str) -> list[PathSegment]:
    """Parse a route pattern into segments.

    Examples::

        "/users"               -> [PathSegment("users")]
        "/users/{id}"          -> [..., PathSegment("{id}", is_param=True, param_name="id")]
        "/users/{id:int}"      -> [..., PathSegment(..., constraint="int")]
        "/page/{n:[0-9]+}"     -> [..., PathSegment(..., constraint="[0-9]+")]
    """
    if _ANGLE_PARAM.search(path):
        msg = (
            f"Route {path!r} uses <param> placeholders. "
            "Use {param} or {param:regex} instead."
        )
        raise ConfigurationError(msg)

    segments: list[PathSegment] = []
    seen: set[str] = set()
    for part in _split_pattern(path):
        if part.startswith("{") and part.endswith("}"):
            inner = part[1:-1]
            name, sep, constraint = inner.partition(":")
            if not name:
                msg = f"Route {path!r} has a placeholder without a name: {part!r}"
                raise ConfigurationError(msg)
            if name in seen:
                msg = f"Route {path!r} uses the placeholder name {name!r} twice"
                raise ConfigurationError(msg)
            if sep and "/" in constraint:
                # Parameters match a single path segment
                msg = (
                    f"Route {path!r}: constraint {constraint!r} contains '/'. "
                    "Use {name:path} to capture several segments."
                )
                raise ConfigurationError(msg)
            seen.add(name)
            segments.append(
                PathSegment(
                    value=part,
                    is_param=True,
                    param_name=name,
                    constraint=constraint if sep else "str",
                )
            )
        else:
            segments.append(PathSegment(value=part))
    return segments


class _TrieNode:
    """A node in the route trie. Mutable during registration only."""

    __slots__ = ("catch_all", "children", "param_edges", "routes_by_method")

    def __init__(self) -> None:
        # Static segment children: "users" -> node
        self.children: dict[str, _TrieNode] = {}
        # Parameter edges, tried in registration order
        self.param_edges: list[_ParamEdge] = []
        # Catch-all ({name:path}) consuming the rest of the path
        self.catch_all: _CatchAllEdge | None = None
        # Routes ending at this node, keyed by HTTP method
        self.routes_by_method: dict[str, Route] = {}


@dataclass(slots=True)
class _ParamEdge:
    param_name: str
    constraint: str
    regex: re.Pattern[str]
    node: _TrieNode


@dataclass(slots=True)
class _CatchAllEdge:
    param_name: str
    routes_by_method: dict[str, Route]


class Router:
    """Trie router.

    Usage::

        router = Router()
        router.add(Route("/users/{id:int}", handler, frozenset({"GET"})))
        router.compile()
        match = router.match("GET", "/users/42")
        match.args  # ("42",)
    """

    __slots__ = ("_compiled", "_root")

    def __init__(self) -> None:
        self._root = _TrieNode()
        self._compiled = False

    @property
    def compiled(self) -> bool:
        return self._compiled

    def add(self, route: Route) -> None:
        """Add a route. Must be called before ``compile()``.

        Adding the same pattern again for a method replaces the earlier
        handler for that method.
        """
        if self._compiled:
            msg = f"Cannot add route {route.path!r} after the router was compiled."
            raise RuntimeError(msg)

        node = self._root
        for seg in parse_path(route.path):
            if seg.is_param and seg.constraint == "path":
                if node.catch_all is None:
                    node.catch_all = _CatchAllEdge(seg.param_name or "path", {})
                for method in route.methods:
                    node.catch_all.routes_by_method[method] = route
                return

            if seg.is_param:
                node = self._param_node(node, seg, route.path)
            else:
                node = node.children.setdefault(seg.value, _TrieNode())

        for method in route.methods:
            node.routes_by_method[method] = route

    @staticmethod
    def _param_node(node: _TrieNode, seg: PathSegment, pattern: str) -> _TrieNode:
        """Reuse an edge with the same name and constraint, else add one."""
        for edge in node.param_edges:
            if edge.param_name == seg.param_name and edge.constraint == seg.constraint:
                return edge.node
        edge = _ParamEdge(
            param_name=seg.param_name or "",
            constraint=seg.constraint,
            regex=compile_constraint(seg.constraint, pattern=pattern),
            node=_TrieNode(),
        )
        node.param_edges.append(edge)
        return edge.node

    @property
    def routes(self) -> list[Route]:
        """All registered routes, each listed once."""
        seen: set[int] = set()
        result: list[Route] = []

        def collect(routes: dict[str, Route]) -> None:
            for route in routes.values():
                if id(route) not in seen:
                    seen.add(id(route))
                    result.append(route)

        stack = [self._root]
        while stack:
            node = stack.pop()
            collect(node.routes_by_method)
            if node.catch_all is not None:
                collect(node.catch_all.routes_by_method)
            stack.extend(edge.node for edge in reversed(node.param_edges))
            stack.extend(reversed(list(node.children.values())))
        return result

    def compile(self) -> None:
        """Freeze the router. No more routes can be added."""
        self._compiled = True

    def match(self, method: str, path: str) -> RouteMatch:
        """Match a request method and path.

        Raises ``NotFound`` if no route matches the path.
        Raises ``MethodNotAllowed`` if the path matches but the method doesn't.
        """
        parts = [p for p in path.strip("/").split("/") if p]
        found = self._match_node(self._root, parts, 0, {})
        if found is None:
            raise NotFound(f"No route matches {method} {path!r}")

        routes, params = found
        if method in routes:
            return RouteMatch(route=routes[method], path_params=params)
        raise MethodNotAllowed(frozenset(routes))

    def _match_node(
        self,
        node: _TrieNode,
        parts: list[str],
        index: int,
        params: dict[str, str],
    ) -> tuple[dict[str, Route], dict[str, str]] | None:
        """Depth-first match: static children, then params, then catch-all."""
        if index == len(parts):
            if node.routes_by_method:
                return node.routes_by_method, params
            return None

        part = parts[index]

        child = node.children.get(part)
        if child is not None:
            found = self._match_node(child, parts, index + 1, params)
            if found is not None:
                return found

        for edge in node.param_edges:
            if edge.regex.match(part):
                found = self._match_node(
                    edge.node, parts, index + 1, {**params, edge.param_name: part}
                )
                if found is not None:
                    return found

        if node.catch_all is not None:
            remaining = "/".join(parts[index:])
            return node.catch_all.routes_by_method, {
                **params,
                node.catch_all.param_name: remaining,
            }

        return None
