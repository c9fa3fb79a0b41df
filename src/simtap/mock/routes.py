"""
SimTap Route Registry

Ordered (pattern, method) -> response strategy bindings.

Pattern syntax:
- ``{name}`` matches exactly one path segment (no '/')
- ``{*}`` matches any remaining characters, including '/'
- everything else is matched literally

Matching is case-insensitive for both path and method, and ``*`` as the
method matches every verb. When several routes match, the first one added wins.
"""

import re
import threading
from dataclasses import dataclass, field
from typing import Any, List, Optional

_PLACEHOLDER = re.compile(r'\{(\*|[A-Za-z_][A-Za-z0-9_]*)\}')

WILDCARD_METHOD = '*'


class RoutePattern:
    """
    Compiled route pattern.

    Example:
        pattern = RoutePattern('/api/customers/{id}')
        pattern.matches('/API/customers/42')   # True
        pattern.matches('/api/customers/4/2')  # False
    """

    def __init__(self, pattern: str):
        if pattern is None:
            raise ValueError("pattern must not be None")
        self.pattern = pattern
        self.regex = self._compile(pattern)

    @staticmethod
    def _compile(pattern: str) -> re.Pattern:
        """Translate placeholders to a regex, falling back to a literal match."""
        try:
            parts = []
            position = 0
            for placeholder in _PLACEHOLDER.finditer(pattern):
                parts.append(re.escape(pattern[position:placeholder.start()]))
                parts.append('.*' if placeholder.group(1) == '*' else '[^/]+')
                position = placeholder.end()
            parts.append(re.escape(pattern[position:]))
            return re.compile(''.join(parts), re.IGNORECASE)
        except re.error:
            return re.compile(re.escape(pattern), re.IGNORECASE)

    def matches(self, path: str) -> bool:
        return self.regex.fullmatch(path) is not None

    def __repr__(self) -> str:
        return f"RoutePattern({self.pattern!r})"


def _normalize_method(method: Optional[str]) -> str:
    return (method or WILDCARD_METHOD).strip().upper() or WILDCARD_METHOD


def _method_matches(route_method: str, method: str) -> bool:
    return route_method == WILDCARD_METHOD or route_method == (method or '').upper()


@dataclass(frozen=True)
class RouteConfiguration:
    """
    A route bound to a response strategy.

    Immutable after creation. To change a route, remove it and add a new one.
    """

    pattern: str
    strategy: Any
    method: str = WILDCARD_METHOD
    compiled: RoutePattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.strategy is None:
            raise ValueError(f"No response strategy configured for route {self.method} {self.pattern}")
        object.__setattr__(self, 'method', _normalize_method(self.method))
        object.__setattr__(self, 'compiled', RoutePattern(self.pattern))

    def matches(self, path: str, method: str) -> bool:
        """Check whether this route handles the given path and method."""
        return _method_matches(self.method, method) and self.compiled.matches(path)


@dataclass
class RouteInstruction:
    """
    Instructions that steer generated content for matching requests.

    Uses the same matching rules as RouteConfiguration, but lives in the
    InstructionsContainer, so a route can have a strategy, instructions, or both.
    """

    pattern: str
    method: str = WILDCARD_METHOD
    instructions: List[str] = field(default_factory=list)
    compiled: RoutePattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self.method = _normalize_method(self.method)
        self.instructions = list(self.instructions)
        self.compiled = RoutePattern(self.pattern)

    def matches(self, path: str, method: str) -> bool:
        """Check whether these instructions apply to the given path and method."""
        return _method_matches(self.method, method) and self.compiled.matches(path)


class RouteRegistry:
    """
    Thread-safe ordered collection of routes.

    The lock covers only the registry operation itself. Callers run the
    matched route's strategy after ``match`` returns, so a slow strategy
    never blocks route configuration.

    Example:
        registry = RouteRegistry()
        registry.add(RouteConfiguration('/api/users/{id}', strategy, 'GET'))
        route = registry.match('/api/users/7', 'get')
    """

    def __init__(self):
        self._routes: List[RouteConfiguration] = []
        self._lock = threading.Lock()

    def add(self, route: RouteConfiguration) -> None:
        with self._lock:
            self._routes.append(route)

    def remove(self, pattern: str, method: str = WILDCARD_METHOD) -> bool:
        """
        Remove the first route with this exact pattern and method.

        Args:
            pattern: Pattern string as it was registered
            method: HTTP method as it was registered (case-insensitive)

        Returns:
            True if a route was removed, False if none matched
        """
        method = _normalize_method(method)
        with self._lock:
            for index, route in enumerate(self._routes):
                if route.pattern == pattern and route.method == method:
                    del self._routes[index]
                    return True
        return False

    def clear(self) -> None:
        with self._lock:
            self._routes.clear()

    def match(self, path: str, method: str) -> Optional[RouteConfiguration]:
        """
        Find the first route, in insertion order, matching path and method.

        Returns:
            Matching RouteConfiguration or None
        """
        with self._lock:
            for route in self._routes:
                if route.matches(path, method):
                    return route
        return None

    def routes(self) -> List[RouteConfiguration]:
        """Snapshot of the registered routes in insertion order."""
        with self._lock:
            return list(self._routes)

    def __len__(self) -> int:
        with self._lock:
            return len(self._routes)
