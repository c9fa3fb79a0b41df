"""
Tests for SimTap route registry

Tests pattern compilation, method matching and registry ordering.
"""

import threading

import pytest

from simtap.mock.routes import (
    RouteConfiguration,
    RouteInstruction,
    RoutePattern,
    RouteRegistry,
)
from simtap.mock.strategies import StaticResponseStrategy


@pytest.fixture
def strategy():
    return StaticResponseStrategy({'ok': True})


class TestRoutePattern:
    """Test placeholder translation and matching."""

    def test_literal_pattern(self):
        pattern = RoutePattern('/api/test')

        assert pattern.matches('/api/test')
        assert not pattern.matches('/api/test/extra')
        assert not pattern.matches('/api')

    def test_named_placeholder_matches_one_segment(self):
        pattern = RoutePattern('/api/users/{id}')

        assert pattern.matches('/api/users/42')
        assert pattern.matches('/api/users/abc-def')
        assert not pattern.matches('/api/users/42/orders')
        assert not pattern.matches('/api/users/')

    def test_wildcard_matches_rest_of_path(self):
        pattern = RoutePattern('/files/{*}')

        assert pattern.matches('/files/a')
        assert pattern.matches('/files/a/b/c.txt')
        assert pattern.matches('/files/')

    def test_case_insensitive(self):
        assert RoutePattern('/API/Users/{id}').matches('/api/users/7')

    def test_regex_metacharacters_are_literal(self):
        pattern = RoutePattern('/v1/items.json')

        assert pattern.matches('/v1/items.json')
        assert not pattern.matches('/v1/itemsXjson')

    def test_multiple_placeholders(self):
        pattern = RoutePattern('/orgs/{org}/repos/{repo}')

        assert pattern.matches('/orgs/acme/repos/widgets')
        assert not pattern.matches('/orgs/acme/repos')

    def test_unbalanced_brace_is_literal(self):
        pattern = RoutePattern('/weird/{id')

        assert pattern.matches('/weird/{id')
        assert not pattern.matches('/weird/42')


class TestRouteConfiguration:
    """Test route immutability and method handling."""

    def test_method_normalized_to_upper(self, strategy):
        route = RouteConfiguration('/api/test', strategy, 'get')

        assert route.method == 'GET'
        assert route.matches('/api/test', 'GET')
        assert route.matches('/api/test', 'get')
        assert not route.matches('/api/test', 'POST')

    def test_wildcard_method(self, strategy):
        route = RouteConfiguration('/api/test', strategy)

        assert route.method == '*'
        for method in ['GET', 'POST', 'DELETE', 'PATCH']:
            assert route.matches('/api/test', method)

    def test_missing_strategy_rejected(self):
        with pytest.raises(ValueError):
            RouteConfiguration('/api/test', None)

    def test_frozen(self, strategy):
        route = RouteConfiguration('/api/test', strategy)

        with pytest.raises(AttributeError):
            route.pattern = '/other'


class TestRouteInstruction:
    """Test route instruction matching."""

    def test_matches_like_routes(self):
        instruction = RouteInstruction('/v1/customers/{id}', 'get', ['Return an active customer'])

        assert instruction.method == 'GET'
        assert instruction.matches('/v1/customers/cus_1', 'GET')
        assert not instruction.matches('/v1/customers/cus_1', 'DELETE')

    def test_instructions_copied(self):
        source = ['one']
        instruction = RouteInstruction('/x', instructions=source)
        source.append('two')

        assert instruction.instructions == ['one']


class TestRouteRegistry:
    """Test registry ordering, removal and thread safety."""

    def test_first_added_wins(self):
        first = StaticResponseStrategy('first')
        second = StaticResponseStrategy('second')
        registry = RouteRegistry()
        registry.add(RouteConfiguration('/api/{*}', first))
        registry.add(RouteConfiguration('/api/users', second))

        assert registry.match('/api/users', 'GET').strategy is first

    def test_no_match_returns_none(self, strategy):
        registry = RouteRegistry()
        registry.add(RouteConfiguration('/api/test', strategy, 'GET'))

        assert registry.match('/api/other', 'GET') is None
        assert registry.match('/api/test', 'POST') is None

    def test_remove_exact_pattern_and_method(self, strategy):
        registry = RouteRegistry()
        registry.add(RouteConfiguration('/api/test', strategy, 'GET'))

        assert registry.remove('/api/test', 'POST') is False
        assert registry.remove('/api/test', 'get') is True
        assert registry.remove('/api/test', 'GET') is False
        assert len(registry) == 0

    def test_remove_only_first_duplicate(self, strategy):
        registry = RouteRegistry()
        registry.add(RouteConfiguration('/api/test', strategy))
        registry.add(RouteConfiguration('/api/test', strategy))

        assert registry.remove('/api/test') is True
        assert len(registry) == 1

    def test_clear(self, strategy):
        registry = RouteRegistry()
        registry.add(RouteConfiguration('/a', strategy))
        registry.add(RouteConfiguration('/b', strategy))
        registry.clear()

        assert len(registry) == 0
        assert registry.match('/a', 'GET') is None

    def test_routes_snapshot(self, strategy):
        registry = RouteRegistry()
        registry.add(RouteConfiguration('/a', strategy))
        snapshot = registry.routes()
        registry.add(RouteConfiguration('/b', strategy))

        assert [r.pattern for r in snapshot] == ['/a']
        assert [r.pattern for r in registry.routes()] == ['/a', '/b']

    def test_concurrent_adds(self, strategy):
        registry = RouteRegistry()

        def add_many(prefix):
            for i in range(100):
                registry.add(RouteConfiguration(f'/{prefix}/{i}', strategy))

        threads = [threading.Thread(target=add_many, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registry) == 800
