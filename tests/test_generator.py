"""
Tests for SimTap generated responses

Tests the canonical request description, cache-first generation and the
mapping of backend failures onto HTTP error envelopes.
"""

import asyncio
import json

import pytest

from simtap.mock.backend import BackendRequestHandler
from simtap.mock.cache import CacheStore, compute_cache_key
from simtap.mock.errors import (
    UpstreamPermanentError,
    UpstreamTimeoutError,
    UpstreamTransientError,
)
from simtap.mock.generator import GeneratedResponseStrategy, describe_request
from simtap.mock.instructions import InstructionsContainer
from simtap.mock.pipeline import MockMetrics
from simtap.mock.routes import RouteInstruction
from simtap.mock.strategies import MockRequest


def make_request(method='GET', path='/v1/customers/42', body=b'', headers=None, query=''):
    url = f'http://127.0.0.1:9000{path}' + (f'?{query}' if query else '')
    return MockRequest(
        method=method,
        path=path,
        url=url,
        query=query,
        headers=headers if headers is not None else [('Accept', 'application/json')],
        body=body
    )


@pytest.fixture
def container():
    return InstructionsContainer('Stripe')


class TestDescribeRequest:
    """Test the canonical curl description."""

    def test_get_without_body(self):
        description = describe_request(make_request())

        assert description == 'curl -X GET -H "accept: application/json" "http://127.0.0.1:9000/v1/customers/42"'

    def test_headers_sorted_and_filtered(self):
        request = make_request(
            method='post',
            path='/v1/charges',
            body=b'{"amount":100}',
            headers=[
                ('X-Trace', 'abc'),
                ('Host', '127.0.0.1:9000'),
                ('Content-Length', '14'),
                ('Connection', 'keep-alive'),
                ('Authorization', 'Bearer sk_test'),
            ]
        )

        description = describe_request(request)

        assert description == (
            'curl -X POST -H "authorization: Bearer sk_test" -H "x-trace: abc" '
            '-d \'{"amount":100}\' "http://127.0.0.1:9000/v1/charges"'
        )

    def test_duplicate_headers_keep_order(self):
        request = make_request(headers=[('X-B', '2'), ('x-a', '1'), ('X-B', '3')])

        description = describe_request(request)

        assert '-H "x-a: 1" -H "x-b: 2" -H "x-b: 3"' in description

    def test_header_order_does_not_change_description(self):
        first = make_request(headers=[('A', '1'), ('B', '2')])
        second = make_request(headers=[('B', '2'), ('A', '1')])

        assert describe_request(first) == describe_request(second)


class TestGeneratedResponseStrategy:
    """Test cache-first generation."""

    def _strategy(self, container, backend, config, cache=True, metrics=None, extra=None):
        return GeneratedResponseStrategy(
            instructions=container,
            handler=BackendRequestHandler(backend, config),
            cache=CacheStore(config.cache_dir) if cache else None,
            extra_instructions=extra,
            metrics=metrics
        )

    @pytest.mark.asyncio
    async def test_generates_and_caches(self, container, make_backend, config):
        backend = make_backend(default='{"id":"cus_42"}')
        metrics = MockMetrics()
        strategy = self._strategy(container, backend, config, metrics=metrics)
        request = make_request()

        first = await strategy.respond(request)
        second = await strategy.respond(request)

        assert first.status_code == 200
        assert first.body == '{"id":"cus_42"}'
        assert first.content_type == 'application/json'
        assert second.body == first.body
        assert len(backend.calls) == 1
        assert metrics.backend_calls == 1
        assert metrics.cache_hits == 1

    @pytest.mark.asyncio
    async def test_cache_record_written_under_key(self, container, make_backend, config, tmp_path):
        strategy = self._strategy(container, make_backend(default='{"a":1}'), config)
        request = make_request()

        await strategy.respond(request)

        key = compute_cache_key(strategy.resolve_instructions(request), describe_request(request))
        record = json.loads((tmp_path / 'mocks' / f'{key}.json').read_text(encoding='utf-8'))
        assert record['response'] == '{"a":1}'
        assert record['originalRequest'] == describe_request(request)

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_serves_body(self, container, make_backend, config, monkeypatch):
        async def failing_put(self, key, body, request_description, instructions):
            raise OSError('disk full')

        monkeypatch.setattr(CacheStore, 'put', failing_put)
        backend = make_backend(default='{"id":"cus_42"}')
        strategy = self._strategy(container, backend, config)

        response = await strategy.respond(make_request())

        assert response.status_code == 200
        assert response.body == '{"id":"cus_42"}'
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_without_cache_always_calls_backend(self, container, make_backend, config):
        backend = make_backend()
        strategy = self._strategy(container, backend, config, cache=False)

        await strategy.respond(make_request())
        await strategy.respond(make_request())

        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_new_instruction_changes_key(self, container, make_backend, config):
        backend = make_backend()
        strategy = self._strategy(container, backend, config)

        await strategy.respond(make_request())
        container.add_instruction('Use EUR for all amounts')
        await strategy.respond(make_request())

        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_turns_sent_to_backend(self, container, make_backend, config):
        container.add_instruction('global')
        container.add_route_instruction(RouteInstruction('/v1/customers/{id}', 'GET', ['route']))
        backend = make_backend()
        strategy = self._strategy(container, backend, config, extra=['extra'])
        request = make_request()

        await strategy.respond(request)

        turns, _ = backend.calls[0]
        assert [t.content for t in turns if t.role == 'instruction'][-3:] == ['global', 'route', 'extra']
        assert turns[-1].role == 'request'
        assert turns[-1].content == describe_request(request)

    @pytest.mark.asyncio
    async def test_blank_generation_is_500(self, container, make_backend, config):
        backend = make_backend('   ')
        strategy = self._strategy(container, backend, config)

        response = await strategy.respond(make_request())

        assert response.status_code == 500
        assert json.loads(response.body)['status'] == 500
        assert len(backend.calls) == 1
        assert CacheStore(config.cache_dir).clear() == 0

    @pytest.mark.asyncio
    async def test_timeout_is_504(self, container, make_backend, config):
        config.max_retries = 0
        strategy = self._strategy(container, make_backend(UpstreamTimeoutError('slow')), config)

        response = await strategy.respond(make_request())

        assert response.status_code == 504
        assert json.loads(response.body) == {
            'error': 'Request timeout while contacting generation backend',
            'status': 504
        }

    @pytest.mark.asyncio
    async def test_exhausted_transient_is_502(self, container, make_backend, config):
        config.max_retries = 0
        strategy = self._strategy(container, make_backend(UpstreamTransientError('busy', status=503)), config)

        response = await strategy.respond(make_request())

        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_permanent_is_502(self, container, make_backend, config):
        backend = make_backend(UpstreamPermanentError('unauthorized', status=401))
        strategy = self._strategy(container, backend, config)

        response = await strategy.respond(make_request())

        assert response.status_code == 502
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_cancelled_is_499(self, container, make_backend, config):
        backend = make_backend()
        strategy = self._strategy(container, backend, config)
        request = make_request()
        request.cancel_event = asyncio.Event()
        request.cancel_event.set()

        response = await strategy.respond(request)

        assert response.status_code == 499
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self, container, make_backend, config):
        strategy = self._strategy(container, make_backend(RuntimeError('boom')), config)

        response = await strategy.respond(make_request())

        assert response.status_code == 500
        assert json.loads(response.body)['error'] == 'Internal server error'
