"""
Tests for SimTap common utilities
"""

import socket

import anthropic
import pytest

from simtap.common import (
    URLTools,
    create_anthropic_client,
    filter_hop_headers,
    find_free_port,
    get_api_key_from_env,
    safe_json_parse,
)


class TestSafeJsonParse:
    """Test lenient JSON parsing."""

    def test_valid(self):
        assert safe_json_parse('{"a": 1}') == {'a': 1}

    def test_invalid_returns_default(self):
        assert safe_json_parse('{oops', default={}) == {}
        assert safe_json_parse('') is None
        assert safe_json_parse(None, default=[]) == []


class TestFilterHopHeaders:
    """Test header filtering."""

    def test_drops_hop_by_hop(self):
        headers = [
            ('Connection', 'keep-alive'),
            ('Transfer-Encoding', 'chunked'),
            ('Accept', 'application/json'),
            ('Upgrade', 'h2c'),
        ]

        assert filter_hop_headers(headers) == [('Accept', 'application/json')]

    def test_additional_excluded_case_insensitive(self):
        headers = [('Host', 'x'), ('X-Keep', '1'), ('Content-Length', '3')]

        assert filter_hop_headers(headers, ['HOST', 'content-length']) == [('X-Keep', '1')]

    def test_keeps_duplicates_in_order(self):
        headers = [('X-A', '1'), ('X-A', '2')]

        assert filter_hop_headers(headers) == headers


class TestURLTools:
    """Test URL helpers."""

    def test_normalize_query_sorts(self):
        assert URLTools.normalize_query('b=2&a=1&c=') == 'a=1&b=2&c='
        assert URLTools.normalize_query('') == ''

    def test_is_absolute_url(self):
        assert URLTools.is_absolute_url('https://api.example.com')
        assert URLTools.is_absolute_url('http://localhost:4010/v1')
        assert not URLTools.is_absolute_url('/relative')
        assert not URLTools.is_absolute_url('ftp://example.com')
        assert not URLTools.is_absolute_url('example.com')

    def test_join_url(self):
        assert URLTools.join_url('https://api.example.com/', '/v1/x') == 'https://api.example.com/v1/x'
        assert URLTools.join_url('https://api.example.com', 'v1/x', 'a=1') == 'https://api.example.com/v1/x?a=1'


class TestFindFreePort:
    """Test port discovery."""

    def test_port_is_bindable(self):
        port = find_free_port()

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(('127.0.0.1', port))


class TestAnthropicClient:
    """Test Anthropic client creation."""

    def test_env_key(self, monkeypatch):
        monkeypatch.setenv('ANTHROPIC_API_KEY', 'from-env')

        assert get_api_key_from_env() == 'from-env'

    def test_missing_key_without_raise(self, monkeypatch):
        monkeypatch.delenv('ANTHROPIC_API_KEY', raising=False)

        client, available, message = create_anthropic_client()

        assert client is None
        assert available is False
        assert 'API key' in message

    def test_missing_key_with_raise(self, monkeypatch):
        monkeypatch.delenv('ANTHROPIC_API_KEY', raising=False)

        with pytest.raises(ValueError):
            create_anthropic_client(raise_on_error=True)

    def test_client_created(self):
        client, available, _ = create_anthropic_client(
            api_key='k', base_url='http://localhost:4010', timeout=5.0
        )

        assert available is True
        assert isinstance(client, anthropic.AsyncAnthropic)
        assert client.max_retries == 0
