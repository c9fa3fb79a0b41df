"""
SimTap Response Strategies

Interchangeable ways of producing a response for a matched route.

Every strategy exposes one coroutine, ``respond(request) -> MockResponse``,
and is chosen when the route is configured:
- StaticResponseStrategy: canned body
- FileResponseStrategy: body loaded from a file on first use
- ProxyResponseStrategy: forward to a real API and cache successful bodies
- GeneratedResponseStrategy (see generator.py): backend-generated body
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

import aiofiles
import httpx

from ..common import URLTools, filter_hop_headers
from .cache import CacheStore, compute_cache_key

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
PROXY_INSTRUCTIONS = ["Real API response"]
BODY_METHODS = frozenset({'POST', 'PUT', 'PATCH'})


@dataclass
class MockRequest:
    """A parsed inbound request as delivered by the transport."""

    method: str
    path: str
    url: str
    query: str = ''
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b''
    cancel_event: Optional[asyncio.Event] = None

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a header (case-insensitive)."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return default

    def body_text(self) -> str:
        return self.body.decode('utf-8', errors='replace') if self.body else ''


@dataclass
class MockResponse:
    """What a strategy hands back to the transport."""

    status_code: int = 200
    body: str = ''
    content_type: str = JSON_CONTENT_TYPE
    headers: Dict[str, str] = field(default_factory=dict)


class ResponseStrategy(Protocol):
    """Produce a response for a request."""

    async def respond(self, request: MockRequest) -> MockResponse:
        ...


def error_response(message: str, status_code: int) -> MockResponse:
    """Build the standard ``{"error": ..., "status": ...}`` envelope."""
    payload = {'error': message or 'Unknown error', 'status': status_code}
    return MockResponse(
        status_code=status_code,
        body=json.dumps(payload, separators=(',', ':')),
        content_type=JSON_CONTENT_TYPE
    )


class StaticResponseStrategy:
    """
    Return a fixed body.

    Example:
        StaticResponseStrategy({'message': 'Hello World'})
        StaticResponseStrategy('{"ok": true}', status_code=201)
    """

    def __init__(self, body: Any, status_code: int = 200, content_type: str = JSON_CONTENT_TYPE):
        if body is None:
            raise ValueError("body must not be None")
        self.body = body if isinstance(body, str) else json.dumps(body, separators=(',', ':'))
        self.status_code = status_code
        self.content_type = content_type

    async def respond(self, request: MockRequest) -> MockResponse:
        return MockResponse(
            status_code=self.status_code,
            body=self.body,
            content_type=self.content_type
        )


class FileResponseStrategy:
    """
    Return the contents of a file, read once on first use.

    A missing file raises FileNotFoundError at request time, which the
    pipeline turns into a 500 envelope.
    """

    def __init__(self, file_path: str, status_code: int = 200):
        if file_path is None:
            raise ValueError("file_path must not be None")
        self.file_path = Path(file_path)
        self.status_code = status_code
        self._content: Optional[str] = None

    async def _load(self) -> str:
        if self._content is None:
            async with aiofiles.open(self.file_path, 'r', encoding='utf-8') as f:
                self._content = await f.read()
        return self._content

    async def respond(self, request: MockRequest) -> MockResponse:
        return MockResponse(
            status_code=self.status_code,
            body=await self._load(),
            content_type=JSON_CONTENT_TYPE
        )


class ProxyResponseStrategy:
    """
    Forward requests to a real API and cache successful responses.

    The cache key covers method, path and the sorted query string. Only 2xx
    upstream responses are cached; a cache hit is served as 200 JSON.

    Example:
        strategy = ProxyResponseStrategy(
            'https://api.example.com',
            cache=CacheStore('./mocks'),
            headers={'Authorization': 'Bearer sk_test'}
        )
    """

    def __init__(
        self,
        base_url: str,
        cache: Optional[CacheStore] = None,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        """
        Initialize proxy strategy.

        Args:
            base_url: Absolute URL of the real API
            cache: Optional cache store for successful responses
            headers: Headers added to every forwarded request
            client: Optional shared httpx.AsyncClient. When None, each request
                opens its own client, so no pooled connection outlives the
                event loop that served it
            timeout: Timeout in seconds for per-request clients
        """
        if not base_url or not base_url.strip():
            raise ValueError("Base URL cannot be null or empty")
        if not URLTools.is_absolute_url(base_url.strip()):
            raise ValueError(f"Base URL must be an absolute http(s) URL: {base_url}")

        self.base_url = base_url.strip().rstrip('/')
        self.cache = cache
        self.default_headers = dict(headers or {})
        self.client = client
        self.timeout = timeout

    def cache_key(self, request: MockRequest) -> Tuple[str, str]:
        """Return (key, description) for a request."""
        query = URLTools.normalize_query(request.query)
        description = f"{request.method.upper()} {request.path}"
        if query:
            description = f"{description}?{query}"
        return compute_cache_key(PROXY_INSTRUCTIONS, description), description

    async def respond(self, request: MockRequest) -> MockResponse:
        key, description = self.cache_key(request)

        if self.cache is not None:
            cached = await self.cache.get(key)
            if cached:
                logger.debug(f"Proxy cache hit for {description}")
                return MockResponse(status_code=200, body=cached, content_type=JSON_CONTENT_TYPE)

        method = request.method.upper()
        url = URLTools.join_url(self.base_url, request.path, request.query)
        headers = filter_hop_headers(request.headers, additional_excluded=['host', 'content-length'])
        headers.extend(self.default_headers.items())
        content = request.body if method in BODY_METHODS and request.body else None

        try:
            upstream = await self._send(method, url, headers, content)
        except httpx.HTTPError as e:
            logger.warning(f"Proxy request to {url} failed: {e}")
            return error_response("Failed to proxy request to real API", 502)

        body = upstream.text
        if self.cache is not None and upstream.is_success:
            try:
                await self.cache.put(key, body, f"{method} {url}", PROXY_INSTRUCTIONS)
            except OSError as e:
                logger.warning(f"Failed to cache proxied response: {e}")

        return MockResponse(
            status_code=upstream.status_code,
            body=body,
            content_type=upstream.headers.get('content-type', JSON_CONTENT_TYPE)
        )

    async def _send(
        self,
        method: str,
        url: str,
        headers: List[Tuple[str, str]],
        content: Optional[bytes]
    ) -> httpx.Response:
        if self.client is not None:
            return await self.client.request(method, url, headers=headers, content=content)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, headers=headers, content=content)
