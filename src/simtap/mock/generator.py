"""
SimTap Response Generator

Backend-generated response bodies for mock routes.

Flow for one request:
1. Describe the request canonically as a curl command
2. Resolve instructions and derive the cache key
3. Serve a cache hit without calling the backend
4. Otherwise invoke the backend, persist the body, and serve it

Backend failures are mapped onto the standard error envelope:
empty content -> 500, upstream failure -> 502, timeout -> 504,
caller cancellation -> 499.
"""

import logging
from typing import List, Optional, Sequence

from ..common import filter_hop_headers
from .backend import BackendRequestHandler, build_turns
from .cache import CacheStore, compute_cache_key
from .errors import (
    BackendError,
    GenerationEmptyError,
    RequestCancelledError,
    UpstreamTimeoutError,
)
from .instructions import InstructionsContainer
from .strategies import JSON_CONTENT_TYPE, MockRequest, MockResponse, error_response

logger = logging.getLogger(__name__)

# Headers that vary per connection rather than per request
DESCRIPTION_EXCLUDED_HEADERS = ['host', 'content-length']


def describe_request(request: MockRequest) -> str:
    """
    Serialize a request into its canonical curl description.

    Headers are sorted by lower-cased name (values keep their relative
    order) and hop-by-hop headers are dropped, so the same logical request
    always yields the same text.

    Args:
        request: Parsed inbound request

    Returns:
        Description such as ``curl -X POST -H "accept: */*" -d '{"a":1}' "http://host/api"``
    """
    parts = [f"curl -X {request.method.upper()}"]

    headers = filter_hop_headers(request.headers, additional_excluded=DESCRIPTION_EXCLUDED_HEADERS)
    for name, value in sorted(headers, key=lambda h: h[0].lower()):
        parts.append(f'-H "{name.lower()}: {value}"')

    body = request.body_text()
    if body:
        parts.append(f"-d '{body}'")

    parts.append(f'"{request.url}"')
    return ' '.join(parts)


class GeneratedResponseStrategy:
    """
    Generate response bodies with the text-generation backend.

    Example:
        strategy = GeneratedResponseStrategy(
            instructions=container,
            handler=BackendRequestHandler(backend, config),
            cache=CacheStore('./mocks'),
            extra_instructions=['Return 3 items in the list']
        )
    """

    def __init__(
        self,
        instructions: InstructionsContainer,
        handler: BackendRequestHandler,
        cache: Optional[CacheStore] = None,
        extra_instructions: Optional[Sequence[str]] = None,
        metrics: Optional[object] = None
    ):
        """
        Initialize generated strategy.

        Args:
            instructions: Container resolving per-request instructions
            handler: Backend invoker (admission, retry, backoff)
            cache: Optional cache store; None disables caching
            extra_instructions: Appended after the container's instructions
            metrics: Optional MockMetrics updated with cache hits and backend calls
        """
        self.instructions = instructions
        self.handler = handler
        self.cache = cache
        self.extra_instructions: List[str] = list(extra_instructions or [])
        self.metrics = metrics

    def resolve_instructions(self, request: MockRequest) -> List[str]:
        return (
            self.instructions.get_instructions_for_request(request.path, request.method)
            + self.extra_instructions
        )

    async def respond(self, request: MockRequest) -> MockResponse:
        try:
            return await self._generate(request)
        except GenerationEmptyError as e:
            logger.warning(f"Empty generation for {request.method} {request.path}: {e}")
            return error_response(str(e), 500)
        except UpstreamTimeoutError as e:
            logger.warning(f"Backend timeout for {request.method} {request.path}: {e}")
            return error_response("Request timeout while contacting generation backend", 504)
        except BackendError as e:
            logger.warning(f"Backend failure for {request.method} {request.path}: {e}")
            return error_response("Failed to generate response from generation backend", 502)
        except RequestCancelledError:
            logger.debug(f"Request cancelled: {request.method} {request.path}")
            return error_response("Request cancelled", 499)
        except Exception:
            logger.exception(f"Unexpected error generating response for {request.method} {request.path}")
            return error_response("Internal server error", 500)

    async def _generate(self, request: MockRequest) -> MockResponse:
        description = describe_request(request)
        instructions = self.resolve_instructions(request)
        key = compute_cache_key(instructions, description)

        if self.cache is not None:
            cached = await self.cache.get(key)
            if cached:
                logger.debug(f"Cache hit {key[:12]} for {request.method} {request.path}")
                if self.metrics is not None:
                    self.metrics.cache_hits += 1
                return MockResponse(status_code=200, body=cached, content_type=JSON_CONTENT_TYPE)

        if self.metrics is not None:
            self.metrics.backend_calls += 1
        body = await self.handler.invoke(
            build_turns(instructions, description),
            cancel_event=request.cancel_event
        )
        if not body or not body.strip():
            raise GenerationEmptyError("Empty or null text content from generation backend")

        if self.cache is not None:
            try:
                await self.cache.put(key, body, description, instructions)
            except Exception as e:
                logger.warning(f"Failed to cache response {key[:12]}: {e}")

        return MockResponse(status_code=200, body=body, content_type=JSON_CONTENT_TYPE)
