"""
SimTap Response Pipeline

Per-request orchestration: Resolve -> Dispatch -> Respond.

Resolve looks the request up in the RouteRegistry (no match -> 404),
Dispatch runs the matched route's strategy outside the registry lock,
and Respond returns whatever the strategy produced.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .routes import RouteRegistry
from .strategies import MockRequest, MockResponse, error_response

logger = logging.getLogger(__name__)


@dataclass
class MockMetrics:
    """Track simulator metrics."""

    total_requests: int = 0
    matched_requests: int = 0
    unmatched_requests: int = 0
    cache_hits: int = 0
    backend_calls: int = 0
    strategy_errors: int = 0
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        uptime_seconds = (datetime.now() - datetime.fromisoformat(self.start_time)).total_seconds()
        return {
            'total_requests': self.total_requests,
            'matched_requests': self.matched_requests,
            'unmatched_requests': self.unmatched_requests,
            'cache_hits': self.cache_hits,
            'backend_calls': self.backend_calls,
            'strategy_errors': self.strategy_errors,
            'match_rate': round((self.matched_requests / self.total_requests * 100) if self.total_requests > 0 else 0, 2),
            'uptime_seconds': round(uptime_seconds, 2),
            'start_time': self.start_time
        }


class ResponseGenerationPipeline:
    """
    Turns an inbound MockRequest into a MockResponse.

    Example:
        pipeline = ResponseGenerationPipeline(registry)
        response = await pipeline.handle(request)
    """

    def __init__(self, registry: RouteRegistry, metrics: Optional[MockMetrics] = None):
        self.registry = registry
        self.metrics = metrics or MockMetrics()

    async def handle(self, request: MockRequest) -> MockResponse:
        """
        Handle one request.

        Args:
            request: Parsed inbound request

        Returns:
            MockResponse from the matched strategy, a 404 envelope when no
            route matches, or a 500 envelope if the strategy raised
        """
        self.metrics.total_requests += 1

        route = self.registry.match(request.path, request.method)
        if route is None:
            self.metrics.unmatched_requests += 1
            logger.debug(f"No route for {request.method} {request.path}")
            return error_response(f"No route configured for {request.method} {request.path}", 404)

        self.metrics.matched_requests += 1
        logger.debug(f"Matched {request.method} {request.path} -> {route.method} {route.pattern}")

        try:
            return await route.strategy.respond(request)
        except Exception as e:
            self.metrics.strategy_errors += 1
            logger.exception(f"Strategy failed for {request.method} {request.path}")
            return error_response(f"Internal error: {e}", 500)
