"""
SimTap Mock Server Module

Local HTTP simulator returning realistic API responses inside test suites.

This module provides:
- FastAPI-based mock server with background start/stop
- Route registry with path patterns
- Static, file, proxy and backend-generated response strategies
- Retrying, bounded-concurrency generation backend handler
- Content-addressed disk cache
"""

from .server import MockServer, create_mock_server
from .config import SimulatorConfig
from .errors import (
    SimTapError,
    ConfigurationError,
    BackendError,
    UpstreamTransientError,
    UpstreamTimeoutError,
    UpstreamPermanentError,
    GenerationEmptyError,
    RequestCancelledError,
)
from .routes import RoutePattern, RouteConfiguration, RouteInstruction, RouteRegistry
from .instructions import InstructionsContainer
from .cache import CacheEntry, CacheStore, compute_cache_key
from .backend import (
    Turn,
    GenerationBackend,
    AnthropicBackend,
    BackendRequestHandler,
    build_turns,
)
from .strategies import (
    MockRequest,
    MockResponse,
    StaticResponseStrategy,
    FileResponseStrategy,
    ProxyResponseStrategy,
    error_response,
)
from .generator import GeneratedResponseStrategy, describe_request
from .pipeline import MockMetrics, ResponseGenerationPipeline

__all__ = [
    # Server
    'MockServer',
    'SimulatorConfig',
    'create_mock_server',

    # Errors
    'SimTapError',
    'ConfigurationError',
    'BackendError',
    'UpstreamTransientError',
    'UpstreamTimeoutError',
    'UpstreamPermanentError',
    'GenerationEmptyError',
    'RequestCancelledError',

    # Routing
    'RoutePattern',
    'RouteConfiguration',
    'RouteInstruction',
    'RouteRegistry',
    'InstructionsContainer',

    # Cache
    'CacheEntry',
    'CacheStore',
    'compute_cache_key',

    # Backend
    'Turn',
    'GenerationBackend',
    'AnthropicBackend',
    'BackendRequestHandler',
    'build_turns',

    # Strategies
    'MockRequest',
    'MockResponse',
    'StaticResponseStrategy',
    'FileResponseStrategy',
    'ProxyResponseStrategy',
    'GeneratedResponseStrategy',
    'describe_request',
    'error_response',

    # Pipeline
    'MockMetrics',
    'ResponseGenerationPipeline',
]

__version__ = '1.0.0'
