"""
SimTap Mock Server

FastAPI-based HTTP simulator serving static, file-backed, proxied and
AI-generated responses for use inside test suites.

Features:
- Route registry with {name} and {*} patterns, first match wins
- Per-simulator instructions (default, global, route-scoped)
- Backend-generated bodies with retry, backoff and bounded concurrency
- Disk cache for generated and proxied bodies
- Background uvicorn server with start/stop for test fixtures
"""

import asyncio
import logging
import threading
import time
from typing import Any, Dict, Optional, Sequence

import httpx
import uvicorn
from fastapi import FastAPI, Request, Response

from ..common import create_anthropic_client
from .backend import AnthropicBackend, BackendRequestHandler, GenerationBackend
from .cache import CacheStore
from .config import SimulatorConfig
from .errors import ConfigurationError
from .generator import GeneratedResponseStrategy
from .instructions import InstructionsContainer
from .pipeline import MockMetrics, ResponseGenerationPipeline
from .routes import RouteConfiguration, RouteInstruction, RouteRegistry, WILDCARD_METHOD
from .strategies import (
    FileResponseStrategy,
    MockRequest,
    ProxyResponseStrategy,
    StaticResponseStrategy,
)

DISCONNECT_POLL_INTERVAL_S = 0.1


class MockServer:
    """
    HTTP simulator for one API.

    Each instance owns its routes, instructions, cache, backend handler and
    metrics, so several simulators can run side by side.

    Example:
        server = MockServer('Stripe', SimulatorConfig(api_key='sk-...'))
        server.add_route('/api/test', server.static_response({'message': 'Hello World'}), 'GET')
        server.add_route('/v1/customers/{id}', server.generated_response(), 'GET')
        server.add_instruction('Use EUR for all amounts')

        with server:
            client = server.create_client()
            print(client.get('/api/test').json())
    """

    def __init__(
        self,
        api_name: str,
        config: Optional[SimulatorConfig] = None,
        backend: Optional[GenerationBackend] = None
    ):
        """
        Initialize mock server.

        Args:
            api_name: Display name of the simulated API (used in default instructions)
            config: Optional SimulatorConfig; defaults read the API key from the environment
            backend: Optional generation backend (an Anthropic backend is created if None)

        Raises:
            ConfigurationError: If the API key is missing or the config is invalid
        """
        if not api_name or not api_name.strip():
            raise ValueError("api_name must be a non-empty string")

        self.api_name = api_name
        self.config = config or SimulatorConfig()
        self.config.validate()

        # Per-instance logger; the shared simtap.mock level stays with the application.
        self.logger = logging.getLogger(f"simtap.mock.server.{api_name}")
        self.logger.setLevel(getattr(logging, self.config.log_level.upper()))

        self.routes = RouteRegistry()
        self.instructions = InstructionsContainer(api_name)
        self.metrics = MockMetrics()
        self.cache = CacheStore(self.config.cache_dir) if self.config.cache_enabled else None

        if backend is None:
            try:
                client, _, _ = create_anthropic_client(
                    api_key=self.config.api_key,
                    base_url=self.config.endpoint,
                    timeout=self.config.request_timeout_s,
                    raise_on_error=True
                )
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
            backend = AnthropicBackend(client, max_tokens=self.config.max_tokens)

        self.backend_handler = BackendRequestHandler(backend, self.config)
        self.pipeline = ResponseGenerationPipeline(self.routes, self.metrics)

        self._lifecycle_lock = threading.Lock()
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._bound_port: Optional[int] = None

        self.app = self._create_app()

    # ------------------------------------------------------------------
    # Routes and instructions
    # ------------------------------------------------------------------

    def add_route(self, pattern: str, strategy: Any, method: str = WILDCARD_METHOD) -> 'MockServer':
        """
        Bind a pattern and method to a response strategy.

        Routes can be added while the server is running. When several routes
        match a request, the one added first wins.

        Returns:
            self, for chaining
        """
        self.routes.add(RouteConfiguration(pattern, strategy, method))
        return self

    def remove_route(self, pattern: str, method: str = WILDCARD_METHOD) -> bool:
        """Remove the first route registered with this pattern and method."""
        return self.routes.remove(pattern, method)

    def clear_routes(self) -> None:
        self.routes.clear()

    def add_instruction(self, instruction: str) -> 'MockServer':
        self.instructions.add_instruction(instruction)
        return self

    def add_route_instruction(
        self,
        pattern: str,
        instructions: Sequence[str],
        method: str = WILDCARD_METHOD
    ) -> 'MockServer':
        """Add instructions that apply only to requests matching pattern and method."""
        self.instructions.add_route_instruction(
            RouteInstruction(pattern, method, list(instructions))
        )
        return self

    def clear_instructions(self) -> None:
        self.instructions.clear_instructions()

    def clear_cache(self) -> int:
        """Delete all cached responses. Returns the number of records removed."""
        if self.cache is None:
            return 0
        return self.cache.clear()

    # ------------------------------------------------------------------
    # Strategy factories
    # ------------------------------------------------------------------

    def static_response(self, body: Any, status_code: int = 200) -> StaticResponseStrategy:
        return StaticResponseStrategy(body, status_code)

    def file_response(self, file_path: str, status_code: int = 200) -> FileResponseStrategy:
        return FileResponseStrategy(file_path, status_code)

    def generated_response(self, *extra_instructions: str) -> GeneratedResponseStrategy:
        """Strategy generating bodies with this server's instructions, backend and cache."""
        return GeneratedResponseStrategy(
            instructions=self.instructions,
            handler=self.backend_handler,
            cache=self.cache,
            extra_instructions=extra_instructions,
            metrics=self.metrics
        )

    def proxy_response(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None
    ) -> ProxyResponseStrategy:
        """Strategy forwarding to a real API, caching in this server's cache."""
        return ProxyResponseStrategy(base_url, cache=self.cache, headers=headers)

    # ------------------------------------------------------------------
    # HTTP glue
    # ------------------------------------------------------------------

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with a single catch-all route for every method."""
        app = FastAPI(
            title=f"SimTap {self.api_name} Simulator",
            description="Mock HTTP server returning simulated API responses",
            version="1.0.0",
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        async def simulate(request: Request) -> Response:
            """Handle incoming requests and serve simulated responses."""
            return await self._handle_request(request)

        # No method list: any verb, including TRACE and custom ones, reaches the pipeline.
        app.add_route("/{path:path}", simulate, include_in_schema=False)

        return app

    async def _handle_request(self, request: Request) -> Response:
        """
        Convert the FastAPI request, run the pipeline, and convert back.

        A watcher task sets the request's cancel event when the client
        disconnects, which aborts admission waits, backoff and backend calls.
        """
        body = await request.body()
        cancel_event = asyncio.Event()

        mock_request = MockRequest(
            method=request.method,
            path=request.url.path,
            url=str(request.url),
            query=request.url.query,
            headers=list(request.headers.items()),
            body=body,
            cancel_event=cancel_event
        )

        self.logger.debug(f"Incoming: {mock_request.method} {mock_request.url}")

        watcher = asyncio.create_task(self._watch_disconnect(request, cancel_event))
        try:
            result = await self.pipeline.handle(mock_request)
        finally:
            watcher.cancel()

        return Response(
            content=result.body,
            status_code=result.status_code,
            media_type=result.content_type,
            headers=result.headers
        )

    @staticmethod
    async def _watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
        while not await request.is_disconnected():
            await asyncio.sleep(DISCONNECT_POLL_INTERVAL_S)
        cancel_event.set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int:
        """Port the server is (or will be) listening on."""
        return self._bound_port or self.config.port

    @property
    def base_url(self) -> str:
        return f"http://{self.config.host}:{self.port}"

    def start(self, timeout: float = 10.0) -> None:
        """
        Start serving on a background thread and wait until it accepts connections.

        Args:
            timeout: Seconds to wait for startup

        Raises:
            RuntimeError: If already running, or if startup fails or times out
        """
        with self._lifecycle_lock:
            if self._server is not None:
                raise RuntimeError("Server is already started. Call stop() before starting again.")

            uvicorn_config = uvicorn.Config(
                self.app,
                host=self.config.host,
                port=self.config.port,
                log_level=self.config.log_level,
                access_log=False,
                lifespan="off"
            )
            server = uvicorn.Server(uvicorn_config)
            thread = threading.Thread(
                target=server.run,
                name=f"simtap-{self.api_name}",
                daemon=True
            )
            thread.start()

            deadline = time.monotonic() + timeout
            while not server.started:
                if not thread.is_alive():
                    raise RuntimeError(
                        f"Failed to start {self.api_name} simulator on {self.config.host}:{self.config.port}"
                    )
                if time.monotonic() > deadline:
                    server.should_exit = True
                    thread.join(timeout)
                    raise RuntimeError(f"Timed out starting {self.api_name} simulator")
                time.sleep(0.01)

            self._server = server
            self._thread = thread
            self._bound_port = self._resolve_port(server)

            self.logger.info(f"{self.api_name} simulator listening on {self.base_url}")
            if self.cache is not None:
                self.logger.info(f"Response cache: {self.cache.cache_dir}")

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the server. Does nothing if it is not running."""
        with self._lifecycle_lock:
            if self._server is None:
                return

            self._server.should_exit = True
            if self._thread is not None:
                self._thread.join(timeout)

            self._server = None
            self._thread = None
            self._bound_port = None
            self.logger.info(f"{self.api_name} simulator stopped")

    def _resolve_port(self, server: uvicorn.Server) -> int:
        # With port 0 the OS picks the port; read it back from the socket.
        if self.config.port:
            return self.config.port
        for listener in getattr(server, 'servers', []):
            for sock in getattr(listener, 'sockets', []):
                return sock.getsockname()[1]
        return self.config.port

    def create_client(self, **kwargs: Any) -> httpx.Client:
        """
        Create an httpx client pointed at the running server.

        Raises:
            RuntimeError: If the server has not been started
        """
        if self._server is None:
            raise RuntimeError("Server must be started before creating clients. Call start() first.")
        return httpx.Client(base_url=self.base_url, **kwargs)

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app

    def __enter__(self) -> 'MockServer':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def create_mock_server(
    api_name: str,
    api_key: Optional[str] = None,
    host: str = "127.0.0.1",
    port: Optional[int] = None,
    cache_enabled: bool = True,
    cache_dir: str = "./mocks",
    model: Optional[str] = None,
    backend: Optional[GenerationBackend] = None,
    **options: Any
) -> MockServer:
    """
    Convenience function to create and configure a mock server.

    Args:
        api_name: Display name of the simulated API
        api_key: Anthropic API key (falls back to ANTHROPIC_API_KEY)
        host: Host to bind to
        port: Port to bind to (a free port is picked if None)
        cache_enabled: Enable the disk cache
        cache_dir: Cache directory
        model: Model identifier for generated responses
        backend: Optional generation backend override
        **options: Any other SimulatorConfig field (max_retries, ...)

    Returns:
        Configured MockServer instance

    Example:
        server = create_mock_server('GitHub', port=9001, max_retries=3)
        server.start()
    """
    config = SimulatorConfig(
        host=host,
        cache_enabled=cache_enabled,
        cache_dir=cache_dir,
        **options
    )
    if api_key is not None:
        config.api_key = api_key
    if port is not None:
        config.port = port
    if model is not None:
        config.model = model

    return MockServer(api_name, config=config, backend=backend)
