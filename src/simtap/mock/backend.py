"""
SimTap Generation Backend

Bounded-concurrency, retrying invoker of the text-generation backend.

Features:
- Admission gate limiting in-flight backend calls (FIFO waiters)
- Retry with exponential backoff (no jitter) on classified transient errors
- Cancellation honored at admission, during backoff, and during the call
- Anthropic Messages API backend with error classification
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence

import anthropic

from .config import SimulatorConfig
from .errors import (
    BackendError,
    RequestCancelledError,
    UpstreamPermanentError,
    UpstreamTimeoutError,
    UpstreamTransientError,
)

logger = logging.getLogger(__name__)

INSTRUCTION_ROLE = "instruction"
REQUEST_ROLE = "request"

RETRYABLE_STATUSES = frozenset({429, 500, 501, 502, 503, 504})


@dataclass(frozen=True)
class Turn:
    """One turn of a backend invocation: an instruction or the request description."""

    role: str
    content: str

    @classmethod
    def instruction(cls, content: str) -> 'Turn':
        return cls(INSTRUCTION_ROLE, content)

    @classmethod
    def request(cls, content: str) -> 'Turn':
        return cls(REQUEST_ROLE, content)


def build_turns(instructions: Sequence[str], request_description: str) -> List[Turn]:
    """One instruction turn per instruction, then one request turn."""
    return [Turn.instruction(i) for i in instructions] + [Turn.request(request_description)]


def is_retryable(error: BaseException) -> bool:
    """Transient errors (429, 5xx, network, timeout) are retried; everything else is not."""
    return isinstance(error, UpstreamTransientError)


class GenerationBackend(Protocol):
    """Anything that turns an ordered list of turns into generated text."""

    async def complete(self, turns: Sequence[Turn], model: str) -> str:
        ...


class AnthropicBackend:
    """
    Generation backend using the Anthropic Messages API.

    Instruction turns become ``system`` text blocks in order; the request
    turn becomes the user message. SDK errors are classified into
    UpstreamTransientError, UpstreamTimeoutError or UpstreamPermanentError.
    """

    def __init__(self, client: Any, max_tokens: int = 4096):
        """
        Args:
            client: anthropic.AsyncAnthropic instance
            max_tokens: Generation limit per response
        """
        self.client = client
        self.max_tokens = max_tokens

    async def complete(self, turns: Sequence[Turn], model: str) -> str:
        system = [{'type': 'text', 'text': t.content} for t in turns if t.role == INSTRUCTION_ROLE]
        messages = [{'role': 'user', 'content': t.content} for t in turns if t.role == REQUEST_ROLE]

        kwargs = {
            'model': model,
            'max_tokens': self.max_tokens,
            'messages': messages,
        }
        if system:
            kwargs['system'] = system

        try:
            message = await self.client.messages.create(**kwargs)
        except anthropic.APITimeoutError as e:
            raise UpstreamTimeoutError(f"Backend request timed out: {e}") from e
        except anthropic.APIConnectionError as e:
            raise UpstreamTransientError(f"Backend connection failed: {e}") from e
        except anthropic.APIStatusError as e:
            if e.status_code in RETRYABLE_STATUSES:
                raise UpstreamTransientError(
                    f"Backend returned {e.status_code}: {e.message}", status=e.status_code
                ) from e
            raise UpstreamPermanentError(
                f"Backend rejected request with {e.status_code}: {e.message}", status=e.status_code
            ) from e

        return ''.join(
            getattr(block, 'text', '') for block in (message.content or [])
            if getattr(block, 'type', None) == 'text'
        )


class BackendRequestHandler:
    """
    Invokes a GenerationBackend under an admission gate with retry and backoff.

    Example:
        handler = BackendRequestHandler(AnthropicBackend(client), config)
        body = await handler.invoke(build_turns(instructions, description))
    """

    def __init__(
        self,
        backend: GenerationBackend,
        config: Optional[SimulatorConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Args:
            backend: Generation backend to call
            config: Retry, backoff, concurrency and model settings
            sleep: Coroutine function used for backoff delays (seconds)
        """
        self.backend = backend
        self.config = config or SimulatorConfig(api_key=None)
        self.sleep = sleep
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._semaphore_loop: Optional[asyncio.AbstractEventLoop] = None
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        """Number of backend calls currently holding an admission slot."""
        return self._in_flight

    def _gate(self) -> asyncio.Semaphore:
        # One semaphore per serving loop: a restarted server (or each
        # TestClient request) runs on a fresh loop.
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)
            self._semaphore_loop = loop
        return self._semaphore

    async def invoke(
        self,
        turns: Sequence[Turn],
        cancel_event: Optional[asyncio.Event] = None
    ) -> str:
        """
        Run one backend invocation.

        Args:
            turns: Instruction turns followed by one request turn
            cancel_event: Set by the caller to abort waiting, backoff or the call

        Returns:
            Generated text (possibly empty; emptiness is judged by the caller)

        Raises:
            UpstreamPermanentError: Immediately, without retrying
            UpstreamTransientError: The last error once retries are exhausted
            RequestCancelledError: If cancel_event is set before completion
        """
        gate = self._gate()
        await _cancellable(gate.acquire(), cancel_event)
        self._in_flight += 1
        try:
            return await self._execute_with_retry(list(turns), cancel_event)
        finally:
            self._in_flight -= 1
            gate.release()

    async def _execute_with_retry(
        self,
        turns: List[Turn],
        cancel_event: Optional[asyncio.Event]
    ) -> str:
        max_retries = self.config.max_retries
        max_delay_ms = self.config.max_retry_delay_ms
        delay_ms = min(self.config.initial_retry_delay_ms, max_delay_ms)
        attempt = 0

        while True:
            attempt += 1
            try:
                return await _cancellable(
                    self.backend.complete(turns, self.config.model), cancel_event
                )
            except BackendError as e:
                if not is_retryable(e) or attempt >= max_retries:
                    if is_retryable(e):
                        logger.warning(f"Backend failed after {attempt} attempt(s): {e}")
                    raise
                logger.warning(
                    f"Backend attempt {attempt}/{max_retries} failed: {e}. "
                    f"Retrying in {delay_ms}ms..."
                )

            await _cancellable(self.sleep(delay_ms / 1000), cancel_event)
            delay_ms = min(delay_ms * 2, max_delay_ms)


async def _cancellable(awaitable: Awaitable[Any], cancel_event: Optional[asyncio.Event]) -> Any:
    """
    Await ``awaitable`` unless ``cancel_event`` fires first.

    Raises:
        RequestCancelledError: If the event is set before the awaitable finishes;
            the awaitable is cancelled
    """
    if cancel_event is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if cancel_event.is_set():
        task.cancel()
        raise RequestCancelledError("Request cancelled")

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise

    waiter.cancel()
    if task in done:
        return task.result()

    task.cancel()
    raise RequestCancelledError("Request cancelled")
