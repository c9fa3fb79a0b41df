"""
Shared fixtures for SimTap tests.
"""

from typing import List

import pytest

from simtap.mock.config import SimulatorConfig


class StubBackend:
    """
    Scripted generation backend that records every call.

    Each call consumes the next outcome; an exception instance is raised,
    anything else is returned. When the script runs out, ``default`` is returned.
    """

    def __init__(self, *outcomes, default='{"ok":true}'):
        self.outcomes = list(outcomes)
        self.default = default
        self.calls = []

    async def complete(self, turns, model):
        self.calls.append((list(turns), model))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def make_backend():
    """Factory for StubBackend instances."""
    return StubBackend


@pytest.fixture
def config(tmp_path):
    """Config with a fake key, a temporary cache and short backoff."""
    return SimulatorConfig(
        api_key='test-key',
        cache_dir=str(tmp_path / 'mocks'),
        initial_retry_delay_ms=100,
        max_retry_delay_ms=1000,
        log_level='debug'
    )


@pytest.fixture
def recorded_sleep():
    """Sleep replacement that records requested delays and returns at once."""
    delays: List[float] = []

    async def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep
