"""
SimTap Simulator Configuration

Options consumed by the mock server, the backend handler and the cache.
Numeric options are range-checked when assigned, not when used.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..common import get_api_key_from_env, find_free_port, URLTools
from .errors import ConfigurationError

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_CACHE_DIR = "./mocks"

# (min, max) inclusive; None means unbounded on that side
_INT_RANGES: Dict[str, Tuple[Optional[int], Optional[int]]] = {
    'max_retries': (0, 10),
    'initial_retry_delay_ms': (100, 60000),
    'max_retry_delay_ms': (1000, 300000),
    'max_concurrent_requests': (1, 100),
    'max_tokens': (1, None),
}


@dataclass
class SimulatorConfig:
    """Configuration for the API simulator and its generation backend."""

    # Generation backend
    api_key: Optional[str] = field(default_factory=get_api_key_from_env)
    endpoint: Optional[str] = None  # Optional absolute URL override
    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    request_timeout_s: float = 60.0

    # Disk cache
    cache_enabled: bool = True
    cache_dir: str = DEFAULT_CACHE_DIR

    # Server options
    host: str = "127.0.0.1"
    port: int = field(default_factory=find_free_port)  # 0 lets uvicorn pick
    log_level: str = "info"

    # Retry and admission
    max_retries: int = 5
    initial_retry_delay_ms: int = 1000
    max_retry_delay_ms: int = 32000
    max_concurrent_requests: int = 10

    def __setattr__(self, name: str, value: Any) -> None:
        super().__setattr__(name, self._check(name, value))

    @staticmethod
    def _check(name: str, value: Any) -> Any:
        """Validate and normalize a single option."""
        if name in _INT_RANGES:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
            low, high = _INT_RANGES[name]
            if (low is not None and value < low) or (high is not None and value > high):
                bounds = f"between {low} and {high}" if high is not None else f"at least {low}"
                raise ConfigurationError(f"{name} must be {bounds}, got {value}")
            return value

        if name == 'port':
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"port must be an integer, got {value!r}")
            if value != 0 and not 1024 <= value <= 65535:
                raise ConfigurationError("port must be 0 (auto-assign) or between 1024 and 65535")
            return value

        if name == 'request_timeout_s':
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(f"request_timeout_s must be a positive number, got {value!r}")
            return float(value)

        if name == 'api_key':
            return value.strip() if isinstance(value, str) else value

        if name == 'endpoint':
            endpoint = value.strip() if isinstance(value, str) else value
            if not endpoint:
                return None
            if not URLTools.is_absolute_url(endpoint):
                raise ConfigurationError(f"endpoint must be a valid absolute URL, got {endpoint!r}")
            return endpoint

        if name == 'model':
            return value.strip() if isinstance(value, str) and value.strip() else DEFAULT_MODEL

        if name == 'cache_dir':
            return value if isinstance(value, str) and value.strip() else DEFAULT_CACHE_DIR

        if name == 'log_level':
            level = str(value).lower()
            if not isinstance(logging.getLevelName(level.upper()), int):
                raise ConfigurationError(f"log_level must be a logging level name, got {value!r}")
            return level

        return value

    def validate(self) -> None:
        """
        Check requirements that cannot be enforced per option.

        Raises:
            ConfigurationError: If the API key is missing
        """
        if not self.api_key:
            raise ConfigurationError(
                "Anthropic API key is required. Set SimulatorConfig.api_key "
                "or the ANTHROPIC_API_KEY environment variable"
            )
