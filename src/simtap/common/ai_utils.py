"""
AI Utilities for SimTap

Centralized Anthropic client initialization.
"""

import logging
from typing import Optional, Any, Tuple

import anthropic

from .utils import get_api_key_from_env

logger = logging.getLogger(__name__)


def create_anthropic_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: float = 60.0,
    raise_on_error: bool = False
) -> Tuple[Optional[Any], bool, str]:
    """
    Create an async Anthropic client with standardized error handling.

    The SDK's own retries are disabled: retry, backoff and admission control
    belong to ``BackendRequestHandler``.

    Args:
        api_key: Optional API key (if not provided, reads from ANTHROPIC_API_KEY env var)
        base_url: Optional endpoint override
        timeout: Per-call timeout in seconds
        raise_on_error: If True, raises exceptions. If False, returns None client with error message

    Returns:
        Tuple of (client, is_available, status_message)
        - client: AsyncAnthropic instance or None
        - is_available: Boolean indicating if AI is available
        - status_message: Status message (success or error description)

    Examples:
        # Raise exceptions on errors (for strict initialization)
        client, available, msg = create_anthropic_client(raise_on_error=True)

        # Custom endpoint
        client, _, _ = create_anthropic_client(api_key="key", base_url="http://localhost:4010")
    """
    if api_key is None:
        api_key = get_api_key_from_env()

    if not api_key:
        error_msg = (
            "Anthropic API key not set. "
            "Set ANTHROPIC_API_KEY or pass api_key in SimulatorConfig"
        )
        if raise_on_error:
            raise ValueError(error_msg)
        logger.warning(error_msg)
        return None, False, error_msg

    try:
        client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url or None,
            timeout=timeout,
            max_retries=0
        )
        return client, True, "Anthropic client ready"
    except Exception as e:
        error_msg = f"Anthropic client initialization failed: {e}"
        if raise_on_error:
            raise
        logger.warning(error_msg)
        return None, False, error_msg
