"""
SimTap Common Utilities

Shared helpers for credentials, JSON parsing, header filtering and ports.
"""

import json
import os
import socket
from typing import Any, Iterable, List, Optional, Tuple


# Headers that describe a single transport hop and never belong in a
# canonical request description or a forwarded request.
HOP_BY_HOP_HEADERS = frozenset({
    'connection',
    'keep-alive',
    'proxy-authenticate',
    'proxy-authorization',
    'proxy-connection',
    'te',
    'trailer',
    'trailers',
    'transfer-encoding',
    'upgrade',
})


def get_api_key_from_env() -> Optional[str]:
    """
    Retrieve the Anthropic API key from the environment.

    API keys should never be passed via CLI arguments to avoid exposure
    in process lists, shell history, and logs.

    Returns:
        API key from ANTHROPIC_API_KEY environment variable, or None if not set
    """
    return os.environ.get('ANTHROPIC_API_KEY')


def safe_json_parse(json_string: Any, default: Any = None) -> Any:
    """
    Safely parse JSON string with error handling.

    Args:
        json_string: JSON string (or bytes) to parse
        default: Default value to return if parsing fails

    Returns:
        Parsed JSON object, or default if parsing fails

    Example:
        record = safe_json_parse(raw_text, default={})
    """
    if not json_string:
        return default

    try:
        return json.loads(json_string)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


def filter_hop_headers(
    headers: Iterable[Tuple[str, str]],
    additional_excluded: Optional[Iterable[str]] = None
) -> List[Tuple[str, str]]:
    """
    Drop transport-hop headers from a header list.

    Args:
        headers: (name, value) pairs, duplicates allowed
        additional_excluded: Extra header names to drop (case-insensitive)

    Returns:
        Remaining (name, value) pairs in their original order
    """
    excluded = set(HOP_BY_HOP_HEADERS)
    if additional_excluded:
        excluded.update(h.lower() for h in additional_excluded)

    return [(k, v) for k, v in headers if k.lower() not in excluded]


def find_free_port(host: str = '127.0.0.1') -> int:
    """
    Ask the OS for a currently unused TCP port.

    The port is released immediately, so another process could grab it
    before the server binds. Good enough for test suites running in parallel.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]
