"""
SimTap Common Utilities

Shared utilities and helpers used across SimTap modules.
"""

from .utils import (
    HOP_BY_HOP_HEADERS,
    get_api_key_from_env,
    safe_json_parse,
    filter_hop_headers,
    find_free_port
)
from .ai_utils import create_anthropic_client
from .url_utils import URLTools

__all__ = [
    'HOP_BY_HOP_HEADERS',
    'get_api_key_from_env',
    'safe_json_parse',
    'filter_hop_headers',
    'find_free_port',
    'create_anthropic_client',
    'URLTools'
]
