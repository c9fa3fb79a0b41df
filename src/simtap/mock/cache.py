"""
SimTap Response Cache

Content-addressable disk cache for generated and proxied response bodies.

Each entry is one JSON file named ``<key>.json``:

    {
        "requestHash": "<key>",
        "response": "<body>",
        "originalRequest": "<canonical request description>",
        "instructions": ["..."],
        "timestamp": "2026-01-01T00:00:00+00:00"
    }

Entries are replaced wholesale on recompute. There is no locking: two
writers for the same key race and the last rename wins.
"""

import hashlib
import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import aiofiles
import aiofiles.os

from ..common import safe_json_parse

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "|"


def compute_cache_key(instructions: Sequence[str], request_description: str) -> str:
    """
    Derive the cache key for a request.

    The key is a SHA-256 over the instructions joined with '|', then '|' and
    the canonical request description. Instruction order matters.

    Args:
        instructions: Ordered instructions used for generation
        request_description: Canonical request description

    Returns:
        64-character lowercase hex digest
    """
    combined = KEY_SEPARATOR.join(instructions) + KEY_SEPARATOR + request_description
    return hashlib.sha256(combined.encode('utf-8')).hexdigest()


@dataclass
class CacheEntry:
    """One persisted response."""

    request_hash: str
    response: str
    original_request: str
    instructions: List[str]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the on-disk JSON shape."""
        return {
            'requestHash': self.request_hash,
            'response': self.response,
            'originalRequest': self.original_request,
            'instructions': list(self.instructions),
            'timestamp': self.timestamp
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional['CacheEntry']:
        """Build an entry from parsed JSON, or None if the shape is wrong."""
        if not isinstance(data, dict):
            return None
        response = data.get('response')
        if not isinstance(response, str):
            return None
        instructions = data.get('instructions') or []
        if not isinstance(instructions, list):
            return None
        return cls(
            request_hash=str(data.get('requestHash', '')),
            response=response,
            original_request=str(data.get('originalRequest', '')),
            instructions=[str(i) for i in instructions],
            timestamp=str(data.get('timestamp', ''))
        )


class CacheStore:
    """
    Disk-backed response cache.

    The cache directory is created lazily on the first write. Read failures
    of any kind are treated as a miss.

    Example:
        cache = CacheStore('./mocks')
        key = compute_cache_key(instructions, description)
        body = await cache.get(key)
        if body is None:
            body = await generate()
            await cache.put(key, body, description, instructions)
    """

    def __init__(self, cache_dir: str):
        """
        Initialize the store.

        Args:
            cache_dir: Directory holding one JSON file per key
        """
        self.cache_dir = Path(cache_dir)

    def path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        """
        Read the full entry for a key.

        Returns:
            CacheEntry, or None on a miss or an unreadable record
        """
        path = self.path_for(key)
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                raw = await f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Treating unreadable cache record {path} as a miss: {e}")
            return None

        entry = CacheEntry.from_dict(safe_json_parse(raw))
        if entry is None:
            logger.debug(f"Treating corrupt cache record {path} as a miss")
        return entry

    async def get(self, key: str) -> Optional[str]:
        """
        Get the cached body for a key.

        Returns:
            Cached body, or None on a miss (an empty body counts as a miss)
        """
        entry = await self.get_entry(key)
        if entry is None or not entry.response:
            return None
        return entry.response

    async def put(
        self,
        key: str,
        body: str,
        request_description: str,
        instructions: Sequence[str]
    ) -> None:
        """
        Persist a body under a key, replacing any previous record.

        The record is written to a temporary file and renamed into place, so
        readers never see a partial record.

        Raises:
            OSError: If the directory or file cannot be written
        """
        await aiofiles.os.makedirs(self.cache_dir, exist_ok=True)

        entry = CacheEntry(
            request_hash=key,
            response=body,
            original_request=request_description,
            instructions=list(instructions)
        )
        path = self.path_for(key)
        tmp_path = path.with_name(f".{key}.{uuid.uuid4().hex}.tmp")

        try:
            async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
                await f.write(json.dumps(entry.to_dict(), indent=2))
            await aiofiles.os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        logger.debug(f"Cached response {key}")

    def clear(self) -> int:
        """
        Delete every cached record. Best effort.

        A file that cannot be deleted is logged and skipped; the sweep continues.

        Returns:
            Number of records deleted
        """
        if not self.cache_dir.is_dir():
            return 0

        deleted = 0
        try:
            files = list(self.cache_dir.glob('*.json'))
        except OSError as e:
            logger.warning(f"Could not list cache directory {self.cache_dir}: {e}")
            return 0

        for path in files:
            try:
                path.unlink()
                deleted += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Could not delete cache file {path}: {e}")

        logger.info(f"Cleared {deleted} cached responses from {self.cache_dir}")
        return deleted
