"""Response cache keyed by request signature.

Entries live for ten days. Expiry is checked lazily on read: an expired entry
is reported as absent and replaced by the next successful write.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 864_000


def canonical_json(params: Optional[dict]) -> str:
    """Serialize parameters so equal objects always give the same string."""
    return json.dumps(params or {}, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def request_signature(method: str, path: str, params: Optional[dict]) -> str:
    """Cache key in the ``method:path:canonical-json(params)`` format."""
    return f"{method.upper()}:{path}:{canonical_json(params)}"


class ResponseCache(Protocol):
    """Storage backend used by the Babbar client."""

    async def get(self, key: str) -> Optional[dict]: ...

    async def set(self, key: str, value: dict) -> None: ...

    async def clear(self) -> None: ...


class MemoryCache:
    """Process-local cache, the default backend."""

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[dict]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, inserted_at = entry
        if self._clock() - inserted_at >= self.ttl:
            logger.debug("Cache entry expired for %s", key)
            return None
        return value

    async def set(self, key: str, value: dict) -> None:
        self._entries[key] = (value, self._clock())

    async def clear(self) -> None:
        self._entries.clear()
