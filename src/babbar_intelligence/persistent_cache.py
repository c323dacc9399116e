"""SQLite-backed response cache.

Keeps the provider quota usage low across server restarts. Selected with
BABBAR_CACHE_BACKEND=sqlite; the default is the in-memory cache.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import delete, select

from .core.cache import CACHE_TTL_SECONDS
from .db import get_session_factory
from .sqlmodels import CachedResponse

logger = logging.getLogger(__name__)


class SqliteResponseCache:
    """Stores envelopes as JSON rows in the ``cached_responses`` table."""

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock

    async def get(self, key: str) -> Optional[dict]:
        session_factory = get_session_factory()
        async with session_factory() as session:
            result = await session.execute(select(CachedResponse).where(CachedResponse.key == key))
            row = result.scalar_one_or_none()

        if row is None:
            return None
        if self._clock() - row.inserted_at >= self.ttl:
            logger.debug("Persistent cache entry expired for %s", key)
            return None
        try:
            return json.loads(row.payload)
        except ValueError:
            logger.warning("Discarding undecodable cache row for %s", key)
            return None

    async def set(self, key: str, value: dict) -> None:
        session_factory = get_session_factory()
        async with session_factory() as session:
            await session.merge(CachedResponse(
                key=key,
                endpoint=str(value.get("endpoint", "")),
                payload=json.dumps(value, default=str),
                inserted_at=self._clock(),
                updated_at=datetime.now(timezone.utc),
            ))
            await session.commit()

    async def clear(self) -> None:
        session_factory = get_session_factory()
        async with session_factory() as session:
            await session.execute(delete(CachedResponse))
            await session.commit()
