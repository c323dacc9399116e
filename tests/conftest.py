"""
Pytest Configuration and Shared Fixtures

Provides a controllable clock, an in-process fake of the Babbar client for
pipeline tests, and an httpx mock transport factory for client tests.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from babbar_intelligence.core.cache import MemoryCache
from babbar_intelligence.core.clients.babbar import BabbarClient
from babbar_intelligence.core.errors import NotFoundError


# ============================================================================
# Clock
# ============================================================================

class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Fake client for pipelines
# ============================================================================

class FakeBabbarClient:
    """Routes endpoint paths to canned payloads.

    A route is either a payload, an exception instance (raised), or a callable
    taking the parameter dict and returning a payload or raising.
    """

    def __init__(self, routes: Dict[str, Any]):
        self.routes = routes
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.throttle_calls = 0

    async def call(self, endpoint: str, params: Optional[dict] = None, method: str = "POST", use_cache: bool = True):
        params = dict(params or {})
        self.calls.append((endpoint, params))
        await asyncio.sleep(0)

        if endpoint not in self.routes:
            raise NotFoundError(f"Endpoint not found: {endpoint}", status_code=404, endpoint=endpoint)
        route = self.routes[endpoint]
        payload = route(params) if callable(route) else route
        if isinstance(payload, BaseException):
            raise payload
        return {"endpoint": endpoint, "rate_limit_remaining": 100, "data": payload}

    async def throttle(self) -> bool:
        self.throttle_calls += 1
        return False

    def calls_to(self, endpoint: str) -> List[Dict[str, Any]]:
        return [params for path, params in self.calls if path == endpoint]


@pytest.fixture
def make_fake_client() -> Callable[[Dict[str, Any]], FakeBabbarClient]:
    return FakeBabbarClient


# ============================================================================
# Real client over a mock transport
# ============================================================================

@pytest.fixture
def make_client(clock):
    """Build a BabbarClient whose requests are answered by ``handler``."""
    def factory(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> BabbarClient:
        kwargs.setdefault("cache", MemoryCache(clock=clock))
        kwargs.setdefault("retry_delay", 0)
        client = BabbarClient(api_key="test-key", transport=httpx.MockTransport(handler), **kwargs)
        return client

    return factory
