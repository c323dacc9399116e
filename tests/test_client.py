"""
Tests for the Babbar client and its response cache.

These tests verify:
- Cache keys and TTL expiry (simulated clock)
- Cache hits skip the network, failures are never cached
- Rate-limit retry and give-up behavior
- Status code to exception mapping
- Envelope format and rate budget tracking
"""

import json

import httpx
import pytest

from babbar_intelligence.core.cache import CACHE_TTL_SECONDS, MemoryCache, request_signature
from babbar_intelligence.core.clients.babbar import BabbarClient, RateBudget, format_response
from babbar_intelligence.core.errors import (
    AuthError,
    BadRequestError,
    NotFoundError,
    RateLimitError,
    UnknownTransportError,
)


def ok(payload, remaining="42"):
    return httpx.Response(200, json=payload, headers={"x-ratelimit-remaining": remaining})


# =============================================================================
# CACHE TESTS
# =============================================================================

class TestRequestSignature:
    """Test cache key construction."""

    def test_parameter_order_does_not_matter(self):
        a = request_signature("post", "/host/keywords", {"host": "a.com", "n": 10})
        b = request_signature("POST", "/host/keywords", {"n": 10, "host": "a.com"})
        assert a == b

    def test_format(self):
        key = request_signature("POST", "/host/overview/main", {"host": "a.com"})
        assert key == 'POST:/host/overview/main:{"host":"a.com"}'

    def test_missing_params_are_empty_object(self):
        assert request_signature("POST", "/x", None).endswith(":{}")


class TestMemoryCache:
    """Test lazy TTL expiry."""

    @pytest.mark.asyncio
    async def test_entry_served_within_ttl(self, clock):
        cache = MemoryCache(clock=clock)
        await cache.set("k", {"data": 1})
        clock.advance(CACHE_TTL_SECONDS - 1)
        assert await cache.get("k") == {"data": 1}

    @pytest.mark.asyncio
    async def test_entry_expires_after_ten_days(self, clock):
        cache = MemoryCache(clock=clock)
        await cache.set("k", {"data": 1})
        clock.advance(CACHE_TTL_SECONDS)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_rewrite_refreshes_entry(self, clock):
        cache = MemoryCache(clock=clock)
        await cache.set("k", {"data": 1})
        clock.advance(CACHE_TTL_SECONDS + 5)
        await cache.set("k", {"data": 2})
        assert await cache.get("k") == {"data": 2}
        assert len(cache) == 1


class TestClientCaching:
    """Test the cache as seen through client calls."""

    @pytest.mark.asyncio
    async def test_second_call_within_ten_days_is_cached(self, make_client, clock):
        requests = []

        def handler(request):
            requests.append(request)
            return ok({"host": "a.com", "bas": 40})

        client = make_client(handler)
        first = await client.call("/host/overview/main", {"host": "a.com"})
        clock.advance(9 * 86_400)
        second = await client.call("/host/overview/main", {"host": "a.com"})

        assert len(requests) == 1
        assert second == first
        await client.close()

    @pytest.mark.asyncio
    async def test_cache_bypassed_after_ten_days(self, make_client, clock):
        requests = []

        def handler(request):
            requests.append(request)
            return ok({"host": "a.com"})

        client = make_client(handler)
        await client.call("/host/overview/main", {"host": "a.com"})
        clock.advance(CACHE_TTL_SECONDS)
        await client.call("/host/overview/main", {"host": "a.com"})

        assert len(requests) == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_use_cache_false_forces_network(self, make_client):
        requests = []

        def handler(request):
            requests.append(request)
            return ok({})

        client = make_client(handler)
        await client.call("/host/lang", {"host": "a.com"})
        await client.call("/host/lang", {"host": "a.com"}, use_cache=False)

        assert len(requests) == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_failed_call_is_not_cached(self, make_client):
        responses = iter([httpx.Response(500), ok({"host": "a.com"})])
        requests = []

        def handler(request):
            requests.append(request)
            return next(responses)

        client = make_client(handler)
        with pytest.raises(UnknownTransportError):
            await client.call("/host/health", {"host": "a.com"})
        envelope = await client.call("/host/health", {"host": "a.com"})

        assert envelope["data"] == {"host": "a.com"}
        assert len(requests) == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_non_post_is_not_cached(self, make_client):
        requests = []

        def handler(request):
            requests.append(request)
            return ok({})

        client = make_client(handler)
        await client.call("/status", {}, method="GET")
        await client.call("/status", {}, method="GET")

        assert len(requests) == 2
        await client.close()


# =============================================================================
# WIRE FORMAT TESTS
# =============================================================================

class TestRequestFormat:
    """Test what goes on the wire."""

    @pytest.mark.asyncio
    async def test_post_json_body_and_token(self, make_client):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["token"] = request.url.params.get("api_token")
            seen["body"] = json.loads(request.content)
            return ok({})

        client = make_client(handler)
        await client.call("/host/similar", {"host": "a.com", "n": 20})

        assert seen["method"] == "POST"
        assert seen["path"] == "/api/host/similar"
        assert seen["token"] == "test-key"
        assert seen["body"] == {"host": "a.com", "n": 20}
        await client.close()

    def test_empty_api_key_rejected(self):
        with pytest.raises(AuthError):
            BabbarClient(api_key="")


class TestEnvelope:
    """Test the response envelope."""

    def test_list_payload_gets_count(self):
        envelope = format_response([1, 2, 3], "/host/similar", 10)
        assert envelope["count"] == 3
        assert envelope["endpoint"] == "/host/similar"
        assert envelope["rate_limit_remaining"] == 10

    def test_object_payload_gets_per_list_counts(self):
        envelope = format_response({"entries": [1, 2], "pages": [], "total": 7}, "/host/keywords", None)
        assert envelope["entries_count"] == 2
        assert envelope["pages_count"] == 0
        assert "total_count" not in envelope

    @pytest.mark.asyncio
    async def test_rate_budget_updated_from_header(self, make_client):
        client = make_client(lambda request: ok({"entries": []}, remaining="7"))
        envelope = await client.call("/host/keywords", {"host": "a.com"})

        assert client.rate_budget.remaining == 7
        assert envelope["rate_limit_remaining"] == 7
        assert envelope["entries_count"] == 0
        await client.close()


# =============================================================================
# RATE LIMIT TESTS
# =============================================================================

class TestRateLimit:
    """Test 429 handling."""

    @pytest.mark.asyncio
    async def test_retries_after_rate_limit(self, make_client):
        responses = iter([httpx.Response(429), httpx.Response(429), ok({"ok": True})])
        requests = []

        def handler(request):
            requests.append(request)
            return next(responses)

        client = make_client(handler)
        envelope = await client.call("/host/overview/main", {"host": "a.com"})

        assert envelope["data"] == {"ok": True}
        assert len(requests) == 3
        await client.close()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, make_client):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(429)

        client = make_client(handler, max_rate_limit_retries=2)
        with pytest.raises(RateLimitError) as exc_info:
            await client.call("/host/overview/main", {"host": "a.com"})

        assert len(requests) == 3
        assert exc_info.value.status_code == 429
        await client.close()

    @pytest.mark.asyncio
    async def test_budget_updated_from_rate_limited_response(self, make_client):
        responses = iter([
            httpx.Response(429, headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "30"}),
            ok({"ok": True}),
        ])
        seen_before_retry = []

        def handler(request):
            seen_before_retry.append(client.rate_budget.remaining)
            return next(responses)

        client = make_client(handler)
        envelope = await client.call("/host/overview/main", {"host": "a.com"})

        assert seen_before_retry == [None, 0]
        assert client.rate_budget.reset == "30"
        assert envelope["rate_limit_remaining"] == 42
        await client.close()

    @pytest.mark.asyncio
    async def test_budget_updated_from_error_response(self, make_client):
        client = make_client(lambda request: httpx.Response(
            503, headers={"X-RateLimit-Remaining": "7"}, json={"message": "down"},
        ))

        with pytest.raises(UnknownTransportError):
            await client.call("/host/overview/main", {"host": "a.com"})

        assert client.rate_budget.remaining == 7
        await client.close()

    @pytest.mark.asyncio
    async def test_throttle_pauses_when_budget_low(self, make_client):
        client = make_client(lambda request: ok({}))
        client.rate_budget.remaining = 1
        assert await client.throttle() is True

        client.rate_budget.remaining = 50
        assert await client.throttle() is False
        await client.close()

    def test_budget_ignores_malformed_header(self):
        budget = RateBudget(remaining=5)
        budget.update(httpx.Headers({"x-ratelimit-remaining": "lots"}))
        assert budget.remaining == 5


# =============================================================================
# ERROR MAPPING TESTS
# =============================================================================

class TestErrorMapping:
    """Test status code to exception mapping."""

    @pytest.mark.asyncio
    async def test_unauthorized(self, make_client):
        client = make_client(lambda request: httpx.Response(401))
        with pytest.raises(AuthError, match="BABBAR_API_KEY"):
            await client.call("/host/overview/main", {"host": "a.com"})
        await client.close()

    @pytest.mark.asyncio
    async def test_bad_request_echoes_message(self, make_client):
        client = make_client(lambda request: httpx.Response(400, json={"message": "host is invalid"}))
        with pytest.raises(BadRequestError, match="host is invalid"):
            await client.call("/host/overview/main", {"host": "??"})
        await client.close()

    @pytest.mark.asyncio
    async def test_not_found_names_endpoint(self, make_client):
        client = make_client(lambda request: httpx.Response(404))
        with pytest.raises(NotFoundError, match="/host/nope"):
            await client.call("/host/nope", {})
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_mentions_support(self, make_client):
        client = make_client(lambda request: httpx.Response(503))
        with pytest.raises(UnknownTransportError, match="support@babbar.tech") as exc_info:
            await client.call("/host/overview/main", {"host": "a.com"})
        assert exc_info.value.status_code == 503
        await client.close()

    @pytest.mark.asyncio
    async def test_network_error_is_unknown_transport(self, make_client):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(UnknownTransportError, match="connection refused"):
            await client.call("/host/overview/main", {"host": "a.com"})
        await client.close()

    @pytest.mark.asyncio
    async def test_closed_client_refuses_calls(self, make_client):
        client = make_client(lambda request: ok({}))
        await client.close()
        with pytest.raises(UnknownTransportError):
            await client.call("/host/overview/main", {"host": "a.com"})
