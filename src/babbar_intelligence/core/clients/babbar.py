"""Babbar API client.

API docs: https://www.babbar.tech/api/documentation
Every operation is a POST to a fixed path with a JSON parameter object.
Authentication: ``api_token`` query parameter on every request.
Rate limit: quota reported in the ``x-ratelimit-remaining`` header, HTTP 429 when exceeded.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

import httpx

from ..cache import MemoryCache, ResponseCache, request_signature
from ..errors import (
    SUPPORT_CONTACT,
    AuthError,
    BabbarError,
    BadRequestError,
    NotFoundError,
    RateLimitError,
    UnknownTransportError,
)

logger = logging.getLogger(__name__)

API_BASE = "https://www.babbar.tech/api"

RATE_LIMIT_DELAY_SECONDS = 60.0
DEFAULT_RATE_LIMIT_RETRIES = 3
CACHEABLE_METHOD = "POST"

DEFAULT_LANG = "fr"
DEFAULT_COUNTRY = "FR"


def today() -> str:
    """Default SERP date: today, ISO format."""
    return date.today().isoformat()


class RateBudget:
    """Remaining provider quota, as last reported by a response."""

    def __init__(self, remaining: Optional[int] = None, reset: Optional[str] = None):
        self.remaining = remaining
        self.reset = reset

    def update(self, headers: httpx.Headers) -> None:
        remaining = headers.get("x-ratelimit-remaining")
        if remaining is not None:
            try:
                self.remaining = int(remaining)
            except ValueError:
                logger.debug("Ignoring malformed x-ratelimit-remaining header: %r", remaining)
        reset = headers.get("x-ratelimit-reset")
        if reset is not None:
            self.reset = reset

    @property
    def is_exhausted(self) -> bool:
        """True when at most one call is left before the provider throttles us."""
        return self.remaining is not None and self.remaining <= 1


def format_response(data: Any, endpoint: str, rate_limit_remaining: Optional[int]) -> dict:
    """Wrap a raw payload into the envelope returned to callers.

    List payloads get a ``count``; object payloads get one ``<key>_count``
    per list-valued key.
    """
    envelope: dict[str, Any] = {
        "endpoint": endpoint,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "rate_limit_remaining": rate_limit_remaining,
        "data": data,
    }
    if isinstance(data, list):
        envelope["count"] = len(data)
    elif isinstance(data, dict):
        for key, value in data.items():
            if isinstance(value, list):
                envelope[f"{key}_count"] = len(value)
    return envelope


class BabbarClient:
    """Async client for the Babbar API with response caching and rate-limit backoff.

    The cache and the rate budget belong to the client instance; every
    pipeline in the process shares them through the client it is given.

    Usage:
        async with BabbarClient(api_key="...") as client:
            envelope = await client.call("/host/overview/main", {"host": "www.example.com"})
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = API_BASE,
        cache: Optional[ResponseCache] = None,
        rate_budget: Optional[RateBudget] = None,
        timeout: float = 30.0,
        retry_delay: float = RATE_LIMIT_DELAY_SECONDS,
        max_rate_limit_retries: int = DEFAULT_RATE_LIMIT_RETRIES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise AuthError("BABBAR_API_KEY is required to call the Babbar API.")

        self.cache: ResponseCache = cache if cache is not None else MemoryCache()
        self.rate_budget = rate_budget if rate_budget is not None else RateBudget()
        self.retry_delay = retry_delay
        self.max_rate_limit_retries = max_rate_limit_retries

        self._client = httpx.AsyncClient(
            base_url=base_url,
            params={"api_token": api_key},
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )
        self._closed = False

    async def call(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        method: str = "POST",
        use_cache: bool = True,
    ) -> dict:
        """Run one provider operation and return its envelope.

        Args:
            endpoint: Operation path (e.g., '/host/keywords').
            params: Parameter object sent as the JSON body.
            method: HTTP verb. Only POST responses are cached.
            use_cache: Set to False to force a network round-trip.

        Raises:
            AuthError, RateLimitError, BadRequestError, NotFoundError,
            UnknownTransportError.
        """
        if self._closed:
            raise UnknownTransportError("Client is closed", endpoint=endpoint)

        method = method.upper()
        cacheable = use_cache and method == CACHEABLE_METHOD
        key = request_signature(method, endpoint, params)

        if cacheable:
            cached = await self.cache.get(key)
            if cached is not None:
                logger.debug("Cache hit for %s", key)
                return cached

        logger.info("API call: %s %s", method, endpoint)
        try:
            payload = await self._request(method, endpoint, params)
        except BabbarError as exc:
            logger.error("API call failed: %s %s: %s", method, endpoint, exc)
            raise

        envelope = format_response(payload, endpoint, self.rate_budget.remaining)
        if cacheable:
            await self.cache.set(key, envelope)

        logger.info(
            "API usage: %s %s (rate limit remaining: %s)",
            method, endpoint, self.rate_budget.remaining,
        )
        return envelope

    async def _request(self, method: str, endpoint: str, params: Optional[dict], attempt: int = 0) -> Any:
        """Issue the request; on HTTP 429 wait and re-issue the same request."""
        try:
            if method == "GET":
                response = await self._client.request(method, endpoint, params=params or {})
            else:
                response = await self._client.request(method, endpoint, json=params or {})
        except httpx.HTTPError as exc:
            raise UnknownTransportError(
                f"API error (unknown): {exc}. For support, contact {SUPPORT_CONTACT}",
                endpoint=endpoint,
            ) from exc

        self.rate_budget.update(response.headers)

        if response.status_code == 429:
            if attempt >= self.max_rate_limit_retries:
                raise RateLimitError(
                    f"Rate limit exceeded on {endpoint} after {attempt + 1} attempts. "
                    "Please wait and try again or check if another process is using the API.",
                    status_code=429,
                    endpoint=endpoint,
                )
            logger.warning("Rate limit exceeded, waiting %s seconds...", self.retry_delay)
            await asyncio.sleep(self.retry_delay)
            return await self._request(method, endpoint, params, attempt + 1)

        if response.is_success:
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as exc:
                raise UnknownTransportError(
                    f"API error ({response.status_code}): response is not valid JSON. "
                    f"For support, contact {SUPPORT_CONTACT}",
                    status_code=response.status_code,
                    endpoint=endpoint,
                ) from exc

        raise _error_for_status(response, endpoint)

    async def throttle(self) -> bool:
        """Pause before the next unit of a batch loop when the quota is nearly spent.

        Returns True when a pause happened.
        """
        if not self.rate_budget.is_exhausted:
            return False
        logger.warning("Rate limit nearly exhausted, waiting %s seconds...", self.retry_delay)
        await asyncio.sleep(self.retry_delay)
        return True

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        return body.get("message") or body.get("error")
    return None


def _error_for_status(response: httpx.Response, endpoint: str) -> BabbarError:
    status = response.status_code
    if status == 401:
        return AuthError(
            "Invalid API key. Please check your BABBAR_API_KEY environment variable.",
            status_code=status,
            endpoint=endpoint,
        )
    if status == 400:
        message = _error_message(response) or response.reason_phrase
        return BadRequestError(f"Bad request on {endpoint}: {message}", status_code=status, endpoint=endpoint)
    if status == 404:
        return NotFoundError(f"Endpoint not found: {endpoint}", status_code=status, endpoint=endpoint)
    return UnknownTransportError(
        f"API error ({status}): {response.reason_phrase}. For support, contact {SUPPORT_CONTACT}",
        status_code=status,
        endpoint=endpoint,
    )
