"""Rate-limited HTTP client for quota-bound external providers.

Callers see a plain ``call(endpoint, params) -> dict``; pacing, queueing and
retry on throttling happen underneath.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Optional

import httpx

from utils.errors import RateLimitExceeded
from utils.retry import (
    APIRateLimitError,
    NetworkError,
    RetryPolicy,
    TemporaryServiceError,
)

logger = logging.getLogger(__name__)

# Provider plan allows 15/min; stay under it
DEFAULT_MAX_REQUESTS = 13
DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_MIN_INTERVAL = 2.0
DEFAULT_SAFETY_MARGIN = 1.0
DEFAULT_REQUEST_TIMEOUT = 30.0

# Provider throttling: 4 attempts, waiting 5, 10 then 20 seconds
THROTTLE_MAX_ATTEMPTS = 4
THROTTLE_BASE_DELAY = 5.0


class SlidingWindowRateLimiter:
    """Sliding-window request log with a minimum spacing between requests.

    A single asyncio.Lock guards the log. The lock is held while waiting, so
    queued callers are served strictly in arrival order.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        safety_margin: float = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.min_interval = min_interval
        self.safety_margin = safety_margin
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def request_log(self) -> list[float]:
        """Timestamps of requests still inside the window."""
        return list(self._timestamps)

    async def acquire(self) -> None:
        """Wait until a request may be sent, then record it."""
        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._timestamps) < self.max_requests:
                    break
                wait = self._timestamps[0] + self.window_seconds - now + self.safety_margin
                logger.info(
                    f"Rate limit reached ({len(self._timestamps)}/{self.max_requests}). "
                    f"Waiting {wait:.1f}s for the window to free up"
                )
                await self._sleep(max(wait, 0.0))

            if self._last_request is not None:
                since_last = self._clock() - self._last_request
                if since_last < self.min_interval:
                    await self._sleep(self.min_interval - since_last)

            stamp = self._clock()
            self._timestamps.append(stamp)
            self._last_request = stamp

    def _evict(self, now: float) -> None:
        while self._timestamps and self._timestamps[0] <= now - self.window_seconds:
            self._timestamps.popleft()


def _is_throttle_body(payload: Any) -> bool:
    if isinstance(payload, dict):
        message = str(payload.get("message") or payload.get("error") or "")
        return "rate limit" in message.lower() or "too many requests" in message.lower()
    return False


class RateLimitedClient:
    """JSON-over-HTTP client that respects a provider's request quota."""

    def __init__(
        self,
        base_url: str,
        headers: Optional[dict[str, str]] = None,
        limiter: Optional[SlidingWindowRateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.limiter = limiter or SlidingWindowRateLimiter()
        self.retry_policy = retry_policy or RetryPolicy.exponential(
            max_attempts=THROTTLE_MAX_ATTEMPTS, base_delay=THROTTLE_BASE_DELAY
        )
        self.client = http_client or httpx.AsyncClient(
            base_url=self.base_url, headers=headers or {}, timeout=timeout
        )

    async def call(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> dict:
        """GET an endpoint and return its decoded JSON body.

        Raises:
            RateLimitExceeded: Provider kept throttling after every retry
            NetworkError: Transport failure persisted after every retry
            httpx.HTTPStatusError: Non-retryable HTTP error (4xx other than 429)
        """
        try:
            return await self.retry_policy.run(self._request_once, endpoint, params)
        except APIRateLimitError as e:
            raise RateLimitExceeded(f"Rate limit exceeded for {endpoint}: {e}") from e

    async def _request_once(self, endpoint: str, params: Optional[dict[str, Any]]) -> dict:
        await self.limiter.acquire()

        path = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        try:
            response = await self.client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request to {path} timed out") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Request to {path} failed: {e}") from e

        if response.status_code == 429:
            logger.warning(f"Provider throttled request to {path} (HTTP 429)")
            raise APIRateLimitError(f"HTTP 429 from {path}")
        if response.status_code >= 500:
            raise TemporaryServiceError(f"HTTP {response.status_code} from {path}")
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError as e:
            raise TemporaryServiceError(f"Invalid JSON from {path}") from e

        if _is_throttle_body(payload):
            logger.warning(f"Provider throttled request to {path} (body)")
            raise APIRateLimitError(f"Throttled by provider at {path}")

        return payload

    async def aclose(self) -> None:
        await self.client.aclose()
