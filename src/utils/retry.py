"""Retry policy and retryable error types shared by external-call sites.

A single RetryPolicy (max attempts, backoff schedule, retryable predicate) is
reused by the rate-limited provider client, the scoring calls and the
authenticated download path instead of ad hoc loops at each call site.
"""

import asyncio
import functools
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableError(Exception):
    """Base class for errors that a RetryPolicy may retry."""


class APIRateLimitError(RetryableError):
    """Remote API reported throttling (HTTP 429 or equivalent)."""


class NetworkError(RetryableError):
    """Connection-level failure talking to a remote service."""


class TemporaryServiceError(RetryableError):
    """Remote service is temporarily unavailable (5xx, overloaded)."""


class YouTubeRateLimitError(RetryableError):
    """YouTube answered 403/429 to a media request."""


class BotCheckError(RetryableError):
    """Provider rejected the request with a bot or consent check."""


BOT_CHECK_SIGNATURES = (
    "sign in to confirm",
    "not a bot",
    "confirm you're not a bot",
    "consent",
    "verify you are human",
)

AUTH_FAILURE_SIGNATURES = BOT_CHECK_SIGNATURES + (
    "login required",
    "members-only",
    "private video",
    "age-restricted",
    "cookies",
    "http error 403",
)


def is_bot_check_message(message: str) -> bool:
    """Check whether an error message looks like a bot/consent rejection."""
    lowered = message.lower()
    return any(signature in lowered for signature in BOT_CHECK_SIGNATURES)


def is_auth_failure_message(message: str) -> bool:
    """Check whether an error message looks like an authentication failure."""
    lowered = message.lower()
    return any(signature in lowered for signature in AUTH_FAILURE_SIGNATURES)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, RetryableError)


@dataclass
class RetryPolicy:
    """Bounded retry with an explicit backoff schedule.

    Attributes:
        max_attempts: Total attempts including the first call
        delays: Seconds to wait before attempt 2, 3, ... The last value is
            reused if there are more attempts than delays.
        retryable: Predicate deciding whether an exception is retried
        sleep: Async sleep function (overridable in tests)
        sync_sleep: Blocking sleep function for synchronous callables
    """

    max_attempts: int = 3
    delays: Sequence[float] = (2.0, 4.0, 8.0)
    retryable: Callable[[BaseException], bool] = _is_retryable
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)
    sync_sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def exponential(
        cls,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        retryable: Optional[Callable[[BaseException], bool]] = None,
    ) -> "RetryPolicy":
        """Build a policy with doubling delays starting at base_delay."""
        delays = tuple(base_delay * (2**i) for i in range(max(max_attempts - 1, 1)))
        return cls(
            max_attempts=max_attempts,
            delays=delays,
            retryable=retryable or _is_retryable,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before the given 1-based retry attempt (attempt >= 2)."""
        if not self.delays:
            return 0.0
        index = min(attempt - 2, len(self.delays) - 1)
        return float(self.delays[max(index, 0)])

    async def run(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await func(*args, **kwargs), retrying retryable failures."""
        attempt = 1
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_attempts or not self.retryable(e):
                    raise
                delay = self.delay_for(attempt + 1)
                logger.warning(
                    f"{getattr(func, '__name__', 'call')} failed (attempt {attempt}/"
                    f"{self.max_attempts}): {e}. Retrying in {delay:.1f}s"
                )
                await self.sleep(delay)
                attempt += 1

    def run_sync(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call func(*args, **kwargs), retrying retryable failures."""
        attempt = 1
        while True:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_attempts or not self.retryable(e):
                    raise
                delay = self.delay_for(attempt + 1)
                logger.warning(
                    f"{getattr(func, '__name__', 'call')} failed (attempt {attempt}/"
                    f"{self.max_attempts}): {e}. Retrying in {delay:.1f}s"
                )
                self.sync_sleep(delay)
                attempt += 1


def _decorate(policy: RetryPolicy):
    def decorator(func):
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                return await policy.run(func, *args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            return policy.run_sync(func, *args, **kwargs)

        return sync_wrapper

    return decorator


def retry_api_call(max_retries: int = 3, base_delay: float = 2.0):
    """Retry an API call on rate-limit, network and temporary service errors.

    Works on both sync and async functions.
    """
    return _decorate(RetryPolicy.exponential(max_attempts=max_retries, base_delay=base_delay))
