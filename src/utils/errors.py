"""Error taxonomy for threadclip.

Component-local failures (one video's transcript, one scoring batch, one
clip cut) degrade the aggregate result. Only input validation errors and
timeouts abort a job; configuration errors abort startup.
"""

import asyncio


class ThreadClipError(Exception):
    """Base class for all threadclip errors."""

    kind = "internal_error"


class InputError(ThreadClipError):
    """Invalid caller input (empty thread, no videos, bad time range)."""

    kind = "input_error"


class JobNotFoundError(ThreadClipError):
    """Job id is unknown or past its retention window."""

    kind = "not_found"


class MatchingFailure(ThreadClipError):
    """Scoring call failed for one batch of text segments."""

    kind = "matching_failure"


class RetrievalFailure(ThreadClipError):
    """Download or cut failed for a single match."""

    kind = "retrieval_failure"


class RateLimitExceeded(ThreadClipError):
    """Provider kept throttling after all retries were used."""

    kind = "rate_limit_exceeded"


class JobTimeoutError(ThreadClipError):
    """Job exceeded its wall-clock budget."""

    kind = "timeout"


class ConfigurationError(ThreadClipError):
    """Required configuration is missing or invalid at startup."""

    kind = "configuration_error"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors))


def classify_error(error: BaseException) -> str:
    """Return the error kind string reported on a failed job."""
    if isinstance(error, ThreadClipError):
        return error.kind
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return JobTimeoutError.kind
    return ThreadClipError.kind
