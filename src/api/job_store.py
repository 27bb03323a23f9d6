"""In-process job storage for the threadclip API.

Jobs are a best-effort cache: they live in memory for the lifetime of the
process and terminal jobs are purged after a retention window. The
orchestrator depends on the JobStore protocol so another backend can be
injected without touching pipeline code.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

from models.job import Job, JobResult, JobStatus

logger = logging.getLogger(__name__)

# Terminal jobs are kept this long before being purged
DEFAULT_RETENTION_SECONDS = 3600.0


class JobStore(Protocol):
    """Storage operations the orchestrator relies on."""

    async def create_job(self, job_id: str, message: str = "Job created") -> Job: ...

    async def get_job(self, job_id: str) -> Job | None: ...

    async def update_job(
        self,
        job_id: str,
        *,
        status: str | None = None,
        progress: float | None = None,
        message: str | None = None,
        result: JobResult | None = None,
        error: str | None = None,
        error_kind: str | None = None,
    ) -> Job | None: ...

    async def delete_job(self, job_id: str) -> bool: ...


class InMemoryJobStore:
    """Async-safe in-memory job storage.

    Every mutation goes through update_job under a single asyncio.Lock.
    Stored progress is the max of the previous and incoming values, so late
    or out-of-order progress writes never move a job backwards.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        on_purge: Optional[Callable[[str], None]] = None,
    ):
        self.retention_seconds = retention_seconds
        # Called with the job id after a retention purge, e.g. to delete its files
        self._purge_hooks: list[Callable[[str], None]] = [on_purge] if on_purge else []
        self._jobs: dict[str, Job] = {}
        self._purge_handles: dict[str, asyncio.TimerHandle] = {}
        self._lock = asyncio.Lock()

    async def create_job(self, job_id: str, message: str = "Job created") -> Job:
        """Create a new job in the processing state."""
        async with self._lock:
            if job_id in self._jobs:
                raise ValueError(f"Job {job_id} already exists")
            job = Job(id=job_id, status_message=message)
            self._jobs[job_id] = job
            logger.info(f"Created job {job_id}")
            return job.copy()

    async def get_job(self, job_id: str) -> Job | None:
        """Get a snapshot of a job, or None if unknown or purged."""
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.copy() if job else None

    async def update_job(
        self,
        job_id: str,
        *,
        status: str | None = None,
        progress: float | None = None,
        message: str | None = None,
        result: JobResult | None = None,
        error: str | None = None,
        error_kind: str | None = None,
    ) -> Job | None:
        """Apply a partial update to a job.

        Args:
            job_id: Job identifier
            status: New status (all updates are ignored once the job is terminal)
            progress: Incoming progress percent, reconciled with max()
            message: Human-readable status message
            result: Result payload, stored only when completing
            error: Error message for failed jobs
            error_kind: Classified error kind for failed jobs

        Returns:
            Updated job snapshot or None if the job is unknown
        """
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            if job.is_terminal:
                # Terminal state is final; stale writes are dropped
                logger.debug(f"Ignoring late update for terminal job {job_id}")
                return job.copy()

            if progress is not None:
                clamped = min(max(float(progress), 0.0), 100.0)
                job.progress_percent = max(job.progress_percent, clamped)
            if message is not None:
                job.status_message = message

            if status is not None:
                job.status = status
                if status == JobStatus.COMPLETED:
                    job.result = result
                    job.error = None
                    job.error_kind = None
                    job.progress_percent = 100.0
                elif status == JobStatus.FAILED:
                    job.result = None
                    job.error = error or "Job failed"
                    job.error_kind = error_kind or "internal_error"

            job.last_update_at = datetime.now()

            if job.is_terminal:
                self._schedule_purge(job_id)

            logger.debug(
                f"Updated job {job_id}: status={job.status} progress={job.progress_percent:.1f}"
            )
            return job.copy()

    async def delete_job(self, job_id: str) -> bool:
        """Delete a job and cancel its pending purge."""
        async with self._lock:
            return self._remove(job_id)

    async def close(self) -> None:
        """Cancel all pending purge timers."""
        async with self._lock:
            for handle in self._purge_handles.values():
                handle.cancel()
            self._purge_handles.clear()

    def add_purge_hook(self, hook: Callable[[str], None]) -> None:
        if hook not in self._purge_hooks:
            self._purge_hooks.append(hook)

    def job_count(self) -> int:
        return len(self._jobs)

    def pending_purges(self) -> int:
        return len(self._purge_handles)

    def _schedule_purge(self, job_id: str) -> None:
        existing = self._purge_handles.pop(job_id, None)
        if existing is not None:
            existing.cancel()

        loop = asyncio.get_running_loop()
        self._purge_handles[job_id] = loop.call_later(
            self.retention_seconds, self._purge, job_id
        )

    def _purge(self, job_id: str) -> None:
        if not self._remove(job_id):
            return
        logger.info(f"Purged job {job_id} after {self.retention_seconds:.0f}s retention")
        for hook in self._purge_hooks:
            try:
                hook(job_id)
            except Exception as e:
                logger.error(f"Purge hook failed for job {job_id}: {e}")

    def _remove(self, job_id: str) -> bool:
        handle = self._purge_handles.pop(job_id, None)
        if handle is not None:
            handle.cancel()
        return self._jobs.pop(job_id, None) is not None

    def __repr__(self) -> str:
        info: dict[str, Any] = {"jobs": len(self._jobs), "pending_purges": len(self._purge_handles)}
        return f"InMemoryJobStore({info})"


# Module-level singleton
_job_store: InMemoryJobStore | None = None


def get_job_store() -> InMemoryJobStore:
    """Get or create the global job store singleton."""
    global _job_store
    if _job_store is None:
        from utils.config import load_config

        _job_store = InMemoryJobStore(
            retention_seconds=load_config().get(
                "job_retention_seconds", DEFAULT_RETENTION_SECONDS
            )
        )
    return _job_store


async def close_job_store() -> None:
    """Cancel pending purges on the global store during shutdown."""
    global _job_store
    if _job_store is not None:
        await _job_store.close()
        _job_store = None
