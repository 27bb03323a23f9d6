"""Job lifecycle models."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional

from .match import Match, get_match_statistics


class JobStatus:
    """Job status constants."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    TERMINAL = (COMPLETED, FAILED)


@dataclass
class JobSummary:
    """Aggregate numbers reported with a completed job."""

    segments_total: int = 0
    videos_processed: int = 0
    videos_successful: int = 0
    clips_found: int = 0
    clips_downloaded: int = 0
    processing_time_ms: int = 0
    unusable_videos: list[dict] = field(default_factory=list)

    @property
    def videos_unusable(self) -> int:
        return len(self.unusable_videos)


@dataclass
class JobResult:
    """Matches plus summary for a completed job."""

    matches: list[Match]
    summary: JobSummary

    def to_dict(self) -> dict:
        stats = get_match_statistics(self.matches)
        return {
            "matches": [m.to_dict() for m in self.matches],
            "summary": {
                "segments_total": self.summary.segments_total,
                "videos_processed": self.summary.videos_processed,
                "videos_successful": self.summary.videos_successful,
                "videos_unusable": self.summary.videos_unusable,
                "clips_found": self.summary.clips_found,
                "clips_downloaded": self.summary.clips_downloaded,
                "average_confidence": stats["average_confidence"],
                "by_quality": stats["by_quality"],
                "processing_time_ms": self.summary.processing_time_ms,
                "unusable_videos": list(self.summary.unusable_videos),
            },
        }


@dataclass
class Job:
    """A long-running match request tracked by the job store."""

    id: str
    status: str = JobStatus.PROCESSING
    progress_percent: float = 0.0
    status_message: str = "Job created"
    created_at: datetime = field(default_factory=datetime.now)
    last_update_at: datetime = field(default_factory=datetime.now)
    result: Optional[JobResult] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def copy(self) -> "Job":
        """Return a shallow snapshot safe to hand out of the store."""
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "job_id": self.id,
            "status": self.status,
            "progress": round(self.progress_percent, 1),
            "message": self.status_message,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.last_update_at.isoformat(),
        }
        if self.status == JobStatus.COMPLETED and self.result is not None:
            data["result"] = self.result.to_dict()
        if self.status == JobStatus.FAILED:
            data["error"] = self.error
            data["error_kind"] = self.error_kind
        return data
