"""Pydantic request/response models for the threadclip API."""

from pydantic import BaseModel, Field

# =============================================================================
# Request Models
# =============================================================================


class JobSubmitRequest(BaseModel):
    """Thread plus the videos to search for matching clips."""

    thread: str = Field(description="Thread text, segments separated by the delimiter")
    videos: list[str] = Field(description="Video URLs to search")
    download_clips: bool = False
    session_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "thread": "Why sleep matters\n---\nDeep sleep clears waste from the brain.\n---\nMost adults need 7-9 hours.",
                    "videos": ["https://www.youtube.com/watch?v=dQw4w9WgXcQ"],
                    "download_clips": False,
                }
            ]
        }
    }


class ClipRequest(BaseModel):
    """A single clip to cut on demand."""

    video_url: str
    start_time: float
    end_time: float
    session_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "video_url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
                    "start_time": 30,
                    "end_time": 45,
                }
            ]
        }
    }


class CookieTextRequest(BaseModel):
    """Pasted Netscape cookie file contents."""

    cookies: str


# =============================================================================
# Response Models
# =============================================================================


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str

    model_config = {"json_schema_extra": {"examples": [{"message": "Operation completed successfully"}]}}


class RootResponse(BaseModel):
    """Root endpoint response."""

    message: str
    version: str

    model_config = {"json_schema_extra": {"examples": [{"message": "threadclip API", "version": "1.0.0"}]}}


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    active_jobs: int = 0

    model_config = {"json_schema_extra": {"examples": [{"status": "healthy", "active_jobs": 0}]}}


class JobCreatedResponse(BaseModel):
    """Response when a job is created."""

    job_id: str
    status: str

    model_config = {
        "json_schema_extra": {
            "examples": [{"job_id": "550e8400-e29b-41d4-a716-446655440000", "status": "processing"}]
        }
    }


class MatchResponse(BaseModel):
    """One matched clip."""

    text_segment_id: str
    segment_ordinal: int
    segment_text: str
    video_reference: str
    start_time: float
    end_time: float
    duration: float
    matched_text: str
    confidence: float = Field(ge=0, le=1)
    quality_tier: str
    reasoning: str = ""
    retrieval_succeeded: bool | None = None
    local_file_path: str | None = None
    retrieval_error: str | None = None


class JobSummaryResponse(BaseModel):
    """Aggregate numbers for a completed job."""

    segments_total: int
    videos_processed: int
    videos_successful: int
    videos_unusable: int
    clips_found: int
    clips_downloaded: int
    average_confidence: float
    by_quality: dict[str, int]
    processing_time_ms: int
    unusable_videos: list[dict]


class JobResultResponse(BaseModel):
    matches: list[MatchResponse]
    summary: JobSummaryResponse


class JobResponse(BaseModel):
    """Job snapshot returned while polling."""

    job_id: str
    status: str
    progress: float = Field(ge=0, le=100)
    message: str
    created_at: str
    updated_at: str
    result: JobResultResponse | None = None
    error: str | None = None
    error_kind: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "job_id": "550e8400-e29b-41d4-a716-446655440000",
                    "status": "processing",
                    "progress": 30.0,
                    "message": "Transcripts: 1/2 videos processed",
                    "created_at": "2026-02-08T12:00:00",
                    "updated_at": "2026-02-08T12:00:05",
                }
            ]
        }
    }


class CredentialStatusResponse(BaseModel):
    """Whether a session has uploaded credentials."""

    session_id: str
    has_credentials: bool
