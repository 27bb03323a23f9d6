# Data models for threadclip
from .thread import TextSegment, parse_thread, split_thread
from .transcript import (
    AcquisitionFailure,
    TranscriptSegment,
    VideoTranscript,
    detect_platform,
    extract_video_id,
)
from .match import (
    CandidateScore,
    MatchCandidate,
    Match,
    QualityTier,
    RetrievalResult,
    get_match_statistics,
    quality_for_confidence,
)
from .job import Job, JobResult, JobStatus, JobSummary

__all__ = [
    "TextSegment",
    "parse_thread",
    "split_thread",
    # Transcripts
    "AcquisitionFailure",
    "TranscriptSegment",
    "VideoTranscript",
    "detect_platform",
    "extract_video_id",
    # Matching
    "CandidateScore",
    "MatchCandidate",
    "Match",
    "QualityTier",
    "RetrievalResult",
    "get_match_statistics",
    "quality_for_confidence",
    # Jobs
    "Job",
    "JobResult",
    "JobStatus",
    "JobSummary",
]
