"""Transcript data models and video reference helpers."""

import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import parse_qs, urlparse

YOUTUBE_REGEX = re.compile(
    r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)"
    r"([A-Za-z0-9_-]{6,})"
)
VIMEO_REGEX = re.compile(r"vimeo\.com/(\d+)")
TWITTER_REGEX = re.compile(r"(?:twitter\.com|x\.com)/\w+/status/(\d+)")
TIKTOK_REGEX = re.compile(r"tiktok\.com/@[\w.-]+/video/(\d+)")
INSTAGRAM_REGEX = re.compile(r"instagram\.com/(?:p|reel)/([A-Za-z0-9_-]+)")
DIRECT_MEDIA_REGEX = re.compile(r"\.(mp4|mov|avi|webm|mkv)$", re.IGNORECASE)

_PLATFORM_PATTERNS = (
    ("youtube", YOUTUBE_REGEX),
    ("vimeo", VIMEO_REGEX),
    ("twitter", TWITTER_REGEX),
    ("tiktok", TIKTOK_REGEX),
    ("instagram", INSTAGRAM_REGEX),
)


def detect_platform(reference: str) -> str:
    """Return the hosting platform name for a video reference."""
    for name, pattern in _PLATFORM_PATTERNS:
        if pattern.search(reference):
            return name
    if DIRECT_MEDIA_REGEX.search(urlparse(reference).path or reference):
        return "direct"
    return "generic"


def extract_video_id(reference: str) -> Optional[str]:
    """Extract the platform video id from a reference, if it has one."""
    for _, pattern in _PLATFORM_PATTERNS:
        match = pattern.search(reference)
        if match:
            return match.group(1)

    # youtube.com/watch?...&v=<id> variants the regex missed
    parsed = urlparse(reference)
    if "youtube" in (parsed.netloc or ""):
        ids = parse_qs(parsed.query).get("v")
        if ids:
            return ids[0]
    return None


@dataclass(frozen=True)
class TranscriptSegment:
    """One timed cue of spoken text (seconds, half-open interval)."""

    index: int
    start_time: float
    end_time: float
    text: str

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def is_valid(self) -> bool:
        return self.end_time > self.start_time and self.start_time >= 0 and bool(self.text.strip())

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "text": self.text,
        }


@dataclass(frozen=True)
class VideoTranscript:
    """Timed transcript of one video, created once per video per job."""

    video_reference: str
    source_platform: str
    segments: tuple[TranscriptSegment, ...]
    total_duration: float
    method: str = "unknown"

    @classmethod
    def build(
        cls,
        video_reference: str,
        segments: list[TranscriptSegment],
        method: str,
        reported_duration: Optional[float] = None,
    ) -> "VideoTranscript":
        """Create a transcript, dropping invalid segments and re-indexing.

        total_duration is the latest segment end, or the duration reported by
        the source when that is larger.
        """
        kept = sorted((s for s in segments if s.is_valid()), key=lambda s: s.start_time)
        reindexed = tuple(
            TranscriptSegment(index=i, start_time=s.start_time, end_time=s.end_time, text=s.text.strip())
            for i, s in enumerate(kept)
        )
        duration = max((s.end_time for s in reindexed), default=0.0)
        if reported_duration and reported_duration > duration:
            duration = float(reported_duration)
        return cls(
            video_reference=video_reference,
            source_platform=detect_platform(video_reference),
            segments=reindexed,
            total_duration=duration,
            method=method,
        )

    @property
    def is_empty(self) -> bool:
        return not self.segments

    def to_dict(self) -> dict:
        return {
            "video_reference": self.video_reference,
            "source_platform": self.source_platform,
            "total_duration": self.total_duration,
            "method": self.method,
            "segment_count": len(self.segments),
        }


@dataclass(frozen=True)
class AcquisitionFailure:
    """Typed outcome when no strategy could produce a transcript."""

    video_reference: str
    reason: str
    attempts: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "video_reference": self.video_reference,
            "reason": self.reason,
            "attempts": list(self.attempts),
        }
