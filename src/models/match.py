"""Match and retrieval result models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class QualityTier(str, Enum):
    """Reporting label for a match's confidence. Never used for filtering."""

    PERFECT = "perfect"
    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"


def quality_for_confidence(confidence: float) -> QualityTier:
    """Map a confidence in [0, 1] to its quality tier."""
    if confidence >= 0.95:
        return QualityTier.PERFECT
    if confidence >= 0.85:
        return QualityTier.EXCELLENT
    if confidence >= 0.75:
        return QualityTier.GOOD
    return QualityTier.ACCEPTABLE


@dataclass
class RetrievalResult:
    """Outcome of downloading and cutting the clip for one match."""

    success: bool
    local_file_path: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "local_file_path": self.local_file_path,
            "error": self.error,
        }


@dataclass
class Match:
    """Best time range in one video for one text segment."""

    text_segment_id: str
    segment_ordinal: int
    segment_text: str
    video_reference: str
    video_index: int
    start_time: float
    end_time: float
    matched_text: str
    confidence: float
    reasoning: str = ""
    # Set only through attach_retrieval
    retrieval_succeeded: Optional[bool] = None
    local_file_path: Optional[str] = None
    retrieval_error: Optional[str] = None

    @property
    def quality_tier(self) -> QualityTier:
        return quality_for_confidence(self.confidence)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def attach_retrieval(self, result: RetrievalResult) -> None:
        """Record the clip retrieval outcome without touching matching fields."""
        self.retrieval_succeeded = result.success
        self.local_file_path = result.local_file_path
        self.retrieval_error = result.error

    def to_dict(self) -> dict:
        data = {
            "text_segment_id": self.text_segment_id,
            "segment_ordinal": self.segment_ordinal,
            "segment_text": self.segment_text,
            "video_reference": self.video_reference,
            "start_time": round(self.start_time, 3),
            "end_time": round(self.end_time, 3),
            "duration": round(self.duration, 3),
            "matched_text": self.matched_text,
            "confidence": round(self.confidence, 4),
            "quality_tier": self.quality_tier.value,
            "reasoning": self.reasoning,
        }
        if self.retrieval_succeeded is not None:
            data["retrieval_succeeded"] = self.retrieval_succeeded
            data["local_file_path"] = self.local_file_path
            data["retrieval_error"] = self.retrieval_error
        return data


def get_match_statistics(matches: list[Match]) -> dict:
    """Summarize matches by quality tier and confidence spread."""
    by_quality = {tier.value: 0 for tier in QualityTier}
    for match in matches:
        by_quality[match.quality_tier.value] += 1

    confidences = [m.confidence for m in matches]
    return {
        "total": len(matches),
        "by_quality": by_quality,
        "average_confidence": round(sum(confidences) / len(confidences), 4) if confidences else 0.0,
        "min_confidence": round(min(confidences), 4) if confidences else 0.0,
        "max_confidence": round(max(confidences), 4) if confidences else 0.0,
    }


@dataclass(frozen=True)
class MatchCandidate:
    """A window of consecutive transcript segments that may match a text segment."""

    id: str
    video_index: int
    video_reference: str
    start_time: float
    end_time: float
    text: str


@dataclass(frozen=True)
class CandidateScore:
    """Language-model judgement for one (text segment, candidate) pair."""

    segment_ordinal: int
    candidate_id: str
    score: float
    reason: str = ""
