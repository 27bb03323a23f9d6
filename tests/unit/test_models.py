"""Tests for transcript, match and job models."""

import pytest

from models.job import Job, JobResult, JobStatus, JobSummary
from models.match import Match, QualityTier, RetrievalResult, get_match_statistics, quality_for_confidence
from models.transcript import (
    AcquisitionFailure,
    TranscriptSegment,
    VideoTranscript,
    detect_platform,
    extract_video_id,
)

pytestmark = pytest.mark.unit


def _match(ordinal: int = 1, confidence: float = 0.9, **kwargs) -> Match:
    fields = dict(
        text_segment_id=f"segment-{ordinal}",
        segment_ordinal=ordinal,
        segment_text="text",
        video_reference="https://www.youtube.com/watch?v=abc123XYZ00",
        video_index=0,
        start_time=10.0,
        end_time=25.0,
        matched_text="matched",
        confidence=confidence,
    )
    fields.update(kwargs)
    return Match(**fields)


class TestVideoReferences:
    """Tests for platform detection and id extraction."""

    @pytest.mark.parametrize(
        "reference,platform,video_id",
        [
            ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "youtube", "dQw4w9WgXcQ"),
            ("https://youtu.be/dQw4w9WgXcQ", "youtube", "dQw4w9WgXcQ"),
            ("https://www.youtube.com/shorts/dQw4w9WgXcQ", "youtube", "dQw4w9WgXcQ"),
            ("https://vimeo.com/123456", "vimeo", "123456"),
            ("https://x.com/someone/status/987654321", "twitter", "987654321"),
            ("https://www.tiktok.com/@user/video/555", "tiktok", "555"),
            ("https://cdn.example.com/media/talk.mp4", "direct", None),
            ("https://example.com/page", "generic", None),
        ],
    )
    def test_detection(self, reference, platform, video_id):
        assert detect_platform(reference) == platform
        assert extract_video_id(reference) == video_id

    def test_watch_url_with_v_not_first(self):
        assert extract_video_id("https://www.youtube.com/watch?feature=share&v=dQw4w9WgXcQ") == "dQw4w9WgXcQ"


class TestVideoTranscript:
    """Tests for VideoTranscript.build."""

    def test_drops_invalid_segments_and_reindexes(self):
        segments = [
            TranscriptSegment(index=5, start_time=10.0, end_time=12.0, text="second"),
            TranscriptSegment(index=0, start_time=3.0, end_time=3.0, text="zero length"),
            TranscriptSegment(index=1, start_time=0.0, end_time=2.0, text=" first "),
            TranscriptSegment(index=2, start_time=4.0, end_time=6.0, text="   "),
        ]
        transcript = VideoTranscript.build("https://youtu.be/abc123XYZ00", segments, method="test")

        assert [s.text for s in transcript.segments] == ["first", "second"]
        assert [s.index for s in transcript.segments] == [0, 1]
        assert transcript.total_duration == 12.0
        assert transcript.source_platform == "youtube"

    def test_reported_duration_extends_total(self):
        segments = [TranscriptSegment(index=0, start_time=0.0, end_time=5.0, text="a")]
        transcript = VideoTranscript.build("https://youtu.be/abc123XYZ00", segments, "stt", reported_duration=60.0)
        assert transcript.total_duration == 60.0

    def test_empty(self):
        transcript = VideoTranscript.build("https://youtu.be/abc123XYZ00", [], "test")
        assert transcript.is_empty
        assert transcript.total_duration == 0.0

    def test_acquisition_failure_to_dict(self):
        failure = AcquisitionFailure("https://vimeo.com/1", "No transcript source succeeded", ("a: x", "b: y"))
        assert failure.to_dict()["attempts"] == ["a: x", "b: y"]


class TestMatch:
    """Tests for Match and quality tiers."""

    @pytest.mark.parametrize(
        "confidence,tier",
        [
            (0.97, QualityTier.PERFECT),
            (0.9, QualityTier.EXCELLENT),
            (0.8, QualityTier.GOOD),
            (0.5, QualityTier.ACCEPTABLE),
        ],
    )
    def test_quality_tier(self, confidence, tier):
        assert quality_for_confidence(confidence) == tier

    def test_retrieval_fields_only_after_attach(self):
        match = _match()
        assert "retrieval_succeeded" not in match.to_dict()

        match.attach_retrieval(RetrievalResult(success=False, error="boom"))
        data = match.to_dict()
        assert data["retrieval_succeeded"] is False
        assert data["retrieval_error"] == "boom"
        assert data["local_file_path"] is None

    def test_duration(self):
        assert _match().to_dict()["duration"] == 15.0

    def test_statistics(self):
        stats = get_match_statistics([_match(1, 0.96), _match(2, 0.8)])
        assert stats["by_quality"]["perfect"] == 1
        assert stats["by_quality"]["good"] == 1
        assert stats["average_confidence"] == pytest.approx(0.88)


class TestJob:
    """Tests for Job serialization."""

    def test_processing_job_has_no_result_or_error(self):
        data = Job(id="j1").to_dict()
        assert data["status"] == JobStatus.PROCESSING
        assert "result" not in data
        assert "error" not in data

    def test_completed_job_includes_result(self):
        summary = JobSummary(segments_total=2, videos_processed=1, videos_successful=1, clips_found=1)
        job = Job(id="j1", status=JobStatus.COMPLETED, result=JobResult([_match()], summary))

        result = job.to_dict()["result"]
        assert len(result["matches"]) == 1
        assert result["summary"]["videos_unusable"] == 0
        assert result["summary"]["clips_found"] == 1

    def test_failed_job_includes_error_kind(self):
        job = Job(id="j1", status=JobStatus.FAILED, error="nope", error_kind="timeout")
        data = job.to_dict()
        assert data["error"] == "nope"
        assert data["error_kind"] == "timeout"
