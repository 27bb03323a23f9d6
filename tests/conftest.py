"""Shared pytest fixtures for threadclip tests."""

import sys
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, Optional

import pytest

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from models.match import CandidateScore  # noqa: E402
from models.transcript import TranscriptSegment, VideoTranscript  # noqa: E402


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(tmp_path) -> Dict:
    """Sample configuration for testing."""
    return {
        "gemini_api_key": "test_gemini_key",
        "rapidapi_key": "test_rapidapi_key",
        "whisper_model": "base",
        "gemini_model": "gemini-2.5-flash",
        "rapidapi_host": "provider.example.com",
        "provider_max_requests_per_minute": 13,
        "provider_min_request_interval": 2.0,
        "thread_delimiter": "---",
        "min_match_confidence": 0.75,
        "max_concurrent_transcripts": 3,
        "parallel_downloads": 3,
        "job_timeout_seconds": 30,
        "job_retention_seconds": 3600,
        "scratch_dir": str(tmp_path / "scratch"),
        "cookies_dir": str(tmp_path / "cookies"),
        "ytdlp_cookies_file": None,
        "youtube_cookies": None,
        "ytdlp_cookies_from_browser": None,
        "clip_max_height": 720,
        "score_cache_enabled": False,
        "score_cache_dir": str(tmp_path / "cache"),
        "score_cache_ttl_days": 30,
        "log_level": "INFO",
        "log_json": False,
    }


def make_transcript(
    reference: str,
    texts: list[str],
    cue_seconds: float = 5.0,
    reported_duration: Optional[float] = None,
    method: str = "page_captions",
) -> VideoTranscript:
    """Build a transcript with back-to-back cues of equal length."""
    segments = [
        TranscriptSegment(index=i, start_time=i * cue_seconds, end_time=(i + 1) * cue_seconds, text=text)
        for i, text in enumerate(texts)
    ]
    return VideoTranscript.build(reference, segments, method=method, reported_duration=reported_duration)


class FakeScorer:
    """Stand-in for AIService.score_candidates.

    ``rule(segment, candidate)`` returns a semantic score, or None for pairs
    the model would not mention.
    """

    def __init__(self, rule: Callable):
        self.rule = rule
        self.calls = 0

    def score_candidates(self, segments, candidates):
        self.calls += 1
        scores = []
        for segment in segments:
            for candidate in candidates:
                value = self.rule(segment, candidate)
                if value is not None:
                    scores.append(
                        CandidateScore(
                            segment_ordinal=segment.ordinal,
                            candidate_id=candidate.id,
                            score=value,
                            reason=f"rule score {value}",
                        )
                    )
        return scores


@pytest.fixture
def transcript_factory():
    return make_transcript


@pytest.fixture
def fake_scorer_factory():
    return FakeScorer
