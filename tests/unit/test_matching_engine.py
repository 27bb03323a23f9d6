"""Tests for candidate generation and segment matching."""

import pytest

from models.match import CandidateScore, MatchCandidate
from models.thread import TextSegment
from services.matching_engine import (
    MatchingEngine,
    build_candidates,
    chunk_candidates,
    coherence_score,
    combine_scores,
    keywords,
    window_starts,
)
from utils.errors import MatchingFailure

pytestmark = pytest.mark.unit

VIDEO_A = "https://www.youtube.com/watch?v=aaaaaaaaaaa"
VIDEO_B = "https://www.youtube.com/watch?v=bbbbbbbbbbb"

FILLER = "and then we talk"


def _cues(special: dict[int, str], count: int = 10) -> list[str]:
    return [special.get(i, FILLER) for i in range(count)]


class TestHelpers:
    """Tests for window and scoring helpers."""

    @pytest.mark.parametrize(
        "count,expected",
        [
            (0, []),
            (3, [0]),
            (5, [0]),
            (9, [0, 2, 4]),
            (10, [0, 2, 4, 5]),
        ],
    )
    def test_window_starts_cover_tail(self, count, expected):
        assert window_starts(count, 5, 2) == expected

    def test_keywords_ignore_short_words(self):
        assert keywords("The brain clears waste during deep sleep") == {"brain", "clears", "waste", "during", "sleep"}

    def test_coherence_score(self):
        assert coherence_score("glymphatic system", "the glymphatic system works") == 1.0
        assert coherence_score("glymphatic system", "the system") == 0.5
        assert coherence_score("a b c", "anything") == 0.0

    def test_combine_scores_clamped(self):
        assert combine_scores(1.0, 1.0) == pytest.approx(1.0)
        assert combine_scores(0.0, 0.0) == 0.0
        assert combine_scores(0.8, 0.0) == pytest.approx(0.68)

    def test_build_candidates(self, transcript_factory):
        transcript = transcript_factory(VIDEO_A, [f"cue number {i}" for i in range(10)])
        candidates = build_candidates(transcript, video_index=2)

        assert [c.id for c in candidates] == ["v2w0", "v2w2", "v2w4", "v2w5"]
        assert candidates[0].start_time == 0.0
        assert candidates[0].end_time == 25.0
        assert candidates[-1].end_time == 50.0
        assert all(c.end_time <= transcript.total_duration for c in candidates)
        assert candidates[1].text.startswith("cue number 2")

    def test_build_candidates_truncates_text(self, transcript_factory):
        transcript = transcript_factory(VIDEO_A, ["x" * 400] * 5)
        candidates = build_candidates(transcript, 0, max_chars=1000)
        assert len(candidates[0].text) == 1000


class TestMatchingEngine:
    """Tests for MatchingEngine.match."""

    @pytest.mark.asyncio
    async def test_one_match_per_segment_above_floor(self, transcript_factory, fake_scorer_factory):
        transcript = transcript_factory(
            VIDEO_A, _cues({1: "the glymphatic system clears waste", 8: "adults need eight hours"})
        )
        segments = [
            TextSegment(1, "The glymphatic system clears waste"),
            TextSegment(2, "Adults need eight hours"),
            TextSegment(3, "Unrelated claim about taxes"),
        ]

        def rule(segment, candidate):
            if segment.ordinal == 1 and "glymphatic" in candidate.text:
                return 0.95
            if segment.ordinal == 2 and "eight hours" in candidate.text:
                return 0.9
            return 0.2

        engine = MatchingEngine(fake_scorer_factory(rule), min_confidence=0.75)
        matches = await engine.match(segments, [transcript])

        assert [m.segment_ordinal for m in matches] == [1, 2]
        assert len({m.text_segment_id for m in matches}) == len(matches)
        assert all(m.confidence >= 0.75 for m in matches)
        assert matches[0].start_time == 0.0
        assert matches[1].video_reference == VIDEO_A

    @pytest.mark.asyncio
    async def test_best_below_floor_yields_no_match(self, transcript_factory, fake_scorer_factory):
        transcript = transcript_factory(VIDEO_A, _cues({}))
        engine = MatchingEngine(fake_scorer_factory(lambda s, c: 0.7), min_confidence=0.75)

        matches = await engine.match([TextSegment(1, "Something specific")], [transcript])

        assert matches == []

    @pytest.mark.asyncio
    async def test_tie_break_prefers_earlier_video_then_earlier_start(
        self, transcript_factory, fake_scorer_factory
    ):
        texts = _cues({6: "glymphatic system"})
        transcript_a = transcript_factory(VIDEO_A, texts)
        transcript_b = transcript_factory(VIDEO_B, texts)

        def rule(segment, candidate):
            return 0.9 if "glymphatic" in candidate.text else None

        engine = MatchingEngine(fake_scorer_factory(rule), min_confidence=0.5)
        # Transcripts arrive out of submission order
        matches = await engine.match(
            [TextSegment(1, "glymphatic system")],
            [transcript_b, transcript_a],
            video_order=[VIDEO_A, VIDEO_B],
        )

        assert len(matches) == 1
        assert matches[0].video_reference == VIDEO_A
        assert matches[0].video_index == 0
        # Windows starting at cue 2, 4 and 5 all contain cue 6
        assert matches[0].start_time == 10.0

    @pytest.mark.asyncio
    async def test_higher_confidence_beats_video_order(self, transcript_factory, fake_scorer_factory):
        transcript_a = transcript_factory(VIDEO_A, _cues({0: "deep sleep"}))
        transcript_b = transcript_factory(VIDEO_B, _cues({0: "deep sleep"}))

        def rule(segment, candidate):
            return 0.99 if candidate.video_reference == VIDEO_B else 0.8

        engine = MatchingEngine(fake_scorer_factory(rule), min_confidence=0.5)
        matches = await engine.match([TextSegment(1, "deep sleep")], [transcript_a, transcript_b])

        assert matches[0].video_reference == VIDEO_B

    @pytest.mark.asyncio
    async def test_deterministic(self, transcript_factory, fake_scorer_factory):
        transcript_a = transcript_factory(VIDEO_A, _cues({3: "memory consolidation happens"}))
        transcript_b = transcript_factory(VIDEO_B, _cues({7: "memory consolidation happens"}))
        segments = [TextSegment(1, "memory consolidation"), TextSegment(2, "memory consolidation")]

        def rule(segment, candidate):
            return 0.88 if "memory" in candidate.text else 0.1

        engine = MatchingEngine(fake_scorer_factory(rule), min_confidence=0.5)
        first = await engine.match(segments, [transcript_a, transcript_b])
        second = await engine.match(segments, [transcript_a, transcript_b])

        assert [m.to_dict() for m in first] == [m.to_dict() for m in second]
        # Identical segment text still produces one match per segment
        assert [m.segment_ordinal for m in first] == [1, 2]

    @pytest.mark.asyncio
    async def test_failed_batch_only_drops_its_segments(self, transcript_factory):
        transcript = transcript_factory(VIDEO_A, _cues({0: "sleep facts"}))

        class FlakyScorer:
            def score_candidates(self, segments, candidates):
                if segments[0].ordinal == 1:
                    raise MatchingFailure("unparseable")
                return [
                    CandidateScore(segment_ordinal=s.ordinal, candidate_id=candidates[0].id, score=1.0, reason="")
                    for s in segments
                ]

        engine = MatchingEngine(FlakyScorer(), min_confidence=0.5, batch_size=1)
        matches = await engine.match(
            [TextSegment(1, "sleep facts"), TextSegment(2, "sleep facts")], [transcript]
        )

        assert [m.segment_ordinal for m in matches] == [2]

    @pytest.mark.asyncio
    async def test_unknown_candidate_ids_ignored(self, transcript_factory, fake_scorer_factory):
        transcript = transcript_factory(VIDEO_A, _cues({}))

        class BogusScorer:
            def score_candidates(self, segments, candidates):
                return [CandidateScore(segment_ordinal=1, candidate_id="v9w9", score=1.0, reason="")]

        engine = MatchingEngine(BogusScorer(), min_confidence=0.1)
        assert await engine.match([TextSegment(1, "x")], [transcript]) == []

    @pytest.mark.asyncio
    async def test_no_transcripts_or_segments(self, fake_scorer_factory):
        scorer = fake_scorer_factory(lambda s, c: 1.0)
        engine = MatchingEngine(scorer)

        assert await engine.match([TextSegment(1, "x")], []) == []
        assert await engine.match([], []) == []
        assert scorer.calls == 0

    @pytest.mark.asyncio
    async def test_match_end_never_exceeds_duration(self, transcript_factory, fake_scorer_factory):
        transcript = transcript_factory(VIDEO_A, _cues({9: "final words"}), reported_duration=48.0)
        engine = MatchingEngine(fake_scorer_factory(lambda s, c: 1.0), min_confidence=0.1)

        matches = await engine.match([TextSegment(1, "final words")], [transcript])

        assert matches[0].end_time <= transcript.total_duration
        assert matches[0].start_time < matches[0].end_time


def _candidate(i: int, text: str) -> MatchCandidate:
    return MatchCandidate(
        id=f"v0w{i}", video_index=0, video_reference=VIDEO_A, start_time=float(i), end_time=i + 1.0, text=text
    )


class TestCandidateChunking:
    """Tests for bounding the candidates sent in one scoring call."""

    def test_chunks_bounded_by_count(self):
        candidates = [_candidate(i, "x") for i in range(7)]
        chunks = chunk_candidates(candidates, max_count=3, max_chars=1000)
        assert [len(c) for c in chunks] == [3, 3, 1]
        assert [c for chunk in chunks for c in chunk] == candidates

    def test_chunks_bounded_by_chars(self):
        candidates = [_candidate(i, "a" * 40) for i in range(5)]
        chunks = chunk_candidates(candidates, max_count=100, max_chars=100)
        assert [len(c) for c in chunks] == [2, 2, 1]

    def test_oversized_candidate_gets_its_own_chunk(self):
        candidates = [_candidate(0, "a" * 500), _candidate(1, "b")]
        assert [len(c) for c in chunk_candidates(candidates, max_count=10, max_chars=100)] == [1, 1]

    @pytest.mark.asyncio
    async def test_long_videos_scored_in_bounded_calls(self, transcript_factory):
        transcripts = [
            transcript_factory(VIDEO_A, _cues({}, count=900)),
            transcript_factory(VIDEO_B, _cues({850: "glymphatic clearance"}, count=900)),
        ]

        class RecordingScorer:
            def __init__(self):
                self.calls = []

            def score_candidates(self, segments, candidates):
                self.calls.append((len(candidates), sum(len(c.text) for c in candidates)))
                return [
                    CandidateScore(segment_ordinal=s.ordinal, candidate_id=c.id, score=1.0, reason="")
                    for s in segments
                    for c in candidates
                    if "glymphatic" in c.text
                ]

        scorer = RecordingScorer()
        engine = MatchingEngine(scorer, min_confidence=0.5, max_candidates_per_call=150, max_chars_per_call=5_000)

        matches = await engine.match([TextSegment(1, "glymphatic clearance")], transcripts)

        assert len(scorer.calls) > 1
        assert all(count <= 150 and chars <= 5_000 for count, chars in scorer.calls)
        assert sum(count for count, _ in scorer.calls) == sum(
            len(build_candidates(t, i)) for i, t in enumerate(transcripts)
        )
        assert matches[0].video_reference == VIDEO_B

    @pytest.mark.asyncio
    async def test_failed_chunk_keeps_other_chunks(self, transcript_factory):
        transcript = transcript_factory(VIDEO_A, _cues({0: "sleep facts"}, count=40))

        class HalfFailingScorer:
            def score_candidates(self, segments, candidates):
                if candidates[0].start_time > 0:
                    raise MatchingFailure("response truncated")
                return [
                    CandidateScore(segment_ordinal=1, candidate_id=candidates[0].id, score=1.0, reason="")
                ]

        engine = MatchingEngine(HalfFailingScorer(), min_confidence=0.5, max_candidates_per_call=5)
        matches = await engine.match([TextSegment(1, "sleep facts")], [transcript])

        assert [m.start_time for m in matches] == [0.0]
