"""Confidence-scored matching of thread segments to transcript time ranges.

Each text segment gets at most one Match: the highest-confidence candidate
window across all usable videos, provided it clears the confidence floor.
"""

import asyncio
import logging
import re
from typing import Optional, Sequence

from models.match import CandidateScore, Match, MatchCandidate
from models.thread import TextSegment
from models.transcript import VideoTranscript
from services.ai_service import AIService
from utils.config import DEFAULT_MIN_MATCH_CONFIDENCE
from utils.errors import MatchingFailure

logger = logging.getLogger(__name__)

WINDOW_SIZE = 5
WINDOW_STEP = 2
BATCH_SIZE = 5
MAX_CANDIDATE_CHARS = 1000
# Per model call; long video sets are scored over several calls
MAX_CANDIDATES_PER_CALL = 150
MAX_CHARS_PER_CALL = 150_000
SEMANTIC_WEIGHT = 0.85
COHERENCE_WEIGHT = 0.15

_WORD_RE = re.compile(r"[a-z0-9']+")


def keywords(text: str) -> set[str]:
    """Lowercased words longer than four characters."""
    return {w for w in _WORD_RE.findall(text.lower()) if len(w) > 4}


def coherence_score(segment_text: str, candidate_text: str) -> float:
    """Share of the segment's keywords that also occur in the candidate, in [0, 1]."""
    segment_words = keywords(segment_text)
    if not segment_words:
        return 0.0
    overlap = segment_words & keywords(candidate_text)
    return len(overlap) / len(segment_words)


def combine_scores(semantic: float, coherence: float) -> float:
    combined = SEMANTIC_WEIGHT * semantic + COHERENCE_WEIGHT * coherence
    return min(max(combined, 0.0), 1.0)


def window_starts(segment_count: int, window_size: int, step: int) -> list[int]:
    """Start indices of sliding windows; the tail window is always included."""
    if segment_count <= window_size:
        return [0] if segment_count else []
    starts = list(range(0, segment_count - window_size + 1, step))
    tail = segment_count - window_size
    if starts[-1] != tail:
        starts.append(tail)
    return starts


def build_candidates(
    transcript: VideoTranscript,
    video_index: int,
    window_size: int = WINDOW_SIZE,
    step: int = WINDOW_STEP,
    max_chars: int = MAX_CANDIDATE_CHARS,
) -> list[MatchCandidate]:
    """Slide a window over a transcript's segments to produce candidates."""
    segments = transcript.segments
    candidates = []
    for start in window_starts(len(segments), window_size, step):
        window = segments[start:start + window_size]
        text = " ".join(s.text for s in window)[:max_chars]
        end_time = min(window[-1].end_time, transcript.total_duration)
        if end_time <= window[0].start_time:
            continue
        candidates.append(
            MatchCandidate(
                id=f"v{video_index}w{start}",
                video_index=video_index,
                video_reference=transcript.video_reference,
                start_time=window[0].start_time,
                end_time=end_time,
                text=text,
            )
        )
    return candidates


def chunk_candidates(
    candidates: Sequence[MatchCandidate],
    max_count: int = MAX_CANDIDATES_PER_CALL,
    max_chars: int = MAX_CHARS_PER_CALL,
) -> list[list[MatchCandidate]]:
    """Split candidates into consecutive chunks bounded by count and total text length."""
    chunks: list[list[MatchCandidate]] = []
    current: list[MatchCandidate] = []
    current_chars = 0
    for candidate in candidates:
        size = len(candidate.text)
        if current and (len(current) >= max_count or current_chars + size > max_chars):
            chunks.append(current)
            current, current_chars = [], 0
        current.append(candidate)
        current_chars += size
    if current:
        chunks.append(current)
    return chunks


def _rank_key(confidence: float, candidate: MatchCandidate) -> tuple:
    # Higher confidence first, then lower video index, then earlier start
    return (-confidence, candidate.video_index, candidate.start_time)


class MatchingEngine:
    """Finds the single best clip for each thread segment."""

    def __init__(
        self,
        ai_service: AIService,
        min_confidence: float = DEFAULT_MIN_MATCH_CONFIDENCE,
        window_size: int = WINDOW_SIZE,
        step: int = WINDOW_STEP,
        batch_size: int = BATCH_SIZE,
        max_candidates_per_call: int = MAX_CANDIDATES_PER_CALL,
        max_chars_per_call: int = MAX_CHARS_PER_CALL,
    ):
        self.ai_service = ai_service
        self.min_confidence = min_confidence
        self.window_size = window_size
        self.step = step
        self.batch_size = batch_size
        self.max_candidates_per_call = max_candidates_per_call
        self.max_chars_per_call = max_chars_per_call

    async def match(
        self,
        text_segments: Sequence[TextSegment],
        transcripts: Sequence[VideoTranscript],
        video_order: Optional[Sequence[str]] = None,
    ) -> list[Match]:
        """Match segments against transcripts.

        Args:
            text_segments: Parsed thread segments
            transcripts: Usable transcripts
            video_order: Video references in submission order, used for
                tie-breaking. Defaults to the order of transcripts.

        Returns:
            At most one Match per segment, ordered by segment ordinal
        """
        order = list(video_order) if video_order is not None else [t.video_reference for t in transcripts]
        index_of = {ref: i for i, ref in reversed(list(enumerate(order)))}

        candidates: list[MatchCandidate] = []
        for transcript in transcripts:
            video_index = index_of.get(transcript.video_reference, len(order))
            candidates.extend(
                build_candidates(transcript, video_index, self.window_size, self.step)
            )

        if not text_segments or not candidates:
            logger.info("Nothing to match (no segments or no candidates)")
            return []

        candidates_by_id = {c.id: c for c in candidates}
        batches = [
            list(text_segments[i:i + self.batch_size])
            for i in range(0, len(text_segments), self.batch_size)
        ]
        logger.info(
            f"Matching {len(text_segments)} segments against {len(candidates)} candidates "
            f"from {len(transcripts)} videos in {len(batches)} batches"
        )

        chunks = chunk_candidates(candidates, self.max_candidates_per_call, self.max_chars_per_call)
        if len(chunks) > 1:
            logger.info(f"Scoring candidates in {len(chunks)} chunks per batch")

        batch_scores = await asyncio.gather(
            *(self._score_batch(batch, chunks) for batch in batches)
        )

        matches = []
        for batch, scores in zip(batches, batch_scores):
            if scores is None:
                continue
            for segment in batch:
                match = self._select_best(
                    segment,
                    [s for s in scores if s.segment_ordinal == segment.ordinal],
                    candidates_by_id,
                )
                if match is not None:
                    matches.append(match)

        matches.sort(key=lambda m: m.segment_ordinal)
        logger.info(f"Matched {len(matches)}/{len(text_segments)} segments")
        return matches

    async def _score_batch(
        self, batch: list[TextSegment], chunks: list[list[MatchCandidate]]
    ) -> Optional[list[CandidateScore]]:
        """Score one batch against every candidate chunk and merge the results.

        A failed chunk only loses its own candidates; the batch gets no
        scores when every chunk fails.
        """
        ordinals = ", ".join(str(s.ordinal) for s in batch)
        scores: list[CandidateScore] = []
        failed = 0
        for chunk in chunks:
            try:
                scores.extend(
                    await asyncio.to_thread(self.ai_service.score_candidates, batch, chunk)
                )
            except MatchingFailure as e:
                failed += 1
                logger.error(
                    f"Scoring failed for segments [{ordinals}] on {len(chunk)} candidates: {e}"
                )
        if failed == len(chunks):
            return None
        return scores

    def _select_best(
        self,
        segment: TextSegment,
        scores: list[CandidateScore],
        candidates_by_id: dict[str, MatchCandidate],
    ) -> Optional[Match]:
        best: Optional[tuple[tuple, float, MatchCandidate, CandidateScore]] = None

        for score in scores:
            candidate = candidates_by_id.get(score.candidate_id)
            if candidate is None:
                continue
            confidence = combine_scores(score.score, coherence_score(segment.text, candidate.text))
            key = _rank_key(confidence, candidate)
            if best is None or key < best[0]:
                best = (key, confidence, candidate, score)

        if best is None:
            return None

        _, confidence, candidate, score = best
        if confidence < self.min_confidence:
            logger.debug(
                f"Best candidate for segment {segment.ordinal} below floor "
                f"({confidence:.2f} < {self.min_confidence:.2f})"
            )
            return None

        return Match(
            text_segment_id=segment.id,
            segment_ordinal=segment.ordinal,
            segment_text=segment.text,
            video_reference=candidate.video_reference,
            video_index=candidate.video_index,
            start_time=candidate.start_time,
            end_time=candidate.end_time,
            matched_text=candidate.text,
            confidence=confidence,
            reasoning=score.reason,
        )
