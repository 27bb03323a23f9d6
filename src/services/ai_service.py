"""AI service for scoring thread segments against transcript windows using Google GenAI.

Responses are cached by prompt hash + prompt version so identical inputs
score identically across runs.
"""

import json
import logging
from typing import Optional, Sequence

from google.genai import Client
from google.genai import types

from models.match import CandidateScore, MatchCandidate
from models.thread import TextSegment
from services.prompts import PROMPT_VERSIONS, SEGMENT_MATCHER_V1, extract_json_payload
from utils.cache import AIResponseCache
from utils.errors import MatchingFailure
from utils.retry import APIRateLimitError, NetworkError, TemporaryServiceError, retry_api_call

logger = logging.getLogger(__name__)

# Best candidates requested per segment
TOP_K_PER_SEGMENT = 3


def _format_segments(segments: Sequence[TextSegment]) -> str:
    return "\n".join(f'[{s.ordinal}] "{s.text}"' for s in segments)


def _format_candidates(candidates: Sequence[MatchCandidate]) -> str:
    return "\n".join(
        f"[{c.id}] (video {c.video_index + 1}, {c.start_time:.1f}s-{c.end_time:.1f}s) \"{c.text}\""
        for c in candidates
    )


def parse_score_response(
    text: str,
    segment_ordinals: set[int],
    candidate_ids: set[str],
) -> list[CandidateScore]:
    """Parse the model's JSON array into CandidateScores.

    Entries referring to unknown segments or candidates, or without a
    numeric score, are ignored. Scores are clamped to [0, 1].
    """
    data = json.loads(extract_json_payload(text))
    if isinstance(data, dict):
        data = data.get("matches", [])
    if not isinstance(data, list):
        raise ValueError("Score response is not a JSON array")

    scores = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        try:
            ordinal = int(entry.get("segment"))
            candidate_id = str(entry.get("candidate"))
            score = float(entry.get("score"))
        except (TypeError, ValueError):
            continue
        if ordinal not in segment_ordinals or candidate_id not in candidate_ids:
            continue
        scores.append(
            CandidateScore(
                segment_ordinal=ordinal,
                candidate_id=candidate_id,
                score=min(max(score, 0.0), 1.0),
                reason=str(entry.get("reason", "")).strip(),
            )
        )
    return scores


class AIService:
    """Service for semantic segment matching using Gemini."""

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.5-flash",
        cache: Optional[AIResponseCache] = None,
        client: Optional[Client] = None,
    ):
        """Initialize Google GenAI client.

        Args:
            api_key: Google GenAI API key
            model_name: Gemini model to use
            cache: Optional AIResponseCache for caching responses
            client: Pre-built client (tests inject a fake)
        """
        self.api_key = api_key
        self.model_name = model_name
        self.client = client or Client(api_key=api_key)
        self.cache = cache

        if cache and cache.enabled:
            logger.info(f"Initialized AI service with model: {model_name} (caching enabled)")
        else:
            logger.info(f"Initialized AI service with model: {model_name}")

    def score_candidates(
        self,
        segments: Sequence[TextSegment],
        candidates: Sequence[MatchCandidate],
    ) -> list[CandidateScore]:
        """Score a batch of thread segments against transcript candidates.

        Args:
            segments: Text segments in this batch
            candidates: Transcript windows across all usable videos

        Returns:
            Semantic scores for the pairs the model judged relevant

        Raises:
            MatchingFailure: If the model call or response parsing fails
        """
        if not segments or not candidates:
            return []

        prompt = SEGMENT_MATCHER_V1.format(
            segments_text=_format_segments(segments),
            candidates_text=_format_candidates(candidates),
            top_k=TOP_K_PER_SEGMENT,
        )
        cache_key = f"{PROMPT_VERSIONS['score_candidates']}:{prompt}"

        response_text = self.cache.get(cache_key, self.model_name) if self.cache else None
        try:
            if response_text is None:
                response_text = self._generate(prompt)
            scores = parse_score_response(
                response_text,
                {s.ordinal for s in segments},
                {c.id for c in candidates},
            )
        except MatchingFailure:
            raise
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Failed to parse scoring response: {e}")
            raise MatchingFailure(f"Unparseable scoring response: {e}") from e
        except Exception as e:
            logger.error(f"Scoring call failed: {e}")
            raise MatchingFailure(f"Scoring call failed: {e}") from e

        if self.cache:
            self.cache.set(cache_key, self.model_name, response_text)

        logger.info(
            f"Scored {len(segments)} segments against {len(candidates)} candidates: "
            f"{len(scores)} judgements"
        )
        return scores

    @retry_api_call(max_retries=3, base_delay=2.0)
    def _generate(self, prompt: str) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=0.0,
                    response_mime_type="application/json",
                ),
            )
        except Exception as e:
            # Convert specific errors to retryable errors
            message = str(e).lower()
            if "rate limit" in message or "429" in message or "resource_exhausted" in message:
                raise APIRateLimitError(f"Rate limit hit: {e}") from e
            if "network" in message or "connection" in message:
                raise NetworkError(f"Network error: {e}") from e
            if "503" in message or "unavailable" in message or "overloaded" in message:
                raise TemporaryServiceError(f"Service unavailable: {e}") from e
            raise

        if not response.text:
            raise MatchingFailure("AI response is empty")
        return response.text
