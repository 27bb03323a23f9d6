"""Prompts module - centralized prompt templates for AI services.

Re-exports all prompt constants and utilities for easy importing:
    from services.prompts import PROMPT_VERSIONS, extract_json_payload
    from services.prompts import SEGMENT_MATCHER_V1
"""

from services.prompts._base import extract_json_payload
from services.prompts.matching import SEGMENT_MATCHER_V1

# Prompt version identifiers for cache invalidation
# IMPORTANT: Increment these when prompts change to invalidate stale cached responses
PROMPT_VERSIONS = {
    "score_candidates": "v1",
}

__all__ = [
    # Utilities
    "extract_json_payload",
    # Version tracking
    "PROMPT_VERSIONS",
    # Matching prompts
    "SEGMENT_MATCHER_V1",
]
