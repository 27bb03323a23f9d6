"""Transcript sources, tried in order by the acquisition chain."""

from services.transcript_sources.base import TranscriptSource, TranscriptUnavailable
from services.transcript_sources.page_captions import PageCaptionsSource
from services.transcript_sources.transcript_api import TranscriptApiSource
from services.transcript_sources.speech_to_text import SpeechToTextSource

__all__ = [
    "TranscriptSource",
    "TranscriptUnavailable",
    "PageCaptionsSource",
    "TranscriptApiSource",
    "SpeechToTextSource",
]
