"""Transcripts via the youtube-transcript-api library."""

import asyncio
import logging
from typing import Optional

from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    YouTubeTranscriptApi,
)

from models.transcript import TranscriptSegment, VideoTranscript, detect_platform, extract_video_id
from services.transcript_sources.base import TranscriptSource, TranscriptUnavailable

logger = logging.getLogger(__name__)

ENGLISH_CODES = ["en", "en-US", "en-GB"]


def _entry_fields(entry) -> tuple[str, float, float]:
    # Entries are dicts in older releases and snippet objects in newer ones
    try:
        return str(entry["text"]), float(entry["start"]), float(entry["duration"])
    except (TypeError, KeyError):
        return (
            str(getattr(entry, "text", "")),
            float(getattr(entry, "start", 0.0)),
            float(getattr(entry, "duration", 0.0)),
        )


def is_non_speech_cue(text: str) -> bool:
    """Cues like "[Music]" or "♪ ... ♪" carry no spoken content."""
    stripped = text.strip()
    return not stripped or stripped.startswith("[") or stripped.startswith("♪")


class TranscriptApiSource(TranscriptSource):
    """Fetches published transcripts keyed by YouTube video id."""

    name = "transcript_api"
    timeout_seconds = 30.0

    def __init__(self, api: Optional[YouTubeTranscriptApi] = None):
        self.api = api or YouTubeTranscriptApi()

    def supports(self, reference: str) -> bool:
        return detect_platform(reference) == "youtube" and extract_video_id(reference) is not None

    async def fetch(self, reference: str, session_id: Optional[str] = None) -> VideoTranscript:
        video_id = extract_video_id(reference)
        if not video_id:
            raise TranscriptUnavailable(f"No video id in {reference}")

        try:
            entries, language = await asyncio.to_thread(self._fetch_entries, video_id)
        except CouldNotRetrieveTranscript as e:
            raise TranscriptUnavailable(f"No transcript for {video_id}: {type(e).__name__}") from e

        segments = []
        for entry in entries:
            text, start, duration = _entry_fields(entry)
            if is_non_speech_cue(text):
                continue
            segments.append(
                TranscriptSegment(
                    index=len(segments),
                    start_time=start,
                    end_time=start + duration,
                    text=text.replace("\n", " ").strip(),
                )
            )

        if not segments:
            raise TranscriptUnavailable(f"Transcript for {video_id} is empty")

        logger.info(f"[TranscriptApi] {len(segments)} cues for {video_id} (language={language})")
        return VideoTranscript.build(reference, segments, method=self.name)

    def _fetch_entries(self, video_id: str):
        transcript_list = self.api.list(video_id)

        # Manual English, then generated English, then whatever is first
        try:
            transcript = transcript_list.find_manually_created_transcript(ENGLISH_CODES)
        except NoTranscriptFound:
            try:
                transcript = transcript_list.find_generated_transcript(ENGLISH_CODES)
            except NoTranscriptFound:
                transcript = next(iter(transcript_list), None)
                if transcript is None:
                    raise TranscriptUnavailable(f"No transcripts listed for {video_id}")

        return transcript.fetch(), transcript.language_code
