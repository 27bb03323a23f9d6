"""Transcript acquisition chain.

Sources are tried in order, each at most once and under its own timeout.
The chain never raises for a per-video problem: it returns either a
VideoTranscript or an AcquisitionFailure listing what was tried.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from models.transcript import AcquisitionFailure, VideoTranscript
from services.transcript_sources import (
    PageCaptionsSource,
    SpeechToTextSource,
    TranscriptApiSource,
    TranscriptSource,
)
from services.transcription import TranscriptionService
from services.video_downloader import VideoDownloader

logger = logging.getLogger(__name__)

AcquisitionOutcome = Union[VideoTranscript, AcquisitionFailure]


class TranscriptService:
    """Runs the ordered transcript sources for a video reference."""

    def __init__(self, sources: Sequence[TranscriptSource]):
        if not sources:
            raise ValueError("At least one transcript source is required")
        self.sources = list(sources)

    @classmethod
    def from_config(cls, config: dict, downloader: VideoDownloader) -> "TranscriptService":
        scratch_dir = config.get("scratch_dir", "temp")
        transcription = TranscriptionService(
            model_name=config.get("whisper_model", "base"),
            audio_dir=str(Path(scratch_dir) / "whisper"),
        )
        return cls(
            [
                PageCaptionsSource(),
                TranscriptApiSource(),
                SpeechToTextSource(downloader, transcription, scratch_dir),
            ]
        )

    async def acquire(
        self, reference: str, session_id: Optional[str] = None
    ) -> AcquisitionOutcome:
        """Get a transcript for one video, degrading through the sources."""
        attempts: list[str] = []

        for source in self.sources:
            if not source.supports(reference):
                continue

            try:
                transcript = await asyncio.wait_for(
                    source.fetch(reference, session_id), timeout=source.timeout_seconds
                )
            except asyncio.TimeoutError:
                attempts.append(f"{source.name}: timed out after {source.timeout_seconds:.0f}s")
                logger.warning(f"[{source.name}] timed out for {reference}")
                continue
            except Exception as e:
                attempts.append(f"{source.name}: {e}")
                logger.info(f"[{source.name}] failed for {reference}: {e}")
                continue

            if transcript.is_empty:
                attempts.append(f"{source.name}: no usable segments")
                continue

            logger.info(
                f"Transcript for {reference} via {source.name}: "
                f"{len(transcript.segments)} segments, {transcript.total_duration:.0f}s"
            )
            return transcript

        reason = "No transcript source succeeded" if attempts else "No transcript source supports this reference"
        logger.warning(f"Transcript acquisition failed for {reference}: {'; '.join(attempts) or reason}")
        return AcquisitionFailure(video_reference=reference, reason=reason, attempts=tuple(attempts))
