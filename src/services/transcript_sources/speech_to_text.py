"""Transcripts produced by downloading audio and running speech-to-text."""

import logging
import shutil
import uuid
from pathlib import Path
from typing import Optional

from models.transcript import VideoTranscript
from services.transcript_sources.base import TranscriptSource, TranscriptUnavailable
from services.transcription import TranscriptionService
from services.video_downloader import VideoDownloader
from utils.errors import RetrievalFailure

logger = logging.getLogger(__name__)


class SpeechToTextSource(TranscriptSource):
    """Last-resort source that works for any platform yt-dlp can read."""

    name = "speech_to_text"
    timeout_seconds = 300.0

    def __init__(
        self,
        downloader: VideoDownloader,
        transcription: TranscriptionService,
        scratch_dir: str,
    ):
        self.downloader = downloader
        self.transcription = transcription
        self.scratch_dir = Path(scratch_dir)

    async def fetch(self, reference: str, session_id: Optional[str] = None) -> VideoTranscript:
        # Namespaced per call so concurrent fetches never share files
        work_dir = self.scratch_dir / "audio" / uuid.uuid4().hex
        try:
            try:
                audio_path = await self.downloader.download_audio(reference, work_dir, session_id)
            except RetrievalFailure as e:
                raise TranscriptUnavailable(f"Audio download failed: {e}") from e

            segments, duration = await self.transcription.transcribe(str(audio_path))
            if not segments:
                raise TranscriptUnavailable("Speech-to-text produced no speech")

            return VideoTranscript.build(
                reference, segments, method=self.name, reported_duration=duration
            )
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
            logger.debug(f"Cleaned up audio scratch dir {work_dir}")
