"""Speech-to-text transcription using faster-whisper."""

import asyncio
import logging
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Optional

from faster_whisper import WhisperModel

from models.transcript import TranscriptSegment

logger = logging.getLogger(__name__)

AUDIO_EXTRACTION_TIMEOUT = 300


class TranscriptionCancelled(RuntimeError):
    """The caller gave up on a transcription before whisper finished."""


def _release_audio(audio_path: Path):
    """Done-callback that deletes the worker's audio file once the thread exits."""

    def callback(worker: asyncio.Future) -> None:
        if not worker.cancelled() and worker.exception() is not None:
            logger.debug(f"Transcription worker ended with: {worker.exception()}")
        audio_path.unlink(missing_ok=True)

    return callback


class TranscriptionService:
    """Service for transcribing audio content using Whisper."""

    def __init__(
        self,
        model_name: str = "base",
        device: str = "auto",
        compute_type: str = "auto",
        audio_dir: Optional[str] = None,
    ):
        self.model_name = model_name
        self.device = device
        self.compute_type = compute_type
        self.audio_dir = Path(audio_dir) if audio_dir else Path(tempfile.gettempdir()) / "threadclip_whisper"
        self.model: Optional[WhisperModel] = None
        # Held by the worker thread for the whole run, so it outlives a cancelled caller
        self._model_lock = threading.Lock()

    def _load_model(self) -> WhisperModel:
        if self.model is None:
            logger.info(f"Loading Whisper model: {self.model_name}")
            try:
                self.model = WhisperModel(
                    self.model_name,
                    device=self.device,
                    compute_type=self.compute_type,
                )
            except Exception as e:
                logger.error(f"Failed to load Whisper model '{self.model_name}': {e}")
                raise
            logger.info(
                f"Loaded faster-whisper model {self.model_name} "
                f"(device={self.device}, compute_type={self.compute_type})"
            )
        return self.model

    async def transcribe(self, media_path: str) -> tuple[list[TranscriptSegment], float]:
        """Transcribe an audio or video file.

        Cancelling the call kills a running ffmpeg, and tells the whisper
        thread to stop at its next segment. The extracted audio is deleted
        when that thread exits, not before.

        Args:
            media_path: Path to the downloaded media

        Returns:
            Tuple of (timed segments, reported duration in seconds)
        """
        file_path = Path(media_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        logger.info(f"Starting transcription of: {file_path.name}")

        audio_path = await self._extract_audio(file_path)

        stop = threading.Event()
        worker = asyncio.ensure_future(
            asyncio.to_thread(self._transcribe_with_whisper, str(audio_path), stop)
        )
        worker.add_done_callback(_release_audio(Path(audio_path)))
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            stop.set()
            logger.warning(f"Transcription of {file_path.name} cancelled; stopping whisper worker")
            raise

    def _transcribe_with_whisper(
        self, audio_path: str, stop: threading.Event
    ) -> tuple[list[TranscriptSegment], float]:
        with self._model_lock:
            if stop.is_set():
                raise TranscriptionCancelled(f"Cancelled before start: {audio_path}")
            model = self._load_model()

            # faster-whisper decodes lazily as the generator is consumed
            segments_generator, info = model.transcribe(audio_path)

            segments = []
            for seg in segments_generator:
                if stop.is_set():
                    raise TranscriptionCancelled(
                        f"Cancelled after {len(segments)} segments: {audio_path}"
                    )
                text = str(seg.text).strip()
                if not text:
                    continue
                segments.append(
                    TranscriptSegment(
                        index=len(segments),
                        start_time=float(seg.start),
                        end_time=float(seg.end),
                        text=text,
                    )
                )

        duration = float(info.duration)
        logger.info(
            f"Transcription complete: {len(segments)} segments, "
            f"{duration:.1f}s duration, language: {info.language}"
        )
        return segments, duration

    async def _extract_audio(self, media_path: Path) -> Path:
        """Extract 16 kHz mono PCM audio with ffmpeg; the process is killed on timeout or cancel."""
        self.audio_dir.mkdir(parents=True, exist_ok=True)
        audio_path = self.audio_dir / f"{media_path.stem}_{uuid.uuid4().hex[:8]}.wav"

        cmd = [
            "ffmpeg",
            "-i",
            str(media_path),
            "-vn",
            "-acodec",
            "pcm_s16le",
            "-ar",
            "16000",
            "-ac",
            "1",
            "-y",
            str(audio_path),
        ]

        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=AUDIO_EXTRACTION_TIMEOUT)
        except asyncio.TimeoutError:
            raise RuntimeError("Audio extraction timed out") from None
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()
                audio_path.unlink(missing_ok=True)

        if process.returncode != 0:
            message = (stderr or b"").decode("utf-8", errors="replace")
            logger.error(f"FFmpeg failed: {message}")
            audio_path.unlink(missing_ok=True)
            raise RuntimeError(f"Audio extraction failed: {message}")

        logger.debug(f"Audio extraction completed: {audio_path}")
        return audio_path
