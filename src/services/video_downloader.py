"""Full-video and audio downloads via yt-dlp, with credential fallback."""

import asyncio
import logging
import random
import uuid
from pathlib import Path
from typing import Optional

import yt_dlp

from models.transcript import detect_platform, extract_video_id
from services.credential_store import CredentialSource, CredentialStore, UNAUTHENTICATED
from services.video_provider import VideoDataProvider
from utils.errors import RateLimitExceeded, RetrievalFailure
from utils.retry import (
    BotCheckError,
    NetworkError,
    RetryPolicy,
    TemporaryServiceError,
    YouTubeRateLimitError,
    is_auth_failure_message,
    is_bot_check_message,
)

logger = logging.getLogger(__name__)

# User agent rotation to get past bot checks
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

VIDEO_FORMAT = "bestvideo[height<={height}][ext=mp4]+bestaudio[ext=m4a]/best[height<={height}]/best"
AUDIO_FORMAT = "bestaudio[ext=m4a]/bestaudio/best"

# Bot/consent rejections get one more try with a different user agent
BOT_CHECK_ATTEMPTS = 2


def get_random_user_agent() -> str:
    """Get a random user agent to avoid detection."""
    return random.choice(USER_AGENTS)


logging.getLogger("yt_dlp").setLevel(logging.CRITICAL)


def _classify_download_error(error: Exception, reference: str) -> Exception:
    """Map a yt-dlp error to the retry taxonomy."""
    message = str(error)
    lowered = message.lower()
    if is_bot_check_message(message):
        return BotCheckError(f"Bot check for {reference}: {message}")
    if "403" in lowered or "forbidden" in lowered or "429" in lowered:
        return YouTubeRateLimitError(f"YouTube refused {reference}: {message}")
    if "network" in lowered or "connection" in lowered or "timed out" in lowered:
        return NetworkError(f"Network error downloading {reference}: {message}")
    return RetrievalFailure(f"Download failed for {reference}: {message}")


class VideoDownloader:
    """Downloads full videos and audio tracks to a scratch directory."""

    def __init__(
        self,
        output_dir: str,
        credential_store: Optional[CredentialStore] = None,
        provider: Optional[VideoDataProvider] = None,
        max_height: int = 720,
        bot_retry_policy: Optional[RetryPolicy] = None,
    ):
        """Initialize video downloader.

        Args:
            output_dir: Base scratch directory for downloads
            credential_store: Source of cookie files; unauthenticated if None
            provider: Paid provider used to resolve direct media URLs
            max_height: Highest video resolution to request
            bot_retry_policy: Retry applied to bot/consent rejections
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.credential_store = credential_store
        self.provider = provider
        self.max_height = max_height
        self.bot_retry_policy = bot_retry_policy or RetryPolicy(
            max_attempts=BOT_CHECK_ATTEMPTS,
            delays=(2.0,),
            retryable=lambda e: isinstance(e, BotCheckError),
        )

        logger.info(f"Initialized video downloader with output dir: {self.output_dir}")

    def resolve_credentials(self, session_id: Optional[str]) -> list[CredentialSource]:
        if self.credential_store is None:
            return [UNAUTHENTICATED]
        return self.credential_store.resolve_credentials(session_id)

    async def download_video(
        self, reference: str, output_dir: Path, session_id: Optional[str] = None
    ) -> Path:
        """Download the full video for a reference.

        Raises:
            RetrievalFailure: If every credential source and the provider fail
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        stem = f"full_{uuid.uuid4().hex[:12]}"
        ydl_opts = self._base_options(output_dir, stem)
        ydl_opts["format"] = VIDEO_FORMAT.format(height=self.max_height)
        ydl_opts["merge_output_format"] = "mp4"

        try:
            return await self._download_with_credentials(reference, ydl_opts, output_dir, stem, session_id)
        except RetrievalFailure as ytdlp_error:
            video_id = extract_video_id(reference)
            if not (self.provider and self.provider.is_configured() and video_id):
                raise
            if detect_platform(reference) != "youtube":
                raise
            logger.info(f"yt-dlp failed for {reference}, trying provider download")
            try:
                url = await self.provider.get_video_url(
                    video_id, quality=str(self.max_height), is_short="/shorts/" in reference
                )
                if not url:
                    raise ytdlp_error
                return await self.provider.download_media(url, output_dir / f"{stem}.mp4")
            except (RateLimitExceeded, RetrievalFailure):
                raise
            except Exception as e:
                raise RetrievalFailure(f"{ytdlp_error}; provider fallback failed: {e}") from e

    async def download_audio(
        self, reference: str, output_dir: Path, session_id: Optional[str] = None
    ) -> Path:
        """Download the audio track for a reference.

        For YouTube the provider's direct audio URL is tried first; yt-dlp
        with the credential chain is the fallback.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        stem = f"audio_{uuid.uuid4().hex[:12]}"

        video_id = extract_video_id(reference)
        if (
            self.provider is not None
            and self.provider.is_configured()
            and video_id
            and detect_platform(reference) == "youtube"
        ):
            try:
                url = await self.provider.get_audio_url(video_id)
                if url:
                    return await self.provider.download_media(url, output_dir / f"{stem}.m4a")
            except Exception as e:
                logger.warning(f"Provider audio download failed for {video_id}: {e}")

        ydl_opts = self._base_options(output_dir, stem)
        ydl_opts["format"] = AUDIO_FORMAT
        return await self._download_with_credentials(reference, ydl_opts, output_dir, stem, session_id)

    async def _download_with_credentials(
        self,
        reference: str,
        ydl_opts: dict,
        output_dir: Path,
        stem: str,
        session_id: Optional[str],
    ) -> Path:
        sources = self.resolve_credentials(session_id)
        # First source, plus one retry with the next source on auth failure
        candidates = sources[:2]
        last_error: Optional[Exception] = None

        for attempt, source in enumerate(candidates, start=1):
            logger.info(f"Downloading {reference} with {source.describe()} (attempt {attempt})")
            try:
                return await self.bot_retry_policy.run(
                    asyncio.to_thread,
                    self._run_ytdlp,
                    reference,
                    source.apply(ydl_opts),
                    output_dir,
                    stem,
                )
            except (BotCheckError, YouTubeRateLimitError, NetworkError, TemporaryServiceError, RetrievalFailure) as e:
                last_error = e
                self._remove_partials(output_dir, stem)
                if attempt < len(candidates) and is_auth_failure_message(str(e)):
                    logger.warning(
                        f"Authentication failure with {source.describe()}, "
                        f"retrying with {candidates[attempt].describe()}"
                    )
                    continue
                break

        raise RetrievalFailure(f"Could not download {reference}: {last_error}")

    def _base_options(self, output_dir: Path, stem: str) -> dict:
        return {
            "outtmpl": str(output_dir / f"{stem}.%(ext)s"),
            "writeinfojson": False,
            "writesubtitles": False,
            "writethumbnail": False,
            "noplaylist": True,
            "retries": 3,
            "quiet": True,
            "no_warnings": True,
            "no_progress": True,
            "socket_timeout": 30,
            "http_headers": {"User-Agent": get_random_user_agent()},
            "postprocessor_args": {
                "FFmpeg": ["-v", "quiet", "-nostats", "-loglevel", "error"],
            },
        }

    def _run_ytdlp(self, reference: str, ydl_opts: dict, output_dir: Path, stem: str) -> Path:
        """Blocking yt-dlp download; returns the produced file."""
        opts = dict(ydl_opts)
        # Fresh user agent on every attempt
        opts["http_headers"] = {"User-Agent": get_random_user_agent()}

        try:
            with yt_dlp.YoutubeDL(opts) as ydl:
                ydl.download([reference])
        except yt_dlp.utils.DownloadError as e:
            raise _classify_download_error(e, reference) from e

        produced = self._find_output(output_dir, stem)
        if produced is None:
            raise RetrievalFailure(f"yt-dlp produced no file for {reference}")
        return produced

    @staticmethod
    def _find_output(output_dir: Path, stem: str) -> Optional[Path]:
        for path in sorted(output_dir.glob(f"{stem}.*")):
            if path.is_file() and path.suffix not in (".part", ".ytdl") and path.stat().st_size > 0:
                return path
        return None

    @staticmethod
    def _remove_partials(output_dir: Path, stem: str) -> None:
        for path in output_dir.glob(f"{stem}*"):
            path.unlink(missing_ok=True)
