"""Main threadclip class for orchestrating a matching job end to end.

Pipeline: parse thread -> acquire transcripts (bounded fan-out) -> match
segments -> optionally retrieve clips. Progress is written to the job store;
the job store is the only place job state lives.
"""

import asyncio
import logging
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from api.job_store import InMemoryJobStore, JobStore
from models.job import JobResult, JobStatus, JobSummary
from models.match import Match
from models.thread import TextSegment, parse_thread
from models.transcript import AcquisitionFailure, VideoTranscript
from services.ai_service import AIService
from services.clip_retrieval import ClipRetrievalPipeline, SingleClip
from services.credential_store import CredentialStore
from services.matching_engine import MatchingEngine
from services.transcript_service import TranscriptService
from services.video_downloader import VideoDownloader
from services.video_provider import VideoDataProvider
from utils.cache import load_cache_from_config
from utils.config import DEFAULT_THREAD_DELIMITER, load_config
from utils.errors import InputError, JobNotFoundError, JobTimeoutError, classify_error
from utils.logging import job_log_context

logger = logging.getLogger(__name__)

# Progress milestones (percent)
PROGRESS_PARSED = 5
PROGRESS_TRANSCRIPTS_START = 10
PROGRESS_TRANSCRIPTS_END = 50
PROGRESS_MATCHING_START = 60
PROGRESS_MATCHING_DONE = 80
PROGRESS_RETRIEVAL_DONE = 95
PROGRESS_DONE = 100


@dataclass
class JobOptions:
    """Per-job switches supplied by the caller."""

    download_clips: bool = False
    session_id: Optional[str] = None


def normalize_video_references(video_references: Sequence[str]) -> list[str]:
    """Trim, drop empties and de-duplicate references, keeping first-seen order.

    Raises:
        InputError: If no usable reference remains or one is not an http(s) URL
    """
    seen: set[str] = set()
    references = []
    for raw in video_references or []:
        reference = (raw or "").strip()
        if not reference or reference in seen:
            continue
        if not reference.lower().startswith(("http://", "https://")):
            raise InputError(f"Video reference is not a URL: {reference}")
        seen.add(reference)
        references.append(reference)

    if not references:
        raise InputError("At least one video reference is required")
    return references


class ThreadProcessor:
    """Central orchestrator for threadclip."""

    def __init__(
        self,
        config: Optional[dict] = None,
        job_store: Optional[JobStore] = None,
        transcript_service: Optional[TranscriptService] = None,
        matching_engine: Optional[MatchingEngine] = None,
        retrieval: Optional[ClipRetrievalPipeline] = None,
    ):
        """Initialize the processor; components not supplied are built from config."""
        self.config = config or load_config()
        self.delimiter = self.config.get("thread_delimiter", DEFAULT_THREAD_DELIMITER)
        self.max_concurrent_transcripts = self.config.get("max_concurrent_transcripts", 3)
        self.job_timeout = self.config.get("job_timeout_seconds", 1800)

        self.job_store = job_store or InMemoryJobStore(
            retention_seconds=self.config.get("job_retention_seconds", 3600)
        )
        self.scratch_dir = Path(self.config.get("scratch_dir", "temp"))
        if isinstance(self.job_store, InMemoryJobStore):
            self.job_store.add_purge_hook(self.remove_job_files)

        downloader = None
        if transcript_service is None or retrieval is None:
            downloader = VideoDownloader(
                output_dir=self.config.get("scratch_dir", "temp"),
                credential_store=CredentialStore.from_config(self.config),
                provider=VideoDataProvider.from_config(self.config),
                max_height=self.config.get("clip_max_height", 720),
            )

        self.transcript_service = transcript_service or TranscriptService.from_config(
            self.config, downloader
        )

        if matching_engine is None:
            ai_service = AIService(
                self.config.get("gemini_api_key") or "",
                self.config.get("gemini_model", "gemini-2.5-flash"),
                cache=load_cache_from_config(self.config),
            )
            matching_engine = MatchingEngine(
                ai_service, min_confidence=self.config.get("min_match_confidence", 0.75)
            )
        self.matching_engine = matching_engine

        self.retrieval = retrieval or ClipRetrievalPipeline.from_config(self.config, downloader)

        # Strong references to background tasks until they finish
        self._tasks: set[asyncio.Task] = set()

    def remove_job_files(self, job_id: str) -> None:
        """Delete a purged job's scratch directory (clips and zip archive)."""
        job_dir = self.scratch_dir / job_id
        if job_dir.exists():
            shutil.rmtree(job_dir, ignore_errors=True)
            logger.info(f"Removed scratch files for purged job {job_id}")

    async def submit(
        self,
        thread_text: str,
        video_references: Sequence[str],
        options: Optional[JobOptions] = None,
    ) -> str:
        """Validate input, create a job and start it in the background.

        Raises:
            InputError: For an empty thread, no segments or no videos. No job
                is created in that case.
        """
        segments = parse_thread(thread_text, self.delimiter)
        references = normalize_video_references(video_references)
        options = options or JobOptions()

        job_id = str(uuid.uuid4())
        await self.job_store.create_job(job_id, message="Job queued")
        logger.info(
            f"Submitted job {job_id}: {len(segments)} segments, {len(references)} videos"
        )

        task = asyncio.create_task(self.run(job_id, segments, references, options))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job_id

    async def get_status(self, job_id: str):
        """Return a snapshot of a job.

        Raises:
            JobNotFoundError: If the id is unknown or already purged
        """
        job = await self.job_store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    async def run(
        self,
        job_id: str,
        segments: list[TextSegment],
        references: list[str],
        options: JobOptions,
    ) -> None:
        """Execute a job to a terminal state. Never raises."""
        with job_log_context(job_id):
            try:
                result = await asyncio.wait_for(
                    self._execute_pipeline(job_id, segments, references, options),
                    timeout=self.job_timeout,
                )
                await self.job_store.update_job(
                    job_id,
                    status=JobStatus.COMPLETED,
                    progress=PROGRESS_DONE,
                    message=self._completion_message(result),
                    result=result,
                )
                logger.info(f"Job {job_id} completed")
            except asyncio.TimeoutError:
                error = JobTimeoutError(f"Job exceeded {self.job_timeout:.0f}s time limit")
                logger.error(str(error))
                await self._fail(job_id, error)
            except Exception as e:
                logger.error(f"Job {job_id} failed: {e}", exc_info=True)
                await self._fail(job_id, e)

    async def fetch_single_clip(
        self,
        reference: str,
        start_time: float,
        end_time: float,
        session_id: Optional[str] = None,
    ) -> SingleClip:
        """Cut one clip on demand; see ClipRetrievalPipeline.fetch_single_clip."""
        return await self.retrieval.fetch_single_clip(reference, start_time, end_time, session_id)

    async def _execute_pipeline(
        self,
        job_id: str,
        segments: list[TextSegment],
        references: list[str],
        options: JobOptions,
    ) -> JobResult:
        started = time.monotonic()
        self._report(job_id, PROGRESS_PARSED, f"Parsed {len(segments)} text segments")

        # Phase 1: transcripts
        outcomes = await self._acquire_transcripts(job_id, references, options.session_id)
        transcripts = [o for o in outcomes if isinstance(o, VideoTranscript)]
        failures = [o for o in outcomes if isinstance(o, AcquisitionFailure)]
        if failures:
            logger.warning(f"{len(failures)}/{len(references)} videos unusable")

        # Phase 2: matching
        self._report(
            job_id,
            PROGRESS_MATCHING_START,
            f"Matching {len(segments)} segments against {len(transcripts)} transcripts",
        )
        matches: list[Match] = []
        if transcripts:
            matches = await self.matching_engine.match(segments, transcripts, video_order=references)
        self._report(job_id, PROGRESS_MATCHING_DONE, f"Found {len(matches)} matches")

        # Phase 3: clips
        clips_downloaded = 0
        if options.download_clips and matches:
            self._report(job_id, PROGRESS_MATCHING_DONE, f"Downloading {len(matches)} clips")
            results = await self.retrieval.retrieve(matches, job_id=job_id, session_id=options.session_id)
            for match, result in zip(matches, results):
                match.attach_retrieval(result)
            clips_downloaded = sum(1 for r in results if r.success)
            self._report(
                job_id, PROGRESS_RETRIEVAL_DONE, f"Downloaded {clips_downloaded}/{len(matches)} clips"
            )

        summary = JobSummary(
            segments_total=len(segments),
            videos_processed=len(references),
            videos_successful=len(transcripts),
            clips_found=len(matches),
            clips_downloaded=clips_downloaded,
            processing_time_ms=int((time.monotonic() - started) * 1000),
            unusable_videos=[f.to_dict() for f in failures],
        )
        return JobResult(matches=matches, summary=summary)

    async def _acquire_transcripts(
        self, job_id: str, references: list[str], session_id: Optional[str]
    ) -> list:
        total = len(references)
        self._report(job_id, PROGRESS_TRANSCRIPTS_START, f"Fetching transcripts for {total} videos")

        semaphore = asyncio.Semaphore(self.max_concurrent_transcripts)
        completed = 0

        async def acquire_one(reference: str):
            nonlocal completed
            async with semaphore:
                outcome = await self.transcript_service.acquire(reference, session_id)
            completed += 1
            span = PROGRESS_TRANSCRIPTS_END - PROGRESS_TRANSCRIPTS_START
            self._report(
                job_id,
                PROGRESS_TRANSCRIPTS_START + span * completed / total,
                f"Transcripts: {completed}/{total} videos processed",
            )
            return outcome

        # gather keeps results in reference order
        return await asyncio.gather(*(acquire_one(ref) for ref in references))

    def _report(self, job_id: str, percent: float, message: str) -> None:
        """Fire-and-forget progress write."""
        logger.info(f"[{percent:.0f}%] {message}")
        task = asyncio.create_task(
            self.job_store.update_job(job_id, progress=percent, message=message)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fail(self, job_id: str, error: BaseException) -> None:
        await self.job_store.update_job(
            job_id,
            status=JobStatus.FAILED,
            message="Job failed",
            error=str(error) or type(error).__name__,
            error_kind=classify_error(error),
        )

    @staticmethod
    def _completion_message(result: JobResult) -> str:
        summary = result.summary
        message = f"Completed with {summary.clips_found}/{summary.segments_total} matches"
        if summary.videos_unusable:
            message += (
                f" ({summary.videos_unusable}/{summary.videos_processed} videos unusable)"
            )
        return message

    async def wait_for_background_tasks(self) -> None:
        """Wait for running jobs and pending progress writes (used on shutdown and in tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
