"""Two-phase clip retrieval: download each source video once, cut N clips.

Results always line up with the input matches by position, whatever the
order in which groups finish.
"""

import asyncio
import logging
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from models.match import Match, RetrievalResult
from models.transcript import extract_video_id
from services.clip_extractor import ClipExtractor, clip_filename
from services.video_downloader import VideoDownloader
from utils.errors import InputError, RetrievalFailure

logger = logging.getLogger(__name__)


@dataclass
class SingleClip:
    """A clip cut on demand for one reference and time range."""

    path: Path
    filename: str

    def cleanup(self) -> None:
        self.path.unlink(missing_ok=True)
        shutil.rmtree(self.path.parent, ignore_errors=True)


def validate_time_range(start_time: float, end_time: float) -> None:
    """Raise InputError unless 0 <= start_time < end_time."""
    if start_time is None or end_time is None:
        raise InputError("start_time and end_time are required")
    if start_time < 0:
        raise InputError(f"start_time must not be negative, got {start_time}")
    if start_time >= end_time:
        raise InputError(
            f"start_time must be before end_time, got {start_time} >= {end_time}"
        )


class ClipRetrievalPipeline:
    """Downloads matched videos and cuts the matched ranges into clip files."""

    def __init__(
        self,
        downloader: VideoDownloader,
        extractor: ClipExtractor,
        scratch_dir: str,
        parallel_downloads: int = 3,
    ):
        self.downloader = downloader
        self.extractor = extractor
        self.scratch_dir = Path(scratch_dir)
        self.parallel_downloads = max(parallel_downloads, 1)

    @classmethod
    def from_config(
        cls, config: dict, downloader: VideoDownloader
    ) -> "ClipRetrievalPipeline":
        return cls(
            downloader=downloader,
            extractor=ClipExtractor(max_height=config.get("clip_max_height", 720)),
            scratch_dir=config.get("scratch_dir", "temp"),
            parallel_downloads=config.get("parallel_downloads", 3),
        )

    async def retrieve(
        self,
        matches: list[Match],
        job_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> list[RetrievalResult]:
        """Retrieve clips for matches, one result per match in input order."""
        if not matches:
            return []

        job_label = job_id or f"adhoc_{int(time.time() * 1000)}"
        clips_dir = self.scratch_dir / job_label / "clips"
        results: list[Optional[RetrievalResult]] = [None] * len(matches)

        # Group positions by source video, keeping first-seen order
        groups: dict[str, list[int]] = {}
        for position, match in enumerate(matches):
            groups.setdefault(match.video_reference, []).append(position)

        logger.info(
            f"Retrieving {len(matches)} clips from {len(groups)} videos "
            f"(max {self.parallel_downloads} concurrent downloads)"
        )

        semaphore = asyncio.Semaphore(self.parallel_downloads)

        async def process_group(reference: str, positions: list[int]) -> None:
            async with semaphore:
                group_results = await self._process_group(
                    reference,
                    [matches[p] for p in positions],
                    self.scratch_dir / job_label / f"download_{uuid.uuid4().hex[:8]}",
                    clips_dir,
                    session_id,
                )
            for position, result in zip(positions, group_results):
                results[position] = result

        await asyncio.gather(
            *(process_group(reference, positions) for reference, positions in groups.items())
        )

        final = [
            r if r is not None else RetrievalResult(success=False, error="Clip was not processed")
            for r in results
        ]
        succeeded = sum(1 for r in final if r.success)
        logger.info(f"Clip retrieval complete: {succeeded}/{len(final)} clips")
        return final

    async def _process_group(
        self,
        reference: str,
        group_matches: list[Match],
        download_dir: Path,
        clips_dir: Path,
        session_id: Optional[str],
    ) -> list[RetrievalResult]:
        full_video: Optional[Path] = None
        try:
            try:
                full_video = await self.downloader.download_video(reference, download_dir, session_id)
            except Exception as e:
                logger.error(f"Download failed for {reference}: {e}")
                return [RetrievalResult(success=False, error=str(e)) for _ in group_matches]

            logger.info(f"Downloaded {reference}, cutting {len(group_matches)} clips")
            group_results = []
            for match in group_matches:
                output_path = clips_dir / clip_filename(
                    match.text_segment_id, match.start_time, match.end_time
                )
                try:
                    result = await asyncio.to_thread(
                        self.extractor.cut_clip,
                        str(full_video),
                        match.start_time,
                        match.end_time,
                        str(output_path),
                    )
                except Exception as e:
                    logger.error(f"Cutting {output_path.name} failed: {e}")
                    output_path.unlink(missing_ok=True)
                    result = RetrievalResult(success=False, error=str(e))
                group_results.append(result)
            return group_results
        finally:
            self.extractor.cleanup_source_video(str(full_video) if full_video else None)
            shutil.rmtree(download_dir, ignore_errors=True)

    async def fetch_single_clip(
        self,
        reference: str,
        start_time: float,
        end_time: float,
        session_id: Optional[str] = None,
    ) -> SingleClip:
        """Download a reference and cut one clip from it.

        The time range is validated before any network call.

        Raises:
            InputError: If the reference is empty or the range is invalid
            RetrievalFailure: If download or cutting fails
        """
        if not reference or not reference.strip():
            raise InputError("video_url is required")
        validate_time_range(start_time, end_time)

        video_id = extract_video_id(reference) or "clip"
        filename = clip_filename(video_id, start_time, end_time)
        work_dir = self.scratch_dir / "single" / f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"

        full_video: Optional[Path] = None
        try:
            full_video = await self.downloader.download_video(reference, work_dir / "source", session_id)

            duration = await asyncio.to_thread(self.extractor.get_video_duration, str(full_video))
            if duration is not None:
                if start_time >= duration:
                    raise RetrievalFailure(
                        f"start_time {start_time}s is beyond the video length ({duration:.1f}s)"
                    )
                end_time = min(end_time, duration)

            result = await asyncio.to_thread(
                self.extractor.cut_clip,
                str(full_video),
                start_time,
                end_time,
                str(work_dir / filename),
            )
        except Exception:
            shutil.rmtree(work_dir, ignore_errors=True)
            raise
        finally:
            self.extractor.cleanup_source_video(str(full_video) if full_video else None)
            shutil.rmtree(work_dir / "source", ignore_errors=True)

        if not result.success:
            shutil.rmtree(work_dir, ignore_errors=True)
            raise RetrievalFailure(result.error or "Clip extraction failed")

        return SingleClip(path=Path(result.local_file_path), filename=filename)
