"""Match job routes: submit a thread, poll its status, download its clips."""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Any

from api.dependencies import SESSION_COOKIE_NAME, get_processor
from api.schemas import JobCreatedResponse, JobResponse, JobSubmitRequest
from fastapi import APIRouter, Cookie, Depends, HTTPException
from fastapi.responses import FileResponse
from models.job import JobStatus
from thread_processor import JobOptions, ThreadProcessor
from utils.errors import InputError, JobNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Jobs"])


@router.post(
    "/api/jobs",
    response_model=JobCreatedResponse,
    status_code=202,
    summary="Submit a matching job",
    description="Splits the thread into segments and searches the given videos for a clip "
    "per segment. Returns immediately with a job id to poll.",
    responses={
        202: {"description": "Job accepted"},
        400: {"description": "Empty thread, no segments or no valid video URLs"},
    },
)
async def submit_job(
    request: JobSubmitRequest,
    processor: ThreadProcessor = Depends(get_processor),
    session_cookie: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, str]:
    """Create a job and start it in the background."""
    options = JobOptions(
        download_clips=request.download_clips,
        session_id=request.session_id or session_cookie,
    )
    try:
        job_id = await processor.submit(request.thread, request.videos, options)
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return {"job_id": job_id, "status": JobStatus.PROCESSING}


@router.get(
    "/api/jobs/{job_id}",
    response_model=JobResponse,
    summary="Get job status",
    description="Returns progress while processing, the result once completed, or the "
    "error once failed. Jobs are forgotten an hour after their last update.",
    responses={404: {"description": "Job not found or expired"}},
)
async def get_job(
    job_id: str,
    processor: ThreadProcessor = Depends(get_processor),
) -> dict[str, Any]:
    """Poll a job."""
    try:
        job = await processor.get_status(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail="Job not found") from e
    return job.to_dict()


@router.get(
    "/api/jobs/{job_id}/download",
    summary="Download job clips",
    description="Download every clip retrieved for a completed job as a zip archive.",
    responses={
        200: {"description": "Zip file with clips", "content": {"application/zip": {}}},
        400: {"description": "Job not completed yet"},
        404: {"description": "Job or clips not found"},
    },
)
async def download_job_clips(
    job_id: str,
    processor: ThreadProcessor = Depends(get_processor),
) -> FileResponse:
    """Zip the job's clip directory."""
    try:
        job = await processor.get_status(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail="Job not found") from e

    if job.status != JobStatus.COMPLETED or job.result is None:
        raise HTTPException(status_code=400, detail="Job not completed yet")

    clip_paths = [
        Path(m.local_file_path)
        for m in job.result.matches
        if m.retrieval_succeeded and m.local_file_path and Path(m.local_file_path).exists()
    ]
    if not clip_paths:
        raise HTTPException(status_code=404, detail="No clips were downloaded for this job")

    clips_dir = clip_paths[0].parent
    archive_base = clips_dir.parent / f"{job_id}_clips"
    zip_path = await asyncio.to_thread(
        shutil.make_archive, str(archive_base), "zip", str(clips_dir)
    )
    logger.info(f"Built clip archive for job {job_id}: {len(clip_paths)} clips")

    return FileResponse(
        path=zip_path,
        filename=f"{job_id}_clips.zip",
        media_type="application/zip",
    )
