"""Single clip route: cut one time range from one video on demand."""

import logging

from api.dependencies import SESSION_COOKIE_NAME, get_processor
from api.schemas import ClipRequest
from fastapi import APIRouter, Cookie, Depends, HTTPException
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask
from thread_processor import ThreadProcessor
from utils.errors import InputError, RateLimitExceeded, RetrievalFailure

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Clips"])


@router.post(
    "/api/clips",
    summary="Download a single clip",
    description="Downloads the video, cuts [start_time, end_time) and streams back an MP4. "
    "The filename is <video_id>_<start>-<end>s.mp4.",
    responses={
        200: {"description": "MP4 clip", "content": {"video/mp4": {}}},
        400: {"description": "Invalid video URL or time range"},
        429: {"description": "Video provider rate limit exceeded"},
        502: {"description": "Download or cutting failed"},
    },
)
async def download_clip(
    request: ClipRequest,
    processor: ThreadProcessor = Depends(get_processor),
    session_cookie: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> FileResponse:
    """Cut one clip and return it as an attachment."""
    try:
        clip = await processor.fetch_single_clip(
            request.video_url,
            request.start_time,
            request.end_time,
            session_id=request.session_id or session_cookie,
        )
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except RateLimitExceeded as e:
        raise HTTPException(status_code=429, detail=str(e)) from e
    except RetrievalFailure as e:
        logger.error(f"Single clip failed for {request.video_url}: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e

    # Scratch file is removed once the response has been sent
    return FileResponse(
        path=str(clip.path),
        filename=clip.filename,
        media_type="video/mp4",
        background=BackgroundTask(clip.cleanup),
    )
