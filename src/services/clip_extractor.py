"""FFmpeg clip cutting for matched time ranges."""

import logging
import math
import subprocess
from pathlib import Path
from typing import Optional

from models.match import RetrievalResult

logger = logging.getLogger(__name__)

CUT_TIMEOUT_SECONDS = 120


def clip_filename(label: str, start_time: float, end_time: float) -> str:
    """Output file name for a clip: <label>_<start>-<end>s.mp4 (whole seconds)."""
    safe_label = "".join(c if c.isalnum() or c in "-_" else "_" for c in label) or "clip"
    return f"{safe_label}_{math.floor(start_time)}-{math.floor(end_time)}s.mp4"


class ClipExtractor:
    """Cuts H.264/AAC mp4 clips out of a downloaded source video."""

    def __init__(self, max_height: int = 720, timeout: int = CUT_TIMEOUT_SECONDS):
        self.max_height = max_height
        self.max_width = int(round(max_height * 16 / 9))
        self.timeout = timeout

    def build_command(self, video_path: str, start_time: float, duration: float, output_path: str) -> list[str]:
        # -ss before -i for fast seeking; re-encode for frame-accurate cuts
        scale = (
            f"scale='min({self.max_width},iw)':'min({self.max_height},ih)'"
            ":force_original_aspect_ratio=decrease,scale=trunc(iw/2)*2:trunc(ih/2)*2"
        )
        return [
            "ffmpeg",
            "-y",
            "-ss",
            f"{start_time:.3f}",
            "-i",
            str(video_path),
            "-t",
            f"{duration:.3f}",
            "-vf",
            scale,
            "-c:v",
            "libx264",
            "-preset",
            "fast",
            "-crf",
            "23",
            "-c:a",
            "aac",
            "-b:a",
            "128k",
            "-movflags",
            "+faststart",
            "-v",
            "error",
            str(output_path),
        ]

    def cut_clip(
        self,
        video_path: str,
        start_time: float,
        end_time: float,
        output_path: str,
    ) -> RetrievalResult:
        """Cut [start_time, end_time) from video_path into output_path.

        A failed cut removes only its own partial output; the source video
        and other clips are untouched.
        """
        clip_path = Path(output_path)
        clip_path.parent.mkdir(parents=True, exist_ok=True)
        duration = end_time - start_time

        if duration <= 0:
            return RetrievalResult(success=False, error=f"Invalid clip range {start_time}-{end_time}")

        try:
            cmd = self.build_command(video_path, start_time, duration, str(clip_path))
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)

            if result.returncode != 0:
                raise RuntimeError(f"FFmpeg failed: {result.stderr.strip()[:500]}")
            if not clip_path.exists() or clip_path.stat().st_size == 0:
                raise RuntimeError("Clip file was not created")

            logger.info(f"Extracted clip: {clip_path.name} ({duration:.1f}s)")
            return RetrievalResult(success=True, local_file_path=str(clip_path))

        except subprocess.TimeoutExpired:
            clip_path.unlink(missing_ok=True)
            error_msg = f"FFmpeg extraction timed out after {self.timeout}s"
            logger.error(error_msg)
            return RetrievalResult(success=False, error=error_msg)

        except Exception as e:
            clip_path.unlink(missing_ok=True)
            error_msg = f"Clip extraction failed: {e}"
            logger.error(error_msg)
            return RetrievalResult(success=False, error=error_msg)

    def get_video_duration(self, video_path: str) -> Optional[float]:
        """Get video duration using FFprobe, or None if it cannot be read."""
        try:
            cmd = [
                "ffprobe",
                "-v",
                "quiet",
                "-show_entries",
                "format=duration",
                "-of",
                "default=noprint_wrappers=1:nokey=1",
                str(video_path),
            ]
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=30)
            return float(result.stdout.strip())
        except (subprocess.SubprocessError, ValueError, OSError) as e:
            logger.warning(f"Could not get video duration: {e}")
            return None

    @staticmethod
    def cleanup_source_video(video_path: Optional[str]) -> bool:
        """Delete a downloaded full video from scratch space."""
        if not video_path:
            return False
        path = Path(video_path)
        if path.exists():
            path.unlink(missing_ok=True)
            logger.debug(f"Deleted source video: {path.name}")
            return True
        return False
