"""Command-line entry point for threadclip."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from tqdm import tqdm

from models.job import Job, JobStatus
from thread_processor import JobOptions, ThreadProcessor
from utils.config import load_config, require_valid_config
from utils.errors import ThreadClipError
from utils.logging import setup_logging

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.5


class JobProgressBar:
    """tqdm bar driven by job snapshots."""

    def __init__(self):
        self.bar = tqdm(
            total=100,
            desc="Matching",
            unit="%",
            bar_format="{l_bar}{bar}| {n:.0f}/{total:.0f}% [{elapsed}]",
        )

    def update(self, job: Job) -> None:
        self.bar.n = job.progress_percent
        self.bar.set_postfix_str(job.status_message[:60])
        self.bar.refresh()

    def close(self) -> None:
        self.bar.close()


def render_results(console: Console, job: Job) -> None:
    """Print a table of matches and the job summary."""
    if job.status == JobStatus.FAILED:
        console.print(Panel(f"{job.error_kind}: {job.error}", title="[bold]Job failed[/bold]", border_style="red"))
        return

    result = job.result
    table = Table(title="Matches")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Segment", style="white", max_width=40)
    table.add_column("Video", style="magenta", max_width=30)
    table.add_column("Range", style="green")
    table.add_column("Confidence", justify="right")
    table.add_column("Clip", max_width=30)

    for match in result.matches:
        clip = "-"
        if match.retrieval_succeeded is not None:
            clip = match.local_file_path if match.retrieval_succeeded else f"failed: {match.retrieval_error}"
        table.add_row(
            str(match.segment_ordinal),
            match.segment_text,
            match.video_reference,
            f"{match.start_time:.1f}s-{match.end_time:.1f}s",
            f"{match.confidence:.2f} ({match.quality_tier.value})",
            clip,
        )

    console.print(table)
    console.print(job.status_message)
    for failure in result.summary.unusable_videos:
        console.print(f"[yellow]Unusable:[/yellow] {failure['video_reference']} ({failure['reason']})")


async def run_job(
    processor: ThreadProcessor,
    thread_text: str,
    videos: list[str],
    options: JobOptions,
) -> Job:
    """Submit a job and poll it to completion with a progress bar."""
    job_id = await processor.submit(thread_text, videos, options)
    progress = JobProgressBar()
    try:
        while True:
            job = await processor.get_status(job_id)
            progress.update(job)
            if job.is_terminal:
                return job
            await asyncio.sleep(POLL_INTERVAL_SECONDS)
    finally:
        progress.close()


def _read_thread(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Find a video clip for every segment of a thread",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  threadclip thread.txt -v https://youtu.be/abc123XYZ00
  threadclip - -v URL1 -v URL2 --download < thread.txt
        """,
    )
    parser.add_argument("thread", help="Thread text file, or - for stdin")
    parser.add_argument(
        "-v", "--video",
        dest="videos",
        action="append",
        required=True,
        help="Video URL to search (repeatable)",
    )
    parser.add_argument("--download", action="store_true", help="Cut clip files for matches")
    parser.add_argument("--json", dest="json_out", help="Write the job result as JSON to this file")
    args = parser.parse_args(argv)

    config = load_config()
    setup_logging(config.get("log_level", "WARNING"), json_output=config.get("log_json", False))
    console = Console()

    try:
        require_valid_config(config)
        thread_text = _read_thread(args.thread)
        processor = ThreadProcessor(config)
        job = asyncio.run(
            run_job(processor, thread_text, args.videos, JobOptions(download_clips=args.download))
        )
    except ThreadClipError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    except OSError as e:
        console.print(f"[red]Cannot read thread: {e}[/red]")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    render_results(console, job)
    if args.json_out:
        Path(args.json_out).write_text(json.dumps(job.to_dict(), indent=2), encoding="utf-8")
        console.print(f"Result written to {args.json_out}")

    return 0 if job.status == JobStatus.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
