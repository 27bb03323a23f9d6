"""Log setup for threadclip.

Modules log through ``logging.getLogger(__name__)``; structlog's
ProcessorFormatter renders those records. While a job runs, its id is
attached to every record emitted from that task.
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

import structlog

job_id_var: ContextVar[str | None] = ContextVar("threadclip_job_id", default=None)

# Download, transcription and model clients log at INFO on every request
QUIET_LIBRARIES = (
    "httpx",
    "httpcore",
    "google_genai",
    "google_genai.models",
    "yt_dlp",
    "faster_whisper",
    "urllib3.connectionpool",
)


def inject_job_id(_logger, _method_name, event_dict):
    job_id = job_id_var.get()
    if job_id:
        event_dict["job_id"] = job_id
    return event_dict


@contextmanager
def job_log_context(job_id: str) -> Iterator[None]:
    """Tag log records with a job id for the duration of the block."""
    token = job_id_var.set(job_id)
    try:
        yield
    finally:
        job_id_var.reset(token)


def setup_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Route all logging to stderr through structlog.

    Args:
        log_level: Root level name; unknown names fall back to INFO
        json_output: One JSON object per line instead of colored console text
    """
    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        inject_job_id,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
