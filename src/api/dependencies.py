"""Service singletons and dependency injection for the threadclip API."""

from api.job_store import get_job_store
from services.credential_store import CredentialStore
from thread_processor import ThreadProcessor
from utils.config import load_config

SESSION_COOKIE_NAME = "threadclip_session"
SESSION_COOKIE_MAX_AGE = 60 * 60 * 24 * 7  # 7 days

# Service singletons
_processor: ThreadProcessor | None = None
_credential_store: CredentialStore | None = None


def get_processor() -> ThreadProcessor:
    """Get or create the thread processor instance."""
    global _processor
    if _processor is None:
        _processor = ThreadProcessor(load_config(), job_store=get_job_store())
    return _processor


def get_credential_store() -> CredentialStore:
    """Get or create the credential store instance."""
    global _credential_store
    if _credential_store is None:
        _credential_store = CredentialStore.from_config(load_config())
    return _credential_store


def reset_services() -> None:
    """Drop cached singletons (used on shutdown and in tests)."""
    global _processor, _credential_store
    _processor = None
    _credential_store = None


async def shutdown_services() -> None:
    """Let running jobs finish their writes, then drop singletons."""
    if _processor is not None:
        await _processor.wait_for_background_tasks()
    reset_services()
