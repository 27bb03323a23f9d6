"""Base abstraction for transcript sources."""

from abc import ABC, abstractmethod
from typing import Optional

from models.transcript import VideoTranscript


class TranscriptUnavailable(Exception):
    """A source could not produce a transcript for a reference."""


class TranscriptSource(ABC):
    """Abstract base class for one transcript acquisition strategy."""

    #: Short name recorded on transcripts and failure attempts
    name: str = "unknown"
    #: Hard ceiling for one fetch, enforced by the acquisition chain
    timeout_seconds: float = 30.0

    @abstractmethod
    async def fetch(self, reference: str, session_id: Optional[str] = None) -> VideoTranscript:
        """Produce a timed transcript for a video reference.

        Args:
            reference: Video URL
            session_id: Caller session, used to pick download credentials

        Returns:
            VideoTranscript built by this source

        Raises:
            TranscriptUnavailable: If this source has no transcript for the video
        """

    def supports(self, reference: str) -> bool:
        """Check if this source can handle the reference at all.

        Default implementation returns True. Platform-specific sources
        override this.
        """
        return True
