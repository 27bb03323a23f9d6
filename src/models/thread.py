"""Thread parsing and text segment model."""

from dataclasses import dataclass

from utils.errors import InputError


@dataclass(frozen=True)
class TextSegment:
    """One passage of the input thread.

    ``ordinal`` is the 1-based position in the thread and is the identity
    used throughout matching. Two segments with identical text stay distinct.
    """

    ordinal: int
    text: str

    @property
    def id(self) -> str:
        return f"segment-{self.ordinal}"

    def to_dict(self) -> dict:
        return {"id": self.id, "ordinal": self.ordinal, "text": self.text}


def split_thread(thread_text: str, delimiter: str = "---") -> list[str]:
    """Split raw thread text into trimmed, non-empty passages.

    When the delimiter is present, the passage before the first delimiter is
    the thread hook and is not part of the result. Text without any
    delimiter is a single passage.
    """
    if not delimiter:
        raise InputError("Thread delimiter must not be empty")

    pieces = thread_text.split(delimiter)
    if len(pieces) > 1:
        pieces = pieces[1:]

    return [piece.strip() for piece in pieces if piece.strip()]


def parse_thread(thread_text: str, delimiter: str = "---") -> list[TextSegment]:
    """Parse a thread into ordered TextSegments.

    Raises:
        InputError: If the thread is empty or yields no segments
    """
    if not thread_text or not thread_text.strip():
        raise InputError("Thread text is empty")

    passages = split_thread(thread_text, delimiter)
    if not passages:
        raise InputError(
            f"Thread contains no text segments after splitting on '{delimiter}'"
        )

    return [TextSegment(ordinal=i, text=text) for i, text in enumerate(passages, start=1)]
