"""Splits the raw serial text stream into complete lines."""

import logging
from typing import List, Optional

from scale_reader import protocol

logger = logging.getLogger(__name__)


class LineFramer:
    """Accumulates text chunks and yields complete CR/LF terminated lines.

    A chunk may end mid-line; the partial tail is carried over and completed
    by the next chunk. Empty tokens produced by consecutive terminators are
    dropped, so the output does not depend on where chunk boundaries fall.
    """

    def __init__(self, max_carryover: Optional[int] = None) -> None:
        """Initialize framer.

        Args:
            max_carryover: Optional cap on the unterminated tail, in characters.
                          When exceeded the tail is discarded. None disables it.
        """
        if max_carryover is not None and max_carryover <= 0:
            raise ValueError(f"max_carryover must be positive, got {max_carryover}")

        self._carryover = ""
        self._max_carryover = max_carryover

    def feed(self, chunk: str) -> List[str]:
        """Add a chunk and return the lines it completes.

        Args:
            chunk: Text as read from the port

        Returns:
            Complete lines in arrival order, terminators removed
        """
        if not chunk:
            return []

        buffer = self._carryover + chunk
        parts = protocol.RE_LINE_SPLIT.split(buffer)

        if buffer[-1] in protocol.LINE_TERMINATORS:
            self._carryover = ""
        else:
            self._carryover = parts.pop()

        if self._max_carryover is not None and len(self._carryover) > self._max_carryover:
            logger.warning(
                f"Discarding {len(self._carryover)} chars of unterminated input"
            )
            self._carryover = ""

        return [part for part in parts if part]

    def reset(self) -> None:
        """Drop any partial line held over from earlier chunks."""
        self._carryover = ""

    @property
    def carryover(self) -> str:
        """Unterminated text waiting for its line end."""
        return self._carryover
