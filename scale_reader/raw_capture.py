"""Single-slot diagnostic tap that collects the next N raw lines."""

import logging
import threading
import time
from typing import List, Optional

from scale_reader.errors import CaptureConflict
from scale_reader.models import RawLine

logger = logging.getLogger(__name__)


class RawReadCapture:
    """One capture request: a target count, collected lines, and a done signal.

    Fulfillment happens exactly once; later fulfill() calls and late lines
    are ignored.
    """

    def __init__(self, target_count: int) -> None:
        self.target_count = max(1, target_count)
        self._lines: List[RawLine] = []
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._result: Optional[List[RawLine]] = None

    def add(self, line: RawLine) -> bool:
        """Append a line. Returns True when the target count has been reached."""
        with self._lock:
            if self._result is not None:
                return False
            self._lines.append(line)
            return len(self._lines) >= self.target_count

    def fulfill(self) -> List[RawLine]:
        """Freeze the collected lines as the result (first call wins)."""
        with self._lock:
            if self._result is None:
                self._result = list(self._lines)
                self._done.set()
            return self._result

    def wait(self, timeout_s: float) -> bool:
        return self._done.wait(timeout=timeout_s)

    @property
    def done(self) -> bool:
        return self._done.is_set()


class RawCaptureRendezvous:
    """Holds at most one active RawReadCapture.

    The poll loop calls record() for every framed line. A caller thread
    calls capture() and blocks until the target count arrives or the
    timeout elapses, whichever is first. A second request while one is in
    flight raises CaptureConflict instead of queueing.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Optional[RawReadCapture] = None

    def begin(self, target_count: int) -> RawReadCapture:
        """Register a new capture.

        Raises:
            CaptureConflict: If a capture is already active
        """
        with self._lock:
            if self._active is not None:
                raise CaptureConflict("Raw capture already in progress")
            self._active = RawReadCapture(target_count)
            logger.debug(f"Raw capture started for {self._active.target_count} lines")
            return self._active

    def record(self, text: str, received_at: Optional[float] = None) -> None:
        """Offer a line to the active capture, if any."""
        with self._lock:
            capture = self._active
            if capture is None:
                return

            line = RawLine(text=text, received_at=received_at if received_at is not None else time.monotonic())
            if capture.add(line):
                self._active = None
                capture.fulfill()

    def wait(self, capture: RawReadCapture, timeout_s: float) -> List[RawLine]:
        """Block until capture completes or timeout_s elapses.

        Returns:
            Collected lines, possibly fewer than requested
        """
        if not capture.wait(timeout_s):
            logger.debug("Raw capture timed out, returning partial result")
            self._release(capture)
        return capture.fulfill()

    def capture(self, target_count: int, timeout_s: float) -> List[RawLine]:
        """Begin a capture and wait for it.

        Raises:
            CaptureConflict: If a capture is already active
        """
        capture = self.begin(target_count)
        return self.wait(capture, timeout_s)

    def cancel(self) -> None:
        """Complete the active capture early with what it has (used on shutdown)."""
        with self._lock:
            capture = self._active
            self._active = None
        if capture is not None:
            capture.fulfill()

    def _release(self, capture: RawReadCapture) -> None:
        with self._lock:
            if self._active is capture:
                self._active = None

    @property
    def active(self) -> bool:
        with self._lock:
            return self._active is not None
