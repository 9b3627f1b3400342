"""Fake serial ports that behave like a platform scale streaming WGT lines.

FakeScaleSerial mimics the parts of pyserial's Serial the reader uses
(in_waiting, read, close, is_open, port). FakePortRegistry stands in for the
OS: it lists device names and opens a fresh FakeScaleSerial per open call,
so tests can plug and unplug scales while the service is running.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional

import serial

logger = logging.getLogger(__name__)


class FakeScaleSerial:
    """In-memory serial port with a scripted output stream.

    Bytes queued with feed_lines()/feed_raw() are what the host reads.
    chunk_size limits how much one read() returns, to exercise partial lines.
    """

    def __init__(
        self,
        port: str = "/dev/ttyFAKE0",
        lines: Optional[Iterable[str]] = None,
        terminator: str = "\r\n",
        chunk_size: Optional[int] = None,
    ) -> None:
        self.port = port
        self.is_open = True
        self.chunk_size = chunk_size
        self.read_calls = 0

        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._unplugged = False
        self._timeouts_pending = 0

        if lines:
            self.feed_lines(lines, terminator)

    def feed_lines(self, lines: Iterable[str], terminator: str = "\r\n") -> None:
        """Queue lines for the host, each followed by terminator."""
        self.feed_raw("".join(f"{line}{terminator}" for line in lines))

    def feed_raw(self, text: str) -> None:
        """Queue raw text exactly as given."""
        with self._lock:
            self._buffer.extend(text.encode("ascii"))

    def inject_timeouts(self, count: int = 1) -> None:
        """Make the next count reads raise SerialTimeoutException, then recover."""
        with self._lock:
            self._timeouts_pending += count

    def unplug(self) -> None:
        """Make every further read fail like a yanked USB adapter."""
        self._unplugged = True

    @property
    def in_waiting(self) -> int:
        self._check_usable()
        with self._lock:
            waiting = len(self._buffer)
        if self.chunk_size is not None:
            return min(waiting, self.chunk_size)
        return waiting

    def read(self, size: int = 1) -> bytes:
        self._check_usable()
        with self._lock:
            if self._timeouts_pending:
                self._timeouts_pending -= 1
                raise serial.SerialTimeoutException("Read timeout")
        self.read_calls += 1
        with self._lock:
            if self.chunk_size is not None:
                size = min(size, self.chunk_size)
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
        return data

    def close(self) -> None:
        self.is_open = False
        logger.debug(f"FakeScaleSerial {self.port} closed")

    def _check_usable(self) -> None:
        if not self.is_open:
            raise serial.SerialException("Attempting to use a port that is not open")
        if self._unplugged:
            raise serial.SerialException("device reports readiness to read but returned no data")


class FakePortRegistry:
    """Simulated set of attached serial devices.

    Pass registry.open as a PortConnection serial_factory and
    registry.list_ports as its port_lister.
    """

    def __init__(self) -> None:
        self._devices: Dict[str, List[str]] = {}
        self._chunk_sizes: Dict[str, Optional[int]] = {}
        self._lock = threading.Lock()
        self.opened: List[FakeScaleSerial] = []

    def add(
        self,
        port: str,
        lines: Optional[Iterable[str]] = None,
        chunk_size: Optional[int] = None,
    ) -> None:
        """Attach a device that emits lines each time it is opened."""
        with self._lock:
            self._devices[port] = list(lines or [])
            self._chunk_sizes[port] = chunk_size

    def remove(self, port: str) -> None:
        with self._lock:
            self._devices.pop(port, None)

    def list_ports(self) -> List[str]:
        with self._lock:
            return list(self._devices)

    def open(self, settings, port: str, timeout_s: float) -> FakeScaleSerial:
        with self._lock:
            if port not in self._devices:
                raise serial.SerialException(f"could not open port {port}: No such file or directory")
            fake = FakeScaleSerial(
                port=port,
                lines=self._devices[port],
                chunk_size=self._chunk_sizes.get(port),
            )
            self.opened.append(fake)
        return fake

    def opened_for(self, port: str) -> List[FakeScaleSerial]:
        """All fakes opened for port, oldest first."""
        with self._lock:
            return [fake for fake in self.opened if fake.port == port]
