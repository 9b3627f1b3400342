"""Serial connection layer for the scale: open, read, close, detect."""

import glob
import logging
import os
import sys
import time
from typing import Callable, List, Optional, Protocol

import serial
from serial.tools import list_ports

from scale_reader import protocol
from scale_reader.errors import SerialIOError
from scale_reader.framing import LineFramer
from scale_reader.models import SerialSettings
from scale_reader.parsing import looks_like_scale_line

logger = logging.getLogger(__name__)


class SerialLike(Protocol):
    """Protocol for serial port interface (allows test doubles)."""

    port: Optional[str]

    @property
    def in_waiting(self) -> int:
        """Number of bytes ready to read."""
        ...

    def read(self, size: int = 1) -> bytes:
        """Read up to size bytes from serial port."""
        ...

    def close(self) -> None:
        """Close serial port."""
        ...

    @property
    def is_open(self) -> bool:
        """Check if port is open."""
        ...


SerialFactory = Callable[..., SerialLike]
PortLister = Callable[[], List[str]]


def list_candidate_ports() -> List[str]:
    """Enumerate serial devices visible to the OS.

    Uses pyserial's native enumeration and, on Linux, also globs the
    USB-serial device nodes that enumeration sometimes misses. The list is
    built fresh on every call.

    Returns:
        Port names, de-duplicated case-insensitively, in discovery order
    """
    ports = [info.device for info in list_ports.comports()]

    if sys.platform.startswith("linux"):
        for pattern in protocol.LINUX_DEVICE_GLOBS:
            ports.extend(sorted(glob.glob(pattern)))

    seen = set()
    unique = []
    for name in ports:
        key = name.lower()
        if key not in seen:
            seen.add(key)
            unique.append(name)
    return unique


def _open_serial(settings: SerialSettings, port: str, timeout_s: float) -> SerialLike:
    return serial.Serial(
        port=port,
        baudrate=settings.baudrate,
        bytesize=settings.bytesize,
        parity=settings.parity,
        stopbits=settings.stopbits,
        timeout=timeout_s,
        write_timeout=timeout_s,
        rtscts=False,
        dsrdtr=False,
        xonxoff=False,
    )


class PortConnection:
    """Owns the physical serial connection to the scale.

    Handles opening with the configured line parameters, draining available
    bytes, best-effort closing, and finding the scale by sniffing candidate
    ports when the configured one is missing.
    """

    def __init__(
        self,
        settings: Optional[SerialSettings] = None,
        serial_factory: Optional[SerialFactory] = None,
        port_lister: Optional[PortLister] = None,
    ) -> None:
        """Initialize connection (does not open anything).

        Args:
            settings: Serial line parameters. Defaults to SerialSettings().
            serial_factory: Callable(settings, port, timeout_s) returning an open
                           SerialLike. Defaults to pyserial.
            port_lister: Callable returning candidate port names.
                        Defaults to list_candidate_ports.
        """
        self.settings = settings if settings is not None else SerialSettings()
        self._serial_factory = serial_factory if serial_factory is not None else _open_serial
        self._port_lister = port_lister if port_lister is not None else list_candidate_ports
        self._port: Optional[SerialLike] = None
        self._port_name: Optional[str] = None

    # ========================================================================
    # Open / Close
    # ========================================================================

    def open(self, port_name: str) -> None:
        """Open port_name with the configured parameters.

        Any previously open port is closed first.

        Raises:
            SerialIOError: If the port cannot be opened
        """
        try:
            port = self._serial_factory(self.settings, port_name, self.settings.read_timeout_s)
        except Exception as e:
            raise SerialIOError(
                f"Failed to open {port_name} at {self.settings.baudrate} baud: {e}"
            ) from e

        self.close()
        self._port = port
        self._port_name = port_name
        logger.info(
            f"Opened serial port {port_name} at {self.settings.baudrate} baud "
            f"({self.settings.bytesize}{self.settings.parity}{self.settings.stopbits})"
        )

    def close(self) -> None:
        """Close the port. Errors are logged, never raised."""
        port = self._port
        self._port = None
        if port is None:
            return

        try:
            if port.is_open:
                port.close()
                logger.info(f"Closed serial port {self._port_name}")
        except Exception as e:
            logger.warning(f"Error closing serial port {self._port_name}: {e}")

    @property
    def is_open(self) -> bool:
        """Check if port is currently open."""
        port = self._port
        if port is None:
            return False
        try:
            return bool(port.is_open)
        except Exception:
            return False

    @property
    def port_name(self) -> Optional[str]:
        """Name of the port last opened successfully."""
        return self._port_name

    # ========================================================================
    # Reading
    # ========================================================================

    def read_available(self) -> str:
        """Drain whatever bytes are waiting, without blocking for more.

        Returns:
            Decoded text, or "" if nothing is waiting

        Raises:
            SerialIOError: If the port is closed or the read fails
        """
        port = self._port
        if port is None or not port.is_open:
            raise SerialIOError("Serial port is not open")

        try:
            waiting = port.in_waiting
            if not waiting:
                return ""
            data = port.read(waiting)
        except serial.SerialTimeoutException:
            raise
        except Exception as e:
            raise SerialIOError(f"Failed to read from {self._port_name}: {e}") from e

        return data.decode("ascii", errors="replace")

    # ========================================================================
    # Port Discovery
    # ========================================================================

    def list_ports(self) -> List[str]:
        """Enumerate candidate ports (fresh on every call)."""
        return self._port_lister()

    def port_exists(self, port_name: str) -> bool:
        """Check whether port_name is enumerated or is an existing device node."""
        names = {name.lower() for name in self.list_ports()}
        if port_name.lower() in names:
            return True
        return port_name.startswith("/dev/") and os.path.exists(port_name)

    def probe(self, port_name: str, timeout_s: Optional[float] = None) -> bool:
        """Listen on port_name briefly and report whether it looks like a scale.

        Args:
            port_name: Candidate to sniff
            timeout_s: How long to listen. Defaults to settings.detect_timeout_s.

        Returns:
            True if any framed line contains a number
        """
        timeout_s = timeout_s if timeout_s is not None else self.settings.detect_timeout_s
        try:
            port = self._serial_factory(self.settings, port_name, protocol.DETECT_READ_TIMEOUT_S)
        except Exception as e:
            logger.debug(f"Probe: cannot open {port_name}: {e}")
            return False

        framer = LineFramer()
        deadline = time.monotonic() + timeout_s
        try:
            while time.monotonic() < deadline:
                waiting = port.in_waiting
                if waiting:
                    text = port.read(waiting).decode("ascii", errors="replace")
                    # A number in the unterminated tail counts too
                    candidates = framer.feed(text) + [framer.carryover]
                    if any(looks_like_scale_line(line) for line in candidates):
                        logger.info(f"Probe: scale signal found on {port_name}")
                        return True
                time.sleep(protocol.POLL_INTERVAL_S)
        except Exception as e:
            logger.debug(f"Probe: error reading {port_name}: {e}")
        finally:
            try:
                port.close()
            except Exception as e:
                logger.debug(f"Probe: error closing {port_name}: {e}")

        return False

    def detect(self, timeout_per_port_s: Optional[float] = None) -> Optional[str]:
        """Scan candidate ports and return the first one that looks like a scale.

        A candidate equal to the currently open port is accepted without
        re-opening it.

        Args:
            timeout_per_port_s: Listen time per candidate

        Returns:
            Port name, or None if no candidate produced a scale signal
        """
        candidates = self.list_ports()
        if not candidates:
            logger.warning("Auto-detect: no serial ports found")
            return None

        logger.info(f"Auto-detect: scanning {len(candidates)} port(s): {', '.join(candidates)}")
        for name in candidates:
            if self.is_open and self._port_name and name.lower() == self._port_name.lower():
                return name
            if self.probe(name, timeout_per_port_s):
                return name

        logger.warning("Auto-detect: no port produced a scale signal")
        return None
