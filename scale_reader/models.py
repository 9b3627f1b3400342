"""Data models for the scale reader library."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from scale_reader import protocol


class CaptureLockState(Enum):
    """Auto-capture lock states.

    LOCKED passes live weights straight to the display and does not
    accumulate samples; it holds from startup, and after each capture, until
    the platform reads empty. UNLOCKED accumulates samples toward a
    stability decision.
    """

    LOCKED = "locked"
    UNLOCKED = "unlocked"


@dataclass
class SerialSettings:
    """Serial line parameters for the scale port.

    Attributes:
        port: Serial device name (e.g., "/dev/ttyUSB0" or "COM4").
        baudrate: Baud rate. Default 9600.
        bytesize: Data bits, 5-8.
        parity: One of "N", "E", "O", "M", "S".
        stopbits: 1, 1.5 or 2.
        read_timeout_s: Read timeout applied to the open port.
        detect_timeout_s: How long to listen on each candidate during auto-detect.
    """

    port: str = protocol.DEFAULT_PORT
    baudrate: int = 9600
    bytesize: int = 8
    parity: str = "N"
    stopbits: float = 1
    read_timeout_s: float = 0.5
    detect_timeout_s: float = protocol.DETECT_TIMEOUT_PER_PORT_S

    def __post_init__(self) -> None:
        """Validate serial parameters."""
        if not self.port:
            raise ValueError("port must not be empty")

        if self.baudrate <= 0:
            raise ValueError(f"baudrate must be positive, got {self.baudrate}")

        if self.bytesize not in (5, 6, 7, 8):
            raise ValueError(f"bytesize must be 5-8, got {self.bytesize}")

        self.parity = self.parity.upper()
        if self.parity not in ("N", "E", "O", "M", "S"):
            raise ValueError(f"parity must be one of N/E/O/M/S, got '{self.parity}'")

        if self.stopbits not in (1, 1.5, 2):
            raise ValueError(f"stopbits must be 1, 1.5 or 2, got {self.stopbits}")

        if self.detect_timeout_s <= 0:
            raise ValueError(f"detect_timeout_s must be positive, got {self.detect_timeout_s}")


@dataclass
class ScaleSettings:
    """Application settings owned by the persistence layer.

    Attributes:
        auto_capture_enabled: Commit stable weights without user action.
        auto_capture_threshold_percent: Max deviation of the newest sample
            from the window mean, in percent, for the window to count as stable.
        readings_per_pallet: Readings a pallet absorbs before it rolls over.
        configured_port_name: Persisted port (set by the user or auto-detect).
    """

    auto_capture_enabled: bool = False
    auto_capture_threshold_percent: float = protocol.DEFAULT_THRESHOLD_PERCENT
    readings_per_pallet: int = 10
    configured_port_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.auto_capture_threshold_percent < 0:
            raise ValueError(
                "auto_capture_threshold_percent must be >= 0, "
                f"got {self.auto_capture_threshold_percent}"
            )
        if self.readings_per_pallet < 1:
            raise ValueError(
                f"readings_per_pallet must be >= 1, got {self.readings_per_pallet}"
            )


@dataclass(frozen=True)
class RawLine:
    """One text line off the wire with its monotonic arrival time."""

    text: str
    received_at: float


@dataclass(frozen=True)
class WeightSample:
    """A parsed weight in scale units and when it was derived."""

    weight: float
    ts: datetime


@dataclass
class Pallet:
    """A run of consecutive readings, up to readings_per_pallet."""

    pallet_id: str
    created_at: datetime
    reading_count: int = 0
    total_weight: float = 0.0
    is_completed: bool = False


@dataclass
class ScaleReading:
    """A committed weight reading."""

    weight: float
    timestamp: datetime
    pallet_id: Optional[str] = None
    id: Optional[int] = None


@dataclass
class ScaleStatus:
    """Snapshot of the reader for status queries."""

    connected: bool
    running: bool
    port_name: Optional[str]
    current_weight: Optional[float]
    lock_state: CaptureLockState


@dataclass
class SpeedTestResult:
    """Line arrival timing over a short capture.

    Interval statistics are in milliseconds and are zero when fewer than
    two lines arrived.
    """

    samples_requested: int
    lines_received: int
    duration_s: float = 0.0
    lines_per_second: float = 0.0
    mean_interval_ms: float = 0.0
    min_interval_ms: float = 0.0
    max_interval_ms: float = 0.0
    median_interval_ms: float = 0.0
    lines: list = field(default_factory=list)
