"""
scale_reader - Turns a platform scale's serial output into weight events.

Reads "WGT"-tagged ASCII lines, tracks the live weight, and auto-captures
settled loads into a pallet store.
"""

from scale_reader.errors import (
    CaptureConflict,
    PortNotFound,
    ScaleNotConnected,
    ScaleReaderError,
    SerialIOError,
    WeightParseError,
)
from scale_reader.models import (
    CaptureLockState,
    Pallet,
    ScaleReading,
    ScaleSettings,
    ScaleStatus,
    SerialSettings,
    SpeedTestResult,
)
from scale_reader.service import ScaleReaderService

__version__ = "0.1.0"

__all__ = [
    "ScaleReaderService",
    "SerialSettings",
    "ScaleSettings",
    "ScaleReading",
    "ScaleStatus",
    "Pallet",
    "SpeedTestResult",
    "CaptureLockState",
    "ScaleReaderError",
    "SerialIOError",
    "PortNotFound",
    "ScaleNotConnected",
    "WeightParseError",
    "CaptureConflict",
]
