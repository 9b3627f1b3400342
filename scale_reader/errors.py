"""Custom exceptions for the scale reader library."""


class ScaleReaderError(Exception):
    """Base exception for all scale reader errors."""

    pass


class SerialIOError(ScaleReaderError):
    """Raised when serial communication fails (port closed, read error, etc)."""

    pass


class PortNotFound(SerialIOError):
    """Raised when the configured port is absent and auto-detection found nothing."""

    pass


class ScaleNotConnected(SerialIOError):
    """Raised when an operation needs a live scale connection and there is none."""

    pass


class WeightParseError(ScaleReaderError):
    """Raised when a WGT line carries a token that is not a number."""

    pass


class CaptureConflict(ScaleReaderError):
    """Raised when a raw capture is requested while another one is in flight."""

    pass
