"""Wire protocol constants and patterns for the platform scale's ASCII output.

The scale streams CR and/or LF terminated ASCII lines. Telemetry lines start
with a case-insensitive "WGT" tag and come in two layouts:

    WGT,GS,+00012lb          comma layout, weight is the third field
    WGT:1  2.90P  0.00       free-form layout, weight is the second number

Anything else on the wire is chatter and is ignored by the weight pipeline.
"""

import re
from typing import Final

# ============================================================================
# Line Termination
# ============================================================================

# Either terminator ends a line; CRLF pairs just produce an empty token
LINE_TERMINATORS: Final[str] = "\r\n"

RE_LINE_SPLIT: Final[re.Pattern] = re.compile(r"[\r\n]+")

# ============================================================================
# Telemetry Line Format
# ============================================================================

WEIGHT_TAG: Final[str] = "WGT"

FIELD_DELIMITER: Final[str] = ","

# Index of the weight field in the comma layout
COMMA_WEIGHT_FIELD: Final[int] = 2

# Index of the weight among numeric tokens in the free-form layout.
# Token 0 is the channel number glued to the tag ("WGT:1").
FREEFORM_WEIGHT_TOKEN: Final[int] = 1

# Signed decimal: optional sign, digits, optional point, digits
RE_NUMERIC_TOKEN: Final[re.Pattern] = re.compile(r"[-+]?\d*\.?\d+")

# ============================================================================
# Calibration
# ============================================================================

# The weighing fixture carries half of the case load, so the displayed
# value is doubled to get the true case weight.
WEIGHT_MULTIPLIER: Final[float] = 2.0

# ============================================================================
# Weight Pipeline Thresholds
# ============================================================================

# Readings at or below this are treated as an empty platform
ZERO_THRESHOLD: Final[float] = 0.01

# Samples required before stability can be judged
STABLE_READ_COUNT: Final[int] = 10

DEFAULT_THRESHOLD_PERCENT: Final[float] = 1.0

# Minimum change before a weight-changed event is published
WEIGHT_CHANGE_DELTA: Final[float] = 0.01

# ============================================================================
# Timing Constants (seconds)
# ============================================================================

POLL_INTERVAL_S: Final[float] = 0.1

RECONNECT_DELAY_S: Final[float] = 5.0

SETTINGS_TTL_S: Final[float] = 2.0

DETECT_TIMEOUT_PER_PORT_S: Final[float] = 2.0

# Read timeout used while sniffing candidate ports
DETECT_READ_TIMEOUT_S: Final[float] = 0.25

STOP_JOIN_TIMEOUT_S: Final[float] = 2.0

# ============================================================================
# Port Enumeration
# ============================================================================

# Device nodes USB-serial adapters show up as on Linux, in addition to what
# the native enumeration reports
LINUX_DEVICE_GLOBS: Final[tuple] = ("/dev/ttyUSB*", "/dev/ttyACM*")

DEFAULT_PORT: Final[str] = "/dev/ttyUSB0"
