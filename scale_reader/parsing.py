"""Pure functions for extracting weights from scale protocol lines."""

import logging
from typing import List, Optional

from scale_reader import protocol
from scale_reader.errors import WeightParseError

logger = logging.getLogger(__name__)


def is_weight_line(line: str) -> bool:
    """Check whether a line carries the WGT telemetry tag (case-insensitive)."""
    return line.strip()[: len(protocol.WEIGHT_TAG)].upper() == protocol.WEIGHT_TAG


def numeric_tokens(text: str) -> List[str]:
    """Return all signed-decimal tokens in text, in order."""
    return protocol.RE_NUMERIC_TOKEN.findall(text)


def looks_like_scale_line(line: str) -> bool:
    """Heuristic used when sniffing unknown ports: any number at all counts."""
    return protocol.RE_NUMERIC_TOKEN.search(line) is not None


def parse_weight_value(line: str) -> Optional[float]:
    """Extract the raw (uncalibrated) weight from one protocol line.

    Comma layout ("WGT,GS,+00012lb") takes the first number in the third
    field. Free-form layout ("WGT:1  2.90P  0.00") takes the second number
    on the line.

    Args:
        line: One line with terminators already removed

    Returns:
        Weight in scale units, or None if the line is not a WGT line

    Raises:
        WeightParseError: If a comma line lacks the weight field or a number
            in it, or a free-form line has fewer than two numbers. Tokens
            matched by RE_NUMERIC_TOKEN always convert with float().
    """
    line = line.strip()
    if not is_weight_line(line):
        return None

    if protocol.FIELD_DELIMITER in line:
        fields = line.split(protocol.FIELD_DELIMITER)
        if len(fields) <= protocol.COMMA_WEIGHT_FIELD:
            raise WeightParseError(f"Comma line has no weight field: {line!r}")

        weight_field = fields[protocol.COMMA_WEIGHT_FIELD].strip()
        tokens = numeric_tokens(weight_field)
        if not tokens:
            raise WeightParseError(f"Weight field {weight_field!r} has no number in line: {line!r}")
        return float(tokens[0])

    tokens = numeric_tokens(line)
    if len(tokens) <= protocol.FREEFORM_WEIGHT_TOKEN:
        raise WeightParseError(
            f"Expected at least {protocol.FREEFORM_WEIGHT_TOKEN + 1} numbers, "
            f"got {len(tokens)} in line: {line!r}"
        )
    return float(tokens[protocol.FREEFORM_WEIGHT_TOKEN])


class WeightLineParser:
    """Parses WGT lines and applies the fixture calibration multiplier."""

    def __init__(self, multiplier: float = protocol.WEIGHT_MULTIPLIER) -> None:
        """Initialize parser.

        Args:
            multiplier: Factor applied to every parsed weight. Defaults to 2.0
                       because the fixture carries half of the case load.
        """
        if multiplier <= 0:
            raise ValueError(f"multiplier must be positive, got {multiplier}")
        self.multiplier = multiplier

    def parse(self, line: str) -> Optional[float]:
        """Parse one line into a calibrated weight.

        Chatter and malformed WGT lines both yield None; they are logged at
        DEBUG and WARNING respectively.

        Args:
            line: One line with terminators already removed

        Returns:
            Calibrated weight, or None if the line produced no sample
        """
        try:
            raw = parse_weight_value(line)
        except WeightParseError as e:
            logger.warning(f"Failed to parse weight: {e}")
            return None

        if raw is None:
            logger.debug(f"Ignoring non-weight line: {line!r}")
            return None

        weight = raw * self.multiplier
        logger.debug(f"Parsed weight {raw:.2f} -> calibrated {weight:.2f}")
        return weight
