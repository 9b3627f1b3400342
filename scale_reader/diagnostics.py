"""Line-arrival timing statistics for the speed test."""

from typing import Sequence

import pandas as pd

from scale_reader.models import RawLine, SpeedTestResult


def summarize_line_timing(samples_requested: int, lines: Sequence[RawLine]) -> SpeedTestResult:
    """Compute arrival-interval statistics over captured lines.

    Args:
        samples_requested: Number of lines the caller asked for
        lines: Captured lines with monotonic arrival times, in order

    Returns:
        SpeedTestResult; interval fields stay zero with fewer than two lines
    """
    result = SpeedTestResult(
        samples_requested=samples_requested,
        lines_received=len(lines),
        lines=[line.text for line in lines],
    )
    if len(lines) < 2:
        return result

    arrivals = pd.Series([line.received_at for line in lines], dtype="float64")
    intervals_ms = arrivals.diff().dropna() * 1000.0
    duration_s = float(arrivals.iloc[-1] - arrivals.iloc[0])

    result.duration_s = duration_s
    result.lines_per_second = (len(lines) - 1) / duration_s if duration_s > 0 else 0.0
    result.mean_interval_ms = float(intervals_ms.mean())
    result.min_interval_ms = float(intervals_ms.min())
    result.max_interval_ms = float(intervals_ms.max())
    result.median_interval_ms = float(intervals_ms.median())
    return result
