"""Bounded sample window that decides when a placed load has settled."""

import logging
import threading
from collections import deque
from typing import List, Optional

from scale_reader import protocol

logger = logging.getLogger(__name__)


class StabilityWindow:
    """Thread-safe fixed-size FIFO of recent weights.

    Once the window reaches capacity, the oldest weight is discarded when a
    new one is pushed. Stability can only be judged on a full window.
    """

    def __init__(self, capacity: int = protocol.STABLE_READ_COUNT) -> None:
        """Initialize window.

        Args:
            capacity: Number of samples judged together. Defaults to 10.
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self._samples: deque[float] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._capacity = capacity

    def push(self, weight: float) -> None:
        """Append a weight, evicting the oldest if the window is full."""
        with self._lock:
            self._samples.append(weight)

    def stable_weight(self, threshold_percent: float) -> Optional[float]:
        """Return the window mean if the newest sample sits close enough to it.

        Stable means |newest - mean| / mean * 100 <= threshold_percent. A
        window that is not yet full, or whose mean is not positive, is never
        stable.

        Args:
            threshold_percent: Allowed deviation in percent

        Returns:
            Mean of the window when stable, None otherwise
        """
        with self._lock:
            if len(self._samples) < self._capacity:
                return None

            mean = sum(self._samples) / len(self._samples)
            if mean <= 0:
                return None

            newest = self._samples[-1]

        deviation = abs(newest - mean) / mean * 100.0
        if deviation > threshold_percent:
            logger.debug(f"Not stable: newest {newest:.2f} is {deviation:.2f}% off mean {mean:.2f}")
            return None

        return mean

    def is_stable(self, threshold_percent: float) -> bool:
        return self.stable_weight(threshold_percent) is not None

    def snapshot(self) -> List[float]:
        """Get a copy of the current samples, oldest first."""
        with self._lock:
            return list(self._samples)

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    @property
    def capacity(self) -> int:
        """Maximum number of samples held."""
        return self._capacity

    @property
    def is_full(self) -> bool:
        return len(self) >= self._capacity
