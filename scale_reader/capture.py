"""Auto-capture lock that turns settled weights into capture decisions."""

import logging
from dataclasses import dataclass
from typing import Optional

from scale_reader import protocol
from scale_reader.models import CaptureLockState
from scale_reader.stability import StabilityWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureDecision:
    """Outcome of feeding one sample to the controller.

    Attributes:
        display_weight: Value the current-weight gauge should show.
        capture_weight: Stable weight to commit, or None if nothing fires.
    """

    display_weight: float
    capture_weight: Optional[float] = None


class AutoCaptureController:
    """Two-state machine gating when a stable weight becomes a reading.

    Note the polarity: LOCKED lets live weights through to the display but
    does not accumulate; UNLOCKED accumulates toward a stability decision.
    Only an empty-platform sample moves LOCKED to UNLOCKED, and only a
    capture moves UNLOCKED back to LOCKED, so each load is captured once.
    """

    def __init__(
        self,
        window: Optional[StabilityWindow] = None,
        zero_threshold: float = protocol.ZERO_THRESHOLD,
    ) -> None:
        self._window = window if window is not None else StabilityWindow()
        self._zero_threshold = zero_threshold
        self._state = CaptureLockState.LOCKED

    def process(
        self,
        weight: float,
        auto_capture_enabled: bool,
        threshold_percent: float,
    ) -> CaptureDecision:
        """Advance the state machine with one calibrated sample.

        Args:
            weight: Calibrated weight
            auto_capture_enabled: Current value of the persisted setting
            threshold_percent: Stability tolerance in percent

        Returns:
            CaptureDecision describing display and capture side effects
        """
        if weight <= self._zero_threshold:
            if self._state is CaptureLockState.LOCKED:
                logger.debug("Platform empty, releasing capture lock")
            self._state = CaptureLockState.UNLOCKED
            self._window.clear()
            return CaptureDecision(display_weight=0.0)

        if self._state is CaptureLockState.LOCKED:
            return CaptureDecision(display_weight=weight)

        self._window.push(weight)

        if auto_capture_enabled:
            stable = self._window.stable_weight(threshold_percent)
            if stable is not None:
                self._state = CaptureLockState.LOCKED
                self._window.clear()
                logger.info(f"Stable weight {stable:.2f}, capturing")
                return CaptureDecision(display_weight=stable, capture_weight=stable)

        return CaptureDecision(display_weight=weight)

    def reset(self) -> None:
        """Return to LOCKED with an empty window (used on every fresh connection)."""
        self._state = CaptureLockState.LOCKED
        self._window.clear()

    @property
    def state(self) -> CaptureLockState:
        return self._state

    @property
    def window(self) -> StabilityWindow:
        return self._window
