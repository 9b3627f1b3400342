"""Tests for the auto-capture lock state machine."""

import pytest

from scale_reader.capture import AutoCaptureController
from scale_reader.models import CaptureLockState


def _feed(controller: AutoCaptureController, weights, enabled: bool = True, threshold: float = 1.0):
    return [controller.process(w, enabled, threshold) for w in weights]


def test_initial_state_is_locked() -> None:
    """Test the controller starts LOCKED with an empty window."""
    controller = AutoCaptureController()

    assert controller.state is CaptureLockState.LOCKED
    assert len(controller.window) == 0


def test_locked_passes_weight_through_without_accumulating() -> None:
    """Test LOCKED shows live weights but never captures."""
    controller = AutoCaptureController()

    decisions = _feed(controller, [10.0] * 15)

    assert [d.display_weight for d in decisions] == [10.0] * 15
    assert all(d.capture_weight is None for d in decisions)
    assert len(controller.window) == 0
    assert controller.state is CaptureLockState.LOCKED


@pytest.mark.parametrize("prior_weights", [[], [10.0] * 3, [0.0, 10.0, 10.0]])
def test_zero_sample_forces_unlocked_with_empty_window(prior_weights) -> None:
    """Test an empty platform unlocks from any prior state."""
    controller = AutoCaptureController()
    _feed(controller, prior_weights)

    decision = controller.process(0.0, True, 1.0)

    assert decision.display_weight == 0.0
    assert decision.capture_weight is None
    assert controller.state is CaptureLockState.UNLOCKED
    assert len(controller.window) == 0


def test_negative_and_tiny_weights_count_as_zero() -> None:
    """Test weights at or below the zero threshold read as empty."""
    controller = AutoCaptureController()

    assert controller.process(-3.0, True, 1.0).display_weight == 0.0
    assert controller.process(0.01, True, 1.0).display_weight == 0.0
    assert controller.state is CaptureLockState.UNLOCKED


def test_stable_load_fires_exactly_once() -> None:
    """Test ten settled samples fire one capture, then the lock holds."""
    controller = AutoCaptureController()
    controller.process(0.0, True, 1.0)

    decisions = _feed(controller, [10.0] * 25)
    captures = [d.capture_weight for d in decisions if d.capture_weight is not None]

    assert captures == [pytest.approx(10.0)]
    assert decisions[9].capture_weight == pytest.approx(10.0)
    assert decisions[9].display_weight == pytest.approx(10.0)
    assert controller.state is CaptureLockState.LOCKED
    assert len(controller.window) == 0


def test_next_load_captured_after_zero_crossing() -> None:
    """Test a new load is captured only after the platform empties."""
    controller = AutoCaptureController()
    controller.process(0.0, True, 1.0)
    _feed(controller, [10.0] * 10)

    decisions = _feed(controller, [0.0] + [20.0] * 10)
    captures = [d.capture_weight for d in decisions if d.capture_weight is not None]

    assert captures == [pytest.approx(20.0)]


def test_disabled_auto_capture_never_fires() -> None:
    """Test a stable window does nothing while auto-capture is off."""
    controller = AutoCaptureController()
    controller.process(0.0, False, 1.0)

    decisions = _feed(controller, [10.0] * 20, enabled=False)

    assert all(d.capture_weight is None for d in decisions)
    assert controller.window.is_stable(1.0)
    assert controller.state is CaptureLockState.UNLOCKED


def test_unstable_load_shows_raw_samples() -> None:
    """Test samples that never settle are displayed raw and never captured."""
    controller = AutoCaptureController()
    controller.process(0.0, True, 1.0)

    weights = [10.0, 12.0] * 10
    decisions = _feed(controller, weights)

    assert [d.display_weight for d in decisions] == weights
    assert all(d.capture_weight is None for d in decisions)


def test_reset_returns_to_locked() -> None:
    """Test reset discards accumulation and locks."""
    controller = AutoCaptureController()
    controller.process(0.0, True, 1.0)
    _feed(controller, [10.0] * 5)

    controller.reset()

    assert controller.state is CaptureLockState.LOCKED
    assert len(controller.window) == 0
