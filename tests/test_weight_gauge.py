"""Tests for the current weight gauge and its change broadcast."""

import queue

from scale_reader.gauge import WeightGauge


def test_starts_unknown() -> None:
    """Test the gauge reports None before the first weight."""
    gauge = WeightGauge()

    assert gauge.get() is None
    assert gauge.sample() is None


def test_set_and_get() -> None:
    """Test the latest weight is readable."""
    gauge = WeightGauge()
    gauge.set(12.5)

    assert gauge.get() == 12.5
    assert gauge.sample().weight == 12.5


def test_subscribers_notified_on_change_only() -> None:
    """Test small wobbles below the delta are not broadcast."""
    gauge = WeightGauge(change_delta=0.01)
    events = gauge.subscribe()

    gauge.set(10.0)
    gauge.set(10.005)
    gauge.set(10.5)

    received = []
    while True:
        try:
            received.append(events.get_nowait().weight)
        except queue.Empty:
            break

    assert received == [10.0, 10.5]
    assert gauge.get() == 10.5


def test_unsubscribe_stops_events() -> None:
    """Test an unsubscribed queue gets nothing further."""
    gauge = WeightGauge()
    events = gauge.subscribe()
    gauge.unsubscribe(events)

    gauge.set(1.0)

    assert events.empty()


def test_full_subscriber_queue_drops_oldest() -> None:
    """Test a slow consumer never blocks the writer."""
    gauge = WeightGauge(subscriber_queue_size=2)
    events = gauge.subscribe()

    for w in (1.0, 2.0, 3.0, 4.0):
        gauge.set(w)

    assert [events.get_nowait().weight for _ in range(2)] == [3.0, 4.0]
