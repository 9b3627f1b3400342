"""Tests for the in-memory pallet store."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pandas as pd
import pytest

from pallet_store import PALLET_SCHEMA, READING_SCHEMA, PalletStore
from scale_reader.models import ScaleSettings

T0 = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)


def test_seeds_first_pallet() -> None:
    """Test a new store has an open pallet P001."""
    store = PalletStore()

    active = store.get_active_pallet()

    assert active is not None
    assert active.pallet_id == "P001"
    assert active.reading_count == 0
    assert not active.is_completed


def test_no_seed() -> None:
    """Test the seed pallet can be skipped."""
    store = PalletStore(seed_pallet=False)

    assert store.get_active_pallet() is None


def test_commit_updates_pallet_count_and_mean() -> None:
    """Test readings attach to their pallet and update its mean weight."""
    store = PalletStore()

    first = store.commit_reading(10.0, T0, "P001")
    second = store.commit_reading(12.0, T0 + timedelta(seconds=5), "P001")

    pallet = store.get_pallet("P001")
    assert pallet.reading_count == 2
    assert pallet.total_weight == pytest.approx(11.0)
    assert (first.id, second.id) == (1, 2)


def test_commit_without_pallet() -> None:
    """Test readings can be stored without a pallet."""
    store = PalletStore(seed_pallet=False)

    reading = store.commit_reading(5.0, T0)

    assert reading.pallet_id is None
    assert store.get_recent_readings()[0].pallet_id is None


def test_commit_unknown_pallet_raises() -> None:
    """Test an unknown pallet id is rejected."""
    store = PalletStore()

    with pytest.raises(ValueError):
        store.commit_reading(5.0, T0, "P999")


def test_advance_only_when_full() -> None:
    """Test rollover happens once the per-pallet limit is reached."""
    store = PalletStore(ScaleSettings(readings_per_pallet=2))
    pallet = store.get_active_pallet()

    store.commit_reading(1.0, T0, "P001")
    assert store.advance_pallet_if_full(pallet) is None

    store.commit_reading(1.0, T0, "P001")
    new_pallet = store.advance_pallet_if_full(pallet)

    assert new_pallet.pallet_id == "P002"
    assert store.get_pallet("P001").is_completed
    assert store.get_active_pallet().pallet_id == "P002"

    # Completed pallets never roll over twice
    assert store.advance_pallet_if_full(pallet) is None


def test_complete_active_pallet() -> None:
    """Test forcing a rollover regardless of count."""
    store = PalletStore()

    new_pallet = store.complete_active_pallet()

    assert new_pallet.pallet_id == "P002"
    assert store.get_pallet("P001").is_completed
    assert [p.pallet_id for p in store.get_pallets()] == ["P002", "P001"]


def test_recent_readings_newest_first() -> None:
    """Test recent readings are ordered newest first and limited."""
    store = PalletStore()
    for i in range(5):
        store.commit_reading(float(i), T0 + timedelta(minutes=i), "P001")

    recent = store.get_recent_readings(3)

    assert [r.weight for r in recent] == [4.0, 3.0, 2.0]


def test_naive_timestamps_treated_as_utc() -> None:
    """Test naive datetimes are stored as UTC."""
    store = PalletStore()
    store.commit_reading(1.0, datetime(2026, 10, 1, 8, 0))

    ts = store.get_recent_readings()[0].timestamp

    assert ts.tzinfo is not None
    assert ts.replace(tzinfo=None) == datetime(2026, 10, 1, 8, 0)


def test_settings_roundtrip() -> None:
    """Test settings updates are validated and persisted."""
    store = PalletStore()

    store.update_settings(auto_capture_enabled=True, auto_capture_threshold_percent=2.5)
    store.save_detected_port("/dev/ttyUSB1")

    settings = store.get_settings()
    assert settings.auto_capture_enabled
    assert settings.auto_capture_threshold_percent == 2.5
    assert settings.configured_port_name == "/dev/ttyUSB1"

    with pytest.raises(ValueError):
        store.update_settings(readings_per_pallet=0)


def test_get_settings_returns_copy() -> None:
    """Test callers cannot mutate stored settings in place."""
    store = PalletStore()

    store.get_settings().auto_capture_enabled = True

    assert not store.get_settings().auto_capture_enabled


def test_dataframe_schema() -> None:
    """Test the readings frame always has every schema column."""
    store = PalletStore()
    assert list(store.readings_dataframe().columns) == list(READING_SCHEMA.keys())

    store.commit_reading(1.0, T0, "P001")
    assert list(store.readings_dataframe().columns) == list(READING_SCHEMA.keys())
    assert set(PALLET_SCHEMA) == {"pallet_id", "created_at", "reading_count", "total_weight", "is_completed"}


def test_export_csv(tmp_path: Path) -> None:
    """Test CSV export writes every reading."""
    store = PalletStore()
    store.commit_reading(10.0, T0, "P001")
    store.commit_reading(11.0, T0, "P001")

    path = store.export_readings_csv(str(tmp_path / "readings.csv"))

    df = pd.read_csv(path)
    assert len(df) == 2
    assert list(df.columns) == list(READING_SCHEMA.keys())
    assert df["weight"].tolist() == [10.0, 11.0]
