"""Thread-safe in-memory store for settings, pallets and committed readings.

PalletStore implements the persistence contract the scale reader calls
into (scale_reader.persistence.ScaleStoreLike):
- Settings: read, update, remember an auto-detected port
- Readings: append with optional pallet assignment
- Pallets: newest open pallet is the active one; once it holds
  readings_per_pallet readings it is completed and P{n+1:03d} is opened

Design notes:
- All state lives in two pandas DataFrames guarded by one RLock
- Pallet ids are sequential over all pallets ever created ("P001", "P002", ...)
- A pallet's total_weight is the mean of its readings, recomputed on each commit
"""

import dataclasses
import logging
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional

import pandas as pd

from pallet_store.schemas import (
    PALLET_SCHEMA,
    READING_SCHEMA,
    pallet_to_row,
    reading_to_row,
    row_to_pallet,
    row_to_reading,
)
from scale_reader.models import Pallet, ScaleReading, ScaleSettings

logger = logging.getLogger(__name__)


def _empty_frame(schema: Dict[str, Any]) -> pd.DataFrame:
    return pd.DataFrame({col: pd.Series(dtype=dtype) for col, dtype in schema.items()})


def _append_row(df: pd.DataFrame, row: Dict[str, Any]) -> pd.DataFrame:
    new_df = pd.DataFrame([row], columns=list(df.columns))
    if df.empty:
        return new_df
    return pd.concat([df, new_df], ignore_index=True)


class PalletStore:
    """In-memory persistence for the scale reader.

    Optionally seeds an open pallet so readings have somewhere to go from
    the first capture.
    """

    def __init__(
        self,
        settings: Optional[ScaleSettings] = None,
        seed_pallet: bool = True,
    ) -> None:
        """Initialize empty store.

        Args:
            settings: Initial settings. Defaults to ScaleSettings().
            seed_pallet: If True, open pallet "P001" immediately.
        """
        self._lock = RLock()
        self._settings = settings if settings is not None else ScaleSettings()
        self._readings = _empty_frame(READING_SCHEMA)
        self._pallets = _empty_frame(PALLET_SCHEMA)
        self._next_reading_id = 1

        if seed_pallet:
            self._open_next_pallet()

    # ========================================================================
    # Settings
    # ========================================================================

    def get_settings(self) -> ScaleSettings:
        """Return a copy of the current settings (thread-safe)."""
        with self._lock:
            return dataclasses.replace(self._settings)

    def update_settings(self, **fields: Any) -> ScaleSettings:
        """Change one or more settings fields.

        Raises:
            ValueError: If a value is invalid
            TypeError: If a field name is unknown
        """
        with self._lock:
            self._settings = dataclasses.replace(self._settings, **fields)
            logger.info(f"Settings updated: {fields}")
            return dataclasses.replace(self._settings)

    def save_detected_port(self, port_name: str) -> None:
        with self._lock:
            self._settings = dataclasses.replace(self._settings, configured_port_name=port_name)
            logger.info(f"Stored scale port {port_name}")

    # ========================================================================
    # Pallets
    # ========================================================================

    def get_active_pallet(self) -> Optional[Pallet]:
        """Newest pallet that is not completed, or None."""
        with self._lock:
            open_pallets = self._pallets[~self._pallets["is_completed"].astype(bool)]
            if open_pallets.empty:
                return None
            return row_to_pallet(open_pallets.iloc[-1])

    def get_pallet(self, pallet_id: str) -> Optional[Pallet]:
        with self._lock:
            idx = self._pallet_index(pallet_id)
            if idx is None:
                return None
            return row_to_pallet(self._pallets.loc[idx])

    def get_pallets(self, count: int = 10) -> List[Pallet]:
        """Most recently created pallets, newest first."""
        with self._lock:
            recent = self._pallets.iloc[::-1].head(count)
            return [row_to_pallet(row) for _, row in recent.iterrows()]

    def advance_pallet_if_full(self, pallet: Pallet) -> Optional[Pallet]:
        """Complete pallet and open the next one if it reached the per-pallet limit.

        Looks the pallet up by id, so a stale Pallet instance is fine.

        Returns:
            The newly opened pallet, or None if no rollover happened
        """
        with self._lock:
            idx = self._pallet_index(pallet.pallet_id)
            if idx is None:
                raise ValueError(f"Unknown pallet {pallet.pallet_id!r}")

            row = self._pallets.loc[idx]
            if bool(row["is_completed"]):
                return None
            if int(row["reading_count"]) < self._settings.readings_per_pallet:
                return None

            self._pallets.loc[idx, "is_completed"] = True
            logger.info(f"Pallet {pallet.pallet_id} completed with {int(row['reading_count'])} readings")
            return self._open_next_pallet()

    def complete_active_pallet(self) -> Pallet:
        """Close the active pallet (if any) regardless of count and open the next."""
        with self._lock:
            active = self.get_active_pallet()
            if active is not None:
                idx = self._pallet_index(active.pallet_id)
                self._pallets.loc[idx, "is_completed"] = True
                logger.info(f"Pallet {active.pallet_id} completed manually")
            return self._open_next_pallet()

    # ========================================================================
    # Readings
    # ========================================================================

    def commit_reading(
        self, weight: float, timestamp: datetime, pallet_id: Optional[str] = None
    ) -> ScaleReading:
        """Append a reading and update its pallet's count and mean weight.

        Raises:
            ValueError: If pallet_id names an unknown pallet
        """
        with self._lock:
            pallet_idx = None
            if pallet_id is not None:
                pallet_idx = self._pallet_index(pallet_id)
                if pallet_idx is None:
                    raise ValueError(f"Unknown pallet {pallet_id!r}")

            reading = ScaleReading(
                weight=weight,
                timestamp=timestamp,
                pallet_id=pallet_id,
                id=self._next_reading_id,
            )
            self._readings = _append_row(self._readings, reading_to_row(reading))
            self._next_reading_id += 1

            if pallet_idx is not None:
                weights = self._readings.loc[self._readings["pallet_id"] == pallet_id, "weight"]
                self._pallets.loc[pallet_idx, "reading_count"] = int(self._pallets.loc[pallet_idx, "reading_count"]) + 1
                self._pallets.loc[pallet_idx, "total_weight"] = float(weights.mean())

            logger.debug(f"Committed reading #{reading.id}: {weight:.2f} (pallet {pallet_id})")
            return reading

    def get_recent_readings(self, count: int = 10) -> List[ScaleReading]:
        """Most recent readings, newest first."""
        with self._lock:
            recent = self._readings.sort_values("timestamp", kind="stable").iloc[::-1].head(count)
            return [row_to_reading(row) for _, row in recent.iterrows()]

    def readings_dataframe(self) -> pd.DataFrame:
        """Copy of all committed readings."""
        with self._lock:
            return self._readings.copy()

    def reading_count(self) -> int:
        with self._lock:
            return len(self._readings)

    def export_readings_csv(self, path: Optional[str] = None) -> str:
        """Export readings to CSV. Auto-generates a timestamped name if path is None.

        Returns:
            Absolute path to exported file
        """
        with self._lock:
            if path is None:
                timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
                path = f"scale_readings_{timestamp}.csv"

            self._readings.to_csv(path, index=False)
            abs_path = str(Path(path).resolve())
            logger.info(f"Exported {len(self._readings)} readings to CSV: {abs_path}")
            return abs_path

    # ========================================================================
    # Internal Helpers
    # ========================================================================

    def _pallet_index(self, pallet_id: str) -> Optional[int]:
        matches = self._pallets.index[self._pallets["pallet_id"] == pallet_id]
        if len(matches) == 0:
            return None
        return matches[0]

    def _open_next_pallet(self) -> Pallet:
        pallet = Pallet(
            pallet_id=f"P{len(self._pallets) + 1:03d}",
            created_at=datetime.now(timezone.utc),
        )
        self._pallets = _append_row(self._pallets, pallet_to_row(pallet))
        logger.info(f"Opened pallet {pallet.pallet_id}")
        return pallet
