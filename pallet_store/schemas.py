"""DataFrame schemas for committed readings and pallets.

All columns are always present so empty frames, exports and queries share
one layout.
"""

from datetime import datetime, timezone
from typing import Any, Dict

import pandas as pd

from scale_reader.models import Pallet, ScaleReading

READING_SCHEMA = {
    "id": int,
    "weight": float,  # Calibrated weight
    "timestamp": "datetime64[ns, UTC]",
    "pallet_id": str,  # None when no pallet was active
}

PALLET_SCHEMA = {
    "pallet_id": str,  # "P001", "P002", ...
    "created_at": "datetime64[ns, UTC]",
    "reading_count": int,
    "total_weight": float,  # Mean weight of the pallet's readings
    "is_completed": bool,
}


def to_utc(ts: datetime) -> datetime:
    """Normalize a timestamp to UTC, treating naive values as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def reading_to_row(reading: ScaleReading) -> Dict[str, Any]:
    if reading.id is None:
        raise ValueError(f"Reading has no id: {reading}")
    return {
        "id": reading.id,
        "weight": float(reading.weight),
        "timestamp": to_utc(reading.timestamp),
        "pallet_id": reading.pallet_id,
    }


def row_to_reading(row: pd.Series) -> ScaleReading:
    pallet_id = row["pallet_id"]
    return ScaleReading(
        weight=float(row["weight"]),
        timestamp=pd.Timestamp(row["timestamp"]).to_pydatetime(),
        pallet_id=None if pd.isna(pallet_id) else str(pallet_id),
        id=int(row["id"]),
    )


def pallet_to_row(pallet: Pallet) -> Dict[str, Any]:
    return {
        "pallet_id": pallet.pallet_id,
        "created_at": to_utc(pallet.created_at),
        "reading_count": int(pallet.reading_count),
        "total_weight": float(pallet.total_weight),
        "is_completed": bool(pallet.is_completed),
    }


def row_to_pallet(row: pd.Series) -> Pallet:
    return Pallet(
        pallet_id=str(row["pallet_id"]),
        created_at=pd.Timestamp(row["created_at"]).to_pydatetime(),
        reading_count=int(row["reading_count"]),
        total_weight=float(row["total_weight"]),
        is_completed=bool(row["is_completed"]),
    )
