"""In-memory pallet and reading store backed by pandas."""

from pallet_store.schemas import PALLET_SCHEMA, READING_SCHEMA
from pallet_store.store import PalletStore

__all__ = ["READING_SCHEMA", "PALLET_SCHEMA", "PalletStore"]
