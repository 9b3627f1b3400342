"""Contract the reader uses to read settings and commit readings."""

from datetime import datetime
from typing import Optional, Protocol

from scale_reader.models import Pallet, ScaleReading, ScaleSettings


class ScaleStoreLike(Protocol):
    """Protocol for the persistence collaborator (allows in-memory doubles).

    The store owns pallet assignment and rollover; the reader only supplies
    a weight and a timestamp.
    """

    def get_settings(self) -> ScaleSettings:
        """Return current application settings."""
        ...

    def save_detected_port(self, port_name: str) -> None:
        """Persist an auto-detected port so later starts skip the scan."""
        ...

    def get_active_pallet(self) -> Optional[Pallet]:
        """Return the newest pallet that is not completed, if any."""
        ...

    def commit_reading(
        self, weight: float, timestamp: datetime, pallet_id: Optional[str] = None
    ) -> ScaleReading:
        """Store a reading, attaching it to pallet_id when given."""
        ...

    def advance_pallet_if_full(self, pallet: Pallet) -> Optional[Pallet]:
        """Complete pallet and open the next one once it holds enough readings."""
        ...
