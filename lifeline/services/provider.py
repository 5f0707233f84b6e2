"""
Snapshot Provider Interface

Contract for the read side of the inventory store. The engine never talks to
storage directly: a provider fetches raw records and the hospital directory,
and fetch failures surface here as SnapshotFetchError before the engine runs.
"""

from datetime import date
from typing import List, Optional, Protocol

import pandas as pd

from lifeline.schemas.inventory import ComponentType, HospitalProfile

# Pseudo hospital id selecting central blood bank lots (no owning hospital)
CENTRAL_BANK = "central"


class SnapshotFetchError(RuntimeError):
    """Inventory or hospital data could not be fetched."""


class SnapshotProvider(Protocol):
    """Anything that can supply an inventory snapshot and a hospital directory."""

    def fetch_inventory_snapshot(
        self,
        hospital_id: Optional[str] = None,
        component_type: Optional[ComponentType] = None
    ) -> pd.DataFrame:
        """
        Raw inventory records.

        hospital_id None returns the whole network; CENTRAL_BANK returns only
        lots without an owning hospital.
        """
        ...

    def fetch_hospital_directory(self, today: Optional[date] = None) -> List[HospitalProfile]:
        """Candidate destination hospitals with stock and open requests."""
        ...
