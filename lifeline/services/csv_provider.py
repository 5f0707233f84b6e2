"""
CSV Snapshot Provider

File-backed inventory snapshot and hospital directory, laid out as:

    <data_dir>/inventory/blood_inventory.csv
    <data_dir>/hospitals/hospitals.csv
    <data_dir>/requests/blood_requests.csv

Used by the CLI and demos; data/synthetic/generate_data.py writes this layout.
"""

import logging
from datetime import date
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from lifeline.schemas.inventory import ComponentType, HospitalProfile
from lifeline.services.directory import build_hospital_directory, parse_requests
from lifeline.services.provider import CENTRAL_BANK, SnapshotFetchError
from lifeline.services.snapshot import normalize_snapshot

logger = logging.getLogger(__name__)

_ID_COLUMNS = {"lot_id": str, "hospital_id": str, "request_id": str}


class CSVSnapshotProvider:
    """
    Reads inventory, hospitals and requests from CSV files with pandas.
    """

    INVENTORY_FILE = Path("inventory/blood_inventory.csv")
    HOSPITALS_FILE = Path("hospitals/hospitals.csv")
    REQUESTS_FILE = Path("requests/blood_requests.csv")

    def __init__(self, data_dir: Union[str, Path] = "data/raw"):
        """
        Args:
            data_dir: Root directory of the CSV files
        """
        self.data_dir = Path(data_dir)
        logger.info(f"CSV snapshot provider reading from {self.data_dir}")

    def _read(self, relative: Path) -> pd.DataFrame:
        path = self.data_dir / relative
        if not path.exists():
            raise SnapshotFetchError(f"Missing data file: {path}")
        try:
            return pd.read_csv(path, dtype=_ID_COLUMNS)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise SnapshotFetchError(f"Could not read {path}: {e}") from e

    def fetch_inventory_snapshot(
        self,
        hospital_id: Optional[str] = None,
        component_type: Optional[ComponentType] = None
    ) -> pd.DataFrame:
        """
        Raw inventory records.

        Args:
            hospital_id: One hospital, CENTRAL_BANK for unowned lots, or None for all
            component_type: Optional component filter

        Returns:
            DataFrame of inventory rows (not yet normalized)
        """
        inventory = self._read(self.INVENTORY_FILE)

        if hospital_id == CENTRAL_BANK:
            inventory = inventory[inventory["hospital_id"].isna()]
        elif hospital_id is not None:
            inventory = inventory[inventory["hospital_id"] == str(hospital_id)]

        if component_type is not None and "component_type" in inventory.columns:
            components = inventory["component_type"].fillna(ComponentType.WHOLE_BLOOD.value)
            inventory = inventory[components == ComponentType(component_type).value]

        logger.info(f"Loaded {len(inventory):,} inventory records")
        return inventory.reset_index(drop=True)

    def fetch_hospital_directory(self, today: Optional[date] = None) -> List[HospitalProfile]:
        """
        Hospitals with current stock and open requests.

        Args:
            today: Reference date deciding which lots still count as stock
        """
        hospitals = self._read(self.HOSPITALS_FILE)
        inventory = self._read(self.INVENTORY_FILE)
        requests = self._read(self.REQUESTS_FILE)

        snapshot = normalize_snapshot(inventory, today or date.today())
        return build_hospital_directory(hospitals, snapshot.lots, parse_requests(requests))
