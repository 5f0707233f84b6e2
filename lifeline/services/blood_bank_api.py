"""
Blood Bank API Client

Reads inventory, hospitals and requests from the blood bank's REST backend:

    GET /api/admin/inventory?hospitalId=   (no hospitalId = central blood bank)
    GET /api/admin/hospitals
    GET /api/admin/requests

Requests carry a bearer token. Failures raise SnapshotFetchError; there is no
fallback to simulated data.
"""

import requests
import logging
import os
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd
from dotenv import load_dotenv

from lifeline.schemas.inventory import ComponentType, HospitalProfile
from lifeline.services.directory import build_hospital_directory, parse_requests
from lifeline.services.provider import CENTRAL_BANK, SnapshotFetchError
from lifeline.services.snapshot import normalize_snapshot

logger = logging.getLogger(__name__)

load_dotenv()


class BloodBankAPIClient:
    """
    Client for the blood bank admin API.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        timezone: Optional[str] = None
    ):
        """
        Initialize the API client.

        Args:
            base_url: Backend root URL (or set LIFELINE_API_URL env var)
            token: Admin bearer token (or set LIFELINE_API_TOKEN env var)
            timeout: Per-request timeout in seconds
            session: Optional requests session (shared connection pool)
            timezone: IANA zone for reading UTC expiration timestamps (or set LIFELINE_TIMEZONE env var)
        """
        self.base_url = (base_url or os.environ.get("LIFELINE_API_URL") or "").rstrip("/")
        self.token = token or os.environ.get("LIFELINE_API_TOKEN")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.timezone = timezone or os.environ.get("LIFELINE_TIMEZONE")

        if not self.base_url:
            raise ValueError("LIFELINE_API_URL not found in environment or parameters")
        if not self.token:
            logger.warning("No LIFELINE_API_TOKEN set - requests will be unauthenticated")

        logger.info(f"Blood bank API client initialized for {self.base_url}")

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}

        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise SnapshotFetchError(f"GET {path} failed: {e}") from e
        except ValueError as e:
            raise SnapshotFetchError(f"GET {path} returned invalid JSON: {e}") from e

    def _get_list(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        data = self._get(path, params)
        if not isinstance(data, list):
            raise SnapshotFetchError(f"GET {path} returned {type(data).__name__}, expected a list")
        return data

    def fetch_hospitals(self) -> List[Dict[str, Any]]:
        """Raw hospital records, including approved request balances."""
        return self._get_list("/api/admin/hospitals")

    def fetch_requests(self) -> List[Dict[str, Any]]:
        """Raw blood request records."""
        return self._get_list("/api/admin/requests")

    def _fetch_lots(self, hospital_id: Optional[str]) -> List[Dict[str, Any]]:
        params = {"hospitalId": hospital_id} if hospital_id else None
        return self._get_list("/api/admin/inventory", params)

    def fetch_inventory_snapshot(
        self,
        hospital_id: Optional[str] = None,
        component_type: Optional[ComponentType] = None
    ) -> pd.DataFrame:
        """
        Raw inventory records.

        Args:
            hospital_id: One hospital, CENTRAL_BANK for unowned lots, or None for
                         the whole network (central bank plus every hospital)
            component_type: Optional component filter

        Returns:
            DataFrame of inventory rows (not yet normalized)
        """
        if hospital_id == CENTRAL_BANK:
            records = list(self._fetch_lots(None))
        elif hospital_id is not None:
            records = self._fetch_lots(str(hospital_id))
        else:
            records = list(self._fetch_lots(None))
            for hospital in self.fetch_hospitals():
                records.extend(self._fetch_lots(str(hospital["id"])))

        inventory = pd.DataFrame(records)
        if component_type is not None and "component_type" in inventory.columns:
            components = inventory["component_type"].fillna(ComponentType.WHOLE_BLOOD.value)
            inventory = inventory[components == ComponentType(component_type).value].reset_index(drop=True)

        logger.info(f"Fetched {len(inventory):,} inventory records")
        return inventory

    def fetch_hospital_directory(self, today: Optional[date] = None) -> List[HospitalProfile]:
        """
        Hospitals with per-pair stock and open requests.

        Approved and partially fulfilled requests come from the hospitals
        endpoint with their outstanding balance; pending ones from the
        requests endpoint.
        """
        hospitals = self.fetch_hospitals()

        request_records = []
        for hospital in hospitals:
            for entry in hospital.get("requestedBlood") or []:
                request_records.append({**entry, "hospitalId": hospital["id"]})
        request_records.extend(
            r for r in self.fetch_requests() if str(r.get("status", "")).lower() == "pending"
        )

        lot_records = []
        for hospital in hospitals:
            lot_records.extend(self._fetch_lots(str(hospital["id"])))

        snapshot = normalize_snapshot(lot_records, today or date.today(), self.timezone)
        return build_hospital_directory(hospitals, snapshot.lots, parse_requests(request_records))
