"""
Hospital Directory

Builds HospitalProfile records (stock per blood type/component and open
requests) from raw hospital, inventory and request data, whichever provider
they came from.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Tuple

import pandas as pd
from pydantic import ValidationError

from lifeline.schemas.inventory import (
    BloodRequest,
    BloodType,
    ComponentType,
    HospitalProfile,
    InventoryLot,
    RequestStatus,
    StockLevel,
)

logger = logging.getLogger(__name__)

REQUEST_ALIASES = {
    "request_id": ("request_id", "requestId", "id"),
    "hospital_id": ("hospital_id", "hospitalId"),
    "blood_type": ("blood_type", "bloodType"),
    "component_type": ("component_type", "componentType"),
    "units_requested": ("remaining_balance", "remainingBalance", "units_requested", "unitsRequested"),
    "request_date": ("request_date", "requestDate"),
    "status": ("status",),
}

HOSPITAL_ALIASES = {
    "hospital_id": ("hospital_id", "hospitalId", "id"),
    "name": ("name", "hospital_name", "hospitalName"),
    "is_active": ("is_active", "isActive"),
}


def _pick(record: Dict[str, Any], aliases: Tuple[str, ...]) -> Any:
    for alias in aliases:
        value = record.get(alias)
        if value is not None and not (isinstance(value, float) and pd.isna(value)):
            return value
    return None


def _as_id(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _is_active(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() not in ("0", "false", "no")
    return bool(value)


def _rows(records: Any) -> List[Dict[str, Any]]:
    if isinstance(records, pd.DataFrame):
        return records.to_dict(orient="records")
    return [dict(r) for r in records]


def parse_requests(records: Any) -> List[BloodRequest]:
    """
    Canonical BloodRequest records.

    For partially fulfilled requests the outstanding balance, when present,
    is used as the requested units. Invalid rows are skipped with a warning.
    """
    requests = []
    for row in _rows(records):
        fields = {field: _pick(row, aliases) for field, aliases in REQUEST_ALIASES.items()}
        try:
            if fields["request_id"] is None or fields["hospital_id"] is None:
                raise ValueError("missing request or hospital id")
            component = fields["component_type"] or ComponentType.WHOLE_BLOOD.value
            requests.append(BloodRequest(
                request_id=_as_id(fields["request_id"]),
                hospital_id=_as_id(fields["hospital_id"]),
                blood_type=BloodType(str(fields["blood_type"]).strip().upper()),
                component_type=ComponentType(str(component).strip().lower()),
                units_requested=int(fields["units_requested"] or 0),
                request_date=pd.Timestamp(fields["request_date"]).date(),
                status=RequestStatus(str(fields["status"] or "pending").strip().lower())
            ))
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning(f"Skipping request {fields['request_id']}: {e}")
    return requests


def build_hospital_directory(
    hospitals: Any,
    lots: Iterable[InventoryLot],
    requests: Iterable[BloodRequest]
) -> List[HospitalProfile]:
    """
    Assemble hospital profiles.

    Args:
        hospitals: Hospital records (id, name, optional is_active)
        lots: Normalized lots; only scorable lots count as stock
        requests: Parsed requests; only open ones are attached

    Returns:
        Active hospitals ordered by id
    """
    stock: Dict[str, Dict[Tuple[BloodType, ComponentType], int]] = defaultdict(lambda: defaultdict(int))
    for lot in lots:
        if lot.hospital_id is not None and lot.is_scorable:
            stock[lot.hospital_id][(lot.blood_type, lot.component_type)] += lot.available_units

    open_requests: Dict[str, List[BloodRequest]] = defaultdict(list)
    for request in requests:
        if request.status.is_open:
            open_requests[request.hospital_id].append(request)

    profiles = []
    for row in _rows(hospitals):
        fields = {field: _pick(row, aliases) for field, aliases in HOSPITAL_ALIASES.items()}
        if fields["hospital_id"] is None:
            logger.warning(f"Skipping hospital record without id: {row}")
            continue
        if not _is_active(fields["is_active"]):
            continue

        hospital_id = _as_id(fields["hospital_id"])
        levels = [
            StockLevel(blood_type=bt, component_type=ct, units=units)
            for (bt, ct), units in stock[hospital_id].items()
        ]
        profiles.append(HospitalProfile(
            hospital_id=hospital_id,
            name=str(fields["name"] or ""),
            stock=levels,
            requests=open_requests[hospital_id]
        ))

    profiles.sort(key=lambda p: p.hospital_id)
    logger.info(f"Hospital directory: {len(profiles)} hospitals")
    return profiles
