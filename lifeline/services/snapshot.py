"""
Snapshot Normalization

Single validation step between raw inventory records and the engine.

Accepts a pandas DataFrame or any iterable of dicts (or InventoryLot models),
resolves column-name variants once, and produces canonical InventoryLot
records. Malformed records are rejected individually with a diagnostic; they
never abort the whole snapshot.
"""

import logging
import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

from lifeline.schemas.inventory import (
    BloodType,
    ComponentType,
    DiagnosticReason,
    InventoryLot,
    LotDiagnostic,
    LotStatus,
    NormalizedSnapshot,
    SnapshotStats,
)

logger = logging.getLogger(__name__)

# Canonical field -> accepted source names, first match wins
COLUMN_ALIASES = {
    "lot_id": ("lot_id", "id", "lotId"),
    "hospital_id": ("hospital_id", "hospitalId"),
    "blood_type": ("blood_type", "bloodType"),
    "component_type": ("component_type", "componentType"),
    "available_units": ("available_units", "availableUnits", "units"),
    "expiration_date": ("expiration_date", "expirationDate", "expiry_date"),
    "status": ("status",),
}

SnapshotRecords = Union[pd.DataFrame, Iterable[Union[Dict[str, Any], InventoryLot]]]


class _Rejected(Exception):
    """Internal signal for a record that fails validation."""

    def __init__(self, reason: DiagnosticReason, detail: str = ""):
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _canonicalize(record: Dict[str, Any]) -> Dict[str, Any]:
    """Resolve aliased keys to canonical names."""
    canonical = {}
    for field, aliases in COLUMN_ALIASES.items():
        canonical[field] = None
        for alias in aliases:
            if alias in record and not _is_missing(record[alias]):
                canonical[field] = record[alias]
                break
    return canonical


def _to_records(records: SnapshotRecords) -> List[Dict[str, Any]]:
    if isinstance(records, pd.DataFrame):
        return records.to_dict(orient="records")

    rows = []
    for record in records:
        if isinstance(record, InventoryLot):
            rows.append(record.model_dump(mode="json"))
        else:
            rows.append(dict(record))
    return rows


def _parse_blood_type(value: Any) -> BloodType:
    if _is_missing(value):
        raise _Rejected(DiagnosticReason.UNKNOWN_BLOOD_TYPE, "missing blood type")
    text = str(value.value if isinstance(value, BloodType) else value).strip().upper()
    try:
        return BloodType(text)
    except ValueError:
        raise _Rejected(DiagnosticReason.UNKNOWN_BLOOD_TYPE, f"blood type {value!r}")


def _parse_component(value: Any) -> ComponentType:
    if _is_missing(value):
        return ComponentType.WHOLE_BLOOD
    if isinstance(value, ComponentType):
        return value
    text = str(value).strip().lower().replace(" ", "_").replace("-", "_")
    try:
        return ComponentType(text)
    except ValueError:
        raise _Rejected(DiagnosticReason.UNKNOWN_COMPONENT_TYPE, f"component type {value!r}")


def _parse_units(value: Any) -> int:
    if _is_missing(value):
        return 0
    try:
        units = float(value)
    except (TypeError, ValueError):
        raise _Rejected(DiagnosticReason.INVALID_UNITS, f"units {value!r}")
    if not math.isfinite(units) or units != int(units):
        raise _Rejected(DiagnosticReason.INVALID_UNITS, f"units {value!r}")
    if units < 0:
        raise _Rejected(DiagnosticReason.NEGATIVE_UNITS, f"units {value!r}")
    return int(units)


def _parse_status(value: Any) -> LotStatus:
    if _is_missing(value):
        return LotStatus.AVAILABLE
    text = str(value.value if isinstance(value, LotStatus) else value).strip().lower().replace("-", "_")
    try:
        return LotStatus(text)
    except ValueError:
        logger.warning(f"Unknown lot status {value!r}, treating as available")
        return LotStatus.AVAILABLE


def _parse_expiration(value: Any, timezone: Optional[str] = None) -> date:
    """
    Calendar expiration date.

    Timestamps carrying an offset (e.g. DATE columns serialized as UTC) are
    converted to `timezone` (default UTC) before the time of day is dropped.
    """
    try:
        timestamp = pd.Timestamp(value)
    except (TypeError, ValueError):
        raise _Rejected(DiagnosticReason.INVALID_EXPIRATION, f"expiration {value!r}")
    if pd.isna(timestamp):
        raise _Rejected(DiagnosticReason.INVALID_EXPIRATION, f"expiration {value!r}")
    if timestamp.tzinfo is not None:
        timestamp = timestamp.tz_convert(timezone or "UTC")
    return timestamp.date()


def days_until(expiration: date, today: date) -> int:
    """Whole calendar days from `today` to the expiration date (0 = expires today)."""
    if isinstance(expiration, datetime):
        expiration = expiration.date()
    return (expiration - today).days


def _normalize_record(record: Dict[str, Any], today: date, timezone: Optional[str] = None) -> InventoryLot:
    fields = _canonicalize(record)

    if _is_missing(fields["lot_id"]):
        raise _Rejected(DiagnosticReason.MISSING_IDENTIFIER, "record has no lot id")

    blood_type = _parse_blood_type(fields["blood_type"])
    component_type = _parse_component(fields["component_type"])
    units = _parse_units(fields["available_units"])
    status = _parse_status(fields["status"])

    expiration_date = None
    days_until_expiry = None
    if _is_missing(fields["expiration_date"]):
        if status != LotStatus.EXPIRED:
            raise _Rejected(DiagnosticReason.MISSING_EXPIRATION, f"status {status.value}")
    else:
        expiration_date = _parse_expiration(fields["expiration_date"], timezone)
        days_until_expiry = days_until(expiration_date, today)

    hospital_id = fields["hospital_id"]
    if isinstance(hospital_id, float) and hospital_id.is_integer():
        hospital_id = int(hospital_id)

    return InventoryLot(
        lot_id=str(fields["lot_id"]),
        hospital_id=None if _is_missing(hospital_id) else str(hospital_id),
        blood_type=blood_type,
        component_type=component_type,
        available_units=units,
        expiration_date=expiration_date,
        days_until_expiry=days_until_expiry,
        status=status
    )


def normalize_snapshot(
    records: Optional[SnapshotRecords],
    today: date,
    timezone: Optional[str] = None
) -> NormalizedSnapshot:
    """
    Validate raw inventory records against a reference date.

    Args:
        records: DataFrame or iterable of records from a snapshot provider
        today: Reference date fixed for the whole invocation
        timezone: IANA zone used to read offset-carrying expirations (default UTC)

    Returns:
        NormalizedSnapshot with canonical lots, diagnostics and raw totals

    Raises:
        ValueError: If `records` is None (fetch failures must be surfaced first)
    """
    if records is None:
        raise ValueError("Inventory snapshot is None; surface fetch failures before invoking the engine")

    rows = _to_records(records)
    lots: List[InventoryLot] = []
    diagnostics: List[LotDiagnostic] = []

    for row in rows:
        try:
            lots.append(_normalize_record(row, today, timezone))
        except _Rejected as rejected:
            lot_id = _canonicalize(row)["lot_id"]
            diagnostic = LotDiagnostic(
                lot_id=None if _is_missing(lot_id) else str(lot_id),
                reason=rejected.reason,
                detail=rejected.detail
            )
            diagnostics.append(diagnostic)
            logger.warning(f"Rejected lot {diagnostic.lot_id}: {diagnostic.reason.value} ({diagnostic.detail})")

    stats = _snapshot_stats(len(rows), lots, diagnostics)
    logger.info(
        f"Normalized snapshot: {stats.total_lots} lots, {stats.total_units} units, "
        f"{stats.rejected_records} rejected"
    )

    return NormalizedSnapshot(
        reference_date=today,
        lots=lots,
        diagnostics=diagnostics,
        stats=stats
    )


def _snapshot_stats(
    total_records: int,
    lots: List[InventoryLot],
    diagnostics: List[LotDiagnostic]
) -> SnapshotStats:
    expired = [lot for lot in lots if lot.is_expired]
    return SnapshotStats(
        total_records=total_records,
        total_lots=len(lots),
        total_units=sum(lot.available_units for lot in lots),
        expired_lots=len(expired),
        expired_units=sum(lot.available_units for lot in expired),
        reserved_lots=sum(1 for lot in lots if lot.status == LotStatus.RESERVED and not lot.is_expired),
        zero_unit_lots=sum(1 for lot in lots if lot.available_units == 0),
        scorable_lots=sum(1 for lot in lots if lot.is_scorable),
        rejected_records=len(diagnostics)
    )
