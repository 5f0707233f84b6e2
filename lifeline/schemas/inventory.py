"""
Inventory Schemas

Data structures for blood inventory lots, partner hospitals and their requests.
Every record the engine consumes is normalized into these models first.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date
from enum import Enum


class BloodType(str, Enum):
    """ABO/Rh blood group of a lot or request."""
    O_POS = "O+"
    O_NEG = "O-"
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"


class ComponentType(str, Enum):
    """Blood product component. Drives the shelf-life window."""
    WHOLE_BLOOD = "whole_blood"
    PLATELETS = "platelets"
    PLASMA = "plasma"

    @property
    def label(self) -> str:
        """Human-readable component name."""
        return self.value.replace("_", " ").title()


class LotStatus(str, Enum):
    """Stored or derived status of an inventory lot."""
    AVAILABLE = "available"
    NEAR_EXPIRY = "near_expiry"  # Display-only in the backend
    EXPIRED = "expired"
    RESERVED = "reserved"  # Committed to a request, not free stock


class RequestStatus(str, Enum):
    """Lifecycle of a hospital blood request."""
    PENDING = "pending"
    APPROVED = "approved"
    PARTIALLY_FULFILLED = "partially_fulfilled"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        """Request still waiting for units."""
        return self in (
            RequestStatus.PENDING,
            RequestStatus.APPROVED,
            RequestStatus.PARTIALLY_FULFILLED,
        )


class DiagnosticReason(str, Enum):
    """Why a snapshot record was rejected at the boundary."""
    MISSING_IDENTIFIER = "missing_identifier"
    NEGATIVE_UNITS = "negative_units"
    INVALID_UNITS = "invalid_units"  # Not a whole number
    MISSING_EXPIRATION = "missing_expiration"
    INVALID_EXPIRATION = "invalid_expiration"
    UNKNOWN_BLOOD_TYPE = "unknown_blood_type"
    UNKNOWN_COMPONENT_TYPE = "unknown_component_type"


# =========================
# LOTS
# =========================

class InventoryLot(BaseModel):
    """
    One unit-batch of a blood product, in canonical form.

    `days_until_expiry` is computed once at the snapshot boundary against the
    invocation's reference date; it is None only for lots stored as expired
    without an expiration date.
    """

    lot_id: str = Field(..., description="Unique lot identifier")
    hospital_id: Optional[str] = Field(None, description="Owning hospital (None = central blood bank)")

    blood_type: BloodType = Field(..., description="Blood group")
    component_type: ComponentType = Field(ComponentType.WHOLE_BLOOD, description="Blood product component")

    available_units: int = Field(..., ge=0, description="Units currently available")
    expiration_date: Optional[date] = Field(None, description="Calendar expiration date")
    days_until_expiry: Optional[int] = Field(None, description="Calendar days from the reference date to expiration (0 = expires today)")
    status: LotStatus = Field(LotStatus.AVAILABLE, description="Stored status label")

    @property
    def is_expired(self) -> bool:
        """Expired by label or by date. Both conditions mean the same thing."""
        if self.status == LotStatus.EXPIRED:
            return True
        return self.days_until_expiry is None or self.days_until_expiry <= 0

    @property
    def is_scorable(self) -> bool:
        """Lot can enter forward-looking risk computation."""
        return (
            not self.is_expired
            and self.status != LotStatus.RESERVED
            and self.available_units > 0
        )


class LotDiagnostic(BaseModel):
    """A snapshot record rejected from scoring."""

    lot_id: Optional[str] = Field(None, description="Identifier of the rejected record, if any")
    reason: DiagnosticReason = Field(..., description="Rejection reason")
    detail: str = Field("", description="Offending value or context")


class SnapshotStats(BaseModel):
    """Raw inventory totals for a snapshot, before any risk filtering."""

    total_records: int = Field(0, description="Records received")
    total_lots: int = Field(0, description="Records accepted as lots")
    total_units: int = Field(0, description="Units across accepted lots")

    expired_lots: int = Field(0, description="Lots expired by label or date")
    expired_units: int = Field(0, description="Units in expired lots")
    reserved_lots: int = Field(0, description="Lots reserved for requests")
    zero_unit_lots: int = Field(0, description="Lots with no available units")
    scorable_lots: int = Field(0, description="Lots eligible for risk scoring")

    rejected_records: int = Field(0, description="Records rejected with a diagnostic")


class NormalizedSnapshot(BaseModel):
    """Output of the snapshot boundary: canonical lots plus diagnostics."""

    reference_date: date = Field(..., description="The 'today' every lot was measured against")
    lots: List[InventoryLot] = Field(default_factory=list)
    diagnostics: List[LotDiagnostic] = Field(default_factory=list)
    stats: SnapshotStats = Field(default_factory=SnapshotStats)

    def scorable_lots(self) -> List[InventoryLot]:
        """Lots eligible for risk scoring."""
        return [lot for lot in self.lots if lot.is_scorable]


# =========================
# HOSPITALS & REQUESTS
# =========================

class StockLevel(BaseModel):
    """Units on hand at a hospital for one blood type/component pair."""

    blood_type: BloodType
    component_type: ComponentType = ComponentType.WHOLE_BLOOD
    units: int = Field(0, ge=0)


class BloodRequest(BaseModel):
    """A hospital's request for blood units."""

    request_id: str = Field(..., description="Request identifier")
    hospital_id: str = Field(..., description="Requesting hospital")
    blood_type: BloodType
    component_type: ComponentType = ComponentType.WHOLE_BLOOD
    units_requested: int = Field(..., ge=0)
    request_date: date
    status: RequestStatus = RequestStatus.PENDING


class HospitalProfile(BaseModel):
    """
    A candidate destination hospital: current stock and recent requests.
    """

    hospital_id: str = Field(..., description="Hospital identifier")
    name: str = Field("", description="Hospital display name")
    stock: List[StockLevel] = Field(default_factory=list)
    requests: List[BloodRequest] = Field(default_factory=list)

    def units_on_hand(self, blood_type: BloodType, component_type: ComponentType) -> int:
        """Units in stock for one pair (0 when the pair is absent)."""
        return sum(
            level.units for level in self.stock
            if level.blood_type == blood_type and level.component_type == component_type
        )

    def open_requests(self, blood_type: BloodType, component_type: ComponentType) -> List[BloodRequest]:
        """Unfulfilled requests for one pair, most recent first."""
        matching = [
            r for r in self.requests
            if r.status.is_open
            and r.blood_type == blood_type
            and r.component_type == component_type
            and r.units_requested > 0
        ]
        return sorted(matching, key=lambda r: (r.request_date, r.request_id), reverse=True)
