"""
Wastage Schemas

Data structures for spoilage risk scoring, wastage forecasting and
transfer recommendations.

Everything here is derived: recomputed from an inventory snapshot on every
invocation and never persisted by the engine.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Any, Dict, List, Optional
from datetime import date
from enum import Enum
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import json

from lifeline.schemas.inventory import (
    BloodType,
    ComponentType,
    LotDiagnostic,
    SnapshotStats,
)


class RiskTier(str, Enum):
    """Spoilage risk tier of a scored lot."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    def to_priority(self) -> "ActionPriority":
        """Recommendation priority inherited from the source lot's tier."""
        return ActionPriority(self.value)


class ActionPriority(str, Enum):
    """Priority level for transfers and advisories."""
    CRITICAL = "critical"  # Act today
    HIGH = "high"  # Act within the near-expiry window
    MEDIUM = "medium"  # Plan a transfer
    LOW = "low"  # Monitor

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    ActionPriority.CRITICAL: 4,
    ActionPriority.HIGH: 3,
    ActionPriority.MEDIUM: 2,
    ActionPriority.LOW: 1,
}


class ActionType(str, Enum):
    """Systemic pattern behind a priority action."""
    CLUSTER_ALERT = "cluster_alert"  # Many high-risk lots of one blood type
    URGENT_EXPIRY = "urgent_expiry"  # Units expiring within days
    FORECAST_ALERT = "forecast_alert"  # Short-horizon wastage above threshold
    UNMATCHED_NEAR_EXPIRY = "unmatched_near_expiry"  # No destination found
    OVERSTOCK = "overstock"  # High stock, low demand


# =========================
# CONFIGURATION
# =========================

def _default_shelf_life() -> Dict[ComponentType, int]:
    return {
        ComponentType.WHOLE_BLOOD: 42,
        ComponentType.PLATELETS: 5,
        ComponentType.PLASMA: 365,  # Frozen
    }


class WastageEngineConfig(BaseModel):
    """
    Configuration for the wastage risk engine.

    The wastage-rate factor and curve parameters are operational settings,
    not clinical constants; tune them from local wastage history.
    """

    # Risk scoring
    shelf_life_days: Dict[ComponentType, int] = Field(
        default_factory=_default_shelf_life,
        description="Reference shelf-life window per component (days)"
    )
    baseline_component: ComponentType = Field(
        ComponentType.WHOLE_BLOOD,
        description="Component whose shelf life anchors the day scale"
    )
    risk_horizon_days: int = Field(
        30, gt=0,
        description="Scaled days at or beyond which expiry pressure is zero"
    )
    risk_curve_exponent: float = Field(1.5, gt=0, description="Curvature of the risk curve")
    volume_weight: float = Field(
        0.2, ge=0, le=1,
        description="Maximum score reduction applied to very small lots"
    )
    volume_saturation_units: int = Field(
        20, gt=0,
        description="Lot size at which volume stops reducing risk"
    )

    # At-risk classification and forecasting
    near_expiry_days: int = Field(7, gt=0, description="Window classifying a lot as at risk (high scores also count)")
    forecast_horizons: List[int] = Field(
        default_factory=lambda: [7, 14, 30],
        description="Forecast windows (days)"
    )
    wastage_rate_factor: float = Field(
        0.15, ge=0, le=1,
        description="Share of at-risk units historically not redistributed in time"
    )

    # Tier thresholds
    critical_score_threshold: float = Field(85.0, ge=0, le=100)
    high_score_threshold: float = Field(70.0, ge=0, le=100)
    medium_score_threshold: float = Field(50.0, ge=0, le=100)

    # Transfers
    transfer_min_risk_score: float = Field(
        50.0, ge=0, le=100,
        description="Minimum risk score for a lot to be proposed for transfer"
    )
    low_stock_units: int = Field(
        5, ge=0,
        description="Destination stock at or below this is treated as low"
    )
    max_recommendations: int = Field(20, ge=0, description="Cap on transfer recommendations (0 = no cap)")

    # Priority action triggers
    cluster_threshold: int = Field(
        3, ge=0,
        description="High-risk lots per blood type above which a cluster alert fires"
    )
    forecast_alert_units: int = Field(
        10, ge=0,
        description="7-day predicted wastage above which a forecast alert fires"
    )
    critical_expiry_days: int = Field(3, gt=0, description="Expiry window for urgent alerts")
    overstock_units: int = Field(30, ge=0, description="Stock of a pair above which overstock is checked")
    low_demand_units: int = Field(5, ge=0, description="Pending demand below which a pair is low-demand")

    # Snapshot
    timezone: Optional[str] = Field(
        None,
        description="IANA zone for reading expirations that carry a UTC offset (None = UTC)"
    )

    @field_validator("shelf_life_days")
    @classmethod
    def _every_component_has_shelf_life(cls, value: Dict[ComponentType, int]) -> Dict[ComponentType, int]:
        missing = [c.value for c in ComponentType if c not in value]
        if missing:
            raise ValueError(f"shelf_life_days missing components: {missing}")
        for component, days in value.items():
            if days <= 0:
                raise ValueError(f"shelf life for {component.value} must be positive, got {days}")
        return value

    @field_validator("forecast_horizons")
    @classmethod
    def _horizons_positive_and_sorted(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("forecast_horizons must not be empty")
        if any(h <= 0 for h in value):
            raise ValueError(f"forecast horizons must be positive, got {value}")
        return sorted(set(value))

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone {value!r}")
        return value

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "WastageEngineConfig":
        if not (self.medium_score_threshold <= self.high_score_threshold <= self.critical_score_threshold):
            raise ValueError(
                "score thresholds must satisfy medium <= high <= critical "
                f"(got {self.medium_score_threshold}, {self.high_score_threshold}, "
                f"{self.critical_score_threshold})"
            )
        return self

    @classmethod
    def from_file(cls, path: Path) -> "WastageEngineConfig":
        """
        Load overrides from a JSON file; unspecified fields keep defaults.

        A partial shelf_life_days (e.g. {"platelets": 7}) is merged over the
        default shelf lives instead of replacing them.
        """
        with open(path, encoding="utf-8") as f:
            overrides = json.load(f)

        shelf_life = overrides.get("shelf_life_days")
        if isinstance(shelf_life, dict):
            merged = {component.value: days for component, days in _default_shelf_life().items()}
            merged.update(shelf_life)
            overrides["shelf_life_days"] = merged

        return cls(**overrides)


# =========================
# RISK & FORECAST
# =========================

class LotRiskAssessment(BaseModel):
    """
    Spoilage risk for a single scorable lot.
    """

    lot_id: str
    hospital_id: Optional[str] = None
    blood_type: BloodType
    component_type: ComponentType
    available_units: int
    expiration_date: Optional[date] = None
    days_until_expiry: int

    risk_score: float = Field(..., ge=0, le=100, description="Spoilage risk (0-100)")
    risk_tier: RiskTier
    at_risk: bool = Field(..., description="Within the near-expiry window or scored high or critical")

    @property
    def is_high_risk(self) -> bool:
        return self.risk_tier in (RiskTier.CRITICAL, RiskTier.HIGH)


class LotFilter(BaseModel):
    """
    Scope filter over risk assessments.

    Empty lists match everything. Instances are callable, so a filter can be
    passed anywhere a plain predicate is accepted.
    """

    blood_types: List[BloodType] = Field(default_factory=list)
    component_types: List[ComponentType] = Field(default_factory=list)
    hospital_ids: List[Optional[str]] = Field(
        default_factory=list,
        description="Owning hospitals to keep (None selects central blood bank lots)"
    )

    def __call__(self, assessment: LotRiskAssessment) -> bool:
        if self.blood_types and assessment.blood_type not in self.blood_types:
            return False
        if self.component_types and assessment.component_type not in self.component_types:
            return False
        if self.hospital_ids and assessment.hospital_id not in self.hospital_ids:
            return False
        return True

    @property
    def label(self) -> str:
        """Short description used in report scopes."""
        parts = []
        if self.hospital_ids:
            parts.append("hospital " + ", ".join(h or "central" for h in self.hospital_ids))
        if self.blood_types:
            parts.append(", ".join(b.value for b in self.blood_types))
        if self.component_types:
            parts.append(", ".join(c.label for c in self.component_types))
        return " / ".join(parts) or "network"


class HorizonForecast(BaseModel):
    """Predicted wastage for one forecast window."""

    horizon_days: int
    lot_count: int = Field(0, description="Lots expiring within the window")
    units_in_window: int = Field(0, description="Units expiring within the window")
    predicted_wastage: int = Field(0, ge=0, description="Units predicted to be wasted")


class WastageForecast(BaseModel):
    """
    Aggregate wastage forecast over fixed horizons.
    """

    wastage_rate_factor: float
    horizons: List[HorizonForecast] = Field(default_factory=list)

    def predicted_wastage(self, horizon_days: int) -> int:
        """Predicted wasted units within `horizon_days`."""
        for horizon in self.horizons:
            if horizon.horizon_days == horizon_days:
                return horizon.predicted_wastage
        raise ValueError(f"No forecast for a {horizon_days}-day horizon")


class BloodTypeRiskGroup(BaseModel):
    """At-risk units aggregated by (blood type, component)."""

    blood_type: BloodType
    component_type: ComponentType
    total_at_risk: int = Field(0, description="At-risk units in this group")
    high_risk_units: int = Field(0, description="Units in high-risk lots")
    average_risk_score: float = Field(0.0, ge=0, le=100)
    lot_count: int = 0


# =========================
# RECOMMENDATIONS
# =========================

class TransferRecommendation(BaseModel):
    """
    A proposed transfer of at-risk units to another hospital.

    Proposals only; executing a transfer is the approval workflow's job.
    """

    lot_id: str
    blood_type: BloodType
    component_type: ComponentType
    units: int = Field(..., gt=0, description="Units proposed for transfer")
    days_until_expiry: int
    risk_score: float = Field(..., ge=0, le=100)

    source_hospital_id: Optional[str] = Field(None, description="Current owner (None = central blood bank)")
    target_hospital_id: str
    target_hospital_name: str = ""
    request_id: Optional[str] = Field(None, description="Open request this transfer would fill")

    priority: ActionPriority
    impact: str = Field(..., description="Estimated units saved from wastage")
    reason: str = ""


class PriorityAction(BaseModel):
    """
    A systemic advisory, one per detected pattern.
    """

    action_type: ActionType
    priority: ActionPriority
    title: str
    description: str
    action: str = Field(..., description="Recommended response")
    blood_types: List[BloodType] = Field(default_factory=list)
    component_type: Optional[ComponentType] = None
    affected_units: int = 0


class RecommendationSummary(BaseModel):
    """
    High-level summary of recommendation results.
    """

    total_at_risk: int = Field(0, description="Units in at-risk lots")
    high_risk_items: int = Field(0, description="At-risk lots with a high or critical tier")
    average_risk_score: float = Field(0.0, ge=0, le=100, description="Mean score over at-risk lots")
    total_recommendations: int = Field(0, description="Transfer recommendations returned")
    estimated_wastage_reduction: int = Field(0, description="Units covered by recommendations")
    critical_actions: int = Field(0, description="Priority actions at critical priority")


class RecommendationResult(BaseModel):
    """
    Output of the RecommendationAgent.
    """

    transfer_recommendations: List[TransferRecommendation] = Field(default_factory=list)
    priority_actions: List[PriorityAction] = Field(default_factory=list)
    summary: RecommendationSummary = Field(default_factory=RecommendationSummary)
    notes: List[str] = Field(default_factory=list)

    def get_recommendations_for_lot(self, lot_id: str) -> List[TransferRecommendation]:
        """All proposed transfers drawing on one lot."""
        return [r for r in self.transfer_recommendations if r.lot_id == lot_id]

    def get_actions_by_priority(self, priority: ActionPriority) -> List[PriorityAction]:
        """All advisories at one priority."""
        return [a for a in self.priority_actions if a.priority == priority]


class WastageReport(BaseModel):
    """
    Complete engine output for one invocation.

    This is the main output from the WastageEngine.
    """

    analysis_date: date = Field(..., description="Reference 'today' for the whole run")
    scope: str = Field("network", description="Label of the inventory scope analysed")
    source_hospital_id: Optional[str] = None

    risk_assessments: List[LotRiskAssessment] = Field(default_factory=list)
    forecast: WastageForecast
    blood_type_groups: List[BloodTypeRiskGroup] = Field(default_factory=list)
    recommendations: RecommendationResult = Field(default_factory=RecommendationResult)

    diagnostics: List[LotDiagnostic] = Field(default_factory=list)
    stats: SnapshotStats = Field(default_factory=SnapshotStats)
    notes: List[str] = Field(default_factory=list)

    @property
    def summary(self) -> RecommendationSummary:
        return self.recommendations.summary

    def at_risk_assessments(self) -> List[LotRiskAssessment]:
        """Scored lots classified as at risk."""
        return [a for a in self.risk_assessments if a.at_risk]

    def to_payload(self) -> Dict[str, Any]:
        """JSON-compatible dict for the presentation layer."""
        return self.model_dump(mode="json")
