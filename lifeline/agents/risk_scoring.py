"""
Risk Scoring Agent

Scores each inventory lot's spoilage risk from its component type, days until
expiry and available units, and classifies it into a risk tier.

The score is a pure function of (component_type, days_until_expiry,
available_units): identical inputs always score identically.
"""

from lifeline.utils.logging import setup_logger
from lifeline.schemas.inventory import InventoryLot, ComponentType
from lifeline.schemas.wastage import (
    WastageEngineConfig,
    LotRiskAssessment,
    RiskTier,
)

from typing import Iterable, List, Optional


class RiskScoringAgent:
    """
    Agent responsible for per-lot spoilage risk.

    Days until expiry are first rescaled by the component's shelf life
    relative to the baseline component, so a day of platelet life counts for
    far more than a day of whole-blood life. The rescaled days are mapped
    through a decreasing curve to 0-100, then damped slightly for very small
    lots.

    Does NOT use LLM - rule-based scoring.
    """

    def __init__(self, config: Optional[WastageEngineConfig] = None):
        """
        Initialize Risk Scoring Agent.

        Args:
            config: Optional engine configuration (shelf lives, curve, tiers)
        """
        self.name = "RiskScoringAgent"
        self.logger = setup_logger(self.name)
        self.config = config or WastageEngineConfig()

        self.logger.info(f"Risk Scoring Agent initialized")
        self.logger.info(f"  Near-expiry window: {self.config.near_expiry_days} days")
        self.logger.info(
            f"  Tiers: critical >= {self.config.critical_score_threshold}, "
            f"high >= {self.config.high_score_threshold}, "
            f"medium >= {self.config.medium_score_threshold}"
        )

    def score(
        self,
        component_type: ComponentType,
        days_until_expiry: int,
        available_units: int
    ) -> float:
        """
        Spoilage risk score in [0, 100], rounded to one decimal.

        Args:
            component_type: Blood product component
            days_until_expiry: Whole days left (must be > 0)
            available_units: Units in the lot (must be > 0)
        """
        if days_until_expiry <= 0:
            raise ValueError(f"Cannot score an expired lot (days_until_expiry={days_until_expiry})")
        if available_units <= 0:
            raise ValueError(f"Cannot score an empty lot (available_units={available_units})")

        cfg = self.config
        shelf_ratio = cfg.shelf_life_days[component_type] / cfg.shelf_life_days[cfg.baseline_component]
        scaled_days = days_until_expiry * shelf_ratio

        remaining = 1 - min(1.0, scaled_days / cfg.risk_horizon_days)
        expiry_pressure = remaining ** cfg.risk_curve_exponent

        volume_fill = min(1.0, available_units / cfg.volume_saturation_units)
        volume_multiplier = 1 - cfg.volume_weight * (1 - volume_fill)

        raw = 100 * expiry_pressure * volume_multiplier
        return round(max(0.0, min(100.0, raw)), 1)

    def score_lot(self, lot: InventoryLot) -> float:
        """Score a lot. Callers must filter out expired, reserved and empty lots first."""
        if not lot.is_scorable:
            raise ValueError(f"Lot {lot.lot_id} is not scorable (status={lot.status.value})")
        return self.score(lot.component_type, lot.days_until_expiry, lot.available_units)

    def classify(self, risk_score: float) -> RiskTier:
        """Map a score to its tier using the configured thresholds."""
        if risk_score >= self.config.critical_score_threshold:
            return RiskTier.CRITICAL
        if risk_score >= self.config.high_score_threshold:
            return RiskTier.HIGH
        if risk_score >= self.config.medium_score_threshold:
            return RiskTier.MEDIUM
        return RiskTier.LOW

    def is_at_risk(self, days_until_expiry: int, risk_score: Optional[float] = None) -> bool:
        """
        Lot falls inside the near-expiry window, or scores high enough that its
        component's shorter shelf life puts it in one (e.g. platelets).
        """
        if days_until_expiry is None or days_until_expiry <= 0:
            return False
        if days_until_expiry <= self.config.near_expiry_days:
            return True
        return risk_score is not None and risk_score >= self.config.high_score_threshold

    def assess(self, lot: InventoryLot) -> LotRiskAssessment:
        """Score and classify a single lot."""
        risk_score = self.score_lot(lot)

        return LotRiskAssessment(
            lot_id=lot.lot_id,
            hospital_id=lot.hospital_id,
            blood_type=lot.blood_type,
            component_type=lot.component_type,
            available_units=lot.available_units,
            expiration_date=lot.expiration_date,
            days_until_expiry=lot.days_until_expiry,
            risk_score=risk_score,
            risk_tier=self.classify(risk_score),
            at_risk=self.is_at_risk(lot.days_until_expiry, risk_score)
        )

    def execute(self, lots: Iterable[InventoryLot]) -> List[LotRiskAssessment]:
        """
        Score every scorable lot.

        Expired, reserved and zero-unit lots are skipped. The result is
        ordered by score (highest first), then days until expiry, then lot id.

        Args:
            lots: Normalized inventory lots

        Returns:
            List of LotRiskAssessment
        """
        lots = list(lots)
        self.logger.info(f"Scoring {len(lots)} lots")

        # Step 1: Drop lots with no forward-looking risk
        scorable = [lot for lot in lots if lot.is_scorable]
        skipped = len(lots) - len(scorable)
        if skipped:
            self.logger.info(f"  Skipped {skipped} expired, reserved or empty lots")

        # Step 2: Score and classify
        assessments = [self.assess(lot) for lot in scorable]
        assessments.sort(key=lambda a: (-a.risk_score, a.days_until_expiry, a.lot_id))

        at_risk = [a for a in assessments if a.at_risk]
        high_risk = [a for a in at_risk if a.is_high_risk]

        self.logger.info(f"Risk scoring complete:")
        self.logger.info(f"  Scored lots: {len(assessments)}")
        self.logger.info(f"  At-risk lots: {len(at_risk)}")
        self.logger.info(f"  High-risk lots: {len(high_risk)}")

        return assessments
