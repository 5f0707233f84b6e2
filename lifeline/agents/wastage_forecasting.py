"""
Wastage Forecasting Agent

Forecasts how many at-risk units will be wasted over fixed horizons and
aggregates at-risk inventory by blood type and component.

Works on risk assessments, so callers can rescope a forecast (one component,
one blood type) without re-deriving the underlying scores.
"""

from lifeline.utils.logging import setup_logger
from lifeline.schemas.wastage import (
    WastageEngineConfig,
    LotRiskAssessment,
    WastageForecast,
    HorizonForecast,
    BloodTypeRiskGroup,
)
from lifeline.schemas.inventory import BloodType, ComponentType

import numpy as np
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from collections import defaultdict
import math

AssessmentPredicate = Callable[[LotRiskAssessment], bool]

_BLOOD_TYPE_ORDER = {bt: i for i, bt in enumerate(BloodType)}
_COMPONENT_ORDER = {ct: i for i, ct in enumerate(ComponentType)}


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (values are non-negative)."""
    return int(math.floor(value + 0.5))


class WastageForecastingAgent:
    """
    Agent responsible for wastage forecasts and at-risk aggregation.

    Predicted wastage for a horizon h sums, over lots with
    0 < days_until_expiry <= h:

        round(available_units * risk_score / 100 * wastage_rate_factor)

    Rounding is applied per lot so the total is reproducible.

    Does NOT use LLM - pure arithmetic over the scored snapshot.
    """

    def __init__(self, config: Optional[WastageEngineConfig] = None):
        """
        Initialize Wastage Forecasting Agent.

        Args:
            config: Optional engine configuration (horizons, wastage rate)
        """
        self.name = "WastageForecastingAgent"
        self.logger = setup_logger(self.name)
        self.config = config or WastageEngineConfig()

        self.logger.info(f"Wastage Forecasting Agent initialized")
        self.logger.info(f"  Horizons: {self.config.forecast_horizons} days")
        self.logger.info(f"  Wastage rate factor: {self.config.wastage_rate_factor:.0%}")

    def execute(
        self,
        assessments: Iterable[LotRiskAssessment],
        predicate: Optional[AssessmentPredicate] = None
    ) -> Tuple[WastageForecast, List[BloodTypeRiskGroup]]:
        """
        Build the forecast and the blood-type aggregation in one pass.

        Args:
            assessments: Scored lots
            predicate: Optional filter applied before aggregation

        Returns:
            (WastageForecast, list of BloodTypeRiskGroup)
        """
        assessments = list(assessments)
        self.logger.info(f"Forecasting wastage for {len(assessments)} scored lots")

        forecast = self.build_forecast(assessments, predicate=predicate)
        groups = self.aggregate_by_blood_type(assessments, predicate=predicate)

        self.logger.info(f"Forecast complete:")
        for horizon in forecast.horizons:
            self.logger.info(
                f"  {horizon.horizon_days:>3}d: {horizon.predicted_wastage} units predicted "
                f"({horizon.units_in_window} units in {horizon.lot_count} lots)"
            )
        self.logger.info(f"  At-risk groups: {len(groups)}")

        return forecast, groups

    def build_forecast(
        self,
        assessments: Iterable[LotRiskAssessment],
        horizons: Optional[List[int]] = None,
        predicate: Optional[AssessmentPredicate] = None
    ) -> WastageForecast:
        """
        Predicted wastage per horizon.

        Args:
            assessments: Scored lots
            horizons: Windows in days (default: configured horizons)
            predicate: Optional filter (e.g. a LotFilter for one component)

        Returns:
            WastageForecast with one entry per horizon, shortest first
        """
        horizons = sorted(set(horizons)) if horizons else self.config.forecast_horizons
        selected = self._select(assessments, predicate)

        # Per-lot contribution is independent of the horizon
        contributions = [
            (a, round_half_up(a.available_units * a.risk_score / 100 * self.config.wastage_rate_factor))
            for a in selected
        ]

        horizon_forecasts = []
        for h in horizons:
            in_window = [(a, wasted) for a, wasted in contributions if 0 < a.days_until_expiry <= h]
            horizon_forecasts.append(HorizonForecast(
                horizon_days=h,
                lot_count=len(in_window),
                units_in_window=sum(a.available_units for a, _ in in_window),
                predicted_wastage=sum(wasted for _, wasted in in_window)
            ))

        return WastageForecast(
            wastage_rate_factor=self.config.wastage_rate_factor,
            horizons=horizon_forecasts
        )

    def aggregate_by_blood_type(
        self,
        assessments: Iterable[LotRiskAssessment],
        predicate: Optional[AssessmentPredicate] = None
    ) -> List[BloodTypeRiskGroup]:
        """
        Sum at-risk units per (blood type, component) pair.

        Only at-risk lots are counted.

        Returns:
            List of BloodTypeRiskGroup ordered by blood type, then component
        """
        grouped: Dict[Tuple[BloodType, ComponentType], List[LotRiskAssessment]] = defaultdict(list)

        for a in self._select(assessments, predicate):
            if a.at_risk:
                grouped[(a.blood_type, a.component_type)].append(a)

        groups = []
        for (blood_type, component_type), members in grouped.items():
            groups.append(BloodTypeRiskGroup(
                blood_type=blood_type,
                component_type=component_type,
                total_at_risk=sum(a.available_units for a in members),
                high_risk_units=sum(a.available_units for a in members if a.is_high_risk),
                average_risk_score=round(float(np.mean([a.risk_score for a in members])), 1),
                lot_count=len(members)
            ))

        groups.sort(key=lambda g: (_BLOOD_TYPE_ORDER[g.blood_type], _COMPONENT_ORDER[g.component_type]))
        return groups

    def _select(
        self,
        assessments: Iterable[LotRiskAssessment],
        predicate: Optional[AssessmentPredicate]
    ) -> List[LotRiskAssessment]:
        """Apply the optional predicate and drop empty lots."""
        return [
            a for a in assessments
            if a.available_units > 0 and (predicate is None or predicate(a))
        ]
