"""
Recommendation Agent

Turns scored at-risk lots into ranked transfer recommendations and systemic
priority actions.

Transfers are proposals only. Executing one belongs to the request approval
workflow after a human accepts it.
"""

from lifeline.utils.logging import setup_logger
from lifeline.schemas.inventory import (
    BloodType,
    ComponentType,
    BloodRequest,
    HospitalProfile,
)
from lifeline.schemas.wastage import (
    WastageEngineConfig,
    LotRiskAssessment,
    WastageForecast,
    TransferRecommendation,
    PriorityAction,
    RecommendationSummary,
    RecommendationResult,
    ActionPriority,
    ActionType,
)

import numpy as np
from typing import Dict, Iterable, List, Optional, Tuple
from collections import defaultdict

Pair = Tuple[BloodType, ComponentType]

_BLOOD_TYPE_ORDER = {bt: i for i, bt in enumerate(BloodType)}
_COMPONENT_ORDER = {ct: i for i, ct in enumerate(ComponentType)}


class _Projection:
    """
    Working copy of destination stock and outstanding request units.

    Allocations made for one lot are visible when later lots are placed.
    The caller's HospitalProfile objects are never touched.
    """

    def __init__(self, hospitals: Iterable[HospitalProfile]):
        self.stock: Dict[Tuple[str, BloodType, ComponentType], int] = {}
        self.outstanding: Dict[str, int] = {}

        for hospital in hospitals:
            for level in hospital.stock:
                key = (hospital.hospital_id, level.blood_type, level.component_type)
                self.stock[key] = self.stock.get(key, 0) + level.units
            for request in hospital.requests:
                if request.status.is_open:
                    self.outstanding[request.request_id] = request.units_requested

    def units_on_hand(self, hospital_id: str, pair: Pair) -> int:
        return self.stock.get((hospital_id, pair[0], pair[1]), 0)

    def open_requests(self, hospital: HospitalProfile, pair: Pair) -> List[BloodRequest]:
        return [
            r for r in hospital.open_requests(*pair)
            if self.outstanding.get(r.request_id, 0) > 0
        ]

    def allocate(self, hospital_id: str, pair: Pair, units: int, request_id: Optional[str] = None):
        key = (hospital_id, pair[0], pair[1])
        self.stock[key] = self.stock.get(key, 0) + units
        if request_id is not None:
            self.outstanding[request_id] -= units


class RecommendationAgent:
    """
    Agent responsible for transfer recommendations and priority actions.

    Destination ranking for each lot:
    1. Need tier: zero stock of the pair, then low stock, then well stocked
       (well-stocked hospitals are only candidates if they have an open request)
    2. Most recent open request for the pair
    3. Hospital id

    Lots are placed highest-risk first and may be split across several
    destinations, never beyond their available units.

    Does NOT use LLM - deterministic ranking over explicit thresholds.
    """

    def __init__(self, config: Optional[WastageEngineConfig] = None):
        """
        Initialize Recommendation Agent.

        Args:
            config: Optional engine configuration (transfer and action thresholds)
        """
        self.name = "RecommendationAgent"
        self.logger = setup_logger(self.name)
        self.config = config or WastageEngineConfig()

        self.logger.info(f"Recommendation Agent initialized")
        self.logger.info(f"  Transfer threshold: score >= {self.config.transfer_min_risk_score}")
        self.logger.info(f"  Cluster threshold: > {self.config.cluster_threshold} high-risk lots")

    def execute(
        self,
        assessments: Iterable[LotRiskAssessment],
        hospitals: Optional[Iterable[HospitalProfile]] = None,
        forecast: Optional[WastageForecast] = None
    ) -> RecommendationResult:
        """Alias of generate_recommendations, matching the other agents."""
        return self.generate_recommendations(assessments, hospitals, forecast)

    def generate_recommendations(
        self,
        assessments: Iterable[LotRiskAssessment],
        hospitals: Optional[Iterable[HospitalProfile]] = None,
        forecast: Optional[WastageForecast] = None
    ) -> RecommendationResult:
        """
        Generate transfer recommendations and priority actions.

        Args:
            assessments: Scored lots of the source scope; only at-risk lots
                         are considered for transfers
            hospitals: Candidate destination hospitals (stock and requests)
            forecast: Optional forecast, used for the forecast alert

        Returns:
            RecommendationResult with transfers, actions and summary
        """
        assessments = list(assessments)
        hospitals = sorted(hospitals or [], key=lambda h: h.hospital_id)
        at_risk = [a for a in assessments if a.at_risk and a.available_units > 0]

        self.logger.info(f"Generating recommendations")
        self.logger.info(f"  At-risk lots: {len(at_risk)}")
        self.logger.info(f"  Candidate hospitals: {len(hospitals)}")

        notes = []

        # Step 1: Propose transfers
        if hospitals:
            recommendations = self._propose_transfers(at_risk, hospitals)
        else:
            recommendations = []
            notes.append("No destination hospitals supplied; transfer recommendations skipped")
            self.logger.warning(f"  No destination hospitals supplied, skipping transfers")

        # Step 2: Rank and cap
        recommendations.sort(key=lambda r: (
            -r.priority.rank,
            -r.risk_score,
            r.days_until_expiry,
            r.lot_id,
            r.target_hospital_id,
            r.request_id or ""
        ))
        cap = self.config.max_recommendations
        if cap and len(recommendations) > cap:
            notes.append(f"Showing top {cap} of {len(recommendations)} transfer recommendations")
            recommendations = recommendations[:cap]

        # Step 3: Systemic advisories
        priority_actions = self._generate_priority_actions(
            assessments, at_risk, recommendations, hospitals, forecast
        )

        # Step 4: Summary
        summary = self._generate_summary(at_risk, recommendations, priority_actions)

        result = RecommendationResult(
            transfer_recommendations=recommendations,
            priority_actions=priority_actions,
            summary=summary,
            notes=notes
        )

        self.logger.info(f"Recommendations complete:")
        self.logger.info(f"  Transfer recommendations: {summary.total_recommendations}")
        self.logger.info(f"  Units covered: {summary.estimated_wastage_reduction}")
        self.logger.info(f"  Priority actions: {len(priority_actions)} ({summary.critical_actions} critical)")

        return result

    # =========================
    # TRANSFERS
    # =========================

    def _propose_transfers(
        self,
        at_risk: List[LotRiskAssessment],
        hospitals: List[HospitalProfile]
    ) -> List[TransferRecommendation]:
        """Place eligible lots, highest risk first."""
        projection = _Projection(hospitals)
        recommendations = []

        eligible = [a for a in at_risk if a.risk_score >= self.config.transfer_min_risk_score]
        eligible.sort(key=lambda a: (-a.risk_score, a.days_until_expiry, a.lot_id))

        for lot in eligible:
            pair = (lot.blood_type, lot.component_type)
            remaining = lot.available_units

            for hospital in self._rank_destinations(lot, hospitals, projection):
                if remaining == 0:
                    break

                open_requests = projection.open_requests(hospital, pair)
                if open_requests:
                    for request in open_requests:
                        if remaining == 0:
                            break
                        units = min(remaining, projection.outstanding[request.request_id])
                        reason = (
                            f"{self._display_name(hospital)} has an open request for "
                            f"{request.units_requested} units of {lot.blood_type.value} "
                            f"{lot.component_type.label} ({request.request_date.isoformat()})"
                        )
                        recommendations.append(self._build_recommendation(lot, hospital, units, reason, request))
                        projection.allocate(hospital.hospital_id, pair, units, request.request_id)
                        remaining -= units
                else:
                    on_hand = projection.units_on_hand(hospital.hospital_id, pair)
                    reason = (
                        f"{self._display_name(hospital)} has no {lot.blood_type.value} "
                        f"{lot.component_type.label} in stock"
                        if on_hand == 0 else
                        f"{self._display_name(hospital)} is low on {lot.blood_type.value} "
                        f"{lot.component_type.label} ({on_hand} units)"
                    )
                    recommendations.append(self._build_recommendation(lot, hospital, remaining, reason))
                    projection.allocate(hospital.hospital_id, pair, remaining)
                    remaining = 0

            if remaining == lot.available_units:
                self.logger.info(f"  No destination for lot {lot.lot_id} ({lot.blood_type.value} {lot.component_type.value})")

        return recommendations

    def _rank_destinations(
        self,
        lot: LotRiskAssessment,
        hospitals: List[HospitalProfile],
        projection: _Projection
    ) -> List[HospitalProfile]:
        """Candidate destinations for one lot, best first."""
        pair = (lot.blood_type, lot.component_type)
        ranked = []

        for hospital in hospitals:
            if hospital.hospital_id == lot.hospital_id:
                continue

            on_hand = projection.units_on_hand(hospital.hospital_id, pair)
            open_requests = projection.open_requests(hospital, pair)

            if on_hand == 0:
                need_tier = 0
            elif on_hand <= self.config.low_stock_units:
                need_tier = 1
            else:
                need_tier = 2

            # Well-stocked hospitals only qualify through an open request
            if need_tier == 2 and not open_requests:
                continue

            if open_requests:
                latest = open_requests[0].request_date.toordinal()
                key = (need_tier, 0, -latest, hospital.hospital_id)
            else:
                key = (need_tier, 1, 0, hospital.hospital_id)
            ranked.append((key, hospital))

        ranked.sort(key=lambda item: item[0])
        return [hospital for _, hospital in ranked]

    def _build_recommendation(
        self,
        lot: LotRiskAssessment,
        hospital: HospitalProfile,
        units: int,
        reason: str,
        request: Optional[BloodRequest] = None
    ) -> TransferRecommendation:
        return TransferRecommendation(
            lot_id=lot.lot_id,
            blood_type=lot.blood_type,
            component_type=lot.component_type,
            units=units,
            days_until_expiry=lot.days_until_expiry,
            risk_score=lot.risk_score,
            source_hospital_id=lot.hospital_id,
            target_hospital_id=hospital.hospital_id,
            target_hospital_name=hospital.name,
            request_id=request.request_id if request else None,
            priority=lot.risk_tier.to_priority(),
            impact=f"Prevent {units} units from expiring",
            reason=reason
        )

    @staticmethod
    def _display_name(hospital: HospitalProfile) -> str:
        return hospital.name or hospital.hospital_id

    # =========================
    # PRIORITY ACTIONS
    # =========================

    def _generate_priority_actions(
        self,
        assessments: List[LotRiskAssessment],
        at_risk: List[LotRiskAssessment],
        recommendations: List[TransferRecommendation],
        hospitals: List[HospitalProfile],
        forecast: Optional[WastageForecast]
    ) -> List[PriorityAction]:
        """Detect systemic patterns. Output is ordered by priority, stable within one."""
        cfg = self.config
        actions = []

        # Cluster of high-risk lots for one blood type
        high_risk_by_type: Dict[BloodType, List[LotRiskAssessment]] = defaultdict(list)
        for a in at_risk:
            if a.is_high_risk:
                high_risk_by_type[a.blood_type].append(a)

        for blood_type in sorted(high_risk_by_type, key=_BLOOD_TYPE_ORDER.get):
            lots = high_risk_by_type[blood_type]
            if len(lots) > cfg.cluster_threshold:
                units = sum(a.available_units for a in lots)
                actions.append(PriorityAction(
                    action_type=ActionType.CLUSTER_ALERT,
                    priority=ActionPriority.CRITICAL,
                    title=f"{blood_type.value} expiry cluster",
                    description=(
                        f"{len(lots)} high-risk {blood_type.value} lots ({units} units) "
                        f"exceed the cluster threshold of {cfg.cluster_threshold}"
                    ),
                    action=f"Coordinate network-wide redistribution of {blood_type.value} units",
                    blood_types=[blood_type],
                    component_type=self._single_component(lots),
                    affected_units=units
                ))

        # Units expiring within the urgent window
        for component_type, lots in self._by_component(
            a for a in at_risk if a.days_until_expiry <= cfg.critical_expiry_days
        ):
            units = sum(a.available_units for a in lots)
            actions.append(PriorityAction(
                action_type=ActionType.URGENT_EXPIRY,
                priority=ActionPriority.CRITICAL,
                title=f"Urgent: {component_type.label} expiring within {cfg.critical_expiry_days} days",
                description=f"{units} units across {len(lots)} lots expire within {cfg.critical_expiry_days} days",
                action=f"Prevent {units} units from expiring: transfer or use immediately",
                blood_types=self._blood_types(lots),
                component_type=component_type,
                affected_units=units
            ))

        # Short-horizon forecast above threshold
        if forecast is not None and forecast.horizons:
            shortest = forecast.horizons[0]
            if shortest.predicted_wastage > cfg.forecast_alert_units:
                actions.append(PriorityAction(
                    action_type=ActionType.FORECAST_ALERT,
                    priority=ActionPriority.HIGH,
                    title=f"High {shortest.horizon_days}-day wastage forecast",
                    description=(
                        f"{shortest.predicted_wastage} units predicted to be wasted within "
                        f"{shortest.horizon_days} days (threshold {cfg.forecast_alert_units})"
                    ),
                    action="Review near-expiry stock and accelerate transfers",
                    blood_types=self._blood_types(
                        a for a in at_risk if a.days_until_expiry <= shortest.horizon_days
                    ),
                    affected_units=shortest.predicted_wastage
                ))

        # At-risk units left without a destination
        placed: Dict[str, int] = defaultdict(int)
        for r in recommendations:
            placed[r.lot_id] += r.units

        unmatched = [a for a in at_risk if placed[a.lot_id] < a.available_units]
        for component_type, lots in self._by_component(unmatched):
            units = sum(a.available_units - placed[a.lot_id] for a in lots)
            actions.append(PriorityAction(
                action_type=ActionType.UNMATCHED_NEAR_EXPIRY,
                priority=ActionPriority.HIGH,
                title=f"Near-expiry {component_type.label} without a destination",
                description=(
                    f"{units} units in {len(lots)} lots expire within "
                    f"{cfg.near_expiry_days} days with no matching hospital need"
                ),
                action="Contact partner hospitals or prioritize local use",
                blood_types=self._blood_types(lots),
                component_type=component_type,
                affected_units=units
            ))

        # High stock, low demand
        actions.extend(self._overstock_actions(assessments, hospitals))

        actions.sort(key=lambda a: -a.priority.rank)
        return actions

    def _overstock_actions(
        self,
        assessments: List[LotRiskAssessment],
        hospitals: List[HospitalProfile]
    ) -> List[PriorityAction]:
        cfg = self.config

        stock: Dict[Pair, int] = defaultdict(int)
        for a in assessments:
            stock[(a.blood_type, a.component_type)] += a.available_units

        demand: Dict[Pair, int] = defaultdict(int)
        for hospital in hospitals:
            for request in hospital.requests:
                if request.status.is_open:
                    demand[(request.blood_type, request.component_type)] += request.units_requested

        actions = []
        for pair in sorted(stock, key=lambda p: (_BLOOD_TYPE_ORDER[p[0]], _COMPONENT_ORDER[p[1]])):
            units = stock[pair]
            if units > cfg.overstock_units and demand[pair] < cfg.low_demand_units:
                blood_type, component_type = pair
                actions.append(PriorityAction(
                    action_type=ActionType.OVERSTOCK,
                    priority=ActionPriority.MEDIUM,
                    title=f"Low demand for {blood_type.value} {component_type.label}",
                    description=(
                        f"{units} units in stock against {demand[pair]} units of pending demand"
                    ),
                    action=f"Reduce collection targets for {blood_type.value} {component_type.label}",
                    blood_types=[blood_type],
                    component_type=component_type,
                    affected_units=units
                ))
        return actions

    @staticmethod
    def _by_component(
        assessments: Iterable[LotRiskAssessment]
    ) -> List[Tuple[ComponentType, List[LotRiskAssessment]]]:
        grouped: Dict[ComponentType, List[LotRiskAssessment]] = defaultdict(list)
        for a in assessments:
            grouped[a.component_type].append(a)
        return [(ct, grouped[ct]) for ct in ComponentType if ct in grouped]

    @staticmethod
    def _blood_types(assessments: Iterable[LotRiskAssessment]) -> List[BloodType]:
        return sorted({a.blood_type for a in assessments}, key=_BLOOD_TYPE_ORDER.get)

    @staticmethod
    def _single_component(assessments: List[LotRiskAssessment]) -> Optional[ComponentType]:
        components = {a.component_type for a in assessments}
        return components.pop() if len(components) == 1 else None

    # =========================
    # SUMMARY
    # =========================

    def _generate_summary(
        self,
        at_risk: List[LotRiskAssessment],
        recommendations: List[TransferRecommendation],
        priority_actions: List[PriorityAction]
    ) -> RecommendationSummary:
        """Generate high-level summary of recommendation results."""

        average_risk_score = (
            round(float(np.mean([a.risk_score for a in at_risk])), 1) if at_risk else 0.0
        )

        return RecommendationSummary(
            total_at_risk=sum(a.available_units for a in at_risk),
            high_risk_items=sum(1 for a in at_risk if a.risk_score >= self.config.high_score_threshold),
            average_risk_score=average_risk_score,
            total_recommendations=len(recommendations),
            estimated_wastage_reduction=sum(r.units for r in recommendations),
            critical_actions=sum(1 for a in priority_actions if a.priority == ActionPriority.CRITICAL)
        )
