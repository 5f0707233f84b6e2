"""
Wastage Engine

One configuration-parameterized pipeline shared by the admin (network or
central blood bank) and hospital views:

    snapshot -> risk scores -> forecast & aggregates -> recommendations

Stateless: every call recomputes from its own snapshot, so a single engine
instance can be shared between callers and threads.
"""

from lifeline.utils.logging import setup_logger
from lifeline.agents.risk_scoring import RiskScoringAgent
from lifeline.agents.wastage_forecasting import WastageForecastingAgent, AssessmentPredicate
from lifeline.agents.recommendation import RecommendationAgent
from lifeline.schemas.inventory import HospitalProfile, NormalizedSnapshot
from lifeline.schemas.wastage import WastageEngineConfig, WastageReport, LotFilter
from lifeline.services.snapshot import SnapshotRecords, normalize_snapshot

from datetime import date
from typing import Iterable, Optional


class WastageEngine:
    """
    Runs the three wastage agents over one inventory snapshot.
    """

    def __init__(self, config: Optional[WastageEngineConfig] = None):
        self.name = "WastageEngine"
        self.logger = setup_logger(self.name)
        self.config = config or WastageEngineConfig()

        self.risk_agent = RiskScoringAgent(self.config)
        self.forecasting_agent = WastageForecastingAgent(self.config)
        self.recommendation_agent = RecommendationAgent(self.config)

    def analyze(
        self,
        lots: Optional[SnapshotRecords],
        hospitals: Optional[Iterable[HospitalProfile]] = None,
        today: Optional[date] = None,
        lot_filter: Optional[AssessmentPredicate] = None,
        source_hospital_id: Optional[str] = None,
        scope: Optional[str] = None
    ) -> WastageReport:
        """
        Run the full pipeline.

        Args:
            lots: Raw snapshot records or an already NormalizedSnapshot
            hospitals: Candidate destination hospitals for transfers
            today: Reference date for the whole call (default: today's date,
                   read once here)
            lot_filter: Optional predicate (e.g. LotFilter) scoping the analysis
            source_hospital_id: Restrict the analysis to one hospital's lots
            scope: Label for the report (derived from the filters if omitted)

        Returns:
            WastageReport

        Raises:
            ValueError: If the snapshot is None
        """
        if lots is None:
            raise ValueError("Inventory snapshot is None; surface fetch failures before invoking the engine")

        # Step 1: Normalize at the boundary
        if isinstance(lots, NormalizedSnapshot):
            snapshot = lots
        else:
            snapshot = normalize_snapshot(lots, today or date.today(), self.config.timezone)
        today = snapshot.reference_date

        if scope is None:
            scope = self._scope_label(lot_filter, source_hospital_id)

        self.logger.info(f"Analyzing wastage risk ({scope}) as of {today.isoformat()}")
        self.logger.info(f"  Lots: {snapshot.stats.total_lots} ({snapshot.stats.scorable_lots} scorable)")

        # Step 2: Score every scorable lot, then scope
        assessments = self.risk_agent.execute(snapshot.lots)
        if source_hospital_id is not None:
            assessments = [a for a in assessments if a.hospital_id == source_hospital_id]
        if lot_filter is not None:
            assessments = [a for a in assessments if lot_filter(a)]

        # Step 3: Forecast and aggregate
        forecast, groups = self.forecasting_agent.execute(assessments)

        # Step 4: Recommendations and priority actions
        recommendations = self.recommendation_agent.generate_recommendations(
            assessments,
            hospitals=hospitals,
            forecast=forecast
        )

        notes = list(recommendations.notes)
        if snapshot.diagnostics:
            notes.append(f"{len(snapshot.diagnostics)} records rejected during normalization")
        if snapshot.stats.expired_lots:
            notes.append(
                f"{snapshot.stats.expired_lots} expired lots ({snapshot.stats.expired_units} units) "
                f"excluded from risk computation"
            )

        report = WastageReport(
            analysis_date=today,
            scope=scope,
            source_hospital_id=source_hospital_id,
            risk_assessments=assessments,
            forecast=forecast,
            blood_type_groups=groups,
            recommendations=recommendations,
            diagnostics=snapshot.diagnostics,
            stats=snapshot.stats,
            notes=notes
        )

        self.logger.info(f"Analysis complete:")
        self.logger.info(f"  At-risk units: {report.summary.total_at_risk}")
        self.logger.info(f"  Transfers: {report.summary.total_recommendations}")
        self.logger.info(f"  Critical actions: {report.summary.critical_actions}")

        return report

    @staticmethod
    def _scope_label(
        lot_filter: Optional[AssessmentPredicate],
        source_hospital_id: Optional[str]
    ) -> str:
        if source_hospital_id is not None:
            label = f"hospital {source_hospital_id}"
            if isinstance(lot_filter, LotFilter) and lot_filter.label != "network":
                label += f" / {lot_filter.label}"
            return label
        if isinstance(lot_filter, LotFilter):
            return lot_filter.label
        return "network" if lot_filter is None else "custom"
