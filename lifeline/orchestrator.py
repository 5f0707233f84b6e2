"""
Lifeline-AI Orchestrator

Wires a snapshot provider to the wastage engine: fetches the inventory
snapshot and hospital directory, runs the engine for the requested scope,
emits AG-UI messages for each stage and formats a markdown report.
"""

import time
from datetime import date
from typing import Optional

from dotenv import load_dotenv

from lifeline.utils.logging import setup_logger
from lifeline.engine import WastageEngine
from lifeline.schemas.inventory import BloodType, ComponentType
from lifeline.schemas.wastage import (
    WastageEngineConfig,
    WastageReport,
    LotFilter,
    ActionPriority,
)
from lifeline.services.provider import CENTRAL_BANK, SnapshotFetchError, SnapshotProvider
from lifeline.agui_protocol import (
    AGUIMessageHandler,
    SuggestionGenerator,
    AgentStatus,
    FinalResponse,
)

# Load environment variables
load_dotenv()

PRIORITY_ICONS = {
    ActionPriority.CRITICAL: "🚨",
    ActionPriority.HIGH: "⚠️",
    ActionPriority.MEDIUM: "📋",
    ActionPriority.LOW: "ℹ️",
}


class WastageOrchestrator:
    """
    Runs a wastage analysis end to end for one scope.

    Scopes:
    - network (hospital_id None): every lot in the snapshot
    - central blood bank (hospital_id CENTRAL_BANK): lots with no owning hospital
    - hospital (hospital_id set): that hospital's lots as the transfer source
    """

    def __init__(
        self,
        provider: SnapshotProvider,
        config: Optional[WastageEngineConfig] = None,
        enable_agui: bool = True
    ):
        self.logger = setup_logger("WastageOrchestrator")
        self.provider = provider
        self.engine = WastageEngine(config)

        self.enable_agui = enable_agui
        self.agui = AGUIMessageHandler(enable_streaming=enable_agui) if enable_agui else None

        self.logger.info("Wastage orchestrator initialized" + (" with AG-UI protocol" if enable_agui else ""))

    def analyze(
        self,
        hospital_id: Optional[str] = None,
        component_type: Optional[ComponentType] = None,
        blood_type: Optional[BloodType] = None,
        today: Optional[date] = None
    ) -> WastageReport:
        """
        Fetch the snapshot for a scope and run the engine.

        Raises:
            SnapshotFetchError: If the provider cannot supply data
        """
        today = today or date.today()
        lot_filter = LotFilter(
            blood_types=[blood_type] if blood_type else [],
            component_types=[component_type] if component_type else [],
            hospital_ids=[None] if hospital_id == CENTRAL_BANK else []
        )
        source_hospital_id = hospital_id if hospital_id not in (None, CENTRAL_BANK) else None
        scope = self._scope_label(hospital_id, lot_filter)

        # Stage 1: Snapshot
        self._status("SnapshotProvider", f"Fetching inventory snapshot ({scope})", AgentStatus.STARTING)
        try:
            lots = self.provider.fetch_inventory_snapshot(
                hospital_id=hospital_id,
                component_type=component_type
            )
            hospitals = self.provider.fetch_hospital_directory(today=today)
        except SnapshotFetchError as e:
            self.logger.error(f"Snapshot fetch failed: {e}")
            if self.agui:
                self.agui.failed("SnapshotProvider", e)
            raise

        self._result(
            "SnapshotProvider",
            f"{len(lots)} inventory records, {len(hospitals)} partner hospitals",
            {"records": len(lots), "hospitals": len(hospitals)}
        )

        # Stage 2: Engine
        self._status("WastageEngine", "Scoring lots, forecasting wastage and ranking transfers")
        report = self.engine.analyze(
            lots,
            hospitals=hospitals,
            today=today,
            lot_filter=lot_filter,
            source_hospital_id=source_hospital_id,
            scope=scope
        )

        summary = report.summary
        self._result(
            "WastageEngine",
            self._generate_summary(report),
            summary.model_dump(mode="json")
        )
        self._status("WastageEngine", "Analysis complete", AgentStatus.COMPLETED)

        return report

    def run(
        self,
        hospital_id: Optional[str] = None,
        component_type: Optional[ComponentType] = None,
        blood_type: Optional[BloodType] = None,
        today: Optional[date] = None
    ) -> FinalResponse:
        """
        Analyze a scope and wrap the result in an AG-UI final response.
        """
        start_time = time.time()
        if self.agui:
            self.agui.clear()

        report = self.analyze(hospital_id, component_type, blood_type, today)

        handler = self.agui or AGUIMessageHandler(enable_streaming=False)
        suggestions = handler.suggestions(SuggestionGenerator.generate_for_report(report))

        return handler.finalize(
            scope=report.scope,
            summary=self._generate_summary(report),
            suggestions=suggestions,
            report=report.to_payload(),
            execution_time=time.time() - start_time
        )

    def _status(self, agent: str, message: str, status: AgentStatus = AgentStatus.WORKING):
        if self.agui:
            self.agui.status(agent, message, status)

    def _result(self, agent: str, summary: str, details: dict):
        if self.agui:
            self.agui.result(agent, summary, details)

    @staticmethod
    def _scope_label(hospital_id: Optional[str], lot_filter: LotFilter) -> str:
        if hospital_id == CENTRAL_BANK:
            base = "central blood bank"
        elif hospital_id is not None:
            base = f"hospital {hospital_id}"
        else:
            base = "network"

        extra = LotFilter(
            blood_types=lot_filter.blood_types,
            component_types=lot_filter.component_types
        ).label
        return base if extra == "network" else f"{base} / {extra}"

    @staticmethod
    def _generate_summary(report: WastageReport) -> str:
        """One-line human-readable summary"""
        summary = report.summary
        if summary.critical_actions > 0:
            return (
                f"⚠️ URGENT: {summary.critical_actions} critical actions, "
                f"{summary.total_at_risk} units at risk"
            )
        if summary.total_at_risk > 0:
            return (
                f"{summary.total_at_risk} units at risk, "
                f"{summary.total_recommendations} transfers recommended"
            )
        return "No inventory inside the near-expiry window"


def format_report(report: WastageReport, max_rows: int = 10) -> str:
    """
    Render a wastage report as markdown.

    Args:
        report: Engine output
        max_rows: Maximum transfers listed

    Returns:
        Markdown string
    """
    summary = report.summary

    response = f"## 🩸 Wastage Risk Report\n\n"
    response += f"**Scope:** {report.scope}\n"
    response += f"**Analysis Date:** {report.analysis_date.isoformat()}\n\n"

    response += f"### 📊 Summary\n"
    response += f"- Units at risk: {summary.total_at_risk}\n"
    response += f"- High-risk lots: {summary.high_risk_items}\n"
    response += f"- Average risk score: {summary.average_risk_score:.1f}\n"
    response += f"- Transfer recommendations: {summary.total_recommendations}\n"
    response += f"- Units covered by transfers: {summary.estimated_wastage_reduction}\n"
    response += f"- Critical actions: {summary.critical_actions}\n\n"

    response += f"### 📈 Wastage Forecast\n"
    response += f"| Horizon | Lots | Units expiring | Predicted wastage |\n"
    response += f"|---|---|---|---|\n"
    for horizon in report.forecast.horizons:
        response += (
            f"| {horizon.horizon_days} days | {horizon.lot_count} | "
            f"{horizon.units_in_window} | {horizon.predicted_wastage} |\n"
        )
    response += "\n"

    if report.blood_type_groups:
        response += f"### 🧪 At-Risk Inventory by Blood Type\n"
        for group in report.blood_type_groups:
            response += (
                f"- **{group.blood_type.value} {group.component_type.label}**: "
                f"{group.total_at_risk} units in {group.lot_count} lots "
                f"(avg score {group.average_risk_score:.1f})\n"
            )
        response += "\n"

    actions = report.recommendations.priority_actions
    if actions:
        response += f"### 🎯 Priority Actions\n\n"
        for action in actions:
            icon = PRIORITY_ICONS[action.priority]
            response += f"{icon} **{action.title}** ({action.priority.value})\n"
            response += f"   - {action.description}\n"
            response += f"   - Action: {action.action}\n\n"

    transfers = report.recommendations.transfer_recommendations
    if transfers:
        response += f"### 🚚 Transfer Recommendations\n\n"
        for i, rec in enumerate(transfers[:max_rows], 1):
            source = rec.source_hospital_id or "central blood bank"
            target = rec.target_hospital_name or rec.target_hospital_id
            response += (
                f"**{i}. {rec.units} × {rec.blood_type.value} {rec.component_type.label}** "
                f"from {source} to {target} ({rec.priority.value})\n"
            )
            response += f"   - Lot {rec.lot_id}, expires in {rec.days_until_expiry} days, score {rec.risk_score:.1f}\n"
            response += f"   - {rec.impact}. {rec.reason}\n\n"
        if len(transfers) > max_rows:
            response += f"_…and {len(transfers) - max_rows} more_\n\n"
    else:
        response += f"✅ **No transfers recommended.**\n\n"

    if report.notes:
        response += f"### 📝 Notes\n"
        for note in report.notes:
            response += f"- {note}\n"

    return response
