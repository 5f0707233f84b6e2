"""
AG-UI Protocol Implementation

Agent-User Interface (AG-UI) messages emitted while the wastage pipeline runs:
status updates per stage, result summaries, and suggested follow-up actions
derived from the report.
"""

from datetime import datetime
from typing import List, Dict, Any, Optional, Callable
from enum import Enum
from dataclasses import dataclass, field
import json

from lifeline.schemas.inventory import ComponentType
from lifeline.schemas.wastage import WastageReport, ActionPriority, ActionType


# ============================================================================
# AG-UI MESSAGE TYPES
# ============================================================================

class MessageType(Enum):
    """AG-UI message types"""
    STATUS = "status"           # Stage is running
    RESULT = "result"           # Stage completed
    SUGGESTIONS = "suggestions" # Suggested follow-ups
    FINAL = "final"             # Final response with all results


class AgentStatus(Enum):
    """Stage execution status"""
    STARTING = "starting"
    WORKING = "working"
    COMPLETED = "completed"
    FAILED = "failed"


# ============================================================================
# AG-UI MESSAGE STRUCTURES
# ============================================================================

@dataclass
class StatusUpdate:
    """Progress of one pipeline stage"""
    type: str = MessageType.STATUS.value
    agent: str = ""
    status: AgentStatus = AgentStatus.WORKING
    message: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "agent": self.agent,
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


@dataclass
class ResultMessage:
    """Findings of one pipeline stage"""
    type: str = MessageType.RESULT.value
    agent: str = ""
    summary: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "agent": self.agent,
            "summary": self.summary,
            "details": self.details,
            "timestamp": self.timestamp
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


@dataclass
class SuggestedAction:
    """A follow-up the user can pick, scoped by `context`"""
    id: str
    label: str
    description: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "context": self.context
        }


@dataclass
class SuggestionsMessage:
    """Suggested actions message"""
    type: str = MessageType.SUGGESTIONS.value
    actions: List[SuggestedAction] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "actions": [a.to_dict() for a in self.actions],
            "timestamp": self.timestamp
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


@dataclass
class FinalResponse:
    """Final response: stage results, suggestions and the report payload"""
    type: str = MessageType.FINAL.value
    scope: str = ""
    summary: str = ""
    results: List[ResultMessage] = field(default_factory=list)
    suggestions: Optional[SuggestionsMessage] = None
    report: Optional[Dict[str, Any]] = None
    execution_time_seconds: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "scope": self.scope,
            "summary": self.summary,
            "results": [r.to_dict() for r in self.results],
            "suggestions": self.suggestions.to_dict() if self.suggestions else None,
            "report": self.report,
            "execution_time_seconds": self.execution_time_seconds,
            "timestamp": self.timestamp
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


# ============================================================================
# AG-UI MESSAGE HANDLER
# ============================================================================

class AGUIMessageHandler:
    """
    Collects AG-UI messages and forwards them to registered callbacks.
    """

    def __init__(self, enable_streaming: bool = True):
        """
        Args:
            enable_streaming: If True, forward messages to callbacks as they are emitted
        """
        self.enable_streaming = enable_streaming
        self.messages: List[Any] = []
        self.status_updates: List[StatusUpdate] = []
        self.results: List[ResultMessage] = []
        self.callbacks: List[Callable[[Any], None]] = []

    def register_callback(self, callback: Callable[[Any], None]):
        """Register a callback to receive messages in real-time"""
        self.callbacks.append(callback)

    def emit(self, message: Any):
        self.messages.append(message)

        if isinstance(message, StatusUpdate):
            self.status_updates.append(message)
        elif isinstance(message, ResultMessage):
            self.results.append(message)

        if self.enable_streaming:
            for callback in self.callbacks:
                callback(message)

    def status(self, agent: str, message: str, status: AgentStatus = AgentStatus.WORKING):
        self.emit(StatusUpdate(agent=agent, status=status, message=message))

    def failed(self, agent: str, error: Exception):
        """Report a stage failure before the error propagates"""
        self.status(agent, f"{type(error).__name__}: {error}", AgentStatus.FAILED)

    def result(self, agent: str, summary: str, details: Optional[Dict[str, Any]] = None):
        self.emit(ResultMessage(agent=agent, summary=summary, details=details or {}))

    def suggestions(self, actions: List[SuggestedAction]) -> SuggestionsMessage:
        suggestions = SuggestionsMessage(actions=actions)
        self.emit(suggestions)
        return suggestions

    def finalize(
        self,
        scope: str,
        summary: str,
        suggestions: Optional[SuggestionsMessage] = None,
        report: Optional[Dict[str, Any]] = None,
        execution_time: float = 0.0
    ) -> FinalResponse:
        """Create final response with all collected results"""
        final = FinalResponse(
            scope=scope,
            summary=summary,
            results=list(self.results),
            suggestions=suggestions,
            report=report,
            execution_time_seconds=execution_time
        )
        self.emit(final)
        return final

    def clear(self):
        self.messages.clear()
        self.status_updates.clear()
        self.results.clear()


# ============================================================================
# SUGGESTION GENERATOR
# ============================================================================

class SuggestionGenerator:
    """
    Generates follow-up suggestions from a wastage report.
    """

    MAX_SUGGESTIONS = 3

    @staticmethod
    def generate_for_report(report: WastageReport) -> List[SuggestedAction]:
        """Suggestions after a wastage analysis, most urgent first"""
        suggestions = []
        result = report.recommendations

        # Critical transfers waiting for approval
        critical = [r for r in result.transfer_recommendations if r.priority == ActionPriority.CRITICAL]
        if critical:
            units = sum(r.units for r in critical)
            suggestions.append(SuggestedAction(
                id="review_critical_transfers",
                label=f"Review {len(critical)} critical transfers",
                description=f"Approve transfers covering {units} units that expire soonest",
                context={"priority": ActionPriority.CRITICAL.value}
            ))

        # Drill into a clustered blood type
        for action in result.priority_actions:
            if action.action_type == ActionType.CLUSTER_ALERT and action.blood_types:
                blood_type = action.blood_types[0]
                suggestions.append(SuggestedAction(
                    id="focus_blood_type",
                    label=f"Focus on {blood_type.value}",
                    description=f"Rerun the analysis for {blood_type.value} lots only",
                    context={"blood_type": blood_type.value}
                ))
                break

        # Short shelf-life component at risk
        platelet_groups = [g for g in report.blood_type_groups if g.component_type == ComponentType.PLATELETS]
        if platelet_groups:
            units = sum(g.total_at_risk for g in platelet_groups)
            suggestions.append(SuggestedAction(
                id="focus_platelets",
                label="Review platelet inventory",
                description=f"{units} platelet units are at risk of expiring",
                context={"component_type": ComponentType.PLATELETS.value}
            ))

        # Rejected records need data cleanup
        if report.diagnostics:
            suggestions.append(SuggestedAction(
                id="review_diagnostics",
                label=f"Fix {len(report.diagnostics)} rejected records",
                description="Inventory records with missing or invalid fields were skipped",
                context={"diagnostics": len(report.diagnostics)}
            ))

        if not suggestions:
            suggestions.append(SuggestedAction(
                id="extend_horizon",
                label="Check the 30-day outlook",
                description="No urgent wastage risk; review lots expiring within 30 days",
                context={"horizon_days": 30}
            ))

        return suggestions[:SuggestionGenerator.MAX_SUGGESTIONS]
