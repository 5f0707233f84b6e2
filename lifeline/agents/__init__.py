"""
Lifeline-AI Agent Module

Deterministic agents used by the wastage engine (no LLM, no framework).
"""

from lifeline.agents.risk_scoring import RiskScoringAgent
from lifeline.agents.wastage_forecasting import WastageForecastingAgent
from lifeline.agents.recommendation import RecommendationAgent


__all__ = [
    "RiskScoringAgent",
    "WastageForecastingAgent",
    "RecommendationAgent",
]
