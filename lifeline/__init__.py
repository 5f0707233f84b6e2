"""
Lifeline-AI

Blood-inventory wastage risk scoring, forecasting and transfer
recommendations.
"""

__version__ = "0.1.0"
