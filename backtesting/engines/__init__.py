"""
Backtesting Engines Module

Provides the Monte Carlo bootstrap simulator used for risk simulations.
"""

from .simulation_engine import (
    MonteCarloSimulator,
    SimulationResult,
    RiskMetrics,
    ConfidenceInterval,
)

__all__ = [
    'MonteCarloSimulator',
    'SimulationResult',
    'RiskMetrics',
    'ConfidenceInterval',
]
