"""
Backtesting Module

What-if analysis of strategy rule changes against historical trades:
- Rule substitution: stop loss, take profit and position sizing overlays
- Backtest engine: recalculated performance, version comparison, verdicts
- Simulation: Monte Carlo bootstrap of risk management changes
"""

# Engines
from .engines import MonteCarloSimulator, SimulationResult, RiskMetrics, ConfidenceInterval

from .rule_simulator import (
    ModificationType,
    StrategyModification,
    BacktestedTrade,
    apply_modifications,
    rules_differ,
    simulate_trades,
)
from .backtest_engine import (
    BacktestEngine,
    BacktestResult,
    BacktestSummary,
    TradeComparison,
    VersionComparison,
)

__version__ = "1.0.0"

__all__ = [
    # Main API
    'BacktestEngine',
    'BacktestResult',
    'BacktestSummary',
    'TradeComparison',
    'VersionComparison',

    # Rules
    'ModificationType',
    'StrategyModification',
    'BacktestedTrade',
    'apply_modifications',
    'rules_differ',
    'simulate_trades',

    # Engines
    'MonteCarloSimulator',
    'SimulationResult',
    'RiskMetrics',
    'ConfidenceInterval',
]
