"""
Base Strategy Framework

Core records and performance tracking:
- Professional strategy data model
- Trade ledger entries
- Performance calculation
"""

from strategies.base.strategy_model import (
    Methodology,
    PerformanceTrend,
    TradeStatus,
    PositionSizingMethod,
    StopLossRule,
    TakeProfitRule,
    SetupConditions,
    EntryTriggers,
    RiskManagement,
    MonthlyReturn,
    StrategyPerformance,
    ProfessionalStrategy,
    Trade,
)
from strategies.base.performance_tracker import (
    PerformanceTracker,
    TradeStatistics,
    compute_performance,
    compute_trade_statistics,
    compare_strategies,
)

__all__ = [
    "Methodology",
    "PerformanceTrend",
    "TradeStatus",
    "PositionSizingMethod",
    "StopLossRule",
    "TakeProfitRule",
    "SetupConditions",
    "EntryTriggers",
    "RiskManagement",
    "MonthlyReturn",
    "StrategyPerformance",
    "ProfessionalStrategy",
    "Trade",
    "PerformanceTracker",
    "TradeStatistics",
    "compute_performance",
    "compute_trade_statistics",
    "compare_strategies",
]
