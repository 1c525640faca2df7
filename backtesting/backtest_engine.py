"""
Backtesting Engine for what-if analysis of strategy rule changes.

Replays a strategy's historical trades under modified risk rules and compares
the recalculated performance with the original.
"""

import time
from typing import Dict, List, Optional, Any, Iterable, Sequence
from dataclasses import dataclass, field

import numpy as np

from backtesting.engines.simulation_engine import (
    ConfidenceInterval,
    MonteCarloSimulator,
    RiskMetrics,
    SimulationResult,
)
from backtesting.rule_simulator import (
    BacktestedTrade,
    ModificationType,
    StrategyModification,
    apply_modifications,
    simulate_trades,
)
from strategies.base.performance_tracker import booking_order, compute_performance, confidence_level_for
from strategies.base.strategy_model import (
    MINIMUM_SIGNIFICANT_TRADES,
    ProfessionalStrategy,
    RiskManagement,
    StrategyPerformance,
    Trade,
    to_snake_case,
)
from utils.config import ConfigManager, get_config
from utils.logger import get_backtest_logger

log = get_backtest_logger()

NO_TRADES_WARNING = "No historical trades found for this strategy"
MAJORITY_IMPROVED_SHARE = 0.6


@dataclass
class BacktestSummary:
    """Aggregate difference between original and backtest performance."""
    total_trades: int = 0
    trades_affected: int = 0
    performance_improvement: float = 0.0
    profit_factor_change: float = 0.0
    expectancy_change: float = 0.0
    win_rate_change: float = 0.0
    max_drawdown_change: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalTrades': self.total_trades,
            'tradesAffected': self.trades_affected,
            'performanceImprovement': self.performance_improvement,
            'profitFactorChange': self.profit_factor_change,
            'expectancyChange': self.expectancy_change,
            'winRateChange': self.win_rate_change,
            'maxDrawdownChange': self.max_drawdown_change,
        }


@dataclass
class BacktestResult:
    """Container for backtest results."""
    strategy_id: str
    original_performance: StrategyPerformance
    backtest_performance: StrategyPerformance
    trades: List[BacktestedTrade]
    summary: BacktestSummary
    modifications: List[StrategyModification] = field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    execution_time: float = 0.0
    confidence: float = 0.0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategyId': self.strategy_id,
            'originalPerformance': self.original_performance.to_dict(),
            'backtestPerformance': self.backtest_performance.to_dict(),
            'trades': [t.to_dict() for t in self.trades],
            'summary': self.summary.to_dict(),
            'metadata': {
                'startDate': self.start_date,
                'endDate': self.end_date,
                'modifications': [m.to_dict() for m in self.modifications],
                'executionTime': self.execution_time,
                'confidence': self.confidence,
            },
            'warnings': list(self.warnings),
        }


@dataclass
class TradeComparison:
    """Per-trade outcome before and after the rule changes."""
    trade_id: str
    original_outcome: float
    modified_outcome: float
    difference: float
    reason_for_change: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tradeId': self.trade_id,
            'originalOutcome': self.original_outcome,
            'modifiedOutcome': self.modified_outcome,
            'difference': self.difference,
            'reasonForChange': self.reason_for_change,
        }


@dataclass
class VersionComparison:
    """Side-by-side evaluation of two versions of a strategy."""
    original_strategy: ProfessionalStrategy
    modified_strategy: ProfessionalStrategy
    original_performance: StrategyPerformance
    modified_performance: StrategyPerformance
    improvement: float
    trade_by_trade_analysis: List[TradeComparison]
    recommendations: List[str]
    verdict: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'originalStrategy': self.original_strategy.to_dict(),
            'modifiedStrategy': self.modified_strategy.to_dict(),
            'performanceComparison': {
                'original': self.original_performance.to_dict(),
                'modified': self.modified_performance.to_dict(),
                'improvement': self.improvement,
            },
            'tradeByTradeAnalysis': [t.to_dict() for t in self.trade_by_trade_analysis],
            'recommendations': list(self.recommendations),
            'verdict': self.verdict,
        }


def confidence_fraction(level: float) -> float:
    """Confidence level as a fraction; percentages such as 95 are divided by 100."""
    if 1 < level <= 100:
        return level / 100
    return level


def improvement_percentage(original: StrategyPerformance, modified: StrategyPerformance) -> float:
    """Relative expectancy change in percent; 0 when the original expectancy is 0."""
    if original.expectancy == 0:
        return 0.0
    return (modified.expectancy - original.expectancy) / abs(original.expectancy) * 100


def build_recommendations(
    original: StrategyPerformance,
    modified: StrategyPerformance,
    comparisons: Sequence[TradeComparison]
) -> List[str]:
    """Recommendation texts for a version comparison, never empty."""
    recommendations = []

    if modified.profit_factor > original.profit_factor:
        recommendations.append('The modified strategy shows improved profit factor - consider implementing these changes')
    if modified.max_drawdown < original.max_drawdown:
        recommendations.append('Risk management improvements reduce maximum drawdown')
    if modified.win_rate > original.win_rate:
        recommendations.append('Modified rules improve win rate consistency')

    improved = sum(1 for c in comparisons if c.difference > 0)
    if comparisons and improved > len(comparisons) * MAJORITY_IMPROVED_SHARE:
        recommendations.append('Majority of trades show improvement - strong candidate for implementation')

    if not recommendations:
        recommendations.append('Current strategy parameters appear optimal for historical data')

    return recommendations


def decide_verdict(original: StrategyPerformance, modified: StrategyPerformance) -> str:
    """
    Adopt, Reject or Test Further.

    Adopt needs a significant sample, no deterioration and at least two
    improved metrics; Reject needs a deterioration and no improvement.
    """
    if original.total_trades == 0:
        return 'Test Further'

    improvements = sum([
        modified.profit_factor > original.profit_factor,
        modified.expectancy > original.expectancy,
        modified.win_rate > original.win_rate,
        modified.max_drawdown < original.max_drawdown,
    ])
    deteriorations = sum([
        modified.profit_factor < original.profit_factor,
        modified.expectancy < original.expectancy,
        modified.max_drawdown > original.max_drawdown,
    ])

    if deteriorations and not improvements:
        return 'Reject'
    if (not deteriorations and improvements >= 2
            and original.total_trades >= MINIMUM_SIGNIFICANT_TRADES):
        return 'Adopt'
    return 'Test Further'


class BacktestEngine:
    """Engine for replaying strategy trades under modified rules."""

    def __init__(self, config: Optional[dict] = None, simulator: Optional[MonteCarloSimulator] = None):
        """
        Initialize backtest engine.

        Args:
            config: Simulation settings (n_simulations, confidence_level, random_seed)
            simulator: Monte Carlo simulator to use instead of building one from config
        """
        self.config = config or {}
        self.confidence_level = confidence_fraction(float(self.config.get('confidence_level', 0.95)))
        self.simulator = simulator or MonteCarloSimulator(
            n_simulations=int(self.config.get('n_simulations', 1000)),
            random_seed=self.config.get('random_seed'),
        )

    @classmethod
    def from_config(cls, config: Optional[ConfigManager] = None) -> 'BacktestEngine':
        """Engine using the `simulation` section of the desk configuration."""
        return cls((config or get_config()).get_simulation_config())

    @staticmethod
    def strategy_trades(strategy: ProfessionalStrategy, trades: Iterable[Trade]) -> List[Trade]:
        """Trades attributed to the strategy (or unattributed), in booking order."""
        selected = [t for t in trades or [] if t.strategy_id is None or t.strategy_id == strategy.id]
        return sorted(selected, key=booking_order)

    def apply_modifications(
        self,
        strategy: ProfessionalStrategy,
        modifications: Iterable[Any]
    ) -> ProfessionalStrategy:
        """Strategy copy with the modifications applied; the input is left untouched."""
        return apply_modifications(strategy, modifications)

    def run_backtest(
        self,
        strategy: ProfessionalStrategy,
        trades: Iterable[Trade],
        modifications: Optional[Iterable[Any]] = None
    ) -> BacktestResult:
        """
        Run backtest of a strategy's trades under modified rules.

        Args:
            strategy: Strategy being evaluated
            trades: Trade ledger (filtered to this strategy)
            modifications: StrategyModification objects or their dict form

        Returns:
            BacktestResult (zeroed with warnings when nothing can be simulated)
        """
        started = time.perf_counter()
        warnings = []
        try:
            mods = [m if isinstance(m, StrategyModification) else StrategyModification.from_dict(m)
                    for m in modifications or []]
        except (KeyError, ValueError) as e:
            log.error(f"Malformed modification for {strategy.id}: {e}")
            mods = []
            warnings.append(f"Malformed modification ignored: {e}")
        log.info(f"Starting backtest of {strategy.id} with {len(mods)} modifications")

        history = self.strategy_trades(strategy, trades)
        original_performance = compute_performance(history)

        if not history:
            log.warning(f"No trades to backtest for {strategy.id}")
            return BacktestResult(
                strategy_id=strategy.id,
                original_performance=original_performance,
                backtest_performance=compute_performance([]),
                trades=[],
                summary=BacktestSummary(),
                modifications=mods,
                execution_time=time.perf_counter() - started,
                confidence=confidence_level_for(0),
                warnings=warnings + [NO_TRADES_WARNING],
            )

        try:
            modified = apply_modifications(strategy, mods)
            backtested = simulate_trades(history, strategy, modified)
        except (ValueError, TypeError) as e:
            log.error(f"Backtest of {strategy.id} failed: {e}")
            backtested = [BacktestedTrade(trade=t, original_pnl=t.pnl, backtest_pnl=t.pnl) for t in history]
            warnings.append(f"Modifications could not be applied: {e}")

        backtest_performance = compute_performance([b.as_trade() for b in backtested])
        summary = self.summarize(history, backtested, original_performance, backtest_performance)

        dated = [t.closed_at for t in history if t.closed_at is not None]
        result = BacktestResult(
            strategy_id=strategy.id,
            original_performance=original_performance,
            backtest_performance=backtest_performance,
            trades=backtested,
            summary=summary,
            modifications=mods,
            start_date=min(dated).isoformat() if dated else None,
            end_date=max(dated).isoformat() if dated else None,
            execution_time=time.perf_counter() - started,
            confidence=confidence_level_for(len(history)),
            warnings=warnings,
        )

        if not original_performance.statistically_significant:
            result.warnings.append(
                f"Only {len(history)} trades available; results are not statistically significant"
            )

        log.info(f"Backtest complete: {summary.trades_affected}/{summary.total_trades} trades affected, "
                 f"improvement {summary.performance_improvement:.2f}%")
        return result

    @staticmethod
    def summarize(
        history: Sequence[Trade],
        backtested: Sequence[BacktestedTrade],
        original: StrategyPerformance,
        backtest: StrategyPerformance
    ) -> BacktestSummary:
        return BacktestSummary(
            total_trades=len(history),
            trades_affected=sum(1 for b in backtested if b.affected),
            performance_improvement=improvement_percentage(original, backtest),
            profit_factor_change=backtest.profit_factor - original.profit_factor,
            expectancy_change=backtest.expectancy - original.expectancy,
            win_rate_change=backtest.win_rate - original.win_rate,
            max_drawdown_change=backtest.max_drawdown - original.max_drawdown,
        )

    def compare_strategy_versions(
        self,
        original: ProfessionalStrategy,
        modified: ProfessionalStrategy,
        trades: Iterable[Trade]
    ) -> VersionComparison:
        """
        Compare two versions of a strategy over the original's trades.

        Args:
            original: Current strategy
            modified: Candidate version
            trades: Trade ledger

        Returns:
            VersionComparison with per-trade analysis, recommendations and verdict
        """
        history = self.strategy_trades(original, trades)
        log.info(f"Comparing versions of {original.id} over {len(history)} trades")

        backtested = simulate_trades(history, original, modified)
        original_performance = compute_performance(history)
        modified_performance = compute_performance([b.as_trade() for b in backtested])

        comparisons = [
            TradeComparison(
                trade_id=b.trade.id,
                original_outcome=b.original_pnl,
                modified_outcome=b.backtest_pnl,
                difference=b.backtest_pnl - b.original_pnl,
                reason_for_change=', '.join(b.rule_changes_applied) or 'No changes',
            )
            for b in backtested
        ]

        verdict = decide_verdict(original_performance, modified_performance)
        log.info(f"Version comparison verdict for {original.id}: {verdict}")

        return VersionComparison(
            original_strategy=original,
            modified_strategy=modified,
            original_performance=original_performance,
            modified_performance=modified_performance,
            improvement=improvement_percentage(original_performance, modified_performance),
            trade_by_trade_analysis=comparisons,
            recommendations=build_recommendations(original_performance, modified_performance, comparisons),
            verdict=verdict,
        )

    def simulate_risk_management_changes(
        self,
        strategy: ProfessionalStrategy,
        new_risk_params: Dict[str, Any],
        trades: Iterable[Trade],
        confidence: Optional[float] = None
    ) -> SimulationResult:
        """
        Bootstrap the strategy's trades under new risk management settings.

        Args:
            strategy: Strategy being evaluated
            new_risk_params: RiskManagement attributes to replace (either key style)
            trades: Trade ledger
            confidence: Confidence level of the interval (default from config)

        Returns:
            SimulationResult
        """
        confidence = self.confidence_level if confidence is None else confidence
        risk = strategy.risk_management or RiskManagement()
        modifications = [
            StrategyModification(
                type=ModificationType.RISK_MANAGEMENT,
                field=key,
                new_value=value,
                original_value=getattr(risk, to_snake_case(key), None),
                description=f"Risk management change: {key}",
            )
            for key, value in (new_risk_params or {}).items()
        ]
        scenario = f"Risk Management Simulation: {', '.join(new_risk_params or {})}"

        history = self.strategy_trades(strategy, trades)
        warnings = []
        try:
            modified = apply_modifications(strategy, modifications)
            pnls = np.array([b.backtest_pnl for b in simulate_trades(history, strategy, modified)])
        except (ValueError, TypeError) as e:
            log.error(f"Risk simulation of {strategy.id} failed: {e}")
            pnls = np.array([t.pnl for t in history])
            warnings.append(f"Risk parameters could not be applied: {e}")

        try:
            result = self.simulator.run(pnls, confidence=confidence_fraction(confidence), scenario=scenario,
                                        modifications=new_risk_params)
        except (ValueError, TypeError) as e:
            log.error(f"Risk simulation of {strategy.id} rejected: {e}")
            return SimulationResult(
                scenario=scenario,
                modifications=dict(new_risk_params or {}),
                projected_performance=StrategyPerformance(),
                risk_metrics=RiskMetrics(),
                confidence_interval=ConfidenceInterval(confidence=confidence),
                warnings=warnings + [f"Simulation could not be run: {e}"],
            )
        result.warnings = warnings + result.warnings
        return result
