"""
Monte Carlo Simulation Engine

Bootstrap simulation of a trade ledger's P&L sequence:
- Resampling with replacement at the ledger's own size
- Distribution of expectancy, win rate, profit factor and drawdown
- Risk metrics and an order-statistic confidence interval
- One-sample t-test of the historical P&L against zero
"""

from typing import Dict, List, Optional, Any, Sequence, Union
import numpy as np
from dataclasses import dataclass, field
from loguru import logger
from scipy import stats

from strategies.base.performance_tracker import compute_trade_statistics, confidence_level_for
from strategies.base.strategy_model import (
    MINIMUM_SIGNIFICANT_TRADES,
    RATIO_SENTINEL,
    StrategyPerformance,
)


@dataclass
class RiskMetrics:
    """Risk profile of the simulated expectancy distribution."""
    max_drawdown: float = 0.0
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            'maxDrawdown': self.max_drawdown,
            'volatility': self.volatility,
            'sharpeRatio': self.sharpe_ratio,
            'sortinoRatio': self.sortino_ratio,
        }


@dataclass
class ConfidenceInterval:
    """Two-sided interval of simulated expectancy."""
    lower: float = 0.0
    upper: float = 0.0
    confidence: float = 0.95

    def to_dict(self) -> Dict[str, float]:
        return {'lower': self.lower, 'upper': self.upper, 'confidence': self.confidence}


@dataclass
class SimulationResult:
    """Results from Monte Carlo simulation."""
    scenario: str
    modifications: Dict[str, Any]
    projected_performance: StrategyPerformance
    risk_metrics: RiskMetrics
    confidence_interval: ConfidenceInterval
    probability_positive: float = 0.0
    p_value: Optional[float] = None
    n_simulations: int = 0
    warnings: List[str] = field(default_factory=list)
    all_simulations: np.ndarray = field(default_factory=lambda: np.empty(0), repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scenario': self.scenario,
            'modifications': dict(self.modifications),
            'projectedPerformance': self.projected_performance.to_dict(),
            'riskMetrics': self.risk_metrics.to_dict(),
            'confidenceInterval': self.confidence_interval.to_dict(),
            'probabilityPositive': self.probability_positive,
            'pValue': self.p_value,
            'nSimulations': self.n_simulations,
            'warnings': list(self.warnings),
        }


class MonteCarloSimulator:
    """Monte Carlo simulator for strategy validation."""

    def __init__(
        self,
        n_simulations: int = 1000,
        random_seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Initialize Monte Carlo simulator.

        Args:
            n_simulations: Number of bootstrap iterations
            random_seed: Random seed for reproducibility
            rng: Generator to draw from (takes precedence over random_seed)
        """
        if n_simulations < 1:
            raise ValueError("n_simulations must be at least 1")

        self.n_simulations = n_simulations
        self.random_seed = random_seed
        self.rng = rng if rng is not None else np.random.default_rng(random_seed)

        logger.info(f"MonteCarloSimulator initialized with {n_simulations} simulations")

    def bootstrap_statistics(self, pnls: Sequence[float]) -> Dict[str, np.ndarray]:
        """
        Resample the P&L sequence and recompute ledger statistics per iteration.

        Args:
            pnls: Historical P&L per trade

        Returns:
            Arrays of expectancy, win_rate, profit_factor and max_drawdown,
            one entry per iteration (empty arrays for an empty ledger)
        """
        values = np.asarray(pnls, dtype=float)
        keys = ('expectancy', 'win_rate', 'profit_factor', 'max_drawdown')
        if values.size == 0:
            return {key: np.empty(0) for key in keys}

        simulated = {key: np.empty(self.n_simulations) for key in keys}
        for i in range(self.n_simulations):
            resampled = self.rng.choice(values, size=values.size, replace=True)
            sample = compute_trade_statistics(resampled)
            for key in keys:
                simulated[key][i] = getattr(sample, key)

        return simulated

    @staticmethod
    def calculate_risk_metrics(expectancies: np.ndarray, drawdowns: np.ndarray) -> RiskMetrics:
        """Volatility, Sharpe-like and Sortino-like ratios of simulated expectancy."""
        if expectancies.size == 0:
            return RiskMetrics()

        mean = float(expectancies.mean())
        volatility = float(expectancies.std(ddof=1)) if expectancies.size > 1 else 0.0
        sharpe = mean / volatility if volatility > 0 else 0.0

        downside = expectancies[expectancies < 0]
        if downside.size:
            downside_deviation = float(np.sqrt(np.mean(downside ** 2)))
            sortino = mean / downside_deviation if downside_deviation > 0 else 0.0
        else:
            sortino = RATIO_SENTINEL if mean > 0 else 0.0

        return RiskMetrics(
            max_drawdown=float(drawdowns.max()) if drawdowns.size else 0.0,
            volatility=volatility,
            sharpe_ratio=sharpe,
            sortino_ratio=sortino,
        )

    @staticmethod
    def calculate_confidence_interval(values: np.ndarray, confidence: float = 0.95) -> ConfidenceInterval:
        """
        Percentile interval from order statistics.

        95% takes the 2.5th and 97.5th percentile positions of the sorted
        sample; the upper position is clamped to the last element.
        """
        if not 0 < confidence < 1:
            raise ValueError(f"confidence must be between 0 and 1, got {confidence}")
        if values.size == 0:
            return ConfidenceInterval(confidence=confidence)

        ordered = np.sort(values)
        alpha = 1 - confidence
        lower_index = int(np.floor(ordered.size * alpha / 2))
        upper_index = min(int(np.floor(ordered.size * (1 - alpha / 2))), ordered.size - 1)

        return ConfidenceInterval(
            lower=float(ordered[lower_index]),
            upper=float(ordered[upper_index]),
            confidence=confidence,
        )

    @staticmethod
    def t_test(pnls: Sequence[float]) -> Optional[float]:
        """Two-sided p-value of the mean P&L differing from zero; None when undefined."""
        values = np.asarray(pnls, dtype=float)
        if values.size < 2 or np.allclose(values, values[0]):
            return None
        return float(stats.ttest_1samp(values, 0.0).pvalue)

    def run(
        self,
        pnls: Union[Sequence[float], np.ndarray],
        confidence: float = 0.95,
        scenario: str = "Bootstrap simulation",
        modifications: Optional[Dict[str, Any]] = None
    ) -> SimulationResult:
        """
        Run the bootstrap and summarise the simulated distribution.

        Args:
            pnls: Historical P&L per trade (chronological)
            confidence: Confidence level of the interval
            scenario: Label of the simulated scenario
            modifications: Rule changes the P&L already reflects

        Returns:
            SimulationResult
        """
        values = np.asarray(list(pnls), dtype=float)
        logger.info(f"Running bootstrap simulation over {values.size} trades")

        simulated = self.bootstrap_statistics(values)
        expectancies = simulated['expectancy']
        warnings = []
        if values.size == 0:
            warnings.append("No trades available for simulation")
            logger.warning("Simulation requested for an empty ledger")

        n = int(values.size)
        mean_win_rate = float(simulated['win_rate'].mean()) if n else 0.0
        winning = int(round(mean_win_rate * n / 100))
        projected = StrategyPerformance(
            total_trades=n,
            winning_trades=winning,
            losing_trades=n - winning,
            profit_factor=float(simulated['profit_factor'].mean()) if n else 1.0,
            expectancy=float(expectancies.mean()) if n else 0.0,
            win_rate=winning / n * 100 if n else 0.0,
            max_drawdown=float(simulated['max_drawdown'].mean()) if n else 0.0,
            sample_size=n,
            confidence_level=confidence_level_for(n),
            statistically_significant=n >= MINIMUM_SIGNIFICANT_TRADES,
        )

        return SimulationResult(
            scenario=scenario,
            modifications=dict(modifications or {}),
            projected_performance=projected,
            risk_metrics=self.calculate_risk_metrics(expectancies, simulated['max_drawdown']),
            confidence_interval=self.calculate_confidence_interval(expectancies, confidence),
            probability_positive=float((expectancies > 0).mean()) if n else 0.0,
            p_value=self.t_test(values),
            n_simulations=self.n_simulations if n else 0,
            warnings=warnings,
            all_simulations=expectancies,
        )
