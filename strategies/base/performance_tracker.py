"""
Performance Tracker

Turns a strategy's trade ledger into StrategyPerformance records.
Computes win rate, profit factor, expectancy, drawdown, monthly breakdown,
statistical confidence and the recent performance trend.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from strategies.base.strategy_model import (
    MINIMUM_SIGNIFICANT_TRADES,
    RATIO_SENTINEL,
    MonthlyReturn,
    PerformanceTrend,
    ProfessionalStrategy,
    StrategyPerformance,
    Trade,
    TradeStatus,
    utc_now_iso,
)
from utils.config import ConfigManager, get_config
from utils.logger import get_performance_logger


CALCULATION_VERSION = 1
TRADING_DAYS_PER_YEAR = 252

logger = get_performance_logger()


@dataclass
class TradeStatistics:
    """
    Ledger statistics that only need the P&L sequence.

    Attributes:
        total_trades: Number of trades
        winning_trades: Trades with pnl > 0
        losing_trades: All remaining trades (break-even counts as a loss)
        gross_profit: Sum of winning P&L
        gross_loss: Magnitude of summed negative P&L
        win_rate: Winning percentage (0-100)
        profit_factor: Gross profit / gross loss
        average_win: Mean winning P&L
        average_loss: Mean losing P&L magnitude
        expectancy: Expected P&L per trade
        risk_reward_ratio: average_win / average_loss
        max_drawdown: Largest peak-to-trough fall of cumulative P&L
    """
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    win_rate: float = 0.0
    profit_factor: float = 1.0
    average_win: float = 0.0
    average_loss: float = 0.0
    expectancy: float = 0.0
    risk_reward_ratio: float = 0.0
    max_drawdown: float = 0.0


def profit_factor_from(gross_profit: float, gross_loss: float) -> float:
    """Gross profit over gross loss, finite in every case."""
    if gross_loss > 0:
        return gross_profit / gross_loss
    if gross_profit > 0:
        return RATIO_SENTINEL
    return 1.0


def compute_trade_statistics(pnls: Iterable[float]) -> TradeStatistics:
    """
    Vectorised statistics over a P&L sequence in chronological order.

    Args:
        pnls: Realized P&L per trade

    Returns:
        TradeStatistics (neutral values for an empty sequence)
    """
    values = np.nan_to_num(np.asarray(list(pnls), dtype=float), nan=0.0, posinf=0.0, neginf=0.0)
    total = int(values.size)
    if total == 0:
        return TradeStatistics()

    wins = values[values > 0]
    winning = int(wins.size)
    losing = total - winning

    gross_profit = float(wins.sum())
    gross_loss = float(abs(values[values < 0].sum()))

    win_rate = winning * 100 / total
    average_win = gross_profit / winning if winning else 0.0
    average_loss = gross_loss / losing if losing else 0.0
    expectancy = (win_rate / 100) * average_win - (1 - win_rate / 100) * average_loss

    cumulative = np.cumsum(values)
    running_peak = np.maximum.accumulate(np.concatenate(([0.0], cumulative)))[1:]
    max_drawdown = float((running_peak - cumulative).max())

    return TradeStatistics(
        total_trades=total,
        winning_trades=winning,
        losing_trades=losing,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        win_rate=win_rate,
        profit_factor=profit_factor_from(gross_profit, gross_loss),
        average_win=average_win,
        average_loss=average_loss,
        expectancy=expectancy,
        risk_reward_ratio=average_win / average_loss if average_loss > 0 else 0.0,
        max_drawdown=max(max_drawdown, 0.0),
    )


def confidence_level_for(sample_size: int) -> float:
    """Heuristic confidence (percent) that a sample of trades is representative."""
    if sample_size >= 100:
        return 95.0
    if sample_size >= 50:
        return 90.0
    if sample_size >= 30:
        return 80.0
    if sample_size >= 20:
        return 70.0
    return 60.0


def booking_order(trade: Trade) -> Tuple[int, float]:
    """Sort key placing undated trades first, then by booking time."""
    if trade.closed_at is None:
        return (0, 0.0)
    return (1, pd.Timestamp(trade.closed_at).timestamp())


def _days_between(start: Optional[datetime], end: Optional[datetime]) -> int:
    if start is None or end is None:
        return 0
    try:
        seconds = (end - start).total_seconds()
    except TypeError:
        # naive vs aware timestamps
        seconds = (end.replace(tzinfo=None) - start.replace(tzinfo=None)).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def calculate_max_drawdown(trades: Sequence[Trade]) -> Tuple[float, int]:
    """
    Maximum drawdown of cumulative P&L and its longest duration in days.

    Trades must be in chronological order. A drawdown runs from the time of
    the peak until a new peak is set; one still open at the end is measured
    to the last trade.
    """
    running = 0.0
    peak = 0.0
    peak_time = trades[0].closed_at if trades else None
    drawdown_start: Optional[datetime] = None
    max_drawdown = 0.0
    max_duration = 0

    for trade in trades:
        running += trade.pnl or 0.0
        booked = trade.closed_at

        if running > peak:
            if drawdown_start is not None:
                max_duration = max(max_duration, _days_between(drawdown_start, booked))
                drawdown_start = None
            peak = running
            peak_time = booked
        elif running < peak:
            if drawdown_start is None:
                drawdown_start = peak_time or booked
            max_drawdown = max(max_drawdown, peak - running)

    if drawdown_start is not None and trades:
        max_duration = max(max_duration, _days_between(drawdown_start, trades[-1].closed_at))

    return max_drawdown, max_duration


def calculate_monthly_returns(trades: Sequence[Trade]) -> List[MonthlyReturn]:
    """Group trades by the month they were closed in."""
    rows = [
        {'closed_at': pd.Timestamp(t.closed_at), 'pnl': t.pnl or 0.0}
        for t in trades
        if t.closed_at is not None
    ]
    if not rows:
        return []

    df = pd.DataFrame(rows)
    df['month'] = df['closed_at'].apply(lambda ts: ts.strftime('%Y-%m'))

    monthly = []
    for month, group in df.groupby('month', sort=True):
        stats = compute_trade_statistics(group['pnl'].to_numpy())
        monthly.append(MonthlyReturn(
            month=month,
            total_return=float(group['pnl'].sum()),
            trades=stats.total_trades,
            win_rate=stats.win_rate,
            profit_factor=stats.profit_factor,
        ))

    return monthly


def trend_slope(values: Sequence[float]) -> float:
    """Least-squares slope of values against their index."""
    if len(values) < 2:
        return 0.0
    x = np.arange(len(values), dtype=float)
    slope, _ = np.polyfit(x, np.asarray(values, dtype=float), 1)
    return float(slope)


def classify_trend(
    trades: Sequence[Trade],
    monthly_returns: Sequence[MonthlyReturn],
    analysis_periods: int = 6,
    threshold: float = 0.5,
    minimum_trades: int = 10,
) -> PerformanceTrend:
    """
    Classify the recent trend of results.

    Uses the last `analysis_periods` months when at least three months of
    data exist, otherwise equal chronological buckets of trades.
    """
    if len(trades) < minimum_trades:
        return PerformanceTrend.INSUFFICIENT_DATA

    if len(monthly_returns) >= 3:
        series = [m.total_return for m in monthly_returns[-analysis_periods:]]
    else:
        buckets = np.array_split(np.asarray([t.pnl or 0.0 for t in trades], dtype=float),
                                 max(3, min(analysis_periods, len(trades))))
        series = [float(b.sum()) for b in buckets]

    slope = trend_slope(series)
    if abs(slope) < threshold:
        return PerformanceTrend.STABLE
    return PerformanceTrend.IMPROVING if slope > 0 else PerformanceTrend.DECLINING


def calculate_sharpe_ratio(pnls: Sequence[float]) -> Optional[float]:
    """Per-trade Sharpe ratio annualised with 252 periods; None when undefined."""
    values = np.asarray(pnls, dtype=float)
    if values.size < 2:
        return None
    std = values.std(ddof=1)
    if not np.isfinite(std) or std == 0:
        return None
    return float(values.mean() / std * np.sqrt(TRADING_DAYS_PER_YEAR))


def compute_performance(
    trades: Sequence[Trade],
    previous: Optional[StrategyPerformance] = None,
    trend_analysis_periods: int = 6,
    trend_threshold: float = 0.5,
    minimum_trades: int = MINIMUM_SIGNIFICANT_TRADES,
) -> StrategyPerformance:
    """
    Calculate the performance record of a trade ledger.

    Pure: never raises and never mutates its inputs. An empty ledger gives a
    zeroed record with a neutral profit factor.

    Args:
        trades: Trades in chronological order
        previous: Prior record; its calculation_version is incremented
        trend_analysis_periods: Periods considered for the trend
        trend_threshold: Minimum slope magnitude for a non-stable trend
        minimum_trades: Trades needed for statistical significance

    Returns:
        StrategyPerformance
    """
    trades = list(trades or [])
    pnls = [t.pnl or 0.0 for t in trades]
    stats = compute_trade_statistics(pnls)

    _, drawdown_duration = calculate_max_drawdown(trades)
    monthly_returns = calculate_monthly_returns(trades)
    trend = classify_trend(trades, monthly_returns, trend_analysis_periods, trend_threshold)

    version = previous.calculation_version + 1 if previous is not None else CALCULATION_VERSION

    return StrategyPerformance(
        total_trades=stats.total_trades,
        winning_trades=stats.winning_trades,
        losing_trades=stats.losing_trades,
        profit_factor=stats.profit_factor,
        expectancy=stats.expectancy,
        win_rate=stats.win_rate,
        average_win=stats.average_win,
        average_loss=stats.average_loss,
        risk_reward_ratio=stats.risk_reward_ratio,
        max_drawdown=stats.max_drawdown,
        max_drawdown_duration=drawdown_duration,
        sample_size=stats.total_trades,
        confidence_level=confidence_level_for(stats.total_trades),
        statistically_significant=stats.total_trades >= minimum_trades,
        monthly_returns=monthly_returns,
        performance_trend=trend,
        last_calculated=utc_now_iso(),
        calculation_version=version,
        sharpe_ratio=calculate_sharpe_ratio(pnls),
    )


def composite_score(performance: StrategyPerformance) -> float:
    """Weighted 0-100 score used to rank strategies."""
    weights = {
        'profit_factor': 0.25,
        'expectancy': 0.20,
        'win_rate': 0.15,
        'sharpe_ratio': 0.20,
        'max_drawdown': 0.10,
        'significance': 0.10,
    }

    normalized = {
        'profit_factor': min(100.0, performance.profit_factor * 50),
        'expectancy': max(0.0, min(100.0, performance.expectancy * 10 + 50)),
        'win_rate': performance.win_rate,
        'sharpe_ratio': max(0.0, min(100.0, (performance.sharpe_ratio or 0.0) * 50 + 50)),
        'max_drawdown': max(0.0, 100 - performance.max_drawdown * 2),
        'significance': 100.0 if performance.statistically_significant else 50.0,
    }

    score = sum(normalized[k] * w for k, w in weights.items())
    return round(score, 2)


def strengths_and_weaknesses(performance: StrategyPerformance) -> Tuple[List[str], List[str]]:
    """Human-readable strong and weak points of a performance record."""
    strengths: List[str] = []
    weaknesses: List[str] = []

    if performance.profit_factor >= 2.0:
        strengths.append(f"Excellent profit factor ({performance.profit_factor:.2f})")
    elif performance.profit_factor >= 1.5:
        strengths.append(f"Good profit factor ({performance.profit_factor:.2f})")
    elif performance.profit_factor < 1.0:
        weaknesses.append(f"Poor profit factor ({performance.profit_factor:.2f})")

    if performance.win_rate >= 60:
        strengths.append(f"High win rate ({performance.win_rate:.1f}%)")
    elif performance.win_rate < 40:
        weaknesses.append(f"Low win rate ({performance.win_rate:.1f}%)")

    if performance.expectancy > 0:
        strengths.append(f"Positive expectancy ({performance.expectancy:.2f})")
    else:
        weaknesses.append(f"Negative expectancy ({performance.expectancy:.2f})")

    if performance.statistically_significant:
        strengths.append(f"Statistically significant results ({performance.total_trades} trades)")
    else:
        weaknesses.append(f"Insufficient data for statistical significance ({performance.total_trades} trades)")

    if performance.performance_trend == PerformanceTrend.IMPROVING:
        strengths.append("Improving performance trend")
    elif performance.performance_trend == PerformanceTrend.DECLINING:
        weaknesses.append("Declining performance trend")

    return strengths, weaknesses


class PerformanceTracker:
    """
    Keeps a strategy's trade ledger and its current performance record.

    Recalculates whenever the ledger changes, bumping calculation_version.
    """

    def __init__(
        self,
        strategy_id: str,
        trend_analysis_periods: int = 6,
        trend_threshold: float = 0.5,
        minimum_trades: int = MINIMUM_SIGNIFICANT_TRADES
    ):
        """
        Initialize performance tracker.

        Args:
            strategy_id: Strategy whose trades are tracked
            trend_analysis_periods: Periods considered for the trend
            trend_threshold: Minimum slope magnitude for a non-stable trend
            minimum_trades: Trades needed for statistical significance
        """
        self.strategy_id = strategy_id
        self.trend_analysis_periods = trend_analysis_periods
        self.trend_threshold = trend_threshold
        self.minimum_trades = minimum_trades
        self.trades: List[Trade] = []
        self.performance: Optional[StrategyPerformance] = None

        logger.debug(f"Performance Tracker initialized for strategy {strategy_id}")

    @classmethod
    def from_config(cls, strategy_id: str, config: Optional[ConfigManager] = None) -> 'PerformanceTracker':
        """Tracker using the `performance` section of the desk configuration."""
        settings = (config or get_config()).get_performance_config()
        return cls(strategy_id, **settings)

    def record_trade(self, trade: Trade) -> StrategyPerformance:
        """
        Record a trade and recalculate.

        Trades attributed to another strategy are ignored.
        """
        if trade.strategy_id not in (None, self.strategy_id):
            logger.warning(f"Trade {trade.id} belongs to {trade.strategy_id}, not {self.strategy_id}")
            return self.calculate_metrics()

        self.trades.append(trade)
        return self.calculate_metrics()

    def closed_trades(self) -> List[Trade]:
        """Closed trades in booking order."""
        closed = [t for t in self.trades if str(t.status).lower() == TradeStatus.CLOSED.value.lower()]
        return sorted(closed, key=booking_order)

    def calculate_metrics(self) -> StrategyPerformance:
        """
        Calculate the performance record from the closed trades.

        Returns:
            StrategyPerformance
        """
        self.performance = compute_performance(
            self.closed_trades(),
            previous=self.performance,
            trend_analysis_periods=self.trend_analysis_periods,
            trend_threshold=self.trend_threshold,
            minimum_trades=self.minimum_trades,
        )
        return self.performance

    def apply_to(self, strategy: ProfessionalStrategy) -> ProfessionalStrategy:
        """Copy of `strategy` carrying the current performance record."""
        performance = self.performance or self.calculate_metrics()
        updated = strategy.copy()
        updated.performance = replace(performance)
        updated.updated_at = utc_now_iso()
        return updated

    def get_trades_df(self) -> pd.DataFrame:
        """
        Get trade ledger as DataFrame.

        Returns:
            DataFrame with one row per trade
        """
        if not self.trades:
            return pd.DataFrame()
        return pd.DataFrame([t.to_dict() for t in self.trades])


def compare_strategies(strategies: Sequence[ProfessionalStrategy]) -> List[Dict]:
    """
    Rank strategies by composite score of their performance records.

    Returns:
        List of dicts with rank, score, key metrics, strengths and weaknesses
    """
    comparisons = []
    for strategy in strategies:
        performance = strategy.performance or StrategyPerformance()
        strengths, weaknesses = strengths_and_weaknesses(performance)
        comparisons.append({
            'strategy_id': strategy.id,
            'strategy_name': strategy.title,
            'rank': 0,
            'score': composite_score(performance),
            'metrics': {
                'profit_factor': performance.profit_factor,
                'expectancy': performance.expectancy,
                'sharpe_ratio': performance.sharpe_ratio or 0.0,
                'win_rate': performance.win_rate,
                'max_drawdown': performance.max_drawdown,
            },
            'strengths': strengths,
            'weaknesses': weaknesses,
        })

    comparisons.sort(key=lambda c: c['score'], reverse=True)
    for rank, comparison in enumerate(comparisons, start=1):
        comparison['rank'] = rank

    return comparisons
