"""
Shared builders for strategy desk tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from strategies.base.strategy_model import (
    EntryTriggers,
    PositionSizingMethod,
    ProfessionalStrategy,
    RiskManagement,
    SetupConditions,
    StopLossRule,
    TakeProfitRule,
    Trade,
)


BASE_TIME = datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)


def make_strategy(strategy_id="strat-1", **overrides):
    """A strategy that passes validation with no warnings."""
    strategy = ProfessionalStrategy(
        id=strategy_id,
        title="London Breakout",
        description="Breakout of the Asian session range at the London open",
        methodology="Technical",
        primary_timeframe="1H",
        asset_classes=["Forex"],
        setup_conditions=SetupConditions(
            market_environment="Trending market with a clear overnight range",
            technical_conditions=["Breakout pattern"],
        ),
        entry_triggers=EntryTriggers(
            primary_signal="Close above the Asian session high",
            confirmation_signals=["Volume expansion"],
            timing_criteria="London open",
        ),
        risk_management=RiskManagement(
            position_sizing_method=PositionSizingMethod("FixedPercentage", {"percentage": 1}),
            max_risk_per_trade=2.0,
            stop_loss_rule=StopLossRule("ATRBased", {"atr_multiplier": 2, "atr_period": 14}, "Two ATR stop"),
            take_profit_rule=TakeProfitRule("RiskRewardRatio", {"ratio": 2}, "Two R target"),
            risk_reward_ratio=2.0,
        ),
    )
    for name, value in overrides.items():
        setattr(strategy, name, value)
    return strategy


def make_trades(pnls, strategy_id="strat-1", start=BASE_TIME, spacing=timedelta(days=1),
                entry_price=100.0, quantity=10.0):
    """Closed trades with the given P&L, booked `spacing` apart."""
    return [
        Trade(
            id=f"trade-{i}",
            symbol="EURUSD",
            entry_price=entry_price,
            quantity=quantity,
            entry_time=start + spacing * i,
            exit_time=start + spacing * i + timedelta(hours=4),
            pnl=float(pnl),
            strategy_id=strategy_id,
        )
        for i, pnl in enumerate(pnls)
    ]


def legacy_playbook(**overrides):
    """Raw journal playbook in the stored camelCase form."""
    record = {
        "id": "pb-1",
        "title": "London Breakout",
        "description": "Breakout of the Asian range at the London open",
        "color": "#FF0000",
        "marketConditions": "Trending market with a clear range",
        "entryParameters": "Break above resistance with RSI confirmation",
        "exitParameters": "Exit at 2R or trail behind structure",
        "timesUsed": 50,
        "tradesWon": 32,
        "tradesLost": 18,
    }
    record.update(overrides)
    return record


@pytest.fixture
def strategy():
    return make_strategy()


@pytest.fixture
def playbook():
    return legacy_playbook()
