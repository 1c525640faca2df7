"""
Rule substitution for historical trades.

Overlays hypothetical rule modifications on a strategy and re-simulates each
trade's P&L under the modified stop loss, take profit and position sizing.
"""

import copy
from dataclasses import dataclass, field, fields, is_dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from strategies.base.strategy_model import (
    PositionSizingMethod,
    ProfessionalStrategy,
    RiskManagement,
    StopLossRule,
    TakeProfitRule,
    Trade,
    snake_keys,
    to_snake_case,
)


DEFAULT_ATR_MULTIPLIER = 2.0
DEFAULT_STOP_PERCENT = 2.0
DEFAULT_REWARD_RATIO = 2.0

STOP_LOSS_TAG = 'Stop Loss Modified'
TAKE_PROFIT_TAG = 'Take Profit Modified'
POSITION_SIZE_TAG = 'Position Size Modified'


class ModificationType(str, Enum):
    """Part of the risk rules a modification edits."""
    STOP_LOSS = "StopLoss"
    TAKE_PROFIT = "TakeProfit"
    POSITION_SIZE = "PositionSize"
    RISK_MANAGEMENT = "RiskManagement"


@dataclass(frozen=True)
class StrategyModification:
    """
    Hypothetical edit of one rule field.

    Attributes:
        type: Rule being edited
        field: 'type', 'description', 'parameters' or a parameter name
            (for RiskManagement: an attribute of the risk block)
        new_value: Value to apply
        original_value: Value being replaced (informational)
        description: Human readable summary
    """
    type: ModificationType
    field: str
    new_value: Any
    original_value: Any = None
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'field': self.field,
            'originalValue': self.original_value,
            'newValue': self.new_value,
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'StrategyModification':
        values = snake_keys(data)
        return cls(
            type=ModificationType(values['type']),
            field=values['field'],
            new_value=values.get('new_value'),
            original_value=values.get('original_value'),
            description=values.get('description', ''),
        )


@dataclass(frozen=True)
class BacktestedTrade:
    """Historical trade with its re-simulated P&L and the rules that changed it."""
    trade: Trade
    original_pnl: float
    backtest_pnl: float
    rule_changes_applied: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def original_outcome(self) -> str:
        return 'win' if self.original_pnl > 0 else 'loss'

    @property
    def backtest_outcome(self) -> str:
        return 'win' if self.backtest_pnl > 0 else 'loss'

    @property
    def affected(self) -> bool:
        return self.backtest_pnl != self.original_pnl or bool(self.rule_changes_applied)

    def as_trade(self) -> Trade:
        """The trade carrying its backtest P&L."""
        return replace(self.trade, pnl=self.backtest_pnl)

    def to_dict(self) -> Dict[str, Any]:
        data = self.trade.to_dict()
        data.update({
            'originalOutcome': self.original_outcome,
            'backtestOutcome': self.backtest_outcome,
            'originalPnL': self.original_pnl,
            'backtestPnL': self.backtest_pnl,
            'ruleChangesApplied': list(self.rule_changes_applied),
        })
        return data


# ===== STRUCTURAL COMPARISON =====

def _normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _normalize(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Mapping):
        return {to_snake_case(str(k)): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def rules_differ(first: Any, second: Any) -> bool:
    """Field-by-field comparison of two rule objects, independent of key order and key style."""
    return _normalize(first) != _normalize(second)


# ===== APPLYING MODIFICATIONS =====

_RULE_CLASSES = {
    ModificationType.STOP_LOSS: ('stop_loss_rule', StopLossRule),
    ModificationType.TAKE_PROFIT: ('take_profit_rule', TakeProfitRule),
    ModificationType.POSITION_SIZE: ('position_sizing_method', PositionSizingMethod),
}


def _overlay(rule: Any, rule_cls, name: str, value: Any):
    if rule is None:
        rule = rule_cls(type=None)
    else:
        rule = copy.deepcopy(rule)

    value = copy.deepcopy(value)
    if name == 'type':
        rule.type = value
    elif name == 'description' and hasattr(rule, 'description'):
        rule.description = value
    elif name == 'parameters' and isinstance(value, Mapping):
        rule.parameters = snake_keys(value)
    else:
        rule.parameters = {**(rule.parameters or {}), name: value}
    return rule


def apply_modifications(
    strategy: ProfessionalStrategy,
    modifications: Iterable[Any]
) -> ProfessionalStrategy:
    """
    Derived strategy with each modification overlaid on its rule.

    The input strategy is never mutated.

    Raises:
        ValueError: For a RiskManagement modification naming an unknown attribute
    """
    modified = strategy.copy()
    risk = modified.risk_management or RiskManagement()
    modified.risk_management = risk

    for modification in modifications or []:
        if isinstance(modification, Mapping):
            modification = StrategyModification.from_dict(modification)
        name = to_snake_case(modification.field)

        if modification.type in _RULE_CLASSES:
            attribute, rule_cls = _RULE_CLASSES[modification.type]
            setattr(risk, attribute, _overlay(getattr(risk, attribute), rule_cls, name, modification.new_value))
            continue

        if name not in risk.__dataclass_fields__:
            raise ValueError(f"Unknown risk management field: {modification.field}")

        value = copy.deepcopy(modification.new_value)
        if isinstance(value, Mapping):
            rule_cls = {a: c for a, c in _RULE_CLASSES.values()}.get(name)
            if rule_cls is not None:
                value = rule_cls.from_dict(value)
        setattr(risk, name, value)

    return modified


# ===== PER-TRADE RULES =====

def _param(rule: Any, *names: str, default: float) -> float:
    params = getattr(rule, 'parameters', None) or {}
    for name in names:
        value = params.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            return float(value)
    return default


def stop_loss_pnl(pnl: float, trade: Trade, rule: StopLossRule, baseline_multiplier: float) -> Optional[float]:
    """
    P&L of a losing trade under a stop loss rule; None when the rule does not apply.

    ATR stops scale the loss by new/baseline multiplier; percentage stops cap
    the loss at entry * quantity * pct / 100.
    """
    if pnl >= 0 or rule is None:
        return None

    if rule.type == 'ATRBased':
        multiplier = _param(rule, 'atr_multiplier', 'multiplier', default=DEFAULT_ATR_MULTIPLIER)
        return pnl * (multiplier / baseline_multiplier)

    if rule.type == 'PercentageBased':
        percent = _param(rule, 'percentage', default=DEFAULT_STOP_PERCENT)
        max_loss = -(abs(trade.entry_price * trade.quantity) * percent / 100)
        return max(pnl, max_loss)

    return None


def take_profit_pnl(pnl: float, trade: Trade, rule: TakeProfitRule, stop_rule: Optional[StopLossRule]) -> Optional[float]:
    """
    P&L of a winning trade under a take profit rule; None when the rule does not apply.

    Risk-reward targets cap the profit at risk amount * ratio, with the risk
    amount taken from a percentage stop (2% otherwise).
    """
    if pnl <= 0 or rule is None or rule.type != 'RiskRewardRatio':
        return None

    ratio = _param(rule, 'ratio', default=DEFAULT_REWARD_RATIO)
    stop_percent = DEFAULT_STOP_PERCENT
    if stop_rule is not None and stop_rule.type == 'PercentageBased':
        stop_percent = _param(stop_rule, 'percentage', default=DEFAULT_STOP_PERCENT)

    risk_amount = abs(trade.entry_price * trade.quantity) * stop_percent / 100
    if risk_amount <= 0:
        return None
    return min(pnl, risk_amount * ratio)


def position_size_multiplier(
    original: Optional[PositionSizingMethod],
    modified: Optional[PositionSizingMethod]
) -> Optional[float]:
    """Ratio of like-typed sizing parameters; None when the methods are not comparable."""
    if original is None or modified is None or original.type != modified.type:
        return None

    key = {'FixedPercentage': 'percentage', 'FixedDollar': 'dollar_amount'}.get(modified.type)
    if key is None:
        return None

    old = _param(original, key, default=0.0)
    new = _param(modified, key, default=0.0)
    if old <= 0 or new <= 0:
        return None
    return new / old


def simulate_trades(
    trades: Sequence[Trade],
    original: ProfessionalStrategy,
    modified: ProfessionalStrategy
) -> List[BacktestedTrade]:
    """
    Re-simulate trades under the modified strategy's rules.

    Only rules that differ between the two strategies are applied; each
    applied rule tags the trade.
    """
    original_risk = original.risk_management or RiskManagement()
    modified_risk = modified.risk_management or RiskManagement()

    stop_changed = rules_differ(original_risk.stop_loss_rule, modified_risk.stop_loss_rule)
    target_changed = rules_differ(original_risk.take_profit_rule, modified_risk.take_profit_rule)
    size_changed = rules_differ(original_risk.position_sizing_method, modified_risk.position_sizing_method)

    baseline = DEFAULT_ATR_MULTIPLIER
    if original_risk.stop_loss_rule is not None and original_risk.stop_loss_rule.type == 'ATRBased':
        baseline = _param(original_risk.stop_loss_rule, 'atr_multiplier', 'multiplier', default=DEFAULT_ATR_MULTIPLIER)

    size_multiplier = None
    if size_changed:
        size_multiplier = position_size_multiplier(original_risk.position_sizing_method,
                                                   modified_risk.position_sizing_method)

    simulated = []
    for trade in trades:
        pnl = trade.pnl or 0.0
        tags: List[str] = []

        if stop_changed:
            adjusted = stop_loss_pnl(pnl, trade, modified_risk.stop_loss_rule, baseline)
            if adjusted is not None:
                pnl = adjusted
                tags.append(STOP_LOSS_TAG)

        if target_changed:
            adjusted = take_profit_pnl(pnl, trade, modified_risk.take_profit_rule, modified_risk.stop_loss_rule)
            if adjusted is not None:
                pnl = adjusted
                tags.append(TAKE_PROFIT_TAG)

        if size_multiplier is not None:
            pnl = pnl * size_multiplier
            tags.append(POSITION_SIZE_TAG)

        simulated.append(BacktestedTrade(
            trade=trade,
            original_pnl=trade.pnl or 0.0,
            backtest_pnl=pnl,
            rule_changes_applied=tuple(tags),
        ))

    return simulated
