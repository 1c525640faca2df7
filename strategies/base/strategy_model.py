"""
Professional Strategy Data Model

Records exchanged between the desk and its callers:
- Rule objects (position sizing, stop loss, take profit)
- ProfessionalStrategy and its nested condition blocks
- StrategyPerformance and monthly breakdowns
- Trade ledger entries

Attributes are snake_case. `to_dict()` emits the camelCase shape used by the
persistence layer and `from_dict()` accepts either convention.
"""

import copy
import re
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd


# ===== ENUMS AND CONSTANTS =====

class Methodology(str, Enum):
    """Trading methodology of a strategy."""
    TECHNICAL = "Technical"
    FUNDAMENTAL = "Fundamental"
    QUANTITATIVE = "Quantitative"
    HYBRID = "Hybrid"


class PerformanceTrend(str, Enum):
    """Direction of recent strategy results."""
    IMPROVING = "Improving"
    DECLINING = "Declining"
    STABLE = "Stable"
    INSUFFICIENT_DATA = "Insufficient Data"


class TradeStatus(str, Enum):
    """Lifecycle status of a ledger trade."""
    OPEN = "Open"
    PENDING = "Pending"
    CLOSED = "Closed"
    CANCELLED = "Cancelled"


METHODOLOGY_TYPES = tuple(m.value for m in Methodology)
POSITION_SIZING_TYPES = ('FixedPercentage', 'FixedDollar', 'VolatilityBased', 'KellyFormula')
STOP_LOSS_TYPES = ('ATRBased', 'PercentageBased', 'StructureBased', 'VolatilityBased')
TAKE_PROFIT_TYPES = ('RiskRewardRatio', 'StructureBased', 'TrailingStop', 'PartialTargets')
PERFORMANCE_TRENDS = tuple(t.value for t in PerformanceTrend)

# Finite stand-in for "no losses" ratios; never inf/NaN
RATIO_SENTINEL = 999.0
MINIMUM_SIGNIFICANT_TRADES = 30


# ===== KEY HELPERS =====

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def to_snake_case(name: str) -> str:
    """Convert a camelCase key to snake_case."""
    return _CAMEL_BOUNDARY.sub('_', name).lower()


def to_camel_case(name: str) -> str:
    """Convert a snake_case key to camelCase."""
    head, *tail = name.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in tail)


def snake_keys(data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Shallow copy of a mapping with snake_case keys."""
    return {to_snake_case(k): v for k, v in (data or {}).items()}


def camel_keys(data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Shallow copy of a mapping with camelCase keys."""
    return {to_camel_case(k): v for k, v in (data or {}).items()}


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse datetimes, ISO strings or epoch milliseconds; None when absent or unparseable."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if hasattr(value, 'to_datetime'):
        return value.to_datetime()
    try:
        if isinstance(value, (int, float)):
            return pd.Timestamp(value, unit='ms').to_pydatetime()
        return pd.Timestamp(value).to_pydatetime()
    except (ValueError, TypeError, OverflowError):
        return None


def _from_mapping(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Pick the dataclass fields of `cls` out of a mapping in either key style."""
    normalized = snake_keys(data)
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in normalized.items() if k in names}


# ===== RULE OBJECTS =====

@dataclass
class PositionSizingMethod:
    """How position size is chosen (type + type-specific parameters)."""
    type: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'parameters': camel_keys(self.parameters)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'PositionSizingMethod':
        return cls(type=data.get('type'), parameters=snake_keys(data.get('parameters')))


@dataclass
class StopLossRule:
    """Stop loss placement rule."""
    type: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'parameters': camel_keys(self.parameters),
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'StopLossRule':
        return cls(
            type=data.get('type'),
            parameters=snake_keys(data.get('parameters')),
            description=data.get('description', ''),
        )


@dataclass
class TakeProfitRule:
    """Profit target rule."""
    type: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        params = camel_keys(self.parameters)
        if 'targets' in params:
            params['targets'] = [dict(t) for t in params['targets'] or []]
        return {'type': self.type, 'parameters': params, 'description': self.description}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'TakeProfitRule':
        return cls(
            type=data.get('type'),
            parameters=snake_keys(data.get('parameters')),
            description=data.get('description', ''),
        )


# ===== STRATEGY BLOCKS =====

@dataclass
class SetupConditions:
    """Market context a setup requires."""
    market_environment: str = ""
    technical_conditions: List[str] = field(default_factory=list)
    fundamental_conditions: List[str] = field(default_factory=list)
    volatility_requirements: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'marketEnvironment': self.market_environment,
            'technicalConditions': list(self.technical_conditions or []),
            'fundamentalConditions': list(self.fundamental_conditions or []),
            'volatilityRequirements': self.volatility_requirements,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'SetupConditions':
        return cls(**_from_mapping(cls, data))


@dataclass
class EntryTriggers:
    """Signals that open a position."""
    primary_signal: str = ""
    confirmation_signals: List[str] = field(default_factory=list)
    timing_criteria: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'primarySignal': self.primary_signal,
            'confirmationSignals': list(self.confirmation_signals or []),
            'timingCriteria': self.timing_criteria,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'EntryTriggers':
        return cls(**_from_mapping(cls, data))


@dataclass
class RiskManagement:
    """
    Risk rules of a strategy.

    Attributes:
        position_sizing_method: Sizing rule
        max_risk_per_trade: Percent of account risked per trade (2 = 2%)
        stop_loss_rule: Stop placement rule
        take_profit_rule: Target rule
        risk_reward_ratio: Minimum acceptable reward per unit of risk
    """
    position_sizing_method: Optional[PositionSizingMethod] = None
    max_risk_per_trade: Optional[float] = None
    stop_loss_rule: Optional[StopLossRule] = None
    take_profit_rule: Optional[TakeProfitRule] = None
    risk_reward_ratio: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'positionSizingMethod': self.position_sizing_method.to_dict() if self.position_sizing_method else None,
            'maxRiskPerTrade': self.max_risk_per_trade,
            'stopLossRule': self.stop_loss_rule.to_dict() if self.stop_loss_rule else None,
            'takeProfitRule': self.take_profit_rule.to_dict() if self.take_profit_rule else None,
            'riskRewardRatio': self.risk_reward_ratio,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'RiskManagement':
        values = _from_mapping(cls, data)
        sizing = values.get('position_sizing_method')
        stop = values.get('stop_loss_rule')
        target = values.get('take_profit_rule')
        values['position_sizing_method'] = PositionSizingMethod.from_dict(sizing) if isinstance(sizing, Mapping) else sizing
        values['stop_loss_rule'] = StopLossRule.from_dict(stop) if isinstance(stop, Mapping) else stop
        values['take_profit_rule'] = TakeProfitRule.from_dict(target) if isinstance(target, Mapping) else target
        return cls(**values)


# ===== PERFORMANCE =====

@dataclass
class MonthlyReturn:
    """Aggregated results of the trades closed in one calendar month."""
    month: str
    total_return: float
    trades: int
    win_rate: float
    profit_factor: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'month': self.month,
            'return': self.total_return,
            'trades': self.trades,
            'winRate': self.win_rate,
            'profitFactor': self.profit_factor,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'MonthlyReturn':
        values = snake_keys(data)
        return cls(
            month=values.get('month'),
            total_return=values.get('return', values.get('total_return')),
            trades=values.get('trades', 0),
            win_rate=values.get('win_rate', 0.0),
            profit_factor=values.get('profit_factor', 0.0),
        )


@dataclass
class StrategyPerformance:
    """
    Performance metrics derived from a trade ledger.

    Invariants: total_trades == winning_trades + losing_trades;
    win_rate == winning_trades / total_trades * 100 (0 with no trades);
    statistically_significant iff total_trades >= 30.
    """
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    profit_factor: float = 1.0
    expectancy: float = 0.0
    win_rate: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    risk_reward_ratio: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_duration: int = 0
    sample_size: int = 0
    confidence_level: float = 60.0
    statistically_significant: bool = False
    monthly_returns: List[MonthlyReturn] = field(default_factory=list)
    performance_trend: PerformanceTrend = PerformanceTrend.INSUFFICIENT_DATA
    last_calculated: str = field(default_factory=utc_now_iso)
    calculation_version: int = 1
    sharpe_ratio: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == 'monthly_returns':
                value = [m.to_dict() for m in value]
            elif isinstance(value, Enum):
                value = value.value
            data[to_camel_case(f.name)] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'StrategyPerformance':
        values = _from_mapping(cls, data)
        # Non-list values and non-mapping entries are kept as given for validation to report
        monthly = values.get('monthly_returns')
        if monthly is None:
            values['monthly_returns'] = []
        elif isinstance(monthly, (list, tuple)):
            values['monthly_returns'] = [
                MonthlyReturn.from_dict(m) if isinstance(m, Mapping) else m
                for m in monthly
            ]
        trend = values.get('performance_trend')
        if isinstance(trend, str) and trend in PERFORMANCE_TRENDS:
            values['performance_trend'] = PerformanceTrend(trend)
        return cls(**values)


# ===== STRATEGY =====

@dataclass
class ProfessionalStrategy:
    """
    Normalized trading strategy.

    `id` never changes after creation. Legacy playbook text is kept in the
    optional legacy attributes when a migration preserves the original.
    """
    id: str
    title: str
    description: str = ""
    color: str = "#3B82F6"
    methodology: Optional[str] = None
    primary_timeframe: Optional[str] = None
    asset_classes: List[str] = field(default_factory=list)
    setup_conditions: Optional[SetupConditions] = None
    entry_triggers: Optional[EntryTriggers] = None
    risk_management: Optional[RiskManagement] = None
    performance: Optional[StrategyPerformance] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    last_used: Optional[str] = None
    version: int = 1
    is_active: bool = True

    # Legacy fields
    market_conditions: Optional[str] = None
    entry_parameters: Optional[str] = None
    exit_parameters: Optional[str] = None
    times_used: Optional[int] = None
    trades_won: Optional[int] = None
    trades_lost: Optional[int] = None
    legacy_fields: Dict[str, Any] = field(default_factory=dict)

    def copy(self) -> 'ProfessionalStrategy':
        """Deep copy, so callers never share nested rule objects."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if hasattr(value, 'to_dict'):
                value = value.to_dict()
            elif isinstance(value, (list, dict)):
                value = copy.deepcopy(value)
            data[to_camel_case(f.name)] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ProfessionalStrategy':
        values = _from_mapping(cls, data)
        for name, block in (
            ('setup_conditions', SetupConditions),
            ('entry_triggers', EntryTriggers),
            ('risk_management', RiskManagement),
            ('performance', StrategyPerformance),
        ):
            if isinstance(values.get(name), Mapping):
                values[name] = block.from_dict(values[name])
        values.setdefault('id', None)
        values.setdefault('title', None)
        return cls(**values)


# ===== TRADES =====

@dataclass(frozen=True)
class Trade:
    """
    Closed or open trade from the ledger.

    Attributes:
        id: Trade identifier
        symbol: Instrument symbol
        side: 'long' or 'short'
        entry_price: Fill price on entry
        exit_price: Fill price on exit (None while open)
        quantity: Position size in units
        entry_time: Entry timestamp
        exit_time: Exit timestamp
        pnl: Realized P&L
        status: Lifecycle status (Open/Pending/Closed/Cancelled)
        strategy_id: Strategy the trade was attributed to
    """
    id: str
    symbol: str = ""
    side: str = "long"
    entry_price: float = 0.0
    exit_price: Optional[float] = None
    quantity: float = 0.0
    entry_time: Optional[datetime] = None
    exit_time: Optional[datetime] = None
    pnl: float = 0.0
    status: str = TradeStatus.CLOSED.value
    strategy_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'status', getattr(self.status, 'value', self.status))

    @property
    def closed_at(self) -> Optional[datetime]:
        """Time the trade is booked at: exit time, else entry time."""
        return self.exit_time or self.entry_time

    @property
    def is_active(self) -> bool:
        """Open or pending trades still depend on their strategy."""
        return str(self.status).lower() in (TradeStatus.OPEN.value.lower(), TradeStatus.PENDING.value.lower())

    def to_dict(self) -> Dict[str, Any]:
        data = {to_camel_case(f.name): getattr(self, f.name) for f in fields(self)}
        for key in ('entryTime', 'exitTime'):
            if isinstance(data[key], datetime):
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Trade':
        values = _from_mapping(cls, data)
        values['entry_time'] = parse_timestamp(values.get('entry_time'))
        values['exit_time'] = parse_timestamp(values.get('exit_time'))
        values['pnl'] = float(values.get('pnl') or 0.0)
        if isinstance(values.get('status'), Enum):
            values['status'] = values['status'].value
        return cls(**values)
