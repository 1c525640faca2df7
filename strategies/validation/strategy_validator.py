"""
Strategy validation

Validates professional strategies against:
- Structural requirements (required blocks, lengths, allowed values)
- Rule configuration (position sizing, stop loss, take profit)
- Business rules (risk ceiling, risk-reward floor, drawdown)
- Data integrity against the trade ledger
- Lifecycle guards (creation, update, deletion, trade assignment)
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from strategies.base.strategy_model import (
    PERFORMANCE_TRENDS,
    POSITION_SIZING_TYPES,
    STOP_LOSS_TYPES,
    TAKE_PROFIT_TYPES,
    EntryTriggers,
    MonthlyReturn,
    PerformanceTrend,
    PositionSizingMethod,
    ProfessionalStrategy,
    RiskManagement,
    SetupConditions,
    StopLossRule,
    StrategyPerformance,
    TakeProfitRule,
    Trade,
    to_camel_case,
)
from strategies.validation.validation_rules import DEFAULT_VALIDATION_RULES, StrategyValidationRules
from utils.config import ConfigManager, get_config
from utils.logger import get_validation_logger

logger = get_validation_logger()

MONTH_PATTERN = re.compile(r'^\d{4}-\d{2}$')
FOREX_SYMBOL = re.compile(r'^[A-Z]{6}$')
STOCK_SYMBOL = re.compile(r'^[A-Z]{1,5}$')


@dataclass(frozen=True)
class ValidationIssue:
    """Single validation finding."""
    field: str
    code: str
    message: str
    severity: str = 'error'

    def to_dict(self) -> Dict[str, str]:
        return {'field': self.field, 'code': self.code, 'message': self.message, 'severity': self.severity}


@dataclass
class ValidationResult:
    """Result of strategy validation"""
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, field_name: str, code: str, message: str):
        """Add validation error"""
        self.errors.append(ValidationIssue(field_name, code, message, 'error'))

    def add_warning(self, field_name: str, code: str, message: str):
        """Add validation warning"""
        self.warnings.append(ValidationIssue(field_name, code, message, 'warning'))

    def merge(self, other: 'ValidationResult') -> 'ValidationResult':
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self

    def has_code(self, code: str) -> bool:
        return any(issue.code == code for issue in self.errors + self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isValid': self.is_valid,
            'errors': [e.to_dict() for e in self.errors],
            'warnings': [w.to_dict() for w in self.warnings],
        }

    def __str__(self):
        if self.is_valid:
            return "Valid" + (f" (Warnings: {', '.join(w.message for w in self.warnings)})" if self.warnings else "")
        return f"Invalid: {', '.join(e.message for e in self.errors)}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce_block(value: Any, block_cls):
    """Mapping -> block instance; anything else is returned untouched."""
    if isinstance(value, Mapping):
        return block_cls.from_dict(value)
    return value


class StrategyValidator:
    """
    Validates professional strategies.

    Every operation returns a ValidationResult and never raises; values of
    the wrong type are reported as INVALID_TYPE errors.
    """

    def __init__(self, rules: Optional[StrategyValidationRules] = None, **overrides):
        """
        Initialize strategy validator

        Args:
            rules: Validation thresholds (defaults when omitted)
            **overrides: Individual thresholds to replace, e.g. max_risk_per_trade=5
        """
        rules = rules or DEFAULT_VALIDATION_RULES
        self.rules = rules.with_overrides(**overrides) if overrides else rules

    @classmethod
    def from_config(cls, config: Optional[ConfigManager] = None) -> 'StrategyValidator':
        """Validator using the `validation` section of the desk configuration."""
        config = config or get_config()
        return cls(config.get_validation_rules())

    # ===== STRUCTURAL VALIDATION =====

    def validate_strategy(
        self,
        strategy: Union[ProfessionalStrategy, Mapping[str, Any]],
        rules: Optional[StrategyValidationRules] = None
    ) -> ValidationResult:
        """
        Validate a complete professional strategy.

        Args:
            strategy: Strategy (or its dict form) to validate
            rules: Thresholds for this call only

        Returns:
            ValidationResult
        """
        rules = rules or self.rules
        result = ValidationResult()

        if isinstance(strategy, Mapping):
            try:
                strategy = ProfessionalStrategy.from_dict(strategy)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Unreadable strategy mapping: {e}")
                result.add_error('strategy', 'INVALID_TYPE', f'Strategy fields have invalid types: {e}')
                return result
        if not isinstance(strategy, ProfessionalStrategy):
            result.add_error('strategy', 'INVALID_TYPE', 'Strategy must be a ProfessionalStrategy')
            return result

        self._validate_title(strategy.title, rules, result)
        self._validate_methodology(strategy.methodology, rules, result)
        self._validate_setup_conditions(strategy.setup_conditions, rules, result)
        self._validate_entry_triggers(strategy.entry_triggers, rules, result)
        self._validate_risk_management(strategy.risk_management, rules, result)

        if strategy.performance is not None:
            result.merge(self.validate_performance(strategy.performance, rules))

        if not isinstance(strategy.primary_timeframe, str) or not strategy.primary_timeframe.strip():
            result.add_error('primaryTimeframe', 'REQUIRED', 'Primary timeframe is required')

        if not strategy.asset_classes:
            result.add_warning('assetClasses', 'RECOMMENDED',
                               'Specifying asset classes helps with strategy organization')
        elif not isinstance(strategy.asset_classes, (list, tuple)):
            result.add_error('assetClasses', 'INVALID_TYPE', 'Asset classes must be a list')

        logger.debug(f"Validated strategy {strategy.id}: {len(result.errors)} errors, "
                     f"{len(result.warnings)} warnings")
        return result

    def _validate_title(self, title: Any, rules: StrategyValidationRules, result: ValidationResult):
        if _blank(title):
            result.add_error('title', 'REQUIRED', 'Strategy title is required')
        elif not isinstance(title, str):
            result.add_error('title', 'INVALID_TYPE', 'Strategy title must be text')
        elif len(title) < rules.title_min_length:
            result.add_error('title', 'MIN_LENGTH', f'Title must be at least {rules.title_min_length} characters')
        elif len(title) > rules.title_max_length:
            result.add_error('title', 'MAX_LENGTH', f'Title must not exceed {rules.title_max_length} characters')

    def _validate_methodology(self, methodology: Any, rules: StrategyValidationRules, result: ValidationResult):
        methodology = getattr(methodology, 'value', methodology)
        if _blank(methodology):
            result.add_error('methodology', 'REQUIRED', 'Methodology is required')
        elif methodology not in rules.allowed_methodologies:
            result.add_error('methodology', 'INVALID_VALUE',
                             f"Methodology must be one of: {', '.join(rules.allowed_methodologies)}")

    def _validate_setup_conditions(self, setup: Any, rules: StrategyValidationRules, result: ValidationResult):
        setup = _coerce_block(setup, SetupConditions)
        if setup is None:
            result.add_error('setupConditions', 'REQUIRED', 'Setup conditions are required')
            return
        if not isinstance(setup, SetupConditions):
            result.add_error('setupConditions', 'INVALID_TYPE', 'Setup conditions must be a structured block')
            return

        environment = setup.market_environment
        if environment is not None and not isinstance(environment, str):
            result.add_error('setupConditions.marketEnvironment', 'INVALID_TYPE',
                             'Market environment must be text')
        elif not environment or len(environment) < rules.market_environment_min_length:
            result.add_error('setupConditions.marketEnvironment', 'MIN_LENGTH',
                             f'Market environment description must be at least '
                             f'{rules.market_environment_min_length} characters')

        if not isinstance(setup.technical_conditions, (list, tuple)) or not setup.technical_conditions:
            result.add_error('setupConditions.technicalConditions', 'REQUIRED',
                             'At least one technical condition is required')

    def _validate_entry_triggers(self, triggers: Any, rules: StrategyValidationRules, result: ValidationResult):
        triggers = _coerce_block(triggers, EntryTriggers)
        if triggers is None:
            result.add_error('entryTriggers', 'REQUIRED', 'Entry triggers are required')
            return
        if not isinstance(triggers, EntryTriggers):
            result.add_error('entryTriggers', 'INVALID_TYPE', 'Entry triggers must be a structured block')
            return

        signal = triggers.primary_signal
        if signal is not None and not isinstance(signal, str):
            result.add_error('entryTriggers.primarySignal', 'INVALID_TYPE', 'Primary signal must be text')
        elif not signal or len(signal) < rules.primary_signal_min_length:
            result.add_error('entryTriggers.primarySignal', 'MIN_LENGTH',
                             f'Primary signal must be at least {rules.primary_signal_min_length} characters')

        if not triggers.confirmation_signals:
            result.add_warning('entryTriggers.confirmationSignals', 'RECOMMENDED',
                               'Confirmation signals are recommended for better strategy reliability')

    def _validate_risk_management(self, risk: Any, rules: StrategyValidationRules, result: ValidationResult):
        risk = _coerce_block(risk, RiskManagement)
        if risk is None:
            result.add_error('riskManagement', 'REQUIRED', 'Risk management configuration is required')
            return
        if not isinstance(risk, RiskManagement):
            result.add_error('riskManagement', 'INVALID_TYPE', 'Risk management must be a structured block')
            return

        max_risk = risk.max_risk_per_trade
        if max_risk is None:
            result.add_error('riskManagement.maxRiskPerTrade', 'REQUIRED', 'Maximum risk per trade is required')
        elif not _is_number(max_risk):
            result.add_error('riskManagement.maxRiskPerTrade', 'INVALID_TYPE',
                             'Maximum risk per trade must be a number')
        else:
            if max_risk < rules.min_risk_per_trade:
                result.add_error('riskManagement.maxRiskPerTrade', 'MIN_VALUE',
                                 f'Risk per trade cannot be less than {rules.min_risk_per_trade}%')
            if max_risk > rules.max_risk_per_trade:
                result.add_error('riskManagement.maxRiskPerTrade', 'BUSINESS_RULE_VIOLATION',
                                 f'Risk per trade cannot exceed {rules.max_risk_per_trade}%')
            if max_risk > rules.high_risk_threshold:
                result.add_warning('riskManagement.maxRiskPerTrade', 'HIGH_RISK', rules.messages['high_risk'])

        ratio = risk.risk_reward_ratio
        if ratio is None:
            result.add_error('riskManagement.riskRewardRatio', 'REQUIRED', 'Risk-reward ratio is required')
        elif not _is_number(ratio):
            result.add_error('riskManagement.riskRewardRatio', 'INVALID_TYPE', 'Risk-reward ratio must be a number')
        else:
            if ratio < rules.min_risk_reward:
                result.add_error('riskManagement.riskRewardRatio', 'BUSINESS_RULE_VIOLATION',
                                 f'Risk-reward ratio cannot be less than {rules.min_risk_reward}:1')
            if ratio > rules.max_risk_reward:
                result.add_warning('riskManagement.riskRewardRatio', 'HIGH_VALUE',
                                   f"Risk-reward ratio of {ratio}:1 is very high - ensure it's realistic")

        result.merge(self.validate_position_sizing(risk.position_sizing_method))
        result.merge(self.validate_stop_loss(risk.stop_loss_rule))
        result.merge(self.validate_take_profit(risk.take_profit_rule))

    # ===== RULE VALIDATION =====

    @staticmethod
    def _require_positive(params: Dict[str, Any], key: str, prefix: str, label: str, result: ValidationResult):
        value = params.get(key)
        if not _is_number(value) or value <= 0:
            result.add_error(f'{prefix}.parameters.{to_camel_case(key)}', 'REQUIRED_POSITIVE',
                             f'{label} must be a positive number')
            return None
        return value

    def validate_position_sizing(self, method: Any) -> ValidationResult:
        """Validate position sizing method configuration."""
        result = ValidationResult()
        prefix = 'riskManagement.positionSizingMethod'
        method = _coerce_block(method, PositionSizingMethod)

        if method is None:
            result.add_error(prefix, 'REQUIRED', 'Position sizing method is required')
            return result
        if not isinstance(method, PositionSizingMethod):
            result.add_error(prefix, 'INVALID_TYPE', 'Position sizing method must be a structured rule')
            return result

        if method.type not in POSITION_SIZING_TYPES:
            result.add_error(f'{prefix}.type', 'INVALID_VALUE',
                             f"Position sizing type must be one of: {', '.join(POSITION_SIZING_TYPES)}")

        params = method.parameters
        if not isinstance(params, Mapping):
            result.add_error(f'{prefix}.parameters', 'REQUIRED', 'Position sizing parameters are required')
            return result

        if method.type == 'FixedPercentage':
            percentage = self._require_positive(params, 'percentage', prefix, 'Percentage', result)
            if percentage is not None and percentage > 10:
                result.add_warning(f'{prefix}.parameters.percentage', 'HIGH_VALUE',
                                   'Position size percentage above 10% is very aggressive')
        elif method.type == 'FixedDollar':
            self._require_positive(params, 'dollar_amount', prefix, 'Dollar amount', result)
        elif method.type == 'VolatilityBased':
            self._require_positive(params, 'atr_multiplier', prefix, 'ATR multiplier', result)
            self._require_positive(params, 'atr_period', prefix, 'ATR period', result)
        elif method.type == 'KellyFormula':
            win_rate = params.get('win_rate')
            if not _is_number(win_rate) or not 0 < win_rate < 100:
                result.add_error(f'{prefix}.parameters.winRate', 'INVALID_RANGE',
                                 'Win rate must be between 0 and 100')
            self._require_positive(params, 'avg_win', prefix, 'Average win', result)
            avg_loss = params.get('avg_loss')
            if not _is_number(avg_loss) or avg_loss >= 0:
                result.add_error(f'{prefix}.parameters.avgLoss', 'REQUIRED_NEGATIVE',
                                 'Average loss must be a negative number')

        return result

    def validate_stop_loss(self, rule: Any) -> ValidationResult:
        """Validate stop loss rule configuration."""
        result = ValidationResult()
        prefix = 'riskManagement.stopLossRule'
        rule = _coerce_block(rule, StopLossRule)

        if rule is None:
            result.add_error(prefix, 'REQUIRED', 'Stop loss rule is required')
            return result
        if not isinstance(rule, StopLossRule):
            result.add_error(prefix, 'INVALID_TYPE', 'Stop loss rule must be a structured rule')
            return result

        if rule.type not in STOP_LOSS_TYPES:
            result.add_error(f'{prefix}.type', 'INVALID_VALUE',
                             f"Stop loss type must be one of: {', '.join(STOP_LOSS_TYPES)}")
        if _blank(rule.description) or not isinstance(rule.description, str):
            result.add_error(f'{prefix}.description', 'REQUIRED', 'Stop loss rule description is required')

        params = rule.parameters
        if not isinstance(params, Mapping):
            result.add_error(f'{prefix}.parameters', 'REQUIRED', 'Stop loss parameters are required')
            return result

        if rule.type == 'ATRBased':
            self._require_positive(params, 'atr_multiplier', prefix, 'ATR multiplier', result)
            self._require_positive(params, 'atr_period', prefix, 'ATR period', result)
        elif rule.type == 'PercentageBased':
            percentage = self._require_positive(params, 'percentage', prefix, 'Stop loss percentage', result)
            if percentage is not None and percentage > 10:
                result.add_warning(f'{prefix}.parameters.percentage', 'HIGH_VALUE',
                                   'Stop loss percentage above 10% is very wide')
        elif rule.type == 'StructureBased':
            if _blank(params.get('structure_type')):
                result.add_error(f'{prefix}.parameters.structureType', 'REQUIRED',
                                 'Structure type is required for structure-based stops')
        elif rule.type == 'VolatilityBased':
            self._require_positive(params, 'volatility_multiplier', prefix, 'Volatility multiplier', result)

        return result

    def validate_take_profit(self, rule: Any) -> ValidationResult:
        """Validate take profit rule configuration."""
        result = ValidationResult()
        prefix = 'riskManagement.takeProfitRule'
        rule = _coerce_block(rule, TakeProfitRule)

        if rule is None:
            result.add_error(prefix, 'REQUIRED', 'Take profit rule is required')
            return result
        if not isinstance(rule, TakeProfitRule):
            result.add_error(prefix, 'INVALID_TYPE', 'Take profit rule must be a structured rule')
            return result

        if rule.type not in TAKE_PROFIT_TYPES:
            result.add_error(f'{prefix}.type', 'INVALID_VALUE',
                             f"Take profit type must be one of: {', '.join(TAKE_PROFIT_TYPES)}")
        if _blank(rule.description) or not isinstance(rule.description, str):
            result.add_error(f'{prefix}.description', 'REQUIRED', 'Take profit rule description is required')

        params = rule.parameters
        if not isinstance(params, Mapping):
            result.add_error(f'{prefix}.parameters', 'REQUIRED', 'Take profit parameters are required')
            return result

        if rule.type == 'RiskRewardRatio':
            ratio = self._require_positive(params, 'ratio', prefix, 'Risk-reward ratio', result)
            if ratio is not None and ratio < 1:
                result.add_warning(f'{prefix}.parameters.ratio', 'LOW_VALUE',
                                   'Risk-reward ratio below 1:1 means taking more risk than potential reward')
        elif rule.type == 'StructureBased':
            if _blank(params.get('structure_type')):
                result.add_error(f'{prefix}.parameters.structureType', 'REQUIRED',
                                 'Structure type is required for structure-based targets')
        elif rule.type == 'TrailingStop':
            self._require_positive(params, 'trail_distance', prefix, 'Trail distance', result)
            if _blank(params.get('trail_type')):
                result.add_error(f'{prefix}.parameters.trailType', 'REQUIRED',
                                 'Trail type is required for trailing stops')
        elif rule.type == 'PartialTargets':
            self._validate_partial_targets(params.get('targets'), prefix, result)

        return result

    @staticmethod
    def _validate_partial_targets(targets: Any, prefix: str, result: ValidationResult):
        if not isinstance(targets, (list, tuple)) or not targets:
            result.add_error(f'{prefix}.parameters.targets', 'REQUIRED',
                             'At least one target is required for partial targets')
            return

        total_percentage = 0.0
        for index, target in enumerate(targets):
            target = target if isinstance(target, Mapping) else {}
            percentage = target.get('percentage')
            ratio = target.get('ratio')
            if not _is_number(percentage) or not 0 < percentage <= 100:
                result.add_error(f'{prefix}.parameters.targets[{index}].percentage', 'INVALID_RANGE',
                                 'Target percentage must be between 0 and 100')
            else:
                total_percentage += percentage
            if not _is_number(ratio) or ratio <= 0:
                result.add_error(f'{prefix}.parameters.targets[{index}].ratio', 'REQUIRED_POSITIVE',
                                 'Target ratio must be a positive number')

        if total_percentage > 100:
            result.add_error(f'{prefix}.parameters.targets', 'INVALID_TOTAL',
                             'Total percentage of all targets cannot exceed 100%')

    # ===== PERFORMANCE VALIDATION =====

    def validate_performance(
        self,
        performance: Any,
        rules: Optional[StrategyValidationRules] = None
    ) -> ValidationResult:
        """Validate the internal consistency of a performance record."""
        rules = rules or self.rules
        result = ValidationResult()

        if isinstance(performance, Mapping):
            try:
                performance = StrategyPerformance.from_dict(performance)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Unreadable performance mapping: {e}")
                result.add_error('performance', 'INVALID_TYPE', f'Performance fields have invalid types: {e}')
                return result
        if not isinstance(performance, StrategyPerformance):
            result.add_error('performance', 'INVALID_TYPE', 'Performance must be a performance record')
            return result

        numeric_fields = (
            'total_trades', 'winning_trades', 'losing_trades', 'profit_factor', 'expectancy',
            'win_rate', 'average_win', 'average_loss', 'risk_reward_ratio',
        )
        invalid = set()
        for name in numeric_fields:
            if not _is_number(getattr(performance, name)):
                invalid.add(name)
                result.add_error(f'performance.{to_camel_case(name)}', 'REQUIRED_NUMERIC',
                                 f'{to_camel_case(name)} must be a valid number')

        counts_ok = not invalid & {'total_trades', 'winning_trades', 'losing_trades'}
        if counts_ok and performance.total_trades != performance.winning_trades + performance.losing_trades:
            result.add_error('performance.totalTrades', 'INCONSISTENT',
                             'Total trades must equal winning trades plus losing trades')

        if (not invalid & {'total_trades', 'winning_trades', 'win_rate'}) and performance.total_trades > 0:
            calculated = performance.winning_trades / performance.total_trades * 100
            if abs(performance.win_rate - calculated) > 0.1:
                result.add_error('performance.winRate', 'INCONSISTENT',
                                 'Win rate does not match calculated value from winning/total trades')

        if 'total_trades' not in invalid and performance.total_trades < rules.insufficient_trades_threshold:
            result.add_warning('performance.totalTrades', 'INSUFFICIENT_DATA',
                               rules.messages['insufficient_trades'])

        trend = getattr(performance.performance_trend, 'value', performance.performance_trend)
        if trend and trend not in PERFORMANCE_TRENDS:
            result.add_error('performance.performanceTrend', 'INVALID_VALUE',
                             f"Performance trend must be one of: {', '.join(PERFORMANCE_TRENDS)}")

        monthly_returns = performance.monthly_returns or []
        if not isinstance(monthly_returns, (list, tuple)):
            result.add_error('performance.monthlyReturns', 'INVALID_TYPE', 'Monthly returns must be a list')
            monthly_returns = []

        for index, monthly in enumerate(monthly_returns):
            if not isinstance(monthly, MonthlyReturn):
                result.add_error(f'performance.monthlyReturns[{index}]', 'INVALID_TYPE',
                                 'Monthly return must be a monthly return record')
                continue
            if not isinstance(monthly.month, str) or not MONTH_PATTERN.match(monthly.month):
                result.add_error(f'performance.monthlyReturns[{index}].month', 'INVALID_FORMAT',
                                 'Month must be in YYYY-MM format')
            if not _is_number(monthly.total_return):
                result.add_error(f'performance.monthlyReturns[{index}].return', 'REQUIRED_NUMERIC',
                                 'Monthly return must be a valid number')

        return result

    # ===== BUSINESS RULES =====

    def validate_business_rules(self, strategy: ProfessionalStrategy) -> ValidationResult:
        """
        Validate business rules for strategy operations.

        Risk above the ceiling and risk-reward under the floor are errors;
        weak or thin performance history produces warnings.
        """
        result = ValidationResult()
        rules = self.rules

        risk = _coerce_block(strategy.risk_management, RiskManagement)
        if isinstance(risk, RiskManagement):
            if risk.max_risk_per_trade is not None and not _is_number(risk.max_risk_per_trade):
                result.add_error('riskManagement.maxRiskPerTrade', 'INVALID_TYPE',
                                 'Maximum risk per trade must be a number')
            elif risk.max_risk_per_trade is not None and risk.max_risk_per_trade > rules.max_risk_per_trade:
                result.add_error('riskManagement.maxRiskPerTrade', 'BUSINESS_RULE_VIOLATION',
                                 f'Risk per trade exceeds maximum allowed ({rules.max_risk_per_trade}%)')

            if risk.risk_reward_ratio is not None and not _is_number(risk.risk_reward_ratio):
                result.add_error('riskManagement.riskRewardRatio', 'INVALID_TYPE',
                                 'Risk-reward ratio must be a number')
            elif risk.risk_reward_ratio is not None and risk.risk_reward_ratio < rules.min_risk_reward:
                result.add_error('riskManagement.riskRewardRatio', 'BUSINESS_RULE_VIOLATION',
                                 f'Risk-reward ratio below minimum required ({rules.min_risk_reward}:1)')

        performance = strategy.performance
        if isinstance(performance, StrategyPerformance):
            if not self.has_statistical_significance(strategy):
                result.add_warning('performance', 'INSUFFICIENT_DATA',
                                   'Strategy lacks sufficient trade data for reliable performance metrics')

            if performance.performance_trend == PerformanceTrend.DECLINING:
                result.add_warning('performance.performanceTrend', 'PERFORMANCE_CONCERN',
                                   'Strategy shows declining performance trend - consider review')

            if _is_number(performance.max_drawdown) and performance.max_drawdown > rules.max_drawdown_threshold:
                result.add_warning('performance.maxDrawdown', 'HIGH_DRAWDOWN',
                                   f'Maximum drawdown exceeds {rules.max_drawdown_threshold:g}% - high risk strategy')

        if not result.is_valid:
            logger.warning(f"Strategy {strategy.id} violates {len(result.errors)} business rule(s)")
        return result

    def has_statistical_significance(self, strategy: ProfessionalStrategy) -> bool:
        performance = strategy.performance
        if not isinstance(performance, StrategyPerformance) or not _is_number(performance.total_trades):
            return False
        return (performance.total_trades >= self.rules.insufficient_trades_threshold
                and bool(performance.statistically_significant))

    # ===== LEDGER CHECKS =====

    def validate_data_integrity(self, strategy: ProfessionalStrategy, trades: Sequence[Trade]) -> ValidationResult:
        """Check the strategy's performance record against its related trades."""
        result = ValidationResult()
        trades = list(trades or [])

        mismatched = [t for t in trades if t.strategy_id != strategy.id]
        if mismatched:
            result.add_error('trades', 'DATA_INCONSISTENCY',
                             f'{len(mismatched)} trades have mismatched strategy IDs')

        performance = strategy.performance
        if isinstance(performance, StrategyPerformance) and trades:
            actual_total = len(trades)
            winning = sum(1 for t in trades if (t.pnl or 0) > 0)
            losing = actual_total - winning

            if performance.total_trades != actual_total:
                result.add_warning('performance.totalTrades', 'METRIC_MISMATCH',
                                   f"Reported total trades ({performance.total_trades}) doesn't match "
                                   f"actual trades ({actual_total})")
            if performance.winning_trades != winning:
                result.add_warning('performance.winningTrades', 'METRIC_MISMATCH',
                                   f"Reported winning trades ({performance.winning_trades}) doesn't match "
                                   f"actual ({winning})")
            if performance.losing_trades != losing:
                result.add_warning('performance.losingTrades', 'METRIC_MISMATCH',
                                   f"Reported losing trades ({performance.losing_trades}) doesn't match "
                                   f"actual ({losing})")

        return result

    def validate_for_deletion(self, strategy: ProfessionalStrategy, trades: Sequence[Trade]) -> ValidationResult:
        """Check whether a strategy can be deleted without orphaning trades."""
        result = ValidationResult()
        trades = list(trades or [])

        active = [t for t in trades if t.is_active]
        if active:
            result.add_error('trades', 'ACTIVE_DEPENDENCIES',
                             f'Cannot delete strategy with {len(active)} active trades')

        if trades:
            result.add_warning('trades', 'DATA_LOSS_WARNING',
                               f'Deleting strategy will affect {len(trades)} historical trades')

        performance = strategy.performance
        if (isinstance(performance, StrategyPerformance) and _is_number(performance.total_trades)
                and performance.total_trades > self.rules.significant_history_threshold):
            result.add_warning('performance', 'SIGNIFICANT_DATA_LOSS',
                               'Strategy has significant performance history that will be lost')

        return result

    # ===== LIFECYCLE GUARDS =====

    def validate_for_creation(self, strategy: ProfessionalStrategy) -> ValidationResult:
        """Stricter validation applied before a strategy is first stored."""
        result = self.validate_strategy(strategy)

        if _blank(strategy.id) or not isinstance(strategy.id, str):
            result.add_error('id', 'REQUIRED', 'Strategy ID is required for creation')
        if _blank(strategy.created_at):
            result.add_error('createdAt', 'REQUIRED', 'Creation timestamp is required')

        return result

    def validate_for_update(self, strategy: ProfessionalStrategy, existing: ProfessionalStrategy) -> ValidationResult:
        """Validation applied to an edit of an existing strategy."""
        result = self.validate_strategy(strategy)

        if strategy.id and strategy.id != existing.id:
            result.add_error('id', 'IMMUTABLE', 'Strategy ID cannot be changed after creation')

        new_perf, old_perf = strategy.performance, existing.performance
        if isinstance(new_perf, StrategyPerformance) and isinstance(old_perf, StrategyPerformance):
            if (_is_number(new_perf.total_trades) and _is_number(old_perf.total_trades)
                    and new_perf.total_trades < old_perf.total_trades):
                result.add_warning('performance.totalTrades', 'DATA_REGRESSION',
                                   'Total trades count is decreasing - this may indicate data loss')

        return result

    def validate_trade_assignment(self, trade: Trade, strategy: ProfessionalStrategy) -> ValidationResult:
        """Check that a trade can be attributed to a strategy."""
        result = ValidationResult()

        if trade.strategy_id != strategy.id:
            result.add_error('strategyId', 'STRATEGY_MISMATCH', 'Trade strategy ID does not match target strategy')

        asset_classes = strategy.asset_classes or []
        if asset_classes and trade.symbol:
            if FOREX_SYMBOL.match(trade.symbol) and 'Forex' not in asset_classes:
                result.add_warning('symbol', 'ASSET_CLASS_MISMATCH',
                                   'Trade appears to be Forex but strategy is not configured for Forex')
            if STOCK_SYMBOL.match(trade.symbol) and 'Stocks' not in asset_classes:
                result.add_warning('symbol', 'ASSET_CLASS_MISMATCH',
                                   'Trade appears to be Stock but strategy is not configured for Stocks')

        return result

    def validate_multiple_strategies(self, strategies: Sequence[ProfessionalStrategy]) -> Dict[str, Any]:
        """
        Validate a batch of strategies.

        Returns:
            Dict with per-strategy `results` and a `summary` of counts
        """
        results = [
            {'strategy_id': s.id, 'validation': self.validate_strategy(s)}
            for s in strategies
        ]

        summary = {
            'total_strategies': len(results),
            'valid_strategies': sum(1 for r in results if r['validation'].is_valid),
            'invalid_strategies': sum(1 for r in results if not r['validation'].is_valid),
            'strategies_with_warnings': sum(1 for r in results if r['validation'].warnings),
        }

        logger.info(f"Validated {summary['total_strategies']} strategies: "
                    f"{summary['invalid_strategies']} invalid")
        return {'results': results, 'summary': summary}

    # ===== REPORTING =====

    @staticmethod
    def format_messages(result: ValidationResult) -> List[str]:
        """User-facing message per issue, errors first."""
        messages = [f'Error in {e.field}: {e.message}' for e in result.errors]
        messages.extend(f'Warning in {w.field}: {w.message}' for w in result.warnings)
        return messages

    @staticmethod
    def summarize(result: ValidationResult) -> str:
        if result.is_valid and not result.warnings:
            return 'All validations passed'
        if result.is_valid:
            return f'Valid with {len(result.warnings)} warning(s)'
        return f'Invalid: {len(result.errors)} error(s), {len(result.warnings)} warning(s)'
