"""
Validation thresholds for professional strategies.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Tuple

from strategies.base.strategy_model import METHODOLOGY_TYPES


@dataclass(frozen=True)
class StrategyValidationRules:
    """
    Structural limits, business-rule bounds and warning thresholds.

    Risk values are percentages of account equity (2 = 2%).
    """
    title_min_length: int = 3
    title_max_length: int = 100
    allowed_methodologies: Tuple[str, ...] = METHODOLOGY_TYPES
    market_environment_min_length: int = 10
    primary_signal_min_length: int = 10

    min_risk_per_trade: float = 0.1
    max_risk_per_trade: float = 10.0
    min_risk_reward: float = 1.0
    max_risk_reward: float = 10.0

    high_risk_threshold: float = 5.0
    insufficient_trades_threshold: int = 30
    low_sample_threshold: int = 10
    max_drawdown_threshold: float = 20.0
    significant_history_threshold: int = 50

    @property
    def messages(self) -> Dict[str, str]:
        """Warning texts formatted from the current thresholds."""
        return {
            'insufficient_trades': f'Need minimum {self.insufficient_trades_threshold} trades for statistical significance',
            'high_risk': f'Risk per trade exceeds {self.high_risk_threshold:g}% - consider reducing',
            'low_sample': f'Performance metrics may not be reliable with less than {self.low_sample_threshold} trades',
        }

    def with_overrides(self, **overrides: Any) -> 'StrategyValidationRules':
        """
        Copy of these rules with some thresholds replaced.

        Example:
            rules.with_overrides(max_risk_per_trade=5, min_risk_reward=1.5)
        """
        unknown = set(overrides) - set(self.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown validation rule(s): {', '.join(sorted(unknown))}")
        return replace(self, **overrides)

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> 'StrategyValidationRules':
        """Build rules from the `validation` section of config.yaml."""
        config = config or {}
        defaults = cls()
        title = config.get('title', {}) or {}
        risk = config.get('max_risk_per_trade', {}) or {}
        reward = config.get('risk_reward_ratio', {}) or {}
        warnings = config.get('warnings', {}) or {}

        return cls(
            title_min_length=int(title.get('min_length', defaults.title_min_length)),
            title_max_length=int(title.get('max_length', defaults.title_max_length)),
            market_environment_min_length=int(
                config.get('market_environment_min_length', defaults.market_environment_min_length)
            ),
            primary_signal_min_length=int(
                config.get('primary_signal_min_length', defaults.primary_signal_min_length)
            ),
            min_risk_per_trade=float(risk.get('min', defaults.min_risk_per_trade)),
            max_risk_per_trade=float(risk.get('max', defaults.max_risk_per_trade)),
            min_risk_reward=float(reward.get('min', defaults.min_risk_reward)),
            max_risk_reward=float(reward.get('max', defaults.max_risk_reward)),
            high_risk_threshold=float(warnings.get('high_risk_threshold', defaults.high_risk_threshold)),
            insufficient_trades_threshold=int(
                warnings.get('insufficient_trades_threshold', defaults.insufficient_trades_threshold)
            ),
            low_sample_threshold=int(warnings.get('low_sample_threshold', defaults.low_sample_threshold)),
            max_drawdown_threshold=float(
                warnings.get('max_drawdown_threshold', defaults.max_drawdown_threshold)
            ),
            significant_history_threshold=int(
                warnings.get('significant_history_threshold', defaults.significant_history_threshold)
            ),
        )


DEFAULT_VALIDATION_RULES = StrategyValidationRules()
