"""
Strategy Validation

Structural, business-rule and lifecycle validation of professional strategies.
"""

from strategies.validation.validation_rules import StrategyValidationRules, DEFAULT_VALIDATION_RULES
from strategies.validation.strategy_validator import StrategyValidator, ValidationResult, ValidationIssue

__all__ = [
    "StrategyValidationRules",
    "DEFAULT_VALIDATION_RULES",
    "StrategyValidator",
    "ValidationResult",
    "ValidationIssue",
]
