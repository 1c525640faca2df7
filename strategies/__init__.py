"""
Strategy Desk - Professional Strategy Management

Converts legacy playbooks into professional strategies, validates them and
tracks their performance.

Architecture:
    - base: Strategy data model and performance tracking
    - validation: Structural and business-rule validation
    - migration: Legacy playbook migration with backup and rollback
"""

__version__ = "1.0.0"
__author__ = "Personal Quant Desk"

from strategies.base import (
    ProfessionalStrategy,
    StrategyPerformance,
    Trade,
    PerformanceTracker,
    compute_performance,
    compare_strategies,
)
from strategies.validation import StrategyValidator, StrategyValidationRules, ValidationResult
from strategies.migration import StrategyMigrationEngine, MigrationConfig, MigrationResult

__all__ = [
    "ProfessionalStrategy",
    "StrategyPerformance",
    "Trade",
    "PerformanceTracker",
    "compute_performance",
    "compare_strategies",
    "StrategyValidator",
    "StrategyValidationRules",
    "ValidationResult",
    "StrategyMigrationEngine",
    "MigrationConfig",
    "MigrationResult",
]
