"""
Utilities package for the strategy desk.
"""

from .logger import (
    log,
    get_performance_logger,
    get_validation_logger,
    get_migration_logger,
    get_backtest_logger,
    log_audit
)

from .config import (
    ConfigManager,
    get_config
)

__all__ = [
    # Logger exports
    'log',
    'get_performance_logger',
    'get_validation_logger',
    'get_migration_logger',
    'get_backtest_logger',
    'log_audit',

    # Config exports
    'ConfigManager',
    'get_config'
]
