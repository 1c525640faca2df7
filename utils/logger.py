"""
Logging configuration using loguru for the Strategy Desk.
"""

import os
import sys
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger


class StrategyDeskLogger:
    """Custom logger configuration for the strategy desk."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the desk logger.

        Args:
            config_path: Path to the configuration file
        """
        self.config = self._load_config(config_path)
        self._configured = False

    def _load_config(self, config_path: Optional[str] = None) -> dict:
        """Load logging configuration from yaml file."""
        if config_path and Path(config_path).exists():
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
                return {**self._default_config(), **config.get('logging', {})}

        return self._default_config()

    @staticmethod
    def _default_config() -> dict:
        # File sinks are opt-in through STRATEGY_DESK_LOG_DIR
        log_dir = os.getenv('STRATEGY_DESK_LOG_DIR')
        files = {}
        if log_dir:
            files = {
                'main': f'{log_dir}/strategy_desk.log',
                'audit': f'{log_dir}/audit.log',
                'errors': f'{log_dir}/errors.log',
            }

        return {
            'level': os.getenv('STRATEGY_DESK_LOG_LEVEL', 'INFO'),
            'format': '{time:YYYY-MM-DD HH:mm:ss} | {level} | {extra[name]} | {message}',
            'rotation': '50 MB',
            'retention': '30 days',
            'compression': 'zip',
            'files': files,
        }

    def setup(self):
        """Configure the logger with the specified settings."""
        if self._configured:
            return

        logger.remove()
        logger.configure(extra={'name': 'strategy_desk'})

        logger.add(
            sys.stdout,
            level=self.config['level'],
            format=self.config['format'],
            colorize=True,
            backtrace=True,
            diagnose=False
        )

        for log_type, log_path in (self.config.get('files') or {}).items():
            Path(log_path).parent.mkdir(parents=True, exist_ok=True)

            if log_type == 'errors':
                level = 'ERROR'
            elif log_type == 'audit':
                level = 'AUDIT'
            else:
                level = self.config['level']

            logger.add(
                log_path,
                level=level,
                format=self.config['format'],
                rotation=self.config['rotation'],
                retention=self.config['retention'],
                compression=self.config['compression'],
                backtrace=True,
                diagnose=False,
                enqueue=True
            )

        self._configured = True
        logger.debug("Strategy desk logger initialized")

    def get_logger(self, name: str = None):
        """
        Get a logger instance with optional name binding.

        Args:
            name: Optional name for the logger context

        Returns:
            Logger instance
        """
        if not self._configured:
            self.setup()

        if name:
            return logger.bind(name=name)
        return logger


# Audit events (backups, migrations, rollbacks) sit between INFO and WARNING
logger.level("AUDIT", no=25, color="<cyan>")

desk_logger = StrategyDeskLogger(os.getenv('STRATEGY_DESK_CONFIG', 'config/config.yaml'))

log = desk_logger.get_logger()


def get_performance_logger():
    """Get logger for performance calculation."""
    return desk_logger.get_logger('Performance')


def get_validation_logger():
    """Get logger for strategy validation."""
    return desk_logger.get_logger('Validation')


def get_migration_logger():
    """Get logger for playbook migration."""
    return desk_logger.get_logger('Migration')


def get_backtest_logger():
    """Get logger for backtesting and simulation."""
    return desk_logger.get_logger('Backtesting')


def log_audit(message: str, **kwargs):
    """Log migration audit events."""
    desk_logger.get_logger('Audit').log("AUDIT", message, **kwargs)
