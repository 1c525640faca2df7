"""
Configuration utilities for the strategy desk.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from utils.logger import log


DEFAULT_CONFIG_PATH = "config/config.yaml"


class ConfigManager:
    """Manages desk configuration."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager."""
        self.config_path = Path(
            config_path or os.getenv('STRATEGY_DESK_CONFIG', DEFAULT_CONFIG_PATH)
        )
        self.config: Dict[str, Any] = {}
        self.load_config()

    def load_config(self):
        """Load configuration from file, falling back to built-in defaults."""
        load_dotenv()

        if not self.config_path.exists():
            log.warning(f"Configuration file not found: {self.config_path}, using defaults")
            self.config = {}
            return

        with open(self.config_path, 'r') as f:
            self.config = yaml.safe_load(f) or {}

        self._replace_env_vars(self.config)

        log.info(f"Configuration loaded from {self.config_path}")

    def _replace_env_vars(self, config: Any) -> Any:
        """Replace environment variable placeholders in configuration."""
        if isinstance(config, dict):
            for key, value in config.items():
                if isinstance(value, str) and value.startswith('${') and value.endswith('}'):
                    env_var = value[2:-1]
                    config[key] = os.getenv(env_var, value)
                elif isinstance(value, (dict, list)):
                    self._replace_env_vars(value)
        elif isinstance(config, list):
            for index, item in enumerate(config):
                if isinstance(item, str) and item.startswith('${') and item.endswith('}'):
                    config[index] = os.getenv(item[2:-1], item)
                elif isinstance(item, (dict, list)):
                    self._replace_env_vars(item)

        return config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_validation_rules(self):
        """Get strategy validation rules with any configured overrides applied."""
        from strategies.validation.validation_rules import StrategyValidationRules

        return StrategyValidationRules.from_dict(self.get('validation', {}) or {})

    def get_migration_config(self):
        """Get migration configuration."""
        from strategies.migration.legacy_models import MigrationConfig

        return MigrationConfig.from_dict(self.get('migration.defaults', {}) or {})

    def get_backup_retention_days(self) -> Optional[float]:
        """Get how long migration backups stay available for rollback (None = forever)."""
        return self.get('migration.backup_retention_days', 30)

    def get_simulation_config(self) -> Dict[str, Any]:
        """Get Monte Carlo simulation configuration."""
        simulation = self.get('simulation', {}) or {}
        return {
            'n_simulations': int(simulation.get('n_simulations', 1000)),
            'confidence_level': float(simulation.get('confidence_level', 0.95)),
            'random_seed': simulation.get('random_seed'),
        }

    def get_performance_config(self) -> Dict[str, Any]:
        """Get performance calculation configuration."""
        performance = self.get('performance', {}) or {}
        return {
            'minimum_trades': int(performance.get('minimum_trades', 30)),
            'trend_analysis_periods': int(performance.get('trend_analysis_periods', 6)),
            'trend_threshold': float(performance.get('trend_threshold', 0.5)),
        }

    def validate_config(self) -> bool:
        """Validate configuration completeness."""
        required_sections = [
            'validation',
            'migration',
            'simulation',
        ]

        for section in required_sections:
            if section not in self.config:
                log.error(f"Missing required configuration section: {section}")
                return False

        log.info("Configuration validation passed")
        return True

    def reload_config(self):
        """Reload configuration from file."""
        log.info("Reloading configuration...")
        self.load_config()


_config_manager: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """Get the shared configuration manager, loading it on first use."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
