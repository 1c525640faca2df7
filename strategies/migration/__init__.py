"""
Playbook Migration

Migration of legacy playbooks to professional strategies:
- Legacy record parsing (tagged variants)
- Backup store with retention
- Field extraction heuristics
- Migration engine with rollback
"""

from strategies.migration.legacy_models import (
    LegacyKind,
    LegacyPlaybook,
    LegacyStoredPlaybook,
    LegacyRecordError,
    parse_legacy_record,
    MigrationConfig,
    MigrationFormData,
    MigrationResult,
    MigrationStatus,
    MigrationStep,
    MigrationValidationResult,
    RollbackOperation,
    StepStatus,
    DEFAULT_MIGRATION_CONFIG,
    MIGRATION_DEFAULTS,
)
from strategies.migration.backup_store import BackupStore, InMemoryBackupStore
from strategies.migration.field_extraction import extract_technical_conditions
from strategies.migration.migration_engine import StrategyMigrationEngine

__all__ = [
    "LegacyKind",
    "LegacyPlaybook",
    "LegacyStoredPlaybook",
    "LegacyRecordError",
    "parse_legacy_record",
    "MigrationConfig",
    "MigrationFormData",
    "MigrationResult",
    "MigrationStatus",
    "MigrationStep",
    "MigrationValidationResult",
    "RollbackOperation",
    "StepStatus",
    "DEFAULT_MIGRATION_CONFIG",
    "MIGRATION_DEFAULTS",
    "BackupStore",
    "InMemoryBackupStore",
    "extract_technical_conditions",
    "StrategyMigrationEngine",
]
