"""
Strategy Migration Engine

Converts legacy playbooks into professional strategies:
backup -> source validation -> field mapping -> performance initialization
-> target validation, with rollback from the captured backup.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from strategies.base.performance_tracker import confidence_level_for
from strategies.base.strategy_model import (
    MINIMUM_SIGNIFICANT_TRADES,
    RATIO_SENTINEL,
    EntryTriggers,
    PerformanceTrend,
    ProfessionalStrategy,
    RiskManagement,
    SetupConditions,
    StrategyPerformance,
    to_camel_case,
    utc_now_iso,
)
from strategies.migration.backup_store import BackupStore, InMemoryBackupStore
from strategies.migration.field_extraction import extract_technical_conditions
from strategies.migration.legacy_models import (
    DEFAULT_MIGRATION_CONFIG,
    FORM_REQUIRED_FIELDS,
    MIGRATION_DEFAULTS,
    MIGRATION_STEPS,
    LegacyKind,
    LegacyRecord,
    LegacyRecordError,
    MigrationConfig,
    MigrationFormData,
    MigrationResult,
    MigrationStatus,
    MigrationStep,
    MigrationValidationResult,
    RollbackOperation,
    StepStatus,
    parse_legacy_record,
)
from strategies.validation.strategy_validator import StrategyValidator, ValidationResult
from utils.config import ConfigManager, get_config
from utils.logger import get_migration_logger, log_audit

logger = get_migration_logger()

SourceInput = Union[LegacyRecord, Mapping[str, Any]]
FormInput = Union[MigrationFormData, Mapping[str, Any], None]

REQUIRED_PROFESSIONAL_FIELDS = [
    'methodology',
    'primaryTimeframe',
    'assetClasses',
    'positionSizingMethod',
    'maxRiskPerTrade',
    'riskRewardRatio',
]

OPTIONAL_PROFESSIONAL_FIELDS = [
    'technicalConditions',
    'confirmationSignals',
    'timingCriteria',
    'volatilityRequirements',
]

# Form fields each user-input step is responsible for
STEP_FORM_FIELDS = {
    'configure_methodology': ('methodology', 'primary_timeframe'),
    'enhance_setup_conditions': ('technical_conditions',),
    'configure_entry_triggers': ('timing_criteria',),
    'setup_risk_management': (
        'position_sizing_method', 'max_risk_per_trade', 'stop_loss_rule',
        'take_profit_rule', 'risk_reward_ratio',
    ),
}


class StrategyMigrationEngine:
    """
    Migrates legacy playbooks to professional strategies.

    Owns its backup store; callers serialize operations per playbook id.
    """

    def __init__(
        self,
        validator: Optional[StrategyValidator] = None,
        backup_store: Optional[BackupStore] = None,
        config: Optional[MigrationConfig] = None,
        clock: Callable[[], datetime] = None
    ):
        """
        Initialize migration engine.

        Args:
            validator: Validator for migrated strategies
            backup_store: Store for pre-migration snapshots
            config: Default migration options
            clock: Returns the current UTC time (used for ids)
        """
        self.validator = validator or StrategyValidator()
        self.backup_store = backup_store if backup_store is not None else InMemoryBackupStore()
        self.config = config or DEFAULT_MIGRATION_CONFIG
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        logger.info("Strategy Migration Engine initialized")

    @classmethod
    def from_config(cls, config: Optional[ConfigManager] = None) -> 'StrategyMigrationEngine':
        """Engine wired from the `validation` and `migration` sections of the desk configuration."""
        config = config or get_config()
        return cls(
            validator=StrategyValidator.from_config(config),
            backup_store=InMemoryBackupStore(retention_days=config.get_backup_retention_days()),
            config=config.get_migration_config(),
        )

    def _epoch_ms(self) -> int:
        return int(self.clock().timestamp() * 1000)

    # ===== SOURCE VALIDATION =====

    def validate_for_migration(self, source: SourceInput) -> MigrationValidationResult:
        """
        Check whether a legacy playbook can be migrated.

        Errors block migration, warnings do not.
        """
        result = MigrationValidationResult(
            required_fields=list(REQUIRED_PROFESSIONAL_FIELDS),
            optional_fields=list(OPTIONAL_PROFESSIONAL_FIELDS),
        )

        try:
            record = parse_legacy_record(source)
        except LegacyRecordError as e:
            result.add_error('record', 'INVALID_RECORD', str(e),
                             'Check the playbook fields hold the expected types')
            return result

        if not record.id or not record.id.strip():
            result.add_error('id', 'MISSING_ID', 'Playbook ID is required for migration')

        title = record.display_title
        if not title or len(title.strip()) < 3:
            result.add_error('title', 'INVALID_TITLE', 'Playbook title must be at least 3 characters long',
                             'Provide a descriptive title for your strategy')

        if not record.description or len(record.description.strip()) < 10:
            result.add_warning('description', 'SHORT_DESCRIPTION',
                               'Description is very short, consider adding more details',
                               'A detailed description helps with strategy analysis')

        if not record.entry_text or len(record.entry_text.strip()) < 5:
            result.add_warning('entryParameters', 'MINIMAL_ENTRY_PARAMS',
                               'Entry parameters are minimal, you may need to enhance them',
                               'Consider adding more detailed entry criteria during migration')

        if not record.exit_text or len(record.exit_text.strip()) < 5:
            result.add_warning('exitParameters', 'MINIMAL_EXIT_PARAMS',
                               'Exit parameters are minimal, you may need to enhance them',
                               'Consider adding more detailed exit criteria during migration')

        return result

    # ===== MIGRATION =====

    def migrate_playbook(
        self,
        source: SourceInput,
        form_data: FormInput = None,
        config: Union[MigrationConfig, Mapping[str, Any], None] = None
    ) -> MigrationResult:
        """
        Migrate a legacy playbook.

        Args:
            source: Legacy playbook (raw mapping or parsed record)
            form_data: Professional fields supplied by the user
            config: Migration options (engine defaults when omitted)

        Returns:
            MigrationResult. `partial` results carry the target strategy
            together with errors; `failed` results carry no target.
        """
        steps = self.build_migration_steps()
        step = {s.id: s for s in steps}
        current = step['validate_source']

        if isinstance(config, Mapping):
            try:
                config = MigrationConfig.from_dict(config)
            except ValueError as e:
                logger.error(f"Rejected migration options: {e}")
                current.fail(str(e))
                raw_id = source.get('id') if isinstance(source, Mapping) else getattr(source, 'id', None)
                return MigrationResult(
                    status=MigrationStatus.FAILED,
                    source_id=raw_id if isinstance(raw_id, str) else None,
                    errors=[str(e)],
                    steps=steps,
                )
        config = config or self.config

        try:
            record = parse_legacy_record(source)
        except LegacyRecordError as e:
            logger.error(f"Rejected legacy record: {e}")
            current.fail(str(e))
            raw_id = source.get('id') if isinstance(source, Mapping) else None
            return MigrationResult(
                status=MigrationStatus.FAILED,
                source_id=raw_id if isinstance(raw_id, str) else None,
                errors=[str(e)],
                steps=steps,
            )

        migration_id = f"migration_{record.id}_{self._epoch_ms()}"
        migrated_fields: List[str] = []
        skipped_fields: List[str] = []
        errors: List[str] = []
        warnings: List[str] = []
        backup_id: Optional[str] = None

        logger.info(f"Starting migration {migration_id}")

        try:
            if config.create_backup:
                backup_id = self._create_backup(record)

            current.start()
            if config.validate_before_migration:
                validation = self.validate_for_migration(record)
                warnings.extend(w.message for w in validation.warnings)
                if not validation.can_proceed:
                    current.fail('; '.join(e.message for e in validation.errors))
                    logger.warning(f"Migration {migration_id} blocked by source validation")
                    return MigrationResult(
                        status=MigrationStatus.FAILED,
                        source_id=record.id,
                        errors=[e.message for e in validation.errors],
                        warnings=warnings,
                        backup_id=backup_id,
                        rollback_available=backup_id is not None,
                        steps=steps,
                        migration_id=migration_id,
                    )
                current.complete()
            else:
                current.skip()

            form = self._prepare_form_data(record, form_data, config, warnings)

            missing = form.missing_fields()
            if missing and config.require_user_input:
                for name in missing:
                    skipped_fields.append(to_camel_case(name))
                    errors.append(f"Required field '{to_camel_case(name)}' was not provided")

            current = step['preserve_legacy']
            if config.preserve_original:
                current.complete()
            else:
                current.skip()

            current = step['map_basic_fields']
            strategy = self._create_professional_strategy(record, form, config)
            migrated_fields.extend(['id', 'title', 'description', 'color'])
            current.complete()

            for step_id, names in STEP_FORM_FIELDS.items():
                current = step[step_id]
                step_missing = [n for n in names if n in missing]
                if not step_missing:
                    current.complete()
                elif config.require_user_input:
                    current.fail(f"Missing: {', '.join(to_camel_case(n) for n in step_missing)}")
                else:
                    current.skip()

            migrated_fields.extend(self._populated_fields(strategy))

            current = step['initialize_performance']
            migrated_fields.append('performance')
            current.complete()

            if config.preserve_original:
                migrated_fields.extend(['marketConditions', 'entryParameters', 'exitParameters'])
                if record.kind == LegacyKind.PLAYBOOK and record.has_counters:
                    migrated_fields.extend(['timesUsed', 'tradesWon', 'tradesLost'])
                if strategy.legacy_fields:
                    migrated_fields.append('legacyFields')

            current = step['validate_strategy']
            validation = self.validator.validate_strategy(strategy)
            errors.extend(e.message for e in validation.errors)
            warnings.extend(w.message for w in validation.warnings)
            if validation.is_valid:
                current.complete()
            else:
                current.fail(f"{len(validation.errors)} validation error(s)")

            current = step['finalize_migration']
            status = MigrationStatus.PARTIAL if errors else MigrationStatus.SUCCESS
            current.complete()

            log_audit(f"Migrated playbook {record.id} ({status.value}), backup: {backup_id}")

            return MigrationResult(
                status=status,
                source_id=record.id,
                target_id=strategy.id,
                migrated_fields=migrated_fields,
                skipped_fields=skipped_fields,
                errors=errors,
                warnings=warnings,
                backup_id=backup_id,
                rollback_available=backup_id is not None,
                target_strategy=strategy,
                steps=steps,
                migration_id=migration_id,
            )

        except Exception as e:
            logger.exception(f"Migration {migration_id} failed: {e}")
            if current.status != StepStatus.FAILED:
                current.fail(str(e))
            if backup_id is not None:
                self.backup_store.delete(backup_id)

            return MigrationResult(
                status=MigrationStatus.FAILED,
                source_id=record.id,
                migrated_fields=migrated_fields,
                skipped_fields=skipped_fields,
                errors=errors + [str(e) or type(e).__name__],
                warnings=warnings,
                steps=steps,
                migration_id=migration_id,
            )

    def _prepare_form_data(
        self,
        record: LegacyRecord,
        form_data: FormInput,
        config: MigrationConfig,
        warnings: List[str]
    ) -> MigrationFormData:
        """Normalized copy of the form data, with defaults filled in when configured."""
        if form_data is None:
            form = MigrationFormData()
        elif isinstance(form_data, Mapping):
            form = MigrationFormData.from_dict(form_data)
        else:
            form = MigrationFormData.from_dict(form_data.to_dict())

        if not config.auto_fill_defaults:
            return form

        defaults = self.get_default_form_data(record)
        for name in form.__dataclass_fields__:
            current = getattr(form, name)
            default = getattr(defaults, name)
            if current in (None, '', []) and default not in (None, '', []):
                setattr(form, name, default)
                warnings.append(f"Default value applied for {to_camel_case(name)}")

        return form

    def _create_professional_strategy(
        self,
        record: LegacyRecord,
        form: MigrationFormData,
        config: MigrationConfig
    ) -> ProfessionalStrategy:
        now = utc_now_iso()

        strategy = ProfessionalStrategy(
            id=record.id,
            title=record.display_title,
            description=record.description,
            color=record.color,
            methodology=form.methodology,
            primary_timeframe=form.primary_timeframe,
            asset_classes=list(form.asset_classes or []),
            setup_conditions=SetupConditions(
                market_environment=record.setup_text or 'General market conditions',
                technical_conditions=list(form.technical_conditions or []),
                fundamental_conditions=list(form.fundamental_conditions or []),
                volatility_requirements=form.volatility_requirements,
            ),
            entry_triggers=EntryTriggers(
                primary_signal=record.entry_text or 'Entry signal to be defined',
                confirmation_signals=list(form.confirmation_signals or []),
                timing_criteria=form.timing_criteria or '',
            ),
            risk_management=RiskManagement(
                position_sizing_method=copy.deepcopy(form.position_sizing_method),
                max_risk_per_trade=form.max_risk_per_trade,
                stop_loss_rule=copy.deepcopy(form.stop_loss_rule),
                take_profit_rule=copy.deepcopy(form.take_profit_rule),
                risk_reward_ratio=form.risk_reward_ratio,
            ),
            performance=self.initialize_performance(record),
            created_at=record.created_at or now,
            updated_at=now,
            last_used=None,
            version=1,
            is_active=True,
        )

        if config.preserve_original:
            strategy.market_conditions = record.setup_text
            strategy.entry_parameters = record.entry_text
            strategy.exit_parameters = record.exit_text
            if record.kind == LegacyKind.PLAYBOOK:
                strategy.times_used = record.times_used
                strategy.trades_won = record.trades_won
                strategy.trades_lost = record.trades_lost
            else:
                strategy.legacy_fields = {
                    key: value for key, value in (
                        ('name', record.name),
                        ('riskManagement', record.risk_management),
                        ('examples', record.examples),
                        ('updatedAt', record.updated_at),
                    ) if value
                }

        return strategy

    @staticmethod
    def _populated_fields(strategy: ProfessionalStrategy) -> List[str]:
        populated = []
        if strategy.methodology:
            populated.append('methodology')
        if strategy.primary_timeframe:
            populated.append('primaryTimeframe')
        if strategy.asset_classes:
            populated.append('assetClasses')
        populated.extend(['setupConditions', 'entryTriggers'])

        risk = strategy.risk_management
        if any(v is not None for v in (risk.position_sizing_method, risk.max_risk_per_trade,
                                       risk.stop_loss_rule, risk.take_profit_rule, risk.risk_reward_ratio)):
            populated.append('riskManagement')
        return populated

    @staticmethod
    def initialize_performance(record: LegacyRecord) -> StrategyPerformance:
        """
        Performance record seeded from legacy aggregate counters.

        Per-trade P&L is unknown, so expectancy and averages stay 0 and the
        profit factor is estimated from the win rate alone.
        """
        won = (record.trades_won or 0) if record.kind == LegacyKind.PLAYBOOK else 0
        lost = (record.trades_lost or 0) if record.kind == LegacyKind.PLAYBOOK else 0
        total = won + lost

        win_rate = won * 100 / total if total else 0.0
        if total == 0:
            profit_factor = 1.0
        elif lost == 0:
            profit_factor = RATIO_SENTINEL
        else:
            profit_factor = max(1.0, win_rate / (100 - win_rate))

        return StrategyPerformance(
            total_trades=total,
            winning_trades=won,
            losing_trades=lost,
            profit_factor=profit_factor,
            expectancy=0.0,
            win_rate=win_rate,
            average_win=0.0,
            average_loss=0.0,
            risk_reward_ratio=1.0,
            max_drawdown=0.0,
            max_drawdown_duration=0,
            sample_size=total,
            confidence_level=confidence_level_for(total),
            statistically_significant=total >= MINIMUM_SIGNIFICANT_TRADES,
            monthly_returns=[],
            performance_trend=PerformanceTrend.INSUFFICIENT_DATA if total < 10 else PerformanceTrend.STABLE,
            calculation_version=1,
        )

    # ===== BACKUP / ROLLBACK =====

    def _create_backup(self, record: LegacyRecord) -> str:
        backup_id = f"backup_{record.id}_{self._epoch_ms()}"
        suffix = 1
        while backup_id in self.backup_store:
            backup_id = f"backup_{record.id}_{self._epoch_ms()}_{suffix}"
            suffix += 1

        self.backup_store.put(backup_id, record)
        log_audit(f"Created backup {backup_id} for playbook {record.id}")
        return backup_id

    def rollback_migration(self, result: MigrationResult, reason: str) -> RollbackOperation:
        """
        Produce the rollback descriptor for a prior migration.

        The caller deletes the migrated strategy and restores `backup_data`.
        A successful rollback consumes the backup.
        """
        rollback = RollbackOperation(
            migration_id=f"{result.source_id}_{self._epoch_ms()}",
            source_id=result.source_id,
            target_id=result.target_id,
            backup_data=None,
            reason=reason,
        )

        try:
            if not result.backup_id:
                rollback.success = False
                rollback.error = 'Migration has no backup to roll back to'
                return rollback

            entry = self.backup_store.get(result.backup_id)
            if entry is None:
                rollback.success = False
                rollback.error = f'Backup {result.backup_id} not found or expired'
                logger.warning(f"Rollback of {result.source_id} failed: {rollback.error}")
                return rollback

            rollback.backup_data = entry.record
            self.backup_store.delete(result.backup_id)
            rollback.completed_at = utc_now_iso()
            rollback.success = True

            log_audit(f"Rolled back migration of {result.source_id} ({reason})")

        except Exception as e:
            logger.exception(f"Rollback of {result.source_id} failed: {e}")
            rollback.success = False
            rollback.error = str(e) or 'Rollback failed'

        return rollback

    # ===== FORM DEFAULTS =====

    def get_default_form_data(self, source: SourceInput) -> MigrationFormData:
        """Suggested form data for a playbook, derived from its entry text."""
        return MigrationFormData.from_dict({
            'methodology': MIGRATION_DEFAULTS['methodology'],
            'primary_timeframe': MIGRATION_DEFAULTS['primary_timeframe'],
            'asset_classes': list(MIGRATION_DEFAULTS['asset_classes']),
            'technical_conditions': self.extract_technical_conditions(source),
            'fundamental_conditions': [],
            'volatility_requirements': None,
            'confirmation_signals': [],
            'timing_criteria': MIGRATION_DEFAULTS['timing_criteria'],
            'position_sizing_method': copy.deepcopy(MIGRATION_DEFAULTS['position_sizing_method']),
            'max_risk_per_trade': MIGRATION_DEFAULTS['max_risk_per_trade'],
            'stop_loss_rule': copy.deepcopy(MIGRATION_DEFAULTS['stop_loss_rule']),
            'take_profit_rule': copy.deepcopy(MIGRATION_DEFAULTS['take_profit_rule']),
            'risk_reward_ratio': MIGRATION_DEFAULTS['risk_reward_ratio'],
        })

    def extract_technical_conditions(self, source: SourceInput) -> List[str]:
        """Technical condition labels found in a playbook's entry text."""
        try:
            record = parse_legacy_record(source)
        except LegacyRecordError as e:
            logger.warning(f"Cannot extract conditions: {e}")
            return []
        return extract_technical_conditions(record.entry_text)

    # ===== STEPS =====

    @staticmethod
    def build_migration_steps() -> List[MigrationStep]:
        """Fresh, pending copy of the migration workflow."""
        return [MigrationStep(**copy.deepcopy(template)) for template in MIGRATION_STEPS]

    def validate_step_inputs(
        self,
        step_id: str,
        source: SourceInput,
        form_data: FormInput = None
    ) -> MigrationValidationResult:
        """
        Validate what the user supplied for one workflow step.

        Steps without user input always pass, except source validation.
        """
        if step_id == 'validate_source':
            return self.validate_for_migration(source)

        result = MigrationValidationResult()
        known = {template['id'] for template in MIGRATION_STEPS}
        if step_id not in known:
            result.add_error('step', 'UNKNOWN_STEP', f"Unknown migration step: {step_id}")
            return result

        try:
            record = parse_legacy_record(source)
        except LegacyRecordError as e:
            result.add_error('record', 'INVALID_RECORD', str(e))
            return result

        if isinstance(form_data, Mapping) or form_data is None:
            form = MigrationFormData.from_dict(form_data or {})
        else:
            form = MigrationFormData.from_dict(form_data.to_dict())
        rules = self.validator.rules

        if step_id == 'configure_methodology':
            if not form.methodology:
                result.add_error('methodology', 'REQUIRED', 'Methodology is required',
                                 f"Choose one of: {', '.join(rules.allowed_methodologies)}")
            elif form.methodology not in rules.allowed_methodologies:
                result.add_error('methodology', 'INVALID_VALUE',
                                 f"Methodology must be one of: {', '.join(rules.allowed_methodologies)}")
            if not form.primary_timeframe:
                result.add_error('primaryTimeframe', 'REQUIRED', 'Primary timeframe is required',
                                 f"For example {MIGRATION_DEFAULTS['primary_timeframe']}")

        elif step_id == 'enhance_setup_conditions':
            environment = record.setup_text or ''
            if len(environment) < rules.market_environment_min_length:
                result.add_warning('marketEnvironment', 'MINIMAL_MARKET_CONDITIONS',
                                   'Market conditions are minimal, a generic description will be used',
                                   'Describe the market environment this setup needs')
            if not form.technical_conditions:
                result.add_error('technicalConditions', 'REQUIRED', 'At least one technical condition is required',
                                 ', '.join(extract_technical_conditions(record.entry_text)) or None)

        elif step_id == 'configure_entry_triggers':
            signal = record.entry_text or ''
            if len(signal) < rules.primary_signal_min_length:
                result.add_warning('primarySignal', 'MINIMAL_ENTRY_PARAMS',
                                   'Entry parameters are minimal, you may need to enhance them')
            if not form.timing_criteria:
                result.add_warning('timingCriteria', 'RECOMMENDED', 'Timing criteria help with trade execution',
                                   f"For example '{MIGRATION_DEFAULTS['timing_criteria']}'")

        elif step_id == 'setup_risk_management':
            for name in STEP_FORM_FIELDS['setup_risk_management']:
                if getattr(form, name) is None:
                    result.add_error(to_camel_case(name), 'REQUIRED', f"{to_camel_case(name)} is required")

            checks = ValidationResult()
            if form.position_sizing_method is not None:
                checks.merge(self.validator.validate_position_sizing(form.position_sizing_method))
            if form.stop_loss_rule is not None:
                checks.merge(self.validator.validate_stop_loss(form.stop_loss_rule))
            if form.take_profit_rule is not None:
                checks.merge(self.validator.validate_take_profit(form.take_profit_rule))
            if form.max_risk_per_trade is not None or form.risk_reward_ratio is not None:
                checks.merge(self.validator.validate_business_rules(ProfessionalStrategy(
                    id=record.id,
                    title=record.display_title,
                    risk_management=RiskManagement(
                        max_risk_per_trade=form.max_risk_per_trade,
                        risk_reward_ratio=form.risk_reward_ratio,
                    ),
                )))

            for issue in checks.errors:
                result.add_error(issue.field, issue.code, issue.message)
            for issue in checks.warnings:
                result.add_warning(issue.field, issue.code, issue.message)

        return result

    def get_step_status(self, result: MigrationResult) -> Dict[str, str]:
        """Step id -> status for a finished migration."""
        return {s.id: s.status.value for s in result.steps}
