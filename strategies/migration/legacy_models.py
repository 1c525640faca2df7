"""
Legacy playbook records and migration bookkeeping types.

Legacy records come in two shapes: the UI playbook (title / marketConditions /
entryParameters ...) and the stored playbook (name / setup / entry ...).
`parse_legacy_record` resolves the shape once and returns a frozen variant
tagged with its `kind`.
"""

import copy
import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from strategies.base.strategy_model import (
    PositionSizingMethod,
    StopLossRule,
    TakeProfitRule,
    parse_timestamp,
    snake_keys,
    to_camel_case,
    utc_now_iso,
)


DEFAULT_COLOR = '#3B82F6'


class LegacyRecordError(ValueError):
    """Raised when a raw legacy record cannot be read."""


class LegacyKind(str, Enum):
    """Shape of a legacy playbook record."""
    PLAYBOOK = "playbook"
    STORED_PLAYBOOK = "stored_playbook"


# ===== LEGACY VARIANTS =====

@dataclass(frozen=True)
class LegacyPlaybook:
    """Playbook as kept by the journal UI, with aggregate usage counters."""
    id: Optional[str]
    title: str = ""
    description: str = ""
    color: str = DEFAULT_COLOR
    market_conditions: str = ""
    entry_parameters: str = ""
    exit_parameters: str = ""
    times_used: Optional[int] = None
    trades_won: Optional[int] = None
    trades_lost: Optional[int] = None

    kind = LegacyKind.PLAYBOOK

    @property
    def display_title(self) -> str:
        return self.title

    @property
    def setup_text(self) -> str:
        return self.market_conditions

    @property
    def entry_text(self) -> str:
        return self.entry_parameters

    @property
    def exit_text(self) -> str:
        return self.exit_parameters

    @property
    def created_at(self) -> Optional[str]:
        return None

    @property
    def has_counters(self) -> bool:
        return any(v is not None for v in (self.times_used, self.trades_won, self.trades_lost))

    def to_dict(self) -> Dict[str, Any]:
        data = {to_camel_case(f.name): getattr(self, f.name) for f in fields(self)}
        data['kind'] = self.kind.value
        return data


@dataclass(frozen=True)
class LegacyStoredPlaybook:
    """Playbook as kept by the document store."""
    id: Optional[str]
    name: str = ""
    description: str = ""
    setup: str = ""
    entry: str = ""
    exit: str = ""
    risk_management: str = ""
    examples: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    kind = LegacyKind.STORED_PLAYBOOK

    @property
    def display_title(self) -> str:
        return self.name

    @property
    def color(self) -> str:
        return DEFAULT_COLOR

    @property
    def setup_text(self) -> str:
        return self.setup

    @property
    def entry_text(self) -> str:
        return self.entry

    @property
    def exit_text(self) -> str:
        return self.exit

    @property
    def has_counters(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        data = {to_camel_case(f.name): getattr(self, f.name) for f in fields(self)}
        data['kind'] = self.kind.value
        return data


LegacyRecord = Union[LegacyPlaybook, LegacyStoredPlaybook]


def _text(values: Dict[str, Any], key: str, default: Optional[str] = "") -> Optional[str]:
    value = values.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise LegacyRecordError(f"Field '{to_camel_case(key)}' must be text, got {type(value).__name__}")
    return value


def _counter(values: Dict[str, Any], key: str) -> Optional[int]:
    value = values.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise LegacyRecordError(f"Field '{to_camel_case(key)}' must be a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise LegacyRecordError(f"Field '{to_camel_case(key)}' must be a finite number")
    if value < 0 or value != int(value):
        raise LegacyRecordError(f"Field '{to_camel_case(key)}' must be a non-negative whole number")
    return int(value)


def _epoch_part(document: Mapping[str, Any], key: str) -> float:
    value = document.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise LegacyRecordError(f"Timestamp '{key}' must be a finite number, got {value!r}")
    return value


def _timestamp(value: Any) -> Optional[str]:
    """Normalize datetimes, ISO strings and {seconds, nanoseconds} documents to ISO strings."""
    if value is None or value == '':
        return None
    if isinstance(value, Mapping) and 'seconds' in value:
        value = _epoch_part(value, 'seconds') * 1000 + _epoch_part(value, 'nanoseconds') / 1e6
    parsed = parse_timestamp(value)
    if parsed is None:
        return value if isinstance(value, str) else None
    return parsed.isoformat()


def parse_legacy_record(raw: Union[LegacyRecord, Mapping[str, Any]]) -> LegacyRecord:
    """
    Read a raw legacy record into its tagged variant.

    The shape is taken from an explicit `kind` key, else from the presence of
    `title` (UI playbook) or `name` (stored playbook).

    Args:
        raw: Mapping in camelCase or snake_case, or an already parsed record

    Returns:
        LegacyPlaybook or LegacyStoredPlaybook

    Raises:
        LegacyRecordError: If the record is not a mapping or holds wrong-typed fields
    """
    if isinstance(raw, (LegacyPlaybook, LegacyStoredPlaybook)):
        return raw
    if not isinstance(raw, Mapping):
        raise LegacyRecordError(f"Legacy record must be a mapping, got {type(raw).__name__}")

    values = snake_keys(raw)

    record_id = values.get('id')
    if record_id is not None and not isinstance(record_id, str):
        if isinstance(record_id, bool) or not isinstance(record_id, int):
            raise LegacyRecordError(f"Field 'id' must be text, got {type(record_id).__name__}")
        record_id = str(record_id)

    kind = values.get('kind')
    if kind is None:
        kind = LegacyKind.STORED_PLAYBOOK if 'name' in values and 'title' not in values else LegacyKind.PLAYBOOK
    try:
        kind = LegacyKind(kind)
    except ValueError:
        raise LegacyRecordError(f"Unknown legacy record kind: {kind}")

    if kind == LegacyKind.PLAYBOOK:
        return LegacyPlaybook(
            id=record_id,
            title=_text(values, 'title'),
            description=_text(values, 'description'),
            color=_text(values, 'color', DEFAULT_COLOR) or DEFAULT_COLOR,
            market_conditions=_text(values, 'market_conditions'),
            entry_parameters=_text(values, 'entry_parameters'),
            exit_parameters=_text(values, 'exit_parameters'),
            times_used=_counter(values, 'times_used'),
            trades_won=_counter(values, 'trades_won'),
            trades_lost=_counter(values, 'trades_lost'),
        )

    return LegacyStoredPlaybook(
        id=record_id,
        name=_text(values, 'name'),
        description=_text(values, 'description'),
        setup=_text(values, 'setup'),
        entry=_text(values, 'entry'),
        exit=_text(values, 'exit'),
        risk_management=_text(values, 'risk_management'),
        examples=_text(values, 'examples', None),
        created_at=_timestamp(values.get('created_at')),
        updated_at=_timestamp(values.get('updated_at')),
    )


# ===== CONFIGURATION =====

_TRUE_WORDS = ('true', 'yes', 'on', '1')
_FALSE_WORDS = ('false', 'no', 'off', '0')


def _flag(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValueError(f"Migration option '{to_camel_case(name)}' must be a boolean, got {value!r}")


@dataclass(frozen=True)
class MigrationConfig:
    """
    Migration options.

    Attributes:
        preserve_original: Keep legacy free text on the migrated strategy
        validate_before_migration: Validate the source before mapping
        require_user_input: Report missing professional fields instead of leaving them empty
        auto_fill_defaults: Fill blank form fields with migration defaults
        create_backup: Snapshot the source before migrating
    """
    preserve_original: bool = True
    validate_before_migration: bool = True
    require_user_input: bool = True
    auto_fill_defaults: bool = True
    create_backup: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'MigrationConfig':
        """
        Options from a mapping in either key style.

        Raises:
            ValueError: For a value that is not a boolean or one of its usual text forms
        """
        names = {f.name for f in fields(cls)}
        return cls(**{k: _flag(k, v) for k, v in snake_keys(data).items() if k in names})

    def to_dict(self) -> Dict[str, bool]:
        return {to_camel_case(f.name): getattr(self, f.name) for f in fields(self)}


DEFAULT_MIGRATION_CONFIG = MigrationConfig()

MIGRATION_DEFAULTS: Dict[str, Any] = {
    'methodology': 'Technical',
    'primary_timeframe': '1H',
    'asset_classes': ['Forex'],
    'timing_criteria': 'Market open hours',
    'max_risk_per_trade': 2.0,
    'risk_reward_ratio': 2.0,
    'position_sizing_method': {
        'type': 'FixedPercentage',
        'parameters': {'percentage': 2},
    },
    'stop_loss_rule': {
        'type': 'PercentageBased',
        'parameters': {'percentage': 2},
        'description': 'Fixed 2% stop loss',
    },
    'take_profit_rule': {
        'type': 'RiskRewardRatio',
        'parameters': {'ratio': 2},
        'description': '2:1 risk-reward ratio target',
    },
}


# ===== FORM DATA =====

@dataclass
class MigrationFormData:
    """Professional fields supplied by the user for a migration."""
    methodology: Optional[str] = None
    primary_timeframe: Optional[str] = None
    asset_classes: List[str] = field(default_factory=list)
    technical_conditions: List[str] = field(default_factory=list)
    fundamental_conditions: List[str] = field(default_factory=list)
    volatility_requirements: Optional[str] = None
    confirmation_signals: List[str] = field(default_factory=list)
    timing_criteria: Optional[str] = None
    position_sizing_method: Optional[PositionSizingMethod] = None
    max_risk_per_trade: Optional[float] = None
    stop_loss_rule: Optional[StopLossRule] = None
    take_profit_rule: Optional[TakeProfitRule] = None
    risk_reward_ratio: Optional[float] = None

    def missing_fields(self, names: Tuple[str, ...] = None) -> List[str]:
        """Names (snake_case) of the given fields that are blank."""
        missing = []
        for name in names or FORM_REQUIRED_FIELDS:
            value = getattr(self, name)
            if value is None or value == '' or value == []:
                missing.append(name)
        return missing

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[to_camel_case(f.name)] = value.to_dict() if hasattr(value, 'to_dict') else copy.deepcopy(value)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'MigrationFormData':
        names = {f.name for f in fields(cls)}
        values = {k: v for k, v in snake_keys(data).items() if k in names}
        for name, rule_cls in (
            ('position_sizing_method', PositionSizingMethod),
            ('stop_loss_rule', StopLossRule),
            ('take_profit_rule', TakeProfitRule),
        ):
            if isinstance(values.get(name), Mapping):
                values[name] = rule_cls.from_dict(values[name])
        return cls(**values)


FORM_REQUIRED_FIELDS = (
    'methodology',
    'primary_timeframe',
    'asset_classes',
    'position_sizing_method',
    'max_risk_per_trade',
    'stop_loss_rule',
    'take_profit_rule',
    'risk_reward_ratio',
)


# ===== VALIDATION =====

@dataclass(frozen=True)
class MigrationValidationIssue:
    """Finding about a legacy record, with an optional fix suggestion."""
    field: str
    code: str
    message: str
    severity: str = 'error'
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'field': self.field,
            'code': self.code,
            'message': self.message,
            'severity': self.severity,
            'suggestion': self.suggestion,
        }


@dataclass
class MigrationValidationResult:
    """Whether a legacy record can be migrated and what the user must supply."""
    errors: List[MigrationValidationIssue] = field(default_factory=list)
    warnings: List[MigrationValidationIssue] = field(default_factory=list)
    required_fields: List[str] = field(default_factory=list)
    optional_fields: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def can_proceed(self) -> bool:
        return self.is_valid

    def add_error(self, field_name: str, code: str, message: str, suggestion: str = None):
        self.errors.append(MigrationValidationIssue(field_name, code, message, 'error', suggestion))

    def add_warning(self, field_name: str, code: str, message: str, suggestion: str = None):
        self.warnings.append(MigrationValidationIssue(field_name, code, message, 'warning', suggestion))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isValid': self.is_valid,
            'canProceed': self.can_proceed,
            'errors': [e.to_dict() for e in self.errors],
            'warnings': [w.to_dict() for w in self.warnings],
            'requiredFields': list(self.required_fields),
            'optionalFields': list(self.optional_fields),
        }


# ===== STEPS =====

class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class MigrationStep:
    """One stage of the guided migration workflow."""
    id: str
    name: str
    description: str
    required: bool = True
    requires_user_input: bool = False
    validation_rules: List[str] = field(default_factory=list)
    status: StepStatus = StepStatus.PENDING
    error: Optional[str] = None
    completed_at: Optional[str] = None

    def start(self):
        self.status = StepStatus.IN_PROGRESS

    def complete(self):
        self.status = StepStatus.COMPLETED
        self.completed_at = utc_now_iso()

    def fail(self, error: str):
        self.status = StepStatus.FAILED
        self.error = error

    def skip(self):
        self.status = StepStatus.SKIPPED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'required': self.required,
            'requiresUserInput': self.requires_user_input,
            'validationRules': list(self.validation_rules),
            'status': self.status.value,
            'error': self.error,
            'completedAt': self.completed_at,
        }


MIGRATION_STEPS: Tuple[Dict[str, Any], ...] = (
    {
        'id': 'validate_source',
        'name': 'Validate Source Data',
        'description': 'Validate existing playbook data for migration compatibility',
        'requires_user_input': False,
        'validation_rules': ['required_fields', 'data_integrity'],
    },
    {
        'id': 'preserve_legacy',
        'name': 'Preserve Legacy Data',
        'description': 'Preserve existing playbook fields for backward compatibility',
        'requires_user_input': False,
    },
    {
        'id': 'map_basic_fields',
        'name': 'Map Basic Fields',
        'description': 'Map basic fields (title, description, color) to new structure',
        'requires_user_input': False,
    },
    {
        'id': 'configure_methodology',
        'name': 'Configure Methodology',
        'description': 'Select trading methodology and primary timeframe',
        'requires_user_input': True,
        'validation_rules': ['methodology_required', 'timeframe_required'],
    },
    {
        'id': 'enhance_setup_conditions',
        'name': 'Enhance Setup Conditions',
        'description': 'Transform market conditions into professional setup structure',
        'requires_user_input': True,
        'validation_rules': ['market_environment_required'],
    },
    {
        'id': 'configure_entry_triggers',
        'name': 'Configure Entry Triggers',
        'description': 'Transform entry parameters into professional trigger structure',
        'requires_user_input': True,
        'validation_rules': ['primary_signal_required'],
    },
    {
        'id': 'setup_risk_management',
        'name': 'Setup Risk Management',
        'description': 'Configure professional risk management rules',
        'requires_user_input': True,
        'validation_rules': ['position_sizing_required', 'stop_loss_required', 'take_profit_required'],
    },
    {
        'id': 'initialize_performance',
        'name': 'Initialize Performance Tracking',
        'description': 'Initialize performance metrics from existing trade data',
        'requires_user_input': False,
    },
    {
        'id': 'validate_strategy',
        'name': 'Validate Strategy',
        'description': 'Validate the complete professional strategy configuration',
        'requires_user_input': False,
        'validation_rules': ['complete_strategy_validation'],
    },
    {
        'id': 'finalize_migration',
        'name': 'Finalize Migration',
        'description': 'Save the migrated strategy and create backup',
        'requires_user_input': False,
    },
)


# ===== RESULTS =====

class MigrationStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class MigrationResult:
    """
    Outcome of migrating one legacy record.

    A `partial` result carries a target strategy together with errors;
    callers must inspect `errors` whenever status is not `failed` too.
    """
    status: MigrationStatus
    source_id: Optional[str]
    target_id: Optional[str] = None
    migrated_fields: List[str] = field(default_factory=list)
    skipped_fields: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    backup_id: Optional[str] = None
    completed_at: str = field(default_factory=utc_now_iso)
    rollback_available: bool = False
    target_strategy: Optional[Any] = None
    steps: List[MigrationStep] = field(default_factory=list)
    migration_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'migrationId': self.migration_id,
            'status': self.status.value,
            'sourceId': self.source_id,
            'targetId': self.target_id,
            'migratedFields': list(self.migrated_fields),
            'skippedFields': list(self.skipped_fields),
            'errors': list(self.errors),
            'warnings': list(self.warnings),
            'backupId': self.backup_id,
            'completedAt': self.completed_at,
            'rollbackAvailable': self.rollback_available,
            'targetStrategy': self.target_strategy.to_dict() if self.target_strategy is not None else None,
            'steps': [s.to_dict() for s in self.steps],
        }


@dataclass
class RollbackOperation:
    """Descriptor of a rollback; the caller deletes the target and restores `backup_data`."""
    migration_id: str
    source_id: Optional[str]
    target_id: Optional[str]
    backup_data: Optional[LegacyRecord]
    reason: str
    requested_at: str = field(default_factory=utc_now_iso)
    completed_at: Optional[str] = None
    success: Optional[bool] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'migrationId': self.migration_id,
            'sourceId': self.source_id,
            'targetId': self.target_id,
            'backupData': self.backup_data.to_dict() if self.backup_data is not None else None,
            'reason': self.reason,
            'requestedAt': self.requested_at,
            'completedAt': self.completed_at,
            'success': self.success,
            'error': self.error,
        }
