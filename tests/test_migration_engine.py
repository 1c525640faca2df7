"""
Tests for legacy playbook migration.

Covers:
- Legacy record parsing
- Source validation and field extraction
- Migration outcomes (success, partial, failed) and workflow steps
- Backups and rollback
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from strategies.base.strategy_model import PerformanceTrend
from strategies.migration import (
    DEFAULT_MIGRATION_CONFIG,
    InMemoryBackupStore,
    LegacyKind,
    LegacyPlaybook,
    LegacyRecordError,
    LegacyStoredPlaybook,
    MigrationConfig,
    MigrationResult,
    MigrationStatus,
    StepStatus,
    StrategyMigrationEngine,
    extract_technical_conditions,
    parse_legacy_record,
)
from strategies.validation import StrategyValidator

from conftest import legacy_playbook


class FixedClock:
    """Controllable UTC clock."""

    def __init__(self, start=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class ExplodingValidator(StrategyValidator):
    def validate_strategy(self, strategy, rules=None):
        raise RuntimeError("validator unavailable")


def stored_playbook(**overrides):
    record = {
        "id": "sp-1",
        "name": "Mean reversion fade",
        "description": "Fade stretched moves back to the session mean",
        "setup": "Range bound market conditions",
        "entry": "Fade moves into support with RSI oversold",
        "exit": "Target the session mean",
        "riskManagement": "1% per trade",
        "createdAt": "2024-01-05T10:00:00+00:00",
    }
    record.update(overrides)
    return record


class TestLegacyRecords:
    """Test reading raw legacy records."""

    def test_playbook_from_camel_case(self, playbook):
        record = parse_legacy_record(playbook)

        assert isinstance(record, LegacyPlaybook)
        assert record.kind == LegacyKind.PLAYBOOK
        assert record.trades_won == 32
        assert record.entry_text == playbook["entryParameters"]

    def test_stored_playbook_inferred_from_name(self):
        record = parse_legacy_record(stored_playbook())

        assert isinstance(record, LegacyStoredPlaybook)
        assert record.display_title == "Mean reversion fade"
        assert record.has_counters is False
        assert record.created_at.startswith("2024-01-05")

    def test_firestore_timestamp(self):
        record = parse_legacy_record(stored_playbook(createdAt={"seconds": 1704448800, "nanoseconds": 0}))
        assert record.created_at.startswith("2024-01-05")

    def test_numeric_id_is_text(self):
        assert parse_legacy_record(legacy_playbook(id=42)).id == "42"

    @pytest.mark.parametrize("raw", [
        "not a record",
        legacy_playbook(tradesWon="many"),
        legacy_playbook(tradesLost=-1),
        legacy_playbook(title=123),
        legacy_playbook(kind="spreadsheet"),
        legacy_playbook(tradesWon=float("nan")),
        legacy_playbook(tradesLost=float("inf")),
        stored_playbook(createdAt={"seconds": "abc", "nanoseconds": 0}),
        stored_playbook(createdAt={"seconds": 1704448800, "nanoseconds": None}),
    ])
    def test_malformed_records(self, raw):
        with pytest.raises(LegacyRecordError):
            parse_legacy_record(raw)

    def test_missing_id_is_not_a_parse_error(self):
        raw = legacy_playbook()
        del raw["id"]

        assert parse_legacy_record(raw).id is None


class TestSourceValidation:
    """Test checks on a playbook before migration."""

    def test_valid_playbook(self, playbook):
        result = StrategyMigrationEngine().validate_for_migration(playbook)

        assert result.can_proceed
        assert result.warnings == []
        assert "methodology" in result.required_fields

    def test_missing_id(self, playbook):
        del playbook["id"]

        result = StrategyMigrationEngine().validate_for_migration(playbook)

        assert not result.can_proceed
        assert [e.code for e in result.errors] == ["MISSING_ID"]

    def test_short_title(self):
        result = StrategyMigrationEngine().validate_for_migration(legacy_playbook(title="ab"))

        assert [e.code for e in result.errors] == ["INVALID_TITLE"]
        assert result.errors[0].suggestion

    def test_thin_playbook_warns(self):
        raw = legacy_playbook(description="short", entryParameters="RSI", exitParameters="")

        result = StrategyMigrationEngine().validate_for_migration(raw)

        assert result.can_proceed
        assert [w.code for w in result.warnings] == ["SHORT_DESCRIPTION", "MINIMAL_ENTRY_PARAMS", "MINIMAL_EXIT_PARAMS"]

    def test_malformed_record(self):
        result = StrategyMigrationEngine().validate_for_migration(["not", "a", "mapping"])

        assert [e.code for e in result.errors] == ["INVALID_RECORD"]

    @pytest.mark.parametrize("counter", [float("nan"), float("inf"), -float("inf")])
    def test_non_finite_counter(self, counter):
        result = StrategyMigrationEngine().validate_for_migration(legacy_playbook(timesUsed=counter))

        assert not result.can_proceed
        assert [e.code for e in result.errors] == ["INVALID_RECORD"]


class TestFieldExtraction:
    """Test keyword extraction from entry text."""

    def test_keyword_families(self):
        assert extract_technical_conditions("MACD cross with EMA trend") == [
            "MACD crossover", "Moving average alignment", "Trend confirmation",
        ]

    def test_rsi_and_levels(self):
        assert extract_technical_conditions("Break above resistance with RSI confirmation") == [
            "RSI indicator signal", "Support/Resistance levels",
        ]

    def test_fallback_and_empty(self):
        assert extract_technical_conditions("gut feeling") == ["Technical analysis signal"]
        assert extract_technical_conditions("") == []
        assert extract_technical_conditions(None) == []

    def test_default_form_data(self, playbook):
        form = StrategyMigrationEngine().get_default_form_data(playbook)

        assert form.methodology == "Technical"
        assert form.asset_classes == ["Forex"]
        assert form.timing_criteria == "Market open hours"
        assert form.stop_loss_rule.type == "PercentageBased"
        assert form.technical_conditions == ["RSI indicator signal", "Support/Resistance levels"]
        assert form.missing_fields() == []


class TestMigration:
    """Test migrating playbooks."""

    def test_successful_migration(self, playbook):
        """Test a 50/32/18 playbook migrates with defaults."""
        engine = StrategyMigrationEngine()

        result = engine.migrate_playbook(playbook)

        assert result.status == MigrationStatus.SUCCESS
        assert result.errors == []
        assert result.target_id == "pb-1"
        assert result.backup_id is not None
        assert result.rollback_available is True

        strategy = result.target_strategy
        assert strategy.title == "London Breakout"
        assert strategy.color == "#FF0000"
        assert strategy.methodology == "Technical"
        assert strategy.setup_conditions.market_environment == playbook["marketConditions"]
        assert strategy.entry_triggers.primary_signal == playbook["entryParameters"]
        assert strategy.market_conditions == playbook["marketConditions"]
        assert strategy.times_used == 50

    def test_performance_from_counters(self, playbook):
        """Test win rate and significance seeded from legacy counters."""
        performance = StrategyMigrationEngine().migrate_playbook(playbook).target_strategy.performance

        assert performance.total_trades == 50
        assert performance.winning_trades == 32
        assert performance.losing_trades == 18
        assert performance.win_rate == 64.0
        assert performance.statistically_significant is True
        assert performance.profit_factor == pytest.approx(64 / 36)
        assert performance.performance_trend == PerformanceTrend.STABLE

    def test_unbeaten_playbook(self):
        """Test 10 wins and no losses gives the finite profit factor sentinel."""
        raw = legacy_playbook(timesUsed=10, tradesWon=10, tradesLost=0)

        performance = StrategyMigrationEngine().migrate_playbook(raw).target_strategy.performance

        assert performance.win_rate == 100.0
        assert performance.profit_factor == 999.0
        assert performance.statistically_significant is False

    def test_playbook_without_counters(self):
        raw = legacy_playbook(timesUsed=None, tradesWon=None, tradesLost=None)

        result = StrategyMigrationEngine().migrate_playbook(raw)

        performance = result.target_strategy.performance
        assert result.status == MigrationStatus.SUCCESS
        assert performance.total_trades == 0
        assert performance.profit_factor == 1.0
        assert performance.performance_trend == PerformanceTrend.INSUFFICIENT_DATA

    def test_defaults_are_reported(self, playbook):
        result = StrategyMigrationEngine().migrate_playbook(playbook)

        assert "Default value applied for methodology" in result.warnings
        assert "Default value applied for stopLossRule" in result.warnings

    def test_form_data_wins_over_defaults(self, playbook):
        form = {"methodology": "Quantitative", "maxRiskPerTrade": 1.5}

        result = StrategyMigrationEngine().migrate_playbook(playbook, form)

        strategy = result.target_strategy
        assert strategy.methodology == "Quantitative"
        assert strategy.risk_management.max_risk_per_trade == 1.5
        assert "Default value applied for methodology" not in result.warnings

    def test_missing_user_input_is_partial(self, playbook):
        """Test required fields without defaults make a partial migration."""
        config = MigrationConfig(auto_fill_defaults=False)

        result = StrategyMigrationEngine().migrate_playbook(playbook, config=config)

        assert result.status == MigrationStatus.PARTIAL
        assert result.target_strategy is not None
        assert "methodology" in result.skipped_fields
        assert "Required field 'methodology' was not provided" in result.errors
        steps = StrategyMigrationEngine().get_step_status(result)
        assert steps["configure_methodology"] == "failed"
        assert steps["finalize_migration"] == "completed"

    def test_user_input_not_required(self, playbook):
        config = MigrationConfig(auto_fill_defaults=False, require_user_input=False)

        result = StrategyMigrationEngine().migrate_playbook(playbook, config=config)

        assert result.status == MigrationStatus.PARTIAL
        assert result.skipped_fields == []
        steps = {s.id: s.status for s in result.steps}
        assert steps["configure_methodology"] == StepStatus.SKIPPED

    def test_all_steps_completed(self, playbook):
        engine = StrategyMigrationEngine()
        result = engine.migrate_playbook(playbook)

        assert set(engine.get_step_status(result).values()) == {"completed"}
        assert len(result.steps) == 10

    def test_blocked_by_source_validation(self):
        result = StrategyMigrationEngine().migrate_playbook(legacy_playbook(title="ab"))

        assert result.status == MigrationStatus.FAILED
        assert result.target_strategy is None
        assert result.rollback_available is True
        assert result.steps[0].status == StepStatus.FAILED

    def test_malformed_source(self):
        result = StrategyMigrationEngine().migrate_playbook(legacy_playbook(tradesWon="many"))

        assert result.status == MigrationStatus.FAILED
        assert result.source_id == "pb-1"
        assert result.backup_id is None
        assert result.errors

    @pytest.mark.parametrize("raw", [
        legacy_playbook(tradesWon=float("nan")),
        legacy_playbook(tradesLost=float("inf")),
        stored_playbook(createdAt={"seconds": "abc"}),
    ])
    def test_unreadable_values_fail(self, raw):
        """Test unreadable counters and timestamps give a failed result."""
        engine = StrategyMigrationEngine()

        result = engine.migrate_playbook(raw)

        assert result.status == MigrationStatus.FAILED
        assert result.target_strategy is None
        assert result.errors
        assert len(engine.backup_store) == 0

    def test_stored_playbook(self):
        result = StrategyMigrationEngine().migrate_playbook(stored_playbook())

        strategy = result.target_strategy
        assert result.status == MigrationStatus.SUCCESS
        assert strategy.title == "Mean reversion fade"
        assert strategy.created_at.startswith("2024-01-05")
        assert strategy.legacy_fields["riskManagement"] == "1% per trade"
        assert strategy.times_used is None
        assert "legacyFields" in result.migrated_fields

    def test_without_preserving_original(self, playbook):
        config = MigrationConfig(preserve_original=False)

        result = StrategyMigrationEngine().migrate_playbook(playbook, config=config)

        assert result.target_strategy.market_conditions is None
        assert result.target_strategy.times_used is None
        assert "marketConditions" not in result.migrated_fields

    def test_without_backup(self, playbook):
        engine = StrategyMigrationEngine()

        result = engine.migrate_playbook(playbook, config={"createBackup": False})

        assert result.backup_id is None
        assert result.rollback_available is False
        assert len(engine.backup_store) == 0

    def test_failure_discards_backup(self, playbook):
        """Test an unexpected failure leaves no backup behind."""
        store = InMemoryBackupStore()
        engine = StrategyMigrationEngine(validator=ExplodingValidator(), backup_store=store)

        result = engine.migrate_playbook(playbook)

        assert result.status == MigrationStatus.FAILED
        assert result.backup_id is None
        assert result.rollback_available is False
        assert len(store) == 0
        assert "validator unavailable" in result.errors
        assert engine.get_step_status(result)["validate_strategy"] == "failed"

    def test_migration_config_from_dict(self):
        config = MigrationConfig.from_dict({"createBackup": False, "preserve_original": False})

        assert config.create_backup is False
        assert config.preserve_original is False
        assert config.validate_before_migration is True
        assert DEFAULT_MIGRATION_CONFIG.to_dict()["autoFillDefaults"] is True

    def test_migration_config_flag_words(self):
        """Test flags written as words or 0/1."""
        config = MigrationConfig.from_dict({
            "createBackup": "false", "preserveOriginal": "No", "validateBeforeMigration": 1, "autoFillDefaults": "on",
        })

        assert config.create_backup is False
        assert config.preserve_original is False
        assert config.validate_before_migration is True
        assert config.auto_fill_defaults is True

    @pytest.mark.parametrize("value", ["maybe", 2, None, [True]])
    def test_migration_config_rejects_non_flags(self, value):
        with pytest.raises(ValueError):
            MigrationConfig.from_dict({"createBackup": value})

    def test_backup_flag_as_text(self, playbook):
        engine = StrategyMigrationEngine()

        result = engine.migrate_playbook(playbook, config={"createBackup": "false"})

        assert result.status == MigrationStatus.SUCCESS
        assert result.backup_id is None
        assert len(engine.backup_store) == 0

    def test_unreadable_option_fails(self, playbook):
        engine = StrategyMigrationEngine()

        result = engine.migrate_playbook(playbook, config={"createBackup": "maybe"})

        assert result.status == MigrationStatus.FAILED
        assert result.source_id == "pb-1"
        assert "createBackup" in result.errors[0]
        assert len(engine.backup_store) == 0


class TestBackupAndRollback:
    """Test backups captured before migration and rollback."""

    def test_rollback_restores_backup(self, playbook):
        engine = StrategyMigrationEngine()
        result = engine.migrate_playbook(playbook)

        rollback = engine.rollback_migration(result, "User requested")

        assert rollback.success is True
        assert rollback.backup_data.id == "pb-1"
        assert rollback.backup_data.trades_won == 32
        assert rollback.completed_at is not None
        assert rollback.target_id == "pb-1"

    def test_rollback_consumes_backup(self, playbook):
        engine = StrategyMigrationEngine()
        result = engine.migrate_playbook(playbook)
        engine.rollback_migration(result, "first")

        second = engine.rollback_migration(result, "second")

        assert second.success is False
        assert second.error

    def test_unknown_backup(self):
        """Test rollback against a backup that does not exist."""
        result = MigrationResult(status=MigrationStatus.SUCCESS, source_id="pb-9", backup_id="backup_missing")

        rollback = StrategyMigrationEngine().rollback_migration(result, "cleanup")

        assert rollback.success is False
        assert "backup_missing" in rollback.error
        assert rollback.backup_data is None

    def test_no_backup(self):
        result = MigrationResult(status=MigrationStatus.SUCCESS, source_id="pb-9")

        rollback = StrategyMigrationEngine().rollback_migration(result, "cleanup")

        assert rollback.success is False

    def test_expired_backup(self, playbook):
        clock = FixedClock()
        engine = StrategyMigrationEngine(backup_store=InMemoryBackupStore(retention_days=1, clock=clock), clock=clock)
        result = engine.migrate_playbook(playbook)

        clock.advance(days=2)
        rollback = engine.rollback_migration(result, "too late")

        assert rollback.success is False

    def test_backup_ids_are_unique(self, playbook):
        clock = FixedClock()
        engine = StrategyMigrationEngine(clock=clock)

        first = engine.migrate_playbook(playbook)
        second = engine.migrate_playbook(playbook)

        assert first.backup_id != second.backup_id
        assert first.backup_id.startswith("backup_pb-1_")
        assert len(engine.backup_store) == 2

    def test_store_retention(self):
        clock = FixedClock()
        store = InMemoryBackupStore(retention_days=30, clock=clock)
        record = parse_legacy_record(legacy_playbook())
        store.put("a", record)
        clock.advance(days=10)
        store.put("b", record)

        clock.advance(days=25)

        assert store.purge_expired() == 1
        assert "a" not in store
        assert store.get("b").record is record
        assert store.delete("b") is True
        assert store.delete("b") is False

    def test_store_without_retention(self):
        clock = FixedClock()
        store = InMemoryBackupStore(retention_days=None, clock=clock)
        store.put("a", parse_legacy_record(legacy_playbook()))

        clock.advance(days=3650)

        assert "a" in store
        assert store.purge_expired() == 0


class TestMigrationSteps:
    """Test the guided workflow steps."""

    def test_fresh_steps(self):
        steps = StrategyMigrationEngine.build_migration_steps()

        assert [s.id for s in steps][:3] == ["validate_source", "preserve_legacy", "map_basic_fields"]
        assert all(s.status == StepStatus.PENDING for s in steps)

        steps[0].complete()
        assert StrategyMigrationEngine.build_migration_steps()[0].status == StepStatus.PENDING

    def test_unknown_step(self, playbook):
        result = StrategyMigrationEngine().validate_step_inputs("teleport", playbook)
        assert [e.code for e in result.errors] == ["UNKNOWN_STEP"]

    def test_methodology_step(self, playbook):
        engine = StrategyMigrationEngine()

        empty = engine.validate_step_inputs("configure_methodology", playbook, {})
        invalid = engine.validate_step_inputs("configure_methodology", playbook,
                                              {"methodology": "Astrology", "primaryTimeframe": "4H"})

        assert [e.field for e in empty.errors] == ["methodology", "primaryTimeframe"]
        assert [e.code for e in invalid.errors] == ["INVALID_VALUE"]

    def test_setup_step(self, playbook):
        result = StrategyMigrationEngine().validate_step_inputs("enhance_setup_conditions", playbook, {})

        assert [e.code for e in result.errors] == ["REQUIRED"]
        assert result.errors[0].suggestion == "RSI indicator signal, Support/Resistance levels"

    def test_risk_step_reuses_business_rules(self, playbook):
        engine = StrategyMigrationEngine()
        form = replace(engine.get_default_form_data(playbook), max_risk_per_trade=15)

        result = engine.validate_step_inputs("setup_risk_management", playbook, form)

        assert [e.code for e in result.errors] == ["BUSINESS_RULE_VIOLATION"]

    def test_risk_step_with_defaults(self, playbook):
        engine = StrategyMigrationEngine()
        form = engine.get_default_form_data(playbook)

        result = engine.validate_step_inputs("setup_risk_management", playbook, form)

        assert result.is_valid

    def test_source_step(self):
        result = StrategyMigrationEngine().validate_step_inputs("validate_source", legacy_playbook(title="ab"))
        assert not result.can_proceed


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
