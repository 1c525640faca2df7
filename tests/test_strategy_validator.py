"""
Tests for strategy validation.

Covers structural checks, rule configuration, performance consistency,
business rules, ledger integrity and lifecycle guards.
"""

import pytest

from strategies.base.performance_tracker import compute_performance
from strategies.base.strategy_model import (
    MonthlyReturn,
    PerformanceTrend,
    PositionSizingMethod,
    StopLossRule,
    StrategyPerformance,
    TakeProfitRule,
    Trade,
    TradeStatus,
)
from strategies.validation import StrategyValidationRules, StrategyValidator, ValidationResult

from conftest import make_strategy, make_trades


def codes(issues):
    return [issue.code for issue in issues]


def issue_for(issues, field_name):
    return [issue for issue in issues if issue.field == field_name]


class TestStructuralValidation:
    """Test validation of a complete strategy."""

    def test_valid_strategy(self, strategy):
        """Test a fully configured strategy passes cleanly."""
        result = StrategyValidator().validate_strategy(strategy)

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []

    def test_risk_above_ceiling(self, strategy):
        """Test risk per trade of 15% is a business-rule error."""
        strategy.risk_management.max_risk_per_trade = 15

        result = StrategyValidator().validate_strategy(strategy)

        assert not result.is_valid
        errors = issue_for(result.errors, "riskManagement.maxRiskPerTrade")
        assert codes(errors) == ["BUSINESS_RULE_VIOLATION"]
        assert "HIGH_RISK" in codes(result.warnings)

    def test_risk_below_floor(self, strategy):
        """Test tiny risk values are rejected."""
        strategy.risk_management.max_risk_per_trade = 0.05

        result = StrategyValidator().validate_strategy(strategy)

        assert "MIN_VALUE" in codes(result.errors)

    def test_risk_reward_floor(self, strategy):
        """Test risk-reward under 1:1 is rejected."""
        strategy.risk_management.risk_reward_ratio = 0.5

        result = StrategyValidator().validate_strategy(strategy)

        errors = issue_for(result.errors, "riskManagement.riskRewardRatio")
        assert codes(errors) == ["BUSINESS_RULE_VIOLATION"]

    def test_unrealistic_risk_reward(self, strategy):
        """Test very high risk-reward only warns."""
        strategy.risk_management.risk_reward_ratio = 12

        result = StrategyValidator().validate_strategy(strategy)

        assert result.is_valid
        assert "HIGH_VALUE" in codes(result.warnings)

    @pytest.mark.parametrize("title,code", [
        ("", "REQUIRED"),
        ("ab", "MIN_LENGTH"),
        ("x" * 101, "MAX_LENGTH"),
    ])
    def test_title_limits(self, strategy, title, code):
        """Test title presence and length."""
        strategy.title = title

        result = StrategyValidator().validate_strategy(strategy)

        assert codes(issue_for(result.errors, "title")) == [code]

    def test_unknown_methodology(self, strategy):
        """Test methodology must be one of the known values."""
        strategy.methodology = "Astrology"

        result = StrategyValidator().validate_strategy(strategy)

        assert codes(issue_for(result.errors, "methodology")) == ["INVALID_VALUE"]

    def test_short_market_environment(self, strategy):
        """Test market environment minimum length."""
        strategy.setup_conditions.market_environment = "Trending"

        result = StrategyValidator().validate_strategy(strategy)

        assert codes(issue_for(result.errors, "setupConditions.marketEnvironment")) == ["MIN_LENGTH"]

    def test_missing_technical_conditions(self, strategy):
        """Test at least one technical condition is required."""
        strategy.setup_conditions.technical_conditions = []

        result = StrategyValidator().validate_strategy(strategy)

        assert codes(issue_for(result.errors, "setupConditions.technicalConditions")) == ["REQUIRED"]

    def test_missing_confirmation_signals_warns(self, strategy):
        """Test confirmation signals are recommended."""
        strategy.entry_triggers.confirmation_signals = []

        result = StrategyValidator().validate_strategy(strategy)

        assert result.is_valid
        assert codes(result.warnings) == ["RECOMMENDED"]

    def test_missing_blocks(self, strategy):
        """Test required blocks."""
        strategy.setup_conditions = None
        strategy.entry_triggers = None
        strategy.risk_management = None

        result = StrategyValidator().validate_strategy(strategy)

        fields = {e.field for e in result.errors}
        assert {"setupConditions", "entryTriggers", "riskManagement"} <= fields

    def test_missing_timeframe(self, strategy):
        """Test primary timeframe is required."""
        strategy.primary_timeframe = None

        result = StrategyValidator().validate_strategy(strategy)

        assert codes(issue_for(result.errors, "primaryTimeframe")) == ["REQUIRED"]

    def test_wrong_type_is_reported(self, strategy):
        """Test wrong-typed values become errors, not exceptions."""
        strategy.risk_management.max_risk_per_trade = "2"

        result = StrategyValidator().validate_strategy(strategy)

        assert codes(issue_for(result.errors, "riskManagement.maxRiskPerTrade")) == ["INVALID_TYPE"]

    def test_not_a_strategy(self):
        """Test arbitrary input is rejected."""
        result = StrategyValidator().validate_strategy(42)

        assert codes(result.errors) == ["INVALID_TYPE"]

    @pytest.mark.parametrize("monthly", [5, "2024-01", [5], [None]])
    def test_unreadable_monthly_returns_in_mapping(self, strategy, monthly):
        """Test a strategy mapping with malformed monthly returns is reported."""
        data = strategy.to_dict()
        data["performance"] = {"totalTrades": 0, "monthlyReturns": monthly}

        result = StrategyValidator().validate_strategy(data)

        assert not result.is_valid
        assert "INVALID_TYPE" in codes(result.errors)

    def test_rule_parameters_not_a_mapping(self, strategy):
        data = strategy.to_dict()
        data["riskManagement"]["stopLossRule"] = {"type": "ATRBased", "parameters": 5, "description": "2 ATR"}

        result = StrategyValidator().validate_strategy(data)

        assert codes(issue_for(result.errors, "strategy")) == ["INVALID_TYPE"]

    def test_dict_input(self, strategy):
        """Test the camelCase dict form validates like the record."""
        result = StrategyValidator().validate_strategy(strategy.to_dict())

        assert result.is_valid

    def test_idempotent(self, strategy):
        """Test repeated validation gives the same result."""
        strategy.risk_management.max_risk_per_trade = 15
        validator = StrategyValidator()

        first = validator.validate_strategy(strategy)
        second = validator.validate_strategy(strategy)

        assert first.to_dict() == second.to_dict()


class TestValidationRules:
    """Test configurable thresholds."""

    def test_constructor_overrides(self, strategy):
        """Test raising the risk ceiling."""
        strategy.risk_management.max_risk_per_trade = 15

        result = StrategyValidator(max_risk_per_trade=20).validate_strategy(strategy)

        assert result.is_valid
        assert "HIGH_RISK" in codes(result.warnings)

    def test_per_call_rules(self, strategy):
        """Test rules supplied for a single call."""
        strategy.risk_management.risk_reward_ratio = 1.2
        rules = StrategyValidationRules(min_risk_reward=1.5)

        result = StrategyValidator().validate_strategy(strategy, rules=rules)

        assert "BUSINESS_RULE_VIOLATION" in codes(result.errors)

    def test_unknown_override(self):
        """Test unknown rule names are refused."""
        with pytest.raises(ValueError):
            StrategyValidationRules().with_overrides(max_leverage=3)

    def test_messages_follow_thresholds(self, strategy):
        """Test warning texts quote the configured thresholds."""
        rules = StrategyValidationRules().with_overrides(insufficient_trades_threshold=40, high_risk_threshold=3)
        strategy.risk_management.max_risk_per_trade = 4
        strategy.performance = compute_performance(make_trades([100] * 20 + [-50] * 15))

        result = StrategyValidator().validate_strategy(strategy, rules=rules)

        messages = [w.message for w in result.warnings]
        assert "Need minimum 40 trades for statistical significance" in messages
        assert "Risk per trade exceeds 3% - consider reducing" in messages
        assert rules.messages["low_sample"].endswith("less than 10 trades")

    def test_from_config_section(self):
        """Test reading the validation section of config.yaml."""
        rules = StrategyValidationRules.from_dict({
            "title": {"min_length": 5},
            "max_risk_per_trade": {"max": 4},
            "warnings": {"max_drawdown_threshold": 15},
        })

        assert rules.title_min_length == 5
        assert rules.max_risk_per_trade == 4.0
        assert rules.max_drawdown_threshold == 15.0
        assert rules.min_risk_reward == 1.0


class TestRuleConfiguration:
    """Test position sizing, stop loss and take profit rules."""

    def test_missing_position_sizing(self):
        result = StrategyValidator().validate_position_sizing(None)
        assert codes(result.errors) == ["REQUIRED"]

    def test_fixed_dollar_needs_amount(self):
        """Test FixedDollar requires a positive dollar amount."""
        result = StrategyValidator().validate_position_sizing(PositionSizingMethod("FixedDollar", {}))

        assert result.errors[0].field == "riskManagement.positionSizingMethod.parameters.dollarAmount"
        assert result.errors[0].code == "REQUIRED_POSITIVE"

    def test_kelly_parameters(self):
        """Test Kelly win rate range and negative average loss."""
        method = PositionSizingMethod("KellyFormula", {"win_rate": 120, "avg_win": 50, "avg_loss": 30})

        result = StrategyValidator().validate_position_sizing(method)

        assert set(codes(result.errors)) == {"INVALID_RANGE", "REQUIRED_NEGATIVE"}

    def test_unknown_sizing_type(self):
        result = StrategyValidator().validate_position_sizing(PositionSizingMethod("Martingale", {}))
        assert "INVALID_VALUE" in codes(result.errors)

    def test_aggressive_percentage_warns(self):
        result = StrategyValidator().validate_position_sizing({"type": "FixedPercentage", "parameters": {"percentage": 15}})
        assert result.is_valid
        assert codes(result.warnings) == ["HIGH_VALUE"]

    def test_stop_loss_needs_description(self):
        """Test stop loss rules must be described."""
        result = StrategyValidator().validate_stop_loss(StopLossRule("PercentageBased", {"percentage": 2}))

        assert codes(issue_for(result.errors, "riskManagement.stopLossRule.description")) == ["REQUIRED"]

    def test_structure_stop_needs_structure_type(self):
        rule = StopLossRule("StructureBased", {}, "Below swing low")
        result = StrategyValidator().validate_stop_loss(rule)
        assert codes(result.errors) == ["REQUIRED"]

    def test_atr_stop_parameters(self):
        rule = StopLossRule("ATRBased", {"atr_multiplier": 0}, "ATR stop")
        result = StrategyValidator().validate_stop_loss(rule)
        assert codes(result.errors) == ["REQUIRED_POSITIVE", "REQUIRED_POSITIVE"]

    def test_wide_percentage_stop_warns(self):
        rule = StopLossRule("PercentageBased", {"percentage": 15}, "Wide stop")
        result = StrategyValidator().validate_stop_loss(rule)
        assert result.is_valid
        assert codes(result.warnings) == ["HIGH_VALUE"]

    def test_partial_targets_total(self):
        """Test partial target percentages cannot exceed 100."""
        rule = TakeProfitRule("PartialTargets", {"targets": [
            {"percentage": 60, "ratio": 1},
            {"percentage": 60, "ratio": 2},
        ]}, "Scale out")

        result = StrategyValidator().validate_take_profit(rule)

        assert codes(result.errors) == ["INVALID_TOTAL"]

    def test_low_ratio_target_warns(self):
        rule = TakeProfitRule("RiskRewardRatio", {"ratio": 0.5}, "Half R target")
        result = StrategyValidator().validate_take_profit(rule)
        assert result.is_valid
        assert codes(result.warnings) == ["LOW_VALUE"]

    def test_trailing_stop_needs_type(self):
        rule = TakeProfitRule("TrailingStop", {"trail_distance": 20}, "Trail")
        result = StrategyValidator().validate_take_profit(rule)
        assert codes(issue_for(result.errors, "riskManagement.takeProfitRule.parameters.trailType")) == ["REQUIRED"]


class TestPerformanceValidation:
    """Test performance record consistency."""

    def test_calculated_record_is_consistent(self):
        """Test a record from the calculator validates cleanly."""
        performance = compute_performance(make_trades([100] * 32 + [-50] * 18))

        result = StrategyValidator().validate_performance(performance)

        assert result.is_valid
        assert result.warnings == []

    def test_inconsistent_totals(self):
        performance = StrategyPerformance(total_trades=10, winning_trades=5, losing_trades=4, win_rate=50.0)
        result = StrategyValidator().validate_performance(performance)
        assert codes(issue_for(result.errors, "performance.totalTrades")) == ["INCONSISTENT"]

    def test_win_rate_mismatch(self):
        performance = StrategyPerformance(total_trades=10, winning_trades=5, losing_trades=5, win_rate=70.0)
        result = StrategyValidator().validate_performance(performance)
        assert codes(issue_for(result.errors, "performance.winRate")) == ["INCONSISTENT"]

    def test_non_numeric_metric(self):
        performance = StrategyPerformance(profit_factor=float("nan"))
        result = StrategyValidator().validate_performance(performance)
        assert codes(issue_for(result.errors, "performance.profitFactor")) == ["REQUIRED_NUMERIC"]

    def test_month_format(self):
        performance = StrategyPerformance(monthly_returns=[
            MonthlyReturn(month="Jan-2024", total_return=10.0, trades=1, win_rate=100.0, profit_factor=999.0),
        ])
        result = StrategyValidator().validate_performance(performance)
        assert codes(result.errors) == ["INVALID_FORMAT"]

    def test_monthly_returns_not_a_list(self):
        result = StrategyValidator().validate_performance({"monthlyReturns": 5})
        assert codes(issue_for(result.errors, "performance.monthlyReturns")) == ["INVALID_TYPE"]

    def test_monthly_entry_not_a_record(self):
        result = StrategyValidator().validate_performance({"monthlyReturns": [5]})
        assert codes(issue_for(result.errors, "performance.monthlyReturns[0]")) == ["INVALID_TYPE"]

    def test_small_sample_warns(self):
        performance = compute_performance(make_trades([10, -5]))
        result = StrategyValidator().validate_performance(performance)
        assert result.is_valid
        assert codes(result.warnings) == ["INSUFFICIENT_DATA"]


class TestBusinessRules:
    """Test business rules and statistical significance."""

    def test_excessive_risk(self, strategy):
        """Test risk of 15% violates the business rules."""
        strategy.risk_management.max_risk_per_trade = 15

        result = StrategyValidator().validate_business_rules(strategy)

        assert codes(result.errors) == ["BUSINESS_RULE_VIOLATION"]

    def test_performance_warnings(self, strategy):
        """Test declining trend, deep drawdown and thin history warnings."""
        strategy.performance = StrategyPerformance(
            total_trades=12, winning_trades=4, losing_trades=8, win_rate=100 / 3,
            max_drawdown=25.0, performance_trend=PerformanceTrend.DECLINING,
        )

        result = StrategyValidator().validate_business_rules(strategy)

        assert result.is_valid
        assert set(codes(result.warnings)) == {"INSUFFICIENT_DATA", "PERFORMANCE_CONCERN", "HIGH_DRAWDOWN"}

    def test_statistical_significance(self, strategy):
        validator = StrategyValidator()
        assert validator.has_statistical_significance(strategy) is False

        strategy.performance = compute_performance(make_trades([100] * 32 + [-50] * 18))
        assert validator.has_statistical_significance(strategy) is True


class TestLedgerChecks:
    """Test checks against the trade ledger."""

    def test_data_integrity(self, strategy):
        """Test mismatched trades and stale metrics."""
        trades = make_trades([10, -5, 20])
        strategy.performance = compute_performance(trades[:2])
        trades.append(make_trades([5], strategy_id="other")[0])

        result = StrategyValidator().validate_data_integrity(strategy, trades)

        assert codes(result.errors) == ["DATA_INCONSISTENCY"]
        assert "METRIC_MISMATCH" in codes(result.warnings)

    def test_deletion_blocked_by_active_trades(self, strategy):
        trades = make_trades([10]) + [Trade(id="open", status=TradeStatus.OPEN, strategy_id="strat-1")]
        result = StrategyValidator().validate_for_deletion(strategy, trades)
        assert codes(result.errors) == ["ACTIVE_DEPENDENCIES"]
        assert codes(result.warnings) == ["DATA_LOSS_WARNING"]

    def test_deletion_of_significant_history(self, strategy):
        trades = make_trades([10] * 60)
        strategy.performance = compute_performance(trades)

        result = StrategyValidator().validate_for_deletion(strategy, trades)

        assert result.is_valid
        assert set(codes(result.warnings)) == {"DATA_LOSS_WARNING", "SIGNIFICANT_DATA_LOSS"}

    def test_trade_assignment(self, strategy):
        """Test strategy and asset class checks on assignment."""
        validator = StrategyValidator()
        trade = make_trades([10], strategy_id="other")[0]

        assert codes(validator.validate_trade_assignment(trade, strategy).errors) == ["STRATEGY_MISMATCH"]

        stock_trade = Trade(id="s", symbol="AAPL", strategy_id="strat-1")
        result = validator.validate_trade_assignment(stock_trade, strategy)
        assert result.is_valid
        assert codes(result.warnings) == ["ASSET_CLASS_MISMATCH"]


class TestLifecycleGuards:
    """Test creation and update guards."""

    def test_creation_requires_id_and_timestamp(self, strategy):
        strategy.id = ""
        strategy.created_at = ""

        result = StrategyValidator().validate_for_creation(strategy)

        assert {"id", "createdAt"} <= {e.field for e in result.errors}

    def test_id_is_immutable(self, strategy):
        existing = make_strategy("strat-0")
        result = StrategyValidator().validate_for_update(strategy, existing)
        assert codes(result.errors) == ["IMMUTABLE"]

    def test_trade_count_regression(self, strategy):
        existing = make_strategy()
        existing.performance = compute_performance(make_trades([10, 20, 30]))
        strategy.performance = compute_performance(make_trades([10]))

        result = StrategyValidator().validate_for_update(strategy, existing)

        assert "DATA_REGRESSION" in codes(result.warnings)


class TestBatchAndReporting:
    """Test batch validation and message formatting."""

    def test_validate_multiple(self):
        good = make_strategy("good")
        bad = make_strategy("bad")
        bad.methodology = None
        warned = make_strategy("warned")
        warned.asset_classes = []

        report = StrategyValidator().validate_multiple_strategies([good, bad, warned])

        assert report["summary"] == {
            "total_strategies": 3,
            "valid_strategies": 2,
            "invalid_strategies": 1,
            "strategies_with_warnings": 1,
        }
        assert [r["strategy_id"] for r in report["results"]] == ["good", "bad", "warned"]

    def test_format_messages(self):
        result = ValidationResult()
        result.add_warning("assetClasses", "RECOMMENDED", "Add asset classes")
        result.add_error("title", "REQUIRED", "Title is required")

        assert StrategyValidator.format_messages(result) == [
            "Error in title: Title is required",
            "Warning in assetClasses: Add asset classes",
        ]
        assert StrategyValidator.summarize(result) == "Invalid: 1 error(s), 1 warning(s)"
        assert StrategyValidator.summarize(ValidationResult()) == "All validations passed"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
