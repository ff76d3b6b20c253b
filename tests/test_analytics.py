"""
Tests for the cost ledger and predictive cost analytics.
"""

from datetime import UTC, date, datetime

import pytest

from agentflow.analytics.ledger import CostLedger, calculate_total_cost
from agentflow.analytics.predictive import (
    PredictiveCostAnalytics,
    assess_cost_risk,
    cache_savings,
    classify_trend,
    forecast_costs,
    generate_recommendations,
    most_expensive_mode,
)

LITERAL_PATH = ["prompt_acceptable", "cache_miss", "master_agent", "cost_optimizer", "quality_analyst"]


def day_timestamp(day: int) -> float:
    return datetime(2025, 3, day, 12, tzinfo=UTC).timestamp()


def fill(ledger: CostLedger, costs, chat_mode="balanced", cache_hit=False, path=None, user_id=None):
    for cost in costs:
        ledger.record(cost, chat_mode, cache_hit, path or ["master_agent"], user_id=user_id)


class TestCostCalculation:
    def test_literal_path_cost(self):
        prompt_cost = 3 * 1.3 * 0.000008
        expected = prompt_cost + 0.0001 + 0.0001 + 0.001 + 0.0005 + 0.001
        assert calculate_total_cost(LITERAL_PATH, prompt_cost) == pytest.approx(expected)

    def test_unknown_entries_use_default_cost(self):
        assert calculate_total_cost(["anything", "else"]) == pytest.approx(0.0002)
        assert calculate_total_cost([]) == 0.0


class TestLedger:
    def test_fifo_capacity(self):
        ledger = CostLedger(capacity=3)
        fill(ledger, [0.1, 0.2, 0.3, 0.4])

        assert len(ledger) == 3
        assert [e.cost for e in ledger.entries()] == [0.2, 0.3, 0.4]
        assert [e.cost for e in ledger.entries(last=2)] == [0.3, 0.4]
        assert ledger.entries(last=0) == []

    def test_entry_snapshots_path(self):
        ledger = CostLedger()
        path = ["master_agent"]
        ledger.record(0.001, "balanced", False, path)
        path.append("mutated")

        assert ledger.entries()[0].agent_path == ["master_agent"]

    def test_clear(self):
        ledger = CostLedger()
        fill(ledger, [0.1])
        ledger.clear()
        assert len(ledger) == 0


class TestTrend:
    def test_no_prior_window_is_stable(self):
        ledger = CostLedger()
        fill(ledger, [0.01] * 20)
        assert classify_trend(ledger.entries()) == "stable"

    def test_increasing(self):
        ledger = CostLedger()
        fill(ledger, [0.01] * 30 + [0.02] * 30)
        assert classify_trend(ledger.entries()) == "increasing"

    def test_decreasing(self):
        ledger = CostLedger()
        fill(ledger, [0.02] * 30 + [0.01] * 30)
        assert classify_trend(ledger.entries()) == "decreasing"

    def test_deadband(self):
        ledger = CostLedger()
        fill(ledger, [0.010] * 30 + [0.0105] * 30)
        assert classify_trend(ledger.entries()) == "stable"


class TestHelpers:
    def test_recommendations(self):
        ledger = CostLedger()
        fill(ledger, [0.01] * 10, chat_mode="fastest", path=LITERAL_PATH)
        recommendations = generate_recommendations(ledger.entries(), hit_rate=0.0, trend="increasing")

        assert "Consider enabling semantic caching to reduce costs" in recommendations
        assert any("cheapest" in r for r in recommendations)
        assert any('"fastest"' in r for r in recommendations)
        assert any("complex" in r for r in recommendations)

    def test_optimal_recommendation(self):
        ledger = CostLedger()
        fill(ledger, [0.01] * 5, cache_hit=True, path=["cache_hit"])
        assert generate_recommendations(ledger.entries(), 1.0, "stable") == [
            "Cost patterns look optimal - continue current usage"
        ]

    @pytest.mark.parametrize(
        "trend, avg_cost, hit_rate, expected",
        [
            ("increasing", 0.2, 0.05, "high"),
            ("increasing", 0.01, 0.5, "medium"),
            ("stable", 0.06, 0.5, "medium"),
            ("stable", 0.01, 0.5, "low"),
        ],
    )
    def test_cost_risk(self, trend, avg_cost, hit_rate, expected):
        assert assess_cost_risk(trend, avg_cost, hit_rate) == expected

    def test_most_expensive_mode_and_savings(self):
        ledger = CostLedger()
        fill(ledger, [0.004, 0.004], chat_mode="balanced")
        fill(ledger, [0.001], chat_mode="fastest")
        fill(ledger, [0.0002], cache_hit=True, path=["cache_hit"])
        entries = ledger.entries()

        assert most_expensive_mode(entries) == "balanced"
        assert most_expensive_mode([]) == "unknown"
        assert cache_savings(entries) == pytest.approx(0.003 * 0.8)


class TestForecast:
    def test_empty_ledger_forecasts_zero(self):
        forecast = forecast_costs([], today=date(2025, 3, 10))

        assert len(forecast) == 7
        assert forecast[0] == {"day": 1, "date": "2025-03-11", "predicted_cost": 0.0}

    def test_linear_trend(self):
        ledger = CostLedger()
        for day, cost in [(1, 0.01), (2, 0.02), (3, 0.03)]:
            ledger.record(cost, "balanced", False, ["master_agent"], timestamp=day_timestamp(day))

        forecast = forecast_costs(ledger.entries(), today=date(2025, 3, 3))

        assert forecast[0]["predicted_cost"] == pytest.approx(0.04)
        assert forecast[6]["predicted_cost"] == pytest.approx(0.10)

    def test_forecast_is_clamped_at_zero(self):
        ledger = CostLedger()
        for day, cost in [(1, 0.05), (2, 0.02)]:
            ledger.record(cost, "balanced", False, ["master_agent"], timestamp=day_timestamp(day))

        forecast = forecast_costs(ledger.entries(), today=date(2025, 3, 2))

        assert all(f["predicted_cost"] >= 0.0 for f in forecast)
        assert forecast[-1]["predicted_cost"] == 0.0

    def test_single_day_repeats_total(self):
        ledger = CostLedger()
        fill(ledger, [0.01, 0.02])
        forecast = forecast_costs(ledger.entries())
        assert all(f["predicted_cost"] == pytest.approx(0.03) for f in forecast)


class TestReport:
    def test_empty_ledger_report(self):
        report = PredictiveCostAnalytics(CostLedger()).report()

        assert report["trend"] == "stable"
        assert report["cache_hit_rate"] == 0
        assert report["analytics"]["total_interactions"] == 0
        assert report["predicted_cost"] == pytest.approx(0.01 * 5 * 7)
        assert report["risk_level"] == "low"

    def test_report_is_scoped_to_user(self):
        ledger = CostLedger()
        fill(ledger, [0.002] * 4, user_id="alice")
        fill(ledger, [0.0002] * 2, cache_hit=True, path=["cache_hit"], user_id="bob")

        alice = PredictiveCostAnalytics(ledger).report("alice")
        everyone = PredictiveCostAnalytics(ledger).report()

        assert alice["analytics"]["total_interactions"] == 4
        assert alice["cache_hit_rate"] == 0
        assert everyone["analytics"]["total_interactions"] == 6
        assert everyone["cache_hit_rate"] == 33

    def test_daily_interactions_estimate(self):
        ledger = CostLedger()
        analytics = PredictiveCostAnalytics(ledger)
        assert analytics.estimate_daily_interactions() == 5.0

        fill(ledger, [0.01] * 70)
        assert analytics.estimate_daily_interactions() == pytest.approx(50 / 7)
