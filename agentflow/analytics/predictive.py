"""
=============================================================================
Predictive Cost Analytics
=============================================================================

Derives trend, cache-hit rate, recommendations and a 7-day forecast from the
rolling cost ledger.

TREND:
------
Average cost of the newest 30 entries vs the 30 before them. A change of
more than 10% either way is "increasing"/"decreasing"; anything inside the
deadband, or no prior window at all, is "stable".

FORECAST:
---------
Ledger entries are bucketed by UTC day. With two or more days of history a
least-squares line (numpy.polyfit) over daily totals is extended 7 days;
otherwise the average daily cost is repeated. Predictions never go below 0.
=============================================================================
"""

import logging
from collections import defaultdict
from datetime import UTC, date, datetime, timedelta

import numpy as np

from agentflow.analytics.ledger import CostLedger, CostLedgerEntry

logger = logging.getLogger(__name__)

TREND_WINDOW = 30
TREND_DEADBAND = 0.10
FORECAST_DAYS = 7
CACHE_SAVINGS_RATIO = 0.8
MIN_DAILY_INTERACTIONS = 5.0


def _average(entries: list[CostLedgerEntry]) -> float:
    if not entries:
        return 0.0
    return sum(e.cost for e in entries) / len(entries)


def classify_trend(entries: list[CostLedgerEntry], window: int = TREND_WINDOW) -> str:
    recent = entries[-window:]
    previous = entries[-2 * window : -window] if len(entries) > window else []
    if not recent or not previous:
        return "stable"

    recent_avg = _average(recent)
    previous_avg = _average(previous)

    if recent_avg > previous_avg * (1 + TREND_DEADBAND):
        return "increasing"
    if recent_avg < previous_avg * (1 - TREND_DEADBAND):
        return "decreasing"
    return "stable"


def cache_hit_rate(entries: list[CostLedgerEntry]) -> float:
    if not entries:
        return 0.0
    return sum(1 for e in entries if e.cache_hit) / len(entries)


def generate_recommendations(
    entries: list[CostLedgerEntry], hit_rate: float, trend: str
) -> list[str]:
    recommendations: list[str] = []

    if hit_rate < 0.2:
        recommendations.append("Consider enabling semantic caching to reduce costs")

    if trend == "increasing":
        recommendations.append("Review recent queries for optimization opportunities")
        recommendations.append('Consider using "cheapest" mode for non-critical queries')

    if entries:
        fastest_share = sum(1 for e in entries if e.chat_mode == "fastest") / len(entries)
        if fastest_share > 0.5:
            recommendations.append(
                'High "fastest" mode usage detected - consider balanced mode for cost savings'
            )

        complex_runs = sum(1 for e in entries if len(e.agent_path) > 3)
        if complex_runs > len(entries) * 0.3:
            recommendations.append("Many complex queries detected - consider prompt optimization")

    if not recommendations:
        recommendations.append("Cost patterns look optimal - continue current usage")

    return recommendations


def assess_cost_risk(trend: str, avg_cost: float, hit_rate: float) -> str:
    if trend == "increasing" and avg_cost > 0.1 and hit_rate < 0.1:
        return "high"
    if trend == "increasing" or avg_cost > 0.05:
        return "medium"
    return "low"


def most_expensive_mode(entries: list[CostLedgerEntry]) -> str:
    totals: dict[str, float] = defaultdict(float)
    for entry in entries:
        totals[entry.chat_mode] += entry.cost
    if not totals:
        return "unknown"
    return max(totals.items(), key=lambda item: item[1])[0]


def cache_savings(entries: list[CostLedgerEntry]) -> float:
    """Estimated spend avoided by cache hits (80% of an average uncached run)."""
    hits = [e for e in entries if e.cache_hit]
    misses = [e for e in entries if not e.cache_hit]
    return len(hits) * _average(misses) * CACHE_SAVINGS_RATIO


def daily_totals(entries: list[CostLedgerEntry]) -> dict[date, float]:
    totals: dict[date, float] = defaultdict(float)
    for entry in entries:
        day = datetime.fromtimestamp(entry.timestamp, tz=UTC).date()
        totals[day] += entry.cost
    return dict(sorted(totals.items()))


def forecast_costs(
    entries: list[CostLedgerEntry], days: int = FORECAST_DAYS, today: date | None = None
) -> list[dict]:
    """Per-day cost predictions for the next `days` days."""
    today = today or datetime.now(UTC).date()
    totals = daily_totals(entries)

    if not totals:
        return [
            {"day": i + 1, "date": (today + timedelta(days=i + 1)).isoformat(), "predicted_cost": 0.0}
            for i in range(days)
        ]

    first_day = min(totals)
    xs = np.array([(d - first_day).days for d in totals], dtype=np.float64)
    ys = np.array(list(totals.values()), dtype=np.float64)
    offset = (today - first_day).days

    if len(totals) >= 2 and np.ptp(xs) > 0:
        slope, intercept = np.polyfit(xs, ys, 1)
    else:
        slope, intercept = 0.0, float(ys.mean())

    forecast = []
    for i in range(days):
        x = offset + i + 1
        predicted = max(float(slope * x + intercept), 0.0)
        forecast.append(
            {
                "day": i + 1,
                "date": (today + timedelta(days=i + 1)).isoformat(),
                "predicted_cost": round(predicted, 6),
            }
        )
    return forecast


class PredictiveCostAnalytics:
    """Report builder over a CostLedger."""

    def __init__(self, ledger: CostLedger, history_window: int = 100):
        self.ledger = ledger
        self.history_window = history_window

    def estimate_daily_interactions(self) -> float:
        recent = self.ledger.entries(last=50)
        return max(len(recent) / 7, MIN_DAILY_INTERACTIONS)

    def report(self, user_id: str | None = None) -> dict:
        """
        Build the predictive report.

        When `user_id` is given and the ledger holds entries for that user,
        the report is scoped to them; otherwise it covers all runs.
        """
        history = self.ledger.entries(last=self.history_window)
        if user_id is not None:
            scoped = [e for e in history if e.user_id == user_id]
            if scoped:
                history = scoped

        avg_cost = _average(history) if history else 0.01
        trend = classify_trend(history)
        hit_rate = cache_hit_rate(history)
        daily_avg = avg_cost * self.estimate_daily_interactions()

        logger.info(
            f"[ANALYTICS] Report: entries={len(history)} trend={trend} "
            f"hit_rate={hit_rate:.2f} avg_cost={avg_cost:.6f}"
        )

        return {
            "predicted_cost": daily_avg * FORECAST_DAYS,
            "daily_average": daily_avg,
            "trend": trend,
            "risk_level": assess_cost_risk(trend, avg_cost, hit_rate),
            "cache_hit_rate": round(hit_rate * 100),
            "recommendations": generate_recommendations(history, hit_rate, trend),
            "analytics": {
                "total_interactions": len(history),
                "average_cost_per_interaction": avg_cost,
                "most_expensive_mode": most_expensive_mode(history),
                "cost_savings": cache_savings(history),
                "forecast": forecast_costs(history),
            },
        }
