"""
=============================================================================
Prometheus Metrics Module
=============================================================================

Prometheus metrics for monitoring workflow runs, node executions and the
semantic cache.

METRICS EXPOSED:
----------------
- agentflow_runs_total: Completed runs by chat mode and outcome
- agentflow_node_executions_total: Node executions by node and status
- agentflow_cache_lookups_total: Semantic cache lookups by result
- agentflow_failure_recoveries_total: Runs escalated to failure recovery
- agentflow_run_cost_usd: Histogram of estimated run cost
- agentflow_run_duration_seconds: Histogram of run wall-clock time
- agentflow_cache_entries: Current semantic cache size
=============================================================================
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response

# =============================================================================
# Prometheus Metrics Definitions
# =============================================================================

RUN_COUNTER = Counter(
    "agentflow_runs_total",
    "Total number of workflow runs",
    ["chat_mode", "outcome"],
)

NODE_COUNTER = Counter(
    "agentflow_node_executions_total",
    "Total number of node executions",
    ["node", "status"],
)

CACHE_LOOKUP_COUNTER = Counter(
    "agentflow_cache_lookups_total",
    "Semantic cache lookups",
    ["result"],
)

RECOVERY_COUNTER = Counter(
    "agentflow_failure_recoveries_total",
    "Runs escalated to the failure recovery node",
)

RUN_COST_HISTOGRAM = Histogram(
    "agentflow_run_cost_usd",
    "Estimated cost per run in USD",
    buckets=[0.0005, 0.001, 0.002, 0.005, 0.01, 0.05, 0.1, 0.5],
)

RUN_DURATION_HISTOGRAM = Histogram(
    "agentflow_run_duration_seconds",
    "Wall-clock duration of a run",
    ["chat_mode"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

CACHE_ENTRIES = Gauge(
    "agentflow_cache_entries",
    "Current number of semantic cache entries",
)


# =============================================================================
# Metric Recording Functions
# =============================================================================


def record_run(chat_mode: str, outcome: str, cost: float, duration_seconds: float) -> None:
    """Record a finished run."""
    RUN_COUNTER.labels(chat_mode=chat_mode, outcome=outcome).inc()
    RUN_COST_HISTOGRAM.observe(cost)
    RUN_DURATION_HISTOGRAM.labels(chat_mode=chat_mode).observe(duration_seconds)


def record_node(node: str, status: str = "success") -> None:
    """Record a node execution."""
    NODE_COUNTER.labels(node=node, status=status).inc()


def record_cache_lookup(hit: bool) -> None:
    CACHE_LOOKUP_COUNTER.labels(result="hit" if hit else "miss").inc()


def record_recovery() -> None:
    RECOVERY_COUNTER.inc()


def set_cache_entries(count: int) -> None:
    CACHE_ENTRIES.set(count)


# =============================================================================
# Endpoint Handler
# =============================================================================


async def prometheus_metrics_endpoint() -> Response:
    """
    Generate Prometheus metrics in text format.

    Returns metrics in Prometheus exposition format for scraping.
    """
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
