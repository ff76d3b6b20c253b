# Analytics package
from agentflow.analytics.ledger import CostLedger, CostLedgerEntry, calculate_total_cost
from agentflow.analytics.predictive import PredictiveCostAnalytics

__all__ = ["CostLedger", "CostLedgerEntry", "PredictiveCostAnalytics", "calculate_total_cost"]
