"""
=============================================================================
Routing Policy
=============================================================================

Pure functions from AgentState to the name of the next node.

ESCALATION:
-----------
Every conditional edge is wrapped by escalate(): once failure_count reaches
the threshold, the run goes to failure_recovery regardless of what the
wrapped routing function would have picked.
=============================================================================
"""

from collections.abc import Callable

from langgraph.graph import END

from agentflow.graph.state import AgentState, effective_query, last_path_entry
from agentflow.tools.classifier import is_utility_query, quick_check

FAILURE_RECOVERY = "failure_recovery"
MASTER_AGENT = "master_agent"


def route_after_prompt_analysis(state: AgentState) -> str:
    if last_path_entry(state) == "prompt_analysis_error":
        return MASTER_AGENT
    if quick_check(effective_query(state)):
        return "query_classifier"
    return "semantic_cache"


def route_after_classification(state: AgentState) -> str:
    classification = (state.get("metadata") or {}).get("classification", {})
    if is_utility_query(classification.get("query_type"), effective_query(state)):
        return "domain_utility"
    if state.get("needs_web_data") and state.get("web_sources"):
        return "external_retrieval"
    return "semantic_cache"


def route_after_domain_utility(state: AgentState) -> str:
    last = last_path_entry(state) or ""
    if last.startswith("domain_utility_") and last not in ("domain_utility_failed", "domain_utility_error"):
        return END
    return MASTER_AGENT


def route_after_retrieval(state: AgentState) -> str:
    if last_path_entry(state) in ("retrieval_failed", "retrieval_error"):
        return MASTER_AGENT
    if state.get("scraping_results"):
        return "synthesis"
    return MASTER_AGENT


def route_after_synthesis(state: AgentState) -> str:
    synthesis = (state.get("metadata") or {}).get("synthesis", {})
    if last_path_entry(state) == "synthesis_complete" and synthesis.get("sources_used", 0) > 0:
        return END
    return MASTER_AGENT


def route_after_cache(state: AgentState) -> str:
    return END if state.get("cache_hit") else MASTER_AGENT


def route_after_master(state: AgentState) -> str:
    if last_path_entry(state) == "master_agent_error":
        return MASTER_AGENT
    if state.get("chat_mode") == "fastest":
        return END
    return "cost_optimizer"


def route_after_cost_optimizer(state: AgentState) -> str:
    return "quality_analyst"


def route_after_quality_analyst(state: AgentState) -> str:
    return END


def escalate(route: Callable[[AgentState], str], threshold: int) -> Callable[[AgentState], str]:
    """Wrap a routing function with the failure-threshold override."""

    def escalating_route(state: AgentState) -> str:
        if state.get("failure_count", 0) >= threshold:
            return FAILURE_RECOVERY
        return route(state)

    escalating_route.__name__ = f"escalate_{route.__name__}"
    return escalating_route


# source node -> (routing function, possible destinations)
ROUTES: dict[str, tuple[Callable[[AgentState], str], list[str]]] = {
    "prompt_analyzer": (route_after_prompt_analysis, [MASTER_AGENT, "query_classifier", "semantic_cache"]),
    "query_classifier": (route_after_classification, ["domain_utility", "external_retrieval", "semantic_cache"]),
    "domain_utility": (route_after_domain_utility, [MASTER_AGENT, END]),
    "external_retrieval": (route_after_retrieval, [MASTER_AGENT, "synthesis"]),
    "synthesis": (route_after_synthesis, [MASTER_AGENT, END]),
    "semantic_cache": (route_after_cache, [MASTER_AGENT, END]),
    MASTER_AGENT: (route_after_master, [MASTER_AGENT, "cost_optimizer", END]),
    "cost_optimizer": (route_after_cost_optimizer, ["quality_analyst"]),
    "quality_analyst": (route_after_quality_analyst, [END]),
}
