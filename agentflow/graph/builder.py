"""
=============================================================================
LangGraph Builder
=============================================================================

Constructs the multi-agent workflow graph.

GRAPH STRUCTURE:
----------------
START -> prompt_analyzer
prompt_analyzer  -> query_classifier | semantic_cache | master_agent
query_classifier -> domain_utility | external_retrieval | semantic_cache
external_retrieval -> synthesis | master_agent
synthesis / domain_utility / semantic_cache -> END | master_agent
master_agent -> cost_optimizer -> quality_analyst -> END  (fastest: END)
failure_recovery -> END

Every outgoing edge except failure_recovery's is conditional and escalates
to failure_recovery once failure_count reaches the threshold.

ISOLATION:
----------
No checkpointer is attached: each run starts from a fresh initial state and
nothing is carried between invocations.
=============================================================================
"""

import logging

from langgraph.graph import END, START, StateGraph
from langgraph.graph.state import CompiledStateGraph

from agentflow.graph.nodes import NODE_CLASSES
from agentflow.graph.routing import FAILURE_RECOVERY, ROUTES, escalate
from agentflow.graph.state import AgentState
from agentflow.services import Services

logger = logging.getLogger(__name__)

ENTRY_NODE = "prompt_analyzer"


def build_graph(services: Services) -> CompiledStateGraph:
    """
    Build and compile the multi-agent workflow graph.

    Args:
        services: Collaborators handed to every node constructor.

    USAGE:
    ------
    graph = build_graph(create_services())
    result = await graph.ainvoke(initial_state, {"recursion_limit": 20})
    """
    threshold = services.settings.failure_threshold
    logger.info(f"[GRAPH] Building workflow graph (failure_threshold={threshold})")

    builder = StateGraph(AgentState)

    for name, node_cls in NODE_CLASSES.items():
        builder.add_node(name, node_cls(services))

    builder.add_edge(START, ENTRY_NODE)

    for source, (route, destinations) in ROUTES.items():
        builder.add_conditional_edges(
            source,
            escalate(route, threshold),
            [*destinations, FAILURE_RECOVERY],
        )

    builder.add_edge(FAILURE_RECOVERY, END)

    graph = builder.compile()

    logger.info(f"[GRAPH] Graph compiled successfully ({len(NODE_CLASSES)} nodes)")

    return graph
