"""
=============================================================================
LangGraph State Definition
=============================================================================

Defines the run-state schema for the multi-agent workflow.

STATE DESIGN NOTES:
-------------------
- Every field carries its merge rule in Annotated metadata; LangGraph reads
  the same reducers when folding node outputs into the state.
- Nodes return ONLY the fields they changed. Append fields carry only the
  new elements, never the whole list.
- Override fields treat None as "not present" and keep the previous value.
- merge_state() applies the identical schema outside the graph.
=============================================================================
"""

import time
from operator import add
from typing import Annotated, Any, Literal, TypedDict, get_type_hints

ChatMode = Literal["fastest", "cheapest", "balanced"]
RiskLevel = Literal["low", "medium", "high"]

CHAT_MODES: tuple[str, ...] = ("fastest", "cheapest", "balanced")


class Message(TypedDict):
    """A single message in the conversation."""

    role: str  # "user" or "agent"
    content: str


def override(current: Any, update: Any) -> Any:
    """Last writer wins; a None update keeps the current value."""
    return current if update is None else update


def append(current: list | None, update: list | None) -> list:
    """Concatenate in application order."""
    return add(list(current or []), list(update or []))


def accumulate(current: int | None, update: int | None) -> int:
    """Numeric sum, used for failure_count."""
    return (current or 0) + (update or 0)


def shallow_merge(current: dict | None, update: dict | None) -> dict:
    """New keys overwrite same-named old keys; everything else survives."""
    return {**(current or {}), **(update or {})}


class AgentState(TypedDict, total=False):
    """
    State schema for the multi-agent workflow.

    One instance per run; it is never shared between runs.
    """

    # Identity
    conversation_id: Annotated[str, override]
    user_id: Annotated[str, override]

    # Conversation (append-only)
    messages: Annotated[list[Message], append]

    # Execution policy (fixed for the run)
    chat_mode: Annotated[str, override]
    cost_budget: Annotated[float, override]

    # Prompt analysis
    prompt_cost: Annotated[float, override]
    refined_prompt: Annotated[str | None, override]

    # Trace
    current_agent: Annotated[str, override]
    agent_path: Annotated[list[str], append]
    optimizations_applied: Annotated[list[str], append]

    # Outcome
    cache_hit: Annotated[bool, override]
    risk_level: Annotated[str, override]
    failure_count: Annotated[int, accumulate]

    # Retrieval branch
    needs_web_data: Annotated[bool, override]
    web_sources: Annotated[list[str], append]
    scraping_results: Annotated[list[dict], append]

    # Open map
    metadata: Annotated[dict[str, Any], shallow_merge]


def _build_reducer_schema() -> dict[str, Any]:
    hints = get_type_hints(AgentState, include_extras=True)
    return {name: hint.__metadata__[0] for name, hint in hints.items()}


# field name -> reducer, read from the annotations above
REDUCERS: dict[str, Any] = _build_reducer_schema()


def merge_state(state: AgentState, update: dict) -> AgentState:
    """
    Fold a partial update into a state using the declared reducers.

    Returns a new dict; the input state is not mutated. Unknown keys are
    rejected so a typo in a node cannot silently drop data.
    """
    merged: dict = dict(state)
    for key, value in update.items():
        reducer = REDUCERS.get(key)
        if reducer is None:
            raise KeyError(f"Unknown state field: {key}")
        if value is None and key not in merged:
            continue
        merged[key] = reducer(merged.get(key), value)
    return merged  # type: ignore[return-value]


def create_initial_state(
    conversation_id: str,
    user_id: str,
    message: str,
    chat_mode: str = "balanced",
    cost_budget: float = 0.10,
    previous_messages: list[Message] | None = None,
) -> AgentState:
    """Build the starting state for one run."""
    messages: list[Message] = [
        {"role": m["role"], "content": m["content"]} for m in (previous_messages or [])
    ]
    messages.append({"role": "user", "content": message})

    return {
        "conversation_id": conversation_id,
        "user_id": user_id,
        "messages": messages,
        "chat_mode": chat_mode,
        "cost_budget": cost_budget,
        "prompt_cost": 0.0,
        "current_agent": "master",
        "agent_path": [],
        "optimizations_applied": [],
        "cache_hit": False,
        "risk_level": "low",
        "failure_count": 0,
        "needs_web_data": False,
        "web_sources": [],
        "scraping_results": [],
        "metadata": {"start_time": time.time()},
    }


def last_user_message(state: AgentState) -> str:
    """Content of the most recent user message, or an empty string."""
    for message in reversed(state.get("messages", [])):
        if message.get("role") == "user":
            return message.get("content", "") or ""
    return ""


def last_agent_message(state: AgentState) -> str | None:
    """Content of the most recent non-empty agent message, if any."""
    for message in reversed(state.get("messages", [])):
        if message.get("role") == "agent" and message.get("content"):
            return message["content"]
    return None


def effective_query(state: AgentState) -> str:
    """The refined prompt when one was produced, else the raw user message."""
    return state.get("refined_prompt") or last_user_message(state)


def last_path_entry(state: AgentState) -> str | None:
    path = state.get("agent_path") or []
    return path[-1] if path else None
