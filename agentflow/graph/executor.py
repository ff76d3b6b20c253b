"""
=============================================================================
Workflow Executor
=============================================================================

Runs one user message through the compiled graph and turns the final state
into a RunResult.

RUN LIFECYCLE:
--------------
1. Build a fresh initial state (no state is shared between runs)
2. Invoke the graph with recursion_limit = max_steps, under the wall-clock
   budget and the optional cancel event
3. Extract the answer, compute the cost, record a ledger entry and metrics

FATAL RUNS:
-----------
An escaped exception, the step bound, the wall-clock budget or a
cancellation all end in the same fixed fallback result (cost 0.001,
risk "high", agent_path ["error_fallback"]). Fatal runs are recorded in the
ledger like any other run.
=============================================================================
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field

from langgraph.errors import GraphRecursionError
from langgraph.graph.state import CompiledStateGraph

from agentflow.analytics.ledger import FALLBACK_RUN_COST, calculate_total_cost
from agentflow.analytics.metrics import record_run
from agentflow.config.langfuse import observe, run_attributes
from agentflow.errors import FatalRunError, RunCancelledError
from agentflow.graph.builder import build_graph
from agentflow.graph.state import CHAT_MODES, AgentState, Message, create_initial_state, last_agent_message
from agentflow.services import Services

logger = logging.getLogger(__name__)

FALLBACK_RESPONSE = (
    "I apologize, but I encountered an error processing your request. Please try again."
)
NO_RESPONSE_TEXT = "I apologize, but I was unable to generate a response."

# agent_path prefix -> human readable step, in match order
THINKING_STEPS: list[tuple[str, str]] = [
    ("prompt_refined", "Refined the prompt to fit the cost budget"),
    ("prompt_acceptable", "Analyzed the prompt: within budget"),
    ("prompt_analysis_skipped", "Skipped prompt analysis (empty message)"),
    ("query_classified_", "Classified the query as {suffix}"),
    ("query_classification_error", "Query classification failed, continuing without web data"),
    ("domain_utility_failed", "Domain utility failed, handing off to the master agent"),
    ("domain_utility_", "Answered with the {suffix} utility"),
    ("retrieved_", "Retrieved content from {suffix}"),
    ("retrieval_", "Web retrieval unavailable ({suffix})"),
    ("synthesis_complete", "Synthesized an answer from web sources"),
    ("synthesis_", "Synthesis produced no answer ({suffix})"),
    ("cache_hit", "Found a semantically similar cached answer"),
    ("cache_miss", "No cached answer found"),
    ("cache_error", "Cache lookup failed, treated as a miss"),
    ("master_agent_fallback", "Master agent answered without web data"),
    ("master_agent_error", "Master agent failed"),
    ("master_agent", "Master agent generated the answer"),
    ("cost_optimizer", "Recorded cost optimization"),
    ("quality_analyst_error", "Quality analysis failed"),
    ("quality_analyst", "Assessed response quality"),
    ("failure_recovery_final", "Recovery model failed, returned a fixed apology"),
    ("failure_recovery", "Recovered from repeated failures with the fallback model"),
    ("error_fallback", "The run failed and returned a fallback answer"),
]


def build_thinking(agent_path: list[str]) -> list[str]:
    """Readable trace of the steps a run took."""
    steps = []
    for entry in agent_path:
        for prefix, text in THINKING_STEPS:
            if entry.startswith(prefix):
                suffix = entry[len(prefix):].replace("_", " ")
                steps.append(text.format(suffix=suffix))
                break
        else:
            steps.append(entry.replace("_", " "))
    return steps


@dataclass
class RunOptions:
    chat_mode: str = "balanced"
    cost_budget: float | None = None
    previous_messages: list[Message] | None = None
    cancel_event: asyncio.Event | None = None


@dataclass
class RunResult:
    response_text: str
    cost: float
    agent_path: list[str]
    optimizations_applied: list[str]
    cache_hit: bool
    risk_level: str
    metadata: dict
    thinking: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def fallback_result(error: str, cancelled: bool = False) -> RunResult:
    metadata: dict = {"error": error}
    if cancelled:
        metadata["cancelled"] = True
    return RunResult(
        response_text=FALLBACK_RESPONSE,
        cost=FALLBACK_RUN_COST,
        agent_path=["error_fallback"],
        optimizations_applied=[],
        cache_hit=False,
        risk_level="high",
        metadata=metadata,
        thinking=build_thinking(["error_fallback"]),
    )


def final_answer(state: AgentState) -> str:
    return last_agent_message(state) or NO_RESPONSE_TEXT


class WorkflowExecutor:
    """
    Entry point for running the workflow.

    Safe for concurrent use: every run gets its own state, and the only
    shared structures (cache, ledger) are lock-guarded.
    """

    def __init__(self, services: Services, graph: CompiledStateGraph | None = None):
        self.services = services
        self.settings = services.settings
        self.graph = graph or build_graph(services)

    async def run(
        self,
        conversation_id: str,
        user_id: str,
        message: str,
        options: RunOptions | None = None,
    ) -> RunResult:
        options = options or RunOptions()
        chat_mode = options.chat_mode
        if chat_mode not in CHAT_MODES:
            logger.warning(f"[EXECUTOR] Unknown chat mode '{chat_mode}', using 'balanced'")
            chat_mode = "balanced"

        cost_budget = options.cost_budget
        if cost_budget is None:
            cost_budget = self.settings.default_cost_budget

        state = create_initial_state(
            conversation_id=conversation_id,
            user_id=user_id,
            message=message,
            chat_mode=chat_mode,
            cost_budget=cost_budget,
            previous_messages=options.previous_messages,
        )

        logger.info(
            f"[EXECUTOR] Run started: conversation={conversation_id}, mode={chat_mode}, "
            f"message={message[:50]}..."
        )
        started = time.perf_counter()

        try:
            final_state = await self._run_graph(state, options.cancel_event)
        except asyncio.CancelledError:
            logger.warning(f"[EXECUTOR] Run task cancelled: conversation={conversation_id}")
            result = fallback_result("run task cancelled", cancelled=True)
            self._record(result, chat_mode, user_id, "cancelled", started)
            raise
        except RunCancelledError as e:
            logger.warning(f"[EXECUTOR] Run cancelled: conversation={conversation_id}")
            result = fallback_result(str(e), cancelled=True)
            outcome = "cancelled"
        except FatalRunError as e:
            logger.error(f"[EXECUTOR] Run failed: conversation={conversation_id}: {e}")
            result = fallback_result(str(e))
            outcome = "fatal"
        else:
            result = self._build_result(final_state)
            recovered = any(p.startswith("failure_recovery") for p in result.agent_path)
            outcome = "recovered" if recovered else "success"

        duration = self._record(result, chat_mode, user_id, outcome, started)

        logger.info(
            f"[EXECUTOR] Run complete: path={result.agent_path}, cost=${result.cost:.6f}, "
            f"risk={result.risk_level}, duration={duration:.2f}s"
        )
        return result

    def _record(self, result: RunResult, chat_mode: str, user_id: str, outcome: str, started: float) -> float:
        """One ledger entry and one run metric per run, whatever the outcome."""
        duration = time.perf_counter() - started
        self.services.ledger.record(
            cost=result.cost,
            chat_mode=chat_mode,
            cache_hit=result.cache_hit,
            agent_path=result.agent_path,
            user_id=user_id,
        )
        record_run(chat_mode, outcome, result.cost, duration)
        return duration

    async def _run_graph(self, state: AgentState, cancel_event: asyncio.Event | None) -> AgentState:
        """Invoke the graph under the wall-clock budget and the cancel event."""
        graph_task = asyncio.create_task(self._invoke_graph(state))
        waiters = {graph_task}
        cancel_task = None
        if cancel_event is not None:
            cancel_task = asyncio.create_task(cancel_event.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.settings.run_timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()

        if graph_task in done:
            return self._unwrap(graph_task)

        await asyncio.gather(graph_task, return_exceptions=True)
        if cancel_task is not None and cancel_task in done:
            raise RunCancelledError("run cancelled by caller")
        raise FatalRunError(f"run exceeded wall-clock budget of {self.settings.run_timeout_seconds}s")

    def _unwrap(self, graph_task: asyncio.Task) -> AgentState:
        try:
            return graph_task.result()
        except GraphRecursionError as e:
            raise FatalRunError(f"step bound of {self.settings.max_steps} exceeded") from e
        except FatalRunError:
            raise
        except Exception as e:
            raise FatalRunError(f"unexpected error: {e}") from e

    @observe(name="workflow_run")
    async def _invoke_graph(self, state: AgentState) -> AgentState:
        with run_attributes(state["conversation_id"], state["user_id"], state["chat_mode"]):
            return await self.graph.ainvoke(state, {"recursion_limit": self.settings.max_steps})

    def _build_result(self, state: AgentState) -> RunResult:
        agent_path = list(state.get("agent_path", []))
        return RunResult(
            response_text=final_answer(state),
            cost=calculate_total_cost(agent_path, state.get("prompt_cost", 0.0)),
            agent_path=agent_path,
            optimizations_applied=list(state.get("optimizations_applied", [])),
            cache_hit=bool(state.get("cache_hit", False)),
            risk_level=state.get("risk_level", "low"),
            metadata=dict(state.get("metadata", {})),
            thinking=build_thinking(agent_path),
        )
