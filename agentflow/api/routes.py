"""
=============================================================================
API Routes
=============================================================================

FastAPI routes for the workflow engine.

ENDPOINTS:
----------
- POST /api/v1/chat - Run one message through the workflow
- POST /api/v1/chat/stream - Same run, streamed as Server-Sent Events
- GET /api/v1/analytics/costs - Predictive cost report
- GET /cache/stats - Semantic cache statistics
- DELETE /cache - Empty the semantic cache
- GET /health - Health check
- GET /metrics - Prometheus metrics

Collaborators are read from app.state through FastAPI Depends().
=============================================================================
"""

import asyncio
import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from agentflow.analytics.metrics import prometheus_metrics_endpoint
from agentflow.analytics.predictive import PredictiveCostAnalytics
from agentflow.api.schemas import (
    CacheStatsResponse,
    ChatRequest,
    ChatResponse,
    CostAnalyticsResponse,
    HealthResponse,
)
from agentflow.cache.semantic_cache import SemanticCache
from agentflow.graph.executor import RunOptions, RunResult, WorkflowExecutor

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Scrape with: curl http://localhost:8000/metrics
    """
    return await prometheus_metrics_endpoint()


# =============================================================================
# Dependency Injection
# =============================================================================


async def get_executor(request: Request) -> WorkflowExecutor:
    """Get the workflow executor from app state."""
    return request.app.state.executor


async def get_cache(request: Request) -> SemanticCache:
    """Get the process-wide semantic cache from app state."""
    return request.app.state.services.cache


async def get_analytics(request: Request) -> PredictiveCostAnalytics:
    """Get the predictive analytics view over the cost ledger."""
    return request.app.state.analytics


def _run_options(body: ChatRequest) -> RunOptions:
    return RunOptions(
        chat_mode=body.chat_mode,
        cost_budget=body.cost_budget,
        previous_messages=[m.model_dump() for m in body.previous_messages],
    )


def _to_response(result: RunResult) -> ChatResponse:
    return ChatResponse(
        response=result.response_text,
        cost=result.cost,
        agent_path=result.agent_path,
        optimizations_applied=result.optimizations_applied,
        cache_hit=result.cache_hit,
        risk_level=result.risk_level,
        thinking=result.thinking,
        metadata=result.metadata,
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/api/v1/chat", response_model=ChatResponse)
async def handle_chat(
    body: ChatRequest,
    executor: Annotated[WorkflowExecutor, Depends(get_executor)],
) -> ChatResponse:
    """Process a user message through the multi-agent workflow."""
    logger.info(
        f"[API] Chat received: conversation={body.conversation_id}, "
        f"mode={body.chat_mode}, message={body.message[:50]}..."
    )

    result = await executor.run(
        body.conversation_id,
        body.user_id,
        body.message,
        _run_options(body),
    )

    logger.info(f"[API] Chat complete: path={result.agent_path}, cache_hit={result.cache_hit}")

    return _to_response(result)


@router.post("/api/v1/chat/stream")
async def handle_chat_stream(
    body: ChatRequest,
    executor: Annotated[WorkflowExecutor, Depends(get_executor)],
):
    """
    Streaming version of the chat endpoint.

    The run itself is not incremental; once it finishes, each thinking step
    is sent as its own event, followed by the answer. A client disconnect
    cancels the generator and with it the in-flight run, which the executor
    still records as a cancelled run.

    SSE FORMAT:
    -----------
    event: thinking
    data: {"step": "Analyzed the prompt: within budget"}

    event: message
    data: {"response": "...", "cost": 0.0025, ...}

    event: done
    data: {"agent_path": [...]}
    """

    async def generate():
        """Async generator that yields SSE events."""
        try:
            result = await executor.run(
                body.conversation_id,
                body.user_id,
                body.message,
                _run_options(body),
            )
        except asyncio.CancelledError:
            logger.info(f"[API] Stream closed by client: conversation={body.conversation_id}")
            raise

        for step in result.thinking:
            yield {"event": "thinking", "data": json.dumps({"step": step})}

        yield {"event": "message", "data": _to_response(result).model_dump_json()}
        yield {"event": "done", "data": json.dumps({"agent_path": result.agent_path})}

    return EventSourceResponse(generate())


@router.get("/api/v1/analytics/costs", response_model=CostAnalyticsResponse)
async def get_cost_analytics(
    analytics: Annotated[PredictiveCostAnalytics, Depends(get_analytics)],
    user_id: str | None = None,
) -> CostAnalyticsResponse:
    """Predictive cost report over recent runs, optionally scoped to one user."""
    return CostAnalyticsResponse(**analytics.report(user_id))


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def get_cache_stats(cache: Annotated[SemanticCache, Depends(get_cache)]) -> CacheStatsResponse:
    return CacheStatsResponse(**cache.stats())


@router.delete("/cache")
async def clear_cache(cache: Annotated[SemanticCache, Depends(get_cache)]):
    """Remove every cached answer."""
    removed = len(cache)
    cache.clear()
    logger.info(f"[API] Cache cleared: {removed} entries removed")
    return {"status": "cleared", "removed": removed}


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy")
