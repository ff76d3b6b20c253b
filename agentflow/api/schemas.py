"""
=============================================================================
API Schemas
=============================================================================

Pydantic models for request/response validation.
=============================================================================
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["user", "agent"]
    content: str


class ChatRequest(BaseModel):
    """Request body for /api/v1/chat."""

    message: str
    conversation_id: str
    user_id: str = "anonymous"
    chat_mode: Literal["fastest", "cheapest", "balanced"] = "balanced"
    cost_budget: float | None = Field(default=None, gt=0)
    previous_messages: list[ChatMessage] = Field(default_factory=list)


class ChatResponse(BaseModel):
    """
    Response body for /api/v1/chat.

    cost is the nominal per-node estimate, not a billed amount.
    """

    response: str
    cost: float
    agent_path: list[str]
    optimizations_applied: list[str]
    cache_hit: bool
    risk_level: str
    thinking: list[str]
    metadata: dict[str, Any]


class CostAnalyticsResponse(BaseModel):
    """Response body for /api/v1/analytics/costs."""

    predicted_cost: float
    daily_average: float
    trend: str
    risk_level: str
    cache_hit_rate: int
    recommendations: list[str]
    analytics: dict[str, Any]


class CacheStatsResponse(BaseModel):
    """Response body for /cache/stats."""

    size: int
    capacity: int
    similarity_threshold: float
    hits: int
    misses: int
    evictions: int
    hit_rate: float
    entry_hits: int


class HealthResponse(BaseModel):
    """Response body for /health endpoint."""

    status: str
    version: str = "0.1.0"
