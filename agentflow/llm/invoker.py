"""
=============================================================================
AI Invocation Capability
=============================================================================

Nodes never talk to a model directly. They call an AIInvoker with a prompt
and a profile:

- primary:    the answer-producing model (master agent)
- economical: cheaper model for review passes and recovery
- precise:    low-temperature model for synthesis and classification

ChatOpenAIInvoker is the default backend (any OpenAI-compatible endpoint).
Tests inject fakes that satisfy the same protocol.
=============================================================================
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import openai
from langchain_openai import ChatOpenAI

from agentflow.config.langfuse import get_langfuse_handler
from agentflow.config.settings import Settings, get_settings
from agentflow.errors import TransientInvocationError

logger = logging.getLogger(__name__)

PROFILES = ("primary", "economical", "precise")


@dataclass
class Completion:
    """Text returned by a model plus token usage."""

    text: str
    usage: dict[str, int] = field(default_factory=dict)
    latency_seconds: float = 0.0


class AIInvoker(Protocol):
    async def invoke(self, prompt: str, profile: str = "primary", **params: Any) -> Completion:
        ...


class ChatOpenAIInvoker:
    """AIInvoker backed by langchain_openai.ChatOpenAI, one client per profile."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._clients: dict[str, ChatOpenAI] = {}

    def _profile_config(self, profile: str) -> tuple[str, float]:
        s = self.settings
        return {
            "primary": (s.primary_model, s.primary_temperature),
            "economical": (s.economical_model, s.economical_temperature),
            "precise": (s.precise_model, s.precise_temperature),
        }[profile]

    def get_llm(self, profile: str) -> ChatOpenAI:
        """Get (and lazily create) the client for a profile."""
        if profile not in PROFILES:
            raise ValueError(f"Unknown invocation profile: {profile}")

        if profile not in self._clients:
            model, temperature = self._profile_config(profile)
            self._clients[profile] = ChatOpenAI(
                base_url=self.settings.llm_base_url,
                api_key=self.settings.llm_api_key,
                model=model,
                temperature=temperature,
                max_tokens=self.settings.max_output_tokens,
            )
        return self._clients[profile]

    async def invoke(self, prompt: str, profile: str = "primary", **params: Any) -> Completion:
        llm = self.get_llm(profile)
        if params:
            llm = llm.bind(**params)

        start_time = time.perf_counter()
        try:
            response = await llm.ainvoke(prompt, config={"callbacks": [get_langfuse_handler()]})
        except (
            openai.APIConnectionError,
            openai.APITimeoutError,
            openai.RateLimitError,
            openai.InternalServerError,
            httpx.HTTPError,
        ) as e:
            raise TransientInvocationError(f"{profile} invocation failed: {e}") from e
        latency = time.perf_counter() - start_time

        raw_usage = getattr(response, "usage_metadata", None) or {}
        usage = {k: v for k, v in raw_usage.items() if isinstance(v, int)}
        content = response.content
        if isinstance(content, list):
            content = "\n".join(
                part if isinstance(part, str) else str(part.get("text", "")) for part in content
            )

        logger.debug(f"[LLM] profile={profile} latency={latency:.2f}s usage={usage}")
        return Completion(text=str(content), usage=usage, latency_seconds=latency)
