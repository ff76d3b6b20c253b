"""
=============================================================================
LangGraph Node Implementations
=============================================================================

Every pipeline step is a Node subclass: an async callable from AgentState to
a partial update.

FAILURE POLICY:
---------------
Node.__call__ owns the uniform failure policy. Any unexpected exception from
run() is logged and converted to {"agent_path": [<error tag>],
"failure_count": 1}; nothing propagates to the graph. Escalation to
failure_recovery is decided by the routing layer, not here.

PARTIAL UPDATES:
----------------
Nodes return ONLY the fields they change. Append fields (messages,
agent_path, optimizations_applied, ...) carry only the new elements.

COLLABORATORS:
--------------
All external capabilities come from the Services bundle passed to the
constructor, and every external call goes through invoke_with_retry().
=============================================================================
"""

import asyncio
import json
import logging
import re
import time
from datetime import UTC, datetime

from agentflow.analytics.ledger import NODE_COSTS, calculate_total_cost
from agentflow.analytics.metrics import record_node, record_recovery
from agentflow.config.langfuse import node_attributes, observe
from agentflow.errors import CacheError, TransientInvocationError, UtilityError
from agentflow.graph.state import AgentState, Message, effective_query, last_user_message
from agentflow.llm.retry import invoke_with_retry
from agentflow.prompts.manager import PromptBuilder, strategy_prompt
from agentflow.prompts.refinement import analyze_complexity, estimate_prompt_cost, refine_prompt
from agentflow.services import Services
from agentflow.tools.classifier import ExtractionTemplate, extraction_template_for
from agentflow.tools.extraction import (
    extract_date,
    extract_location,
    extract_product,
    extract_symptoms,
)

logger = logging.getLogger(__name__)

RETRIEVAL_FALLBACK_ANSWER = """I understand you're asking about "{query}". While I couldn't access real-time web data due to technical limitations, I can provide you with general information based on my knowledge.

For the most current and accurate information, I recommend:
1. Checking official websites directly
2. Using search engines like Google or Bing
3. Visiting relevant news or information sites

Would you like me to help you with anything else, or would you prefer to check these sources directly?"""

RECOVERY_FINAL_ANSWER = (
    "I apologize, but I'm experiencing technical difficulties. Please try again later."
)

DEFAULT_QUALITY_SCORE = 7.5
MAX_SOURCE_CHARS = 2000


def agent_message(content: str) -> Message:
    return {"role": "agent", "content": content}


class Node:
    """Base class for pipeline steps."""

    name: str = "node"
    error_tag: str | None = None

    def __init__(self, services: Services):
        self.services = services
        self.settings = services.settings
        self._traced = observe(name=f"{self.name}_node")(self._execute)

    async def __call__(self, state: AgentState) -> dict:
        return await self._traced(state)

    async def _execute(self, state: AgentState) -> dict:
        try:
            with node_attributes(state.get("conversation_id", "unknown"), self.name):
                update = await self.run(state)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{self.name.upper()}] Error: {e}", exc_info=True)
            record_node(self.name, status="error")
            return {
                "agent_path": [self.error_tag or f"{self.name}_error"],
                "failure_count": 1,
            }

        record_node(self.name)
        return update

    async def run(self, state: AgentState) -> dict:
        raise NotImplementedError

    async def call(self, fn, *args, timeout: float | None = None, **kwargs):
        """Invoke an external capability with the configured timeout and retry policy."""
        return await invoke_with_retry(
            fn,
            *args,
            timeout=timeout if timeout is not None else self.settings.invocation_timeout_seconds,
            settings=self.settings,
            **kwargs,
        )


class PromptAnalyzerNode(Node):
    """Estimates prompt cost and refines over-budget or complex prompts."""

    name = "prompt_analyzer"
    error_tag = "prompt_analysis_error"

    async def run(self, state: AgentState) -> dict:
        query = last_user_message(state)
        if not query.strip():
            return {"agent_path": ["prompt_analysis_skipped"]}

        s = self.settings
        prompt_cost = estimate_prompt_cost(query, s.tokens_per_word, s.cost_per_token)
        complexity = analyze_complexity(query)
        budget = state.get("cost_budget") or s.default_cost_budget

        logger.info(f"[ANALYZER] Prompt cost estimate: ${prompt_cost:.6f}, complexity={complexity}")

        analysis = {
            "original_cost": prompt_cost,
            "complexity": complexity,
            "cost_budget": budget,
        }

        if prompt_cost > budget or complexity == "high":
            refined = refine_prompt(query, s.refined_prompt_max_chars)
            refined_cost = estimate_prompt_cost(refined, s.tokens_per_word, s.cost_per_token)
            logger.info(f"[ANALYZER] Prompt refined: ${prompt_cost:.6f} -> ${refined_cost:.6f}")
            return {
                "refined_prompt": refined,
                "prompt_cost": refined_cost,
                "optimizations_applied": ["prompt_refinement"],
                "agent_path": ["prompt_refined"],
                "metadata": {"prompt_analysis": {**analysis, "refined_cost": refined_cost}},
            }

        return {
            "prompt_cost": prompt_cost,
            "agent_path": ["prompt_acceptable"],
            "metadata": {"prompt_analysis": analysis},
        }


class QueryClassifierNode(Node):
    """Full classification; a failure defaults to "no external data needed"."""

    name = "query_classifier"

    async def run(self, state: AgentState) -> dict:
        query = effective_query(state)

        try:
            result = await self.call(self.services.classifier.classify, query)
        except Exception as e:
            logger.warning(f"[CLASSIFIER] Classification failed, continuing without web data: {e}")
            return {
                "needs_web_data": False,
                "agent_path": ["query_classification_error"],
                "failure_count": 1,
                "metadata": {"classification_error": str(e)},
            }

        logger.info(
            f"[CLASSIFIER] needs_web_data={result.needs_external_data} "
            f"confidence={result.confidence:.2f} type={result.query_type} "
            f"sources={len(result.suggested_sources)}"
        )

        return {
            "needs_web_data": result.needs_external_data,
            "web_sources": list(result.suggested_sources),
            "current_agent": "query_classifier",
            "agent_path": [f"query_classified_{result.query_type}"],
            "metadata": {
                "classification": {
                    "confidence": result.confidence,
                    "query_type": result.query_type,
                    "extraction_strategy": result.extraction_strategy.to_dict(),
                    "cache_ttl": result.cache_ttl,
                }
            },
        }


def build_utility_request(query_type: str, query: str, user_id: str | None = None) -> dict:
    """Map a utility query type and raw text to {operation, data}."""
    if query_type == "health":
        return {
            "operation": "health_guidance",
            "data": {"symptoms": extract_symptoms(query), "severity": "moderate", "duration": "recent"},
        }
    if query_type == "travel":
        return {
            "operation": "travel_plan",
            "data": {
                "from": extract_location(query, "from"),
                "to": extract_location(query, "to"),
                "date": extract_date(query),
            },
        }
    if query_type == "shopping":
        return {
            "operation": "price_track",
            "data": {"product": extract_product(query), "user_id": user_id, "notification_method": "email"},
        }
    if query_type == "reverse_search":
        return {"operation": "reverse_search", "data": {"description": query, "category": "general"}}

    return {
        "operation": "weather_advice",
        "data": {"location": extract_location(query), "query": query},
    }


class DomainUtilityNode(Node):
    """Answers health/travel/shopping/reverse-lookup queries via the utility tool."""

    name = "domain_utility"

    async def run(self, state: AgentState) -> dict:
        query = effective_query(state)
        query_type = (state.get("metadata") or {}).get("classification", {}).get("query_type", "general")
        request = build_utility_request(query_type, query, state.get("user_id"))

        logger.info(f"[UTILITY] Processing {query_type} query as {request['operation']}")

        try:
            answer = await self.call(self.services.utility.run, request["operation"], request["data"])
        except (UtilityError, TransientInvocationError) as e:
            logger.warning(f"[UTILITY] {request['operation']} failed: {e}")
            return {
                "agent_path": ["domain_utility_failed"],
                "failure_count": 1,
                "metadata": {"utility_error": str(e)},
            }

        return {
            "messages": [agent_message(answer)],
            "current_agent": "domain_utility",
            "agent_path": [f"domain_utility_{query_type}"],
            "metadata": {"utility_request": request},
        }


class ExternalRetrievalNode(Node):
    """Fetches up to N suggested sources; tolerates partial failure."""

    name = "external_retrieval"
    error_tag = "retrieval_error"

    async def run(self, state: AgentState) -> dict:
        sources = state.get("web_sources") or []
        if not sources:
            logger.warning("[RETRIEVAL] No sources provided")
            return {"agent_path": ["retrieval_no_sources"]}

        classification = (state.get("metadata") or {}).get("classification", {})
        strategy = ExtractionTemplate.from_dict(classification.get("extraction_strategy"))
        timeout_ms = self.settings.retrieval_timeout_ms
        targets = sources[: self.settings.max_retrieval_sources]

        logger.info(f"[RETRIEVAL] Fetching {len(targets)} of {len(sources)} sources")

        async def fetch(url: str):
            template = extraction_template_for(url) or strategy
            return await self.call(
                self.services.retrieval.retrieve, url, template, timeout_ms, timeout=timeout_ms / 1000
            )

        outcomes = await asyncio.gather(*[fetch(url) for url in targets], return_exceptions=True)

        results: list[dict] = []
        for url, outcome in zip(targets, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"[RETRIEVAL] {url} failed: {outcome}")
            elif outcome.success:
                results.append(outcome.to_dict())
            else:
                logger.warning(f"[RETRIEVAL] {url} returned no content: {outcome.error}")

        if not results:
            logger.warning("[RETRIEVAL] All sources failed, falling back")
            return {
                "agent_path": ["retrieval_failed"],
                "failure_count": 1,
                "metadata": {"retrieval_failed": True, "fallback_used": True},
            }

        return {
            "scraping_results": results,
            "current_agent": "external_retrieval",
            "agent_path": [f"retrieved_{len(results)}_sources"],
            "metadata": {
                "retrieval_stats": {
                    "sources_attempted": len(targets),
                    "sources_successful": len(results),
                    "total_content_length": sum(len(r["extracted_text"]) for r in results),
                }
            },
        }


class SynthesisNode(Node):
    """Turns retrieved fragments into one concise, source-attributed answer."""

    name = "synthesis"

    async def run(self, state: AgentState) -> dict:
        fragments = [r for r in state.get("scraping_results") or [] if r.get("extracted_text")]
        if not fragments:
            return {"agent_path": ["synthesis_no_content"]}

        query = effective_query(state)
        sources_block = "\n---\n".join(
            f"Source {i}: {r['url']}\nContent: {r['extracted_text'][:MAX_SOURCE_CHARS]}"
            for i, r in enumerate(fragments, start=1)
        )
        prompt = self.services.prompts.build("synthesis", query=query, sources=sources_block)

        completion = await self.call(self.services.invoker.invoke, prompt, profile="precise")
        summary = completion.text.strip() or "Unable to generate summary from web content."

        citations = ", ".join(f"{i}. {r['url']}" for i, r in enumerate(fragments, start=1))
        answer = f"{summary}\n\nSources: {citations}"

        logger.info(f"[SYNTHESIS] Answer built from {len(fragments)} sources")

        return {
            "messages": [agent_message(answer)],
            "current_agent": "synthesis",
            "agent_path": ["synthesis_complete"],
            "optimizations_applied": ["web_content_integration"],
            "metadata": {
                "synthesis": {
                    "sources_used": len(fragments),
                    "summary_length": len(summary),
                    "sources": [{"url": r["url"], "title": r.get("title", "")} for r in fragments],
                }
            },
        }


class SemanticCacheNode(Node):
    """Approximate-match shortcut; a hit ends the run."""

    name = "semantic_cache"

    async def run(self, state: AgentState) -> dict:
        query = effective_query(state)
        if not query.strip():
            return {"cache_hit": False, "agent_path": ["cache_miss"]}

        try:
            hit = self.services.cache.lookup(query)
        except CacheError as e:
            logger.warning(f"[CACHE] Lookup failed, treating as miss: {e}")
            return {"cache_hit": False, "agent_path": ["cache_error"], "metadata": {"cache_error": str(e)}}

        if hit is None:
            return {"cache_hit": False, "agent_path": ["cache_miss"]}

        return {
            "messages": [agent_message(hit.response)],
            "cache_hit": True,
            "current_agent": "semantic_cache",
            "optimizations_applied": ["semantic_cache"],
            "agent_path": ["cache_hit"],
            "metadata": {
                "cache_hit_details": {
                    "source": "semantic_similarity",
                    "similarity": round(hit.similarity, 4),
                    "timestamp": datetime.now(UTC).isoformat(),
                }
            },
        }


class MasterAgentNode(Node):
    """Default answer producer; writes successful answers to the semantic cache."""

    name = "master_agent"

    async def run(self, state: AgentState) -> dict:
        metadata = state.get("metadata") or {}
        chat_mode = state.get("chat_mode", "balanced")
        query = effective_query(state)

        if metadata.get("retrieval_failed"):
            logger.info("[MASTER] Upstream retrieval failed, using fallback answer")
            return {
                "messages": [agent_message(RETRIEVAL_FALLBACK_ANSWER.format(query=query))],
                "current_agent": "master_fallback",
                "agent_path": ["master_agent_fallback"],
                "metadata": {"strategy": chat_mode, "fallback_used": True},
            }

        messages = state.get("messages") or []
        history = messages[:-1] if messages and messages[-1].get("role") == "user" else messages
        prompt = self.services.prompts.build(
            "master_agent",
            strategy=strategy_prompt(chat_mode),
            history=PromptBuilder.format_history(history),
            query=query,
        )

        completion = await self.call(self.services.invoker.invoke, prompt, profile="primary")
        answer = completion.text
        if not answer.strip():
            raise TransientInvocationError("primary model returned an empty answer")

        try:
            self.services.cache.store(query, answer)
        except CacheError as e:
            logger.warning(f"[MASTER] Could not store answer in cache: {e}")

        started = metadata.get("start_time", time.time())
        return {
            "messages": [agent_message(answer)],
            "current_agent": "master",
            "agent_path": ["master_agent"],
            "metadata": {
                "strategy": chat_mode,
                "processing_time_ms": int((time.time() - started) * 1000),
                "token_usage": completion.usage,
            },
        }


class CostOptimizerNode(Node):
    """Records the nominal cost of the optimization pass."""

    name = "cost_optimizer"

    async def run(self, state: AgentState) -> dict:
        nominal = NODE_COSTS["cost_optimizer"]
        path = list(state.get("agent_path") or []) + ["cost_optimizer"]
        return {
            "current_agent": "cost_optimizer",
            "agent_path": ["cost_optimizer"],
            "metadata": {
                "cost_optimization": {
                    "nominal_cost": nominal,
                    "strategy": state.get("chat_mode", "balanced"),
                    "estimated_run_cost": calculate_total_cost(path, state.get("prompt_cost", 0.0)),
                }
            },
        }


def extract_quality_metrics(text: str | None) -> tuple[float, list[str]]:
    """Lenient parse: embedded JSON, then "score: N", then the default."""
    if not text or not isinstance(text, str):
        return 7.0, ["Response quality could not be assessed"]

    match = re.search(r"\{[\s\S]*\}", text)
    if match:
        try:
            parsed = json.loads(match.group(0))
            score = float(parsed.get("qualityScore", DEFAULT_QUALITY_SCORE))
            recommendations = parsed.get("recommendations") or []
            if isinstance(recommendations, str):
                recommendations = [recommendations]
            return score, [str(r) for r in recommendations]
        except (ValueError, TypeError, AttributeError):
            pass

    score_match = re.search(r"(?:score|rating):\s*(\d+(?:\.\d+)?)", text, re.IGNORECASE)
    return (
        float(score_match.group(1)) if score_match else DEFAULT_QUALITY_SCORE,
        ["Improve response clarity", "Add more specific examples"],
    )


def assess_risk_level(score: float, optimizations: list[str]) -> str:
    if score < 6 or "failure_recovery" in optimizations:
        return "high"
    if score < 8 or len(optimizations) > 2:
        return "medium"
    return "low"


class QualityAnalystNode(Node):
    """Self-assessment by the economical model, mapped to a risk level."""

    name = "quality_analyst"

    async def run(self, state: AgentState) -> dict:
        optimizations = list(state.get("optimizations_applied") or [])
        conversation = "\n".join(m.get("content", "") for m in state.get("messages") or [])
        prompt = self.services.prompts.build(
            "quality_analyst",
            conversation=conversation,
            optimizations=", ".join(optimizations) or "none",
        )

        completion = await self.call(self.services.invoker.invoke, prompt, profile="economical")
        score, recommendations = extract_quality_metrics(completion.text)
        risk_level = assess_risk_level(score, optimizations)

        logger.info(f"[QUALITY] score={score} risk={risk_level}")

        return {
            "current_agent": "quality_analyst",
            "agent_path": ["quality_analyst"],
            "risk_level": risk_level,
            "metadata": {"quality_score": score, "quality_recommendations": recommendations},
        }


class FailureRecoveryNode(Node):
    """Backs off, then answers with the economical model. Always terminal."""

    name = "failure_recovery"

    def delay_ms(self, failure_count: int) -> int:
        s = self.settings
        return min(s.recovery_base_delay_ms * 2**failure_count, s.recovery_max_delay_ms)

    async def run(self, state: AgentState) -> dict:
        failure_count = state.get("failure_count", 0)
        delay = self.delay_ms(failure_count)

        logger.warning(f"[RECOVERY] Activated after {failure_count} failures, waiting {delay}ms")
        record_recovery()
        await self.services.sleep(delay / 1000)

        try:
            prompt = self.services.prompts.build("failure_recovery", query=effective_query(state))
            completion = await self.call(self.services.invoker.invoke, prompt, profile="economical")
        except Exception as e:
            logger.error(f"[RECOVERY] Fallback model failed: {e}")
            return {
                "messages": [agent_message(RECOVERY_FINAL_ANSWER)],
                "current_agent": "failure_recovery",
                "agent_path": ["failure_recovery_final"],
                "risk_level": "high",
                "failure_count": 1,
                "metadata": {"recovery_delay_ms": delay, "recovery_error": str(e)},
            }

        return {
            "messages": [agent_message(completion.text)],
            "current_agent": "failure_recovery",
            "agent_path": ["failure_recovery"],
            "optimizations_applied": ["failure_recovery"],
            "risk_level": "high",
            "metadata": {"recovery_method": "fallback_model", "recovery_delay_ms": delay},
        }


NODE_CLASSES: dict[str, type[Node]] = {
    cls.name: cls
    for cls in (
        PromptAnalyzerNode,
        QueryClassifierNode,
        DomainUtilityNode,
        ExternalRetrievalNode,
        SynthesisNode,
        SemanticCacheNode,
        MasterAgentNode,
        CostOptimizerNode,
        QualityAnalystNode,
        FailureRecoveryNode,
    )
}
