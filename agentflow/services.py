"""
Collaborator bundle injected into every node.

Process-wide shared structures (the semantic cache and the cost ledger) live
here so every executor built from the same Services shares them.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from agentflow.analytics.ledger import CostLedger
from agentflow.cache.semantic_cache import SemanticCache
from agentflow.config.settings import Settings, get_settings
from agentflow.llm.invoker import AIInvoker, ChatOpenAIInvoker
from agentflow.prompts.manager import PromptBuilder
from agentflow.tools.classifier import HeuristicQueryClassifier, LLMQueryClassifier, QueryClassifier
from agentflow.tools.retrieval import HttpRetrievalTool, RetrievalTool
from agentflow.tools.utility import DomainUtilityTool, LLMDomainUtilityTool

logger = logging.getLogger(__name__)


@dataclass
class Services:
    invoker: AIInvoker
    classifier: QueryClassifier
    retrieval: RetrievalTool
    utility: DomainUtilityTool
    cache: SemanticCache
    ledger: CostLedger
    settings: Settings = field(default_factory=get_settings)
    prompts: PromptBuilder = field(default_factory=PromptBuilder)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


def create_services(settings: Settings | None = None) -> Services:
    """Wire the default production backends."""
    settings = settings or get_settings()
    invoker = ChatOpenAIInvoker(settings)

    if settings.classifier_backend == "llm":
        classifier: QueryClassifier = LLMQueryClassifier(invoker)
    else:
        classifier = HeuristicQueryClassifier()

    logger.info(
        f"[SERVICES] classifier={type(classifier).__name__} "
        f"cache_capacity={settings.cache_capacity} ledger_capacity={settings.ledger_capacity}"
    )

    return Services(
        invoker=invoker,
        classifier=classifier,
        retrieval=HttpRetrievalTool(),
        utility=LLMDomainUtilityTool(invoker),
        cache=SemanticCache(
            capacity=settings.cache_capacity,
            threshold=settings.cache_similarity_threshold,
            dim=settings.cache_embedding_dim,
        ),
        ledger=CostLedger(capacity=settings.ledger_capacity),
        settings=settings,
    )
