from agentflow.tools.classifier import (
    ClassificationResult,
    ExtractionTemplate,
    HeuristicQueryClassifier,
    LLMQueryClassifier,
    QueryClassifier,
    quick_check,
)
from agentflow.tools.retrieval import HttpRetrievalTool, RetrievalResult, RetrievalTool
from agentflow.tools.utility import DomainUtilityTool, LLMDomainUtilityTool

__all__ = [
    "ClassificationResult",
    "DomainUtilityTool",
    "ExtractionTemplate",
    "HeuristicQueryClassifier",
    "HttpRetrievalTool",
    "LLMDomainUtilityTool",
    "LLMQueryClassifier",
    "QueryClassifier",
    "RetrievalResult",
    "RetrievalTool",
    "quick_check",
]
