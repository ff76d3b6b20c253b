# Cache package
from agentflow.cache.semantic_cache import CacheLookupResult, SemanticCache

__all__ = ["CacheLookupResult", "SemanticCache"]
