"""
=============================================================================
Query Classification
=============================================================================

Decides whether a query needs real-time external data, what kind of query it
is, and which sources to consult.

TWO STAGES:
-----------
1. quick_check(): a cheap local regex pre-filter used by the routing policy
   right after prompt analysis. False sends the query straight to the
   semantic cache.
2. QueryClassifier.classify(): the full classification, run only when the
   pre-filter fires. HeuristicQueryClassifier is fully local;
   LLMQueryClassifier asks a model for the real-time verdict and keeps the
   local rules for type, sources and extraction strategy.
=============================================================================
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import urlparse

from agentflow.errors import ClassificationError
from agentflow.llm.invoker import AIInvoker

logger = logging.getLogger(__name__)

# Query types answered by the domain utility branch instead of retrieval
UTILITY_QUERY_TYPES = frozenset({"health", "travel", "shopping", "reverse_search"})

# Signals that a query depends on live or external data
REALTIME_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(trending|popular|viral)\b|\btop\s+\d+",
        r"latest\s+(news|updates|releases)|\bnews\b|breaking",
        r"\b(price|prices|deal|deals|discount|sale)\b|how\s+much|cheapest\s+\w+",
        r"\bweather\b|\btemperature\b|\bforecast\b",
        r"\btoday\b|right\s+now|\bcurrent(ly)?\b|this\s+week|\blive\b|real[- ]?time|up[- ]?to[- ]?date",
        r"reddit|twitter|hacker\s+news|product\s+hunt|github\s+trending",
        r"ai\s+news|model\s+pricing|ai\s+pricing|token\s+cost",
        r"what\s+should\s+i\s+wear|clothing\s+advice|dress\s+for",
        r"\bsymptoms?\b|\bheadache\b|\bfever\b|\bcough\b",
        r"travel\s+to|flight\s+to|train\s+to|book\s+(a\s+)?ticket",
        r"price\s+of|cost\s+of|track\s+price|price\s+drop",
        r"identify\s+this|reverse\s+search",
        r"\b(buy|purchase)\b|under\s+\d+|below\s+\d+|on\s+amazon|on\s+flipkart",
    )
]

# Requests about this service itself never need outside data
SELF_QUERY_PATTERN = re.compile(r"\b(my|our)\s+(usage|bill|spend|costs?|budget)\b", re.IGNORECASE)

SOURCE_MAPPING: dict[str, list[str]] = {
    "trending": [
        "https://news.ycombinator.com/",
        "https://github.com/trending",
        "https://www.producthunt.com/",
    ],
    "shopping": [
        "https://www.amazon.com/",
        "https://www.amazon.in/",
        "https://www.flipkart.com/",
        "https://www.ebay.com/",
    ],
    "news": [
        "https://techcrunch.com/",
        "https://www.theverge.com/",
        "https://arstechnica.com/",
    ],
    "social": [
        "https://www.reddit.com/",
        "https://news.ycombinator.com/",
    ],
    "weather": [
        "https://www.weather.gov/",
        "https://www.wunderground.com/",
    ],
    "ai_pricing": [
        "https://openai.com/api/pricing/",
        "https://www.anthropic.com/pricing",
    ],
    "ai_news": [
        "https://techcrunch.com/category/artificial-intelligence/",
        "https://www.theverge.com/ai-artificial-intelligence",
    ],
}
SOURCE_MAPPING["tech"] = SOURCE_MAPPING["trending"]
SOURCE_MAPPING["ai_models"] = SOURCE_MAPPING["ai_news"]

CACHE_TTL_SECONDS: dict[str, int] = {
    "trending": 1800,
    "shopping": 3600,
    "news": 900,
    "weather": 1800,
    "social": 600,
}
DEFAULT_CACHE_TTL = 3600

DEFAULT_SELECTORS = {
    "title": "h1, .title, .headline",
    "content": ".content, article, .post, main",
    "links": "a[href]",
}

# Known-site templates, keyed by hostname
SITE_TEMPLATES: dict[str, dict] = {
    "news.ycombinator.com": {
        "selectors": {
            "title": ".titleline > a, .athing .title a",
            "content": ".titleline, .subtext",
            "links": ".titleline > a",
        },
        "wait_for": ".athing",
        "javascript": False,
    },
    "github.com": {
        "selectors": {
            "title": "article h2 a, .Box-row h2 a",
            "content": "article p, .Box-row p, .Box-row .f6",
            "links": "article h2 a, .Box-row h2 a",
        },
        "wait_for": "article, .Box-row",
        "javascript": True,
    },
    "www.reddit.com": {
        "selectors": {
            "title": "h3, shreddit-post",
            "content": "[data-testid='post-container'], shreddit-post",
            "links": "a[data-click-id='body']",
        },
        "wait_for": "shreddit-post",
        "javascript": True,
    },
}


@dataclass
class ExtractionTemplate:
    """CSS selectors (and rendering hints) used to pull text out of a page."""

    selectors: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SELECTORS))
    wait_for: str | None = None
    javascript: bool = False

    def to_dict(self) -> dict:
        return {"selectors": dict(self.selectors), "wait_for": self.wait_for, "javascript": self.javascript}

    @classmethod
    def from_dict(cls, data: dict | None) -> "ExtractionTemplate":
        if not data:
            return cls()
        return cls(
            selectors=dict(data.get("selectors") or DEFAULT_SELECTORS),
            wait_for=data.get("wait_for"),
            javascript=bool(data.get("javascript", False)),
        )


@dataclass
class ClassificationResult:
    needs_external_data: bool
    confidence: float
    query_type: str
    suggested_sources: list[str] = field(default_factory=list)
    extraction_strategy: ExtractionTemplate = field(default_factory=ExtractionTemplate)
    cache_ttl: int = DEFAULT_CACHE_TTL


class QueryClassifier(Protocol):
    async def classify(self, text: str) -> ClassificationResult:
        ...


def quick_check(text: str) -> bool:
    """Cheap local pre-filter: does this query look like it needs live data?"""
    if not text or SELF_QUERY_PATTERN.search(text):
        return False
    return any(pattern.search(text) for pattern in REALTIME_PATTERNS)


def determine_query_type(text: str) -> str:
    q = text.lower()

    if re.search(r"ai\s+pricing|model\s+pricing|token\s+cost|(openai|anthropic|claude|gpt)\s+pricing", q):
        return "ai_pricing"
    if re.search(r"ai\s+models?|\bllms?\b|large\s+language\s+model|model\s+comparison", q):
        return "ai_models"
    if re.search(r"ai\s+news|artificial\s+intelligence\s+news|latest\s+ai|ai\s+updates", q):
        return "ai_news"
    if re.search(r"trending|popular|\bhot\b|viral|top\s+\d+", q):
        return "trending"
    if re.search(r"\bweather\b|temperature|forecast|climate|what\s+should\s+i\s+wear", q):
        return "weather"
    if re.search(r"symptoms?|headache|fever|cough|\bpain\b|health|medical", q):
        return "health"
    if re.search(r"\btravel\b|flight|\btrain\b|\bbus\b|book\s+(a\s+)?ticket|\btrip\b", q):
        return "travel"
    if re.search(
        r"\bprice\b|\bcost\b|\bdeal\b|discount|\bsale\b|track\s+price|\bbuy\b|purchase|\bshop\b"
        r"|under\s+\d+|below\s+\d+|budget\s+of|on\s+amazon|on\s+flipkart",
        q,
    ):
        return "shopping"
    if re.search(r"identify\s+this|what\s+is\s+this|reverse\s+search", q):
        return "reverse_search"
    if re.search(r"\bnews\b|update|announcement", q):
        return "news"
    if re.search(r"reddit|twitter|social|discussion", q):
        return "social"
    if re.search(r"github|\btools?\b|\bapps?\b|\btech\b|startup", q):
        return "tech"
    return "general"


def is_utility_query(query_type: str | None, text: str = "") -> bool:
    """Utility categories, plus weather questions that ask what to wear."""
    if query_type in UTILITY_QUERY_TYPES:
        return True
    return query_type == "weather" and "wear" in text.lower()


def suggested_sources(query_type: str, text: str) -> list[str]:
    sources = list(SOURCE_MAPPING.get(query_type, []))
    q = text.lower()
    if query_type == "shopping":
        if "flipkart" in q:
            sources.insert(0, "https://www.flipkart.com/")
        if "amazon.com" in q:
            sources.insert(0, "https://www.amazon.com/")
        elif "amazon" in q:
            sources.insert(0, "https://www.amazon.in/")
    # keep first occurrence order
    return list(dict.fromkeys(sources))


def extraction_template_for(url: str) -> ExtractionTemplate | None:
    """Template for a known site, or None."""
    host = (urlparse(url).hostname or "").lower()
    template = SITE_TEMPLATES.get(host) or SITE_TEMPLATES.get(host.removeprefix("www."))
    if template is None:
        return None
    return ExtractionTemplate.from_dict(template)


def _confidence(text: str) -> float:
    matches = sum(1 for pattern in REALTIME_PATTERNS if pattern.search(text))
    if matches == 0:
        return 0.0
    return min(0.5 + 0.1 * matches, 0.95)


class HeuristicQueryClassifier:
    """Fully local classifier built from regex rules."""

    async def classify(self, text: str) -> ClassificationResult:
        if not isinstance(text, str):
            raise ClassificationError("query must be a string")

        query_type = determine_query_type(text)
        confidence = _confidence(text)
        sources = suggested_sources(query_type, text)

        return ClassificationResult(
            needs_external_data=confidence > 0 and bool(sources),
            confidence=confidence,
            query_type=query_type,
            suggested_sources=sources,
            extraction_strategy=ExtractionTemplate(),
            cache_ttl=CACHE_TTL_SECONDS.get(query_type, DEFAULT_CACHE_TTL),
        )


CLASSIFIER_PROMPT = """Decide whether answering the user's query requires real-time or external web data.

Query: {query}

Respond with JSON only: {{"needsRealTimeData": true|false, "confidence": 0.0-1.0, "reasoning": "..."}}"""


class LLMQueryClassifier:
    """
    AI-assisted classifier.

    The model decides needs_external_data and confidence; query type,
    sources and extraction strategy still come from the local rules.
    """

    def __init__(self, invoker: AIInvoker, fallback: HeuristicQueryClassifier | None = None):
        self.invoker = invoker
        self.fallback = fallback or HeuristicQueryClassifier()

    async def classify(self, text: str) -> ClassificationResult:
        base = await self.fallback.classify(text)

        try:
            completion = await self.invoker.invoke(CLASSIFIER_PROMPT.format(query=text), profile="precise")
            match = re.search(r"\{[\s\S]*\}", completion.text)
            if match is None:
                raise ValueError("no JSON object in classifier output")
            verdict = json.loads(match.group(0))
        except Exception as e:
            raise ClassificationError(f"AI classification failed: {e}") from e

        base.needs_external_data = bool(verdict.get("needsRealTimeData")) and bool(base.suggested_sources)
        base.confidence = float(verdict.get("confidence", base.confidence))
        logger.info(
            f"[CLASSIFIER] type={base.query_type} needs_external_data={base.needs_external_data} "
            f"confidence={base.confidence:.2f}"
        )
        return base
