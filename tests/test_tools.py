"""
Tests for the classifier, retrieval, extraction and domain utility tools.
"""

from datetime import date

import httpx
import pytest

from agentflow.errors import ClassificationError, TransientInvocationError, UtilityError
from agentflow.tools.classifier import (
    ExtractionTemplate,
    HeuristicQueryClassifier,
    LLMQueryClassifier,
    determine_query_type,
    extraction_template_for,
    is_utility_query,
    quick_check,
    suggested_sources,
)
from agentflow.tools.extraction import extract_date, extract_location, extract_product, extract_symptoms
from agentflow.tools.retrieval import HttpRetrievalTool, extract_content
from agentflow.tools.utility import LLMDomainUtilityTool
from tests.conftest import FakeInvoker

PAGE = """
<html>
  <head><title>Fallback title</title><script>var x = 1;</script></head>
  <body>
    <h1>  Top   stories </h1>
    <article>First   story text.</article>
    <article>Second story text.</article>
    <footer>footer</footer>
  </body>
</html>
"""


class TestQuickCheck:
    @pytest.mark.parametrize(
        "text",
        [
            "What is trending on GitHub?",
            "latest news about rust",
            "weather in Paris today",
            "price of iphone 15",
            "I have a headache",
        ],
    )
    def test_realtime_queries(self, text):
        assert quick_check(text) is True

    @pytest.mark.parametrize(
        "text",
        ["What is 2+2?", "How to reverse a list in Python", "Explain recursion", "", "show my usage today"],
    )
    def test_static_queries(self, text):
        assert quick_check(text) is False


class TestQueryType:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("OpenAI pricing per token", "ai_pricing"),
            ("compare LLM models", "ai_models"),
            ("latest AI news", "ai_news"),
            ("top 10 trending repos", "trending"),
            ("weather forecast for tokyo", "weather"),
            ("I have a fever", "health"),
            ("book a train to pune", "travel"),
            ("best deal on headphones", "shopping"),
            ("identify this plant", "reverse_search"),
            ("any announcement from apple", "news"),
            ("reddit discussion about rust", "social"),
            ("tell me a joke", "general"),
        ],
    )
    def test_determine_query_type(self, text, expected):
        assert determine_query_type(text) == expected

    def test_utility_query(self):
        assert is_utility_query("health")
        assert is_utility_query("weather", "what should I wear")
        assert not is_utility_query("weather", "forecast for tomorrow")
        assert not is_utility_query(None)

    def test_shopping_sources_follow_named_store(self):
        sources = suggested_sources("shopping", "iphone on flipkart")
        assert sources[0] == "https://www.flipkart.com/"
        assert len(sources) == len(set(sources))

    def test_known_site_templates(self):
        template = extraction_template_for("https://github.com/trending")
        assert template is not None
        assert template.javascript is True
        assert extraction_template_for("https://unknown.example/") is None

    def test_template_round_trip_defaults(self):
        assert ExtractionTemplate.from_dict(None) == ExtractionTemplate()


class TestClassifiers:
    @pytest.mark.asyncio
    async def test_heuristic(self):
        result = await HeuristicQueryClassifier().classify("What is trending on hacker news today?")

        assert result.needs_external_data is True
        assert result.query_type == "trending"
        assert 0.5 < result.confidence <= 0.95
        assert result.suggested_sources

    @pytest.mark.asyncio
    async def test_heuristic_static(self):
        result = await HeuristicQueryClassifier().classify("What is 2+2?")

        assert result.needs_external_data is False
        assert result.confidence == 0.0

    @pytest.mark.asyncio
    async def test_llm_classifier(self):
        invoker = FakeInvoker(responses={"precise": 'Sure: {"needsRealTimeData": false, "confidence": 0.3}'})

        result = await LLMQueryClassifier(invoker).classify("What is trending on hacker news today?")

        assert result.needs_external_data is False
        assert result.confidence == 0.3
        assert result.query_type == "trending"

    @pytest.mark.asyncio
    async def test_llm_classifier_failure(self):
        invoker = FakeInvoker(responses={"precise": "I cannot answer that"})

        with pytest.raises(ClassificationError):
            await LLMQueryClassifier(invoker).classify("latest news")


class TestExtraction:
    def test_symptoms(self):
        assert extract_symptoms("bad cough and fatigue") == ["cough", "fatigue"]
        assert extract_symptoms("feeling off") == ["general discomfort"]

    def test_locations(self):
        assert extract_location("flight from delhi to goa", "from") == "delhi"
        assert extract_location("flight from delhi to goa", "to") == "goa"
        assert extract_location("weather in london") == "london"
        assert extract_location("weather here") is None

    def test_dates(self):
        today = date(2025, 3, 10)
        assert extract_date("leaving tomorrow", today) == "2025-03-11"
        assert extract_date("leaving today", today) == "2025-03-10"
        assert extract_date("on 12/03/2025", today) == "12/03/2025"
        assert extract_date("sometime", today) is None

    def test_products(self):
        assert extract_product("track macbook price") == "macbook"
        assert extract_product("price of air fryer?") == "air fryer"


class TestRetrieval:
    def test_extract_content_uses_selectors(self):
        title, text = extract_content(PAGE, ExtractionTemplate())

        assert title == "Top stories"
        assert text == "First story text. Second story text."

    def test_extract_content_falls_back_to_body(self):
        template = ExtractionTemplate(selectors={"title": ".nope", "content": ".nope"})

        title, text = extract_content(PAGE, template)

        assert title == "Fallback title"
        assert "footer" in text
        assert "var x" not in text

    @pytest.mark.asyncio
    async def test_http_tool(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/missing":
                return httpx.Response(404)
            if request.url.path == "/down":
                return httpx.Response(503)
            return httpx.Response(200, text=PAGE)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            tool = HttpRetrievalTool(client)

            ok = await tool.retrieve("https://site.example/", ExtractionTemplate(), 1000)
            assert ok.success is True
            assert ok.title == "Top stories"

            missing = await tool.retrieve("https://site.example/missing", ExtractionTemplate(), 1000)
            assert missing.success is False
            assert missing.error == "HTTP 404"

            with pytest.raises(TransientInvocationError):
                await tool.retrieve("https://site.example/down", ExtractionTemplate(), 1000)


class TestDomainUtility:
    @pytest.mark.asyncio
    async def test_operation(self):
        invoker = FakeInvoker(responses={"economical": "Rest and hydrate."})

        answer = await LLMDomainUtilityTool(invoker).run("health_guidance", {"symptoms": ["fever"]})

        assert answer == "Rest and hydrate."
        assert '"fever"' in invoker.profile_calls("economical")[0]

    @pytest.mark.asyncio
    async def test_unknown_operation(self):
        with pytest.raises(UtilityError):
            await LLMDomainUtilityTool(FakeInvoker()).run("teleport", {})

    @pytest.mark.asyncio
    async def test_empty_answer(self):
        with pytest.raises(UtilityError):
            await LLMDomainUtilityTool(FakeInvoker(responses={"economical": "  "})).run("price_track", {})
