"""
Test configuration and fixtures.

Every external capability has an in-memory fake here so the workflow can be
exercised end to end without a model endpoint or network access.
"""

import asyncio
import os

import pytest
from dotenv import load_dotenv

from agentflow.analytics.ledger import CostLedger
from agentflow.cache.semantic_cache import SemanticCache
from agentflow.config.settings import Settings
from agentflow.errors import TransientInvocationError, UtilityError
from agentflow.llm.invoker import Completion
from agentflow.services import Services
from agentflow.tools.classifier import ClassificationResult, HeuristicQueryClassifier
from agentflow.tools.retrieval import RetrievalResult

QUALITY_JSON = '{"qualityScore": 8.5, "strengths": ["clear"], "weaknesses": [], "recommendations": ["Keep answers short"]}'


@pytest.fixture(autouse=True, scope="session")
def set_test_environment():
    """Load .env the same way settings.py does, with tracing switched off."""
    load_dotenv()
    os.environ.setdefault("LANGFUSE_TRACING_ENABLED", "false")
    yield


def raise_schema_error(*args, **kwargs):
    """Stands in for a template engine that rejects the template schema."""
    raise ValueError("Invalid Property discriminator field 'kind'")

class FakeInvoker:
    """AIInvoker returning canned text per profile and recording every call."""

    def __init__(self, responses: dict[str, str] | None = None, fail_profiles=(), delay: float = 0.0):
        self.responses = {
            "primary": "The answer is 4.",
            "economical": QUALITY_JSON,
            "precise": "Summary of the retrieved sources.",
            **(responses or {}),
        }
        self.fail_profiles = set(fail_profiles)
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    async def invoke(self, prompt: str, profile: str = "primary", **params) -> Completion:
        self.calls.append((profile, prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if profile in self.fail_profiles:
            raise TransientInvocationError(f"{profile} model unavailable")
        return Completion(
            text=self.responses[profile],
            usage={"input_tokens": 12, "output_tokens": 6, "total_tokens": 18},
        )

    def profile_calls(self, profile: str) -> list[str]:
        return [prompt for p, prompt in self.calls if p == profile]


class FakeClassifier:
    """QueryClassifier returning a fixed result, or raising."""

    def __init__(self, result: ClassificationResult | None = None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[str] = []

    async def classify(self, text: str) -> ClassificationResult:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.result


class FakeRetrieval:
    """RetrievalTool serving canned pages; `failing` URLs raise, `empty` URLs return failure."""

    def __init__(self, pages: dict[str, str] | None = None, failing=(), empty=()):
        self.pages = pages or {}
        self.failing = set(failing)
        self.empty = set(empty)
        self.calls: list[str] = []

    async def retrieve(self, url, template, timeout_ms) -> RetrievalResult:
        self.calls.append(url)
        if url in self.failing:
            raise TransientInvocationError(f"{url} unreachable")
        if url in self.empty:
            return RetrievalResult(success=False, url=url, error="HTTP 404")
        text = self.pages.get(url, f"Live content from {url}")
        return RetrievalResult(success=True, url=url, title=f"Title of {url}", extracted_text=text)


class FakeUtility:
    def __init__(self, answer: str = "Drink water and rest.", fail: bool = False):
        self.answer = answer
        self.fail = fail
        self.calls: list[tuple[str, dict]] = []

    async def run(self, operation, payload) -> str:
        self.calls.append((operation, payload))
        if self.fail:
            raise UtilityError(f"{operation} failed")
        return self.answer


class RecordingSleep:
    """Injectable sleep that records the requested delays without waiting."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def settings() -> Settings:
    """Default settings with zero retry waits."""
    return Settings(
        retry_initial_wait=0,
        retry_max_wait=0,
        retry_jitter=0,
        langfuse_public_key="",
        langfuse_secret_key="",
    )


@pytest.fixture
def invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def retrieval() -> FakeRetrieval:
    return FakeRetrieval()


@pytest.fixture
def utility() -> FakeUtility:
    return FakeUtility()


@pytest.fixture
def sleep_recorder() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def services(settings, invoker, retrieval, utility, sleep_recorder) -> Services:
    return Services(
        invoker=invoker,
        classifier=HeuristicQueryClassifier(),
        retrieval=retrieval,
        utility=utility,
        cache=SemanticCache(),
        ledger=CostLedger(),
        settings=settings,
        sleep=sleep_recorder,
    )
