"""
Tests for the routing policy and failure escalation.
"""

import pytest
from langgraph.graph import END

from agentflow.graph.routing import (
    ROUTES,
    escalate,
    route_after_cache,
    route_after_classification,
    route_after_domain_utility,
    route_after_master,
    route_after_prompt_analysis,
    route_after_retrieval,
    route_after_synthesis,
)
from agentflow.graph.state import create_initial_state, merge_state


def make_state(message: str = "What is 2+2?", **update):
    state = create_initial_state("conv", "user", message)
    return merge_state(state, update) if update else state


class TestPromptAnalysisRouting:
    def test_plain_question_goes_to_cache(self):
        state = make_state(agent_path=["prompt_acceptable"])
        assert route_after_prompt_analysis(state) == "semantic_cache"

    def test_realtime_question_goes_to_classifier(self):
        state = make_state("What is trending on GitHub today?", agent_path=["prompt_acceptable"])
        assert route_after_prompt_analysis(state) == "query_classifier"

    def test_analysis_error_goes_to_master(self):
        state = make_state("What is trending today?", agent_path=["prompt_analysis_error"])
        assert route_after_prompt_analysis(state) == "master_agent"

    def test_refined_prompt_is_checked(self):
        state = make_state("What is 2+2?", refined_prompt="latest AI news", agent_path=["prompt_refined"])
        assert route_after_prompt_analysis(state) == "query_classifier"


class TestClassificationRouting:
    def test_utility_type_goes_to_domain_utility(self):
        state = make_state(
            "I have a headache and fever",
            metadata={"classification": {"query_type": "health"}},
            needs_web_data=False,
        )
        assert route_after_classification(state) == "domain_utility"

    def test_weather_wear_question_is_utility(self):
        state = make_state(
            "What should I wear in London today?",
            metadata={"classification": {"query_type": "weather"}},
        )
        assert route_after_classification(state) == "domain_utility"

    def test_web_data_with_sources_goes_to_retrieval(self):
        state = make_state(
            "Weather forecast for Paris",
            metadata={"classification": {"query_type": "weather"}},
            needs_web_data=True,
            web_sources=["https://www.weather.gov/"],
        )
        assert route_after_classification(state) == "external_retrieval"

    def test_web_data_without_sources_goes_to_cache(self):
        state = make_state(
            "What is happening right now?",
            metadata={"classification": {"query_type": "general"}},
            needs_web_data=True,
        )
        assert route_after_classification(state) == "semantic_cache"

    def test_classification_error_goes_to_cache(self):
        state = make_state(agent_path=["query_classification_error"], needs_web_data=False)
        assert route_after_classification(state) == "semantic_cache"


class TestBranchRouting:
    def test_retrieval(self):
        assert route_after_retrieval(make_state(agent_path=["retrieval_failed"])) == "master_agent"
        assert route_after_retrieval(make_state(agent_path=["retrieval_error"])) == "master_agent"
        assert route_after_retrieval(make_state(agent_path=["retrieval_no_sources"])) == "master_agent"

        ok = make_state(agent_path=["retrieved_1_sources"], scraping_results=[{"url": "u", "extracted_text": "t"}])
        assert route_after_retrieval(ok) == "synthesis"

    def test_synthesis(self):
        done = make_state(agent_path=["synthesis_complete"], metadata={"synthesis": {"sources_used": 2}})
        assert route_after_synthesis(done) == END
        assert route_after_synthesis(make_state(agent_path=["synthesis_no_content"])) == "master_agent"
        assert route_after_synthesis(make_state(agent_path=["synthesis_error"])) == "master_agent"

    def test_domain_utility(self):
        assert route_after_domain_utility(make_state(agent_path=["domain_utility_health"])) == END
        assert route_after_domain_utility(make_state(agent_path=["domain_utility_failed"])) == "master_agent"
        assert route_after_domain_utility(make_state(agent_path=["domain_utility_error"])) == "master_agent"

    def test_cache(self):
        assert route_after_cache(make_state(cache_hit=True)) == END
        assert route_after_cache(make_state(cache_hit=False)) == "master_agent"

    @pytest.mark.parametrize(
        "chat_mode, expected",
        [("fastest", END), ("cheapest", "cost_optimizer"), ("balanced", "cost_optimizer")],
    )
    def test_master_by_chat_mode(self, chat_mode, expected):
        state = make_state(chat_mode=chat_mode, agent_path=["master_agent"])
        assert route_after_master(state) == expected

    def test_master_error_retries_master(self):
        state = make_state(chat_mode="fastest", agent_path=["master_agent_error"])
        assert route_after_master(state) == "master_agent"


class TestEscalation:
    def test_below_threshold_uses_route(self):
        route = escalate(route_after_cache, threshold=3)
        assert route(make_state(failure_count=2)) == "master_agent"

    def test_at_threshold_goes_to_recovery(self):
        route = escalate(route_after_cache, threshold=3)
        assert route(make_state(failure_count=3, cache_hit=True)) == "failure_recovery"

    def test_every_route_lists_its_destinations(self):
        state = make_state(agent_path=["prompt_acceptable"])
        for source, (route, destinations) in ROUTES.items():
            assert route(state) in destinations, source
