"""
Tests for prompt construction and prompt refinement.
"""

from pathlib import Path

import prompty
import pytest

from agentflow.prompts.manager import STRATEGY_PROMPTS, PromptBuilder, strategy_prompt
from agentflow.prompts.refinement import (
    analyze_complexity,
    estimate_prompt_cost,
    refine_prompt,
)
from tests.conftest import raise_schema_error


class TestRefinement:
    def test_cost_estimate(self):
        assert estimate_prompt_cost("one two three four") == pytest.approx(4 * 1.3 * 0.000008)
        assert estimate_prompt_cost("") == 0.0

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("short question", "low"),
            (" ".join(["word"] * 150), "medium"),
            (" ".join(["word"] * 501), "high"),
            ("look at ```code```", "high"),
            ("why? how? what?", "high"),
            ("why? how?", "low"),
        ],
    )
    def test_complexity(self, text, expected):
        assert analyze_complexity(text) == expected

    def test_refinement_strips_politeness_and_filler(self):
        refined = refine_prompt("Could you   please, um, tell me the time well")
        assert refined == ", , tell me the time"

    def test_refinement_caps_length(self):
        refined = refine_prompt("x" * 5000, max_chars=1000)
        assert len(refined) == 1000

    def test_refinement_never_costs_more(self):
        text = "Please kindly you know summarize " + "this " * 300
        assert estimate_prompt_cost(refine_prompt(text)) <= estimate_prompt_cost(text)


class TestPromptBuilder:
    def test_strategy_prompts(self):
        assert strategy_prompt("fastest") == STRATEGY_PROMPTS["fastest"]
        assert strategy_prompt("unknown") == STRATEGY_PROMPTS["balanced"]

    def test_master_prompt_contains_inputs(self):
        prompt = PromptBuilder().build(
            "master_agent",
            strategy=strategy_prompt("fastest"),
            history="(No previous conversation)",
            query="What is 2+2?",
        )

        assert "optimized for speed" in prompt
        assert "What is 2+2?" in prompt

    def test_build_is_deterministic(self):
        builder = PromptBuilder()
        inputs = {"conversation": "USER: hi", "optimizations": "none"}
        assert builder.build("quality_analyst", **inputs) == builder.build("quality_analyst", **inputs)

    def test_missing_template_falls_back(self, tmp_path: Path):
        prompt = PromptBuilder(tmp_path).build("does_not_exist", query="hello", extra="x")
        assert prompt == "query: hello\nextra: x"

    def test_unloadable_template_falls_back(self, tmp_path: Path, monkeypatch):
        (tmp_path / "broken.prompty").write_text("---\nname: Broken\n---\nuser:\n{{query}}\n")
        monkeypatch.setattr(prompty, "load", raise_schema_error)

        assert PromptBuilder(tmp_path).build("broken", query="hello") == "query: hello"

    def test_render_failure_falls_back(self, monkeypatch):
        monkeypatch.setattr(prompty, "prepare", raise_schema_error)

        prompt = PromptBuilder().build("master_agent", strategy="Be brief.", history="(none)", query="What is 2+2?")

        assert prompt == "strategy: Be brief.\nhistory: (none)\nquery: What is 2+2?"

    def test_format_history(self):
        assert PromptBuilder.format_history([]) == "(No previous conversation)"
        history = PromptBuilder.format_history(
            [{"role": "user", "content": " hi "}, {"role": "agent", "content": "hello"}]
        )
        assert history == "USER: hi\n---\nAGENT: hello"

    def test_normalize(self):
        assert PromptBuilder._normalize("\ufeffline one   \nline two  ") == "line one\nline two"
        assert PromptBuilder._normalize([{"role": "system", "content": " a "}, {"role": "user", "content": "b"}]) == (
            "SYSTEM: a\n\nUSER: b"
        )
        assert PromptBuilder._normalize(None) == ""
