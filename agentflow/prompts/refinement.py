"""
Prompt cost estimation, complexity heuristic and refinement.

Cost is a word-count heuristic: words x tokens_per_word x cost_per_token.
Refinement only removes text (whitespace, politeness and filler words) and
caps the length, so a refined prompt never costs more than the original.
"""

import re

DEFAULT_TOKENS_PER_WORD = 1.3
DEFAULT_COST_PER_TOKEN = 0.000008
DEFAULT_MAX_CHARS = 1000

POLITENESS_PATTERN = re.compile(r"\b(please|kindly|could you)\b", re.IGNORECASE)
FILLER_PATTERN = re.compile(r"\b(um|uh|well|you know)\b", re.IGNORECASE)


def word_count(text: str) -> int:
    return len(text.split())


def estimate_prompt_cost(
    text: str,
    tokens_per_word: float = DEFAULT_TOKENS_PER_WORD,
    cost_per_token: float = DEFAULT_COST_PER_TOKEN,
) -> float:
    return word_count(text) * tokens_per_word * cost_per_token


def analyze_complexity(text: str) -> str:
    """'high' for long, code-bearing or multi-question prompts; 'medium' over 100 words."""
    words = word_count(text)
    has_code_fence = "```" in text
    many_questions = text.count("?") > 2

    if words > 500 or has_code_fence or many_questions:
        return "high"
    if words > 100:
        return "medium"
    return "low"


def refine_prompt(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    refined = POLITENESS_PATTERN.sub("", text)
    refined = FILLER_PATTERN.sub("", refined)
    refined = " ".join(refined.split())
    return refined[:max_chars].strip()
