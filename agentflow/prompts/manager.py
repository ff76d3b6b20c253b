"""
=============================================================================
Prompt Manager - Prompty-based Prompt Construction
=============================================================================

Agent prompts live in .prompty files next to this module and are hydrated
with prompty.prepare(). The rendered messages are flattened into a single
normalized string, which is what the AIInvoker receives.

Normalization makes the same inputs produce byte-identical prompts, so
identical runs are reproducible in traces.
=============================================================================
"""

import logging
from functools import lru_cache
from pathlib import Path

import prompty

logger = logging.getLogger(__name__)

TURN_BOUNDARY = "\n---\n"

STRATEGY_PROMPTS: dict[str, str] = {
    "fastest": (
        "You are an AI assistant optimized for speed. "
        "Provide concise, direct answers without unnecessary elaboration."
    ),
    "cheapest": (
        "You are an AI assistant optimized for cost efficiency. "
        "Provide helpful but concise responses using minimal tokens."
    ),
    "balanced": (
        "You are an AI assistant that balances response quality with efficiency. "
        "Provide thorough but focused answers."
    ),
}


def strategy_prompt(chat_mode: str) -> str:
    return STRATEGY_PROMPTS.get(chat_mode, STRATEGY_PROMPTS["balanced"])


class PromptBuilder:
    """
    Loads .prompty templates and renders them to normalized prompt strings.
    """

    def __init__(self, prompts_dir: Path | str | None = None):
        self._prompts_dir = Path(prompts_dir) if prompts_dir else Path(__file__).parent.absolute()

    @staticmethod
    def _normalize(text) -> str:
        """Normalize rendered prompt text (or a list of messages) to one string."""
        if not text:
            return ""

        # prompty returns a list of chat messages
        if isinstance(text, list):
            parts = []
            for msg in text:
                role = msg.get("role", "unknown").upper()
                content = msg.get("content", "")
                if not isinstance(content, str):
                    content = str(content)
                content = content.strip()
                if content:
                    parts.append(f"{role}: {content}")
            return "\n\n".join(parts)

        if not isinstance(text, str):
            text = str(text)

        if text.startswith("\ufeff"):
            text = text[1:]

        lines = [line.rstrip() for line in text.splitlines()]
        return "\n".join(lines)

    @lru_cache(maxsize=16)
    def _get_prompty(self, name: str):
        """Load and cache a .prompty file."""
        prompty_path = self._prompts_dir / f"{name}.prompty"
        if not prompty_path.exists():
            logger.warning(f"[PROMPT] Prompty file not found: {prompty_path}")
            return None

        try:
            return prompty.load(str(prompty_path))
        except Exception as e:
            logger.error(f"[PROMPT] Failed to load {prompty_path}: {e}")
            return None

    def _plain(self, inputs: dict) -> str:
        return self._normalize("\n".join(f"{key}: {value}" for key, value in inputs.items()))

    def build(self, name: str, **inputs: str) -> str:
        """
        Render the named template with the given inputs.

        A template that is missing, or that fails to load or render, degrades
        to a plain "key: value" prompt.
        """
        p = self._get_prompty(name)

        if p is None:
            return self._plain(inputs)

        try:
            prompt_content = prompty.prepare(p, inputs)
        except Exception as e:
            logger.error(f"[PROMPT] Failed to render {name}: {e}")
            return self._plain(inputs)

        return self._normalize(prompt_content)

    @staticmethod
    def format_history(messages: list[dict]) -> str:
        """Deterministic conversation formatting, one turn per block."""
        if not messages:
            return "(No previous conversation)"

        formatted_turns = [
            f"{msg.get('role', 'unknown').upper()}: {str(msg.get('content', '')).strip()}"
            for msg in messages
        ]
        return TURN_BOUNDARY.join(formatted_turns)
