from agentflow.prompts.manager import PromptBuilder, strategy_prompt

__all__ = ["PromptBuilder", "strategy_prompt"]
