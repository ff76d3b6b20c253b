"""
Domain utility capability.

A utility operation receives an operation tag and a structured payload built
by the DomainUtilityNode, and returns a natural-language answer.
LLMDomainUtilityTool answers with the economical model profile and an
operation-specific instruction.
"""

import json
import logging
from typing import Any, Protocol

from agentflow.errors import UtilityError
from agentflow.llm.invoker import AIInvoker

logger = logging.getLogger(__name__)

OPERATION_INSTRUCTIONS: dict[str, str] = {
    "health_guidance": (
        "Give general, non-diagnostic wellness guidance for the symptoms below. "
        "Recommend seeing a medical professional for anything serious or persistent."
    ),
    "travel_plan": (
        "Outline practical travel options (modes, rough durations, rough costs) "
        "for the trip below. Mention anything that should be booked in advance."
    ),
    "price_track": (
        "Explain how to track the price of the product below, typical price ranges "
        "and good moments to buy."
    ),
    "reverse_search": "Suggest what the described item most likely is and how to confirm it.",
    "weather_advice": "Suggest what to wear for the weather situation and location below.",
}


class DomainUtilityTool(Protocol):
    async def run(self, operation: str, payload: dict[str, Any]) -> str:
        ...


class LLMDomainUtilityTool:
    def __init__(self, invoker: AIInvoker):
        self.invoker = invoker

    async def run(self, operation: str, payload: dict[str, Any]) -> str:
        instruction = OPERATION_INSTRUCTIONS.get(operation)
        if instruction is None:
            raise UtilityError(f"Unsupported utility operation: {operation}")

        prompt = (
            f"{instruction}\n\n"
            f"Request details (JSON):\n{json.dumps(payload, indent=2, default=str)}\n\n"
            "Answer concisely in plain language."
        )
        completion = await self.invoker.invoke(prompt, profile="economical")
        if not completion.text.strip():
            raise UtilityError(f"{operation} returned an empty result")

        logger.info(f"[UTILITY] {operation} answered ({len(completion.text)} chars)")
        return completion.text
