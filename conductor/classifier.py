"""Secondary prompt classifier — one cheap LLM call that may refine the heuristic analysis.

The analyzer treats the classifier as optional: anything it returns is
tolerant-parsed, and any failure falls back to the heuristic result.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from conductor.llm_provider import LLMProvider
from conductor.models import LLMProviderConfig

logger = logging.getLogger("conductor.classifier")

CLASSIFY_SYSTEM_PROMPT = (
    "You classify prompts for AI model selection. Be concise and precise. "
    "Respond with JSON only: "
    '{"primary_category": "creative|analytical|conversational|coding|reasoning|factual|synthesis|specialized", '
    '"complexity": "simple|moderate|complex|expert", '
    '"confidence": <0.0-1.0>, '
    '"reasoning": ["step1", "step2"]}'
)


class SecondaryClassifier(Protocol):
    """Anything that can classify a prompt into a loosely-typed payload."""

    async def classify(self, prompt: str) -> Any: ...


class LLMClassifier:
    """Secondary classifier backed by a small, fast LLM.

    Usage:
        classifier = LLMClassifier(LLMProviderConfig(model="anthropic/claude-3-5-haiku-latest"))
        payload = await classifier.classify("Write a haiku about rain")
    """

    def __init__(
        self,
        config: LLMProviderConfig | None = None,
        provider: LLMProvider | None = None,
        system_prompt: str = CLASSIFY_SYSTEM_PROMPT,
    ):
        self.provider = provider or LLMProvider(config)
        self.system_prompt = system_prompt

    async def classify(self, prompt: str) -> Any:
        user_message = f'PROMPT: "{prompt}"'
        data = await self.provider.complete_json(user_message, system_prompt=self.system_prompt)
        logger.debug(f"Classifier payload: {data!r}"[:200])
        return data
