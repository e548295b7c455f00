"""LLMProvider — thin litellm wrapper used for the secondary prompt classifier.

Tries the configured model, then each fallback, with a bounded number of
attempts per model. The classifier only needs short JSON answers, so the
defaults keep ``max_tokens`` small and ``temperature`` low.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from conductor.models import LLMProviderConfig

logger = logging.getLogger("conductor.llm_provider")

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class LLMProvider:
    """Async completion caller with retry and fallback.

    Usage:
        provider = LLMProvider(LLMProviderConfig(model="anthropic/claude-3-5-haiku-latest"))
        data = await provider.complete_json("Classify: 'hello there'")
    """

    def __init__(self, config: LLMProviderConfig | None = None):
        self.config = config or LLMProviderConfig()

    @property
    def candidates(self) -> list[str]:
        return [self.config.model] + [m for m in self.config.fallback if m != self.config.model]

    async def complete(
        self,
        user_message: str,
        system_prompt: str = "",
        json_mode: bool = False,
        **kwargs: Any,
    ) -> str:
        """Send one chat completion and return the message text.

        Raises:
            RuntimeError: when every candidate model failed on every attempt.
        """
        import litellm

        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_message})

        last_error: Exception | None = None
        for model in self.candidates:
            for attempt in range(max(self.config.max_retries, 1)):
                request: dict[str, Any] = {
                    "model": model,
                    "messages": messages,
                    "max_tokens": self.config.max_tokens,
                    "temperature": self.config.temperature,
                    "timeout": self.config.timeout,
                    **kwargs,
                }
                if json_mode:
                    request["response_format"] = {"type": "json_object"}
                try:
                    resp = await litellm.acompletion(**request)
                except Exception as e:
                    last_error = e
                    logger.warning(f"{model} attempt {attempt + 1} failed: {e}")
                    continue
                content = resp.choices[0].message.content or ""
                logger.debug(f"{model} answered ({len(content)} chars)")
                return content

        raise RuntimeError(f"All classifier models failed. Last error: {last_error}")

    async def complete_json(self, user_message: str, system_prompt: str = "", **kwargs: Any) -> Any:
        """Complete in JSON mode and decode the answer. Returns None when nothing decodes."""
        raw = await self.complete(user_message, system_prompt=system_prompt, json_mode=True, **kwargs)
        return extract_json(raw)


def extract_json(text: str) -> Any:
    """Best-effort JSON extraction from model output.

    Accepts bare JSON, fenced ```json blocks, or the outermost {...} span.
    Returns None when nothing parses.
    """
    text = (text or "").strip()
    if not text:
        return None

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    if "```" in text:
        for block in text.split("```"):
            block = block.strip()
            if block.startswith("json"):
                block = block[4:].strip()
            try:
                return json.loads(block)
            except json.JSONDecodeError:
                continue

    match = _JSON_OBJECT.search(text)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass

    logger.warning(f"No JSON found in model output: {text[:120]}")
    return None
