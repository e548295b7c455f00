"""Local demo simulation — plausible per-model answers and a synthesis when no backend is reachable.

The simulation is an explicit plan of steps (model, delay) that the
coordinator runs through its scheduler, so tests can fast-forward virtual
time instead of sleeping.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from conductor.models import AIResponse, Strategy

_PERSONAS: dict[str, str] = {
    "claude": (
        "Claude: I'll approach this systematically. '{prompt}' calls for careful analysis and "
        "structured thinking. Here is a detailed answer with the reasoning spelled out."
    ),
    "gpt": (
        "GPT: Here is a practical answer to '{prompt}'. It starts from the core concepts "
        "and shows how to apply them."
    ),
    "deepseek": (
        "DeepSeek: A close look at '{prompt}' reveals a few key patterns. Here is the "
        "technical perspective on the best approach."
    ),
    "gemini": (
        "Gemini: I can help with '{prompt}' by combining several perspectives. Here is a "
        "broad and creative take."
    ),
    "mistral": (
        "Mistral: In short, '{prompt}' has a concise answer. Here are the essentials "
        "without the noise."
    ),
}
_GENERIC = "{model}: Here is my answer to '{prompt}'. It reflects my own analytical approach."


@dataclass(frozen=True)
class DemoStep:
    model: str
    index: int
    delay: float


def build_plan(models: list[str], base_delay: float = 0.5, stagger: float = 0.2) -> list[DemoStep]:
    """Staggered completion times so models finish one after another."""
    return [
        DemoStep(model=model, index=i, delay=base_delay + i * stagger)
        for i, model in enumerate(models)
    ]


def demo_response(step: DemoStep, prompt: str) -> AIResponse:
    template = _PERSONAS.get(step.model.lower(), _GENERIC)
    return AIResponse(
        model_name=step.model,
        content=template.format(model=step.model, prompt=_shorten(prompt)),
        confidence=min(0.7 + step.index * 0.05, 0.95),
        response_time=timedelta(milliseconds=1000 + step.index * 200),
        timestamp=datetime.now(),
    )


def first_sentence(text: str) -> str:
    head = text.strip().split(". ", 1)[0].rstrip(".")
    return f"{head}." if head else ""


def demo_synthesis(prompt: str, responses: list[AIResponse], strategy: Strategy) -> str:
    """Combined answer quoting each model's first sentence and naming the strategy."""
    insights = "\n".join(
        f"• {r.model_name}: {first_sentence(r.content)}" for r in responses
    ) or "• No model responses were available."
    return (
        "**ORCHESTRATED SYNTHESIS**\n\n"
        f'After comparing {len(responses)} AI perspectives on "{_shorten(prompt)}", '
        "here is the combined answer.\n\n"
        f"**Key insights:**\n{insights}\n\n"
        f"*Collective answer of {len(responses)} models, orchestrated with the "
        f"{strategy.value} strategy.*"
    )


def _shorten(prompt: str, limit: int = 120) -> str:
    prompt = " ".join(prompt.split())
    return prompt if len(prompt) <= limit else prompt[: limit - 1] + "…"
