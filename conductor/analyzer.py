"""PromptAnalyzer — classifies prompts and proposes model scores and an orchestration strategy.

Pipeline for every prompt:
    1. Heuristic pass (always): keyword-density category, length/topic complexity.
    2. Optional secondary classifier (one cheap LLM call) refining category,
       complexity and confidence. Any failure falls back to the heuristic result.
    3. Model scores from fixed specialization profiles; strategy from complexity.

``analyze()`` never raises. Recent analyses and per-category timings are kept
in bounded buffers for statistics.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from nfo.decorators import log_call

from conductor.classifier import SecondaryClassifier
from conductor.models import (
    AnalyzerConfig,
    PromptAnalysis,
    PromptCategory,
    PromptComplexity,
    Strategy,
    clamp_unit,
)

logger = logging.getLogger("conductor.analyzer")

HEURISTIC_CONFIDENCE = 0.75
BASELINE_SCORE = 0.5

# Categories the heuristic pass can pick. SYNTHESIS only comes from the classifier.
CATEGORY_KEYWORDS: dict[PromptCategory, frozenset[str]] = {
    PromptCategory.FACTUAL: frozenset({
        "what", "who", "when", "where", "which", "define", "definition", "fact", "facts",
        "capital", "population", "date", "year", "information", "tell", "list", "name",
    }),
    PromptCategory.CONVERSATIONAL: frozenset({
        "hello", "hi", "hey", "thanks", "thank", "chat", "talk", "feel", "opinion",
        "you", "your", "today", "good", "morning", "bye",
    }),
    PromptCategory.CREATIVE: frozenset({
        "write", "story", "creative", "poem", "imagine", "design", "art", "novel",
        "character", "lyrics", "song", "fiction", "haiku", "plot",
    }),
    PromptCategory.CODING: frozenset({
        "code", "program", "function", "debug", "api", "javascript", "python", "algorithm",
        "software", "sort", "list", "class", "bug", "compile", "sql", "rust", "java",
        "bubble", "script", "refactor", "regex",
    }),
    PromptCategory.ANALYTICAL: frozenset({
        "analyze", "analyse", "compare", "evaluate", "research", "study", "data",
        "statistics", "trends", "assess", "metrics", "review", "pros", "cons",
    }),
    PromptCategory.REASONING: frozenset({
        "why", "how", "explain", "reason", "logic", "solve", "problem", "think",
        "because", "prove", "deduce", "puzzle", "therefore", "if",
    }),
    PromptCategory.SPECIALIZED: frozenset({
        "legal", "medical", "financial", "scientific", "academic", "technical",
        "professional", "law", "clinical", "tax", "diagnosis", "contract", "quantum",
    }),
}

# Heuristic scan order; ties resolve to CONVERSATIONAL regardless of order.
HEURISTIC_CATEGORIES = list(CATEGORY_KEYWORDS)

STRATEGY_BY_COMPLEXITY: dict[PromptComplexity, Strategy] = {
    PromptComplexity.SIMPLE: Strategy.CONSENSUS,
    PromptComplexity.MODERATE: Strategy.PARALLEL,
    PromptComplexity.COMPLEX: Strategy.WEIGHTED,
    PromptComplexity.EXPERT: Strategy.ADAPTIVE,
}

SHORT_PROMPT_CHARS = 40
# Length thresholds (chars) for moderate / complex / expert.
LENGTH_THRESHOLDS = (200, 600, 1000)

_WORD = re.compile(r"[a-z0-9+#]+")
_CLAUSE_SPLIT = re.compile(r"[.!?;]+")


@dataclass(frozen=True)
class ModelProfile:
    """Specialization profile of one model family."""
    name: str
    category_strengths: dict[PromptCategory, float] = field(default_factory=dict)
    complexity_handling: dict[PromptComplexity, float] = field(default_factory=dict)
    reliability: float = BASELINE_SCORE
    cost_efficiency: float = BASELINE_SCORE

    def score(self, category: PromptCategory, complexity: PromptComplexity) -> float:
        """Weighted blend: category 60%, complexity 25%, reliability 10%, cost 5%."""
        value = (
            self.category_strengths.get(category, BASELINE_SCORE) * 0.6
            + self.complexity_handling.get(complexity, BASELINE_SCORE) * 0.25
            + self.reliability * 0.1
            + self.cost_efficiency * 0.05
        )
        return clamp_unit(value)


_C = PromptCategory
_X = PromptComplexity

MODEL_PROFILES: dict[str, ModelProfile] = {
    "claude": ModelProfile(
        name="claude",
        category_strengths={
            _C.ANALYTICAL: 0.95, _C.REASONING: 0.92, _C.CODING: 0.88, _C.SYNTHESIS: 0.90,
            _C.CONVERSATIONAL: 0.85, _C.CREATIVE: 0.80, _C.FACTUAL: 0.88, _C.SPECIALIZED: 0.87,
        },
        complexity_handling={_X.SIMPLE: 0.85, _X.MODERATE: 0.92, _X.COMPLEX: 0.95, _X.EXPERT: 0.90},
        reliability=0.94,
        cost_efficiency=0.80,
    ),
    "gpt": ModelProfile(
        name="gpt",
        category_strengths={
            _C.CONVERSATIONAL: 0.95, _C.CREATIVE: 0.92, _C.FACTUAL: 0.90, _C.CODING: 0.85,
            _C.ANALYTICAL: 0.82, _C.REASONING: 0.85, _C.SYNTHESIS: 0.88, _C.SPECIALIZED: 0.80,
        },
        complexity_handling={_X.SIMPLE: 0.95, _X.MODERATE: 0.90, _X.COMPLEX: 0.85, _X.EXPERT: 0.82},
        reliability=0.92,
        cost_efficiency=0.85,
    ),
    "deepseek": ModelProfile(
        name="deepseek",
        category_strengths={
            _C.CODING: 0.95, _C.REASONING: 0.90, _C.ANALYTICAL: 0.88, _C.SPECIALIZED: 0.85,
            _C.FACTUAL: 0.82, _C.SYNTHESIS: 0.80, _C.CONVERSATIONAL: 0.75, _C.CREATIVE: 0.70,
        },
        complexity_handling={_X.SIMPLE: 0.80, _X.MODERATE: 0.88, _X.COMPLEX: 0.92, _X.EXPERT: 0.95},
        reliability=0.89,
        cost_efficiency=0.90,
    ),
    "gemini": ModelProfile(
        name="gemini",
        category_strengths={
            _C.CREATIVE: 0.90, _C.CONVERSATIONAL: 0.88, _C.FACTUAL: 0.92, _C.SYNTHESIS: 0.85,
            _C.ANALYTICAL: 0.80, _C.REASONING: 0.82, _C.CODING: 0.75, _C.SPECIALIZED: 0.78,
        },
        complexity_handling={_X.SIMPLE: 0.90, _X.MODERATE: 0.85, _X.COMPLEX: 0.80, _X.EXPERT: 0.78},
        reliability=0.87,
        cost_efficiency=0.95,
    ),
    "mistral": ModelProfile(
        name="mistral",
        category_strengths={
            _C.CONVERSATIONAL: 0.85, _C.CODING: 0.82, _C.FACTUAL: 0.80, _C.CREATIVE: 0.78,
            _C.REASONING: 0.78, _C.ANALYTICAL: 0.76, _C.SYNTHESIS: 0.75, _C.SPECIALIZED: 0.70,
        },
        complexity_handling={_X.SIMPLE: 0.90, _X.MODERATE: 0.84, _X.COMPLEX: 0.76, _X.EXPERT: 0.70},
        reliability=0.85,
        cost_efficiency=0.95,
    ),
}


def tokenize(text: str) -> list[str]:
    return _WORD.findall(text.lower())


def count_clauses(text: str) -> int:
    return sum(1 for part in _CLAUSE_SPLIT.split(text) if part.strip())


def keyword_densities(words: list[str]) -> dict[PromptCategory, float]:
    """Keyword hits per word for every heuristic category."""
    if not words:
        return {category: 0.0 for category in HEURISTIC_CATEGORIES}
    densities = {}
    for category in HEURISTIC_CATEGORIES:
        keywords = CATEGORY_KEYWORDS[category]
        hits = sum(1 for word in words if word in keywords)
        densities[category] = hits / len(words)
    return densities


def pick_primary(densities: dict[PromptCategory, float]) -> PromptCategory:
    """Highest density wins; ties and all-zero resolve to CONVERSATIONAL."""
    best = max(densities.values(), default=0.0)
    if best <= 0.0:
        return PromptCategory.CONVERSATIONAL
    leaders = [category for category, density in densities.items() if density == best]
    if len(leaders) != 1:
        return PromptCategory.CONVERSATIONAL
    return leaders[0]


def estimate_complexity(text: str, topic_count: int, clause_count: int) -> PromptComplexity:
    """Complexity bucket from prompt length, distinct topics and clause count.

    Never decreases as the prompt gets longer with the same topical makeup.
    """
    length = len(text.strip())
    if length < SHORT_PROMPT_CHARS:
        return PromptComplexity.SIMPLE

    length_rank = sum(1 for threshold in LENGTH_THRESHOLDS if length >= threshold)
    if topic_count >= 4:
        structure_rank = 3
    elif topic_count >= 3 or clause_count >= 4:
        structure_rank = 2
    elif topic_count >= 2 or clause_count >= 2:
        structure_rank = 1
    else:
        structure_rank = 0
    return PromptComplexity.from_rank(max(length_rank, structure_rank))


def select_strategy(complexity: PromptComplexity) -> Strategy:
    return STRATEGY_BY_COMPLEXITY[complexity]


def _parse_enum(value: Any, enum_cls: type) -> Any:
    if not isinstance(value, str):
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        return None


class PromptAnalyzer:
    """Heuristic prompt classifier with optional LLM refinement.

    Usage:
        analyzer = PromptAnalyzer()
        analysis = await analyzer.analyze("What is the capital of France?")
        analysis.primary_category   # PromptCategory.FACTUAL
        analysis.recommended_strategy  # Strategy.CONSENSUS
    """

    def __init__(
        self,
        config: AnalyzerConfig | None = None,
        classifier: SecondaryClassifier | None = None,
        profiles: dict[str, ModelProfile] | None = None,
    ):
        self.config = config or AnalyzerConfig()
        self.classifier = classifier
        self.profiles = profiles if profiles is not None else MODEL_PROFILES
        self._recent: deque[PromptAnalysis] = deque(maxlen=self.config.recent_limit)
        self._timings: dict[PromptCategory, deque[float]] = {}
        self._counts: dict[PromptCategory, int] = {}

    @log_call
    async def analyze(self, prompt_text: str) -> PromptAnalysis:
        """Analyze a prompt. Never raises; failures degrade to heuristic results."""
        started = time.perf_counter()
        try:
            analysis = await self._analyze(prompt_text, started)
        except Exception as e:
            logger.error(f"Prompt analysis failed, using fallback: {e}")
            analysis = self._fallback_analysis(prompt_text, started, str(e))

        self._record(analysis)
        logger.info(
            f"Analyzed prompt in {analysis.analysis_time.total_seconds() * 1000:.1f}ms: "
            f"{analysis.primary_category.value}/{analysis.complexity.value} "
            f"→ {analysis.recommended_strategy.value}"
        )
        return analysis

    def heuristic_analysis(self, prompt_text: str) -> PromptAnalysis:
        """Deterministic keyword/length analysis, no classifier involved."""
        started = time.perf_counter()
        category, secondary, complexity, steps = self._heuristics(prompt_text)
        return self._build(
            prompt_text, category, secondary, complexity, HEURISTIC_CONFIDENCE, steps, started
        )

    def score_models(self, category: PromptCategory, complexity: PromptComplexity) -> dict[str, float]:
        """Score every configured model; models without a profile get the baseline."""
        scores: dict[str, float] = {}
        for model in self.config.models:
            profile = self.profiles.get(model.lower())
            scores[model] = profile.score(category, complexity) if profile else BASELINE_SCORE
        return scores

    # ------------------------------------------------------------------
    # statistics
    # ------------------------------------------------------------------

    def get_statistics(self) -> dict[str, Any]:
        categories: dict[str, Any] = {}
        for category, samples in self._timings.items():
            if not samples:
                continue
            categories[category.value] = {
                "count": self._counts.get(category, 0),
                "avg_time_ms": sum(samples) / len(samples),
                "min_time_ms": min(samples),
                "max_time_ms": max(samples),
            }
        return {
            "total_analyses": len(self._recent),
            "categories": categories,
            "recent_analyses": [
                {
                    "category": a.primary_category.value,
                    "complexity": a.complexity.value,
                    "confidence": a.confidence_score,
                    "time_ms": a.analysis_time.total_seconds() * 1000,
                }
                for a in self.get_recent_analyses(limit=10)
            ],
        }

    def get_recent_analyses(self, limit: int | None = None) -> list[PromptAnalysis]:
        """Most recent first."""
        analyses = list(reversed(self._recent))
        return analyses[:limit] if limit is not None else analyses

    def clear_history(self) -> None:
        self._recent.clear()
        self._timings.clear()
        self._counts.clear()
        logger.info("Analysis history cleared")

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    async def _analyze(self, prompt_text: str, started: float) -> PromptAnalysis:
        category, secondary, complexity, steps = self._heuristics(prompt_text)
        confidence = HEURISTIC_CONFIDENCE

        if self.classifier is None:
            steps.append("No secondary classifier configured, heuristic analysis used")
        elif not prompt_text.strip():
            steps.append("Empty prompt, secondary classifier skipped")
        else:
            try:
                payload = await asyncio.wait_for(
                    self.classifier.classify(prompt_text),
                    timeout=self.config.classifier_timeout,
                )
            except Exception as e:
                logger.warning(f"Secondary classifier unavailable, using heuristic analysis: {e!r}")
                steps.append(f"Secondary classifier failed ({type(e).__name__}), fell back to heuristic analysis")
            else:
                category, complexity, confidence = self._merge_classifier(
                    payload, category, complexity, steps
                )

        secondary = [c for c in secondary if c != category]
        return self._build(prompt_text, category, secondary, complexity, confidence, steps, started)

    def _heuristics(
        self, prompt_text: str
    ) -> tuple[PromptCategory, list[PromptCategory], PromptComplexity, list[str]]:
        words = tokenize(prompt_text)
        if not words:
            return (
                PromptCategory.CONVERSATIONAL,
                [],
                PromptComplexity.SIMPLE,
                ["Empty prompt: defaulted to conversational/simple"],
            )

        densities = keyword_densities(words)
        primary = pick_primary(densities)
        topics = [c for c in HEURISTIC_CATEGORIES if densities[c] > 0]
        secondary = sorted(
            (c for c in topics if c != primary),
            key=lambda c: (-densities[c], HEURISTIC_CATEGORIES.index(c)),
        )[:3]
        clauses = count_clauses(prompt_text)
        complexity = estimate_complexity(prompt_text, len(topics), clauses)

        steps = [
            f"Analyzed {len(words)} words, {clauses} clauses, {len(topics)} topical clusters",
            f"Primary category: {primary.value} (keyword density {densities.get(primary, 0.0):.2f})",
            f"Complexity: {complexity.value} based on length and structure",
        ]
        return primary, secondary, complexity, steps

    def _merge_classifier(
        self,
        payload: Any,
        category: PromptCategory,
        complexity: PromptComplexity,
        steps: list[str],
    ) -> tuple[PromptCategory, PromptComplexity, float]:
        if not isinstance(payload, dict):
            logger.warning(f"Ignoring unparsable classifier payload: {payload!r}"[:200])
            steps.append("Secondary classifier returned an unparsable payload, heuristic analysis used")
            return category, complexity, HEURISTIC_CONFIDENCE

        refined_category = _parse_enum(payload.get("primary_category"), PromptCategory) or category
        refined_complexity = _parse_enum(payload.get("complexity"), PromptComplexity) or complexity
        raw_confidence = payload.get("confidence")
        classifier_confidence = (
            clamp_unit(raw_confidence, default=HEURISTIC_CONFIDENCE)
            if isinstance(raw_confidence, (int, float)) and not isinstance(raw_confidence, bool)
            else HEURISTIC_CONFIDENCE
        )
        combined = clamp_unit((classifier_confidence + HEURISTIC_CONFIDENCE) / 2)

        steps.append(
            f"Secondary classifier: {refined_category.value}/{refined_complexity.value} "
            f"(heuristic {category.value}/{complexity.value})"
        )
        reasoning = payload.get("reasoning")
        if isinstance(reasoning, list):
            steps.extend(str(step) for step in reasoning[:5])
        steps.append(f"Combined confidence: {combined * 100:.1f}%")
        return refined_category, refined_complexity, combined

    def _build(
        self,
        prompt_text: str,
        category: PromptCategory,
        secondary: list[PromptCategory],
        complexity: PromptComplexity,
        confidence: float,
        steps: list[str],
        started: float,
    ) -> PromptAnalysis:
        strategy = select_strategy(complexity)
        steps = [*steps, f"Strategy: {strategy.value} for {complexity.value} prompts"]
        return PromptAnalysis(
            prompt_text=prompt_text,
            primary_category=category,
            secondary_categories=secondary,
            complexity=complexity,
            confidence_score=confidence,
            model_recommendations=self.score_models(category, complexity),
            recommended_strategy=strategy,
            reasoning_steps=steps,
            analysis_time=timedelta(seconds=max(time.perf_counter() - started, 0.0)),
            timestamp=datetime.now(),
        )

    def _fallback_analysis(self, prompt_text: str, started: float, error: str) -> PromptAnalysis:
        return PromptAnalysis(
            prompt_text=prompt_text if isinstance(prompt_text, str) else str(prompt_text),
            primary_category=PromptCategory.CONVERSATIONAL,
            complexity=PromptComplexity.MODERATE,
            confidence_score=HEURISTIC_CONFIDENCE,
            model_recommendations={model: BASELINE_SCORE for model in self.config.models},
            recommended_strategy=Strategy.PARALLEL,
            reasoning_steps=[f"Fallback analysis after internal error: {error}"],
            analysis_time=timedelta(seconds=max(time.perf_counter() - started, 0.0)),
            timestamp=datetime.now(),
        )

    def _record(self, analysis: PromptAnalysis) -> None:
        self._recent.append(analysis)
        category = analysis.primary_category
        samples = self._timings.setdefault(
            category, deque(maxlen=self.config.timing_samples_per_category)
        )
        samples.append(analysis.analysis_time.total_seconds() * 1000)
        self._counts[category] = self._counts.get(category, 0) + 1
