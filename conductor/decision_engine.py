"""DecisionEngine ("Athena") — turns prompt analyses into auditable model/strategy/weight recommendations.

Disabled by default. When enabled, every ``get_model_recommendations`` call:
    analyze prompt → select models → choose strategy → compute weights
    → three Decisions in the ledger → one Recommendation
and publishes the results on the ``analyses``, ``recommendations``,
``decisions`` and ``state`` channels.

Usage:
    engine = DecisionEngine(analyzer=PromptAnalyzer(), preferences=InMemoryPreferenceStore())
    await engine.set_enabled(True)
    rec = await engine.get_model_recommendations("Explain quicksort")
    engine.apply_recommendation(rec)
"""

from __future__ import annotations

import logging
import time
from collections import deque
from datetime import timedelta
from typing import Any

from nfo.decorators import log_call

from conductor.analyzer import BASELINE_SCORE, PromptAnalyzer
from conductor.channels import BroadcastChannel
from conductor.errors import EngineDisposedError, NotEnabledError
from conductor.ledger import DecisionLedger
from conductor.models import (
    DEFAULT_MODELS,
    AthenaState,
    Decision,
    DecisionType,
    EngineConfig,
    PromptAnalysis,
    Recommendation,
    Strategy,
    clamp_unit,
)
from conductor.preferences import PreferenceStore

logger = logging.getLogger("conductor.decision_engine")

# Starting point for the historical performance of each model family.
INITIAL_MODEL_PERFORMANCE: dict[str, float] = {
    "claude": 0.85,
    "gpt": 0.80,
    "deepseek": 0.75,
    "gemini": 0.80,
    "mistral": 0.70,
}
ANALYSIS_SCORE_SHARE = 0.7
SUCCESS_THRESHOLD = 0.7


class DecisionEngine:
    """Autonomous recommendation engine with an enable gate and a bounded decision ledger."""

    def __init__(
        self,
        analyzer: PromptAnalyzer,
        preferences: PreferenceStore | None = None,
        config: EngineConfig | None = None,
    ):
        self.analyzer = analyzer
        self.preferences = preferences
        self.config = config or EngineConfig()
        self.ledger = DecisionLedger(max_entries=self.config.ledger_size)

        self.decisions: BroadcastChannel[Decision] = BroadcastChannel("athena.decisions")
        self.analyses: BroadcastChannel[PromptAnalysis] = BroadcastChannel("athena.analyses")
        self.recommendations: BroadcastChannel[Recommendation] = BroadcastChannel("athena.recommendations")
        self.state: BroadcastChannel[AthenaState] = BroadcastChannel("athena.state")

        self._enabled = False
        self._is_analyzing = False
        self._disposed = False
        self._last_recommendation: Recommendation | None = None
        self._last_error: str | None = None
        self._recent_prompts: deque[str] = deque(maxlen=self.config.recent_prompt_limit)
        self._model_history: dict[str, deque[float]] = {}
        self._strategy_history: dict[str, deque[float]] = {}
        self._model_performance: dict[str, float] = dict(INITIAL_MODEL_PERFORMANCE)
        self._model_usage: dict[str, int] = {}

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_analyzing(self) -> bool:
        return self._is_analyzing

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def last_recommendation(self) -> Recommendation | None:
        return self._last_recommendation

    def snapshot(self) -> AthenaState:
        return AthenaState(
            enabled=self._enabled,
            is_analyzing=self._is_analyzing,
            disposed=self._disposed,
            last_recommendation=(
                self._last_recommendation.summary() if self._last_recommendation else None
            ),
            last_error=self._last_error,
        )

    async def initialize(self) -> bool:
        """Restore the persisted enabled flag. Read failures leave the engine disabled."""
        self._ensure_usable()
        if self.preferences is None:
            return self._enabled
        try:
            self._enabled = await self.preferences.get_bool_preference(
                self.config.enabled_preference_key, False
            )
        except Exception as e:
            logger.warning(f"Failed to load Athena enabled flag, staying disabled: {e}")
            self._enabled = False
        logger.info(f"Athena initialized: {'ENABLED' if self._enabled else 'DISABLED'}")
        self._publish_state()
        return self._enabled

    async def set_enabled(self, enabled: bool) -> None:
        """Switch the engine on or off. Persistence is best-effort and never rolls back."""
        self._ensure_usable()
        self._enabled = bool(enabled)
        logger.info(f"Athena {'ENABLED' if self._enabled else 'DISABLED'}")
        if self.preferences is not None:
            try:
                await self.preferences.save_bool_preference(
                    self.config.enabled_preference_key, self._enabled
                )
            except Exception as e:
                logger.warning(f"Failed to persist Athena enabled flag: {e}")
        self._publish_state()

    # ------------------------------------------------------------------
    # recommendations
    # ------------------------------------------------------------------

    @log_call
    async def get_model_recommendations(
        self,
        prompt_text: str,
        current_models: list[str] | None = None,
        current_strategy: Strategy | str | None = None,
        current_weights: dict[str, float] | None = None,
    ) -> Recommendation:
        """Analyze a prompt and recommend models, weights and a strategy.

        Raises:
            NotEnabledError: the engine is disabled (checked before any work).
            EngineDisposedError: the engine has been disposed.
        """
        self._ensure_usable()
        if not self._enabled:
            raise NotEnabledError()

        self._is_analyzing = True
        self._last_error = None
        self._publish_state()
        started = time.perf_counter()
        try:
            analysis = await self.analyzer.analyze(prompt_text)
            if not self._disposed:
                self.analyses.publish(analysis)
            recommendation = self._build_recommendation(
                prompt_text, analysis, current_models, current_strategy, current_weights, started
            )
        except Exception as e:
            self._is_analyzing = False
            self._last_error = f"Analysis failed: {e}"
            logger.error(self._last_error)
            self._publish_state()
            raise
        finally:
            self._is_analyzing = False

        self.ledger.extend(recommendation.decisions)
        self._recent_prompts.append(prompt_text)
        self._last_recommendation = recommendation

        logger.info(
            f"Recommendation: {', '.join(recommendation.recommended_models)} "
            f"with {recommendation.recommended_strategy.value} "
            f"({recommendation.overall_confidence * 100:.0f}% confidence)"
        )
        if not self._disposed:
            self.recommendations.publish(recommendation)
            for decision in recommendation.decisions:
                self.decisions.publish(decision)
        self._publish_state()
        return recommendation

    def apply_recommendation(self, recommendation: Recommendation) -> bool:
        """Mark the recommendation's decisions as applied. No-op when absent or already applied."""
        self._ensure_usable()
        changed = self.ledger.mark_applied(recommendation.decision.id)
        for decision in recommendation.decisions:
            if decision.id != recommendation.decision.id:
                self.ledger.mark_applied(decision.id)
        if changed:
            logger.info(f"Applied recommendation {recommendation.decision.id}")
            self._publish_state()
        return changed

    def record_orchestration_performance(
        self,
        used_models: list[str],
        used_strategy: Strategy | str,
        quality_score: float,
    ) -> None:
        """Feed the outcome of an orchestration run back into model and strategy history."""
        self._ensure_usable()
        strategy = Strategy(used_strategy).value
        score = clamp_unit(quality_score)
        for model in used_models:
            self._model_usage[model] = self._model_usage.get(model, 0) + 1
            history = self._model_history.setdefault(
                model, deque(maxlen=self.config.performance_history)
            )
            history.append(score)
            self._model_performance[model] = sum(history) / len(history)

        history = self._strategy_history.setdefault(
            strategy, deque(maxlen=self.config.performance_history)
        )
        history.append(score)
        logger.debug(f"Recorded performance {score:.2f} for {used_models} / {strategy}")

    def model_performance(self, model: str) -> float:
        return self._model_performance.get(model, BASELINE_SCORE)

    def strategy_success_rate(self, strategy: Strategy | str) -> float:
        history = self._strategy_history.get(Strategy(strategy).value)
        if not history:
            return BASELINE_SCORE
        return sum(1 for s in history if s > SUCCESS_THRESHOLD) / len(history)

    # ------------------------------------------------------------------
    # ledger & statistics
    # ------------------------------------------------------------------

    def get_recent_decisions(self, limit: int | None = None) -> list[Decision]:
        self._ensure_usable()
        return self.ledger.recent(limit)

    def get_statistics(self) -> dict[str, Any]:
        self._ensure_usable()
        summary = self.ledger.summary()
        return {
            "total_decisions": summary["total_decisions"],
            "applied_decisions": summary["applied_decisions"],
            "decisions_by_type": {k: v["count"] for k, v in summary["by_type"].items()},
            "average_confidence_by_type": {
                k: v["average_confidence"] for k, v in summary["by_type"].items()
            },
            "recent_prompts": len(set(self._recent_prompts)),
            "enabled": self._enabled,
            "is_analyzing": self._is_analyzing,
            "last_recommendation": (
                self._last_recommendation.summary() if self._last_recommendation else None
            ),
            "model_performance": dict(self._model_performance),
            "model_usage": dict(self._model_usage),
        }

    get_athena_statistics = get_statistics

    def clear_history(self) -> None:
        """Empty the ledger and prompt tracking. The enabled flag is left alone."""
        self._ensure_usable()
        self.ledger.clear()
        self._recent_prompts.clear()
        self._last_recommendation = None
        logger.info("Athena decision history cleared")
        self._publish_state()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._publish_state(disposed=True)
        self._disposed = True
        self.analyses.close()
        self.decisions.close()
        self.recommendations.close()
        self.state.close()
        logger.debug("Athena disposed")

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _ensure_usable(self) -> None:
        if self._disposed:
            raise EngineDisposedError()

    def _publish_state(self, disposed: bool = False) -> None:
        if self._disposed:
            return
        snapshot = self.snapshot()
        if disposed:
            snapshot = snapshot.model_copy(update={"disposed": True})
        self.state.publish(snapshot)

    def _build_recommendation(
        self,
        prompt_text: str,
        analysis: PromptAnalysis,
        current_models: list[str] | None,
        current_strategy: Strategy | str | None,
        current_weights: dict[str, float] | None,
        started: float,
    ) -> Recommendation:
        scores = self._blend_scores(analysis, current_models)
        models = self._select_models(scores)
        model_decision = self._model_decision(analysis, scores, models, current_models, started)

        strategy, strategy_decision = self._strategy_decision(analysis, current_strategy, started)

        weights = self._compute_weights(models, scores, current_weights)
        weight_decision = self._weight_decision(analysis, scores, weights, current_weights, started)

        decisions = [model_decision, strategy_decision, weight_decision]
        analysis_confidence = clamp_unit(analysis.confidence_score)
        decision_confidence = sum(clamp_unit(d.confidence_score) for d in decisions) / len(decisions)
        overall = clamp_unit(0.5 * analysis_confidence + 0.5 * decision_confidence)

        return Recommendation(
            prompt_text=prompt_text,
            analysis=analysis,
            recommended_models=models,
            model_weights=weights,
            recommended_strategy=strategy,
            decision=model_decision,
            decisions=decisions,
            overall_confidence=overall,
            auto_apply_recommended=overall >= self.config.auto_apply_threshold,
        )

    def _blend_scores(
        self, analysis: PromptAnalysis, current_models: list[str] | None
    ) -> dict[str, float]:
        """Analysis score 70%, historical performance 30%."""
        pool = list(current_models or analysis.model_recommendations or DEFAULT_MODELS)
        scores: dict[str, float] = {}
        for model in dict.fromkeys(pool):
            base = clamp_unit(analysis.model_recommendations.get(model, BASELINE_SCORE))
            performance = clamp_unit(self.model_performance(model))
            scores[model] = clamp_unit(
                base * ANALYSIS_SCORE_SHARE + performance * (1 - ANALYSIS_SCORE_SHARE)
            )
        return scores

    def _select_models(self, scores: dict[str, float]) -> list[str]:
        """Top-N above the score floor; never empty while there are candidates."""
        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
        selected = [m for m, s in ranked if s >= self.config.min_score][: self.config.max_models]
        if not selected and ranked:
            selected = [ranked[0][0]]
        return selected

    def _compute_weights(
        self,
        models: list[str],
        scores: dict[str, float],
        current_weights: dict[str, float] | None,
    ) -> dict[str, float]:
        """Strictly positive weights summing to 1 over the recommended models."""
        floor = max(self.config.min_weight, 1e-6)
        raw = {m: max(scores.get(m, BASELINE_SCORE), floor) for m in models}
        raw = _normalize(raw)
        if current_weights:
            current = _normalize(
                {m: max(clamp_unit(current_weights.get(m, raw[m])), floor) for m in models}
            )
            raw = {m: 0.5 * raw[m] + 0.5 * current[m] for m in models}
        weights = _normalize({m: max(w, floor) for m, w in raw.items()})
        return {m: round(w, 6) for m, w in weights.items()}

    def _model_decision(
        self,
        analysis: PromptAnalysis,
        scores: dict[str, float],
        models: list[str],
        current_models: list[str] | None,
        started: float,
    ) -> Decision:
        confidence = sum(scores[m] for m in models) / len(models) if models else 0.0
        steps = [
            f"Candidate pool: {', '.join(scores) or 'none'}"
            + (" (caller-provided)" if current_models else ""),
            f"Blended analysis scores ({ANALYSIS_SCORE_SHARE:.0%}) with historical performance",
            f"Kept top {self.config.max_models} with score ≥ {self.config.min_score}",
            f"Selected: {', '.join(models)}",
        ]
        return Decision(
            type=DecisionType.MODEL_SELECTION,
            title="Model selection",
            description=(
                f"Selected {len(models)} models for a {analysis.complexity.value} "
                f"{analysis.primary_category.value} prompt"
            ),
            input_data={
                "category": analysis.primary_category.value,
                "complexity": analysis.complexity.value,
                "current_models": list(current_models or []),
            },
            output_data={"models": models, "scores": {m: round(s, 4) for m, s in scores.items()}},
            confidence_score=confidence,
            reasoning_steps=steps,
            processing_time=_elapsed(started),
        )

    def _strategy_decision(
        self,
        analysis: PromptAnalysis,
        current_strategy: Strategy | str | None,
        started: float,
    ) -> tuple[Strategy, Decision]:
        suggested = analysis.recommended_strategy
        override = Strategy(current_strategy) if current_strategy else None
        strategy = override or suggested
        success_rate = self.strategy_success_rate(strategy)

        confidence = 0.7 * clamp_unit(analysis.confidence_score) + 0.3 * success_rate
        steps = [f"Analyzer suggested {suggested.value} for {analysis.complexity.value} prompts"]
        if override is not None and override != suggested:
            confidence *= 0.8
            steps.append(f"Caller context overrides with {override.value}")
        elif override is not None:
            steps.append("Caller context agrees with the suggestion")
        steps.append(f"Historical success rate of {strategy.value}: {success_rate:.0%}")

        decision = Decision(
            type=DecisionType.STRATEGY_SELECTION,
            title="Strategy selection",
            description=f"Use the {strategy.value} strategy",
            input_data={
                "suggested": suggested.value,
                "current_strategy": override.value if override else None,
            },
            output_data={"strategy": strategy.value, "overridden": override is not None},
            confidence_score=confidence,
            reasoning_steps=steps,
            processing_time=_elapsed(started),
        )
        return strategy, decision

    def _weight_decision(
        self,
        analysis: PromptAnalysis,
        scores: dict[str, float],
        weights: dict[str, float],
        current_weights: dict[str, float] | None,
        started: float,
    ) -> Decision:
        mean_score = sum(scores[m] for m in weights) / len(weights) if weights else 0.0
        confidence = 0.5 * mean_score + 0.5 * clamp_unit(analysis.confidence_score)
        steps = [
            f"Weights proportional to blended scores, floor {self.config.min_weight}",
            "Normalized to sum to 1",
        ]
        if current_weights:
            steps.append("Blended 50/50 with the caller's current weights")
        return Decision(
            type=DecisionType.WEIGHT_ADJUSTMENT,
            title="Weight adjustment",
            description=", ".join(f"{m}={w:.2f}" for m, w in weights.items()),
            input_data={"current_weights": dict(current_weights or {})},
            output_data={"weights": dict(weights)},
            confidence_score=confidence,
            reasoning_steps=steps,
            processing_time=_elapsed(started),
        )


def _normalize(values: dict[str, float]) -> dict[str, float]:
    total = sum(values.values())
    if total <= 0:
        return {k: 1.0 / len(values) for k in values} if values else {}
    return {k: v / total for k, v in values.items()}


def _elapsed(started: float) -> timedelta:
    return timedelta(seconds=max(time.perf_counter() - started, 0.0))
