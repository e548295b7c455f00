"""Tests for PromptAnalyzer — heuristics, model scoring, classifier merging and fallbacks."""

from __future__ import annotations

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from conductor.analyzer import (
    HEURISTIC_CONFIDENCE,
    MODEL_PROFILES,
    PromptAnalyzer,
    estimate_complexity,
    pick_primary,
    select_strategy,
)
from conductor.models import AnalyzerConfig, PromptCategory, PromptComplexity, Strategy


def _classifier(payload=None, side_effect=None) -> MagicMock:
    classifier = MagicMock()
    classifier.classify = AsyncMock(return_value=payload, side_effect=side_effect)
    return classifier


class TestHeuristics:
    @pytest.mark.asyncio
    async def test_short_factual_question(self):
        analysis = await PromptAnalyzer().analyze("What is the capital of France?")
        assert analysis.primary_category == PromptCategory.FACTUAL
        assert analysis.complexity == PromptComplexity.SIMPLE
        assert analysis.recommended_strategy == Strategy.CONSENSUS
        assert analysis.confidence_score == HEURISTIC_CONFIDENCE

    @pytest.mark.asyncio
    async def test_coding_request(self):
        analysis = await PromptAnalyzer().analyze("Write a Python function to sort a list using bubble sort")
        assert analysis.primary_category == PromptCategory.CODING
        assert PromptCategory.CODING not in analysis.secondary_categories
        assert analysis.complexity.rank >= PromptComplexity.MODERATE.rank
        scores = analysis.model_recommendations
        assert scores["deepseek"] == pytest.approx(0.934)
        assert max(scores, key=scores.get) == "deepseek"

    @pytest.mark.asyncio
    async def test_greeting(self):
        analysis = await PromptAnalyzer().analyze("Hello")
        assert analysis.primary_category == PromptCategory.CONVERSATIONAL
        assert analysis.complexity == PromptComplexity.SIMPLE

    @pytest.mark.asyncio
    async def test_empty_prompt(self):
        analysis = await PromptAnalyzer().analyze("   ")
        assert analysis.primary_category == PromptCategory.CONVERSATIONAL
        assert analysis.complexity == PromptComplexity.SIMPLE
        assert analysis.reasoning_steps

    def test_tie_resolves_to_conversational(self):
        densities = {PromptCategory.CODING: 0.2, PromptCategory.CREATIVE: 0.2}
        assert pick_primary(densities) == PromptCategory.CONVERSATIONAL

    def test_complexity_monotonic_in_length(self):
        sentence = "Explain why the sky is blue "
        ranks = [
            estimate_complexity(sentence * n, topic_count=1, clause_count=1).rank
            for n in range(1, 60)
        ]
        assert ranks == sorted(ranks)
        assert ranks[-1] == PromptComplexity.EXPERT.rank

    def test_many_topics_raise_complexity(self):
        text = "x" * 50
        assert estimate_complexity(text, topic_count=1, clause_count=1) == PromptComplexity.SIMPLE
        assert estimate_complexity(text, topic_count=2, clause_count=1) == PromptComplexity.MODERATE
        assert estimate_complexity(text, topic_count=4, clause_count=1) == PromptComplexity.EXPERT

    def test_clause_count_raises_complexity(self):
        text = "x" * 50
        assert estimate_complexity(text, topic_count=0, clause_count=2) == PromptComplexity.MODERATE
        assert estimate_complexity(text, topic_count=0, clause_count=3) == PromptComplexity.MODERATE
        assert estimate_complexity(text, topic_count=0, clause_count=4) == PromptComplexity.COMPLEX

    def test_short_prompts_stay_simple(self):
        text = "Why? How? Code it. Compare."
        assert len(text) < 40
        assert estimate_complexity(text, topic_count=4, clause_count=4) == PromptComplexity.SIMPLE

    def test_strategy_table(self):
        assert select_strategy(PromptComplexity.SIMPLE) == Strategy.CONSENSUS
        assert select_strategy(PromptComplexity.MODERATE) == Strategy.PARALLEL
        assert select_strategy(PromptComplexity.COMPLEX) == Strategy.WEIGHTED
        assert select_strategy(PromptComplexity.EXPERT) == Strategy.ADAPTIVE


class TestModelScores:
    def test_scores_cover_configured_models(self):
        analyzer = PromptAnalyzer(AnalyzerConfig(models=["claude", "llama"]))
        scores = analyzer.score_models(PromptCategory.ANALYTICAL, PromptComplexity.COMPLEX)
        assert set(scores) == {"claude", "llama"}
        assert scores["llama"] == 0.5
        assert 0.0 <= scores["claude"] <= 1.0

    def test_profile_formula(self):
        profile = MODEL_PROFILES["gpt"]
        expected = 0.95 * 0.6 + 0.95 * 0.25 + 0.92 * 0.1 + 0.85 * 0.05
        assert profile.score(PromptCategory.CONVERSATIONAL, PromptComplexity.SIMPLE) == pytest.approx(expected)


class TestSecondaryClassifier:
    @pytest.mark.asyncio
    async def test_classifier_refines_analysis(self):
        classifier = _classifier({
            "primary_category": "creative",
            "complexity": "expert",
            "confidence": 0.95,
            "reasoning": ["asks for a long story"],
        })
        analysis = await PromptAnalyzer(classifier=classifier).analyze("Tell me about dragons")

        assert analysis.primary_category == PromptCategory.CREATIVE
        assert analysis.complexity == PromptComplexity.EXPERT
        assert analysis.recommended_strategy == Strategy.ADAPTIVE
        assert analysis.confidence_score == pytest.approx((0.95 + HEURISTIC_CONFIDENCE) / 2)
        assert "asks for a long story" in analysis.reasoning_steps

    @pytest.mark.asyncio
    async def test_classifier_may_pick_synthesis(self):
        classifier = _classifier({"primary_category": "synthesis"})
        analysis = await PromptAnalyzer(classifier=classifier).analyze("Combine these answers")
        assert analysis.primary_category == PromptCategory.SYNTHESIS

    @pytest.mark.asyncio
    async def test_partial_payload_keeps_heuristics(self):
        classifier = _classifier({"complexity": "nonsense", "confidence": "very"})
        analysis = await PromptAnalyzer(classifier=classifier).analyze("What is the capital of France?")
        assert analysis.primary_category == PromptCategory.FACTUAL
        assert analysis.complexity == PromptComplexity.SIMPLE
        assert analysis.confidence_score == pytest.approx(HEURISTIC_CONFIDENCE)

    @pytest.mark.asyncio
    async def test_classifier_error_falls_back(self):
        classifier = _classifier(side_effect=RuntimeError("provider down"))
        analysis = await PromptAnalyzer(classifier=classifier).analyze("What is the capital of France?")
        assert analysis.primary_category == PromptCategory.FACTUAL
        assert analysis.confidence_score == HEURISTIC_CONFIDENCE
        assert any("fell back" in step for step in analysis.reasoning_steps)

    @pytest.mark.asyncio
    async def test_unparsable_payload_falls_back(self):
        analysis = await PromptAnalyzer(classifier=_classifier("not json")).analyze("Hello")
        assert analysis.primary_category == PromptCategory.CONVERSATIONAL
        assert analysis.confidence_score == HEURISTIC_CONFIDENCE

    @pytest.mark.asyncio
    async def test_classifier_timeout_falls_back(self):
        class SlowClassifier:
            async def classify(self, prompt):
                await asyncio.sleep(5)
                return {"primary_category": "creative"}

        analyzer = PromptAnalyzer(AnalyzerConfig(classifier_timeout=0.05), classifier=SlowClassifier())
        analysis = await asyncio.wait_for(analyzer.analyze("Hello"), timeout=2.0)
        assert analysis.primary_category == PromptCategory.CONVERSATIONAL
        assert analysis.confidence_score == HEURISTIC_CONFIDENCE


class TestStatistics:
    @pytest.mark.asyncio
    async def test_statistics_and_recent(self):
        analyzer = PromptAnalyzer()
        await analyzer.analyze("Hello")
        await analyzer.analyze("What is the capital of France?")

        stats = analyzer.get_statistics()
        assert stats["total_analyses"] == 2
        assert stats["categories"]["factual"]["count"] == 1
        assert stats["categories"]["conversational"]["count"] == 1
        assert analyzer.get_recent_analyses(1)[0].primary_category == PromptCategory.FACTUAL

    @pytest.mark.asyncio
    async def test_recent_is_capped(self):
        analyzer = PromptAnalyzer(AnalyzerConfig(recent_limit=3))
        for _ in range(5):
            await analyzer.analyze("Hello")
        assert len(analyzer.get_recent_analyses()) == 3

    @pytest.mark.asyncio
    async def test_clear_history(self):
        analyzer = PromptAnalyzer()
        await analyzer.analyze("Hello")
        analyzer.clear_history()
        assert analyzer.get_statistics()["total_analyses"] == 0
        assert analyzer.get_statistics()["categories"] == {}
