"""Tests for the local demo simulation plan and generated texts."""

from __future__ import annotations

import pytest

from conductor.demo import DemoStep, build_plan, demo_response, demo_synthesis, first_sentence
from conductor.models import Strategy


class TestPlan:
    def test_staggered_delays(self):
        plan = build_plan(["claude", "gpt", "deepseek"])
        assert [s.model for s in plan] == ["claude", "gpt", "deepseek"]
        assert [s.delay for s in plan] == pytest.approx([0.5, 0.7, 0.9])

    def test_empty(self):
        assert build_plan([]) == []


class TestTexts:
    def test_known_persona(self):
        response = demo_response(DemoStep("deepseek", 2, 0.9), "Explain CRDTs")
        assert response.model_name == "deepseek"
        assert response.content.startswith("DeepSeek:")
        assert "Explain CRDTs" in response.content
        assert response.confidence == pytest.approx(0.8)

    def test_unknown_model_uses_generic_template(self):
        response = demo_response(DemoStep("llama", 0, 0.5), "Hi")
        assert response.content.startswith("llama:")

    def test_confidence_capped(self):
        assert demo_response(DemoStep("gpt", 10, 2.5), "Hi").confidence == 0.95

    def test_long_prompt_shortened(self):
        response = demo_response(DemoStep("gpt", 0, 0.5), "word " * 100)
        assert "…" in response.content

    def test_first_sentence(self):
        assert first_sentence("One thing. Another thing.") == "One thing."
        assert first_sentence("No period") == "No period."
        assert first_sentence("   ") == ""

    def test_synthesis_quotes_each_model(self):
        responses = [
            demo_response(DemoStep("claude", 0, 0.5), "Explain CRDTs"),
            demo_response(DemoStep("gpt", 1, 0.7), "Explain CRDTs"),
        ]
        text = demo_synthesis("Explain CRDTs", responses, Strategy.WEIGHTED)
        assert "ORCHESTRATED SYNTHESIS" in text
        assert "• claude: Claude: I'll approach this systematically." in text
        assert "• gpt:" in text
        assert "2 AI perspectives" in text
        assert "weighted strategy" in text
