"""Tests for the typer CLI."""

from __future__ import annotations

import pytest
from unittest.mock import patch
from typer.testing import CliRunner

from conductor import cli
from conductor.cli import app
from conductor.errors import TransportError

runner = CliRunner()


class RefusingTransport:
    connected = False

    async def connect(self, host, port, timeout):
        raise TransportError("refused")

    async def send(self, event, data):
        raise TransportError("not connected")

    async def receive(self):
        return
        yield

    async def close(self):
        pass


@pytest.fixture(autouse=True)
def quiet_cli(monkeypatch, tmp_path):
    """Skip nfo terminal setup and keep .env lookups inside tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in ("CONDUCTOR_PORTS", "CONDUCTOR_MODELS", "CONDUCTOR_CLASSIFIER_MODEL"):
        monkeypatch.delenv(key, raising=False)
    with patch("conductor.cli._init_logging"):
        yield


class TestAnalyze:
    def test_human_output(self):
        result = runner.invoke(app, ["analyze", "What is the capital of France?"])
        assert result.exit_code == 0, result.output
        assert "Category:   factual" in result.output
        assert "Strategy:   consensus" in result.output

    def test_json_output(self):
        result = runner.invoke(app, ["analyze", "Hello", "--json"])
        assert result.exit_code == 0, result.output
        assert '"primary_category": "conversational"' in result.output


class TestRecommend:
    def test_recommend(self):
        result = runner.invoke(app, ["recommend", "Write a Python function to sort a list using bubble sort"])
        assert result.exit_code == 0, result.output
        assert "Athena recommendation" in result.output
        assert "deepseek" in result.output
        assert "[model_selection]" in result.output

    def test_recommend_json_with_current_models(self):
        result = runner.invoke(app, ["recommend", "Hello", "-m", "gpt", "-m", "mistral", "--json"])
        assert result.exit_code == 0, result.output
        assert '"recommended_models"' in result.output
        assert '"claude"' not in result.output.split('"recommended_models"')[1].split("]")[0]


class TestOrchestrate:
    def test_runs_simulation_without_backend(self, tmp_path):
        config = tmp_path / "fast.yaml"
        config.write_text(
            "coordinator:\n"
            "  demo_base_delay: 0.01\n"
            "  demo_stagger: 0.01\n"
            "  demo_synthesis_delay: 0.01\n"
        )
        with patch("conductor.coordinator.WebSocketTransport", RefusingTransport):
            result = runner.invoke(
                app,
                ["orchestrate", "Explain CRDTs", "-m", "claude", "-m", "gpt",
                 "-s", "consensus", "--config", str(config), "--timeout", "5"],
            )
        assert result.exit_code == 0, result.output
        assert "(simulation)" in result.output
        assert "── claude" in result.output
        assert "ORCHESTRATED SYNTHESIS" in result.output
        assert "consensus strategy" in result.output

    def test_unknown_strategy(self):
        result = runner.invoke(app, ["orchestrate", "Hi", "-s", "telepathy"])
        assert result.exit_code != 0


class TestProviders:
    def test_lists_providers(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        result = runner.invoke(app, ["providers"])
        assert result.exit_code == 0, result.output
        assert "ANTHROPIC" in result.output
        assert "ANTHROPIC_API_KEY set" in result.output


class TestGlobalOptions:
    def test_logging_options_are_recorded(self):
        result = runner.invoke(
            app, ["--log-level", "DEBUG", "--trace", "coordinator=DEBUG", "analyze", "Hello"]
        )
        assert result.exit_code == 0, result.output
        assert cli._log_options == {"level": "DEBUG", "file": None, "components": "coordinator=DEBUG"}
