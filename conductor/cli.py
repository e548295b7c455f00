"""conductor CLI — prompt analysis, Athena recommendations and multi-model orchestration.

Usage:
    conductor analyze "What is the capital of France?"
    conductor recommend "Write a Python function to sort a list" --json
    conductor orchestrate "Explain CRDTs" -m claude -m gpt -s consensus
    conductor providers --live
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from conductor.models import ConductorConfig, LLMProviderConfig, Strategy

app = typer.Typer(
    name="conductor",
    help="conductor — analyze prompts, pick models and orchestrate several LLMs into one answer.",
    no_args_is_help=True,
)


# Set by the global options callback, consumed by _init_logging
_log_options: dict[str, Optional[str]] = {"level": None, "file": None, "components": None}


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l", help="Log level (default: CONDUCTOR_LOG_LEVEL)"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also write a markdown log to this file"),
    trace: Optional[str] = typer.Option(
        None, "--trace", help="Per-component levels, e.g. 'coordinator=DEBUG,transport=DEBUG'"
    ),
):
    """Global logging options."""
    _log_options.update(level=log_level, file=log_file, components=trace)


def _init_logging() -> None:
    """Initialize nfo logging from the global options, falling back to .env config."""
    from conductor.env_config import get_env_config
    from conductor.logging_setup import parse_component_levels, setup_logging

    env = get_env_config()
    components = dict(env.log_levels)
    components.update(parse_component_levels(_log_options["components"]))
    setup_logging(
        level=_log_options["level"] or env.log_level,
        markdown_file=_log_options["file"] or env.log_file,
        component_levels=components,
    )


def _resolve_config(config: Optional[Path], env_file: Optional[Path] = None) -> ConductorConfig:
    """YAML file (if any) first, environment overrides on top."""
    from conductor.core import load_config
    from conductor.env_config import get_env_config

    env = get_env_config(str(env_file) if env_file else None)
    return env.apply(load_config(config))


@app.command()
def analyze(
    prompt: str = typer.Argument(..., help="Prompt to analyze"),
    classifier: Optional[str] = typer.Option(None, "--classifier", help="LiteLLM model used as secondary classifier"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Optional YAML config file"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Classify a prompt and score the available models."""
    from conductor.analyzer import PromptAnalyzer
    from conductor.classifier import LLMClassifier

    _init_logging()
    cfg = _resolve_config(config)
    secondary = LLMClassifier(LLMProviderConfig(model=classifier)) if classifier else None
    if secondary is None and cfg.analyzer.classifier is not None:
        secondary = LLMClassifier(cfg.analyzer.classifier)

    analyzer = PromptAnalyzer(cfg.analyzer, classifier=secondary)
    result = asyncio.run(analyzer.analyze(prompt))

    if json_output:
        typer.echo(result.model_dump_json(indent=2))
        return

    typer.echo(f"\n{'='*60}")
    typer.echo(f"🔍 Prompt analysis")
    typer.echo(f"{'='*60}")
    typer.echo(f"   Category:   {result.primary_category.value}")
    if result.secondary_categories:
        typer.echo(f"   Secondary:  {', '.join(c.value for c in result.secondary_categories)}")
    typer.echo(f"   Complexity: {result.complexity.value}")
    typer.echo(f"   Strategy:   {result.recommended_strategy.value}")
    typer.echo(f"   Confidence: {result.confidence_score:.2f}")
    typer.echo(f"   Models:")
    for model, score in sorted(result.model_recommendations.items(), key=lambda kv: -kv[1]):
        typer.echo(f"     {model:10s} {score:.3f}")
    typer.echo(f"{'='*60}")


@app.command()
def recommend(
    prompt: str = typer.Argument(..., help="Prompt to get recommendations for"),
    model: Optional[list[str]] = typer.Option(None, "--model", "-m", help="Currently selected model (repeatable)"),
    strategy: Optional[str] = typer.Option(None, "--strategy", "-s", help="Currently selected strategy"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Optional YAML config file"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Ask Athena for models, weights and a strategy (enabled for this run only)."""
    from conductor.core import build_services
    from conductor.preferences import InMemoryPreferenceStore

    _init_logging()
    cfg = _resolve_config(config)

    async def _run():
        conductor = build_services(cfg, preferences=InMemoryPreferenceStore())
        try:
            await conductor.set_enabled(True)
            return await conductor.get_model_recommendations(
                prompt, current_models=model or None, current_strategy=strategy
            )
        finally:
            await conductor.aclose()

    rec = asyncio.run(_run())

    if json_output:
        typer.echo(rec.model_dump_json(indent=2))
        return

    typer.echo(f"\n{'='*60}")
    typer.echo(f"🧠 Athena recommendation ({rec.overall_confidence * 100:.0f}% confidence)")
    typer.echo(f"{'='*60}")
    typer.echo(f"   Category: {rec.analysis.primary_category.value} / {rec.analysis.complexity.value}")
    typer.echo(f"   Strategy: {rec.recommended_strategy.value}")
    for name in rec.recommended_models:
        typer.echo(f"   • {name:10s} weight {rec.model_weights.get(name, 0.0):.2f}")
    if rec.auto_apply_recommended:
        typer.echo(f"   ✅ Confident enough to auto-apply")
    typer.echo(f"{'='*60}")
    for decision in rec.decisions:
        typer.echo(f"   [{decision.type.value}] {decision.title} ({decision.confidence_score:.2f})")


@app.command()
def orchestrate(
    prompt: str = typer.Argument(..., help="Prompt to send to every selected model"),
    model: Optional[list[str]] = typer.Option(None, "--model", "-m", help="Model to include (repeatable, default: configured models)"),
    strategy: str = typer.Option("parallel", "--strategy", "-s", help="parallel|sequential|consensus|weighted|adaptive"),
    host: Optional[str] = typer.Option(None, "--host", "-H", help="Backend host (default: from .env)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Backend port (default: discover among configured ports)"),
    timeout: float = typer.Option(30.0, "--timeout", "-t", help="Seconds to wait for the synthesis"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Optional YAML config file"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Path to .env file (default: .env)"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Send a prompt to several models and print their answers and the synthesis.

    Falls back to a local simulation when no backend is reachable.
    """
    from conductor.core import build_services

    _init_logging()
    cfg = _resolve_config(config, env_file)
    models = list(model) if model else list(cfg.analyzer.models)
    try:
        chosen = Strategy(strategy)
    except ValueError:
        raise typer.BadParameter(f"Unknown strategy: {strategy}", param_hint="--strategy")

    async def _run():
        conductor = build_services(cfg)
        done = asyncio.Event()
        conductor.coordinator.synthesis.subscribe(lambda _text: done.set())
        try:
            connected = await conductor.connect(host, port)
            await conductor.orchestrate_ai_request(prompt, models, chosen)
            try:
                await asyncio.wait_for(done.wait(), timeout)
            except asyncio.TimeoutError:
                typer.echo(f"⚠️  No synthesis within {timeout:.0f}s", err=True)
            coordinator = conductor.coordinator
            return connected, coordinator.individual_responses, coordinator.synthesized_response
        finally:
            await conductor.aclose()

    connected, responses, synthesis = asyncio.run(_run())

    if json_output:
        typer.echo(json.dumps({
            "connected": connected,
            "strategy": chosen.value,
            "responses": [r.model_dump(mode="json") for r in responses],
            "synthesis": synthesis,
        }, indent=2, default=str))
        return

    typer.echo(f"\n{'='*60}")
    typer.echo(f"🎼 Orchestration [{chosen.value}] {'(backend)' if connected else '(simulation)'}")
    typer.echo(f"{'='*60}")
    for r in responses:
        typer.echo(f"\n── {r.model_name} ({r.confidence:.2f}, {r.response_time.total_seconds():.1f}s)")
        typer.echo(r.content)
    typer.echo(f"\n{'='*60}")
    typer.echo(synthesis or "(no synthesis)")
    typer.echo(f"{'='*60}")


@app.command()
def providers(
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Path to .env file"),
    live: bool = typer.Option(False, "--live", help="Probe the local Ollama server"),
):
    """Show which classifier providers have credentials configured."""
    from conductor.env_config import check_providers, check_providers_live, get_env_config

    env = get_env_config(str(env_file) if env_file else None)
    results = asyncio.run(check_providers_live(env)) if live else check_providers(env)

    typer.echo(f"\n🔌 Providers:")
    for name, info in results.items():
        status = info["status"]
        icon = "✓" if status in ("ok", "configured") else ("✗" if status == "no_key" else "!")
        typer.echo(f"   {icon} {name.upper():12s} {info['detail']}")
        if "models" in info:
            typer.echo(f"     Models: {', '.join(info['models'][:5])}")


if __name__ == "__main__":
    app()
