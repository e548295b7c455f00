"""Conductor — wires the analyzer, the Athena decision engine and the orchestration coordinator.

Usage:
    from conductor import build_services

    conductor = build_services()
    await conductor.start()                      # restore Athena flag, discover a backend
    await conductor.set_enabled(True)
    rec = await conductor.get_model_recommendations("Explain the CAP theorem")
    await conductor.orchestrate_recommendation(rec)
    ...
    await conductor.aclose()

Each service is a plain instance owned by the Conductor; nothing is global.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from nfo.decorators import log_call

from conductor.analyzer import PromptAnalyzer
from conductor.classifier import LLMClassifier, SecondaryClassifier
from conductor.coordinator import OrchestrationCoordinator
from conductor.decision_engine import DecisionEngine
from conductor.models import (
    ConductorConfig,
    Decision,
    OrchestrationRequest,
    Recommendation,
    Strategy,
)
from conductor.preferences import InMemoryPreferenceStore, JsonPreferenceStore, PreferenceStore
from conductor.scheduler import Scheduler
from conductor.transport import Transport

logger = logging.getLogger("conductor.core")


def load_config(path: str | Path | None = None) -> ConductorConfig:
    """Load a YAML config file, or the defaults when no path is given."""
    if path is None:
        return ConductorConfig()
    return ConductorConfig.from_yaml(Path(path))


class Conductor:
    """Facade over the three services, exposing the operations callers need."""

    def __init__(
        self,
        analyzer: PromptAnalyzer,
        engine: DecisionEngine,
        coordinator: OrchestrationCoordinator,
        config: ConductorConfig | None = None,
    ):
        self.config = config or ConductorConfig()
        self.analyzer = analyzer
        self.engine = engine
        self.coordinator = coordinator
        self._closed = False

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    async def start(self, connect: bool = True) -> bool:
        """Restore the Athena flag and optionally discover a backend. Returns the connection result."""
        await self.engine.initialize()
        if not connect:
            return False
        return await self.coordinator.connect()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.engine.dispose()
        await self.coordinator.dispose()

    async def __aenter__(self) -> "Conductor":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # orchestration
    # ------------------------------------------------------------------

    async def connect(self, host: str | None = None, port: int | None = None) -> bool:
        return await self.coordinator.connect(host, port)

    async def disconnect(self) -> None:
        await self.coordinator.disconnect()

    async def orchestrate_ai_request(
        self,
        prompt: str,
        selected_models: list[str],
        strategy: Strategy | str = Strategy.PARALLEL,
        weights: dict[str, float] | None = None,
        conversation_id: str | None = None,
    ) -> OrchestrationRequest:
        return await self.coordinator.orchestrate_ai_request(
            prompt, selected_models, strategy, weights, conversation_id
        )

    start_ai_stream = orchestrate_ai_request

    @log_call
    async def orchestrate_recommendation(
        self,
        recommendation: Recommendation,
        conversation_id: str | None = None,
    ) -> OrchestrationRequest:
        """Apply a recommendation and run it: its models, strategy and weights."""
        self.engine.apply_recommendation(recommendation)
        return await self.coordinator.orchestrate_ai_request(
            recommendation.prompt_text,
            list(recommendation.recommended_models),
            recommendation.recommended_strategy,
            dict(recommendation.model_weights),
            conversation_id,
        )

    # ------------------------------------------------------------------
    # Athena
    # ------------------------------------------------------------------

    async def get_model_recommendations(
        self,
        prompt_text: str,
        current_models: list[str] | None = None,
        current_strategy: Strategy | str | None = None,
        current_weights: dict[str, float] | None = None,
    ) -> Recommendation:
        return await self.engine.get_model_recommendations(
            prompt_text, current_models, current_strategy, current_weights
        )

    def apply_recommendation(self, recommendation: Recommendation) -> bool:
        return self.engine.apply_recommendation(recommendation)

    async def set_enabled(self, enabled: bool) -> None:
        await self.engine.set_enabled(enabled)

    def get_recent_decisions(self, limit: int | None = None) -> list[Decision]:
        return self.engine.get_recent_decisions(limit)

    def get_athena_statistics(self) -> dict[str, Any]:
        return self.engine.get_athena_statistics()

    def clear_history(self) -> None:
        self.engine.clear_history()
        self.analyzer.clear_history()


def build_services(
    config: ConductorConfig | None = None,
    *,
    classifier: SecondaryClassifier | None = None,
    preferences: PreferenceStore | None = None,
    transport_factory: Callable[[], Transport] | None = None,
    scheduler: Scheduler | None = None,
) -> Conductor:
    """Construct one analyzer, one decision engine and one coordinator from ``config``.

    Collaborators not passed in are derived from the config: an LLM classifier
    when ``analyzer.classifier`` is set, a JSON preference file when
    ``preferences_path`` is set (in-memory otherwise).
    """
    config = config or ConductorConfig()

    if classifier is None and config.analyzer.classifier is not None:
        classifier = LLMClassifier(config.analyzer.classifier)
    if preferences is None:
        preferences = (
            JsonPreferenceStore(config.preferences_path)
            if config.preferences_path else InMemoryPreferenceStore()
        )

    analyzer = PromptAnalyzer(config.analyzer, classifier=classifier)
    engine = DecisionEngine(analyzer, preferences=preferences, config=config.engine)
    coordinator = OrchestrationCoordinator(
        config.coordinator,
        transport_factory=transport_factory,
        scheduler=scheduler,
    )
    logger.debug(
        f"Services built: models={config.analyzer.models} "
        f"classifier={'on' if classifier else 'off'} ports={config.coordinator.ports}"
    )
    return Conductor(analyzer, engine, coordinator, config=config)
