"""Data models for conductor — all values exchanged between components are Pydantic v2 validated.

Analyses, decisions and recommendations are immutable value objects. The only
mutable bit is Decision's applied flag, which flips once via ``mark_applied()``.
"""

from __future__ import annotations

import enum
import math
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    computed_field,
    field_validator,
    model_validator,
)


def clamp_unit(value: Any, default: float = 0.0) -> float:
    """Clamp a value into [0, 1]. Non-numeric and NaN values become ``default``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return min(1.0, max(0.0, number))


# ============================================================
# Enums
# ============================================================

class PromptCategory(str, enum.Enum):
    FACTUAL = "factual"
    CONVERSATIONAL = "conversational"
    CREATIVE = "creative"
    CODING = "coding"
    ANALYTICAL = "analytical"
    REASONING = "reasoning"
    SPECIALIZED = "specialized"
    SYNTHESIS = "synthesis"


class PromptComplexity(str, enum.Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return list(PromptComplexity).index(self)

    @classmethod
    def from_rank(cls, rank: int) -> "PromptComplexity":
        members = list(cls)
        return members[min(max(rank, 0), len(members) - 1)]


class Strategy(str, enum.Enum):
    """How multiple model responses are combined."""
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"
    CONSENSUS = "consensus"
    WEIGHTED = "weighted"
    ADAPTIVE = "adaptive"


class DecisionType(str, enum.Enum):
    MODEL_SELECTION = "model_selection"
    STRATEGY_SELECTION = "strategy_selection"
    WEIGHT_ADJUSTMENT = "weight_adjustment"


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# ============================================================
# Prompt analysis
# ============================================================

class PromptAnalysis(BaseModel):
    """Result of analyzing one prompt. Never mutated after construction."""
    model_config = ConfigDict(frozen=True)

    prompt_text: str = ""
    primary_category: PromptCategory = PromptCategory.CONVERSATIONAL
    secondary_categories: list[PromptCategory] = Field(default_factory=list)
    complexity: PromptComplexity = PromptComplexity.MODERATE
    confidence_score: float = 0.75
    model_recommendations: dict[str, float] = Field(default_factory=dict)
    recommended_strategy: Strategy = Strategy.PARALLEL
    reasoning_steps: list[str] = Field(default_factory=list)
    analysis_time: timedelta = Field(default_factory=timedelta)
    timestamp: datetime = Field(default_factory=datetime.now)

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        return clamp_unit(v)

    @field_validator("model_recommendations", mode="before")
    @classmethod
    def _clamp_scores(cls, v: Any) -> dict[str, float]:
        if not isinstance(v, dict):
            return {}
        return {str(k): clamp_unit(score) for k, score in v.items()}

    @field_validator("analysis_time")
    @classmethod
    def _non_negative_time(cls, v: timedelta) -> timedelta:
        return v if v >= timedelta(0) else timedelta(0)


# ============================================================
# Decisions & recommendations
# ============================================================

class Decision(BaseModel):
    """Immutable record of one automated choice made by the decision engine."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"dec_{uuid.uuid4().hex[:12]}")
    type: DecisionType
    title: str = ""
    description: str = ""
    input_data: dict[str, Any] = Field(default_factory=dict)
    output_data: dict[str, Any] = Field(default_factory=dict)
    confidence_score: float = 0.0
    reasoning_steps: list[str] = Field(default_factory=list)
    processing_time: timedelta = Field(default_factory=timedelta)
    timestamp: datetime = Field(default_factory=datetime.now)

    _applied: bool = PrivateAttr(default=False)

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        return clamp_unit(v)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def was_applied(self) -> bool:
        return self._applied

    def mark_applied(self) -> bool:
        """Flip the applied flag. Returns False if it was already set."""
        if self._applied:
            return False
        self._applied = True
        return True


class Recommendation(BaseModel):
    """Models, weights and strategy offered to the caller, plus the decisions behind them.

    ``decision`` is the model-selection decision; its id identifies the
    recommendation in the ledger. ``decisions`` holds all three.
    """
    model_config = ConfigDict(frozen=True)

    prompt_text: str
    analysis: PromptAnalysis
    recommended_models: list[str] = Field(default_factory=list)
    model_weights: dict[str, float] = Field(default_factory=dict)
    recommended_strategy: Strategy = Strategy.PARALLEL
    decision: Decision
    decisions: list[Decision] = Field(default_factory=list)
    overall_confidence: float = 0.0
    auto_apply_recommended: bool = False

    @field_validator("overall_confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        return clamp_unit(v)

    def summary(self) -> dict[str, Any]:
        return {
            "decision_id": self.decision.id,
            "category": self.analysis.primary_category.value,
            "complexity": self.analysis.complexity.value,
            "models": list(self.recommended_models),
            "strategy": self.recommended_strategy.value,
            "confidence": round(self.overall_confidence, 3),
        }


class AthenaState(BaseModel):
    """Snapshot of the decision engine published on its state channel."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    is_analyzing: bool = False
    disposed: bool = False
    last_recommendation: dict[str, Any] | None = None
    last_error: str | None = None
    timestamp: datetime = Field(default_factory=datetime.now)


# ============================================================
# Orchestration
# ============================================================

class OrchestrationRequest(BaseModel):
    """One orchestration call. Not persisted."""
    model_config = ConfigDict(frozen=True)

    prompt: str
    selected_models: list[str] = Field(default_factory=list)
    strategy: Strategy = Strategy.PARALLEL
    model_weights: dict[str, float] = Field(default_factory=dict)
    conversation_id: str = Field(default_factory=lambda: f"conv_{uuid.uuid4().hex[:16]}")

    def to_payload(self) -> dict[str, Any]:
        """Payload of the ``start_ai_stream`` message."""
        return {
            "prompt": self.prompt,
            "models": list(self.selected_models),
            "strategy": self.strategy.value,
            "weights": dict(self.model_weights),
            "conversation_id": self.conversation_id,
            "timestamp": datetime.now().isoformat(),
        }


class AIResponse(BaseModel):
    """Answer of one model within one orchestration run, keyed by model name."""
    model_config = ConfigDict(frozen=True)

    model_name: str
    content: str = ""
    confidence: float = 0.8
    response_time: timedelta = Field(default_factory=lambda: timedelta(seconds=1))
    timestamp: datetime = Field(default_factory=datetime.now)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        return clamp_unit(v, default=0.8)


class OrchestrationProgress(BaseModel):
    """Progress of one orchestration run. completed_models never exceeds total_models."""
    model_config = ConfigDict(frozen=True)

    completed_models: int = 0
    total_models: int = 0
    current_phase: str = "initializing"
    overall_progress: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _bound_counts(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        total = data.get("total_models", 0)
        completed = data.get("completed_models", 0)
        if isinstance(total, int) and isinstance(completed, int):
            total = max(total, 0)
            data = {**data, "total_models": total, "completed_models": min(max(completed, 0), total)}
        return data

    @field_validator("overall_progress", mode="before")
    @classmethod
    def _clamp_progress(cls, v: Any) -> float:
        return clamp_unit(v)


# ============================================================
# Configuration
# ============================================================

DEFAULT_MODELS = ["claude", "gpt", "deepseek", "gemini", "mistral"]


class LLMProviderConfig(BaseModel):
    """Configuration for the LLM used as secondary classifier."""
    model: str = "anthropic/claude-3-5-haiku-latest"
    fallback: list[str] = Field(default_factory=list)
    max_retries: int = 1
    timeout: int = 10
    max_tokens: int = 150
    temperature: float = 0.1


class AnalyzerConfig(BaseModel):
    models: list[str] = Field(default_factory=lambda: list(DEFAULT_MODELS))
    recent_limit: int = 50
    timing_samples_per_category: int = 100
    classifier: LLMProviderConfig | None = None
    classifier_timeout: float = 2.0


class EngineConfig(BaseModel):
    max_models: int = 3
    min_score: float = 0.5
    min_weight: float = 0.05
    ledger_size: int = 200
    performance_history: int = 100
    auto_apply_threshold: float = 0.8
    recent_prompt_limit: int = 50
    enabled_preference_key: str = "athena_enabled"


class CoordinatorConfig(BaseModel):
    host: str = "localhost"
    ports: list[int] = Field(default_factory=lambda: [3001, 3002, 3003, 3004, 3005])
    connect_timeout: float = 2.0
    demo_base_delay: float = 0.5
    demo_stagger: float = 0.2
    demo_synthesis_delay: float = 0.8


class ConductorConfig(BaseModel):
    """Top-level config — loadable from YAML."""
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    coordinator: CoordinatorConfig = Field(default_factory=CoordinatorConfig)
    preferences_path: str | None = None

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ConductorConfig":
        """Load config from a YAML file. Missing sections keep their defaults."""
        import yaml

        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config file {path} must contain a mapping, got {type(raw).__name__}")
        return cls.model_validate(raw)
