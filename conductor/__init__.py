"""conductor — talk to several LLM backends at once and get one synthesized answer.

Usage:
    from conductor import build_services

    conductor = build_services()
    await conductor.start()
    await conductor.orchestrate_ai_request("Explain CRDTs", ["claude", "gpt"], "consensus")
"""

__version__ = "0.1.0"

from conductor.core import Conductor, build_services, load_config
from conductor.analyzer import PromptAnalyzer
from conductor.decision_engine import DecisionEngine
from conductor.coordinator import OrchestrationCoordinator
from conductor.ledger import DecisionLedger
from conductor.channels import BroadcastChannel, Subscription
from conductor.scheduler import AsyncioScheduler, VirtualScheduler
from conductor.classifier import LLMClassifier
from conductor.llm_provider import LLMProvider
from conductor.preferences import InMemoryPreferenceStore, JsonPreferenceStore
from conductor.transport import WebSocketTransport
from conductor.errors import (
    ConductorError,
    CoordinatorDisposedError,
    EngineDisposedError,
    NotEnabledError,
    TransportError,
)
from conductor.models import (
    AIResponse,
    AnalyzerConfig,
    AthenaState,
    ConductorConfig,
    ConnectionState,
    CoordinatorConfig,
    Decision,
    DecisionType,
    EngineConfig,
    LLMProviderConfig,
    OrchestrationProgress,
    OrchestrationRequest,
    PromptAnalysis,
    PromptCategory,
    PromptComplexity,
    Recommendation,
    Strategy,
)

# Logging
from conductor.logging_setup import setup_logging, get_logger

__all__ = [
    # Facade
    "Conductor",
    "build_services",
    "load_config",
    # Services
    "PromptAnalyzer",
    "DecisionEngine",
    "OrchestrationCoordinator",
    "DecisionLedger",
    "BroadcastChannel",
    "Subscription",
    "AsyncioScheduler",
    "VirtualScheduler",
    "LLMClassifier",
    "LLMProvider",
    "InMemoryPreferenceStore",
    "JsonPreferenceStore",
    "WebSocketTransport",
    # Errors
    "ConductorError",
    "CoordinatorDisposedError",
    "EngineDisposedError",
    "NotEnabledError",
    "TransportError",
    # Models
    "AIResponse",
    "AnalyzerConfig",
    "AthenaState",
    "ConductorConfig",
    "ConnectionState",
    "CoordinatorConfig",
    "Decision",
    "DecisionType",
    "EngineConfig",
    "LLMProviderConfig",
    "OrchestrationProgress",
    "OrchestrationRequest",
    "PromptAnalysis",
    "PromptCategory",
    "PromptComplexity",
    "Recommendation",
    "Strategy",
    # Logging
    "setup_logging",
    "get_logger",
]
