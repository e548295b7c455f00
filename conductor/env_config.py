"""Environment configuration — .env loading and CONDUCTOR_* overrides.

Reads conductor-specific vars (CONDUCTOR_HOST, CONDUCTOR_PORTS, ...) plus the
standard LiteLLM provider keys used by the secondary classifier.

Usage:
    from conductor.env_config import get_env_config, check_providers

    env = get_env_config()
    print(env.ports)              # [3001, 3002, 3003, 3004, 3005]
    config = env.apply(ConductorConfig())

    status = check_providers()
    # {"anthropic": {"status": "configured", ...}, "openai": {"status": "no_key"}, ...}
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from conductor.logging_setup import parse_component_levels
from conductor.models import DEFAULT_MODELS, ConductorConfig, LLMProviderConfig

logger = logging.getLogger("conductor.env_config")

# LiteLLM-compatible provider env vars
PROVIDER_KEY_MAP: dict[str, dict[str, str]] = {
    "anthropic": {"key_var": "ANTHROPIC_API_KEY", "base_var": "ANTHROPIC_BASE_URL", "default_base": "https://api.anthropic.com/v1"},
    "openai": {"key_var": "OPENAI_API_KEY", "base_var": "OPENAI_BASE_URL", "default_base": "https://api.openai.com/v1"},
    "deepseek": {"key_var": "DEEPSEEK_API_KEY", "base_var": "DEEPSEEK_API_BASE", "default_base": "https://api.deepseek.com"},
    "gemini": {"key_var": "GEMINI_API_KEY", "base_var": "GEMINI_API_BASE", "default_base": "https://generativelanguage.googleapis.com"},
    "mistral": {"key_var": "MISTRAL_API_KEY", "base_var": "MISTRAL_BASE_URL", "default_base": "https://api.mistral.ai/v1"},
    "ollama": {"key_var": "", "base_var": "OLLAMA_API_BASE", "default_base": "http://localhost:11434"},
}

DEFAULT_PORTS = [3001, 3002, 3003, 3004, 3005]


@dataclass
class EnvConfig:
    """Resolved environment configuration."""
    # Backend discovery
    host: str = "localhost"
    ports: list[int] = field(default_factory=lambda: list(DEFAULT_PORTS))

    # Analysis
    classifier_model: str | None = None
    classifier_timeout: float = 2.0
    models: list[str] = field(default_factory=lambda: list(DEFAULT_MODELS))

    # Athena
    ledger_size: int = 200
    preferences_path: str | None = None

    # Logging
    log_level: str = "info"
    log_file: str | None = None
    log_levels: dict[str, str] = field(default_factory=dict)

    # Providers (resolved)
    providers: dict[str, dict[str, Any]] = field(default_factory=dict)

    def apply(self, config: ConductorConfig) -> ConductorConfig:
        """Return a copy of ``config`` with the environment overrides applied."""
        analyzer = config.analyzer.model_copy(update={
            "models": list(self.models),
            "classifier_timeout": self.classifier_timeout,
            "classifier": (
                LLMProviderConfig(model=self.classifier_model)
                if self.classifier_model else config.analyzer.classifier
            ),
        })
        engine = config.engine.model_copy(update={"ledger_size": self.ledger_size})
        coordinator = config.coordinator.model_copy(update={"host": self.host, "ports": list(self.ports)})
        return config.model_copy(update={
            "analyzer": analyzer,
            "engine": engine,
            "coordinator": coordinator,
            "preferences_path": self.preferences_path or config.preferences_path,
        })


def load_dotenv_if_available(path: str | Path | None = None) -> None:
    """Load a .env file if one exists. Values already in the environment win."""
    candidates = [path] if path else [".env", Path.home() / ".conductor" / ".env"]

    for candidate in candidates:
        if candidate and Path(candidate).is_file():
            logger.debug(f"Loading .env from {candidate}")
            with open(candidate) as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, _, value = line.partition("=")
                    key = key.strip()
                    value = value.strip().strip("'\"")
                    if key and value and key not in os.environ:
                        os.environ[key] = value
            return


def _split_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_ports(raw: str) -> list[int]:
    ports: list[int] = []
    for item in _split_list(raw):
        try:
            ports.append(int(item))
        except ValueError:
            logger.warning(f"Ignoring invalid port in CONDUCTOR_PORTS: {item!r}")
    return ports or list(DEFAULT_PORTS)


def get_env_config(dotenv_path: str | Path | None = None) -> EnvConfig:
    """Read all config from environment variables.

    Priority: CLI args > env vars > .env file > defaults
    """
    load_dotenv_if_available(dotenv_path)

    providers: dict[str, dict[str, Any]] = {}
    for name, info in PROVIDER_KEY_MAP.items():
        key = os.getenv(info["key_var"], "") if info["key_var"] else ""
        base = os.getenv(info["base_var"], info["default_base"])
        providers[name] = {
            "has_key": bool(key),
            "key_var": info["key_var"],
            "base_url": base,
        }

    models = _split_list(os.getenv("CONDUCTOR_MODELS", ""))

    return EnvConfig(
        host=os.getenv("CONDUCTOR_HOST", "localhost"),
        ports=_parse_ports(os.getenv("CONDUCTOR_PORTS", "")),
        classifier_model=os.getenv("CONDUCTOR_CLASSIFIER_MODEL", None) or None,
        classifier_timeout=float(os.getenv("CONDUCTOR_CLASSIFIER_TIMEOUT", "2.0")),
        models=models or list(DEFAULT_MODELS),
        ledger_size=int(os.getenv("CONDUCTOR_LEDGER_SIZE", "200")),
        preferences_path=os.getenv("CONDUCTOR_PREFERENCES_PATH", None) or None,
        log_level=os.getenv("CONDUCTOR_LOG_LEVEL", "info"),
        log_file=os.getenv("CONDUCTOR_LOG_FILE", None) or None,
        log_levels=parse_component_levels(os.getenv("CONDUCTOR_LOG_LEVELS")),
        providers=providers,
    )


def check_providers(env: EnvConfig | None = None) -> dict[str, dict[str, Any]]:
    """Check which classifier providers have credentials configured.

    Returns dict of provider_name → {status, key_var, base_url, detail}.
    """
    cfg = env or get_env_config()
    results: dict[str, dict[str, Any]] = {}

    for name, info in cfg.providers.items():
        if not info["key_var"]:
            base = info["base_url"]
            results[name] = {
                "status": "configured",
                "base_url": base,
                "detail": f"Base URL: {base} (no key required)",
            }
        elif info["has_key"]:
            results[name] = {
                "status": "configured",
                "key_var": info["key_var"],
                "base_url": info["base_url"],
                "detail": f"{info['key_var']} set",
            }
        else:
            results[name] = {
                "status": "no_key",
                "key_var": info["key_var"],
                "detail": f"{info['key_var']} not set (skip)",
            }

    return results


async def check_providers_live(env: EnvConfig | None = None) -> dict[str, dict[str, Any]]:
    """Like check_providers, plus a live reachability probe of the local Ollama server."""
    import httpx

    cfg = env or get_env_config()
    results = check_providers(cfg)

    ollama_base = cfg.providers.get("ollama", {}).get("base_url", "http://localhost:11434")
    async with httpx.AsyncClient(timeout=5.0) as client:
        try:
            resp = await client.get(f"{ollama_base}/api/tags")
            if resp.status_code == 200:
                models = resp.json().get("models", [])
                results["ollama"]["status"] = "ok"
                results["ollama"]["models"] = [m.get("name", "") for m in models]
                results["ollama"]["detail"] = f"{len(models)} models available"
            else:
                results["ollama"]["status"] = "error"
                results["ollama"]["detail"] = f"HTTP {resp.status_code}"
        except Exception as e:
            results["ollama"]["status"] = "unreachable"
            results["ollama"]["detail"] = str(e)

    return results
