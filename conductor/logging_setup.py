"""Centralized nfo logging configuration for conductor.

Module code logs through stdlib loggers named ``conductor.<component>``
(analyzer, decision_engine, coordinator, transport, ...). This module bridges
them into nfo sinks and lets each component run at its own level, so the
coordinator's event routing can be traced without the analyzer's chatter:

    CONDUCTOR_LOG_LEVELS="coordinator=DEBUG,transport=DEBUG,analyzer=WARNING"

Usage:
    from conductor.logging_setup import setup_logging, get_logger

    setup_logging("INFO", component_levels={"coordinator": "DEBUG"})
    logger = get_logger("conductor")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from nfo.configure import configure
from nfo.logger import Logger
from nfo.sinks import MarkdownSink
from nfo.terminal import TerminalSink

_logger: Optional[Logger] = None

ROOT_LOGGER = "conductor"

# Third-party loggers that are chatty at INFO; the websocket client logs every frame at DEBUG
NOISY_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore", "websockets")


def parse_component_levels(raw: str | None) -> dict[str, str]:
    """Parse ``"coordinator=DEBUG, transport=warning"`` into ``{"coordinator": "DEBUG", ...}``.

    Entries without ``=`` or with an unknown level name are skipped.
    """
    levels: dict[str, str] = {}
    for item in (raw or "").split(","):
        component, sep, level = item.partition("=")
        component, level = component.strip(), level.strip().upper()
        if not sep or not component or not level:
            continue
        if not isinstance(logging.getLevelName(level), int):
            continue
        levels[component] = level
    return levels


def apply_component_levels(component_levels: dict[str, str]) -> None:
    """Set per-component levels on the ``conductor.<component>`` stdlib loggers."""
    for component, level in component_levels.items():
        name = component if component.startswith(f"{ROOT_LOGGER}.") else f"{ROOT_LOGGER}.{component}"
        logging.getLogger(name).setLevel(level.upper())


def setup_logging(
    level: str = "INFO",
    markdown_file: str | None = None,
    terminal_format: str = "markdown",
    component_levels: dict[str, str] | None = None,
) -> Logger:
    """Initialize nfo logging for conductor.

    The nfo pipeline is built once; later calls return the same logger but
    still apply ``component_levels``.

    Args:
        level: Root level for conductor, one of DEBUG, INFO, WARNING, ERROR.
        markdown_file: Optional markdown log file, e.g. a per-run orchestration transcript.
        terminal_format: nfo terminal sink format ("markdown", "color", "toon", "ascii").
        component_levels: Per-component overrides keyed by module name.
    """
    global _logger

    if _logger is None:
        sinks = [
            TerminalSink(
                format=terminal_format,
                stream=sys.stderr,
                show_args=True,
                show_return=False,
                show_duration=True,
                show_traceback=level.upper() == "DEBUG",
            ),
        ]
        if markdown_file:
            sinks.append(MarkdownSink(file_path=markdown_file))

        _logger = configure(
            name=ROOT_LOGGER,
            level=level.upper(),
            sinks=sinks,
            bridge_stdlib=True,
            propagate_stdlib=False,
            env_prefix="CONDUCTOR_NFO_",
            version=_get_version(),
            force=True,
        )

        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
        try:
            import litellm
            litellm.suppress_debug_info = True
        except ImportError:
            pass

    if component_levels:
        apply_component_levels(component_levels)
    return _logger


def get_logger(name: str = ROOT_LOGGER) -> Logger:
    """Get the nfo logger, configuring it from the CONDUCTOR_LOG_* variables on first use."""
    if _logger is None:
        setup_logging(
            level=os.getenv("CONDUCTOR_LOG_LEVEL", "INFO"),
            markdown_file=os.getenv("CONDUCTOR_LOG_FILE") or None,
            terminal_format=os.getenv("CONDUCTOR_NFO_FORMAT", "markdown"),
            component_levels=parse_component_levels(os.getenv("CONDUCTOR_LOG_LEVELS")),
        )
    return _logger  # type: ignore[return-value]


def _get_version() -> str:
    try:
        from conductor import __version__
        return __version__
    except Exception:
        return "unknown"
