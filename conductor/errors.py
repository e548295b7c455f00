"""Exceptions raised by conductor components.

Only usage errors reach callers; transport and classifier failures are
recovered inside the components.
"""

from __future__ import annotations


class ConductorError(Exception):
    """Base class for conductor errors."""


class NotEnabledError(ConductorError):
    """Raised when recommendations are requested while the decision engine is disabled."""

    def __init__(self, component: str = "Athena decision engine"):
        self.component = component
        super().__init__(f"{component} is not enabled")


class DisposedError(ConductorError):
    """Raised when a disposed component is used again."""

    def __init__(self, component: str):
        self.component = component
        super().__init__(f"{component} has been disposed")


class EngineDisposedError(DisposedError):
    def __init__(self) -> None:
        super().__init__("Athena decision engine")


class CoordinatorDisposedError(DisposedError):
    def __init__(self) -> None:
        super().__init__("Orchestration coordinator")


class TransportError(ConductorError):
    """Connection or send failure on the orchestration transport."""
