"""Decision ledger — bounded, append-only history of decision engine choices.

Oldest entries are evicted first once the cap is reached.

Usage:
    ledger = DecisionLedger(max_entries=200)
    ledger.append(decision)
    ledger.mark_applied(decision.id)
    ledger.summary()
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Iterator
from typing import Any

from conductor.models import Decision, DecisionType

logger = logging.getLogger("conductor.ledger")


class DecisionLedger:
    def __init__(self, max_entries: int = 200):
        if max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries
        self._entries: deque[Decision] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Decision]:
        return iter(list(self._entries))

    def append(self, decision: Decision) -> None:
        if len(self._entries) == self.max_entries:
            evicted = self._entries[0]
            logger.debug(f"Ledger full, evicting {evicted.id}")
        self._entries.append(decision)

    def extend(self, decisions: Iterable[Decision]) -> None:
        for decision in decisions:
            self.append(decision)

    def get(self, decision_id: str) -> Decision | None:
        for decision in self._entries:
            if decision.id == decision_id:
                return decision
        return None

    def mark_applied(self, decision_id: str) -> bool:
        """Flip the applied flag of one entry. False if absent or already applied."""
        decision = self.get(decision_id)
        if decision is None:
            return False
        return decision.mark_applied()

    def recent(self, limit: int | None = None) -> list[Decision]:
        """Most recent first."""
        entries = list(reversed(self._entries))
        return entries[:limit] if limit is not None else entries

    def clear(self) -> None:
        self._entries.clear()

    def summary(self) -> dict[str, Any]:
        """Counts and average confidence per decision type."""
        by_type: dict[str, dict[str, Any]] = {}
        for decision_type in DecisionType:
            entries = [d for d in self._entries if d.type == decision_type]
            by_type[decision_type.value] = {
                "count": len(entries),
                "average_confidence": (
                    sum(d.confidence_score for d in entries) / len(entries) if entries else 0.0
                ),
            }
        return {
            "total_decisions": len(self._entries),
            "applied_decisions": sum(1 for d in self._entries if d.was_applied),
            "by_type": by_type,
        }
