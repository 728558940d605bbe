"""
Outcome aggregation for a single migration call.

Outcomes are appended from several phases, some of which run concurrently
(permit signing). The final order is fixed by section, not by arrival:

1. reconciliation outcomes, in request order
2. signing / relay / Permit2 outcomes, in relay response order
3. sequencer outcomes, in execution order
"""

from typing import Iterable, List

from ..schemas.bases import MigrationOutcome


class OutcomeAggregator:
    """Append-only outcome list with fixed section ordering."""

    def __init__(self):
        self._reconciliation: List[MigrationOutcome] = []
        self._relay: List[MigrationOutcome] = []
        self._execution: List[MigrationOutcome] = []

    def add_reconciliation(self, outcomes: Iterable[MigrationOutcome]) -> None:
        self._reconciliation.extend(outcomes)

    def add_relay(self, outcomes: Iterable[MigrationOutcome]) -> None:
        self._relay.extend(outcomes)

    def add_execution(self, outcomes: Iterable[MigrationOutcome]) -> None:
        self._execution.extend(outcomes)

    def outcomes(self) -> List[MigrationOutcome]:
        return [*self._reconciliation, *self._relay, *self._execution]

    def __len__(self) -> int:
        return len(self._reconciliation) + len(self._relay) + len(self._execution)
