# tracelab/cost.py
from __future__ import annotations

from typing import Dict, Optional, Tuple


class CostWindow:
    """Tracks the remaining budget and derives per-instruction deltas.

    Negative deltas (budget went up) are passed through untouched; they
    point at the metering engine, not at the tracer.
    """

    def __init__(self):
        self._budget: Optional[int] = None

    @property
    def budget(self) -> Optional[int]:
        return self._budget

    def reset(self) -> None:
        self._budget = None

    def observe(self, budget: int) -> Optional[int]:
        previous, self._budget = self._budget, int(budget)
        if previous is None:
            return None
        return previous - self._budget

    def flush(self, rest_budget: int) -> int:
        """Final delta at transaction end: stored budget minus what is left."""
        stored = self._budget if self._budget is not None else int(rest_budget)
        self._budget = int(rest_budget)
        return stored - self._budget


class OpcodeCostTable:
    """First-seen static cost per opcode.

    The first cost reported for an opcode sticks; later reports for the same
    opcode are ignored.
    """

    def __init__(self):
        self._costs: Dict[str, int] = {}

    def add(self, opcode: str, cost: int) -> None:
        if opcode in self._costs:
            return
        self._costs[opcode] = int(cost)

    def get(self, opcode: str) -> Tuple[int, bool]:
        if opcode in self._costs:
            return self._costs[opcode], True
        return 0, False

    def add_and_get(self, opcode: str, cost: int) -> Tuple[int, bool]:
        self.add(opcode, cost)
        return self.get(opcode)

    def __len__(self) -> int:
        return len(self._costs)

    def __contains__(self, opcode: object) -> bool:
        return opcode in self._costs
