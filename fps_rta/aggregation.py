"""Accumulation of curves across a priority-ordered collection.

The same algorithm serves both levels of the hierarchy: servers competing for
the shared resource, and tasks competing for the supply of their server. The
:class:`AggregationMode` decides what an entry contributes to the entries
below it:

- ``ORIGINAL``: its constrained demand, regardless of what the supply could
  actually deliver;
- ``FIXED``: the execution it actually receives.

Entries are indexed by priority, 0 being the highest.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from fps_rta.curve import Curve, StepCurve
from fps_rta.solver import Budget, serve

logger = logging.getLogger(__name__)


class AggregationMode(Enum):
    ORIGINAL = "original"
    FIXED = "fixed"


def aggregate(curves: Iterable[Curve]) -> StepCurve:
    """Sum ``curves`` pointwise. The result does not depend on their order."""
    total = StepCurve()
    for curve in curves:
        total = total + curve
    return total


class Aggregator:
    """Aggregated curves of a priority-ordered list of entries.

    Results are computed on first use, highest priority first, and kept for
    the lifetime of the aggregator.

    Args:
        demands: Request curve of every entry, highest priority first.
        mode: What higher-priority entries contribute (see module docstring).
        supply: The supply all entries compete for. None means a resource that
            serves every request immediately.
        budgets: Optional per-entry consumption limits, parallel to ``demands``.
    """

    def __init__(
        self,
        demands: Sequence[Curve],
        mode: AggregationMode,
        supply: Optional[Curve] = None,
        budgets: Optional[Sequence[Optional[Budget]]] = None,
    ):
        self.demands = list(demands)
        self.mode = AggregationMode(mode)
        self.supply = supply
        self.budgets = list(budgets) if budgets is not None else [None] * len(self.demands)
        if len(self.budgets) != len(self.demands):
            raise ValueError(
                f"got {len(self.budgets)} budgets for {len(self.demands)} entries"
            )
        self._above: List[Curve] = [StepCurve()]
        self._available: Dict[int, Optional[Curve]] = {}
        self._execution: Dict[int, Curve] = {}

    def __len__(self) -> int:
        return len(self.demands)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.demands):
            raise IndexError(f"entry {index} out of range for {len(self.demands)} entries")

    def contribution(self, index: int) -> Curve:
        """Return what entry ``index`` adds to the aggregate of the entries below it."""
        if self.mode is AggregationMode.ORIGINAL:
            self._check_index(index)
            return self.demands[index]
        return self.execution(index)

    def above(self, index: int) -> Curve:
        """Return the aggregated curve of the entries strictly above ``index``."""
        self._check_index(index)
        while len(self._above) <= index:
            j = len(self._above) - 1
            self._above.append(self._above[j] + self.contribution(j))
        return self._above[index]

    def at_or_above(self, index: int) -> Curve:
        """Return the aggregated curve of the entries up to and including ``index``."""
        return self.above(index) + self.contribution(index)

    def available(self, index: int) -> Optional[Curve]:
        """Return the supply left for entry ``index`` (None if unbounded)."""
        if index not in self._available:
            self._available[index] = serve(self.above(index), self.supply).remaining
        return self._available[index]

    def execution(self, index: int) -> Curve:
        """Return the execution entry ``index`` actually receives."""
        if index not in self._execution:
            self._check_index(index)
            delivery = serve(self.demands[index], self.available(index), self.budgets[index])
            self._execution[index] = delivery.executed
            logger.debug(
                "Entry %d (%s): demand %d, executed %d",
                index, self.mode.value, self.demands[index].final_value, delivery.executed.final_value,
            )
        return self._execution[index]
