"""Busy-window fixed-point solver and work-conserving service of curves.

Given the own demand ``C(t)`` of a task, the aggregated curve ``H(t)`` of
everything above it and the supply ``S(t)`` it runs on, the worst-case response
time is found by walking the busy windows of the task's priority level:

1. From an idle instant ``b`` the window end is the least ``L > b`` with::

       H(L) - H(b) + C(L) - C(b) <= S(L) - S(b)

   found by iterating ``t <- S⁻¹(S(b) + H(t) - H(b) + C(t) - C(b))`` from
   ``b + 1``. The iteration is monotone and bounded by the horizon limit.

2. A job released at ``a`` in ``[b, L)`` completes at the first ``t > a`` where
   the higher-priority work of the window plus the own work up to and
   including the job has been supplied.

Every release before the analysis end is enumerated this way. Failure to
converge is reported as an :class:`Unschedulable` value, never raised.
"""

import logging
from bisect import bisect_left
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from fps_rta.curve import Curve, StepCurve
from fps_rta.errors import InternalInvariantViolation
from fps_rta.horizon import Horizon

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Budget:
    """At most ``capacity`` units may be consumed per replenishment ``period``.

    Replenishment periods are aligned to zero: ``[k * period, (k + 1) * period)``.
    """
    capacity: int
    period: int


@dataclass(frozen=True)
class Delivery:
    """Result of :func:`serve`.

    Attributes:
        executed: What was actually served of the demand.
        remaining: Supply left unused, or None if the supply was unbounded.
    """
    executed: Curve
    remaining: Optional[Curve]


def serve(demand: Curve, supply: Optional[Curve], budget: Optional[Budget] = None) -> Delivery:
    """Serve ``demand`` from ``supply`` as early as possible.

    Pending demand is executed in every supplied slot, first come first
    served. With a ``budget`` no more than ``budget.capacity`` units are
    executed per replenishment period; anything beyond spills over into the
    following periods.

    Args:
        demand: Cumulative request curve.
        supply: Cumulative supply curve, or None for a resource that serves
            every request immediately.
        budget: Optional per-period consumption limit. Only applied to a
            bounded supply.

    Returns:
        The executed part of the demand and the supply left over.
    """
    if supply is None:
        return Delivery(executed=demand, remaining=None)

    demand_jumps = dict(demand.jumps())
    supply_jumps = dict(supply.jumps())
    executed = []
    remaining = []
    backlog = 0
    group = None
    spent = 0
    for time in sorted(demand_jumps.keys() | supply_jumps.keys()):
        backlog += demand_jumps.get(time, 0)
        offered = supply_jumps.get(time, 0)
        grant = min(backlog, offered)
        if budget is not None:
            if time // budget.period != group:
                group = time // budget.period
                spent = 0
            grant = min(grant, budget.capacity - spent)
            spent += grant
        backlog -= grant
        executed.append((time, grant))
        remaining.append((time, offered - grant))
    return Delivery(
        executed=StepCurve.from_jumps(executed),
        remaining=StepCurve.from_jumps(remaining),
    )


def budget_supply(available: Curve, budget: Budget) -> Curve:
    """Return the first ``budget.capacity`` units of ``available`` in every period."""
    greedy = StepCurve.from_jumps([(0, available.final_value)])
    return serve(greedy, available, budget).executed


class UnschedulableReason(Enum):
    HORIZON_EXCEEDED = "horizon exceeded"
    ITERATION_LIMIT = "iteration limit exceeded"
    DEADLINE_MISS = "deadline miss"
    HIGHER_PRIORITY_UNSCHEDULABLE = "higher-priority server unschedulable"


@dataclass(frozen=True)
class Converged:
    """The fixed point was reached for every job within the horizon."""
    response_time: int
    iterations: int = 0
    busy_windows: int = 0


@dataclass(frozen=True)
class Unschedulable:
    """No (acceptable) response time exists.

    Attributes:
        reason: Why the analysis gave up.
        bound: The bound that was exceeded (search limit, iteration limit or
            deadline), if any.
        response_time: The response time found, for a deadline miss.
    """
    reason: UnschedulableReason
    bound: Optional[int] = None
    response_time: Optional[int] = None

    def __str__(self) -> str:
        text = f"unschedulable ({self.reason.value}"
        if self.response_time is not None:
            text += f", R={self.response_time}"
        if self.bound is not None:
            text += f", bound={self.bound}"
        return text + ")"


Verdict = Union[Converged, Unschedulable]


class BusyWindowSolver:
    """Worst-case response time of one priority level.

    Args:
        supply: Supply curve the level runs on.
        interference: Aggregated curve of all higher-priority entries, None
            when there is none.
        horizon: Bounds of the analysis run. Releases before
            ``horizon.analysis_end`` are analysed; no window may extend past
            ``horizon.limit``.
        max_iterations: Optional cap on the total number of fixed-point steps.
    """

    def __init__(
        self,
        supply: Curve,
        interference: Optional[Curve],
        horizon: Horizon,
        max_iterations: Optional[int] = None,
    ):
        self.supply = supply
        self.interference = interference if interference is not None else StepCurve()
        self.horizon = horizon
        self.max_iterations = max_iterations

    def solve(self, demand: Curve) -> Verdict:
        """Return the worst-case response time of the jobs in ``demand``."""
        end = self.horizon.analysis_end
        limit = self.horizon.limit
        supply = self.supply
        interference = self.interference
        level = interference + demand

        worst = 0
        iterations = 0
        windows = 0
        start = level.next_breakpoint(0)
        while start is not None and start < end:
            # fixed point of the level busy window starting at the idle instant `start`
            level_base = level.value_at(start)
            supply_base = supply.value_at(start)
            t = start + 1
            while True:
                iterations += 1
                if self.max_iterations is not None and iterations > self.max_iterations:
                    logger.debug("Iteration limit %d exceeded", self.max_iterations)
                    return Unschedulable(UnschedulableReason.ITERATION_LIMIT, bound=self.max_iterations)
                target = supply_base + level.value_at(t) - level_base
                if supply.value_at(t) >= target:
                    break
                t = supply.time_to_reach(target, bound=limit)
                if t is None:
                    logger.debug("Busy window from %d does not close before %d", start, limit)
                    return Unschedulable(UnschedulableReason.HORIZON_EXCEEDED, bound=limit)
            window_end = t
            windows += 1
            logger.debug("Busy window [%d, %d)", start, window_end)

            own_base = demand.value_at(start)
            hp_base = interference.value_at(start)
            releases = demand.breakpoints()[0]
            for release in releases[bisect_left(releases, start):]:
                if release >= window_end or release >= end:
                    break
                owed = demand.value_after(release) - own_base
                completion = interference.first_meeting_point(
                    supply,
                    start=release + 1,
                    bound=window_end,
                    offset=owed - hp_base + supply_base,
                )
                if completion is None:
                    raise InternalInvariantViolation(
                        f"job released at {release} does not complete within its busy window "
                        f"[{start}, {window_end})"
                    )
                worst = max(worst, completion - release)

            start = level.next_breakpoint(window_end)

        if worst > end:
            return Unschedulable(UnschedulableReason.HORIZON_EXCEEDED, bound=end, response_time=worst)
        logger.debug("Converged: R=%d after %d iterations in %d busy windows", worst, iterations, windows)
        return Converged(worst, iterations=iterations, busy_windows=windows)
