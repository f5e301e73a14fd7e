"""Response-time analysis for tasks scheduled inside fixed-priority servers.

Servers share one unit-rate resource under preemptive fixed-priority
scheduling. Each server is a periodic resource ``(Θ, Π)``: it may consume at
most ``Θ`` units in every replenishment period ``[kΠ, (k+1)Π)``. Inside a
server, tasks are again scheduled by preemptive fixed priority.

The analysis works on cumulative curves and proceeds top-down:

    Server level
        Aggregator over the constrained demands of the servers, competing for
        the dedicated resource. The resource left to server ``s`` after the
        higher-priority servers (``available``) is cut to at most ``Θ`` units
        per period (``budget_supply``) and capped by the supply-bound function
        of the server (``supply``).

    Task level
        Aggregator over the request-bound curves of the server's tasks,
        competing for the server ``supply``.

    Response time
        BusyWindowSolver on the task's demand, the aggregated curve of the
        higher-priority tasks and the server supply, followed by the deadline
        check.

Whether higher-priority entries contribute their demand or their actual
execution is chosen by :class:`~fps_rta.aggregation.AggregationMode`.

Assumptions:
    - Single shared resource, one time unit per slot (integer time)
    - Fixed-priority preemptive scheduling at both levels
    - Periodic or sporadic tasks with offsets
    - No release jitter, no blocking
"""

import concurrent.futures
import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, List, Optional, Tuple, Union

from fps_rta.aggregation import AggregationMode, Aggregator
from fps_rta.curve import Curve
from fps_rta.demand import DemandBuilder
from fps_rta.horizon import DEFAULT_MAX_HORIZON, Horizon, compute_horizon
from fps_rta.models import System, Task
from fps_rta.solver import (
    Budget,
    BusyWindowSolver,
    Unschedulable,
    UnschedulableReason,
    Verdict,
    budget_supply,
)

logger = logging.getLogger(__name__)

ResponseTime = Union[int, Unschedulable]


@dataclass(frozen=True)
class ServerCurves:
    """Curves of one server, as seen by the resource and by its tasks.

    Attributes:
        demand: Aggregated request-bound curve of the hosted tasks.
        constrained_demand: ``demand`` limited to ``Θ`` per period.
        supply_bound: Minimum supply guaranteed by ``(Θ, Π)``.
        interference: Aggregated curve of the higher-priority servers.
        available: Resource left after the higher-priority servers.
        execution: Resource the server actually consumes.
        budget_supply: First ``Θ`` units of ``available`` in every period.
        supply: Supply delivered to the hosted tasks.
    """
    demand: Curve
    constrained_demand: Curve
    supply_bound: Curve
    interference: Curve
    available: Curve
    execution: Curve
    budget_supply: Curve
    supply: Curve

    @property
    def guaranteed(self) -> bool:
        """True if the higher-priority servers never cut into the supply-bound function."""
        return self.supply == self.supply_bound


@dataclass(frozen=True)
class TaskCurves:
    demand: Curve
    interference: Curve
    available: Curve
    execution: Curve
    supply: Curve


class SystemAnalysis:
    """One analysis run over a :class:`~fps_rta.models.System`.

    Holds every curve computed during the run; nothing is shared between runs.

    Args:
        system: The system to analyse. Validated on construction.
        mode: Aggregation policy, FIXED (actual execution) by default.
        horizon: Precomputed horizon, computed from ``system`` if omitted.
        max_iterations: Optional cap on fixed-point steps per task.
        max_horizon: Largest acceptable horizon.

    Raises:
        InvalidParameters: If the system is invalid.
        HorizonOverflow: If the hyperperiod exceeds ``max_horizon``.
    """

    def __init__(
        self,
        system: System,
        mode: AggregationMode = AggregationMode.FIXED,
        horizon: Optional[Horizon] = None,
        max_iterations: Optional[int] = None,
        max_horizon: int = DEFAULT_MAX_HORIZON,
    ):
        system.validate()
        self.system = system
        self.mode = AggregationMode(mode)
        self.horizon = horizon if horizon is not None else compute_horizon(system, maximum=max_horizon)
        self.max_iterations = max_iterations
        self.builder = DemandBuilder(self.horizon.limit)
        self._server_curves: Dict[int, ServerCurves] = {}
        self._task_levels: Dict[int, Aggregator] = {}
        self._verdicts: Dict[Tuple[int, int], Verdict] = {}
        self._server_schedulable: Dict[int, bool] = {}

    @cached_property
    def _server_level(self) -> Aggregator:
        servers = self.system.servers
        return Aggregator(
            [self.builder.constrained_demand(s) for s in servers],
            self.mode,
            supply=self.builder.resource(),
            budgets=[Budget(s.capacity, s.period) for s in servers],
        )

    def server_curves(self, server_index: int) -> ServerCurves:
        """Return the curves of the server at ``server_index`` (priority order)."""
        if server_index not in self._server_curves:
            server = self.system.servers[server_index]
            level = self._server_level
            available = level.available(server_index)
            supply_bound = self.builder.supply_bound(server)
            limited = budget_supply(available, Budget(server.capacity, server.period))
            curves = ServerCurves(
                demand=self.builder.server_demand(server),
                constrained_demand=level.demands[server_index],
                supply_bound=supply_bound,
                interference=level.above(server_index),
                available=available,
                execution=level.execution(server_index),
                budget_supply=limited,
                supply=supply_bound.min(limited),
            )
            if not curves.guaranteed:
                logger.info("Server %s receives less than its supply-bound function", server.name)
            self._server_curves[server_index] = curves
        return self._server_curves[server_index]

    def _task_level(self, server_index: int) -> Aggregator:
        if server_index not in self._task_levels:
            server = self.system.servers[server_index]
            self._task_levels[server_index] = Aggregator(
                [self.builder.request_bound(t) for t in server.tasks],
                self.mode,
                supply=self.server_curves(server_index).supply,
            )
        return self._task_levels[server_index]

    def task_curves(self, server_index: int, task_index: int) -> TaskCurves:
        """Return the curves of a task, addressed by server and task index."""
        level = self._task_level(server_index)
        return TaskCurves(
            demand=level.demands[task_index],
            interference=level.above(task_index),
            available=level.available(task_index),
            execution=level.execution(task_index),
            supply=level.supply,
        )

    def solve(self, server_index: int, task_index: int) -> Verdict:
        """Run the busy-window solver for one task, without the deadline check."""
        key = (server_index, task_index)
        if key not in self._verdicts:
            level = self._task_level(server_index)
            solver = BusyWindowSolver(
                level.supply,
                level.above(task_index),
                self.horizon,
                max_iterations=self.max_iterations,
            )
            self._verdicts[key] = solver.solve(level.demands[task_index])
        return self._verdicts[key]

    def response_time(self, server_index: int, task_index: int) -> ResponseTime:
        """Return the worst-case response time of a task, or why it is unschedulable.

        The supply of a server follows what the servers above it actually
        execute, which is only bounded while each of them meets its deadlines.
        Below an unschedulable server every task is therefore reported
        unschedulable as well.
        """
        for above in range(server_index):
            if not self.server_schedulable(above):
                return Unschedulable(UnschedulableReason.HIGHER_PRIORITY_UNSCHEDULABLE)
        task: Task = self.system.servers[server_index].tasks[task_index]
        verdict = self.solve(server_index, task_index)
        if isinstance(verdict, Unschedulable):
            return verdict
        if verdict.response_time > task.D:
            return Unschedulable(
                UnschedulableReason.DEADLINE_MISS,
                bound=task.D,
                response_time=verdict.response_time,
            )
        return verdict.response_time

    def server_schedulable(self, server_index: int) -> bool:
        """True if every task of the server meets its deadline."""
        if server_index not in self._server_schedulable:
            server = self.system.servers[server_index]
            self._server_schedulable[server_index] = not any(
                isinstance(self.response_time(server_index, i), Unschedulable)
                for i in range(len(server.tasks))
            )
        return self._server_schedulable[server_index]

    def _materialise(self) -> List[Tuple[int, int]]:
        jobs = []
        for s, server in enumerate(self.system.servers):
            self.server_curves(s)
            for i in range(len(server.tasks)):
                self.task_curves(s, i)
                jobs.append((s, i))
        return jobs

    def run(self, workers: Optional[int] = None) -> Tuple[bool, Dict[str, Dict[str, ResponseTime]]]:
        """Analyse every task of the system.

        All curves are built first, highest priority first. The per-task
        solver runs only read them and may be spread over ``workers`` threads.

        Returns:
            A tuple of (schedulable, response_times) where response_times maps
            server names to dicts mapping task names to response times or
            :class:`~fps_rta.solver.Unschedulable` values.
        """
        jobs = self._materialise()
        if workers is not None and workers > 1:
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {pool.submit(self.solve, s, i): (s, i) for s, i in jobs}
                for future in concurrent.futures.as_completed(futures):
                    s, i = futures[future]
                    logger.debug("Solved server %d task %d: %s", s, i, future.result())
        results = {(s, i): self.response_time(s, i) for s, i in jobs}

        response_times: Dict[str, Dict[str, ResponseTime]] = {}
        all_schedulable = True
        for s, server in enumerate(self.system.servers):
            per_task = response_times.setdefault(server.name, {})
            for i, task in enumerate(server.tasks):
                per_task[task.name] = results[(s, i)]
                if isinstance(results[(s, i)], Unschedulable):
                    all_schedulable = False
                    logger.info("%s/%s: %s", server.name, task.name, results[(s, i)])

        logger.info(
            "Analysed %d tasks in %d servers (%s mode): %s",
            len(jobs), len(self.system.servers), self.mode.value,
            "schedulable" if all_schedulable else "not schedulable",
        )
        return all_schedulable, response_times

    def export_curves(self) -> Dict[str, dict]:
        """Return every server and task curve as ``(time, value)`` point lists."""
        until = self.horizon.limit
        exported: Dict[str, dict] = {}
        for s, server in enumerate(self.system.servers):
            curves = self.server_curves(s)
            entry = {
                name: getattr(curves, name).points(until)
                for name in ServerCurves.__dataclass_fields__
            }
            entry["tasks"] = {
                task.name: {
                    name: getattr(self.task_curves(s, i), name).points(until)
                    for name in TaskCurves.__dataclass_fields__
                }
                for i, task in enumerate(server.tasks)
            }
            exported[server.name] = entry
        return exported


def compute_response_time(
    system: System,
    server_index: int,
    task_index: int,
    mode: AggregationMode = AggregationMode.FIXED,
    max_iterations: Optional[int] = None,
) -> ResponseTime:
    """Compute the worst-case response time of one task in ``system``.

    Args:
        system: The system the task belongs to.
        server_index: Index of the server in priority order.
        task_index: Index of the task within the server, in priority order.
        mode: Aggregation policy.
        max_iterations: Optional cap on fixed-point steps.

    Returns:
        The worst-case response time if it exists and is <= D, an
        :class:`~fps_rta.solver.Unschedulable` value otherwise.
    """
    analysis = SystemAnalysis(system, mode=mode, max_iterations=max_iterations)
    return analysis.response_time(server_index, task_index)


def is_schedulable(
    system: System,
    server_index: int,
    task_index: int,
    mode: AggregationMode = AggregationMode.FIXED,
) -> bool:
    """Check if a task meets its deadline in ``system``."""
    return not isinstance(compute_response_time(system, server_index, task_index, mode), Unschedulable)


def analyze_system(
    system: System,
    mode: AggregationMode = AggregationMode.FIXED,
    workers: Optional[int] = None,
    max_iterations: Optional[int] = None,
    max_horizon: int = DEFAULT_MAX_HORIZON,
) -> Tuple[bool, Dict[str, Dict[str, ResponseTime]]]:
    """Analyze the schedulability of every task in ``system``.

    A system is schedulable if all tasks meet their deadlines.
    """
    analysis = SystemAnalysis(
        system, mode=mode, max_iterations=max_iterations, max_horizon=max_horizon
    )
    return analysis.run(workers=workers)


def analyze_taskset(
    tasks, mode: AggregationMode = AggregationMode.FIXED
) -> Tuple[bool, Dict[str, ResponseTime]]:
    """Analyze tasks running alone on a dedicated processor.

    Args:
        tasks: The tasks to analyse, with all or none of their priorities set.
        mode: Aggregation policy.

    Returns:
        A tuple of (schedulable, response_times) where response_times maps
        task names to their response times or Unschedulable values.
    """
    system = System.single(tasks)
    schedulable, response_times = analyze_system(system, mode=mode)
    return schedulable, response_times[system.servers[0].name]
