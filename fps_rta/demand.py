"""Request-bound and supply-bound curves of tasks and servers."""

import logging
from typing import Dict

from fps_rta.aggregation import aggregate
from fps_rta.curve import Curve, PeriodicCurve
from fps_rta.models import Server, Task
from fps_rta.solver import Budget, serve

logger = logging.getLogger(__name__)


def request_bound_curve(task: Task, end: int) -> PeriodicCurve:
    """Return the demand of ``task``: a jump of ``C`` at every arrival before ``end``."""
    return PeriodicCurve(offset=task.offset, period=task.T, pattern=((0, task.C),), end=end)


def supply_bound_curve(server: Server, end: int) -> PeriodicCurve:
    """Return the minimum supply guaranteed to ``server`` before ``end``.

    The budget is replenished at every multiple of the period and, in the
    worst case, delivered in the last ``capacity`` slots of each period::

        sbf(t) = Θ * floor(t / Π) + max(0, t mod Π - (Π - Θ))
    """
    gap = server.period - server.capacity
    pattern = tuple((gap + i, 1) for i in range(server.capacity))
    return PeriodicCurve(offset=0, period=server.period, pattern=pattern, end=end)


def resource_curve(end: int) -> PeriodicCurve:
    """Return the dedicated unit-rate resource: one slot per time unit."""
    return PeriodicCurve(offset=0, period=1, pattern=((0, 1),), end=end)


class DemandBuilder:
    """Builds and caches the curves of one analysis run.

    Args:
        end: Exclusive bound on the jump times of every curve built.
    """

    def __init__(self, end: int):
        self.end = end
        self._request: Dict[Task, Curve] = {}
        self._supply: Dict[Server, Curve] = {}
        self._constrained: Dict[Server, Curve] = {}
        self._resource = None

    def request_bound(self, task: Task) -> Curve:
        if task not in self._request:
            self._request[task] = request_bound_curve(task, self.end)
        return self._request[task]

    def supply_bound(self, server: Server) -> Curve:
        if server not in self._supply:
            self._supply[server] = supply_bound_curve(server, self.end)
        return self._supply[server]

    def constrained_demand(self, server: Server) -> Curve:
        """Return the demand ``server`` can place on the shared resource.

        The server demand is served from the dedicated resource with at most
        ``capacity`` units per replenishment period; the excess spills over into
        later periods.
        """
        if server not in self._constrained:
            logger.debug("Building constrained demand of %s up to %d", server.name, self.end)
            budget = Budget(server.capacity, server.period)
            delivery = serve(self.server_demand(server), self.resource(), budget)
            self._constrained[server] = delivery.executed
        return self._constrained[server]

    def server_demand(self, server: Server) -> Curve:
        """Return the aggregated request-bound curve of every task in ``server``."""
        return aggregate(self.request_bound(task) for task in server.tasks)

    def resource(self) -> Curve:
        if self._resource is None:
            self._resource = resource_curve(self.end)
        return self._resource
