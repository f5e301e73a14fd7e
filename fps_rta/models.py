"""Data models for tasks, servers and server systems."""

import numbers
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

from fps_rta.errors import InvalidParameters

_Entity = TypeVar("_Entity")


def _require_int(owner: str, field_name: str, value, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidParameters(
            f"{owner}: {field_name} must be an integer, got {value!r}"
        )
    if value < minimum:
        qualifier = "positive" if minimum > 0 else "non-negative"
        raise InvalidParameters(f"{owner}: {field_name} must be {qualifier}, got {value}")


def _check_unique(scope: str, entities: Sequence[_Entity]) -> None:
    priorities = [e.priority for e in entities]
    if len(set(priorities)) != len(priorities):
        raise InvalidParameters(f"{scope}: duplicate priorities {priorities}")
    names = [e.name for e in entities]
    if len(set(names)) != len(names):
        raise InvalidParameters(f"{scope}: duplicate names {names}")


def _assign_priorities(
    scope: str, entities: Sequence[_Entity], period, prefix: str
) -> Tuple[_Entity, ...]:
    """Return the entities sorted by priority, assigning rate-monotonic ones if unset.

    Shorter period means higher priority; ties keep insertion order. Unnamed
    entities get ``prefix`` followed by their 1-based rank.
    """
    if not entities:
        return ()
    if all(e.priority is not None for e in entities):
        for e in entities:
            _require_int(scope, f"priority of {e.name or e}", e.priority, 0)
        ordered = [
            e if e.name else replace(e, name=f"{prefix}{i + 1}")
            for i, e in enumerate(sorted(entities, key=lambda e: e.priority))
        ]
    elif all(e.priority is None for e in entities):
        ordered = [
            replace(e, name=e.name if e.name else f"{prefix}{i + 1}", priority=i)
            for i, e in enumerate(sorted(entities, key=period))
        ]
    else:
        raise InvalidParameters(
            f"{scope}: either all entries must have priorities set, or none should."
        )
    _check_unique(scope, ordered)
    return tuple(ordered)


@dataclass(frozen=True)
class Task:
    """Represents a periodic or sporadic task.

    Attributes:
        C: Worst-case execution time (WCET).
        T: Period (or minimum inter-arrival time).
        D: Relative deadline (defaults to T if not specified).
        offset: Release time of the first job.
        name: Optional task identifier.
        priority: Task priority within its server (lower value = higher priority).
                  If not set, will be assigned by Server based on Rate Monotonic.
    """
    C: int
    T: int
    D: Optional[int] = None
    offset: int = 0
    name: str = ""
    priority: Optional[int] = None

    def __post_init__(self) -> None:
        if self.D is None:
            object.__setattr__(self, "D", self.T)
        self.validate()

    def validate(self) -> None:
        """Check the task parameters.

        ``C > D`` is accepted: such a task is analysed and reported unschedulable.

        Raises:
            InvalidParameters: If a parameter is not an integer or out of range.
        """
        owner = f"Task {self.name}".rstrip()
        _require_int(owner, "C", self.C, 1)
        _require_int(owner, "T", self.T, 1)
        _require_int(owner, "D", self.D, 0)
        _require_int(owner, "offset", self.offset, 0)

    def arrival(self, job: int) -> int:
        """Return the release time of the ``job``-th job (0-based)."""
        return self.offset + job * self.T

    @property
    def utilization(self) -> float:
        """Return the utilization of this task (C/T)."""
        return self.C / self.T

    def __str__(self) -> str:
        name_str = f"{self.name}: " if self.name else ""
        return (
            f"Task({name_str}C={self.C}, T={self.T}, D={self.D}, "
            f"O={self.offset}, prio={self.priority})"
        )


@dataclass(frozen=True)
class Server:
    """A periodic resource server hosting a set of tasks.

    In every replenishment period of length ``period`` the server is entitled
    to ``capacity`` units of the shared resource.

    Attributes:
        capacity: Budget Θ granted per period.
        period: Replenishment period Π.
        tasks: Hosted tasks, stored sorted by priority (highest first).
        name: Optional server identifier.
        priority: Server priority within the system (lower value = higher priority).
    """
    capacity: int
    period: int
    tasks: Tuple[Task, ...] = ()
    name: str = ""
    priority: Optional[int] = None

    def __post_init__(self) -> None:
        owner = self._check_budget()
        tasks = _assign_priorities(owner, list(self.tasks), lambda t: t.T, "τ")
        object.__setattr__(self, "tasks", tasks)

    def validate(self) -> None:
        """Re-check the server and every hosted task."""
        owner = self._check_budget()
        for task in self.tasks:
            task.validate()
            _require_int(owner, f"priority of {task.name}", task.priority, 0)
        _check_unique(owner, self.tasks)

    def _check_budget(self) -> str:
        owner = f"Server {self.name}".rstrip()
        _require_int(owner, "capacity", self.capacity, 1)
        _require_int(owner, "period", self.period, 1)
        if self.capacity > self.period:
            raise InvalidParameters(
                f"{owner}: capacity ({self.capacity}) cannot exceed period ({self.period})"
            )
        return owner

    def get_sorted_tasks(self) -> List[Task]:
        """Return tasks sorted by priority (highest priority first)."""
        return list(self.tasks)

    def get_higher_priority_tasks(self, task: Task) -> List[Task]:
        """Return all tasks with higher priority than the given task."""
        if task.priority is None:
            raise InvalidParameters(f"Task {task.name} has no priority assigned")
        return [t for t in self.tasks if t.priority < task.priority]

    @property
    def bandwidth(self) -> float:
        """Return the share of the resource guaranteed to this server (Θ/Π)."""
        return self.capacity / self.period

    @property
    def task_utilization(self) -> float:
        """Return the total utilization of the hosted tasks."""
        return sum(t.utilization for t in self.tasks)

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self):
        return iter(self.tasks)

    def __getitem__(self, index: int) -> Task:
        return self.tasks[index]

    def __str__(self) -> str:
        name_str = f"{self.name}: " if self.name else ""
        return (
            f"Server({name_str}Θ={self.capacity}, Π={self.period}, "
            f"prio={self.priority}, tasks={len(self.tasks)})"
        )


@dataclass(frozen=True)
class System:
    """The servers sharing one unit-rate resource.

    Servers are kept sorted by priority; if none carries a priority they are
    ordered rate-monotonically by replenishment period.
    """
    servers: Tuple[Server, ...] = ()

    def __post_init__(self) -> None:
        servers = _assign_priorities("System", list(self.servers), lambda s: s.period, "S")
        object.__setattr__(self, "servers", servers)

    @classmethod
    def single(cls, tasks: Iterable[Task], name: str = "S1") -> "System":
        """Wrap ``tasks`` in one full-bandwidth server, i.e. a dedicated processor."""
        return cls((Server(capacity=1, period=1, tasks=tuple(tasks), name=name),))

    def validate(self) -> None:
        """Re-check every server, task and priority assignment.

        Raises:
            InvalidParameters: On the first violated constraint.
        """
        for server in self.servers:
            server.validate()
            _require_int("System", f"priority of {server.name}", server.priority, 0)
        _check_unique("System", self.servers)

    def get_higher_priority_servers(self, server: Server) -> List[Server]:
        """Return all servers with higher priority than the given server."""
        return [s for s in self.servers if s.priority < server.priority]

    @property
    def total_bandwidth(self) -> float:
        """Return the sum of the server bandwidths."""
        return sum(s.bandwidth for s in self.servers)

    def __len__(self) -> int:
        return len(self.servers)

    def __iter__(self):
        return iter(self.servers)

    def __getitem__(self, index: int) -> Server:
        return self.servers[index]
