"""Piecewise-constant, monotone cumulative curves.

A curve maps a time ``t`` to the amount of demand (or supply) accumulated over
the half-open interval ``[0, t)``. Curves are left-continuous: a jump at time
``τ`` is visible for every ``t > τ`` but not at ``τ`` itself. A job released at
``a`` therefore counts towards ``value_at(t)`` only for ``t > a``, which yields
the request-bound function ``C * ceil((t - offset) / T)``, and one unit of
supply in the slot ``[s, s + 1)`` is a jump of one at ``s``.

Two representations share the :class:`Curve` interface:

- :class:`StepCurve` stores its jumps explicitly;
- :class:`PeriodicCurve` generates them from a repeating pattern and evaluates
  ``value_at`` in closed form.

Curves are immutable. Every arithmetic operation returns a new
:class:`StepCurve`.
"""

from abc import ABC, abstractmethod
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, replace
from enum import Enum
from functools import cached_property
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from fps_rta.errors import InternalInvariantViolation

Point = Tuple[int, int]
Breakpoints = Tuple[Tuple[int, ...], Tuple[int, ...]]


class Direction(Enum):
    """Comparison applied by :meth:`Curve.first_meeting_point`."""

    BELOW = "below"
    ABOVE = "above"


def _check_breakpoints(times: Sequence[int], values: Sequence[int]) -> None:
    if len(times) != len(values):
        raise InternalInvariantViolation(
            f"curve has {len(times)} jump times but {len(values)} values"
        )
    previous_time, previous_value = -1, 0
    for time, value in zip(times, values):
        if time <= previous_time:
            raise InternalInvariantViolation(
                f"jump times must be non-negative and strictly increasing, got {time} after {previous_time}"
            )
        if value <= previous_value:
            raise InternalInvariantViolation(
                f"curve is not monotone: value {value} at {time} follows {previous_value}"
            )
        previous_time, previous_value = time, value


class Curve(ABC):
    """Capability interface shared by all curve representations."""

    @abstractmethod
    def breakpoints(self) -> Breakpoints:
        """Return ``(times, values)``: jump times and the value right after each jump."""

    @abstractmethod
    def restrict_to(self, window: int) -> "Curve":
        """Drop every jump at or after ``window``; values on ``[0, window]`` are unchanged."""

    def value_at(self, t) -> int:
        """Return the amount accumulated over ``[0, t)`` (0 before the first jump)."""
        times, values = self.breakpoints()
        i = bisect_left(times, t)
        return values[i - 1] if i else 0

    def value_after(self, t) -> int:
        """Return the right limit at ``t``, i.e. including a jump at ``t``."""
        times, values = self.breakpoints()
        i = bisect_right(times, t)
        return values[i - 1] if i else 0

    def jumps(self) -> Iterator[Point]:
        """Yield ``(time, increment)`` for every jump, in time order."""
        times, values = self.breakpoints()
        previous = 0
        for time, value in zip(times, values):
            yield time, value - previous
            previous = value

    @property
    def final_value(self) -> int:
        """Value after the last jump."""
        _, values = self.breakpoints()
        return values[-1] if values else 0

    def next_breakpoint(self, t) -> Optional[int]:
        """Return the first jump time at or after ``t``, or None."""
        times, _ = self.breakpoints()
        i = bisect_left(times, t)
        return times[i] if i < len(times) else None

    def add(self, other: "Curve") -> "StepCurve":
        """Pointwise sum. Commutative and associative."""
        increments: Dict[int, int] = {}
        for curve in (self, other):
            for time, increment in curve.jumps():
                increments[time] = increments.get(time, 0) + increment
        return StepCurve.from_jumps(increments.items())

    def __add__(self, other: "Curve") -> "StepCurve":
        return self.add(other)

    def min(self, other: "Curve") -> "StepCurve":
        """Pointwise minimum, used to cap a supply by another."""
        return self._combine(other, min)

    def max(self, other: "Curve") -> "StepCurve":
        """Pointwise maximum."""
        return self._combine(other, max)

    def _combine(self, other: "Curve", pick) -> "StepCurve":
        times = sorted(set(self.breakpoints()[0]) | set(other.breakpoints()[0]))
        result_times: List[int] = []
        result_values: List[int] = []
        current = 0
        for time in times:
            value = pick(self.value_after(time), other.value_after(time))
            if value != current:
                result_times.append(time)
                result_values.append(value)
                current = value
        return StepCurve(result_times, result_values)

    def first_meeting_point(
        self,
        other: "Curve",
        start: int = 0,
        bound: Optional[int] = None,
        direction: Direction = Direction.BELOW,
        offset: int = 0,
    ) -> Optional[int]:
        """Find the smallest integer ``t >= start`` where the curves meet.

        With ``Direction.BELOW`` the condition is ``self(t) + offset <= other(t)``,
        with ``Direction.ABOVE`` it is ``self(t) + offset >= other(t)``.

        Both curves are constant on every ``(τ, τ']`` between consecutive jump
        times, so only ``start`` and the instants right after a jump need to be
        inspected.

        Args:
            other: Curve to compare against.
            start: Earliest instant to consider.
            bound: Latest instant to consider (inclusive). None means no bound.
            direction: Which side of ``other`` this curve must reach.
            offset: Constant added to this curve before comparing.

        Returns:
            The meeting point, or None if there is none within ``bound``.
        """
        candidates = {start}
        for times in (self.breakpoints()[0], other.breakpoints()[0]):
            lo = bisect_left(times, start)
            hi = len(times) if bound is None else bisect_left(times, bound)
            candidates.update(time + 1 for time in times[lo:hi])

        for t in sorted(candidates):
            if bound is not None and t > bound:
                break
            lhs = self.value_at(t) + offset
            rhs = other.value_at(t)
            if direction is Direction.BELOW and lhs <= rhs:
                return t
            if direction is Direction.ABOVE and lhs >= rhs:
                return t
        return None

    def time_to_reach(self, amount: int, bound: Optional[int] = None) -> Optional[int]:
        """Return the smallest ``t`` with ``value_at(t) >= amount``.

        This is the inverse ``S⁻¹`` of a supply curve. Returns None when the
        curve never reaches ``amount`` or reaches it only after ``bound``.
        """
        if amount <= 0:
            return 0
        times, values = self.breakpoints()
        i = bisect_left(values, amount)
        if i == len(values):
            return None
        t = times[i] + 1
        if bound is not None and t > bound:
            return None
        return t

    def points(self, until: Optional[int] = None) -> List[Point]:
        """Export the curve as ``(time, value)`` pairs.

        A jump at ``t`` from ``v1`` to ``v2`` is the two consecutive points
        ``(t, v1), (t, v2)``; drawing straight lines between consecutive points
        reproduces the step function. ``until`` appends a final flat point.
        """
        times, values = self.breakpoints()
        result: List[Point] = []
        if not times or times[0] > 0:
            result.append((0, 0))
        previous = 0
        for time, value in zip(times, values):
            result.append((time, previous))
            result.append((time, value))
            previous = value
        last = times[-1] if times else 0
        if until is not None and until > last:
            result.append((until, previous))
        return result

    def __len__(self) -> int:
        return len(self.breakpoints()[0])

    def __eq__(self, other) -> bool:
        if not isinstance(other, Curve):
            return NotImplemented
        return self.breakpoints() == other.breakpoints()

    def __hash__(self) -> int:
        return hash(self.breakpoints())


class StepCurve(Curve):
    """Curve given by an explicit list of jumps.

    Args:
        times: Strictly increasing, non-negative jump times.
        values: Strictly increasing values reached right after each jump.

    Raises:
        InternalInvariantViolation: If the breakpoints are not ordered or the
            values are not monotone.
    """

    def __init__(self, times: Sequence[int] = (), values: Sequence[int] = ()):
        times = tuple(times)
        values = tuple(values)
        _check_breakpoints(times, values)
        self._times = times
        self._values = values

    @classmethod
    def from_jumps(cls, jumps: Iterable[Point]) -> "StepCurve":
        """Build a curve from ``(time, increment)`` pairs in any order."""
        increments: Dict[int, int] = {}
        for time, increment in jumps:
            if increment < 0:
                raise InternalInvariantViolation(
                    f"negative increment {increment} at {time}"
                )
            increments[time] = increments.get(time, 0) + increment
        times: List[int] = []
        values: List[int] = []
        total = 0
        for time in sorted(increments):
            if increments[time]:
                total += increments[time]
                times.append(time)
                values.append(total)
        return cls(times, values)

    @classmethod
    def from_points(cls, points: Iterable[Point]) -> "StepCurve":
        """Inverse of :meth:`Curve.points`."""
        times: List[int] = []
        values: List[int] = []
        previous_time: Optional[int] = None
        previous_value = 0
        for time, value in points:
            if previous_time is None:
                if value != 0:
                    raise InternalInvariantViolation(
                        f"curve must start at zero, got ({time}, {value})"
                    )
            elif time < previous_time:
                raise InternalInvariantViolation(
                    f"point ({time}, {value}) goes back in time"
                )
            elif time > previous_time and value != previous_value:
                raise InternalInvariantViolation(
                    f"curve is not constant between {previous_time} and {time}"
                )
            elif value < previous_value:
                raise InternalInvariantViolation(
                    f"curve is not monotone at {time}: {value} < {previous_value}"
                )
            if value > previous_value:
                if times and times[-1] == time:
                    values[-1] = value
                else:
                    times.append(time)
                    values.append(value)
            previous_time, previous_value = time, value
        return cls(times, values)

    @classmethod
    def from_windows(cls, windows: Iterable[Tuple[int, int]]) -> "StepCurve":
        """Build a unit-slot curve: one unit for every slot of each ``[start, end)``."""
        return cls.from_jumps(
            (slot, 1) for start, end in windows for slot in range(start, end)
        )

    def breakpoints(self) -> Breakpoints:
        return self._times, self._values

    def restrict_to(self, window: int) -> "StepCurve":
        i = bisect_left(self._times, window)
        return StepCurve(self._times[:i], self._values[:i])

    def __repr__(self) -> str:
        return f"StepCurve({list(self.jumps())})"


@dataclass(frozen=True, eq=False)
class PeriodicCurve(Curve):
    """Closed-form curve repeating ``pattern`` every ``period`` from ``offset``.

    Jumps occur at ``offset + k * period + rel`` for every ``(rel, increment)``
    in ``pattern`` and every ``k >= 0``, as long as the jump time is before
    ``end``.

    Attributes:
        offset: Time of the first repetition.
        period: Length of one repetition.
        pattern: ``(relative time, increment)`` pairs, relative times strictly
            increasing within ``[0, period)``.
        end: Exclusive bound on jump times.
    """

    offset: int
    period: int
    pattern: Tuple[Point, ...]
    end: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "pattern", tuple(tuple(p) for p in self.pattern))
        if self.period <= 0 or self.offset < 0 or self.end < 0:
            raise InternalInvariantViolation(
                f"invalid periodic curve: offset={self.offset}, period={self.period}, end={self.end}"
            )
        previous = -1
        for rel, increment in self.pattern:
            if not previous < rel < self.period or increment <= 0:
                raise InternalInvariantViolation(
                    f"invalid pattern entry ({rel}, {increment}) for period {self.period}"
                )
            previous = rel

    @cached_property
    def _breakpoints(self) -> Breakpoints:
        times: List[int] = []
        values: List[int] = []
        total = 0
        start = self.offset
        while start < self.end:
            for rel, increment in self.pattern:
                time = start + rel
                if time >= self.end:
                    break
                total += increment
                times.append(time)
                values.append(total)
            start += self.period
        return tuple(times), tuple(values)

    def breakpoints(self) -> Breakpoints:
        return self._breakpoints

    def value_at(self, t) -> int:
        span = min(t, self.end) - self.offset
        if span <= 0:
            return 0
        total = 0
        for rel, increment in self.pattern:
            if span > rel:
                # number of k >= 0 with k * period + rel < span
                total += increment * -((rel - span) // self.period)
        return total

    def restrict_to(self, window: int) -> "PeriodicCurve":
        return replace(self, end=min(self.end, window))
