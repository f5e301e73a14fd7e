"""Unit tests for the busy-window solver and work-conserving service."""

import unittest
from fps_rta.curve import StepCurve
from fps_rta.demand import request_bound_curve, resource_curve, supply_bound_curve
from fps_rta.horizon import Horizon
from fps_rta.models import Server, Task
from fps_rta.solver import (
    Budget,
    BusyWindowSolver,
    Converged,
    Unschedulable,
    UnschedulableReason,
    budget_supply,
    serve,
)


def slots(*times):
    return StepCurve.from_jumps((t, 1) for t in times)


class TestServe(unittest.TestCase):
    """Test delivery of a demand from a supply."""

    def test_unbounded_supply(self):
        """Test that an unbounded supply serves everything immediately."""
        demand = StepCurve.from_jumps([(0, 3)])
        delivery = serve(demand, None)
        self.assertIs(delivery.executed, demand)
        self.assertIsNone(delivery.remaining)

    def test_first_come_first_served(self):
        """Test that pending demand takes the next supplied slots."""
        delivery = serve(StepCurve.from_jumps([(1, 2)]), slots(0, 2, 3, 4))
        self.assertEqual(delivery.executed, slots(2, 3))
        self.assertEqual(delivery.remaining, slots(0, 4))

    def test_budget(self):
        """Test that the budget limits consumption per replenishment period."""
        delivery = serve(StepCurve.from_jumps([(0, 4)]), resource_curve(12), Budget(capacity=1, period=4))
        self.assertEqual(delivery.executed, slots(0, 4, 8))
        self.assertEqual(delivery.remaining.final_value, 9)

    def test_budget_supply(self):
        """Test taking the first Θ units of every period."""
        self.assertEqual(budget_supply(resource_curve(8), Budget(capacity=2, period=4)), slots(0, 1, 4, 5))
        self.assertEqual(budget_supply(slots(1, 2, 3, 7), Budget(capacity=2, period=4)), slots(1, 2, 7))


class TestBusyWindowSolver(unittest.TestCase):
    """Test the fixed-point engine directly."""

    def test_dedicated_processor(self):
        """Test R = 3 for (C=2, T=8) below (C=1, T=5)."""
        horizon = Horizon(hyperperiod=40, max_offset=0)
        solver = BusyWindowSolver(
            resource_curve(horizon.limit),
            request_bound_curve(Task(C=1, T=5), horizon.limit),
            horizon,
        )
        result = solver.solve(request_bound_curve(Task(C=2, T=8), horizon.limit))
        self.assertIsInstance(result, Converged)
        self.assertEqual(result.response_time, 3)
        self.assertLessEqual(result.response_time, horizon.analysis_end)
        self.assertGreater(result.busy_windows, 1)

    def test_no_interference(self):
        """Test that a missing interference curve means none."""
        horizon = Horizon(hyperperiod=4, max_offset=0)
        server = Server(capacity=2, period=4)
        solver = BusyWindowSolver(supply_bound_curve(server, horizon.limit), None, horizon)
        result = solver.solve(request_bound_curve(Task(C=2, T=4), horizon.limit))
        self.assertEqual(result.response_time, 4)

    def test_window_does_not_close(self):
        """Test that insufficient supply is reported, not raised."""
        horizon = Horizon(hyperperiod=4, max_offset=0)
        supply = supply_bound_curve(Server(capacity=1, period=4), horizon.limit)
        result = BusyWindowSolver(supply, None, horizon).solve(
            request_bound_curve(Task(C=3, T=4), horizon.limit)
        )
        self.assertIsInstance(result, Unschedulable)
        self.assertEqual(result.reason, UnschedulableReason.HORIZON_EXCEEDED)
        self.assertEqual(result.bound, horizon.limit)

    def test_iteration_limit(self):
        """Test that exceeding max_iterations yields Unschedulable."""
        horizon = Horizon(hyperperiod=40, max_offset=0)
        solver = BusyWindowSolver(
            resource_curve(horizon.limit),
            request_bound_curve(Task(C=1, T=5), horizon.limit),
            horizon,
            max_iterations=1,
        )
        result = solver.solve(request_bound_curve(Task(C=2, T=8), horizon.limit))
        self.assertEqual(result, Unschedulable(UnschedulableReason.ITERATION_LIMIT, bound=1))

    def test_later_window_is_worse(self):
        """Test that all releases are enumerated, not only the first."""
        horizon = Horizon(hyperperiod=10, max_offset=0)
        # the higher-priority burst hits the second job only
        interference = StepCurve.from_jumps([(5, 3)])
        solver = BusyWindowSolver(resource_curve(horizon.limit), interference, horizon)
        result = solver.solve(request_bound_curve(Task(C=1, T=5), horizon.limit))
        self.assertEqual(result.response_time, 4)

    def test_unschedulable_str(self):
        """Test the human-readable verdict."""
        verdict = Unschedulable(UnschedulableReason.DEADLINE_MISS, bound=5, response_time=8)
        self.assertEqual(str(verdict), "unschedulable (deadline miss, R=8, bound=5)")


if __name__ == "__main__":
    unittest.main()
