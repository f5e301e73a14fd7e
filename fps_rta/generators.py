"""Random task set and server system generators for testing and experiments."""

import random
from typing import List, Optional, Sequence

from fps_rta.models import Server, System, Task

# Divisors of 40: keeps hyperperiods, and with them the curves, small.
TASK_PERIODS = (4, 5, 8, 10, 20, 40)
SERVER_PERIODS = (2, 4, 5, 8, 10)


def uunifast(n: int, u_total: float, seed: Optional[int] = None) -> List[float]:
    """Generate task utilizations using the UUniFast algorithm.

    UUniFast generates uniformly distributed task utilizations that sum to
    the target total utilization.

    Reference:
    Bini, E., & Buttazzo, G. C. (2005). Measuring the performance of schedulability tests.
    Real-Time Systems, 30(1-2), 129-154.

    Args:
        n: Number of tasks.
        u_total: Target total utilization (should be <= n for feasibility).
        seed: Optional random seed for reproducibility.

    Returns:
        List of n utilization values that sum to approximately u_total.

    Raises:
        ValueError: If n <= 0 or u_total < 0.
    """
    if n <= 0:
        raise ValueError("Number of tasks must be positive")
    if u_total < 0:
        raise ValueError("Target utilization must be non-negative")

    rng = random.Random(seed) if seed is not None else random.Random()

    utilizations = []
    sum_u = u_total
    for i in range(1, n):
        next_sum_u = sum_u * (rng.random() ** (1.0 / (n - i)))
        utilizations.append(sum_u - next_sum_u)
        sum_u = next_sum_u

    # Last utilization is whatever remains
    utilizations.append(sum_u)
    return utilizations


def _wcet(utilization: float, period: int) -> int:
    # integer time: at least one unit, at most the whole period
    return min(period, max(1, round(utilization * period)))


def generate_tasks(
    n: int,
    u_total: float,
    periods: Sequence[int] = TASK_PERIODS,
    seed: Optional[int] = None,
) -> List[Task]:
    """Generate ``n`` implicit-deadline tasks with integer parameters.

    Periods are drawn from ``periods``; execution times are rounded from the
    UUniFast utilizations, so the total utilization is only approximately
    ``u_total``.

    Raises:
        ValueError: If parameters are invalid.
    """
    if not periods or any(p <= 0 for p in periods):
        raise ValueError("Invalid period choices")
    rng = random.Random(seed) if seed is not None else random.Random()
    tasks = []
    for i, u in enumerate(uunifast(n, u_total, seed=seed)):
        T = rng.choice(periods)
        tasks.append(Task(C=_wcet(u, T), T=T, name=f"τ{i+1}"))
    return tasks


def generate_system(
    n_servers: int,
    tasks_per_server: int,
    utilization: float,
    load: float = 0.6,
    server_periods: Sequence[int] = SERVER_PERIODS,
    task_periods: Sequence[int] = TASK_PERIODS,
    seed: Optional[int] = None,
) -> System:
    """Generate a random server system.

    The total server bandwidth ``utilization`` is split over the servers with
    UUniFast. Every server then hosts tasks whose total utilization is
    ``load`` times its bandwidth.

    Args:
        n_servers: Number of servers.
        tasks_per_server: Number of tasks in every server.
        utilization: Target total bandwidth of the servers (<= 1).
        load: Task utilization of a server relative to its bandwidth.
        server_periods: Choices for the replenishment periods.
        task_periods: Choices for the task periods.
        seed: Random seed for reproducibility.

    Returns:
        A System with rate-monotonic priorities at both levels.

    Raises:
        ValueError: If parameters are invalid.
    """
    if not 0 < utilization <= 1:
        raise ValueError("Total server utilization must be in (0, 1]")
    if load <= 0:
        raise ValueError("Load factor must be positive")
    rng = random.Random(seed) if seed is not None else random.Random()

    servers = []
    for s, bandwidth in enumerate(uunifast(n_servers, utilization, seed=seed)):
        period = rng.choice(server_periods)
        capacity = _wcet(bandwidth, period)
        tasks = generate_tasks(
            tasks_per_server,
            load * capacity / period,
            periods=task_periods,
            seed=rng.randrange(2**32),
        )
        servers.append(Server(capacity=capacity, period=period, tasks=tuple(tasks), name=f"S{s+1}"))
    return System(tuple(servers))
