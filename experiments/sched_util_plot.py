"""Schedulability vs Utilisation Experiment.

Generates random server systems at various total server bandwidths using
UUniFast, analyses each with both aggregation policies, and plots the
schedulability ratio of each policy as a function of utilisation.
"""

from pathlib import Path
from typing import Dict, Sequence

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt

from fps_rta.aggregation import AggregationMode
from fps_rta.analysis import analyze_system
from fps_rta.generators import generate_system


def run_schedulability_experiment(
    utilisation_points: Sequence[float],
    num_systems_per_point: int = 50,
    num_servers: int = 3,
    tasks_per_server: int = 2,
    load: float = 0.6,
    seed: int = 42,
) -> Dict[str, Dict[float, float]]:
    """Run schedulability experiment across utilisation levels.

    Every generated system is analysed once per aggregation mode, so both
    ratios are measured on the same systems.

    Args:
        utilisation_points: Total server bandwidths to test (e.g. [0.1, 0.2, ..., 0.9]).
        num_systems_per_point: Number of random systems per utilisation.
        num_servers: Number of servers per system.
        tasks_per_server: Number of tasks per server.
        load: Task utilization of a server relative to its bandwidth.
        seed: Base random seed (will be varied per system).

    Returns:
        Dictionary mapping mode name -> (utilisation -> schedulability ratio).
    """
    results: Dict[str, Dict[float, float]] = {mode.value: {} for mode in AggregationMode}

    for u_total in utilisation_points:
        counts = {mode.value: 0 for mode in AggregationMode}
        for i in range(num_systems_per_point):
            system = generate_system(
                num_servers,
                tasks_per_server,
                u_total,
                load=load,
                seed=seed + int(u_total * 1000) + i,
            )
            for mode in AggregationMode:
                schedulable, _ = analyze_system(system, mode=mode)
                if schedulable:
                    counts[mode.value] += 1

        for mode, count in counts.items():
            results[mode][u_total] = count / num_systems_per_point

    return results


def plot_schedulability_vs_utilisation(
    results: Dict[str, Dict[float, float]],
    output_path: str = "results/schedulability_vs_utilisation.png",
) -> None:
    """Plot schedulability ratio vs utilisation, one line per mode.

    Args:
        results: Output of :func:`run_schedulability_experiment`.
        output_path: Path to save the plot.
    """
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)

    plt.figure(figsize=(10, 6))
    for mode, style in zip(sorted(results), ('bo-', 'rs--')):
        utilisations = sorted(results[mode])
        plt.plot(
            utilisations,
            [results[mode][u] for u in utilisations],
            style,
            linewidth=2,
            markersize=8,
            label=mode,
        )
    plt.xlabel('Total Server Bandwidth', fontsize=12)
    plt.ylabel('Schedulability Ratio', fontsize=12)
    plt.title('Schedulability vs Utilisation (server RTA)', fontsize=14)
    plt.grid(True, alpha=0.3)
    plt.legend()
    plt.xlim(0, 1.0)
    plt.ylim(0, 1.05)

    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close()

    print(f"Plot saved to {output_path}")


def main():
    """Run the full schedulability vs utilisation experiment."""
    print("Running schedulability vs utilisation experiment...")

    utilisation_points = [u / 10.0 for u in range(1, 10)]  # 0.1, 0.2, ..., 0.9
    results = run_schedulability_experiment(
        utilisation_points=utilisation_points,
        num_systems_per_point=50,
        num_servers=3,
        tasks_per_server=2,
        seed=42,
    )

    print("\nResults:")
    for u in utilisation_points:
        ratios = ", ".join(f"{mode}={results[mode][u]:.3f}" for mode in sorted(results))
        print(f"  U = {u:.1f}: {ratios}")

    plot_schedulability_vs_utilisation(results)

    print("\nExperiment complete!")


if __name__ == "__main__":
    main()
