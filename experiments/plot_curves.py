"""Plot the curves exported by ``driver.py --export``.

One figure per server: its supply-bound function, the supply delivered to its
tasks and its actual execution, plus the demand and execution of every task.

Usage:
    python experiments/plot_curves.py curves.json [results/curves]
"""

import json
import sys
from pathlib import Path
from typing import Dict, List

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt

SERVER_CURVES = ("supply_bound", "supply", "execution")
TASK_CURVES = ("demand", "execution")


def _draw(ax, points: List[List[int]], label: str, style: str = '-') -> None:
    # consecutive points sharing a time draw the vertical jump
    ax.plot([p[0] for p in points], [p[1] for p in points], style, linewidth=1.5, label=label)


def plot_server(name: str, curves: Dict, output_path: Path) -> None:
    """Plot the curves of one exported server to ``output_path``."""
    fig, ax = plt.subplots(figsize=(10, 6))
    for curve in SERVER_CURVES:
        _draw(ax, curves[curve], f"{name} {curve}")
    for task, task_curves in curves.get("tasks", {}).items():
        for curve in TASK_CURVES:
            _draw(ax, task_curves[curve], f"{task} {curve}", style='--')
    ax.set_xlabel('Time', fontsize=12)
    ax.set_ylabel('Cumulative units', fontsize=12)
    ax.set_title(f'Server {name}', fontsize=14)
    ax.grid(True, alpha=0.3)
    ax.legend(fontsize=8)
    fig.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)


def plot_exported_curves(export_path: str, output_dir: str = "results/curves") -> List[Path]:
    """Plot every server of an export file; returns the written image paths."""
    with open(export_path, "r", encoding="utf-8") as f:
        exported = json.load(f)
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    written = []
    for name, curves in exported["servers"].items():
        path = out / f"{name}.png"
        plot_server(name, curves, path)
        written.append(path)
        print(f"Plot saved to {path}")
    return written


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    plot_exported_curves(*sys.argv[1:3])
