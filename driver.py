"""Command-line driver: analyse a server system described in YAML.

Usage:
    python driver.py configs/system.yaml [--config configs/analysis.yaml]
                     [--mode original|fixed] [--workers N] [--export curves.json]

Exit status is 0 when every task meets its deadline, 1 when at least one
does not, and 2 when the input is invalid.
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

import yaml  # pip install pyyaml

from fps_rta.aggregation import AggregationMode
from fps_rta.analysis import SystemAnalysis
from fps_rta.config import AnalysisConfig
from fps_rta.errors import AnalysisError, InvalidParameters
from fps_rta.models import Server, System, Task
from fps_rta.solver import Unschedulable

logger = logging.getLogger("driver")

_TASK_KEYS = {"name": "name", "wcet": "C", "period": "T", "deadline": "D", "offset": "offset", "priority": "priority"}
_SERVER_KEYS = {"name", "capacity", "period", "priority", "tasks"}


def load_config(path: str) -> Dict[str, Any]:
    """Load a YAML document (an empty file yields an empty dict)."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _task_from_dict(data: Dict[str, Any], where: str) -> Task:
    if not isinstance(data, dict):
        raise InvalidParameters(f"{where}: a task must be a mapping")
    unknown = sorted(set(data) - set(_TASK_KEYS))
    if unknown:
        raise InvalidParameters(f"{where}: unknown task keys: {', '.join(unknown)}")
    for key in ("wcet", "period"):
        if key not in data:
            raise InvalidParameters(f"{where}: missing task key '{key}'")
    return Task(**{_TASK_KEYS[key]: value for key, value in data.items()})


def system_from_dict(data: Dict[str, Any]) -> System:
    """Build a :class:`System` from parsed YAML.

    Expected layout::

        servers:
          - name: S1
            capacity: 2
            period: 4
            priority: 0          # optional, all or none
            tasks:
              - {name: t1, wcet: 1, period: 8, deadline: 8, offset: 0}

    Raises:
        InvalidParameters: If the layout or a parameter is invalid.
    """
    if not isinstance(data, dict) or not isinstance(data.get("servers"), list):
        raise InvalidParameters("system description must contain a 'servers' list")
    servers: List[Server] = []
    for s, entry in enumerate(data["servers"]):
        where = f"servers[{s}]"
        if not isinstance(entry, dict):
            raise InvalidParameters(f"{where}: a server must be a mapping")
        unknown = sorted(set(entry) - _SERVER_KEYS)
        if unknown:
            raise InvalidParameters(f"{where}: unknown server keys: {', '.join(unknown)}")
        for key in ("capacity", "period"):
            if key not in entry:
                raise InvalidParameters(f"{where}: missing server key '{key}'")
        tasks = tuple(
            _task_from_dict(t, f"{where}.tasks[{i}]") for i, t in enumerate(entry.get("tasks") or [])
        )
        servers.append(
            Server(
                capacity=entry["capacity"],
                period=entry["period"],
                tasks=tasks,
                name=entry.get("name", ""),
                priority=entry.get("priority"),
            )
        )
    return System(tuple(servers))


def load_system(path: str) -> System:
    return system_from_dict(load_config(path))


def format_results(system: System, response_times: Dict[str, Dict[str, Any]]) -> str:
    """Render the response times as a fixed-width table."""
    lines = [f"{'server':<10} {'task':<10} {'C':>5} {'T':>6} {'D':>6} {'R':>6}  verdict"]
    for server in system.servers:
        for task in server.tasks:
            result = response_times[server.name][task.name]
            if isinstance(result, Unschedulable):
                shown = result.response_time if result.response_time is not None else "-"
                verdict = str(result)
            else:
                shown, verdict = result, "ok"
            lines.append(
                f"{server.name:<10} {task.name:<10} {task.C:>5} {task.T:>6} {task.D:>6} {shown!s:>6}  {verdict}"
            )
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Response-time analysis for tasks in fixed-priority servers."
    )
    parser.add_argument("system", help="YAML description of the servers and their tasks")
    parser.add_argument("--config", help="YAML analysis configuration")
    parser.add_argument("--mode", choices=[m.value for m in AggregationMode], help="aggregation policy")
    parser.add_argument("--workers", type=int, help="threads for the per-task solver runs")
    parser.add_argument("--export", help="write every curve as JSON to this file")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_config(args.config) if args.config else {}
        if not isinstance(settings, dict):
            raise InvalidParameters(f"{args.config}: analysis configuration must be a mapping")
        if args.mode is not None:
            settings["mode"] = args.mode
        if args.workers is not None:
            settings["workers"] = args.workers
        config = AnalysisConfig.from_dict(settings)
        logging.basicConfig(
            level=config.logging_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        system = load_system(args.system)
        logger.debug("Loaded %d servers from %s", len(system), args.system)
        analysis = SystemAnalysis(
            system,
            mode=config.mode,
            max_iterations=config.max_iterations,
            max_horizon=config.max_horizon,
        )
    except (OSError, yaml.YAMLError, AnalysisError) as e:
        print(f"[driver] ERROR: {e}", file=sys.stderr)
        return 2

    schedulable, response_times = analysis.run(workers=config.workers)
    print(f"Mode: {config.mode.value}, analysis end: {analysis.horizon.analysis_end}")
    print(format_results(system, response_times))
    print("Schedulable" if schedulable else "NOT schedulable")

    if args.export:
        directory = os.path.dirname(args.export)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(args.export, "w", encoding="utf-8") as f:
            json.dump(
                {"analysis_end": analysis.horizon.analysis_end, "servers": analysis.export_curves()},
                f,
                ensure_ascii=False,
                indent=2,
            )
        print(f"[driver] Wrote curves to {args.export}")
    return 0 if schedulable else 1


if __name__ == "__main__":
    sys.exit(main())
