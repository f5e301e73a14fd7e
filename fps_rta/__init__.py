"""fps_rta: Response-time analysis for fixed-priority servers.

This package analyses the schedulability of periodic/sporadic tasks hosted in
periodic resource servers that share one processor under fixed-priority
preemptive scheduling, using cumulative demand and supply curves.
"""

from fps_rta.aggregation import AggregationMode
from fps_rta.analysis import (
    SystemAnalysis,
    analyze_system,
    analyze_taskset,
    compute_response_time,
    is_schedulable,
)
from fps_rta.errors import AnalysisError, HorizonOverflow, InternalInvariantViolation, InvalidParameters
from fps_rta.horizon import analysis_end, compute_horizon
from fps_rta.models import Server, System, Task
from fps_rta.solver import Unschedulable, UnschedulableReason

__version__ = "0.1.0"
__all__ = [
    "AggregationMode",
    "AnalysisError",
    "HorizonOverflow",
    "InternalInvariantViolation",
    "InvalidParameters",
    "Server",
    "System",
    "SystemAnalysis",
    "Task",
    "Unschedulable",
    "UnschedulableReason",
    "analysis_end",
    "analyze_system",
    "analyze_taskset",
    "compute_horizon",
    "compute_response_time",
    "is_schedulable",
]
