"""Analysis configuration."""

import logging
import numbers
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from fps_rta.aggregation import AggregationMode
from fps_rta.errors import InvalidParameters
from fps_rta.horizon import DEFAULT_MAX_HORIZON

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _positive(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value <= 0:
        raise InvalidParameters(f"{name} must be a positive integer, got {value!r}")


def _optional_positive(name: str, value) -> None:
    if value is not None:
        _positive(name, value)


@dataclass(frozen=True)
class AnalysisConfig:
    """Settings of an analysis run.

    Attributes:
        mode: Aggregation policy ("original" or "fixed").
        max_horizon: Largest acceptable horizon; larger hyperperiods are refused.
        max_iterations: Optional cap on fixed-point steps per task.
        workers: Number of threads for the per-task solver runs.
        log_level: Name of the level passed to ``logging``.
    """
    mode: AggregationMode = AggregationMode.FIXED
    max_horizon: int = DEFAULT_MAX_HORIZON
    max_iterations: Optional[int] = None
    workers: Optional[int] = None
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "mode", AggregationMode(self.mode))
        except ValueError:
            choices = ", ".join(m.value for m in AggregationMode)
            raise InvalidParameters(
                f"mode must be one of {choices}, got {self.mode!r}"
            ) from None
        _positive("max_horizon", self.max_horizon)
        _optional_positive("max_iterations", self.max_iterations)
        _optional_positive("workers", self.workers)
        level = str(self.log_level).upper()
        if level not in _LOG_LEVELS:
            raise InvalidParameters(f"unknown log level {self.log_level!r}")
        object.__setattr__(self, "log_level", level)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AnalysisConfig":
        """Build a configuration from parsed YAML; missing keys keep their defaults.

        Raises:
            InvalidParameters: On unknown keys or invalid values.
        """
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise InvalidParameters(f"analysis configuration must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidParameters(f"unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level)
