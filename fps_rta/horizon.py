"""Analysis horizon of a server system.

Everything the engine computes is periodic with the hyperperiod once every
offset has passed, so curves only need to be built, and jobs only need to be
enumerated, up to ``hyperperiod + max_offset``.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional

from fps_rta.errors import HorizonOverflow
from fps_rta.models import System

logger = logging.getLogger(__name__)

# Curves hold one breakpoint per supplied slot up to the search limit, so the
# limit bounds both memory and run time of an analysis.
DEFAULT_MAX_HORIZON = 1_000_000


@dataclass(frozen=True)
class Horizon:
    """Bounds of one analysis run.

    Attributes:
        hyperperiod: LCM of every relevant server and task period.
        max_offset: Largest task offset.
    """
    hyperperiod: int
    max_offset: int

    @property
    def analysis_end(self) -> int:
        """Jobs released before this instant are analysed."""
        return self.hyperperiod + self.max_offset

    @property
    def limit(self) -> int:
        """Exclusive end of every curve and bound of every busy-window search."""
        return 2 * self.analysis_end


def checked_lcm(values: Iterable[int], maximum: int = DEFAULT_MAX_HORIZON) -> int:
    """Return the LCM of ``values``, refusing to grow beyond ``maximum``.

    Raises:
        HorizonOverflow: If an intermediate or the final LCM exceeds ``maximum``.
    """
    result = 1
    for value in values:
        result = result * value // math.gcd(result, value)
        if result > maximum:
            raise HorizonOverflow(
                f"hyperperiod exceeds the maximum horizon {maximum} (reached {result})"
            )
    return result


def compute_horizon(
    system: System,
    server_index: Optional[int] = None,
    maximum: int = DEFAULT_MAX_HORIZON,
) -> Horizon:
    """Compute the horizon of ``system``.

    Args:
        system: The system to analyse.
        server_index: If given, only servers up to and including this index
            (in priority order) and their tasks are considered.
        maximum: Largest acceptable search limit.

    Returns:
        The horizon of the considered servers.

    Raises:
        HorizonOverflow: If the horizon does not fit within ``maximum``.
    """
    servers = system.servers if server_index is None else system.servers[: server_index + 1]
    periods: List[int] = []
    offsets: List[int] = [0]
    for server in servers:
        periods.append(server.period)
        for task in server.tasks:
            periods.append(task.T)
            offsets.append(task.offset)

    horizon = Horizon(hyperperiod=checked_lcm(periods, maximum), max_offset=max(offsets))
    if horizon.limit > maximum:
        raise HorizonOverflow(
            f"analysis limit {horizon.limit} exceeds the maximum horizon {maximum}"
        )
    logger.debug(
        "Horizon: hyperperiod=%d, max offset=%d, analysis end=%d",
        horizon.hyperperiod, horizon.max_offset, horizon.analysis_end,
    )
    return horizon


def analysis_end(
    system: System,
    server_index: Optional[int] = None,
    maximum: int = DEFAULT_MAX_HORIZON,
) -> int:
    """Return the instant beyond which no release needs to be analysed."""
    return compute_horizon(system, server_index, maximum).analysis_end
