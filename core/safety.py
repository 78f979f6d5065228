"""
Safety floor analysis.

The taper lowers the nozzle at the start of every scarfed loop. The floor is
the lowest physical Z the program itself ever commands; nothing the transform
emits may go below it.
"""
import logging
import math
from typing import Iterable, Optional

from core.command import GCodeCommand
from core.machine_state import MachineState, PositionMode
from utils.errors import SafetyFloorError

logger = logging.getLogger(__name__)


def compute_safety_floor(commands: Iterable[GCodeCommand],
                         initial_state: Optional[MachineState] = None) -> float:
    """
    Dry run the program and return the minimum physical Z.

    Only states with a known position in absolute positioning mode are
    counted. The floor starts at 0, so a program that stays above the bed is
    floored at 0, while a program that deliberately goes below 0 lowers it.
    """
    state = initial_state or MachineState()
    floor = 0.0
    for command in commands:
        state = state.execute(command)
        if state.position_mode == PositionMode.ABSOLUTE and state.physical_position_known:
            floor = min(floor, state.physical_position.z)

    if not math.isfinite(floor):
        raise SafetyFloorError(f"Could not establish a finite safety floor (got {floor})")

    logger.debug("Safety floor is Z=%.3f", floor)
    return floor
