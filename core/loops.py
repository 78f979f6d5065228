"""
Extrusion run extraction and loop detection.

A run is a maximal stretch of the program during which every motion command
extrudes. Non-motion lines inside a run (comments, vendor codes, mode changes)
stay in it, in place. A run is a loop when it ends where it started.
"""
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from core.command import GCodeCommand, SimpleCommand
from core.machine_state import MachineState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtrusionRun:
    """The commands of one run and the states around it."""
    commands: Tuple[GCodeCommand, ...]
    start_state: MachineState
    end_state: MachineState

    def __len__(self):
        return len(self.commands)

    @property
    def first_line(self):
        return self.commands[0].line_number


def would_start_run(state: MachineState, command: GCodeCommand) -> bool:
    """True if ``command`` is a move that extrudes when executed from ``state``."""
    return (isinstance(command, SimpleCommand) and command.is_move
            and state.execute(command).extruded)


def extract_extrusion_run(commands: Sequence[GCodeCommand], index: int,
                          state: MachineState) -> ExtrusionRun:
    """
    Collect the run starting at ``commands[index]``.

    Each following command is executed speculatively; it joins the run while
    the result is still extruding. The first command that does not extrude is
    left for the caller.
    """
    running = state.execute(commands[index])
    run: List[GCodeCommand] = [commands[index]]
    for command in commands[index + 1:]:
        next_state = running.execute(command)
        if not next_state.extruded:
            break
        run.append(command)
        running = next_state
    return ExtrusionRun(tuple(run), state, running)


def is_closed_loop(run: ExtrusionRun, tolerance: float) -> bool:
    """
    True if the run is planar and returns to its start point within ``tolerance``.

    A run never counts as a loop when the position is unknown at its start or
    anywhere along it (before homing, or after an arc).
    """
    start_state = run.start_state
    if not start_state.physical_position_known:
        return False
    start = start_state.physical_position

    state = start_state
    for command in run.commands:
        if isinstance(command, SimpleCommand) and command.is_arc:
            return False
        state = state.execute(command)
        if isinstance(command, SimpleCommand) and command.is_move:
            if not state.physical_position_known:
                return False
            if abs(state.physical_position.z - start.z) > tolerance:
                return False

    gap = state.physical_position.distance_to(start)
    logger.debug("Run at line %s closes with a gap of %.4f", run.first_line, gap)
    return gap < tolerance


def loop_path_length(run: ExtrusionRun) -> float:
    """Total physical distance travelled by the moves of the run."""
    length = 0.0
    state = run.start_state
    for command in run.commands:
        next_state = state.execute(command)
        if isinstance(command, SimpleCommand) and command.is_move:
            length += next_state.physical_position.distance_to(state.physical_position)
        state = next_state
    return length
