"""
Overlap and taper transform for closed extrusion loops.

The first stretch of a loop (the overlap, measured along the path) is printed
twice. The first time it ramps extrusion up from nothing while the nozzle
climbs from one layer height below the loop to the loop height. After the rest
of the loop, the same stretch is printed again while extrusion ramps back down
to nothing. The two ramps add up to a full line, so the seam is spread over
the whole overlap instead of sitting at one point.

All geometry is computed in the physical frame and converted back to the
logical frame of the state that is current when each command is emitted.
"""
import logging
import math
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple, Union

from core.command import (CommandCode, GCodeCommand, SimpleCommand, comment, linear_move,
                          rapid_move, set_position)
from core.geometry import Point, lerp_points, subdivide
from core.loops import ExtrusionRun
from core.machine_state import ExtrusionMode, MachineState, PositionMode

logger = logging.getLogger(__name__)

LOOP_START_MARKER = "SCARF LOOP START"
LOOP_END_MARKER = "SCARF LOOP END"

# Remainders of a split shorter than this are dropped
MIN_SEGMENT_LENGTH = 1e-6


@dataclass(frozen=True)
class PathMove:
    """One extruding move in the physical frame."""
    start: Point
    end: Point
    extrusion: float
    source: SimpleCommand
    # True when this is only part of ``source``
    partial: bool = False
    # Modal feed rate the original move ran at, 0 when never set
    feed_rate: float = 0.0

    @property
    def length(self) -> float:
        return self.start.distance_to(self.end)

    @property
    def extrusion_only(self) -> bool:
        """Primes and retracts: the nozzle does not move."""
        return self.length <= MIN_SEGMENT_LENGTH


PathItem = Union[PathMove, GCodeCommand]


@dataclass(frozen=True)
class Tapered:
    commands: Tuple[GCodeCommand, ...]
    end_state: MachineState


@dataclass(frozen=True)
class FallbackToOriginal:
    reason: str


TaperResult = Union[Tapered, FallbackToOriginal]


def effective_overlap(overlap: float, loop_length: float) -> float:
    """A loop never overlaps more than a third of itself."""
    return min(overlap, loop_length / 3)


def build_path(run: ExtrusionRun) -> List[PathItem]:
    """Replay the run and turn every move into a ``PathMove``. Other commands are kept."""
    path: List[PathItem] = []
    state = run.start_state
    for command in run.commands:
        next_state = state.execute(command)
        if isinstance(command, SimpleCommand) and command.is_move:
            path.append(PathMove(
                start=state.physical_position,
                end=next_state.physical_position,
                extrusion=next_state.physical_extrusion - state.physical_extrusion,
                source=command,
                feed_rate=next_state.feed_rate,
            ))
        else:
            path.append(command)
        state = next_state
    return path


def split_at_length(path: List[PathItem], length: float) -> Tuple[List[PathItem], List[PathItem]]:
    """
    Split the path where its accumulated length reaches ``length``.

    The move crossing the boundary is cut in two at the crossing point, and
    its extrusion is shared in proportion to the two lengths.
    """
    head: List[PathItem] = []
    travelled = 0.0
    for index, item in enumerate(path):
        if not isinstance(item, PathMove):
            head.append(item)
            continue

        if travelled + item.length < length:
            travelled += item.length
            head.append(item)
            continue

        fraction = (length - travelled) / item.length
        point = lerp_points(item.start, item.end, fraction)
        head.append(replace(item, end=point, extrusion=item.extrusion * fraction, partial=True))
        tail = path[index + 1:]
        rest = replace(item, start=point, extrusion=item.extrusion * (1 - fraction), partial=True)
        if rest.length > MIN_SEGMENT_LENGTH:
            tail = [rest] + tail
        return head, tail

    return head, []


def resample(path: List[PathItem], resolution: float) -> List[PathItem]:
    """Subdivide every move longer than ``resolution`` into equal steps."""
    result: List[PathItem] = []
    for item in path:
        if not isinstance(item, PathMove):
            result.append(item)
            continue
        steps = max(1, math.ceil(item.length / resolution - 1e-9))
        if steps == 1:
            result.append(item)
            continue
        for start, end in subdivide(item.start, item.end, steps):
            result.append(replace(item, start=start, end=end,
                                  extrusion=item.extrusion / steps, partial=True))
    return result


def scarf_loop(run: ExtrusionRun, loop_length: float, layer_height: float,
               overlap: float, taper_resolution: float, floor: float) -> TaperResult:
    """
    Rewrite a closed loop with a tapered overlap.

    Returns ``Tapered`` with the replacement commands, or
    ``FallbackToOriginal`` when the loop must be printed unchanged.
    """
    if run.start_state.position_mode != PositionMode.ABSOLUTE:
        return FallbackToOriginal("relative positioning is not supported")

    length = effective_overlap(overlap, loop_length)
    taper_path, remainder = split_at_length(build_path(run), length)
    taper_path = resample(taper_path, taper_resolution)

    for item in taper_path:
        if isinstance(item, SimpleCommand) and item.changes_coordinate_system:
            return FallbackToOriginal(
                f"{item.code.value} inside the taper would be replayed twice")

    commands: List[GCodeCommand] = [comment(LOOP_START_MARKER)]

    state = run.start_state
    expected_extrusion = _extrusion_after(state, taper_path)
    state = _emit_starting_taper(commands, state, taper_path, length, layer_height, floor)
    state = _emit_resync(commands, state, expected_extrusion)

    for item in remainder:
        if isinstance(item, PathMove):
            command = item.source if not item.partial else _move_command(
                state, item.end, item.extrusion, item.source)
        else:
            command = item
        commands.append(command)
        state = state.execute(command)

    if state.position_mode != PositionMode.ABSOLUTE:
        return FallbackToOriginal("relative positioning is active at the end of the loop")

    expected_extrusion = state.extrusion
    state = _emit_ending_taper(commands, state, taper_path, length)
    state = _emit_resync(commands, state, expected_extrusion)

    commands.append(comment(LOOP_END_MARKER))
    logger.debug("Scarfed loop at line %s: length %.3f, overlap %.3f",
                 run.first_line, loop_length, length)
    return Tapered(tuple(commands), state)


def _emit_starting_taper(commands: List[GCodeCommand], state: MachineState,
                         path: List[PathItem], length: float,
                         layer_height: float, floor: float) -> MachineState:
    start = state.physical_position
    lowered = Point(start.x, start.y, max(floor, start.z - layer_height))
    first = next((item for item in path if isinstance(item, PathMove)), None)
    plunge = _move_command(state, lowered, 0.0, None, include_z=True,
                           feed_rate=first.feed_rate if first else 0.0)
    commands.append(plunge)
    state = state.execute(plunge)

    travelled = 0.0
    for item in path:
        if not isinstance(item, PathMove):
            commands.append(item)
            state = state.execute(item)
            continue
        if item.extrusion_only:
            command = _extrusion_command(state, item.extrusion, item.source)
            commands.append(command)
            state = state.execute(command)
            continue
        travelled += item.length
        t = min(1.0, travelled / length)
        z = max(floor, item.end.z - (1 - t) * layer_height)
        command = _move_command(state, Point(item.end.x, item.end.y, z),
                                item.extrusion * t, item.source, include_z=True)
        commands.append(command)
        state = state.execute(command)
    return state


def _emit_ending_taper(commands: List[GCodeCommand], state: MachineState,
                       path: List[PathItem], length: float) -> MachineState:
    travelled = 0.0
    for item in path:
        if not isinstance(item, PathMove):
            commands.append(item)
            state = state.execute(item)
            continue
        # Already printed in full by the starting taper
        if item.extrusion_only:
            continue
        travelled += item.length
        t = min(1.0, travelled / length)
        command = _move_command(state, item.end, item.extrusion * (1 - t), item.source)
        commands.append(command)
        state = state.execute(command)
    return state


def _move_command(state: MachineState, physical_end: Point, extrusion: float,
                  source: Optional[SimpleCommand], include_z: bool = False,
                  feed_rate: float = 0.0) -> SimpleCommand:
    """Build a move to ``physical_end`` that extrudes ``extrusion``, in the logical frame of ``state``."""
    logical = state.convert_physical_to_logical(physical_end)
    args = {'X': logical.x, 'Y': logical.y}
    if include_z:
        args['Z'] = logical.z
    if extrusion > 0:
        args['E'] = _extrusion_value(state, extrusion)
    if feed_rate > 0:
        args['F'] = feed_rate
    return _like(source, args)


def _extrusion_command(state: MachineState, extrusion: float,
                       source: SimpleCommand) -> SimpleCommand:
    """Extrude without moving, keeping the amount whatever its sign."""
    return _like(source, {'E': _extrusion_value(state, extrusion)})


def _extrusion_value(state: MachineState, extrusion: float) -> float:
    if state.extrusion_mode == ExtrusionMode.ABSOLUTE:
        return state.extrusion + extrusion
    return extrusion


def _like(source: Optional[SimpleCommand], args: dict) -> SimpleCommand:
    """A move with ``args`` and the code and explicit feed rate of ``source``."""
    if source is None:
        return linear_move(**args)
    if 'F' in source.args:
        args['F'] = source.args['F']
    if source.code == CommandCode.RAPID_MOVE:
        return rapid_move(**args)
    return linear_move(**args)


def _emit_resync(commands: List[GCodeCommand], state: MachineState,
                 expected_extrusion: float) -> MachineState:
    """In absolute extrusion mode, put the extruder back where the original program expects it."""
    if state.extrusion_mode != ExtrusionMode.ABSOLUTE:
        return state
    if math.isclose(state.extrusion, expected_extrusion, abs_tol=1e-9):
        return state
    command = set_position(E=expected_extrusion)
    commands.append(command)
    return state.execute(command)


def _extrusion_after(state: MachineState, path: List[PathItem]) -> float:
    """Logical extrusion after printing ``path`` unmodified from ``state``."""
    return state.extrusion + sum(item.extrusion for item in path if isinstance(item, PathMove))
