"""
Machine state for the G-code interpreter.

``MachineState`` is an immutable snapshot of what a Marlin style printer knows
about itself. Executing a command never changes a state, it returns a new one.
That makes speculative execution free: derive as many continuations from one
snapshot as needed and simply drop the ones that are not wanted.

    state = MachineState()
    for command in commands:
        next_state = state.execute(command)
        if next_state.extrusion < state.extrusion:
            continue  # ignore retractions
        state = next_state

Two frames are tracked. The *logical* position is what the firmware reports.
The *physical* position is where the nozzle really is; it differs from the
logical one by an offset that only homing (G28) and set position (G92)
change.

Arc moves (G2/G3) are not emulated. After an arc the logical X and Y are
unknown (infinite) until an absolute move or homing establishes them again.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable

from core.command import (CommandCode, CommentCommand, GCodeCommand, SimpleCommand,
                          UnknownCommand, parse_command)
from core.geometry import AXES, UNKNOWN, Point
from utils.errors import UnknownPositionError, UnsupportedCommandError


class PositionMode(Enum):
    ABSOLUTE = "G90"
    RELATIVE = "G91"


class ExtrusionMode(Enum):
    ABSOLUTE = "M82"
    RELATIVE = "M83"


@dataclass(frozen=True)
class MachineState:
    """Immutable printer state. Defaults match a controller at power on."""
    position_mode: PositionMode = PositionMode.ABSOLUTE
    extrusion_mode: ExtrusionMode = ExtrusionMode.RELATIVE

    # Position as the printer sees it
    logical_position: Point = Point.unknown()
    # Cumulative extrusion as the printer sees it
    extrusion: float = 0.0
    feed_rate: float = 0.0

    # physical = logical + offset
    physical_offset: Point = Point.zero()
    physical_extrusion_offset: float = 0.0

    # Whether the last motion command increased the cumulative extrusion
    extruded: bool = False

    @property
    def logical_position_known(self) -> bool:
        return self.logical_position.is_finite()

    @property
    def physical_position_known(self) -> bool:
        return self.logical_position_known and self.physical_offset.is_finite()

    @property
    def physical_position(self) -> Point:
        if not self.physical_position_known:
            raise UnknownPositionError(
                "Cannot get physical position when the logical position is unknown. "
                "The G-code may have moved in an arc, or called G92 (set position) "
                "before homing or after an arc, without re-establishing the position "
                "with an absolute move."
            )
        return self.logical_position + self.physical_offset

    @property
    def physical_extrusion(self) -> float:
        return self.extrusion + self.physical_extrusion_offset

    def convert_physical_to_logical(self, physical_position: Point) -> Point:
        """Logical coordinates that reach ``physical_position`` under the current offset."""
        return physical_position - self.physical_offset

    def execute_line(self, gcode_line: str) -> 'MachineState':
        return self.execute(parse_command(gcode_line))

    def execute_all(self, commands: Iterable[GCodeCommand]) -> 'MachineState':
        state = self
        for command in commands:
            state = state.execute(command)
        return state

    def execute(self, command: GCodeCommand) -> 'MachineState':
        """Return the state after ``command``. Comments and unknown lines change nothing."""
        if isinstance(command, (CommentCommand, UnknownCommand)):
            return self
        handler = _HANDLERS[command.code]
        result = handler(self, command)
        if command.is_move:
            result = replace(result, extruded=result.extrusion > self.extrusion)
        return result

    # Handlers, one per code family. Each returns a new state.

    def _handle_move(self, command: SimpleCommand) -> 'MachineState':
        """G0/G1 - rapid and linear moves are identical for state tracking."""
        args = command.args
        if self.position_mode == PositionMode.ABSOLUTE:
            position = Point(*(args.get(axis.upper(), self.logical_position.get_axis(axis))
                               for axis in AXES))
        else:
            position = self.logical_position + Point(*(args.get(axis.upper(), 0.0)
                                                       for axis in AXES))

        if self.extrusion_mode == ExtrusionMode.ABSOLUTE:
            extrusion = args.get('E', self.extrusion)
        else:
            extrusion = self.extrusion + args.get('E', 0.0)

        return replace(self, logical_position=position, extrusion=extrusion,
                       feed_rate=args.get('F', self.feed_rate))

    def _handle_arc(self, command: SimpleCommand) -> 'MachineState':
        """G2/G3 - not emulated, the end point in the XY plane becomes unknown."""
        position = replace(self.logical_position, x=UNKNOWN, y=UNKNOWN)
        return replace(self, logical_position=position,
                       feed_rate=command.args.get('F', self.feed_rate))

    def _handle_home(self, command: SimpleCommand) -> 'MachineState':
        """G28 - home all axes, or only the axes given."""
        args = command.args
        if 'O' in args:
            # Would need per-axis tracking of which axes are already trusted
            raise UnsupportedCommandError(
                "G28 O is not supported: cannot determine which axes are trusted")

        axes = [axis for axis in AXES if axis.upper() in args]
        if not axes:
            return replace(self, logical_position=Point.zero(), physical_offset=Point.zero())

        position = self.logical_position
        offset = self.physical_offset
        for axis in axes:
            position = position.with_axis(axis, 0.0)
            offset = offset.with_axis(axis, 0.0)
        return replace(self, logical_position=position, physical_offset=offset)

    def _handle_position_mode(self, command: SimpleCommand) -> 'MachineState':
        """G90/G91"""
        return replace(self, position_mode=PositionMode(command.code.value))

    def _handle_set_position(self, command: SimpleCommand) -> 'MachineState':
        """
        G92/G92.1 - declare the current position without moving.

        The offset absorbs the difference so that the physical position and
        extrusion are unchanged while the logical values become the declared
        ones.
        """
        args = command.args
        position = self.logical_position
        offset = self.physical_offset
        for axis in AXES:
            key = axis.upper()
            if key in args:
                declared = args[key]
                delta = declared - self.logical_position.get_axis(axis)
                offset = offset.with_axis(axis, self.physical_offset.get_axis(axis) - delta)
                position = position.with_axis(axis, declared)

        extrusion = self.extrusion
        extrusion_offset = self.physical_extrusion_offset
        if 'E' in args:
            extrusion = args['E']
            extrusion_offset = self.physical_extrusion_offset - (extrusion - self.extrusion)

        return replace(self, logical_position=position, physical_offset=offset,
                       extrusion=extrusion, physical_extrusion_offset=extrusion_offset)

    def _handle_extrusion_mode(self, command: SimpleCommand) -> 'MachineState':
        """M82/M83"""
        return replace(self, extrusion_mode=ExtrusionMode(command.code.value))

    def get_state_summary(self) -> Dict[str, Any]:
        """Get a summary of the current machine state for display."""
        summary = {
            'position_mode': self.position_mode.value,
            'extrusion_mode': self.extrusion_mode.value,
            'logical_position': self.logical_position.to_list(),
            'extrusion': self.extrusion,
            'physical_extrusion': self.physical_extrusion,
            'feed_rate': self.feed_rate,
            'physical_position': None,
        }
        if self.physical_position_known:
            summary['physical_position'] = self.physical_position.to_list()
        return summary


_HANDLERS: Dict[CommandCode, Callable[[MachineState, SimpleCommand], MachineState]] = {
    CommandCode.RAPID_MOVE: MachineState._handle_move,
    CommandCode.LINEAR_MOVE: MachineState._handle_move,
    CommandCode.ARC_CW: MachineState._handle_arc,
    CommandCode.ARC_CCW: MachineState._handle_arc,
    CommandCode.HOME: MachineState._handle_home,
    CommandCode.ABSOLUTE_POSITIONING: MachineState._handle_position_mode,
    CommandCode.RELATIVE_POSITIONING: MachineState._handle_position_mode,
    CommandCode.SET_POSITION: MachineState._handle_set_position,
    CommandCode.RESET_TO_NATIVE: MachineState._handle_set_position,
    CommandCode.ABSOLUTE_EXTRUSION: MachineState._handle_extrusion_mode,
    CommandCode.RELATIVE_EXTRUSION: MachineState._handle_extrusion_mode,
}

_missing = set(CommandCode) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"No machine state handler for {sorted(c.value for c in _missing)}")
