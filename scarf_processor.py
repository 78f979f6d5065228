"""
Main seam scarfing interface.
This is the primary entry point: G-code text and a configuration in,
rewritten G-code text out.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config.scarf_config import ScarfConfig
from core.command import (CommandCode, GCodeCommand, PROHIBITED_CODES, SimpleCommand,
                          UnknownCommand, leading_code, parse_command, stringify_program)
from core.loops import (ExtrusionRun, extract_extrusion_run, is_closed_loop,
                        loop_path_length, would_start_run)
from core.machine_state import MachineState
from core.safety import compute_safety_floor
from core.taper import FallbackToOriginal, scarf_loop
from utils.errors import (ErrorCollector, ErrorSeverity, ErrorType, GCodeError,
                          GCodeProcessingError, GCodeSyntaxError, ScarfError)

logger = logging.getLogger(__name__)


class ScarfProcessor:
    """
    Rewrites every closed extrusion loop of a program with a tapered overlap.

    Runs that are not loops, and loops that cannot be scarfed safely, are
    written back unchanged. Any fatal problem stops processing before output
    is produced and is raised as ``GCodeProcessingError``.
    """

    def __init__(self, config: Optional[ScarfConfig] = None):
        self.config = config or ScarfConfig()
        self.error_collector = ErrorCollector()
        self.safety_floor: Optional[float] = None
        self.final_state: Optional[MachineState] = None
        self._reset_statistics()

    def _reset_statistics(self):
        self.stats = {
            'total_lines': 0,
            'extrusion_runs': 0,
            'loops_found': 0,
            'loops_scarfed': 0,
            'loops_skipped': 0,
        }

    def process(self, gcode_text: str) -> str:
        """
        Process G-code text and return the rewritten program.

        Raises:
            GCodeProcessingError: if the program is invalid or unsafe to transform
        """
        self.config.validate()
        self.error_collector.clear()
        self.safety_floor = None
        self.final_state = None
        self._reset_statistics()

        newline = '\r\n' if '\r\n' in gcode_text else '\n'
        commands = self._parse(gcode_text.split(newline))
        self.stats['total_lines'] = len(commands)
        self._validate(commands)
        self._raise_if_fatal()

        try:
            self.safety_floor = compute_safety_floor(commands)
            output = self._transform(commands)
        except ScarfError as e:
            error = self.error_collector.add_error(None, str(e), ErrorType.RUNTIME,
                                                   ErrorSeverity.FATAL)
            raise GCodeProcessingError([error]) from e

        logger.info("Found %d loops in %d extrusion runs: %d scarfed, %d left unchanged",
                    self.stats['loops_found'], self.stats['extrusion_runs'],
                    self.stats['loops_scarfed'], self.stats['loops_skipped'])
        return stringify_program(output, newline)

    def _parse(self, lines: Sequence[str]) -> List[GCodeCommand]:
        commands = []
        for line_number, line in enumerate(lines, 1):
            try:
                commands.append(parse_command(line, line_number))
            except GCodeSyntaxError as e:
                self.error_collector.add_error(line_number, str(e), ErrorType.SYNTAX,
                                               ErrorSeverity.FATAL)
                commands.append(UnknownCommand(line, line_number))
        return commands

    def _validate(self, commands: Sequence[GCodeCommand]):
        """Reject commands that make the transform unsafe."""
        for command in commands:
            if isinstance(command, UnknownCommand):
                code = leading_code(command.content)
                if code in PROHIBITED_CODES:
                    self.error_collector.add_error(
                        command.line_number,
                        f"{code} ({PROHIBITED_CODES[code]}) is prohibited",
                        ErrorType.SEMANTIC, ErrorSeverity.FATAL)
            elif isinstance(command, SimpleCommand):
                if (command.code in (CommandCode.SET_POSITION, CommandCode.RESET_TO_NATIVE)
                        and command.has_arg('Z')):
                    self.error_collector.add_error(
                        command.line_number,
                        f"{command.code.value} may not set Z, the safety floor would be lost",
                        ErrorType.SEMANTIC, ErrorSeverity.FATAL)
                elif command.code == CommandCode.HOME and command.has_arg('O'):
                    self.error_collector.add_error(
                        command.line_number,
                        "G28 O is not supported: cannot determine which axes are trusted",
                        ErrorType.SEMANTIC, ErrorSeverity.FATAL)

    def _raise_if_fatal(self):
        if self.error_collector.has_fatal_errors():
            raise GCodeProcessingError(self.error_collector.get_fatal_errors())

    def _transform(self, commands: Sequence[GCodeCommand]) -> List[GCodeCommand]:
        state = MachineState()
        output: List[GCodeCommand] = []
        index = 0
        while index < len(commands):
            command = commands[index]
            if would_start_run(state, command):
                run = extract_extrusion_run(commands, index, state)
                emitted, state = self._process_run(run)
                output.extend(emitted)
                index += len(run)
                continue
            state = state.execute(command)
            output.append(command)
            index += 1
        self.final_state = state
        return output

    def _process_run(self, run: ExtrusionRun) -> Tuple[Sequence[GCodeCommand], MachineState]:
        self.stats['extrusion_runs'] += 1
        original = (run.commands, run.end_state)
        if not is_closed_loop(run, self.config.loop_tolerance):
            return original

        loop_length = loop_path_length(run)
        if loop_length < self.config.taper_resolution:
            logger.debug("Loop at line %s is too short to taper (%.3f)",
                         run.first_line, loop_length)
            return original

        self.stats['loops_found'] += 1
        result = scarf_loop(run, loop_length,
                            layer_height=self.config.layer_height,
                            overlap=self.config.overlap,
                            taper_resolution=self.config.taper_resolution,
                            floor=self.safety_floor)
        if isinstance(result, FallbackToOriginal):
            self.stats['loops_skipped'] += 1
            message = f"Loop left unchanged: {result.reason}"
            self.error_collector.add_warning(run.first_line, message)
            logger.warning("Line %s: %s", run.first_line, message)
            return original

        self.stats['loops_scarfed'] += 1
        return result.commands, result.end_state

    # Error and statistics access for the command line and GUI

    def get_all_errors(self) -> List[GCodeError]:
        return self.error_collector.get_all_errors()

    def get_warnings(self) -> List[GCodeError]:
        return self.error_collector.get_warnings()

    def get_statistics(self) -> Dict[str, Any]:
        final_state = self.final_state.get_state_summary() if self.final_state else None
        return {**self.stats, 'safety_floor': self.safety_floor, 'final_state': final_state}


def process_gcode(gcode_text: str, config: Optional[ScarfConfig] = None) -> str:
    """Rewrite ``gcode_text`` with scarfed seams. See ``ScarfProcessor``."""
    return ScarfProcessor(config).process(gcode_text)
