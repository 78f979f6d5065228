"""
Command model: parses single G-code lines into typed commands and renders them
back to text.

Only a fixed set of codes is parsed. Vendor specific codes can use completely
different argument grammars (some take arbitrary strings), so anything outside
``CommandCode`` is kept as an opaque line and written back byte for byte.
"""
import re
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from utils.errors import GCodeSyntaxError


class CommandCode(Enum):
    RAPID_MOVE = "G0"
    LINEAR_MOVE = "G1"
    ARC_CW = "G2"
    ARC_CCW = "G3"
    HOME = "G28"
    ABSOLUTE_POSITIONING = "G90"
    RELATIVE_POSITIONING = "G91"
    SET_POSITION = "G92"
    RESET_TO_NATIVE = "G92.1"
    ABSOLUTE_EXTRUSION = "M82"
    RELATIVE_EXTRUSION = "M83"


MOVE_CODES = {CommandCode.RAPID_MOVE, CommandCode.LINEAR_MOVE}
ARC_CODES = {CommandCode.ARC_CW, CommandCode.ARC_CCW}

# Codes that change how logical coordinates map onto the physical frame
COORDINATE_SYSTEM_CODES = {
    CommandCode.HOME,
    CommandCode.ABSOLUTE_POSITIONING,
    CommandCode.RELATIVE_POSITIONING,
    CommandCode.SET_POSITION,
    CommandCode.RESET_TO_NATIVE,
}

# These codes could drive the nozzle into the bed once the program around
# them has been rewritten, so a program containing them is refused.
PROHIBITED_CODES = {
    'G60': 'Save current position',
    'G61': 'Restore saved position',
}

_CODES_BY_TEXT = {code.value: code for code in CommandCode}

ARGUMENT_PATTERN = re.compile(r'^([A-Za-z])([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)?$')

# Decimal places used when rendering an argument
ARGUMENT_PRECISION = {'X': 3, 'Y': 3, 'Z': 3, 'E': 5}
DEFAULT_PRECISION = 0


@dataclass(frozen=True)
class SimpleCommand:
    """A recognized command with its numeric arguments."""
    code: CommandCode
    args: Dict[str, float] = field(default_factory=dict)
    comment: Optional[str] = None
    line_number: Optional[int] = field(default=None, compare=False)

    @property
    def is_move(self) -> bool:
        return self.code in MOVE_CODES

    @property
    def is_arc(self) -> bool:
        return self.code in ARC_CODES

    @property
    def changes_coordinate_system(self) -> bool:
        return self.code in COORDINATE_SYSTEM_CODES

    def has_arg(self, key: str) -> bool:
        return key in self.args

    def get_arg(self, key: str, default: Optional[float] = None) -> Optional[float]:
        return self.args.get(key, default)


@dataclass(frozen=True)
class CommentCommand:
    """A full-line comment. ``comment`` excludes the leading semicolon."""
    comment: str
    line_number: Optional[int] = field(default=None, compare=False)


@dataclass(frozen=True)
class UnknownCommand:
    """Any other line, kept verbatim."""
    content: str
    line_number: Optional[int] = field(default=None, compare=False)


GCodeCommand = Union[SimpleCommand, CommentCommand, UnknownCommand]


def leading_code(line: str) -> Optional[str]:
    """Return the first token of a line with any trailing comment removed."""
    tokens = line.split(';', 1)[0].split()
    return tokens[0] if tokens else None


def parse_command(line: str, line_number: Optional[int] = None) -> GCodeCommand:
    """Parse one line of G-code."""
    if line.startswith(';'):
        return CommentCommand(line[1:], line_number)

    code = _CODES_BY_TEXT.get(leading_code(line))
    if code is None:
        return UnknownCommand(line, line_number)

    before_comment, separator, comment = line.partition(';')
    args: Dict[str, float] = {}
    for token in before_comment.split()[1:]:
        match = ARGUMENT_PATTERN.match(token)
        if not match:
            raise GCodeSyntaxError(f"Invalid argument '{token}' for {code.value}", line_number)
        # A bare letter (as in "G28 X Y") counts as zero
        args[match.group(1).upper()] = float(match.group(2)) if match.group(2) else 0.0

    # G92.1 resets to native coordinates, which declares all axes as zero
    if code == CommandCode.RESET_TO_NATIVE:
        args.update({'X': 0.0, 'Y': 0.0, 'Z': 0.0})

    return SimpleCommand(code, args, comment if separator else None, line_number)


def parse_program(text: str, newline: str = '\n') -> List[GCodeCommand]:
    """Parse a whole program. Line numbers start at 1."""
    return [parse_command(line, number)
            for number, line in enumerate(text.split(newline), 1)]


def format_argument(key: str, value: float) -> str:
    precision = ARGUMENT_PRECISION.get(key, DEFAULT_PRECISION)
    text = f"{value:.{precision}f}"
    # Rounding tiny negative values must not print as "-0.000"
    if text.startswith('-') and float(text) == 0:
        text = text[1:]
    return f"{key}{text}"


def stringify_command(command: GCodeCommand) -> str:
    """Render a command back to a line of G-code."""
    if isinstance(command, CommentCommand):
        return f";{command.comment}"
    if isinstance(command, UnknownCommand):
        return command.content

    parts = [command.code.value]
    parts.extend(format_argument(key, value) for key, value in command.args.items())
    text = ' '.join(parts)
    if command.comment:
        text += f";{command.comment}"
    return text


def stringify_program(commands: List[GCodeCommand], newline: str = '\n') -> str:
    return newline.join(stringify_command(command) for command in commands)


# Constructors for synthesized commands

def rapid_move(comment: Optional[str] = None, **args: float) -> SimpleCommand:
    return SimpleCommand(CommandCode.RAPID_MOVE, dict(args), comment)


def linear_move(comment: Optional[str] = None, **args: float) -> SimpleCommand:
    return SimpleCommand(CommandCode.LINEAR_MOVE, dict(args), comment)


def set_position(comment: Optional[str] = None, **args: float) -> SimpleCommand:
    return SimpleCommand(CommandCode.SET_POSITION, dict(args), comment)


def comment(text: str) -> CommentCommand:
    return CommentCommand(text)
