"""
Error definitions and handling for the seam scarfing post-processor.

Fatal problems are raised as ``ScarfError`` subclasses. Problems found while
validating a whole program are gathered in an ``ErrorCollector`` first so the
caller sees all of them at once.
"""
from enum import Enum
from dataclasses import dataclass
from typing import Optional, List


class ErrorType(Enum):
    SYNTAX = "syntax"
    SEMANTIC = "semantic"
    RUNTIME = "runtime"
    WARNING = "warning"


class ErrorSeverity(Enum):
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


@dataclass
class GCodeError:
    """Represents a problem found in a G-code program."""
    line_number: Optional[int]
    message: str
    error_type: ErrorType
    severity: ErrorSeverity = ErrorSeverity.ERROR

    def __str__(self):
        if self.line_number is None:
            return self.message
        return f"Line {self.line_number}: {self.message}"


class ScarfError(Exception):
    """Base class for every fatal condition raised by the post-processor."""


class GCodeSyntaxError(ScarfError):
    """A recognized command carries an argument that cannot be parsed."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"Line {line_number}: {message}"
        super().__init__(message)


class UnsupportedCommandError(ScarfError):
    """A recognized command uses a form the machine state cannot emulate."""


class UnknownPositionError(ScarfError):
    """The physical position was requested while it is not known."""


class SafetyFloorError(ScarfError):
    """The lowest commanded Z could not be established."""


class GCodeProcessingError(ScarfError):
    """Raised when a program cannot be processed. Carries every fatal error found."""

    def __init__(self, errors: List[GCodeError]):
        self.errors = list(errors)
        lines = [str(error) for error in self.errors]
        super().__init__("G-code processing failed:\n" + "\n".join(lines))


class ErrorCollector:
    """
    Gathers every problem found in one processing pass.

    Fatal entries stop the pass once validation is complete; warnings are
    advisory and are reported alongside the output.
    """

    def __init__(self):
        self.errors: List[GCodeError] = []

    def add_error(self, line_number: Optional[int], message: str,
                  error_type: ErrorType,
                  severity: ErrorSeverity = ErrorSeverity.ERROR) -> GCodeError:
        error = GCodeError(line_number, message, error_type, severity)
        self.errors.append(error)
        return error

    def add_warning(self, line_number: Optional[int], message: str) -> GCodeError:
        return self.add_error(line_number, message, ErrorType.WARNING, ErrorSeverity.WARNING)

    def _with_severity(self, severity: ErrorSeverity) -> List[GCodeError]:
        return [error for error in self.errors if error.severity == severity]

    def get_fatal_errors(self) -> List[GCodeError]:
        return self._with_severity(ErrorSeverity.FATAL)

    def get_warnings(self) -> List[GCodeError]:
        return self._with_severity(ErrorSeverity.WARNING)

    def has_fatal_errors(self) -> bool:
        return bool(self.get_fatal_errors())

    def clear(self):
        self.errors.clear()

    def get_all_errors(self) -> List[GCodeError]:
        """Every entry ordered by line; entries without a line come first."""
        return sorted(self.errors, key=lambda error: error.line_number or 0)
