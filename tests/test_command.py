import pytest

from core.command import (CommandCode, CommentCommand, SimpleCommand, UnknownCommand, comment,
                          format_argument, leading_code, linear_move, parse_command,
                          parse_program, rapid_move, set_position, stringify_command,
                          stringify_program)
from utils.errors import GCodeSyntaxError


def test_parse_linear_move():
    command = parse_command("G1 X10 Y-2.5 E0.04 F1800", 7)
    assert isinstance(command, SimpleCommand)
    assert command.code == CommandCode.LINEAR_MOVE
    assert command.args == {'X': 10.0, 'Y': -2.5, 'E': 0.04, 'F': 1800.0}
    assert command.comment is None
    assert command.line_number == 7
    assert command.is_move


def test_parse_full_line_comment():
    command = parse_command(";LAYER:3")
    assert command == CommentCommand("LAYER:3")


def test_parse_trailing_comment():
    command = parse_command("G0 Z5 ; lift")
    assert command.args == {'Z': 5.0}
    assert command.comment == " lift"


def test_last_argument_wins():
    assert parse_command("G1 X1 X2").args == {'X': 2.0}


def test_lowercase_argument_letters():
    assert parse_command("G1 x1 e.5").args == {'X': 1.0, 'E': 0.5}


def test_unrecognized_code_is_passthrough():
    line = "M862.3 P \"MK3S\" ; printer check"
    command = parse_command(line)
    assert command == UnknownCommand(line)
    assert stringify_command(command) == line


def test_code_prefix_is_not_a_match():
    # G10 and G1 share a prefix
    assert isinstance(parse_command("G10"), UnknownCommand)
    assert isinstance(parse_command("G92.3 X0"), UnknownCommand)


def test_blank_line_is_passthrough():
    command = parse_command("")
    assert command == UnknownCommand("")
    assert stringify_command(command) == ""


def test_bare_home():
    command = parse_command("G28")
    assert command.code == CommandCode.HOME
    assert command.args == {}


def test_home_axis_without_value_is_zero():
    assert parse_command("G28 X Y").args == {'X': 0.0, 'Y': 0.0}


def test_reset_to_native_declares_all_axes():
    command = parse_command("G92.1")
    assert command.code == CommandCode.RESET_TO_NATIVE
    assert command.args == {'X': 0.0, 'Y': 0.0, 'Z': 0.0}


def test_invalid_argument_raises():
    with pytest.raises(GCodeSyntaxError) as exc_info:
        parse_command("G1 X1..2", 12)
    assert exc_info.value.line_number == 12
    assert "Line 12" in str(exc_info.value)


def test_line_number_ignored_in_equality():
    assert parse_command("G1 X1", 1) == parse_command("G1 X1", 99)


def test_leading_code():
    assert leading_code("  G60 S0 ; save") == "G60"
    assert leading_code("; only a comment") is None
    assert leading_code("") is None


def test_stringify_precision():
    command = linear_move(X=1.23456, Y=2, E=0.123456789, F=1800.4)
    assert stringify_command(command) == "G1 X1.235 Y2.000 E0.12346 F1800"


def test_stringify_keeps_comment():
    assert stringify_command(parse_command("G0 Z5;lift")) == "G0 Z5.000;lift"


def test_negative_zero_is_not_printed():
    assert format_argument('X', -0.0001) == "X0.000"
    assert format_argument('X', -0.5) == "X-0.500"


def test_constructors():
    assert set_position(E=0).code == CommandCode.SET_POSITION
    assert set_position(E=0).args == {'E': 0}
    assert stringify_command(rapid_move(Z=5)) == "G0 Z5.000"
    assert stringify_command(comment("SCARF LOOP START")) == ";SCARF LOOP START"


def test_program_round_trip_for_comments_and_passthrough():
    text = ";generated\nM104 S210\n\nT0\n;end"
    assert stringify_program(parse_program(text)) == text


def test_parse_program_line_numbers():
    commands = parse_program("G28\nG90\nG1 X1")
    assert [c.line_number for c in commands] == [1, 2, 3]
