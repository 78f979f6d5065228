import pytest

from core.command import parse_command, parse_program
from core.loops import extract_extrusion_run, is_closed_loop, loop_path_length, would_start_run
from core.machine_state import MachineState

SQUARE = """G28
G0 X0 Y0 Z0.2
G1 X10 Y0 E1
;perimeter
G1 X10 Y10 E1
G1 X0 Y10 E1
G1 X0 Y{closing} E1
G0 Z5"""


def square_run(closing=0.05):
    commands = parse_program(SQUARE.format(closing=closing))
    state = MachineState().execute_all(commands[:2])
    return extract_extrusion_run(commands, 2, state)


def test_would_start_run():
    state = MachineState().execute_line("G28")
    assert would_start_run(state, parse_command("G1 X1 E0.1"))
    assert not would_start_run(state, parse_command("G0 X1"))
    assert not would_start_run(state, parse_command("G1 X1 E-1"))
    assert not would_start_run(state, parse_command("M104 S200"))
    assert not would_start_run(state, parse_command(";G1 X1 E1"))


def test_run_keeps_inner_comments_and_stops_at_travel():
    run = square_run()
    assert len(run) == 5
    assert run.first_line == 3
    assert run.commands[1].comment == "perimeter"
    assert run.end_state.physical_position.y == pytest.approx(0.05)


def test_run_states():
    run = square_run()
    assert run.start_state.physical_position.z == pytest.approx(0.2)
    assert run.end_state.extrusion == pytest.approx(4)


def test_closed_loop():
    assert is_closed_loop(square_run(0.05), 0.1)


def test_open_run_is_not_a_loop():
    assert not is_closed_loop(square_run(1.0), 0.1)


def test_gap_equal_to_tolerance_is_not_closed():
    assert not is_closed_loop(square_run(0.1), 0.1)


def test_arc_is_not_a_loop():
    commands = parse_program("G28\nG0 X0 Y0 Z0.2\nG1 X10 E1\nG2 X0 Y0 I-5 J0 E1\nG1 X0 Y0 E1")
    state = MachineState().execute_all(commands[:2])
    run = extract_extrusion_run(commands, 2, state)
    assert len(run) == 3
    assert not is_closed_loop(run, 0.1)


def test_unknown_start_is_not_a_loop():
    commands = parse_program("G1 X10 E1\nG1 X0 E1")
    run = extract_extrusion_run(commands, 0, MachineState())
    assert not is_closed_loop(run, 0.1)


def test_z_change_is_not_a_loop():
    commands = parse_program("G28\nG0 X0 Y0 Z0.2\nG1 X10 E1\nG1 Y10 Z0.4 E1\nG1 X0 Y0 Z0.2 E1")
    state = MachineState().execute_all(commands[:2])
    run = extract_extrusion_run(commands, 2, state)
    assert not is_closed_loop(run, 0.1)


def test_loop_path_length():
    assert loop_path_length(square_run(0.05)) == pytest.approx(39.95)
