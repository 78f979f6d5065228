import pytest

from config.scarf_config import ScarfConfig
from core.command import SimpleCommand, parse_program, stringify_program
from core.taper import LOOP_END_MARKER, LOOP_START_MARKER
from scarf_processor import ScarfProcessor, process_gcode
from utils.errors import ErrorSeverity, GCodeProcessingError

CONFIG = ScarfConfig(layer_height=0.2, overlap=2.0, loop_tolerance=0.1, taper_resolution=0.5)

SQUARE = """;generated by slicer
M140 S60
G28
G90
M83
G0 X0 Y0 Z0.2 F6000
G1 X10 Y0 E1 F1800
G1 X10 Y10 E1
G1 X0 Y10 E1
G1 X0 Y{closing} E1
G0 Z5
M84"""


def canonical(text):
    return stringify_program(parse_program(text))


def z_values(text):
    return [c.args['Z'] for c in parse_program(text)
            if isinstance(c, SimpleCommand) and 'Z' in c.args]


def test_closed_square_is_scarfed():
    processor = ScarfProcessor(CONFIG)
    output = processor.process(SQUARE.format(closing=0.05))
    lines = output.split('\n')
    assert ';' + LOOP_START_MARKER in lines
    assert ';' + LOOP_END_MARKER in lines
    assert lines.index(';' + LOOP_START_MARKER) < lines.index(';' + LOOP_END_MARKER)
    assert lines[-2:] == ["G0 Z5.000", "M84"]

    stats = processor.get_statistics()
    assert stats['extrusion_runs'] == 1
    assert stats['loops_found'] == 1
    assert stats['loops_scarfed'] == 1
    assert stats['safety_floor'] == 0.0


def test_no_z_below_program_minimum():
    text = SQUARE.format(closing=0.05)
    output = process_gcode(text, ScarfConfig(layer_height=0.5, overlap=2.0,
                                             loop_tolerance=0.1, taper_resolution=0.5))
    assert min(z_values(output)) >= min(z_values(text) + [0.0])


def test_total_extrusion_is_preserved():
    output = process_gcode(SQUARE.format(closing=0.05), CONFIG)
    total = sum(c.args.get('E', 0) for c in parse_program(output)
                if isinstance(c, SimpleCommand) and c.is_move)
    assert total == pytest.approx(4.0)


def test_open_square_is_unchanged():
    text = SQUARE.format(closing=1.0)
    processor = ScarfProcessor(CONFIG)
    output = processor.process(text)
    assert output == canonical(text)
    assert LOOP_START_MARKER not in output
    assert processor.get_statistics()['loops_found'] == 0


def test_arc_before_position_is_known():
    text = """G28
G0 Z0.2
G2 X5 Y5 I1 J1
G1 X10 E1
G1 X10 Y10 E1
G1 X0 Y10 E1
G1 X10 Y0 E1"""
    assert process_gcode(text, CONFIG) == canonical(text)


def test_passthrough_lines_are_byte_identical():
    text = ";FLAVOR:Marlin\nM862.3 P \"MK3S\"\n\nM104 S215 ; hotend\nT0\n;end"
    assert process_gcode(text, CONFIG) == text


def test_crlf_is_preserved():
    text = SQUARE.format(closing=0.05).replace('\n', '\r\n')
    output = process_gcode(text, CONFIG)
    assert '\r\n' in output
    assert '\n' not in output.replace('\r\n', '')


def test_trailing_newline_is_preserved():
    text = "G28\nG0 Z1\n"
    assert process_gcode(text, CONFIG) == "G28\nG0 Z1.000\n"


def test_two_loops():
    square = SQUARE.format(closing=0)
    second = "\nG0 X0 Y0 Z0.4\nG1 X10 Y0 E1\nG1 X10 Y10 E1\nG1 X0 Y10 E1\nG1 X0 Y0 E1"
    processor = ScarfProcessor(CONFIG)
    output = processor.process(square + second)
    assert output.count(LOOP_START_MARKER) == 2
    assert processor.get_statistics()['loops_scarfed'] == 2


def test_loop_shorter_than_resolution_is_unchanged():
    text = "G28\nG0 X0 Y0 Z0.2\nG1 X0.1 E0.01\nG1 Y0.1 E0.01\nG1 X0 E0.01\nG1 Y0 E0.01"
    assert process_gcode(text, CONFIG) == canonical(text)


def test_fallback_records_warning():
    text = """G28
G0 X0 Y0 Z0.2
G1 X1 Y0 E0.1
G92 E0
G1 X10 Y0 E0.9
G1 X10 Y10 E1
G1 X0 Y10 E1
G1 X0 Y0 E1"""
    processor = ScarfProcessor(CONFIG)
    output = processor.process(text)
    assert output == canonical(text)
    warnings = processor.get_warnings()
    assert len(warnings) == 1
    assert warnings[0].line_number == 3
    assert warnings[0].severity == ErrorSeverity.WARNING
    assert processor.get_statistics()['loops_skipped'] == 1


def test_absolute_extrusion_program():
    text = """G28
M82
G0 X0 Y0 Z0.2
G1 X10 Y0 E1
G1 X10 Y10 E2
G1 X0 Y10 E3
G1 X0 Y0 E4
G0 Z1
G1 X5 E5"""
    output = process_gcode(text, CONFIG)
    lines = output.split('\n')
    assert "G92 E0.20000" in lines
    assert "G92 E4.00000" in lines
    # Everything after the loop continues from the original extruder position
    assert lines[-1] == "G1 X5.000 E5.00000"


@pytest.mark.parametrize("line", ["G60", "G61 X Y", "G60 S1 ; save"])
def test_prohibited_codes(line):
    with pytest.raises(GCodeProcessingError) as exc_info:
        process_gcode(f"G28\n{line}\nG1 X1 E1", CONFIG)
    assert exc_info.value.errors[0].line_number == 2
    assert "prohibited" in str(exc_info.value)


@pytest.mark.parametrize("line", ["G92 Z0", "G92.1", "G28 O"])
def test_unsafe_coordinate_commands(line):
    with pytest.raises(GCodeProcessingError):
        process_gcode(f"G28\n{line}", CONFIG)


def test_set_position_without_z_is_allowed():
    assert process_gcode("G28\nG92 E0", CONFIG) == "G28\nG92 E0.00000"


def test_syntax_error_is_fatal():
    processor = ScarfProcessor(CONFIG)
    with pytest.raises(GCodeProcessingError) as exc_info:
        processor.process("G28\nG1 X1 Yabc\nG1 X2 E\nG60")
    lines = [error.line_number for error in exc_info.value.errors]
    assert lines == [2, 4]
    assert all(e.severity == ErrorSeverity.FATAL for e in processor.get_all_errors())


def test_invalid_config_is_rejected():
    with pytest.raises(ValueError):
        process_gcode("G28", ScarfConfig(taper_resolution=0))


def test_processor_can_be_reused():
    processor = ScarfProcessor(CONFIG)
    with pytest.raises(GCodeProcessingError):
        processor.process("G60")
    assert processor.process("G28") == "G28"
    assert processor.get_all_errors() == []


def test_statistics_include_final_state():
    processor = ScarfProcessor(CONFIG)
    processor.process(SQUARE.format(closing=0.05))
    final = processor.get_statistics()['final_state']
    assert final['physical_position'] == pytest.approx([2.0, 0.0, 5.0])
    assert final['extrusion_mode'] == "M83"


def test_prime_before_loop_is_not_moved_to_the_seam():
    text = SQUARE.format(closing=0.05).replace("G1 X10 Y0 E1 F1800", "G1 E0.8 F2100\nG1 X10 Y0 E1")
    output = process_gcode(text, CONFIG)
    lines = output.split('\n')
    start = lines.index(';' + LOOP_START_MARKER)
    assert lines[start + 1] == "G1 X0.000 Y0.000 Z0.000 F2100"
    assert lines[start + 2] == "G1 E0.80000 F2100"
    assert lines[start + 3] == "G1 X0.500 Y0.000 Z0.050 E0.01250"
    assert [line for line in lines if line.startswith("G1 E")] == ["G1 E0.80000 F2100"]


def test_loop_under_position_offset():
    text = """G28
G90
M83
G0 X0 Y0 Z0.2
G92 X100 Y100
G1 X110 Y100 E1
G1 X110 Y110 E1
G1 X100 Y110 E1
G1 X100 Y100 E1"""
    output = process_gcode(text, CONFIG)
    lines = output.split('\n')
    start = lines.index(';' + LOOP_START_MARKER)
    assert lines[start + 1] == "G1 X100.000 Y100.000 Z0.000"
    assert lines[start + 2] == "G1 X100.500 Y100.000 Z0.050 E0.01250"
    assert "G1 X100.500 Y100.000 E0.03750" in lines
    assert not any(line.startswith("G1 X0.500") for line in lines)
