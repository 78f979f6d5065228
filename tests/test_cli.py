import json

import pytest

from core.taper import LOOP_START_MARKER
from scarf_cli import build_parser, default_output_path, main

SQUARE = "G28\r\nG0 X0 Y0 Z0.2\r\nG1 X10 Y0 E1\r\nG1 X10 Y10 E1\r\nG1 X0 Y10 E1\r\nG1 X0 Y0 E1\r\n"


@pytest.fixture
def square_file(tmp_path):
    path = tmp_path / "part.gcode"
    path.write_bytes(SQUARE.encode())
    return path


def test_default_output_path():
    assert default_output_path("/tmp/part.gcode").name == "part-processed.gcode"


def test_parser_defaults():
    args = build_parser().parse_args(["part.gcode"])
    assert args.preset == "default"
    assert args.output_file is None
    assert args.overlap is None


def test_writes_default_output(square_file):
    assert main([str(square_file)]) == 0
    output = (square_file.parent / "part-processed.gcode").read_bytes().decode()
    assert LOOP_START_MARKER in output
    assert "\r\n" in output
    assert "\n" not in output.replace("\r\n", "")


def test_explicit_output_and_overrides(square_file, tmp_path):
    out = tmp_path / "out.gcode"
    assert main([str(square_file), "-o", str(out), "--loop-tolerance", "0.01",
                 "--preset", "draft"]) == 0
    assert LOOP_START_MARKER in out.read_text()


def test_config_file(square_file, tmp_path):
    config = tmp_path / "scarf.json"
    config.write_text(json.dumps({"overlap": 1.0}))
    out = tmp_path / "out.gcode"
    assert main([str(square_file), "--config", str(config), "-o", str(out)]) == 0
    assert out.exists()


def test_invalid_parameter_exits(square_file):
    with pytest.raises(SystemExit) as exc_info:
        main([str(square_file), "--overlap", "0"])
    assert exc_info.value.code == 2


def test_missing_input(tmp_path):
    assert main([str(tmp_path / "missing.gcode")]) == 1


def test_prohibited_command_fails(tmp_path, caplog):
    path = tmp_path / "bad.gcode"
    path.write_text("G28\nG60\n")
    out = tmp_path / "out.gcode"
    assert main([str(path), "-o", str(out)]) == 1
    assert not out.exists()
    assert "Line 2" in caplog.text
