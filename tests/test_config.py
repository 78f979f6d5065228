import json
import math

import pytest

from config.scarf_config import ConfigManager, ScarfConfig


def test_defaults_are_valid():
    config = ConfigManager.default()
    config.validate()
    assert config == ScarfConfig()


@pytest.mark.parametrize("name", ConfigManager.preset_names())
def test_presets_are_valid(name):
    config = ConfigManager.get_config(name)
    config.validate()
    assert config.name == name


def test_preset_lookup_ignores_case():
    assert ConfigManager.get_config("FINE") == ConfigManager.fine()


def test_unknown_preset():
    with pytest.raises(KeyError):
        ConfigManager.get_config("turbo")


@pytest.mark.parametrize("field, value", [
    ("layer_height", -0.1),
    ("overlap", 0),
    ("loop_tolerance", -1),
    ("taper_resolution", 0),
    ("overlap", math.nan),
    ("layer_height", math.inf),
    ("overlap", "2"),
])
def test_invalid_values(field, value):
    config = ScarfConfig(**{field: value})
    with pytest.raises(ValueError):
        config.validate()


def test_zero_layer_height_is_allowed():
    ScarfConfig(layer_height=0).validate()


def test_override_skips_none():
    config = ConfigManager.override(ConfigManager.fine(), overlap=5.0, layer_height=None)
    assert config.overlap == 5.0
    assert config.layer_height == ConfigManager.fine().layer_height


def test_save_and_load(tmp_path):
    path = tmp_path / "scarf.json"
    ConfigManager.save_config(ConfigManager.draft(), path)
    assert ConfigManager.load_config(path) == ConfigManager.draft()


def test_load_ignores_unknown_keys(tmp_path, caplog):
    path = tmp_path / "scarf.json"
    path.write_text(json.dumps({"overlap": 4.0, "seam_gap": 0.1}))
    config = ConfigManager.load_config(path)
    assert config.overlap == 4.0
    assert config.layer_height == ScarfConfig().layer_height
    assert "seam_gap" in caplog.text


def test_load_validates(tmp_path):
    path = tmp_path / "scarf.json"
    path.write_text(json.dumps({"taper_resolution": -1}))
    with pytest.raises(ValueError):
        ConfigManager.load_config(path)
