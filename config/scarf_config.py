"""
Configuration for the seam scarfing post-processor.
A small dataclass plus named presets and JSON persistence.
"""
import json
import logging
import math
from dataclasses import asdict, dataclass, fields, replace

logger = logging.getLogger(__name__)


@dataclass
class ScarfConfig:
    """Tuning parameters. Lengths are in the printer's units (normally mm)."""
    name: str = "default"

    # Vertical step the starting taper ramps down by
    layer_height: float = 0.2
    # Target path length to taper over
    overlap: float = 2.0
    # Max end-to-start distance of a run that still counts as a closed loop
    loop_tolerance: float = 0.1
    # Max length of a single step inside a taper
    taper_resolution: float = 0.5

    def validate(self):
        """Raise ValueError if a parameter is unusable."""
        values = {
            'layer_height': self.layer_height,
            'overlap': self.overlap,
            'loop_tolerance': self.loop_tolerance,
            'taper_resolution': self.taper_resolution,
        }
        for key, value in values.items():
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValueError(f"{key} must be a finite number, got {value!r}")
        if self.layer_height < 0:
            raise ValueError(f"layer_height must not be negative, got {self.layer_height}")
        for key in ('overlap', 'loop_tolerance', 'taper_resolution'):
            if values[key] <= 0:
                raise ValueError(f"{key} must be positive, got {values[key]}")


class ConfigManager:
    """Manages scarf configurations with simple presets."""

    @staticmethod
    def default() -> ScarfConfig:
        """Settings for a 0.4 mm nozzle at 0.2 mm layers."""
        return ScarfConfig()

    @staticmethod
    def fine() -> ScarfConfig:
        """Thin layers, longer and smoother taper."""
        return ScarfConfig(name="fine", layer_height=0.1, overlap=3.0,
                           loop_tolerance=0.05, taper_resolution=0.25)

    @staticmethod
    def draft() -> ScarfConfig:
        """Thick layers, short and coarse taper."""
        return ScarfConfig(name="draft", layer_height=0.3, overlap=1.5,
                           loop_tolerance=0.15, taper_resolution=1.0)

    @staticmethod
    def preset_names():
        return ["default", "fine", "draft"]

    @staticmethod
    def get_config(name: str) -> ScarfConfig:
        """Get configuration by preset name."""
        configs = {
            "default": ConfigManager.default,
            "fine": ConfigManager.fine,
            "draft": ConfigManager.draft,
        }
        factory = configs.get(name.lower())
        if factory is None:
            raise KeyError(f"Unknown preset '{name}', expected one of {ConfigManager.preset_names()}")
        return factory()

    @staticmethod
    def override(config: ScarfConfig, **values) -> ScarfConfig:
        """Copy of ``config`` with every value that is not None replaced."""
        return replace(config, **{key: value for key, value in values.items() if value is not None})

    @staticmethod
    def save_config(config: ScarfConfig, filepath: str):
        """Save configuration to JSON file."""
        with open(filepath, 'w') as f:
            json.dump(asdict(config), f, indent=2)

    @staticmethod
    def load_config(filepath: str) -> ScarfConfig:
        """
        Load configuration from JSON file.

        Keys that are missing fall back to the defaults, unknown keys are
        ignored. The result is validated.
        """
        with open(filepath, 'r') as f:
            data = json.load(f)

        known = {field.name for field in fields(ScarfConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown configuration keys in %s: %s", filepath, unknown)

        config = ScarfConfig(**{key: value for key, value in data.items() if key in known})
        config.validate()
        return config
