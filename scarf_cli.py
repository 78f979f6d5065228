"""
Command line entry point.

    python scarf_cli.py part.gcode -o part-scarfed.gcode --overlap 3
"""
import argparse
import logging
import sys
from pathlib import Path

from config.scarf_config import ConfigManager
from scarf_processor import ScarfProcessor
from utils.errors import GCodeProcessingError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Seam scarfing G-code post-processor\n\n'
                    'Hides the seam of closed extrusion loops by overlapping the start and\n'
                    'end of each loop and tapering extrusion over the overlap.',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('input_file', help='Input G-code file')
    parser.add_argument('-o', '--output', dest='output_file',
                        help='Output G-code file (default: <input>-processed.gcode)')
    parser.add_argument('--preset', choices=ConfigManager.preset_names(), default='default',
                        help='Named parameter preset to start from')
    parser.add_argument('--config', dest='config_file',
                        help='JSON configuration file, used instead of --preset')
    parser.add_argument('--layer-height', type=float,
                        help='Vertical step the starting taper ramps down by')
    parser.add_argument('--overlap', type=float,
                        help='Path length to taper over')
    parser.add_argument('--loop-tolerance', type=float,
                        help='Max end-to-start distance of a closed loop')
    parser.add_argument('--taper-resolution', type=float,
                        help='Max length of one step inside a taper')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Log progress (-v) or every loop (-vv)')
    return parser


def default_output_path(input_file: str) -> Path:
    path = Path(input_file)
    return path.with_name(f"{path.stem}-processed.gcode")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')

    try:
        if args.config_file:
            config = ConfigManager.load_config(args.config_file)
        else:
            config = ConfigManager.get_config(args.preset)
        config = ConfigManager.override(
            config,
            layer_height=args.layer_height,
            overlap=args.overlap,
            loop_tolerance=args.loop_tolerance,
            taper_resolution=args.taper_resolution,
        )
        config.validate()
    except (OSError, ValueError) as e:
        parser.error(str(e))

    input_path = Path(args.input_file)
    output_path = Path(args.output_file) if args.output_file else default_output_path(args.input_file)

    try:
        # newline='' keeps CRLF line endings intact
        with open(input_path, 'r', newline='') as f:
            gcode_text = f.read()
    except OSError as e:
        logger.error("Cannot read %s: %s", input_path, e)
        return 1

    processor = ScarfProcessor(config)
    try:
        output = processor.process(gcode_text)
    except GCodeProcessingError as e:
        for error in e.errors:
            logger.error("%s", error)
        return 1

    with open(output_path, 'w', newline='') as f:
        f.write(output)

    stats = processor.get_statistics()
    logger.info("Wrote %s (%d of %d loops scarfed)", output_path,
                stats['loops_scarfed'], stats['loops_found'])
    return 0


if __name__ == '__main__':
    sys.exit(main())
