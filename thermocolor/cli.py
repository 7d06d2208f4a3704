"""
Command line interface.

Usage:
    # Colorize every scan position of a project
    thermocolor project.yaml thermal/ las/

    # Selected scan positions, outputs named after the scan position
    thermocolor project.yaml thermal/ las/ --scan-position ScanPos001 --use-scanpos-names

    # Defaults from a config file, overridden on the command line
    thermocolor project.yaml thermal/ las/ --config configs/default.yaml --max-temperature 0

    # Check calibrations and rasters without writing anything
    thermocolor project.yaml thermal/ las/ --dry-run
"""

import argparse
import logging
from typing import List, Optional

from .data.project import Project
from .errors import (
    CalibrationLookupError,
    ConfigurationError,
    PointSinkError,
    PointStreamError,
    RasterLookupError,
)
from .fusion.colorizer import ColorizeConfig, FileErrorPolicy, OutputNaming, StreamingColorizer
from .utils.logger import setup_logger

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="thermocolor",
        description="Colorize scanner point clouds with thermal images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("project", help="Project file (YAML)")
    parser.add_argument("image_dir", help="Directory with one thermal image folder per scan position")
    parser.add_argument("las_dir", help="Output directory for LAS files")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Config file with a 'colorize' section",
    )
    parser.add_argument(
        "--scan-position",
        dest="scan_positions",
        action="append",
        default=None,
        help="Scan position to colorize (repeatable, default: all)",
    )
    parser.add_argument("--min-reflectance", type=float, default=None,
                        help="Reflectance mapped to intensity 0 (default: -5)")
    parser.add_argument("--max-reflectance", type=float, default=None,
                        help="Reflectance mapped to intensity 65535 (default: 20)")
    parser.add_argument("--min-temperature", type=float, default=None,
                        help="Temperature (°C) mapped to blue (default: -40)")
    parser.add_argument("--max-temperature", type=float, default=None,
                        help="Temperature (°C) mapped to red (default: -20)")
    parser.add_argument(
        "--rotate",
        action="store_true",
        default=None,
        help="Thermal rasters are stored rotated by 90 degrees",
    )
    parser.add_argument(
        "--sync-to-pps",
        action="store_true",
        default=None,
        help="Only keep points synced to the PPS time source",
    )
    parser.add_argument(
        "--keep-without-thermal",
        action="store_true",
        default=None,
        help="Keep points no image sees (black, NaN temperature)",
    )
    parser.add_argument(
        "--use-scanpos-names",
        action="store_true",
        help="Name output files after scan positions instead of source files",
    )
    parser.add_argument(
        "--name-map",
        type=str,
        default=None,
        help="YAML file mapping image file names to project image names",
    )
    parser.add_argument(
        "--clamp-intensity",
        action="store_true",
        default=None,
        help="Saturate intensities outside the reflectance range instead of wrapping",
    )
    parser.add_argument("--chunk-size", type=int, default=None,
                        help="Points per streaming window (default: 100000)")
    parser.add_argument(
        "--on-file-error",
        type=str,
        default=None,
        choices=[policy.value for policy in FileErrorPolicy],
        help="Stop the run or continue with the next file on I/O errors (default: abort)",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        default=None,
        help="Replace existing output files",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the run and load all rasters, write nothing",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--log-file", type=str, default=None, help="Also log to this file")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ColorizeConfig:
    """Merge command line options over the optional config file."""
    overrides = {
        "image_dir": args.image_dir,
        "output_dir": args.las_dir,
        "scan_positions": args.scan_positions,
        "min_reflectance": args.min_reflectance,
        "max_reflectance": args.max_reflectance,
        "min_temperature": args.min_temperature,
        "max_temperature": args.max_temperature,
        "rotate": args.rotate,
        "sync_to_pps": args.sync_to_pps,
        "keep_without_thermal": args.keep_without_thermal,
        "output_naming": OutputNaming.SCAN_POSITION.value if args.use_scanpos_names else None,
        "name_map": args.name_map,
        "clamp_intensity": args.clamp_intensity,
        "chunk_size": args.chunk_size,
        "on_file_error": args.on_file_error,
        "overwrite": args.overwrite,
    }
    if args.config:
        return ColorizeConfig.from_file(args.config, overrides)
    return ColorizeConfig.from_dict(overrides)


def dry_run(colorizer: StreamingColorizer) -> None:
    """Resolve every binding and destination without opening point files."""
    for scan_position in colorizer.validate():
        bindings = colorizer.bindings_for(scan_position) or ()
        logger.info(f"{scan_position.name}: {len(bindings)} image(s)")
        for source in scan_position.point_files:
            logger.info(f"  {source} -> {colorizer.output_path_for(scan_position, source)}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logger(level=args.log_level, log_file=args.log_file)

    try:
        config = build_config(args)
        project = Project.from_path(args.project)
        logger.info(f"Loaded {project}")

        colorizer = StreamingColorizer(project, config)
        if args.dry_run:
            dry_run(colorizer)
            return EXIT_OK

        summary = colorizer.run(progress=not args.no_progress)
    except (ConfigurationError, CalibrationLookupError, FileNotFoundError) as exc:
        logger.error(f"Invalid run: {exc}")
        return EXIT_INVALID
    except (PointStreamError, PointSinkError, RasterLookupError) as exc:
        logger.error(f"Run aborted: {exc}")
        return EXIT_FAILED

    for failed in summary.failed:
        logger.error(f"Failed: {failed.source}: {failed.error}")
    return EXIT_FAILED if summary.failed else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
