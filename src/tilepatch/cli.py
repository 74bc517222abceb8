"""
Command line interface.

    tilepatch [-z 5-12] [-b -180,-90,180,90] -t tiles.mbtiles -s script.py

The tiles file and script may also be given positionally. Exit status is
0 on success and 1 on any error.
"""

import argparse
import asyncio
import re
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import structlog

from . import __version__
from .exceptions import PreconditionError
from .monitoring.metrics import MetricsCollector
from .processing.tile_pipeline import TileTransformPipeline
from .processing.transform_invoker import load_transform
from .storage.mbtiles_store import MBTilesStore
from .tile_generation.tile_spec import GeoBoundingBox, ZoomRange
from .utils.config import Config, RunConfig
from .utils.logging import configure_logging
from .utils.tile_math import MAX_ZOOM, clamp

logger = structlog.get_logger()


def parse_zoom(expression: Optional[str]) -> ZoomRange:
    """
    Parse a zoom expression.

    Every integer in the string counts: none selects every zoom level, one
    selects that level, several select the span from the smallest to the
    largest. Values are capped to [0, MAX_ZOOM].
    """
    levels = sorted(int(v) for v in re.findall(r"\d+", expression or ""))
    if not levels:
        return ZoomRange.full()
    low, high = (int(clamp(v, 0, MAX_ZOOM)) for v in (levels[0], levels[-1]))
    return ZoomRange(low, high)


def parse_bbox(expression: Optional[str]) -> GeoBoundingBox:
    """Parse "west,south,east,north", clamped to the world."""
    if not expression:
        return GeoBoundingBox.world()

    parts = [p for p in re.split(r"[^0-9.\-+eE]+", expression.strip()) if p]
    if len(parts) != 4:
        raise PreconditionError(f"Invalid bounding box: {expression}")
    try:
        west, south, east, north = (float(p) for p in parts)
    except ValueError as e:
        raise PreconditionError(f"Invalid bounding box: {expression}") from e

    return GeoBoundingBox.from_sequence((
        clamp(west, -180.0, 180.0),
        clamp(south, -90.0, 90.0),
        clamp(east, -180.0, 180.0),
        clamp(north, -90.0, 90.0),
    ))


class ArgumentParser(argparse.ArgumentParser):
    """Argument parser reporting usage errors with exit status 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def join_bbox_values(argv: Sequence[str]) -> List[str]:
    """Attach a bbox value starting with a minus sign to its -b/--bbox flag."""
    joined = []
    arguments = iter(argv)
    for argument in arguments:
        if argument in ("-b", "--bbox"):
            value = next(arguments, None)
            if value is None:
                joined.append(argument)
            elif value.startswith("-"):
                joined.append(f"--bbox={value}")
            else:
                joined.extend((argument, value))
        else:
            joined.append(argument)
    return joined


def build_parser() -> argparse.ArgumentParser:
    parser = ArgumentParser(
        prog="tilepatch",
        description="Apply a Python transform to the vector tiles of an MBTiles file in place."
    )
    parser.add_argument("-z", "--zoom", help="zoom level or range, e.g. 5 or 5-12 (default: 0-24)")
    parser.add_argument(
        "-b", "--bbox",
        help="bounding box west,south,east,north (default: -180,-90,180,90)"
    )
    parser.add_argument("-t", "--tiles", help="MBTiles file")
    parser.add_argument("-s", "--script", help="transform script")
    parser.add_argument("-f", "--function", help="name of the transform callable in the script")
    parser.add_argument("-c", "--concurrency", type=int, help="tiles processed at the same time (default: 1)")
    parser.add_argument(
        "--skip-missing", action="store_true",
        help="skip tiles missing from the dataset instead of failing"
    )
    parser.add_argument("--dry-run", action="store_true", help="only report the number of tiles")
    parser.add_argument("--log-format", choices=("console", "json"), help="log output format")
    parser.add_argument("-v", "--verbose", action="store_true", help="show debug output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("paths", nargs="*", help="MBTiles file and transform script")
    return parser


def _pick(explicit: Optional[str], paths: Sequence[str], suffix: str) -> Optional[str]:
    if explicit:
        return explicit
    return next((p for p in paths if p.lower().endswith(suffix)), None)


def build_run_config(args: argparse.Namespace, config: Config) -> RunConfig:
    """Validate arguments and assemble the run configuration."""
    tiles = _pick(args.tiles, args.paths, ".mbtiles")
    script = _pick(args.script, args.paths, ".py")

    if not tiles:
        raise PreconditionError("no mbtiles file specified")
    if not script:
        raise PreconditionError("no script specified")

    tiles_path = Path(tiles).resolve()
    script_path = Path(script).resolve()
    if not tiles_path.is_file():
        raise PreconditionError(f"mbtiles file not found: {tiles_path}")
    if not script_path.is_file():
        raise PreconditionError(f"script file not found: {script_path}")

    if args.concurrency is not None and args.concurrency < 1:
        raise PreconditionError("concurrency must be at least 1")

    transform = load_transform(script_path, args.function or config.transform_function)

    return RunConfig.from_config(
        config,
        source=tiles_path,
        transform=transform,
        zoom=parse_zoom(args.zoom),
        bbox=parse_bbox(args.bbox),
        concurrency=args.concurrency or config.concurrency,
        skip_missing=config.skip_missing or args.skip_missing,
        dry_run=args.dry_run,
    )


def run(run_config: RunConfig, metrics: MetricsCollector):
    with MBTilesStore(run_config.source) as store:
        pipeline = TileTransformPipeline(store, run_config, metrics=metrics)
        return asyncio.run(pipeline.run())


def main(argv: Optional[List[str]] = None) -> int:
    try:
        args = build_parser().parse_args(join_bbox_values(sys.argv[1:] if argv is None else argv))
    except SystemExit as e:
        # --help and --version exit 0, usage errors exit 1
        return e.code or 0

    try:
        config = Config.from_env()
    except ValueError as e:
        print(f"Error: invalid environment configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(
        "DEBUG" if args.verbose else config.log_level,
        args.log_format or config.log_format
    )

    metrics = MetricsCollector(pushgateway=config.pushgateway)
    try:
        run_config = build_run_config(args, config)
        result = run(run_config, metrics)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        metrics.push_to_prometheus_gateway()

    if result.dry_run:
        print(f"{result.tile_count} tiles in zoom {result.zoom} within {result.bbox}")
    else:
        logger.info("Done", **result.as_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())
