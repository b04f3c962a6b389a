"""CLI entry point for boundary delivery.

Usage:
    python -m boundaries check
    python -m boundaries resolve 48.8566 2.3522 --zoom 6
    python -m boundaries viewport -10 35 30 60 --zoom 5
    python -m boundaries viewport -10 35 30 60 --zoom 6 --country FR
    python -m boundaries tiles -10 35 30 60 --zoom 3

The backend is configured through BOUNDARY_BACKEND_URL and
BOUNDARY_BACKEND_KEY (environment or .env).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from boundaries.lib.config import BoundaryConfig, BoundarySettings
from boundaries.lib.config_loader import load_config
from boundaries.lib.diagnostics import check_backend_setup
from boundaries.lib.errors import BoundaryError
from boundaries.lib.events import LOAD_ERROR, BoundaryEvent, BoundaryLoadFailed
from boundaries.lib.logging import setup_logging
from boundaries.lib.manager import BoundaryManager
from boundaries.lib.models import BBox, RegionKind, Viewport, features_to_geojson
from boundaries.lib.supabase import SupabaseBackend

logger = logging.getLogger(__name__)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


async def _run_check(backend: SupabaseBackend, args: argparse.Namespace, config: BoundaryConfig) -> int:
    report = await check_backend_setup(backend)
    _print_json(report.to_dict())
    return 0 if report.valid else 1


async def _run_resolve(backend: SupabaseBackend, args: argparse.Namespace, config: BoundaryConfig) -> int:
    async with BoundaryManager(backend, config) as manager:
        result = await manager.resolver.resolve(args.lat, args.lng, args.zoom)
    _print_json(result.to_dict())
    return 0


async def _run_viewport(backend: SupabaseBackend, args: argparse.Namespace, config: BoundaryConfig) -> int:
    viewport = Viewport(BBox.from_sequence(args.bbox), args.zoom)
    failures: List[BoundaryLoadFailed] = []

    def on_error(event: BoundaryEvent) -> None:
        if isinstance(event, BoundaryLoadFailed):
            failures.append(event)

    async with BoundaryManager(backend, config, country_filter=args.country) as manager:
        manager.subscribe(LOAD_ERROR, on_error)
        await manager.on_viewport_changed(viewport)

        output = {}
        for kind in RegionKind:
            layer = manager.layer(kind)
            entry = layer.to_dict()
            if layer.features:
                entry["geojson"] = features_to_geojson(layer.features)
            output[kind.plural] = entry

    _print_json(output)
    for failure in failures:
        logger.error("%s: %s", failure.kind.plural if failure.kind else "layer", failure.error)
    return 1 if failures else 0


async def _run_tiles(backend: SupabaseBackend, args: argparse.Namespace, config: BoundaryConfig) -> int:
    bbox = BBox.from_sequence(args.bbox)
    async with BoundaryManager(backend, config) as manager:
        tiles = await manager.tiles.preload(bbox, args.zoom, args.kind)

    _print_json(
        [
            {"z": z, "x": x, "y": y, "bytes": len(data) if data else 0}
            for (z, x, y), data in tiles.items()
        ]
    )
    missing = sum(1 for data in tiles.values() if not data)
    logger.info("%d tile(s) without data", missing)
    return 0


COMMANDS = {
    "check": _run_check,
    "resolve": _run_resolve,
    "viewport": _run_viewport,
    "tiles": _run_tiles,
}


async def _dispatch(args: argparse.Namespace, settings: BoundarySettings) -> int:
    config = load_config(args.config or settings.config_path)
    backend = SupabaseBackend.from_settings(settings)
    async with backend:
        return await COMMANDS[args.command](backend, args, config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="boundary-foundry",
        description="Query administrative boundaries from a spatial backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Verify the GIS schema and functions are installed
    boundary-foundry check

    # Country and state at a point
    boundary-foundry resolve 48.8566 2.3522 --zoom 6

    # Boundaries visible in a viewport, as GeoJSON
    boundary-foundry viewport -10 35 30 60 --zoom 5

    # Vector tiles covering a viewport
    boundary-foundry tiles -10 35 30 60 --zoom 3
        """,
    )
    parser.add_argument("--config", help="YAML boundary configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument("--log-file", help="Write logs to a file in addition to console")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("check", help="Validate backend setup")

    resolve = commands.add_parser("resolve", help="Resolve country/state at a point")
    resolve.add_argument("lat", type=float)
    resolve.add_argument("lng", type=float)
    resolve.add_argument("--zoom", type=float, default=10.0, help="Map zoom (default: 10)")

    viewport = commands.add_parser("viewport", help="Load boundaries for a viewport")
    viewport.add_argument("bbox", type=float, nargs=4, metavar=("WEST", "SOUTH", "EAST", "NORTH"))
    viewport.add_argument("--zoom", type=float, required=True)
    viewport.add_argument("--country", help="Restrict states to one country (ISO code)")

    tiles = commands.add_parser("tiles", help="Fetch vector tiles covering a viewport")
    tiles.add_argument("bbox", type=float, nargs=4, metavar=("WEST", "SOUTH", "EAST", "NORTH"))
    tiles.add_argument("--zoom", type=int, required=True)
    tiles.add_argument(
        "--kind",
        default="auto",
        choices=["auto", "country", "state"],
        help="Tile layer (default: auto by zoom)",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = BoundarySettings()

    setup_logging(
        verbose=args.verbose,
        json_format=args.json_log or settings.log_format == "json",
        log_file=args.log_file or settings.log_file,
        level=settings.log_level,
    )

    try:
        exit_code = asyncio.run(_dispatch(args, settings))
    except BoundaryError as exc:
        logger.error("%s", exc)
        exit_code = 1
    except KeyboardInterrupt:
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
