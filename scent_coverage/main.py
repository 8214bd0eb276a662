#!/usr/bin/env python3
"""
Scent Coverage - Command Line Entry Point

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Wire an observation source, the coverage tracker and the
coverage calculator together, poll for new observations, log coverage per
version change and write GeoJSON snapshots.

Execution Flow:
1. Build AppConfig from CONFIG + command-line overrides
2. Create the observation source and (optional) boundary provider
3. Poll CoverageTracker.current() / CoverageCalculator.stats()
4. Export unified / rovers / detections GeoJSON + coverage_stats.json

Exit Codes:
- 0: Success
- 1: Configuration error (bad parameters, unreadable boundary)

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import argparse
import copy
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from scent_coverage.config import CONFIG
from scent_coverage.config_types import AppConfig, LoggingConfig
from scent_coverage.errors import ConfigurationError, SourceUnavailable
from scent_coverage.exporters import export_snapshot, format_coverage_line
from scent_coverage.models.data_models import CoverageStats
from scent_coverage.scent.polygon_builder import PolygonBuilder
from scent_coverage.scent.scent_geo import repair_stats
from scent_coverage.scent.unification import UnificationEngine
from scent_coverage.sources.base import BoundaryProvider, ObservationSource
from scent_coverage.sources.boundary import GeoPackageBoundaryProvider
from scent_coverage.sources.geopackage_source import (
    GeoPackageObservationSource,
    list_sessions,
)
from scent_coverage.sources.memory_source import (
    InMemoryObservationSource,
    NullObservationSource,
)
from scent_coverage.tracking.coverage_calculator import CoverageCalculator
from scent_coverage.tracking.coverage_tracker import CoverageTracker

# Library modules log under both namespaces
LOGGER_NAMES = ("ScentCoverage", "scent_coverage")


# ═══════════════════════════════════════════════════════════════════════════
# 📋 LOGGING SETUP
# ═══════════════════════════════════════════════════════════════════════════


def setup_logging(config: LoggingConfig, verbose: bool = False) -> logging.Logger:
    """
    Configure console (and optional file) logging for the CLI.

    Args:
        config: Logging settings
        verbose: Force DEBUG level

    Returns:
        The "ScentCoverage" logger
    """
    level = logging.DEBUG if verbose else getattr(logging, config.level)

    handlers: List[logging.Handler] = []
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter("%(message)s"))
    handlers.append(ch)

    if config.log_dir:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%m%d_%H%M")
        fh = logging.FileHandler(log_dir / f"scent_coverage_{timestamp}.log", encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handlers.append(fh)

    for name in LOGGER_NAMES:
        named = logging.getLogger(name)
        named.setLevel(level)
        named.handlers.clear()
        for handler in handlers:
            named.addHandler(handler)
        named.propagate = False

    return logging.getLogger("ScentCoverage")


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 WIRING
# ═══════════════════════════════════════════════════════════════════════════


def build_config(args: argparse.Namespace) -> AppConfig:
    """Apply command-line overrides to CONFIG and validate it."""
    config_dict: Dict[str, Any] = copy.deepcopy(CONFIG)
    if args.source:
        config_dict["source"]["path"] = args.source
        config_dict["source"]["backend"] = "geopackage"
    if args.session:
        config_dict["source"]["session_id"] = args.session
    if args.boundary:
        config_dict["boundary"]["path"] = args.boundary
    if args.boundary_layer:
        config_dict["boundary"]["layer"] = args.boundary_layer
    if args.interval is not None:
        config_dict["tracker"]["poll_interval_s"] = args.interval
    if args.output_dir:
        config_dict["export"]["output_dir"] = args.output_dir
    return AppConfig.from_dict(config_dict)


def create_source(app_config: AppConfig) -> ObservationSource:
    """Instantiate the configured observation backend."""
    source_cfg = app_config.source
    if source_cfg.backend == "memory":
        return InMemoryObservationSource()
    if source_cfg.backend == "null":
        return NullObservationSource()
    return GeoPackageObservationSource(
        source_cfg.path, layer=source_cfg.layer, session_id=source_cfg.session_id
    )


def create_boundary_provider(app_config: AppConfig) -> Optional[BoundaryProvider]:
    if not app_config.boundary.enabled:
        return None
    return GeoPackageBoundaryProvider(app_config.boundary.path, app_config.boundary.layer)


def run(
    app_config: AppConfig,
    polls: int,
    logger: logging.Logger,
    source: Optional[ObservationSource] = None,
) -> Optional[CoverageStats]:
    """
    Poll the tracker and export the final snapshot.

    Args:
        app_config: Validated configuration
        polls: Number of polls (0 = until interrupted)
        logger: Logger for progress output
        source: Optional pre-built source (defaults to the configured backend)

    Returns:
        Last coverage statistics, or None without a boundary

    Raises:
        ConfigurationError: If the boundary is unusable
    """
    tracker = CoverageTracker(
        source or create_source(app_config),
        session_id=app_config.source.session_id,
        builder=PolygonBuilder(app_config.scent_polygon),
        engine=UnificationEngine(app_config.unification),
    )

    calculator: Optional[CoverageCalculator] = None
    provider = create_boundary_provider(app_config)
    if provider is not None:
        try:
            calculator = CoverageCalculator(tracker, provider)
        except SourceUnavailable as e:
            raise ConfigurationError(f"Boundary unavailable: {e}") from e
    else:
        logger.info("ℹ️ No boundary configured, coverage percentage disabled")

    stats: Optional[CoverageStats] = None
    global_polygon = tracker.snapshot
    last_version = -1
    poll = 0
    try:
        while polls == 0 or poll < polls:
            if poll > 0:
                time.sleep(app_config.tracker.poll_interval_s)
            poll += 1
            global_polygon = tracker.current()
            if calculator is not None:
                stats = calculator.stats_for(global_polygon)
            if global_polygon.version != last_version or global_polygon.stale:
                logger.info(f"📊 {format_coverage_line(global_polygon, stats)}")
                last_version = global_polygon.version
    except KeyboardInterrupt:
        logger.info("\n⏹️ Polling interrupted")

    # Last poll result, including its stale flag
    export_snapshot(
        global_polygon,
        tracker.rover_polygons(),
        tracker.detection_polygons(),
        stats,
        app_config.export,
    )
    logger.info(f"📈 Tracker: {tracker.stats.to_dict()}")
    logger.info(f"🩹 Repairs: {repair_stats()}")
    return stats


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 CLI ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="scent-coverage",
        description="Track rover scent coverage over a forest boundary",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    scent-coverage --source data/rover_data.gpkg --boundary data/forest.gpkg
    scent-coverage --source data --session morning --polls 0 --interval 2
    scent-coverage --source data --list-sessions
        """,
    )
    parser.add_argument("--source", help="GeoPackage file or data folder")
    parser.add_argument("--session", help="Session id to track (default: all)")
    parser.add_argument("--boundary", help="Forest boundary GeoPackage")
    parser.add_argument("--boundary-layer", help="Boundary layer name")
    parser.add_argument(
        "--polls", type=int, default=1, help="Number of polls, 0 = until Ctrl+C (default: 1)"
    )
    parser.add_argument("--interval", type=float, help="Seconds between polls")
    parser.add_argument("--output-dir", "-o", help="Export directory")
    parser.add_argument(
        "--list-sessions", action="store_true", help="List session_*.gpkg files and exit"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    args = parse_args(argv)

    try:
        app_config = build_config(args)
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
        logging.getLogger("ScentCoverage").error(f"❌ Configuration error: {e}")
        return 1

    logger = setup_logging(app_config.logging, args.verbose)

    if args.list_sessions:
        folder = Path(app_config.source.path)
        if folder.suffix.lower() == ".gpkg":
            folder = folder.parent
        sessions = list_sessions(folder)
        if not sessions:
            logger.info(f"No sessions found in {folder}")
        for session in sessions:
            logger.info(
                f"  {session.name:<24} {session.size_bytes / 1024:8.1f} KB  "
                f"{session.modified_at:%Y-%m-%d %H:%M}"
            )
        return 0

    if args.polls < 0:
        logger.error("❌ Configuration error: --polls must be >= 0")
        return 1

    try:
        run(app_config, args.polls, logger)
    except ConfigurationError as e:
        logger.error(f"❌ Configuration error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
