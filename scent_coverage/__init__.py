"""
Scent Coverage

Rover scent-detection coverage: per-observation detection polygons,
incremental per-rover / global unification, and forest coverage statistics.
"""

from scent_coverage.config import CONFIG
from scent_coverage.config_types import AppConfig
from scent_coverage.scent.polygon_builder import PolygonBuilder
from scent_coverage.scent.unification import UnificationEngine
from scent_coverage.tracking.coverage_calculator import CoverageCalculator
from scent_coverage.tracking.coverage_tracker import CoverageTracker

__version__ = "0.1.0"

__all__ = [
    "CONFIG",
    "AppConfig",
    "PolygonBuilder",
    "UnificationEngine",
    "CoverageTracker",
    "CoverageCalculator",
]
