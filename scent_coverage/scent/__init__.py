"""
Scent geometry package.

Modules:
- scent_geo: Metric scaling, area, repair and SRID helpers
- wind_model: Wind speed → fan half-angle / reach laws
- polygon_builder: One detection polygon per observation
- unification: Per-rover and cross-rover union of detection polygons
"""

from .polygon_builder import PolygonBuilder, build, normalize_bearing
from .scent_geo import area_m2, meters_per_degree, repair_stats
from .unification import UnificationEngine, unify_polygons, unify_rover_polygons
from .wind_model import PiecewiseWindModel, WindModel

__all__ = [
    "PolygonBuilder",
    "build",
    "normalize_bearing",
    "area_m2",
    "meters_per_degree",
    "repair_stats",
    "UnificationEngine",
    "unify_polygons",
    "unify_rover_polygons",
    "PiecewiseWindModel",
    "WindModel",
]
