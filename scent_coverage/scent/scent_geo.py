"""
Scent Geometry Utilities

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Small coordinate and validity helpers shared by the polygon
builder, the unification engine and the coverage calculator.

Key Functions:
- meters_per_degree(): Local metric scale at a latitude
- area_m2(): Degree² area scaled to square meters
- geodesic_area_m2(): WGS84 ellipsoidal area (pyproj) for cross-checks
- offset_position(): Move a lon/lat point by a distance along a bearing
- metric_disc(): Circle of a metric radius, as an ellipse in degree space
- repair_geometry(): Zero-width buffer / make_valid repair with counters
- tag_srid(): Preserve the coordinate reference tag across GEOS operations

Coordinates are (longitude, latitude) degrees. The metric scale is the local
equirectangular approximation; it is not geodesically exact but is accurate
for a bounded operational area such as a single forest.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Dict, Tuple

import numpy as np
import shapely
from pyproj import Geod
from shapely import affinity
from shapely.geometry import MultiPolygon, Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.validation import explain_validity, make_valid

from scent_coverage.errors import InvalidGeometry
from scent_coverage.models.data_models import WGS84_SRID

logger = logging.getLogger(__name__)

# Meters per degree of latitude (constant in the local approximation)
METERS_PER_DEG_LAT = 111_320.0

_GEOD = Geod(ellps="WGS84")


# ═══════════════════════════════════════════════════════════════════════════
# 📐 COORDINATE UTILITIES
# ═══════════════════════════════════════════════════════════════════════════


def meters_per_degree(latitude: float) -> Tuple[float, float]:
    """
    Local metric scale at a latitude.

    Args:
        latitude: Latitude in degrees

    Returns:
        Tuple of (meters per degree latitude, meters per degree longitude)
    """
    m_per_deg_lon = METERS_PER_DEG_LAT * math.cos(math.radians(latitude))
    return METERS_PER_DEG_LAT, m_per_deg_lon


def area_m2(geometry: BaseGeometry, reference_latitude: float) -> float:
    """
    Convert a planar degree² area to square meters.

    Args:
        geometry: Shapely geometry in lon/lat degrees
        reference_latitude: Latitude used for the longitude scale

    Returns:
        Area in square meters (0.0 for empty geometries)
    """
    if geometry is None or geometry.is_empty:
        return 0.0
    m_lat, m_lon = meters_per_degree(reference_latitude)
    return max(0.0, float(geometry.area) * m_lat * m_lon)


def geodesic_area_m2(geometry: BaseGeometry) -> float:
    """
    Ellipsoidal (WGS84) area of a lon/lat geometry via pyproj.Geod.

    Used as a cross-check of the local equirectangular area_m2().
    """
    if geometry is None or geometry.is_empty:
        return 0.0
    area, _ = _GEOD.geometry_area_perimeter(geometry)
    return abs(float(area))


def meters_to_degrees(meters: float) -> float:
    """Conservative meters → degrees conversion using the latitude scale."""
    return meters / METERS_PER_DEG_LAT


def offset_position(
    longitude: float, latitude: float, distance_m: Any, bearing_rad: Any
) -> Tuple[Any, Any]:
    """
    Move a point by a distance along a compass bearing.

    Bearing 0 is north (+latitude), 90° is east (+longitude). Accepts scalars
    or numpy arrays for distance_m / bearing_rad.

    Returns:
        Tuple of (longitude, latitude) after the offset
    """
    m_lat, m_lon = meters_per_degree(latitude)
    d_lat = distance_m * np.cos(bearing_rad) / m_lat
    d_lon = distance_m * np.sin(bearing_rad) / m_lon
    return longitude + d_lon, latitude + d_lat


def bearing_deg(origin: Tuple[float, float], target: Tuple[float, float]) -> float:
    """
    Compass bearing from origin to target, both given as (lon, lat).

    Returns:
        Bearing in degrees, normalized to [0, 360)
    """
    m_lat, m_lon = meters_per_degree(origin[1])
    dx = (target[0] - origin[0]) * m_lon
    dy = (target[1] - origin[1]) * m_lat
    return math.degrees(math.atan2(dx, dy)) % 360.0


def distance_m(origin: Tuple[float, float], target: Tuple[float, float]) -> float:
    """Local metric distance between two (lon, lat) points."""
    m_lat, m_lon = meters_per_degree(origin[1])
    dx = (target[0] - origin[0]) * m_lon
    dy = (target[1] - origin[1]) * m_lat
    return math.hypot(dx, dy)


def metric_disc(
    longitude: float, latitude: float, radius_m: float, resolution: int = 16
) -> Polygon:
    """
    Disc of a metric radius around a lon/lat point.

    A unit circle is buffered in degree space and stretched so that its
    extent is radius_m in both directions, i.e. an ellipse in degrees.

    Args:
        longitude: Center longitude
        latitude: Center latitude
        radius_m: Radius in meters
        resolution: Quarter-circle segment count

    Returns:
        Polygon approximating the disc
    """
    m_lat, m_lon = meters_per_degree(latitude)
    center = Point(longitude, latitude)
    unit = center.buffer(1.0, quad_segs=resolution)
    return affinity.scale(
        unit, xfact=radius_m / m_lon, yfact=radius_m / m_lat, origin=center
    )


def tag_srid(geometry: BaseGeometry, srid: int = WGS84_SRID) -> BaseGeometry:
    """Return geometry carrying the given SRID (GEOS operations drop it)."""
    return shapely.set_srid(geometry, srid)


# ═══════════════════════════════════════════════════════════════════════════
# 🩹 VALIDITY REPAIR
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class RepairStats:
    """Counters for geometry repairs, for operational visibility."""

    zero_buffer_repairs: int = 0
    make_valid_repairs: int = 0
    failures: int = 0

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def record(self, kind: str) -> None:
        with self._lock:
            setattr(self, kind, getattr(self, kind) + 1)

    def reset(self) -> None:
        with self._lock:
            self.zero_buffer_repairs = 0
            self.make_valid_repairs = 0
            self.failures = 0

    def to_dict(self) -> Dict[str, int]:
        """Convert counters to dictionary for logging."""
        with self._lock:
            return {
                "zero_buffer_repairs": self.zero_buffer_repairs,
                "make_valid_repairs": self.make_valid_repairs,
                "failures": self.failures,
            }


REPAIR_STATS = RepairStats()


def repair_stats() -> Dict[str, int]:
    """Snapshot of process-wide repair counters."""
    return REPAIR_STATS.to_dict()


def polygonal_part(geometry: BaseGeometry) -> BaseGeometry:
    """
    Keep only the polygonal parts of a geometry.

    make_valid() and unions may return GeometryCollections holding lines or
    points next to the polygons; those carry no area and are dropped.
    """
    if isinstance(geometry, (Polygon, MultiPolygon)):
        return geometry
    polygons = [
        part
        for part in shapely.get_parts(geometry)
        if isinstance(part, (Polygon, MultiPolygon)) and not part.is_empty
    ]
    if not polygons:
        return Polygon()
    if len(polygons) == 1:
        return polygons[0]
    return shapely.unary_union(polygons)


def repair_geometry(geometry: BaseGeometry, operation: str) -> BaseGeometry:
    """
    Repair an invalid geometry, or raise InvalidGeometry.

    Strategy:
    1. Zero-width buffer (designed fallback for union noise)
    2. make_valid(), keeping polygonal parts

    Valid geometries are returned unchanged. Every repair is counted in
    REPAIR_STATS and logged.

    Args:
        geometry: Geometry to check
        operation: Name of the producing operation (for logs and errors)

    Returns:
        A valid polygonal geometry

    Raises:
        InvalidGeometry: If neither strategy yields a valid geometry
    """
    if geometry.is_valid:
        return geometry

    reason = explain_validity(geometry)
    try:
        buffered = polygonal_part(geometry.buffer(0))
        if buffered.is_valid and not buffered.is_empty:
            REPAIR_STATS.record("zero_buffer_repairs")
            logger.debug(f"🩹 {operation}: zero-width buffer repair ({reason})")
            return buffered

        fixed = polygonal_part(make_valid(geometry))
        if fixed.is_valid and not fixed.is_empty:
            REPAIR_STATS.record("make_valid_repairs")
            logger.debug(f"🩹 {operation}: make_valid repair ({reason})")
            return fixed
    except shapely.errors.GEOSException as e:
        REPAIR_STATS.record("failures")
        raise InvalidGeometry(operation, str(e)) from e

    REPAIR_STATS.record("failures")
    logger.warning(f"⚠️ {operation}: geometry could not be repaired ({reason})")
    raise InvalidGeometry(operation, reason)
