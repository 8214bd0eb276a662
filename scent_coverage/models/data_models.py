"""
Typed data models for scent coverage tracking.

Architectural Overview:
=======================
This module contains immutable dataclasses passed between the polygon
builder, the unification engine, the tracker and the coverage calculator.
Nothing here is ever mutated after creation: an aggregate that changes is
REPLACED by a new instance with a higher version, so a reader holding a
reference always sees a consistent (geometry, version) pair.

Key Interactions:
-----------------
- Input: Observation sources create Observation instances
- PolygonBuilder turns each Observation into a DetectionPolygon
- UnificationEngine produces UnifiedPolygon, RoverUnifiedPolygon and
  GlobalUnifiedPolygon aggregates
- CoverageCalculator produces CoverageStats
- Navigation: Use VS Code outline (Ctrl+Shift+O) for quick navigation

Data Flow:
----------
1. Observation → DetectionPolygon (one per observation)
2. DetectionPolygon* → RoverUnifiedPolygon (per rover, versioned)
3. RoverUnifiedPolygon* → GlobalUnifiedPolygon (versioned)
4. GlobalUnifiedPolygon + boundary → CoverageStats (tagged with version)

MODIFICATION POINT: Add new observation attributes here and in from_dict()
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional, Tuple

import pandas as pd
import shapely
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry

WGS84_SRID = 4326

M2_PER_HECTARE = 10_000.0


def _parse_timestamp(value: Any) -> datetime:
    """Parse an ISO string / pandas Timestamp / datetime into an aware datetime."""
    if isinstance(value, datetime) and not isinstance(value, pd.Timestamp):
        ts = value
    else:
        ts = pd.Timestamp(value).to_pydatetime()
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _text_or_default(value: Any, default: str) -> str:
    """String form of a field, or default for None / NaN / empty values."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return default
    text = str(value)
    return text if text else default


def _empty_geometry(srid: int) -> BaseGeometry:
    return shapely.set_srid(Polygon(), srid)


# ═══════════════════════════════════════════════════════════════════════════
# 📡 OBSERVATION
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Observation:
    """Immutable rover measurement with position and wind.

    Attributes:
        rover_id: Unique identifier of the rover
        rover_name: Display name of the rover
        session_id: Session the measurement belongs to
        sequence: Per-session sequence number (strictly increasing, may have gaps)
        recorded_at: Capture timestamp (timezone-aware)
        latitude: WGS84 latitude in degrees
        longitude: WGS84 longitude in degrees
        wind_direction_deg: Bearing the wind blows FROM (meteorological convention)
        wind_speed_mps: Wind speed in meters/second
        srid: Coordinate reference tag of latitude/longitude
    """

    rover_id: str
    rover_name: str
    session_id: str
    sequence: int
    recorded_at: datetime
    latitude: float
    longitude: float
    wind_direction_deg: float
    wind_speed_mps: float
    srid: int = WGS84_SRID

    @property
    def position(self) -> Tuple[float, float]:
        """(longitude, latitude) in GeoJSON axis order."""
        return (self.longitude, self.latitude)

    def as_dict(self) -> Dict[str, Any]:
        """Convert to a plain dict (timestamps as ISO-8601 strings)."""
        return {
            "rover_id": self.rover_id,
            "rover_name": self.rover_name,
            "session_id": self.session_id,
            "sequence": self.sequence,
            "recorded_at": self.recorded_at.isoformat(),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "wind_direction_deg": self.wind_direction_deg,
            "wind_speed_mps": self.wind_speed_mps,
            "srid": self.srid,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Observation":
        """Create Observation from a dict or a GeoDataFrame row mapping.

        Args:
            d: Mapping with the keys produced by as_dict()

        Returns:
            Observation instance

        Raises:
            KeyError: If a required key is missing
        """
        return cls(
            rover_id=str(d["rover_id"]),
            rover_name=_text_or_default(d.get("rover_name"), "Unknown"),
            session_id=str(d["session_id"]),
            sequence=int(d["sequence"]),
            recorded_at=_parse_timestamp(d["recorded_at"]),
            latitude=float(d["latitude"]),
            longitude=float(d["longitude"]),
            wind_direction_deg=float(d.get("wind_direction_deg", 0.0)),
            wind_speed_mps=float(d.get("wind_speed_mps", 0.0)),
            srid=int(d.get("srid", WGS84_SRID)),
        )


# ═══════════════════════════════════════════════════════════════════════════
# 🐕 DETECTION POLYGON
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class DetectionPolygon:
    """Detection area for one observation, tagged with its origin.

    The geometry is in degrees (lon/lat); area_m2 is already scaled to
    square meters at the observation latitude.
    """

    geometry: BaseGeometry
    rover_id: str
    rover_name: str
    session_id: str
    sequence: int
    recorded_at: datetime
    latitude: float
    longitude: float
    wind_direction_deg: float
    wind_speed_mps: float
    area_m2: float
    fan_half_angle_deg: float = 0.0
    reach_m: float = 0.0
    srid: int = WGS84_SRID

    @property
    def is_valid(self) -> bool:
        return bool(self.geometry.is_valid) and not self.geometry.is_empty

    @property
    def position(self) -> Tuple[float, float]:
        return (self.longitude, self.latitude)


# ═══════════════════════════════════════════════════════════════════════════
# 🔗 UNIFIED POLYGONS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class UnifiedPolygon:
    """Result of merging a set of detection polygons.

    total_area_m2 is recomputed from the merged geometry, so overlapping
    detections are never double counted. individual_areas_sum_m2 keeps the
    pre-union sum for the coverage efficiency ratio.
    """

    geometry: BaseGeometry
    polygon_count: int
    total_area_m2: float
    reference_latitude: float
    individual_areas_sum_m2: float = 0.0
    earliest_at: Optional[datetime] = None
    latest_at: Optional[datetime] = None
    average_wind_speed_mps: float = 0.0
    wind_speed_range: Tuple[float, float] = (0.0, 0.0)
    session_ids: Tuple[str, ...] = ()
    rover_ids: Tuple[str, ...] = ()
    rover_names: Tuple[str, ...] = ()
    srid: int = WGS84_SRID

    @classmethod
    def empty(cls, srid: int = WGS84_SRID) -> "UnifiedPolygon":
        """Zero-area, zero-count result for an empty input set."""
        return cls(
            geometry=_empty_geometry(srid),
            polygon_count=0,
            total_area_m2=0.0,
            reference_latitude=0.0,
            srid=srid,
        )

    @property
    def is_empty(self) -> bool:
        return self.polygon_count == 0 or self.geometry.is_empty

    @property
    def is_valid(self) -> bool:
        return bool(self.geometry.is_valid)

    @property
    def vertex_count(self) -> int:
        """Number of coordinates in the merged geometry (complexity indicator)."""
        return int(shapely.get_num_coordinates(self.geometry))

    @property
    def coverage_efficiency(self) -> float:
        """Merged area / sum of individual areas (lower = more overlap)."""
        if self.individual_areas_sum_m2 <= 0:
            return 0.0
        return self.total_area_m2 / self.individual_areas_sum_m2

    @property
    def total_area_ha(self) -> float:
        return self.total_area_m2 / M2_PER_HECTARE

    @property
    def rover_count(self) -> int:
        return len(self.rover_ids)


@dataclass(frozen=True)
class RoverUnifiedPolygon:
    """Per-rover aggregate, replaced (never mutated) on every merge.

    Attributes:
        rover_id: Rover identifier
        rover_name: Rover display name
        geometry: Exact unified detection geometry of the rover (merge base)
        polygon_count: Number of detection polygons merged so far
        total_area_m2: Area of the unified geometry in square meters
        latest_sequence: Highest sequence number incorporated
        earliest_at: Earliest observation timestamp incorporated
        latest_at: Latest observation timestamp incorporated
        mean_latitude: Mean observation latitude, used for area scaling
        version: Incremented every time the contributing set changes
        srid: Coordinate reference tag
        display_geometry: Vertex-budgeted copy of geometry for consumers;
            None when geometry is within the budget
    """

    rover_id: str
    rover_name: str
    geometry: BaseGeometry
    polygon_count: int
    total_area_m2: float
    latest_sequence: int
    earliest_at: Optional[datetime]
    latest_at: Optional[datetime]
    mean_latitude: float
    version: int = 1
    srid: int = WGS84_SRID
    display_geometry: Optional[BaseGeometry] = field(default=None, compare=False, repr=False)

    @property
    def total_area_ha(self) -> float:
        return self.total_area_m2 / M2_PER_HECTARE

    @property
    def export_geometry(self) -> BaseGeometry:
        return self.display_geometry if self.display_geometry is not None else self.geometry

    @property
    def vertex_count(self) -> int:
        return int(shapely.get_num_coordinates(self.geometry))


@dataclass(frozen=True)
class GlobalUnifiedPolygon:
    """Cross-rover coverage aggregate.

    stale / stale_reason do not take part in equality: a stale copy of an
    aggregate describes the same (geometry, version) pair as the original.
    geometry is the exact union used for coverage; display_geometry is the
    simplified copy handed to exporters once the vertex budget is exceeded.
    """

    geometry: BaseGeometry
    polygon_count: int
    total_area_m2: float
    rover_names: FrozenSet[str]
    mean_latitude: float
    version: int = 0
    srid: int = WGS84_SRID
    display_geometry: Optional[BaseGeometry] = field(default=None, compare=False, repr=False)
    stale: bool = field(default=False, compare=False)
    stale_reason: str = field(default="", compare=False)

    @classmethod
    def empty(cls, version: int = 0, srid: int = WGS84_SRID) -> "GlobalUnifiedPolygon":
        return cls(
            geometry=_empty_geometry(srid),
            polygon_count=0,
            total_area_m2=0.0,
            rover_names=frozenset(),
            mean_latitude=0.0,
            version=version,
            srid=srid,
        )

    @property
    def is_empty(self) -> bool:
        return self.polygon_count == 0 or self.geometry.is_empty

    @property
    def rover_count(self) -> int:
        return len(self.rover_names)

    @property
    def export_geometry(self) -> BaseGeometry:
        """Geometry for consumers: the vertex-budgeted copy when one exists."""
        return self.display_geometry if self.display_geometry is not None else self.geometry

    @property
    def total_area_ha(self) -> float:
        return self.total_area_m2 / M2_PER_HECTARE


# ═══════════════════════════════════════════════════════════════════════════
# 📊 COVERAGE STATISTICS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CoverageStats:
    """Boundary coverage statistics tagged with the global version they describe.

    A CoverageStats instance is only current while `version` equals the
    version of the tracker's GlobalUnifiedPolygon.
    """

    boundary_area_ha: float
    covered_area_ha: float
    coverage_percent: float
    version: int
    stale: bool = field(default=False, compare=False)
    computed_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), compare=False
    )

    @property
    def forest_area_ha(self) -> float:
        return self.boundary_area_ha

    @property
    def scent_area_ha(self) -> float:
        return self.covered_area_ha

    def as_record(self) -> Dict[str, float]:
        """Consumer-facing statistics record."""
        return {
            "coverage_percent": round(self.coverage_percent, 4),
            "boundary_area_ha": round(self.boundary_area_ha, 4),
            "covered_area_ha": round(self.covered_area_ha, 4),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Full serializable form including version and staleness."""
        result: Dict[str, Any] = self.as_record()
        result["version"] = self.version
        result["stale"] = self.stale
        result["computed_at"] = self.computed_at.isoformat()
        return result
