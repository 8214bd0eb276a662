"""
Polygon Builder - one detection polygon per rover observation.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Turn an Observation (position + wind bearing + wind speed)
into the area in which the rover could plausibly have detected scent.

The detection polygon is the union of two shapes:

1. An omnidirectional disc of omnidirectional_radius_m around the rover,
   built as a metric circle (an ellipse in lon/lat degrees).
2. An upwind lobe: fan_point_count points spread over
   [bearing - half_angle, bearing + half_angle], each at
   reach × max(min_distance_multiplier, cos(offset)), closed through an apex
   at the rover. The lobe points toward the bearing the wind blows FROM,
   since scent arrives from upwind.

Half-angle and reach come from a WindModel (PiecewiseWindModel by default).

Key Interactions:
- Input: Observation (models.data_models)
- Output: DetectionPolygon carrying the observation's identifying fields
- Uses: scent_geo for metric scaling, repair and SRID tagging

Navigation Guide:
- 🐕 PolygonBuilder: Main class
- 🔧 HELPERS: Lobe construction

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
from typing import Iterable, List, Optional

import numpy as np
import shapely
from shapely.geometry import Polygon

from scent_coverage.config_types import ScentPolygonConfig
from scent_coverage.errors import InvalidGeometry
from scent_coverage.models.data_models import DetectionPolygon, Observation
from scent_coverage.scent.scent_geo import (
    area_m2,
    metric_disc,
    offset_position,
    polygonal_part,
    repair_geometry,
    tag_srid,
)
from scent_coverage.scent.wind_model import PiecewiseWindModel, WindModel

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 HELPERS
# ═══════════════════════════════════════════════════════════════════════════


def normalize_bearing(bearing_deg: float) -> float:
    """Wrap a bearing into [0, 360)."""
    wrapped = float(bearing_deg) % 360.0
    # -1e-15 % 360 rounds to 360.0
    return 0.0 if wrapped >= 360.0 else wrapped


def _lobe(
    longitude: float,
    latitude: float,
    bearing_deg: float,
    half_angle_deg: float,
    reach_m: float,
    config: ScentPolygonConfig,
) -> Polygon:
    """Closed upwind fan with its apex at the rover."""
    offsets = np.radians(
        np.linspace(-half_angle_deg, half_angle_deg, config.fan_point_count)
    )
    distances = reach_m * np.maximum(config.min_distance_multiplier, np.cos(offsets))
    distances = np.maximum(distances, config.min_extent_m)
    bearings = np.radians(bearing_deg) + offsets

    lons, lats = offset_position(longitude, latitude, distances, bearings)
    ring = [(longitude, latitude)]
    ring.extend(zip(lons.tolist(), lats.tolist()))
    ring.append((longitude, latitude))
    return Polygon(ring)


# ═══════════════════════════════════════════════════════════════════════════
# 🐕 POLYGON BUILDER
# ═══════════════════════════════════════════════════════════════════════════


class PolygonBuilder:
    """
    Builds DetectionPolygons from Observations.

    Stateless apart from its configuration, so one instance may be shared
    between threads.

    Attributes:
        config: Polygon shape settings
        wind_model: Half-angle / reach law

    Example:
        >>> builder = PolygonBuilder(ScentPolygonConfig())
        >>> detection = builder.build(observation)
        >>> detection.area_m2 > 0
        True
    """

    def __init__(
        self,
        config: Optional[ScentPolygonConfig] = None,
        wind_model: Optional[WindModel] = None,
    ):
        self.config = config or ScentPolygonConfig()
        self.wind_model = wind_model or PiecewiseWindModel(self.config)

    def build(
        self,
        observation: Observation,
        config: Optional[ScentPolygonConfig] = None,
    ) -> DetectionPolygon:
        """
        Build the detection polygon for one observation.

        Args:
            observation: Rover measurement
            config: Optional per-call override of the builder's settings

        Returns:
            DetectionPolygon with a valid, non-empty geometry tagged with the
            observation's SRID

        Raises:
            InvalidGeometry: If GEOS rejects the union of lobe and disc
        """
        cfg = config or self.config
        model = self.wind_model
        if cfg is not self.config and isinstance(model, PiecewiseWindModel):
            model = PiecewiseWindModel(cfg)

        speed = max(0.0, float(observation.wind_speed_mps))
        bearing = normalize_bearing(observation.wind_direction_deg)
        half_angle = model.fan_half_angle_deg(speed)
        reach = max(model.reach_m(speed), cfg.min_extent_m)

        lobe = _lobe(
            observation.longitude,
            observation.latitude,
            bearing,
            half_angle,
            reach,
            cfg,
        )
        disc = metric_disc(
            observation.longitude,
            observation.latitude,
            cfg.omnidirectional_radius_m,
            cfg.buffer_resolution,
        )

        try:
            merged = shapely.union(repair_geometry(lobe, "lobe"), disc)
        except shapely.errors.GEOSException as e:
            raise InvalidGeometry("lobe ∪ disc", str(e)) from e
        merged = polygonal_part(repair_geometry(merged, "lobe ∪ disc"))
        merged = tag_srid(merged, observation.srid)

        return DetectionPolygon(
            geometry=merged,
            rover_id=observation.rover_id,
            rover_name=observation.rover_name,
            session_id=observation.session_id,
            sequence=observation.sequence,
            recorded_at=observation.recorded_at,
            latitude=observation.latitude,
            longitude=observation.longitude,
            wind_direction_deg=bearing,
            wind_speed_mps=speed,
            area_m2=area_m2(merged, observation.latitude),
            fan_half_angle_deg=half_angle,
            reach_m=reach,
            srid=observation.srid,
        )

    def build_many(self, observations: Iterable[Observation]) -> List[DetectionPolygon]:
        """Build detection polygons for a batch of observations, in input order."""
        polygons = [self.build(obs) for obs in observations]
        if polygons:
            logger.debug(f"🐕 Built {len(polygons)} detection polygons")
        return polygons


def build(
    observation: Observation, config: Optional[ScentPolygonConfig] = None
) -> DetectionPolygon:
    """Build one detection polygon with the default wind model."""
    return PolygonBuilder(config).build(observation)
