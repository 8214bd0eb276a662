"""
Unification Engine - merge detection polygons into coverage aggregates.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Union many detection polygons into one valid (possibly
multi-part) coverage geometry, at two levels:

1. Per rover: merge_into_rover() folds only the NEW detection polygons into
   the rover's existing RoverUnifiedPolygon (incremental, no full rebuild).
2. Across rovers: unify_rover_polygons() unions the per-rover geometries into
   the GlobalUnifiedPolygon.

unify_polygons() is the one-shot form used for ad-hoc sets of detections.

Key Design Decisions:
- Areas are always recomputed from the MERGED geometry, so overlapping
  detections are never double counted.
- Union results do not depend on input order (unary_union is set based).
- Invalid intermediates are repaired (zero-width buffer, then make_valid) and
  counted; an unrepairable result raises InvalidGeometry.
- If GEOS rejects the one-shot unary_union, unions are retried
  progressively in fixed-size batches.
- Aggregates always keep the EXACT union as their merge base, so repeated
  merges never accumulate simplification error. Geometries past
  max_vertices additionally carry a topology-preserving simplified
  display_geometry for exporters.

Navigation Guide:
- 🔗 UnificationEngine: Main class
- 🧩 UNION HELPERS: Batched union with repair
- 📦 MODULE-LEVEL API: Default-engine convenience functions

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
from typing import Iterable, List, Optional, Sequence

import numpy as np
import shapely
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from scent_coverage.config_types import UnificationConfig
from scent_coverage.errors import InvalidGeometry
from scent_coverage.models.data_models import (
    DetectionPolygon,
    GlobalUnifiedPolygon,
    RoverUnifiedPolygon,
    UnifiedPolygon,
)
from scent_coverage.scent.scent_geo import (
    area_m2,
    meters_to_degrees,
    polygonal_part,
    repair_geometry,
    tag_srid,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# 🔗 UNIFICATION ENGINE
# ═══════════════════════════════════════════════════════════════════════════


class UnificationEngine:
    """
    Merges detection polygons per rover and across rovers.

    The engine holds no aggregate state of its own: every method takes the
    current aggregates and returns new immutable ones, which lets the
    tracker swap them in atomically.

    Attributes:
        config: Batch size and vertex budget settings
    """

    def __init__(self, config: Optional[UnificationConfig] = None):
        self.config = config or UnificationConfig()

    # -----------------------------------------------------------------------
    # One-shot union
    # -----------------------------------------------------------------------

    def unify_polygons(
        self, detection_polygons: Sequence[DetectionPolygon]
    ) -> UnifiedPolygon:
        """
        Union a set of detection polygons into one geometry.

        Args:
            detection_polygons: Detection polygons in any order

        Returns:
            UnifiedPolygon; empty (zero area, zero count) for an empty input

        Raises:
            InvalidGeometry: If the union cannot be repaired
        """
        polygons = [p for p in detection_polygons if p is not None]
        if not polygons:
            return UnifiedPolygon.empty()

        srid = polygons[0].srid
        reference_latitude = float(np.mean([p.latitude for p in polygons]))
        if len(polygons) == 1:
            merged = polygons[0].geometry
        else:
            merged = self._union([p.geometry for p in polygons], "unify_polygons")
        merged = tag_srid(merged, srid)

        speeds = [p.wind_speed_mps for p in polygons]
        timestamps = [p.recorded_at for p in polygons]
        result = UnifiedPolygon(
            geometry=merged,
            polygon_count=len(polygons),
            total_area_m2=area_m2(merged, reference_latitude),
            reference_latitude=reference_latitude,
            individual_areas_sum_m2=float(sum(p.area_m2 for p in polygons)),
            earliest_at=min(timestamps),
            latest_at=max(timestamps),
            average_wind_speed_mps=float(np.mean(speeds)),
            wind_speed_range=(float(min(speeds)), float(max(speeds))),
            session_ids=tuple(sorted({p.session_id for p in polygons})),
            rover_ids=tuple(sorted({p.rover_id for p in polygons})),
            rover_names=tuple(sorted({p.rover_name for p in polygons})),
            srid=srid,
        )
        logger.debug(
            f"🔗 Unified {result.polygon_count} polygons → "
            f"{result.total_area_m2:,.0f} m² ({result.vertex_count} vertices)"
        )
        return result

    # -----------------------------------------------------------------------
    # Per-rover incremental merge
    # -----------------------------------------------------------------------

    def merge_into_rover(
        self,
        existing: Optional[RoverUnifiedPolygon],
        new_detections: Iterable[DetectionPolygon],
    ) -> Optional[RoverUnifiedPolygon]:
        """
        Fold new detection polygons into a rover's unified polygon.

        Detections with a sequence at or below existing.latest_sequence are
        ignored, as are repeated sequences inside the batch. The merge runs in
        ascending sequence order.

        Args:
            existing: The rover's current aggregate, or None for a new rover
            new_detections: Detection polygons of this rover only

        Returns:
            A new RoverUnifiedPolygon with version + 1, the unchanged
            existing aggregate if nothing new was merged, or None if there
            was neither an existing aggregate nor any detection

        Raises:
            ValueError: If detections of several rovers are mixed
            InvalidGeometry: If the merged geometry cannot be repaired
        """
        latest = existing.latest_sequence if existing is not None else -1
        accepted: List[DetectionPolygon] = []
        seen = set()
        for detection in sorted(new_detections, key=lambda d: d.sequence):
            if detection.sequence <= latest or detection.sequence in seen:
                continue
            seen.add(detection.sequence)
            accepted.append(detection)

        if not accepted:
            return existing

        rover_ids = {d.rover_id for d in accepted}
        if existing is not None:
            rover_ids.add(existing.rover_id)
        if len(rover_ids) != 1:
            raise ValueError(f"merge_into_rover received several rovers: {sorted(rover_ids)}")

        geometries = [d.geometry for d in accepted]
        old_count = 0
        lat_sum = float(sum(d.latitude for d in accepted))
        earliest = min(d.recorded_at for d in accepted)
        latest_at = max(d.recorded_at for d in accepted)
        version = 1
        srid = accepted[0].srid
        if existing is not None:
            geometries.insert(0, existing.geometry)
            old_count = existing.polygon_count
            lat_sum += existing.mean_latitude * old_count
            if existing.earliest_at is not None:
                earliest = min(earliest, existing.earliest_at)
            if existing.latest_at is not None:
                latest_at = max(latest_at, existing.latest_at)
            version = existing.version + 1
            srid = existing.srid

        count = old_count + len(accepted)
        mean_latitude = lat_sum / count
        if len(geometries) == 1:
            merged = geometries[0]
        else:
            merged = self._union(geometries, f"merge_into_rover[{accepted[0].rover_name}]")
        merged = tag_srid(merged, srid)
        display = self._display_geometry(merged, mean_latitude, srid)

        logger.debug(
            f"🐕 {accepted[0].rover_name}: +{len(accepted)} polygons "
            f"(total {count}, v{version})"
        )
        return RoverUnifiedPolygon(
            rover_id=accepted[0].rover_id,
            rover_name=accepted[-1].rover_name,
            geometry=merged,
            polygon_count=count,
            total_area_m2=area_m2(merged, mean_latitude),
            latest_sequence=accepted[-1].sequence,
            earliest_at=earliest,
            latest_at=latest_at,
            mean_latitude=mean_latitude,
            version=version,
            srid=srid,
            display_geometry=display,
        )

    # -----------------------------------------------------------------------
    # Cross-rover union
    # -----------------------------------------------------------------------

    def unify_rover_polygons(
        self,
        rover_unified_polygons: Sequence[RoverUnifiedPolygon],
        version: int = 0,
    ) -> GlobalUnifiedPolygon:
        """
        Union per-rover geometries into the global coverage aggregate.

        Args:
            rover_unified_polygons: Current per-rover aggregates
            version: Version to stamp on the result

        Returns:
            GlobalUnifiedPolygon (empty for an empty input)

        Raises:
            InvalidGeometry: If the union cannot be repaired
        """
        rovers = [r for r in rover_unified_polygons if r is not None]
        if not rovers:
            return GlobalUnifiedPolygon.empty(version=version)

        srid = rovers[0].srid
        count = sum(r.polygon_count for r in rovers)
        if count > 0:
            mean_latitude = sum(r.mean_latitude * r.polygon_count for r in rovers) / count
        else:
            mean_latitude = float(np.mean([r.mean_latitude for r in rovers]))

        if len(rovers) == 1:
            merged = rovers[0].geometry
        else:
            merged = self._union([r.geometry for r in rovers], "unify_rover_polygons")
        merged = tag_srid(merged, srid)

        return GlobalUnifiedPolygon(
            geometry=merged,
            polygon_count=count,
            total_area_m2=area_m2(merged, mean_latitude),
            rover_names=frozenset(r.rover_name for r in rovers),
            mean_latitude=mean_latitude,
            version=version,
            srid=srid,
            display_geometry=self._display_geometry(merged, mean_latitude, srid),
        )

    # -----------------------------------------------------------------------
    # Vertex budget
    # -----------------------------------------------------------------------

    def simplify(self, geometry: BaseGeometry, latitude: float) -> BaseGeometry:
        """
        Simplify a geometry that exceeds the vertex budget.

        The metric tolerance is converted with the latitude scale, so the
        deviation is at most simplify_tolerance_m north-south and
        simplify_tolerance_m × cos(latitude) east-west.

        Returns the input unchanged when simplification is disabled, not
        needed, or would produce an invalid or empty result.
        """
        cfg = self.config
        if not cfg.simplify_enabled or cfg.simplify_tolerance_m <= 0:
            return geometry
        vertices = int(shapely.get_num_coordinates(geometry))
        if vertices <= cfg.max_vertices:
            return geometry

        tolerance = meters_to_degrees(cfg.simplify_tolerance_m)
        try:
            simplified = geometry.simplify(tolerance, preserve_topology=True)
        except shapely.errors.GEOSException as e:
            logger.warning(f"⚠️ Simplification failed ({e}); keeping {vertices} vertices")
            return geometry
        if simplified.is_empty or not simplified.is_valid:
            logger.warning(
                f"⚠️ Simplification at {cfg.simplify_tolerance_m} m produced an "
                f"invalid result; keeping {vertices} vertices"
            )
            return geometry

        logger.debug(
            f"✂️ Simplified {vertices} → "
            f"{int(shapely.get_num_coordinates(simplified))} vertices (at {latitude:.4f}°)"
        )
        return simplified

    def _display_geometry(
        self, geometry: BaseGeometry, latitude: float, srid: int
    ) -> Optional[BaseGeometry]:
        """Vertex-budgeted copy of an exact geometry, or None if within budget."""
        simplified = self.simplify(geometry, latitude)
        if simplified is geometry:
            return None
        return tag_srid(simplified, srid)

    # ═══════════════════════════════════════════════════════════════════════
    # 🧩 UNION HELPERS
    # ═══════════════════════════════════════════════════════════════════════

    def _union(self, geometries: List[BaseGeometry], operation: str) -> BaseGeometry:
        """Union with repair; progressive batched fallback on GEOS errors."""
        try:
            merged = unary_union(geometries)
        except shapely.errors.GEOSException as e:
            logger.warning(
                f"⚠️ {operation}: unary_union failed ({e}); "
                f"falling back to batches of {self.config.union_batch_size}"
            )
            merged = self._progressive_union(geometries, operation)
        return polygonal_part(repair_geometry(merged, operation))

    def _progressive_union(
        self, geometries: List[BaseGeometry], operation: str
    ) -> BaseGeometry:
        batch_size = self.config.union_batch_size
        accumulated: Optional[BaseGeometry] = None
        for start in range(0, len(geometries), batch_size):
            batch = [repair_geometry(g, operation) for g in geometries[start : start + batch_size]]
            try:
                partial = unary_union(batch)
            except shapely.errors.GEOSException:
                # Pairwise within the failing batch
                partial = batch[0]
                for geometry in batch[1:]:
                    partial = _pairwise_union(partial, geometry, operation)
            partial = repair_geometry(partial, operation)
            if accumulated is None:
                accumulated = partial
            else:
                accumulated = _pairwise_union(accumulated, partial, operation)
        return accumulated if accumulated is not None else shapely.Polygon()


def _pairwise_union(a: BaseGeometry, b: BaseGeometry, operation: str) -> BaseGeometry:
    """Union of two geometries; GEOS errors become InvalidGeometry."""
    try:
        merged = a.union(b)
    except shapely.errors.GEOSException as e:
        raise InvalidGeometry(operation, str(e)) from e
    return repair_geometry(merged, operation)


# ═══════════════════════════════════════════════════════════════════════════
# 📦 MODULE-LEVEL API
# ═══════════════════════════════════════════════════════════════════════════

_DEFAULT_ENGINE = UnificationEngine()


def unify_polygons(detection_polygons: Sequence[DetectionPolygon]) -> UnifiedPolygon:
    """Union detection polygons with the default engine settings."""
    return _DEFAULT_ENGINE.unify_polygons(detection_polygons)


def unify_rover_polygons(
    rover_unified_polygons: Sequence[RoverUnifiedPolygon], version: int = 0
) -> GlobalUnifiedPolygon:
    """Union per-rover aggregates with the default engine settings."""
    return _DEFAULT_ENGINE.unify_rover_polygons(rover_unified_polygons, version)


__all__ = [
    "UnificationEngine",
    "unify_polygons",
    "unify_rover_polygons",
]
