"""
Coverage Calculator - share of the forest boundary covered by scent.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Intersect the global unified polygon with the fixed
boundary and report covered / total area in hectares.

Caching:
- The boundary is loaded once, at construction.
- stats() compares the tracker's global version with the version of the
  cached CoverageStats; when they match no geometry work is done.
- Failure to intersect keeps the previous stats, marked stale.

Area Scaling:
- Both areas use the boundary centroid latitude for the longitude scale, so
  the percentage is not skewed by rovers clustering in one part of the
  forest.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import dataclasses
import logging
import threading
from typing import Optional

import shapely
from shapely.geometry.base import BaseGeometry

from scent_coverage.errors import ConfigurationError, InvalidGeometry
from scent_coverage.models.data_models import (
    M2_PER_HECTARE,
    CoverageStats,
    GlobalUnifiedPolygon,
)
from scent_coverage.scent.scent_geo import (
    area_m2,
    polygonal_part,
    repair_geometry,
)
from scent_coverage.sources.base import BoundaryProvider, CancellationToken
from scent_coverage.tracking.coverage_tracker import CoverageTracker

logger = logging.getLogger("ScentCoverage.Calculator")


class CoverageCalculator:
    """
    Version-cached coverage statistics for one tracker and one boundary.

    Attributes:
        recompute_count: Number of times the intersection was actually computed

    Raises:
        ConfigurationError: If the boundary is empty or has zero area
    """

    def __init__(self, tracker: CoverageTracker, boundary_provider: BoundaryProvider):
        self._tracker = tracker
        boundary = boundary_provider.load_boundary()
        if boundary is None or boundary.is_empty:
            raise ConfigurationError("Boundary geometry is empty")
        boundary = polygonal_part(repair_geometry(boundary, "boundary"))
        if boundary.is_empty:
            raise ConfigurationError("Boundary geometry has zero area")

        self._boundary = boundary
        self._reference_latitude = float(boundary.centroid.y)
        boundary_m2 = area_m2(boundary, self._reference_latitude)
        if boundary_m2 <= 0:
            raise ConfigurationError("Boundary geometry has zero area")
        self._boundary_area_ha = boundary_m2 / M2_PER_HECTARE

        # Prepared geometry speeds up repeated intersections with the boundary
        shapely.prepare(self._boundary)

        self._lock = threading.Lock()
        self._cached: Optional[CoverageStats] = None
        self.recompute_count = 0
        logger.info(f"🌲 Boundary loaded: {self._boundary_area_ha:,.2f} ha")

    @property
    def boundary(self) -> BaseGeometry:
        return self._boundary

    @property
    def boundary_area_ha(self) -> float:
        return self._boundary_area_ha

    @property
    def cached_stats(self) -> Optional[CoverageStats]:
        return self._cached

    def stats(self, token: Optional[CancellationToken] = None) -> CoverageStats:
        """
        Coverage statistics for the tracker's current global aggregate.

        Args:
            token: Optional cancellation token forwarded to the tracker

        Returns:
            CoverageStats tagged with the global version; stale when the
            tracker served stale data or the intersection failed

        Raises:
            OperationCancelled: If the token was cancelled
        """
        global_polygon = self._tracker.current(token)
        return self.stats_for(global_polygon)

    def stats_for(self, global_polygon: GlobalUnifiedPolygon) -> CoverageStats:
        """Coverage statistics for a given global aggregate (version-cached)."""
        with self._lock:
            cached = self._cached
            if cached is not None and cached.version == global_polygon.version:
                logger.debug(f"💾 Stats: returning cached v{cached.version}")
                if cached.stale != global_polygon.stale:
                    cached = dataclasses.replace(cached, stale=global_polygon.stale)
                    self._cached = cached
                return cached

            try:
                covered_ha = self._covered_area_ha(global_polygon.geometry)
            except InvalidGeometry as e:
                logger.warning(f"⚠️ Coverage intersection failed: {e}")
                if cached is not None:
                    return dataclasses.replace(cached, stale=True)
                return CoverageStats(
                    boundary_area_ha=self._boundary_area_ha,
                    covered_area_ha=0.0,
                    coverage_percent=0.0,
                    version=global_polygon.version,
                    stale=True,
                )

            percent = covered_ha / self._boundary_area_ha * 100.0
            percent = min(100.0, max(0.0, percent))
            result = CoverageStats(
                boundary_area_ha=self._boundary_area_ha,
                covered_area_ha=covered_ha,
                coverage_percent=percent,
                version=global_polygon.version,
                stale=global_polygon.stale,
            )
            self._cached = result
            self.recompute_count += 1
            logger.info(
                f"📊 Coverage v{result.version}: {percent:.2f}% "
                f"({covered_ha:,.2f} / {self._boundary_area_ha:,.2f} ha)"
            )
            return result

    def _covered_area_ha(self, geometry: BaseGeometry) -> float:
        if geometry is None or geometry.is_empty:
            return 0.0
        try:
            covered = self._boundary.intersection(geometry)
        except shapely.errors.GEOSException as e:
            raise InvalidGeometry("coverage intersection", str(e)) from e
        covered = polygonal_part(repair_geometry(covered, "coverage intersection"))
        return area_m2(covered, self._reference_latitude) / M2_PER_HECTARE
