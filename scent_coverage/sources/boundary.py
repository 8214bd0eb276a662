"""
Boundary Providers

Load the fixed operational boundary (the forest) once, in lon/lat degrees.

- GeoPackageBoundaryProvider: reads a GeoPackage layer ("riverheadforest" by
  default), reprojects to EPSG:4326 and unions every feature.
- StaticBoundaryProvider: wraps an in-memory geometry (tests, embedding).
"""

import logging
from pathlib import Path
from typing import Optional, Union

import geopandas as gpd
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from scent_coverage.errors import SourceUnavailable
from scent_coverage.models.data_models import WGS84_SRID
from scent_coverage.scent.scent_geo import polygonal_part, repair_geometry, tag_srid

logger = logging.getLogger(__name__)

DEFAULT_BOUNDARY_LAYER = "riverheadforest"


class GeoPackageBoundaryProvider:
    """BoundaryProvider reading a polygon layer from a GeoPackage."""

    def __init__(self, path: Union[str, Path], layer: Optional[str] = DEFAULT_BOUNDARY_LAYER):
        self.path = Path(path)
        self.layer = layer

    def load_boundary(self) -> BaseGeometry:
        """
        Read and union the boundary layer.

        Returns:
            Valid polygonal boundary in EPSG:4326 (may be empty if the layer
            has no features; the calculator rejects that)

        Raises:
            SourceUnavailable: If the file or layer cannot be read
        """
        if not self.path.exists():
            raise SourceUnavailable(f"Boundary file not found: {self.path}")
        logger.info(f"🌲 Loading boundary: {self.path.name} (layer '{self.layer}')")
        try:
            if self.layer:
                gdf = gpd.read_file(self.path, layer=self.layer)
            else:
                gdf = gpd.read_file(self.path)
        except Exception as e:
            raise SourceUnavailable(f"Cannot read boundary {self.path}: {e}") from e

        if gdf.crs is None:
            logger.warning("⚠️ Boundary layer has no CRS, assuming EPSG:4326")
            gdf = gdf.set_crs(epsg=WGS84_SRID)
        elif gdf.crs.to_epsg() != WGS84_SRID:
            logger.info(f"   Converting boundary from {gdf.crs} to EPSG:{WGS84_SRID}")
            gdf = gdf.to_crs(epsg=WGS84_SRID)

        geometries = [g for g in gdf.geometry if g is not None and not g.is_empty]
        boundary = unary_union(geometries) if geometries else Polygon()
        boundary = polygonal_part(repair_geometry(boundary, "load_boundary"))
        logger.info(f"   ✅ Loaded {len(geometries)} boundary features")
        return tag_srid(boundary, WGS84_SRID)


class StaticBoundaryProvider:
    """BoundaryProvider returning a fixed geometry."""

    def __init__(self, geometry: BaseGeometry):
        self.geometry = geometry

    def load_boundary(self) -> BaseGeometry:
        return self.geometry
