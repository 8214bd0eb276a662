"""
Scent Coverage Export Module - GeoJSON, WKT, JSON and text summaries.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Turn coverage aggregates into consumer formats. Axis order
is always (longitude, latitude).

Export Formats:
- GeoJSON: Unified coverage, per-rover coverage, detection polygons, trails
- WKT: Unified coverage geometry
- JSON: Coverage statistics record
- Text: Human-readable unified polygon summary

Key Entry Points:
- global_to_geojson_fc(): Unified coverage FeatureCollection
- export_snapshot(): Write every output file for a tracker snapshot
- format_unified_summary(): Text summary of a UnifiedPolygon

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import shapely
from shapely.geometry import LineString, mapping
from shapely.geometry.base import BaseGeometry

from scent_coverage.config_types import ExportConfig
from scent_coverage.models.data_models import (
    WGS84_SRID,
    CoverageStats,
    DetectionPolygon,
    GlobalUnifiedPolygon,
    RoverUnifiedPolygon,
    UnifiedPolygon,
)
from scent_coverage.scent.scent_geo import geodesic_area_m2

logger = logging.getLogger("ScentCoverage.Exporters")


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════


def _round_coords(value: Any, precision: int) -> Any:
    """Round nested coordinate tuples of a GeoJSON geometry mapping."""
    if isinstance(value, float):
        return round(value, precision)
    if isinstance(value, (list, tuple)):
        return [_round_coords(v, precision) for v in value]
    return value


def _geometry_mapping(geometry: BaseGeometry, precision: int) -> Dict[str, Any]:
    geo = dict(mapping(geometry))
    if "coordinates" in geo:
        geo["coordinates"] = _round_coords(geo["coordinates"], precision)
    return geo


def _crs_member(srid: int) -> Dict[str, Any]:
    return {"type": "name", "properties": {"name": f"urn:ogc:def:crs:EPSG::{srid}"}}


def _feature(
    geometry: BaseGeometry, properties: Dict[str, Any], precision: int
) -> Dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": _geometry_mapping(geometry, precision),
        "properties": properties,
    }


def _feature_collection(
    features: List[Dict[str, Any]], srid: int = WGS84_SRID
) -> Dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "crs": _crs_member(srid),
        "features": features,
    }


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ═══════════════════════════════════════════════════════════════════════════
# 🗺️ GEOJSON CONVERSION
# ═══════════════════════════════════════════════════════════════════════════


def global_to_geojson_fc(
    global_polygon: GlobalUnifiedPolygon,
    stats: Optional[CoverageStats] = None,
    precision: int = 7,
) -> Dict[str, Any]:
    """
    Convert the global coverage aggregate to a GeoJSON FeatureCollection.

    Args:
        global_polygon: Cross-rover aggregate
        stats: Optional coverage statistics to attach as properties
        precision: Decimal places for coordinates

    Returns:
        FeatureCollection with zero (empty coverage) or one feature
    """
    if global_polygon.is_empty:
        return _feature_collection([], global_polygon.srid)

    properties: Dict[str, Any] = {
        "version": global_polygon.version,
        "polygon_count": global_polygon.polygon_count,
        "rover_count": global_polygon.rover_count,
        "rover_names": sorted(global_polygon.rover_names),
        "total_area_m2": round(global_polygon.total_area_m2, 1),
        "total_area_ha": round(global_polygon.total_area_ha, 4),
        "stale": global_polygon.stale,
    }
    if stats is not None:
        properties.update(stats.as_record())
    return _feature_collection(
        [_feature(global_polygon.export_geometry, properties, precision)],
        global_polygon.srid,
    )


def rovers_to_geojson_fc(
    rover_polygons: Mapping[str, RoverUnifiedPolygon], precision: int = 7
) -> Dict[str, Any]:
    """One feature per rover aggregate, ordered by rover name."""
    features = []
    srid = WGS84_SRID
    for rover in sorted(rover_polygons.values(), key=lambda r: r.rover_name):
        srid = rover.srid
        features.append(
            _feature(
                rover.export_geometry,
                {
                    "rover_id": rover.rover_id,
                    "rover_name": rover.rover_name,
                    "polygon_count": rover.polygon_count,
                    "total_area_m2": round(rover.total_area_m2, 1),
                    "latest_sequence": rover.latest_sequence,
                    "earliest_at": _iso(rover.earliest_at),
                    "latest_at": _iso(rover.latest_at),
                    "version": rover.version,
                },
                precision,
            )
        )
    return _feature_collection(features, srid)


def detections_to_geojson_fc(
    detections: Iterable[DetectionPolygon], precision: int = 7
) -> Dict[str, Any]:
    """One feature per detection polygon, with its observation attributes."""
    features = []
    srid = WGS84_SRID
    for detection in detections:
        srid = detection.srid
        features.append(
            _feature(
                detection.geometry,
                {
                    "rover_id": detection.rover_id,
                    "rover_name": detection.rover_name,
                    "session_id": detection.session_id,
                    "sequence": detection.sequence,
                    "recorded_at": _iso(detection.recorded_at),
                    "latitude": detection.latitude,
                    "longitude": detection.longitude,
                    "wind_direction_deg": detection.wind_direction_deg,
                    "wind_speed_mps": detection.wind_speed_mps,
                    "fan_half_angle_deg": round(detection.fan_half_angle_deg, 2),
                    "reach_m": round(detection.reach_m, 1),
                    "area_m2": round(detection.area_m2, 1),
                },
                precision,
            )
        )
    return _feature_collection(features, srid)


def trail_to_geojson_fc(
    rover_id: str, trail: Sequence[Tuple[float, float]], precision: int = 7
) -> Dict[str, Any]:
    """Rover trail as a LineString feature (empty collection for < 2 points)."""
    if len(trail) < 2:
        return _feature_collection([])
    return _feature_collection(
        [_feature(LineString(trail), {"rover_id": rover_id, "points": len(trail)}, precision)]
    )


def to_wkt(geometry: BaseGeometry, precision: int = 7) -> str:
    """WKT of a geometry with fixed coordinate precision."""
    return shapely.to_wkt(geometry, rounding_precision=precision, trim=True)


# ═══════════════════════════════════════════════════════════════════════════
# 📝 TEXT SUMMARIES
# ═══════════════════════════════════════════════════════════════════════════


def format_unified_summary(unified: UnifiedPolygon) -> str:
    """
    Human-readable summary of a UnifiedPolygon.

    Returns:
        Multi-line text (polygon count, areas, efficiency, time span, wind,
        sessions, complexity and validity)
    """
    if unified.is_empty:
        return "Unified Polygon: empty (no detection polygons)"

    lines = [
        f"Unified Polygon: {unified.polygon_count} detection polygons",
        f"  Area: {unified.total_area_m2:,.0f} m² ({unified.total_area_ha:.2f} ha)",
        f"  Geodesic area: {geodesic_area_m2(unified.geometry):,.0f} m²",
        f"  Individual sum: {unified.individual_areas_sum_m2:,.0f} m²",
        f"  Coverage efficiency: {unified.coverage_efficiency:.1%}",
    ]
    if unified.earliest_at is not None and unified.latest_at is not None:
        span = unified.latest_at - unified.earliest_at
        lines.append(
            f"  Time span: {_iso(unified.earliest_at)} → {_iso(unified.latest_at)} ({span})"
        )
    low, high = unified.wind_speed_range
    lines.append(
        f"  Wind: mean {unified.average_wind_speed_mps:.1f} m/s (range {low:.1f}-{high:.1f})"
    )
    lines.append(f"  Sessions: {', '.join(unified.session_ids)}")
    lines.append(f"  Rovers: {', '.join(unified.rover_names)}")
    lines.append(f"  Vertices: {unified.vertex_count}")
    lines.append(f"  Valid: {'yes' if unified.is_valid else 'no'}")
    return "\n".join(lines)


def format_coverage_line(
    global_polygon: GlobalUnifiedPolygon, stats: Optional[CoverageStats]
) -> str:
    """Single log line describing the current coverage."""
    line = (
        f"v{global_polygon.version}: {global_polygon.rover_count} rover(s), "
        f"{global_polygon.polygon_count} polygons, "
        f"{global_polygon.total_area_ha:.2f} ha"
    )
    if stats is not None:
        line += (
            f" | forest {stats.boundary_area_ha:.2f} ha, "
            f"covered {stats.covered_area_ha:.2f} ha ({stats.coverage_percent:.2f}%)"
        )
    if global_polygon.stale:
        line += f" | STALE ({global_polygon.stale_reason})"
    return line


# ═══════════════════════════════════════════════════════════════════════════
# 💾 FILE EXPORT
# ═══════════════════════════════════════════════════════════════════════════


def _write_json(data: Dict[str, Any], output_path: Path) -> bool:
    """Write JSON; log and return False on I/O failure."""
    try:
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        return True
    except OSError as e:
        logger.warning(f"   ⚠️ Failed to write {output_path.name}: {e}")
        return False


def export_snapshot(
    global_polygon: GlobalUnifiedPolygon,
    rover_polygons: Mapping[str, RoverUnifiedPolygon],
    detections: Iterable[DetectionPolygon],
    stats: Optional[CoverageStats],
    config: Optional[ExportConfig] = None,
) -> Dict[str, Path]:
    """
    Write all coverage outputs into the export directory.

    Files:
    - unified.geojson: Global coverage (with stats properties)
    - rovers.geojson: Per-rover coverage
    - detections.geojson: Detection polygons (if include_detections)
    - coverage_stats.json: Stats record with version and staleness

    Returns:
        Dict mapping output name to the path written successfully
    """
    config = config or ExportConfig()
    output_dir = config.output_path
    output_dir.mkdir(parents=True, exist_ok=True)
    precision = config.coordinate_precision

    outputs: Dict[str, Dict[str, Any]] = {
        "unified": global_to_geojson_fc(global_polygon, stats, precision),
        "rovers": rovers_to_geojson_fc(rover_polygons, precision),
    }
    if config.include_detections:
        outputs["detections"] = detections_to_geojson_fc(detections, precision)

    written: Dict[str, Path] = {}
    for name, data in outputs.items():
        path = output_dir / f"{name}.geojson"
        if _write_json(data, path):
            written[name] = path

    if stats is not None:
        path = output_dir / "coverage_stats.json"
        record = stats.to_dict()
        record["global_version"] = global_polygon.version
        record["stale_reason"] = global_polygon.stale_reason
        if _write_json(record, path):
            written["coverage_stats"] = path

    logger.info(f"   📄 Exported {len(written)} files to {output_dir}")
    return written
