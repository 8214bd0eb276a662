"""Data models package for observations, detection polygons and coverage aggregates."""

from .data_models import (
    WGS84_SRID,
    M2_PER_HECTARE,
    Observation,
    DetectionPolygon,
    UnifiedPolygon,
    RoverUnifiedPolygon,
    GlobalUnifiedPolygon,
    CoverageStats,
)

__all__ = [
    "WGS84_SRID",
    "M2_PER_HECTARE",
    # Inputs
    "Observation",
    "DetectionPolygon",
    # Aggregates
    "UnifiedPolygon",
    "RoverUnifiedPolygon",
    "GlobalUnifiedPolygon",
    # Statistics
    "CoverageStats",
]
