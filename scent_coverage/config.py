#!/usr/bin/env python3
"""
Scent Coverage - Configuration

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Centralized configuration for the scent coverage engine.
Single source of truth for polygon construction, unification, tracking,
observation source, boundary and export settings.

Configuration Sections (ordered by importance for model tuning):
1. scent_polygon: Detection polygon shape (radius, fan, reach)
2. unification: Union batching and vertex budget
3. tracker: Polling interval for the CLI loop
4. source: Observation backend and session
5. boundary: Forest boundary GeoPackage
6. export: GeoJSON output settings (bottom - rarely changed)
7. logging: Console / file logging (bottom)

Navigation Guide:
- Use VS Code outline (Ctrl+Shift+O) to jump between sections
"""

import os
from typing import Dict, Any, TypeVar, Callable, Optional

T = TypeVar("T")


def _env_or_default(
    key: str, default: T, type_fn: Optional[Callable[[str], T]] = None
) -> T:
    """
    Get value from environment variable or use default.

    Args:
        key: Environment variable name (e.g., "SCENT_OMNI_RADIUS_M")
        default: Default value if env var not set
        type_fn: Optional type conversion function (e.g., float, int)

    Returns:
        Value from environment (converted) or default

    Example:
        >>> _env_or_default("SCENT_FAN_POINTS", 15, int)
        15  # If env var not set
    """
    val = os.getenv(key)
    if val is not None:
        if type_fn is not None:
            return type_fn(val)
        return val  # type: ignore
    return default


def _env_bool(key: str, default: bool) -> bool:
    """
    Get boolean value from environment variable.

    Treats "true", "1", "yes" as True (case-insensitive).
    Any other value or unset returns default.
    """
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 ENVIRONMENT VARIABLE OVERRIDES
# ═══════════════════════════════════════════════════════════════════════════
# These settings can be overridden via environment variables:
#
# SCENT_OMNI_RADIUS_M       - float, omnidirectional disc radius (default: 30.0)
# SCENT_FAN_POINTS          - int, points along the fan arc (default: 15)
# SCENT_MIN_DISTANCE_MULT   - float 0.0-1.0, fan edge floor (default: 0.4)
# SCENT_MAX_WIND_SPEED      - float, speed of maximum reach (default: 8.0)
# SCENT_SOURCE_BACKEND      - "geopackage", "memory" or "null"
# SCENT_SOURCE_PATH         - GeoPackage file or folder
# SCENT_SESSION_ID          - session to track (default: all sessions)
# SCENT_BOUNDARY_PATH       - forest boundary GeoPackage
# SCENT_POLL_INTERVAL_S     - float, CLI polling interval (default: 1.0)
# SCENT_LOG_LEVEL           - "DEBUG", "INFO", ... (default: "INFO")
# SCENT_SIMPLIFY            - "true" or "false" (default: "true")
#
# Example usage:
#   export SCENT_SOURCE_PATH=./data/rover_data.gpkg
#   export SCENT_BOUNDARY_PATH=./data/riverheadforest.gpkg
#   python -m scent_coverage.main --polls 10
# ═══════════════════════════════════════════════════════════════════════════

# ═══════════════════════════════════════════════════════════════════════════
# ⚙️ MASTER CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════

CONFIG: Dict[str, Any] = {
    # ═══════════════════════════════════════════════════════════════════════
    # 🐕 SCENT POLYGON (per-observation detection area)
    # ═══════════════════════════════════════════════════════════════════════
    "scent_polygon": {
        # Local detection disc around the rover, independent of wind
        "omnidirectional_radius_m": _env_or_default(
            "SCENT_OMNI_RADIUS_M", 30.0, float
        ),
        # Angular resolution of the upwind lobe
        "fan_point_count": _env_or_default("SCENT_FAN_POINTS", 15, int),
        # Fan edges never shorter than this fraction of the reach
        "min_distance_multiplier": _env_or_default(
            "SCENT_MIN_DISTANCE_MULT", 0.4, float
        ),
        # Wind speed at which the lobe reaches max_reach_m
        "max_wind_speed_mps": _env_or_default("SCENT_MAX_WIND_SPEED", 8.0, float),
        # Lobe reach at zero wind and at max_wind_speed_mps
        "min_reach_m": 60.0,
        "max_reach_m": 280.0,
        # Quarter-circle segments for the omnidirectional disc
        "buffer_resolution": 16,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 🔗 UNIFICATION (union of detection polygons)
    # ═══════════════════════════════════════════════════════════════════════
    "unification": {
        # Pairwise fallback batch size when unary_union fails
        "union_batch_size": 50,
        # Simplify merged rover geometry once it exceeds this vertex count
        "simplify_enabled": _env_bool("SCENT_SIMPLIFY", True),
        "max_vertices": 6000,
        "simplify_tolerance_m": 1.5,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 🔄 TRACKER
    # ═══════════════════════════════════════════════════════════════════════
    "tracker": {
        "poll_interval_s": _env_or_default("SCENT_POLL_INTERVAL_S", 1.0, float),
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 📡 OBSERVATION SOURCE
    # ═══════════════════════════════════════════════════════════════════════
    "source": {
        "backend": _env_or_default("SCENT_SOURCE_BACKEND", "geopackage"),
        # A .gpkg file, or a folder holding rover_data.gpkg
        "path": _env_or_default("SCENT_SOURCE_PATH", "rover_data.gpkg"),
        "layer": "rover_measurements",
        # None = every session stored in the layer
        "session_id": _env_or_default("SCENT_SESSION_ID", None),
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 🌲 BOUNDARY
    # ═══════════════════════════════════════════════════════════════════════
    "boundary": {
        "path": _env_or_default("SCENT_BOUNDARY_PATH", ""),
        "layer": "riverheadforest",
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 📤 EXPORT
    # ═══════════════════════════════════════════════════════════════════════
    "export": {
        "output_dir": "Output",
        "include_detections": True,
        "coordinate_precision": 7,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 📋 LOGGING
    # ═══════════════════════════════════════════════════════════════════════
    "logging": {
        "level": _env_or_default("SCENT_LOG_LEVEL", "INFO"),
        # Empty = console only
        "log_dir": "",
    },
}
