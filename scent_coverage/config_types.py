"""
═══════════════════════════════════════════════════════════════════════════════
📋 UNIFIED CONFIGURATION TYPES
═══════════════════════════════════════════════════════════════════════════════

ARCHITECTURAL OVERVIEW
----------------------
Responsibility: Define all configuration dataclasses for the scent coverage
engine. Replaces scattered CONFIG dictionary access with typed, validated
config objects.

It provides:
1. Type-safe configuration dataclasses
2. A single AppConfig facade that wraps all settings
3. Factory methods to create configs from the CONFIG dictionary

Validation happens in __post_init__ so that bad parameters are rejected when
the configuration is loaded, never while processing an observation.

Usage:
    from scent_coverage.config import CONFIG
    from scent_coverage.config_types import AppConfig

    # Create once at application startup
    app_config = AppConfig.from_dict(CONFIG)
    builder = PolygonBuilder(app_config.scent_polygon)

For Navigation: Use VS Code outline (Ctrl+Shift+O)

NAVIGATION GUIDE
----------------
# ═════ 1. SCENT POLYGON CONFIGURATION
# ═════ 2. UNIFICATION CONFIGURATION
# ═════ 3. TRACKER CONFIGURATION
# ═════ 4. SOURCE / BOUNDARY CONFIGURATION
# ═════ 5. EXPORT / LOGGING CONFIGURATION
# ═════ 6. APP CONFIG (MASTER FACADE)

═══════════════════════════════════════════════════════════════════════════════
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional

from scent_coverage.errors import ConfigurationError

SOURCE_BACKENDS = ("geopackage", "memory", "null")


# ═══════════════════════════════════════════════════════════════════════════════
# 🐕 1. SCENT POLYGON CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ScentPolygonConfig:
    """
    Shape parameters for a single detection polygon.

    Attributes:
        omnidirectional_radius_m: Radius of the wind-independent disc.
        fan_point_count: Number of points along the upwind arc.
        min_distance_multiplier: Floor for fan edge length as a fraction of
            the reach; also scales the rover-proximal minimum reach.
        max_wind_speed_mps: Wind speed at which the lobe reaches max_reach_m.
        min_reach_m: Lobe reach at zero wind speed.
        max_reach_m: Lobe reach at and above max_wind_speed_mps.
        buffer_resolution: Quarter-circle segments used for the disc.
    """

    omnidirectional_radius_m: float = 30.0
    fan_point_count: int = 15
    min_distance_multiplier: float = 0.4
    max_wind_speed_mps: float = 8.0
    min_reach_m: float = 60.0
    max_reach_m: float = 280.0
    buffer_resolution: int = 16

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ScentPolygonConfig":
        """Create ScentPolygonConfig from CONFIG['scent_polygon'] dictionary."""
        return cls(
            omnidirectional_radius_m=float(d.get("omnidirectional_radius_m", 30.0)),
            fan_point_count=int(d.get("fan_point_count", 15)),
            min_distance_multiplier=float(d.get("min_distance_multiplier", 0.4)),
            max_wind_speed_mps=float(d.get("max_wind_speed_mps", 8.0)),
            min_reach_m=float(d.get("min_reach_m", 60.0)),
            max_reach_m=float(d.get("max_reach_m", 280.0)),
            buffer_resolution=int(d.get("buffer_resolution", 16)),
        )

    def __post_init__(self) -> None:
        """Validate polygon shape parameters."""
        if self.omnidirectional_radius_m <= 0:
            raise ConfigurationError(
                f"omnidirectional_radius_m must be > 0, got {self.omnidirectional_radius_m}"
            )
        if self.fan_point_count < 2:
            raise ConfigurationError(
                f"fan_point_count must be >= 2, got {self.fan_point_count}"
            )
        if not 0.0 <= self.min_distance_multiplier <= 1.0:
            raise ConfigurationError(
                f"min_distance_multiplier must be in [0, 1], got {self.min_distance_multiplier}"
            )
        if self.max_wind_speed_mps <= 0:
            raise ConfigurationError(
                f"max_wind_speed_mps must be > 0, got {self.max_wind_speed_mps}"
            )
        if not 0 < self.min_reach_m <= self.max_reach_m:
            raise ConfigurationError(
                "reach must satisfy 0 < min_reach_m <= max_reach_m, "
                f"got {self.min_reach_m} / {self.max_reach_m}"
            )
        if self.buffer_resolution < 1:
            raise ConfigurationError(
                f"buffer_resolution must be >= 1, got {self.buffer_resolution}"
            )

    @property
    def min_extent_m(self) -> float:
        """Rover-proximal floor for every point of the lobe."""
        return self.min_distance_multiplier * self.omnidirectional_radius_m


# ═══════════════════════════════════════════════════════════════════════════════
# 🔗 2. UNIFICATION CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class UnificationConfig:
    """
    Union and simplification settings.

    Attributes:
        union_batch_size: Batch size for the progressive pairwise fallback.
        simplify_enabled: Simplify merged geometries above max_vertices.
        max_vertices: Vertex count that triggers simplification.
        simplify_tolerance_m: Topology-preserving simplification tolerance.
    """

    union_batch_size: int = 50
    simplify_enabled: bool = True
    max_vertices: int = 6000
    simplify_tolerance_m: float = 1.5

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "UnificationConfig":
        """Create UnificationConfig from CONFIG['unification'] dictionary."""
        return cls(
            union_batch_size=int(d.get("union_batch_size", 50)),
            simplify_enabled=bool(d.get("simplify_enabled", True)),
            max_vertices=int(d.get("max_vertices", 6000)),
            simplify_tolerance_m=float(d.get("simplify_tolerance_m", 1.5)),
        )

    def __post_init__(self) -> None:
        """Validate unification settings."""
        if self.union_batch_size < 1:
            raise ConfigurationError(
                f"union_batch_size must be >= 1, got {self.union_batch_size}"
            )
        if self.max_vertices < 4:
            raise ConfigurationError(
                f"max_vertices must be >= 4, got {self.max_vertices}"
            )
        if self.simplify_tolerance_m < 0:
            raise ConfigurationError(
                f"simplify_tolerance_m must be >= 0, got {self.simplify_tolerance_m}"
            )


# ═══════════════════════════════════════════════════════════════════════════════
# 🔄 3. TRACKER CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TrackerConfig:
    """Polling settings used by the CLI loop around the tracker."""

    poll_interval_s: float = 1.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TrackerConfig":
        """Create TrackerConfig from CONFIG['tracker'] dictionary."""
        return cls(poll_interval_s=float(d.get("poll_interval_s", 1.0)))

    def __post_init__(self) -> None:
        if self.poll_interval_s < 0:
            raise ConfigurationError(
                f"poll_interval_s must be >= 0, got {self.poll_interval_s}"
            )


# ═══════════════════════════════════════════════════════════════════════════════
# 📡 4. SOURCE / BOUNDARY CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SourceConfig:
    """
    Observation source selection.

    Attributes:
        backend: "geopackage", "memory" or "null".
        path: GeoPackage file, or folder containing rover_data.gpkg.
        layer: Measurement layer name inside the GeoPackage.
        session_id: Session to track; None tracks every session in the layer.
    """

    backend: str = "geopackage"
    path: str = "rover_data.gpkg"
    layer: str = "rover_measurements"
    session_id: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SourceConfig":
        """Create SourceConfig from CONFIG['source'] dictionary."""
        session_id = d.get("session_id")
        return cls(
            backend=d.get("backend", "geopackage"),
            path=d.get("path", "rover_data.gpkg"),
            layer=d.get("layer", "rover_measurements"),
            session_id=str(session_id) if session_id else None,
        )

    def __post_init__(self) -> None:
        if self.backend not in SOURCE_BACKENDS:
            raise ConfigurationError(
                f"backend must be one of {SOURCE_BACKENDS}, got {self.backend!r}"
            )
        if self.backend == "geopackage" and not self.path:
            raise ConfigurationError("geopackage backend requires a path")


@dataclass(frozen=True)
class BoundaryConfig:
    """Forest boundary GeoPackage location."""

    path: str = ""
    layer: str = "riverheadforest"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BoundaryConfig":
        """Create BoundaryConfig from CONFIG['boundary'] dictionary."""
        return cls(
            path=d.get("path", ""),
            layer=d.get("layer", "riverheadforest"),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.path)


# ═══════════════════════════════════════════════════════════════════════════════
# 📤 5. EXPORT / LOGGING CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ExportConfig:
    """GeoJSON export settings."""

    output_dir: str = "Output"
    include_detections: bool = True
    coordinate_precision: int = 7

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ExportConfig":
        """Create ExportConfig from CONFIG['export'] dictionary."""
        return cls(
            output_dir=d.get("output_dir", "Output"),
            include_detections=d.get("include_detections", True),
            coordinate_precision=int(d.get("coordinate_precision", 7)),
        )

    def __post_init__(self) -> None:
        if self.coordinate_precision < 0:
            raise ConfigurationError(
                f"coordinate_precision must be >= 0, got {self.coordinate_precision}"
            )

    @property
    def output_path(self) -> Path:
        """Get output directory as relative Path object."""
        return Path(self.output_dir)


@dataclass(frozen=True)
class LoggingConfig:
    """Console / file logging settings for the CLI."""

    level: str = "INFO"
    log_dir: str = ""

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LoggingConfig":
        """Create LoggingConfig from CONFIG['logging'] dictionary."""
        return cls(
            level=str(d.get("level", "INFO")).upper(),
            log_dir=d.get("log_dir", ""),
        )

    def __post_init__(self) -> None:
        if self.level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Unknown log level: {self.level!r}")


# ═══════════════════════════════════════════════════════════════════════════════
# 🎯 6. APP CONFIG (MASTER FACADE)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class AppConfig:
    """
    Master configuration object for the scent coverage engine.

    This is the single source of truth for all typed configuration. Create it
    once at application startup using AppConfig.from_dict(CONFIG) and pass the
    sub-configurations to the components that need them.

    Attributes:
        scent_polygon: Detection polygon shape settings.
        unification: Union batching and simplification settings.
        tracker: Polling settings.
        source: Observation source selection.
        boundary: Forest boundary location.
        export: GeoJSON export settings.
        logging: Logging settings.

    Example:
        from scent_coverage.config import CONFIG
        from scent_coverage.config_types import AppConfig

        app_config = AppConfig.from_dict(CONFIG)
    """

    scent_polygon: ScentPolygonConfig = field(default_factory=ScentPolygonConfig)
    unification: UnificationConfig = field(default_factory=UnificationConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    boundary: BoundaryConfig = field(default_factory=BoundaryConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Raw config dict for ad-hoc access
    _raw_config: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "AppConfig":
        """
        Create AppConfig from the CONFIG dictionary.

        Args:
            config_dict: The CONFIG dictionary from config.py.

        Returns:
            AppConfig instance with all settings populated.

        Raises:
            ConfigurationError: If any section holds out-of-range values.
        """
        return cls(
            scent_polygon=ScentPolygonConfig.from_dict(
                config_dict.get("scent_polygon", {})
            ),
            unification=UnificationConfig.from_dict(
                config_dict.get("unification", {})
            ),
            tracker=TrackerConfig.from_dict(config_dict.get("tracker", {})),
            source=SourceConfig.from_dict(config_dict.get("source", {})),
            boundary=BoundaryConfig.from_dict(config_dict.get("boundary", {})),
            export=ExportConfig.from_dict(config_dict.get("export", {})),
            logging=LoggingConfig.from_dict(config_dict.get("logging", {})),
            _raw_config=config_dict,
        )

    def get_raw(self, key: str, default: Any = None) -> Any:
        """Get a value from the raw CONFIG dictionary."""
        return self._raw_config.get(key, default)
