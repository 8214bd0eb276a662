"""
GeoPackage Observation Source

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Read rover measurements from a GeoPackage file with
geopandas, and discover recorded sessions in a folder.

Layer Layout ("rover_measurements" by default):
- rover_id, rover_name, session_id, sequence
- recorded_at (ISO-8601 text)
- latitude, longitude, wind_direction_deg, wind_speed_mps
- geometry: Point (EPSG:4326)

Path Resolution:
- A path ending in .gpkg is used directly
- A folder resolves to session_<session_id>.gpkg when that file exists,
  otherwise to rover_data.gpkg

Failure Handling:
- Missing files, unreadable layers and driver errors are raised as
  SourceUnavailable so the tracker can serve its last known good result.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Union

import geopandas as gpd
import pandas as pd
from shapely.geometry import Point

from scent_coverage.errors import SourceUnavailable
from scent_coverage.models.data_models import WGS84_SRID, Observation
from scent_coverage.sources.base import CancellationToken, check_cancelled

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "rover_data.gpkg"
DEFAULT_LAYER = "rover_measurements"
SESSION_FILE_PATTERN = "session_*.gpkg"

MEASUREMENT_COLUMNS = [
    "rover_id",
    "rover_name",
    "session_id",
    "sequence",
    "recorded_at",
    "latitude",
    "longitude",
    "wind_direction_deg",
    "wind_speed_mps",
]

# Columns the incremental fetch filters on; without them the layer is unusable
FILTER_COLUMNS = ("sequence", "session_id", "rover_id")


# ═══════════════════════════════════════════════════════════════════════════
# 🗂️ SESSION DISCOVERY
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SessionInfo:
    """A recorded session file found in a data folder."""

    name: str
    path: Path
    size_bytes: int
    modified_at: datetime


def list_sessions(folder: Union[str, Path]) -> List[SessionInfo]:
    """
    List session_*.gpkg files in a folder, most recently written first.

    Args:
        folder: Folder to scan

    Returns:
        SessionInfo per file (empty if the folder does not exist)
    """
    folder = Path(folder)
    if not folder.is_dir():
        return []

    sessions = []
    for file_path in folder.glob(SESSION_FILE_PATTERN):
        stat = file_path.stat()
        sessions.append(
            SessionInfo(
                name=file_path.stem[len("session_") :],
                path=file_path,
                size_bytes=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )
        )
    sessions.sort(key=lambda s: s.modified_at, reverse=True)
    return sessions


def resolve_source_path(path: Union[str, Path], session_id: Optional[str] = None) -> Path:
    """Resolve a .gpkg file or data folder to the GeoPackage to read."""
    path = Path(path)
    if path.suffix.lower() == ".gpkg":
        return path
    if session_id:
        session_file = path / f"session_{session_id}.gpkg"
        if session_file.exists():
            return session_file
    return path / DEFAULT_FILE_NAME


# ═══════════════════════════════════════════════════════════════════════════
# 🔄 FRAME CONVERSION
# ═══════════════════════════════════════════════════════════════════════════


def _to_wgs84(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    if gdf.crs is None:
        return gdf.set_crs(epsg=WGS84_SRID)
    if gdf.crs.to_epsg() != WGS84_SRID:
        return gdf.to_crs(epsg=WGS84_SRID)
    return gdf


def frame_to_observations(gdf: gpd.GeoDataFrame) -> List[Observation]:
    """
    Convert a measurement GeoDataFrame into Observations ordered by sequence.

    Missing latitude / longitude columns are filled from the Point geometry.
    """
    if gdf.empty:
        return []
    gdf = _to_wgs84(gdf)
    frame = pd.DataFrame(gdf.drop(columns=gdf.geometry.name))
    if "latitude" not in frame.columns or "longitude" not in frame.columns:
        frame["longitude"] = gdf.geometry.x.to_numpy()
        frame["latitude"] = gdf.geometry.y.to_numpy()
    frame = frame.sort_values("sequence", kind="stable")
    return [Observation.from_dict(row) for row in frame.to_dict("records")]


def observations_to_frame(observations: Iterable[Observation]) -> gpd.GeoDataFrame:
    """Build a measurement GeoDataFrame (layer layout above) from Observations."""
    records = []
    for obs in observations:
        record = obs.as_dict()
        record.pop("srid")
        records.append(record)
    frame = pd.DataFrame.from_records(records, columns=MEASUREMENT_COLUMNS)
    geometry = [Point(lon, lat) for lon, lat in zip(frame["longitude"], frame["latitude"])]
    return gpd.GeoDataFrame(frame, geometry=geometry, crs=f"EPSG:{WGS84_SRID}")


def write_observations(
    path: Union[str, Path],
    observations: Iterable[Observation],
    layer: str = DEFAULT_LAYER,
    append: bool = False,
) -> Path:
    """
    Write observations to a GeoPackage layer.

    Args:
        path: Target .gpkg file
        observations: Observations to store
        layer: Layer name
        append: Append to an existing layer instead of replacing it

    Returns:
        Path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    gdf = observations_to_frame(observations)
    mode = "a" if append and path.exists() else "w"
    gdf.to_file(path, layer=layer, driver="GPKG", mode=mode)
    logger.debug(f"💾 Wrote {len(gdf)} observations to {path.name}:{layer}")
    return path


# ═══════════════════════════════════════════════════════════════════════════
# 📡 GEOPACKAGE SOURCE
# ═══════════════════════════════════════════════════════════════════════════


class GeoPackageObservationSource:
    """
    ObservationSource reading a GeoPackage measurement layer.

    Each fetch re-reads the layer, so rows appended by a recorder process
    between polls are picked up.

    Attributes:
        path: Resolved GeoPackage file
        layer: Measurement layer name
    """

    def __init__(
        self,
        path: Union[str, Path],
        layer: str = DEFAULT_LAYER,
        session_id: Optional[str] = None,
    ):
        self.path = resolve_source_path(path, session_id)
        self.layer = layer

    def initialize(self) -> None:
        """Check the file exists. Raises SourceUnavailable otherwise."""
        if not self.path.exists():
            raise SourceUnavailable(f"GeoPackage not found: {self.path}")
        logger.info(f"📂 Observation source: {self.path} (layer '{self.layer}')")

    def _read(
        self,
        session_id: Optional[str],
        last_sequence: int,
        token: Optional[CancellationToken],
        operation: str,
    ) -> List[Observation]:
        check_cancelled(token, operation)
        if not self.path.exists():
            raise SourceUnavailable(f"{operation}: GeoPackage not found: {self.path}")
        try:
            gdf = gpd.read_file(self.path, layer=self.layer)
        except Exception as e:
            raise SourceUnavailable(
                f"{operation}: cannot read {self.path.name}:{self.layer}: {e}"
            ) from e
        check_cancelled(token, operation)

        missing = [c for c in FILTER_COLUMNS if c not in gdf.columns]
        if missing:
            raise SourceUnavailable(
                f"{operation}: layer {self.layer} in {self.path.name} lacks columns {missing}"
            )
        try:
            if not gdf.empty:
                mask = gdf["sequence"].astype("int64") > last_sequence
                if session_id is not None:
                    mask &= gdf["session_id"].astype(str) == str(session_id)
                gdf = gdf[mask]
            observations = frame_to_observations(gdf)
        except (KeyError, ValueError, TypeError) as e:
            raise SourceUnavailable(
                f"{operation}: malformed rows in {self.path.name}:{self.layer}: {e!r}"
            ) from e
        logger.debug(f"📡 {operation}: {len(observations)} observations")
        return observations

    def get_all(
        self, session_id: Optional[str], token: Optional[CancellationToken] = None
    ) -> List[Observation]:
        return self._read(session_id, -1, token, "get_all")

    def get_new_since(
        self,
        session_id: Optional[str],
        last_sequence: int,
        token: Optional[CancellationToken] = None,
    ) -> List[Observation]:
        return self._read(session_id, last_sequence, token, "get_new_since")
