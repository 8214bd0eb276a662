"""
Observation sources and boundary providers.

Modules:
- base: ObservationSource / BoundaryProvider protocols, CancellationToken
- memory_source: In-memory and null observation sources
- geopackage_source: GeoPackage measurement layer, session discovery
- boundary: GeoPackage and static boundary providers
"""

from .base import BoundaryProvider, CancellationToken, ObservationSource
from .boundary import GeoPackageBoundaryProvider, StaticBoundaryProvider
from .geopackage_source import (
    GeoPackageObservationSource,
    SessionInfo,
    list_sessions,
    write_observations,
)
from .memory_source import InMemoryObservationSource, NullObservationSource

__all__ = [
    "BoundaryProvider",
    "CancellationToken",
    "ObservationSource",
    "GeoPackageBoundaryProvider",
    "StaticBoundaryProvider",
    "GeoPackageObservationSource",
    "SessionInfo",
    "list_sessions",
    "write_observations",
    "InMemoryObservationSource",
    "NullObservationSource",
]
