"""
Scent Coverage - Error Hierarchy

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Custom exceptions raised by the scent coverage engine.

Propagation Policy:
- ConfigurationError is raised at configuration-load time only, never while
  building polygons for individual observations.
- SourceUnavailable and InvalidGeometry are recovered inside the tracker and
  calculator, which serve the last known good result with a staleness flag.
- OperationCancelled leaves all cached aggregates untouched.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""


class ScentCoverageError(Exception):
    """Base error for scent coverage operations."""


class ConfigurationError(ScentCoverageError, ValueError):
    """Polygon, unification or source parameters are out of range."""


class InvalidGeometry(ScentCoverageError):
    """Union, buffer or intersection produced a result that could not be repaired.

    Attributes:
        operation: Name of the geometry operation that failed
    """

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        message = f"{operation} produced an invalid geometry"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SourceUnavailable(ScentCoverageError):
    """Observation source or boundary file could not be reached."""


class OperationCancelled(ScentCoverageError):
    """An observation fetch was cancelled by the caller."""


__all__ = [
    "ScentCoverageError",
    "ConfigurationError",
    "InvalidGeometry",
    "SourceUnavailable",
    "OperationCancelled",
]
