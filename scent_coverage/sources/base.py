"""
Observation Source / Boundary Provider Interfaces

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Define the seams between the scent coverage core and its
external collaborators (measurement storage, forest boundary).

Key Types:
- ObservationSource: initialize() / get_all() / get_new_since()
- BoundaryProvider: load_boundary()
- CancellationToken: Cooperative cancellation of blocking fetches

Failure Contract:
- Connectivity loss raises SourceUnavailable (non-fatal, the tracker serves
  its last known good aggregate).
- A fetch observing a cancelled token raises OperationCancelled.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import threading
from typing import List, Optional, Protocol

from shapely.geometry.base import BaseGeometry

from scent_coverage.errors import OperationCancelled
from scent_coverage.models.data_models import Observation


# ═══════════════════════════════════════════════════════════════════════════
# 🛑 CANCELLATION
# ═══════════════════════════════════════════════════════════════════════════


class CancellationToken:
    """Thread-safe cancellation flag shared between a caller and a fetch."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str = "fetch") -> None:
        """Raise OperationCancelled if cancel() has been called."""
        if self._event.is_set():
            raise OperationCancelled(f"{operation} cancelled")


def check_cancelled(token: Optional[CancellationToken], operation: str) -> None:
    """raise_if_cancelled() for an optional token."""
    if token is not None:
        token.raise_if_cancelled(operation)


# ═══════════════════════════════════════════════════════════════════════════
# 📡 PROTOCOLS
# ═══════════════════════════════════════════════════════════════════════════


class ObservationSource(Protocol):
    """Measurement storage backend."""

    def initialize(self) -> None:
        """Prepare the backend (open files, verify layers)."""
        ...

    def get_all(
        self, session_id: Optional[str], token: Optional[CancellationToken] = None
    ) -> List[Observation]:
        """All observations of a session, ordered by sequence."""
        ...

    def get_new_since(
        self,
        session_id: Optional[str],
        last_sequence: int,
        token: Optional[CancellationToken] = None,
    ) -> List[Observation]:
        """Observations with sequence > last_sequence, ascending."""
        ...


class BoundaryProvider(Protocol):
    """Source of the fixed operational boundary polygon."""

    def load_boundary(self) -> BaseGeometry:
        """Boundary polygon in the observation CRS (lon/lat degrees)."""
        ...
