"""
In-memory observation sources.

InMemoryObservationSource backs tests and embedding applications that push
observations directly (e.g. from a message queue). set_available(False)
simulates a connectivity loss. NullObservationSource never yields anything.
"""

import logging
import threading
from typing import Iterable, List, Optional

from scent_coverage.errors import SourceUnavailable
from scent_coverage.models.data_models import Observation
from scent_coverage.sources.base import CancellationToken, check_cancelled

logger = logging.getLogger(__name__)


class InMemoryObservationSource:
    """Thread-safe list of observations implementing ObservationSource."""

    def __init__(self, observations: Optional[Iterable[Observation]] = None):
        self._lock = threading.Lock()
        self._observations: List[Observation] = list(observations or [])
        self._available = True
        self.initialized = False
        self.fetch_count = 0

    def initialize(self) -> None:
        self.initialized = True
        logger.debug(f"📡 In-memory source ready ({len(self._observations)} observations)")

    def append(self, observation: Observation) -> None:
        with self._lock:
            self._observations.append(observation)

    def extend(self, observations: Iterable[Observation]) -> None:
        with self._lock:
            self._observations.extend(observations)

    def set_available(self, available: bool) -> None:
        """Toggle simulated connectivity."""
        self._available = available

    def __len__(self) -> int:
        with self._lock:
            return len(self._observations)

    def _select(
        self,
        session_id: Optional[str],
        last_sequence: int,
        token: Optional[CancellationToken],
        operation: str,
    ) -> List[Observation]:
        check_cancelled(token, operation)
        if not self._available:
            raise SourceUnavailable(f"{operation}: in-memory source is offline")
        with self._lock:
            self.fetch_count += 1
            selected = [
                obs
                for obs in self._observations
                if (session_id is None or obs.session_id == session_id)
                and obs.sequence > last_sequence
            ]
        check_cancelled(token, operation)
        return sorted(selected, key=lambda o: o.sequence)

    def get_all(
        self, session_id: Optional[str], token: Optional[CancellationToken] = None
    ) -> List[Observation]:
        return self._select(session_id, -1, token, "get_all")

    def get_new_since(
        self,
        session_id: Optional[str],
        last_sequence: int,
        token: Optional[CancellationToken] = None,
    ) -> List[Observation]:
        return self._select(session_id, last_sequence, token, "get_new_since")


class NullObservationSource:
    """Source with no observations; useful for dry runs."""

    def initialize(self) -> None:
        pass

    def get_all(
        self, session_id: Optional[str], token: Optional[CancellationToken] = None
    ) -> List[Observation]:
        check_cancelled(token, "get_all")
        return []

    def get_new_since(
        self,
        session_id: Optional[str],
        last_sequence: int,
        token: Optional[CancellationToken] = None,
    ) -> List[Observation]:
        check_cancelled(token, "get_new_since")
        return []
