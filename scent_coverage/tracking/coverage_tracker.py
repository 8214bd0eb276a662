"""
Coverage Tracker - versioned, incrementally maintained coverage aggregates.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Wrap an ObservationSource and the UnificationEngine behind a
version-keyed cache. Each call to current() fetches only what is new,
rebuilds only the rovers that received new sequences, and rebuilds the
global aggregate only when some rover actually changed.

State Model:
- All aggregates live in one immutable _TrackerState snapshot:
  (rovers, detections, global polygon, last sequence).
- A refresh builds a NEW snapshot and publishes it with a single reference
  assignment, so readers never see a half-applied update.
- One writer lock per tracker serializes refreshes (one tracker per session).

Failure Semantics:
- SourceUnavailable → last known good global polygon, flagged stale
- InvalidGeometry → previous snapshot kept, result flagged stale
- OperationCancelled → snapshot untouched, exception propagates

Key Interactions:
- Input: ObservationSource (sources package)
- Uses: PolygonBuilder, UnificationEngine
- Output: GlobalUnifiedPolygon consumed by CoverageCalculator and exporters

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from scent_coverage.errors import InvalidGeometry, SourceUnavailable
from scent_coverage.models.data_models import (
    DetectionPolygon,
    GlobalUnifiedPolygon,
    Observation,
    RoverUnifiedPolygon,
)
from scent_coverage.scent.polygon_builder import PolygonBuilder
from scent_coverage.scent.unification import UnificationEngine
from scent_coverage.sources.base import (
    CancellationToken,
    ObservationSource,
    check_cancelled,
)

logger = logging.getLogger("ScentCoverage.Tracker")

GlobalListener = Callable[[GlobalUnifiedPolygon], Any]


# ═══════════════════════════════════════════════════════════════════════════
# 📊 TRACKER STATISTICS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class TrackerStats:
    """Counters for tracker activity."""

    polls: int = 0
    cache_hits: int = 0
    rebuilds: int = 0
    accepted_observations: int = 0
    rejected_observations: int = 0
    source_failures: int = 0
    geometry_failures: int = 0

    def hit_rate(self) -> float:
        """Share of polls that needed no rebuild, as percentage."""
        if self.polls == 0:
            return 0.0
        return (self.cache_hits / self.polls) * 100.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary for logging."""
        return {
            "polls": self.polls,
            "cache_hits": self.cache_hits,
            "rebuilds": self.rebuilds,
            "accepted_observations": self.accepted_observations,
            "rejected_observations": self.rejected_observations,
            "source_failures": self.source_failures,
            "geometry_failures": self.geometry_failures,
            "hit_rate_pct": round(self.hit_rate(), 1),
        }


# ═══════════════════════════════════════════════════════════════════════════
# 📸 SNAPSHOT
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class _TrackerState:
    """Immutable tracker snapshot, replaced as a whole on every change."""

    rovers: Mapping[str, RoverUnifiedPolygon] = field(default_factory=dict)
    detections: Mapping[str, Tuple[DetectionPolygon, ...]] = field(default_factory=dict)
    global_polygon: GlobalUnifiedPolygon = field(default_factory=GlobalUnifiedPolygon.empty)
    last_sequence: int = -1
    latest: Optional[DetectionPolygon] = None
    initialized: bool = False


# ═══════════════════════════════════════════════════════════════════════════
# 🔄 COVERAGE TRACKER
# ═══════════════════════════════════════════════════════════════════════════


class CoverageTracker:
    """
    Incremental coverage aggregation for one session.

    Attributes:
        session_id: Session tracked (None = every session the source holds)
        stats: Activity counters

    Example:
        >>> tracker = CoverageTracker(InMemoryObservationSource(observations))
        >>> global_polygon = tracker.current()
        >>> global_polygon.version
        1
    """

    def __init__(
        self,
        source: ObservationSource,
        session_id: Optional[str] = None,
        builder: Optional[PolygonBuilder] = None,
        engine: Optional[UnificationEngine] = None,
    ):
        self._source = source
        self.session_id = session_id
        self.builder = builder or PolygonBuilder()
        self.engine = engine or UnificationEngine()
        self.stats = TrackerStats()

        self._lock = threading.Lock()
        self._state = _TrackerState()
        self._source_ready = False
        self._listeners: List[GlobalListener] = []
        # Serializes registration and delivery; reentrant so a listener may subscribe
        self._listener_lock = threading.RLock()
        self._notified_version = -1

    # -----------------------------------------------------------------------
    # Refresh
    # -----------------------------------------------------------------------

    def current(self, token: Optional[CancellationToken] = None) -> GlobalUnifiedPolygon:
        """
        Return the up-to-date global coverage aggregate.

        The first call loads every observation of the session; later calls
        fetch only sequences above the last one seen.

        Args:
            token: Optional cancellation token for the fetch

        Returns:
            GlobalUnifiedPolygon; flagged stale when the source or the
            geometry kernel failed and the last known good result is served

        Raises:
            OperationCancelled: If the token was cancelled (state untouched)
        """
        with self._lock:
            self.stats.polls += 1
            state = self._state

            try:
                observations = self._fetch(state, token)
            except SourceUnavailable as e:
                self.stats.source_failures += 1
                logger.warning(f"⚠️ Source unavailable, serving v{state.global_polygon.version} (stale): {e}")
                return dataclasses.replace(
                    state.global_polygon, stale=True, stale_reason=str(e)
                )

            try:
                new_state, accepted, rejected = self._apply(state, observations, token)
            except InvalidGeometry as e:
                self.stats.geometry_failures += 1
                logger.warning(f"⚠️ Geometry failure, keeping v{state.global_polygon.version} (stale): {e}")
                return dataclasses.replace(
                    state.global_polygon, stale=True, stale_reason=str(e)
                )

            if new_state is state:
                self.stats.cache_hits += 1
                self.stats.rejected_observations += rejected
                logger.debug(f"💾 Cache hit: v{state.global_polygon.version}")
                return state.global_polygon

            # Last chance to cancel before the snapshot is published
            check_cancelled(token, "refresh")
            self._state = new_state
            changed = new_state.global_polygon.version != state.global_polygon.version
            self.stats.accepted_observations += accepted
            self.stats.rejected_observations += rejected
            if rejected:
                logger.debug(f"🔁 Ignored {rejected} duplicate / out-of-order observations")
            if changed:
                self.stats.rebuilds += 1
                global_polygon = new_state.global_polygon
                logger.info(
                    f"🔄 v{global_polygon.version}: +{accepted} observations, "
                    f"{global_polygon.polygon_count} polygons, "
                    f"{global_polygon.total_area_ha:.2f} ha"
                )

        if changed:
            self._notify(new_state.global_polygon)
        return new_state.global_polygon

    def _fetch(
        self, state: _TrackerState, token: Optional[CancellationToken]
    ) -> List[Observation]:
        if not self._source_ready:
            self._source.initialize()
            self._source_ready = True
        if not state.initialized:
            observations = self._source.get_all(self.session_id, token)
        else:
            observations = self._source.get_new_since(
                self.session_id, state.last_sequence, token
            )
        check_cancelled(token, "fetch")
        return observations

    def _apply(
        self,
        state: _TrackerState,
        observations: List[Observation],
        token: Optional[CancellationToken],
    ) -> Tuple[_TrackerState, int, int]:
        """
        Fold observations into a new snapshot (or return state unchanged).

        Nothing outside the returned snapshot is touched, so a cancelled or
        failed rebuild leaves the tracker exactly as it was.

        Returns:
            Tuple of (snapshot, accepted observation count, rejected count)
        """
        if not observations and state.initialized:
            return state, 0, 0

        # === GROUP + DEDUPLICATE PER ROVER ===
        per_rover: Dict[str, List[Observation]] = {}
        seen: Dict[str, set] = {}
        rejected = 0
        for obs in sorted(observations, key=lambda o: o.sequence):
            existing = state.rovers.get(obs.rover_id)
            latest = existing.latest_sequence if existing is not None else -1
            rover_seen = seen.setdefault(obs.rover_id, set())
            if obs.sequence <= latest or obs.sequence in rover_seen:
                rejected += 1
                continue
            rover_seen.add(obs.sequence)
            per_rover.setdefault(obs.rover_id, []).append(obs)

        last_sequence = max(
            [state.last_sequence] + [obs.sequence for obs in observations]
        )
        accepted = sum(len(v) for v in per_rover.values())

        if not per_rover:
            if state.initialized and last_sequence == state.last_sequence:
                return state, 0, rejected
            new_state = dataclasses.replace(state, last_sequence=last_sequence, initialized=True)
            return new_state, 0, rejected

        # === REBUILD ONLY THE ROVERS WITH NEW SEQUENCES ===
        rovers = dict(state.rovers)
        detections = dict(state.detections)
        latest_detection = state.latest
        for rover_id, rover_observations in per_rover.items():
            check_cancelled(token, "rebuild")
            new_detections = self.builder.build_many(rover_observations)
            rovers[rover_id] = self.engine.merge_into_rover(
                rovers.get(rover_id), new_detections
            )
            detections[rover_id] = detections.get(rover_id, ()) + tuple(new_detections)
            newest = new_detections[-1]
            if latest_detection is None or newest.sequence > latest_detection.sequence:
                latest_detection = newest

        version = state.global_polygon.version + 1
        global_polygon = self.engine.unify_rover_polygons(list(rovers.values()), version)
        new_state = _TrackerState(
            rovers=rovers,
            detections=detections,
            global_polygon=global_polygon,
            last_sequence=last_sequence,
            latest=latest_detection,
            initialized=True,
        )
        return new_state, accepted, rejected

    # -----------------------------------------------------------------------
    # Listeners
    # -----------------------------------------------------------------------

    def subscribe(self, callback: GlobalListener) -> Callable[[], None]:
        """
        Register a callback invoked with each new global aggregate version.

        Returns:
            Function that removes the callback again
        """
        with self._listener_lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._listener_lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, global_polygon: GlobalUnifiedPolygon) -> None:
        """Deliver a version to listeners; versions older than one already sent are dropped."""
        with self._listener_lock:
            if global_polygon.version <= self._notified_version:
                logger.debug(
                    f"⏭️ Skipping notification of v{global_polygon.version} "
                    f"(v{self._notified_version} already delivered)"
                )
                return
            self._notified_version = global_polygon.version
            for callback in list(self._listeners):
                try:
                    callback(global_polygon)
                except Exception:
                    logger.exception(f"❌ Coverage listener {callback!r} failed")

    # -----------------------------------------------------------------------
    # Snapshot accessors (lock-free reads of the published snapshot)
    # -----------------------------------------------------------------------

    @property
    def snapshot(self) -> GlobalUnifiedPolygon:
        """Last published global aggregate, without fetching."""
        return self._state.global_polygon

    @property
    def version(self) -> int:
        return self._state.global_polygon.version

    @property
    def last_sequence(self) -> int:
        return self._state.last_sequence

    @property
    def latest_polygon(self) -> Optional[DetectionPolygon]:
        """Detection polygon of the most recent observation."""
        return self._state.latest

    def rover_polygons(self) -> Dict[str, RoverUnifiedPolygon]:
        return dict(self._state.rovers)

    def detection_polygons(self, rover_id: Optional[str] = None) -> List[DetectionPolygon]:
        """Detection polygons of one rover, or of every rover, by sequence."""
        state = self._state
        if rover_id is not None:
            return list(state.detections.get(rover_id, ()))
        merged = [d for polys in state.detections.values() for d in polys]
        return sorted(merged, key=lambda d: d.sequence)

    def rover_trail(self, rover_id: str) -> List[Tuple[float, float]]:
        """Ordered (lon, lat) positions of a rover."""
        return [d.position for d in self._state.detections.get(rover_id, ())]

    def reset(self) -> None:
        """
        Drop all aggregates; the next current() reloads the whole session.

        The version keeps increasing so stats cached for an older version
        can never be mistaken for current ones.
        """
        with self._lock:
            next_version = self._state.global_polygon.version + 1
            emptied = GlobalUnifiedPolygon.empty(version=next_version)
            self._state = _TrackerState(global_polygon=emptied)
        logger.info(f"🧹 Tracker reset (v{next_version})")
        self._notify(emptied)
