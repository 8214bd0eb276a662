"""
Unit tests for observation sources and boundary providers.

Tests:
1. In-memory source filtering, ordering, outage and cancellation
2. GeoPackage source (written with geopandas into tmp_path)
3. Session discovery
4. Malformed measurement layers and missing rover names
5. GeoPackage boundary provider (union, reprojection)

Run with: python -m pytest scent_coverage/_tests/test_sources.py -v
"""

import pytest


class TestInMemorySource:
    """InMemoryObservationSource behaviour."""

    def test_get_all_sorted_and_filtered(self, make_observation):
        """get_all returns one session, ascending by sequence."""
        from scent_coverage.sources.memory_source import InMemoryObservationSource

        source = InMemoryObservationSource(
            [
                make_observation(sequence=3),
                make_observation(sequence=1),
                make_observation(sequence=2, session_id="other"),
            ]
        )
        assert [o.sequence for o in source.get_all("s1")] == [1, 3]
        assert [o.sequence for o in source.get_all(None)] == [1, 2, 3]

    def test_get_new_since(self, make_observation):
        """Only sequences above last_sequence are returned."""
        from scent_coverage.sources.memory_source import InMemoryObservationSource

        source = InMemoryObservationSource(make_observation(sequence=i) for i in range(1, 6))
        assert [o.sequence for o in source.get_new_since("s1", 3)] == [4, 5]
        assert source.get_new_since("s1", 5) == []

    def test_outage(self, make_observation):
        """set_available(False) raises SourceUnavailable."""
        from scent_coverage.errors import SourceUnavailable
        from scent_coverage.sources.memory_source import InMemoryObservationSource

        source = InMemoryObservationSource([make_observation()])
        source.set_available(False)
        with pytest.raises(SourceUnavailable):
            source.get_all("s1")

    def test_cancellation(self):
        """A cancelled token raises OperationCancelled."""
        from scent_coverage.errors import OperationCancelled
        from scent_coverage.sources.base import CancellationToken
        from scent_coverage.sources.memory_source import NullObservationSource

        token = CancellationToken()
        assert not token.cancelled
        token.cancel()
        assert token.cancelled
        with pytest.raises(OperationCancelled):
            NullObservationSource().get_all(None, token)

    def test_null_source(self):
        """NullObservationSource yields nothing."""
        from scent_coverage.sources.memory_source import NullObservationSource

        source = NullObservationSource()
        source.initialize()
        assert source.get_all("s1") == []
        assert source.get_new_since("s1", 0) == []


class TestGeoPackageSource:
    """GeoPackage measurement layer."""

    @pytest.fixture
    def gpkg_folder(self, tmp_path, make_observation):
        from scent_coverage.sources.geopackage_source import write_observations

        observations = [
            make_observation(sequence=2, east_m=10.0),
            make_observation(sequence=1),
            make_observation(sequence=3, rover_id="rover-b", rover_name="Bravo"),
            make_observation(sequence=4, session_id="s2"),
        ]
        write_observations(tmp_path / "rover_data.gpkg", observations)
        return tmp_path

    def test_folder_resolves_default_file(self, gpkg_folder):
        """A folder path reads rover_data.gpkg."""
        from scent_coverage.sources.geopackage_source import GeoPackageObservationSource

        source = GeoPackageObservationSource(gpkg_folder)
        assert source.path.name == "rover_data.gpkg"
        source.initialize()

    def test_get_all_round_trip(self, gpkg_folder, make_observation):
        """Stored rows come back as Observations ordered by sequence."""
        from scent_coverage.sources.geopackage_source import GeoPackageObservationSource

        source = GeoPackageObservationSource(gpkg_folder / "rover_data.gpkg")
        observations = source.get_all("s1")

        assert [o.sequence for o in observations] == [1, 2, 3]
        first = observations[0]
        expected = make_observation(sequence=1)
        assert first.rover_name == "Alpha"
        assert first.latitude == pytest.approx(expected.latitude)
        assert first.longitude == pytest.approx(expected.longitude)
        assert first.recorded_at == expected.recorded_at
        assert first.recorded_at.tzinfo is not None
        assert first.wind_speed_mps == pytest.approx(3.0)

    def test_get_new_since(self, gpkg_folder):
        """Incremental fetch filters by sequence and session."""
        from scent_coverage.sources.geopackage_source import GeoPackageObservationSource

        source = GeoPackageObservationSource(gpkg_folder)
        assert [o.sequence for o in source.get_new_since("s1", 1)] == [2, 3]
        assert [o.sequence for o in source.get_new_since(None, 3)] == [4]

    def test_append(self, gpkg_folder, make_observation):
        """Appended rows are visible to the next fetch."""
        from scent_coverage.sources.geopackage_source import (
            GeoPackageObservationSource,
            write_observations,
        )

        source = GeoPackageObservationSource(gpkg_folder)
        write_observations(
            gpkg_folder / "rover_data.gpkg", [make_observation(sequence=9)], append=True
        )
        assert [o.sequence for o in source.get_new_since("s1", 3)] == [9]

    def test_missing_file_unavailable(self, tmp_path):
        """A missing GeoPackage raises SourceUnavailable."""
        from scent_coverage.errors import SourceUnavailable
        from scent_coverage.sources.geopackage_source import GeoPackageObservationSource

        source = GeoPackageObservationSource(tmp_path / "missing.gpkg")
        with pytest.raises(SourceUnavailable):
            source.initialize()
        with pytest.raises(SourceUnavailable):
            source.get_all("s1")

    def test_missing_layer_unavailable(self, gpkg_folder):
        """An unknown layer raises SourceUnavailable."""
        from scent_coverage.errors import SourceUnavailable
        from scent_coverage.sources.geopackage_source import GeoPackageObservationSource

        source = GeoPackageObservationSource(gpkg_folder, layer="no_such_layer")
        with pytest.raises(SourceUnavailable):
            source.get_all("s1")

    def test_tracker_over_geopackage(self, gpkg_folder):
        """The tracker runs end to end on a GeoPackage source."""
        from scent_coverage.sources.geopackage_source import GeoPackageObservationSource
        from scent_coverage.tracking.coverage_tracker import CoverageTracker

        tracker = CoverageTracker(GeoPackageObservationSource(gpkg_folder), session_id="s1")
        result = tracker.current()
        assert result.polygon_count == 3
        assert result.rover_names == frozenset({"Alpha", "Bravo"})


class TestMalformedLayers:
    """Layers that exist but do not hold usable measurement rows."""

    def test_layer_without_sequence_column(self, tmp_path):
        """A layer lacking the sequence column raises SourceUnavailable."""
        import geopandas as gpd
        from shapely.geometry import Point

        from scent_coverage.errors import SourceUnavailable
        from scent_coverage.sources.geopackage_source import GeoPackageObservationSource

        path = tmp_path / "rover_data.gpkg"
        gpd.GeoDataFrame(
            {"rover_id": ["rover-a"], "session_id": ["s1"]},
            geometry=[Point(174.5, -36.7)],
            crs="EPSG:4326",
        ).to_file(path, layer="rover_measurements", driver="GPKG")

        source = GeoPackageObservationSource(path)
        with pytest.raises(SourceUnavailable) as excinfo:
            source.get_all("s1")
        assert "sequence" in str(excinfo.value)

    def test_tracker_serves_stale_on_malformed_layer(self, tmp_path, make_observation):
        """The tracker degrades to its last result instead of raising."""
        import geopandas as gpd
        from shapely.geometry import Point

        from scent_coverage.sources.geopackage_source import (
            GeoPackageObservationSource,
            write_observations,
        )
        from scent_coverage.tracking.coverage_tracker import CoverageTracker

        path = write_observations(tmp_path / "rover_data.gpkg", [make_observation(sequence=1)])
        tracker = CoverageTracker(GeoPackageObservationSource(path), session_id="s1")
        good = tracker.current()

        gpd.GeoDataFrame(
            {"rover_id": ["rover-a"]}, geometry=[Point(174.5, -36.7)], crs="EPSG:4326"
        ).to_file(path, layer="rover_measurements", driver="GPKG", mode="w")
        result = tracker.current()
        assert result.stale
        assert result.version == good.version
        assert tracker.stats.source_failures == 1

    def test_null_sequence_unavailable(self, tmp_path, make_observation):
        """Rows without a sequence number cannot be ordered."""
        from scent_coverage.errors import SourceUnavailable
        from scent_coverage.sources.geopackage_source import (
            GeoPackageObservationSource,
            observations_to_frame,
        )

        frame = observations_to_frame([make_observation(sequence=1), make_observation(sequence=2)])
        frame["sequence"] = frame["sequence"].astype("float64")
        frame.loc[1, "sequence"] = None
        path = tmp_path / "rover_data.gpkg"
        frame.to_file(path, layer="rover_measurements", driver="GPKG")

        with pytest.raises(SourceUnavailable):
            GeoPackageObservationSource(path).get_all("s1")

    def test_null_rover_name_becomes_unknown(self, tmp_path, make_observation):
        """An empty rover_name cell reads back as 'Unknown'."""
        from scent_coverage.sources.geopackage_source import (
            GeoPackageObservationSource,
            observations_to_frame,
        )

        frame = observations_to_frame([make_observation(sequence=1)])
        frame["rover_name"] = frame["rover_name"].astype(object)
        frame.loc[0, "rover_name"] = None
        path = tmp_path / "rover_data.gpkg"
        frame.to_file(path, layer="rover_measurements", driver="GPKG")

        observations = GeoPackageObservationSource(path).get_all("s1")
        assert observations[0].rover_name == "Unknown"

    def test_nan_rover_name_from_dict(self, make_observation):
        """NaN, None and empty names all map to 'Unknown'."""
        from scent_coverage.models.data_models import Observation

        record = make_observation().as_dict()
        for value in (float("nan"), None, ""):
            record["rover_name"] = value
            assert Observation.from_dict(record).rover_name == "Unknown"
        record["rover_name"] = "Charlie"
        assert Observation.from_dict(record).rover_name == "Charlie"


class TestSessionDiscovery:
    """session_*.gpkg discovery."""

    def test_list_sessions(self, tmp_path, make_observation):
        """Session names are the file stems without the prefix."""
        from scent_coverage.sources.geopackage_source import (
            list_sessions,
            resolve_source_path,
            write_observations,
        )

        write_observations(tmp_path / "session_morning.gpkg", [make_observation()])
        write_observations(tmp_path / "session_evening.gpkg", [make_observation()])
        (tmp_path / "notes.txt").write_text("not a session")

        names = {s.name for s in list_sessions(tmp_path)}
        assert names == {"morning", "evening"}
        assert resolve_source_path(tmp_path, "morning").name == "session_morning.gpkg"
        assert resolve_source_path(tmp_path, "unknown").name == "rover_data.gpkg"

    def test_missing_folder(self, tmp_path):
        """A missing folder has no sessions."""
        from scent_coverage.sources.geopackage_source import list_sessions

        assert list_sessions(tmp_path / "nope") == []


class TestGeoPackageBoundary:
    """Forest boundary loading."""

    def test_union_of_features(self, tmp_path, make_square):
        """Several features are unioned into one boundary."""
        import geopandas as gpd

        from scent_coverage.sources.boundary import GeoPackageBoundaryProvider

        west = make_square(500.0, east_m=-250.0)
        east = make_square(500.0, east_m=250.0)
        path = tmp_path / "forest.gpkg"
        gpd.GeoDataFrame(geometry=[west, east], crs="EPSG:4326").to_file(
            path, layer="riverheadforest", driver="GPKG"
        )

        boundary = GeoPackageBoundaryProvider(path).load_boundary()
        assert boundary.is_valid
        assert boundary.area == pytest.approx(west.area + east.area, rel=1e-6)

    def test_reprojected_layer(self, tmp_path, forest_100ha):
        """A projected layer is converted back to EPSG:4326."""
        import geopandas as gpd

        from scent_coverage.sources.boundary import GeoPackageBoundaryProvider

        path = tmp_path / "forest.gpkg"
        gpd.GeoDataFrame(geometry=[forest_100ha], crs="EPSG:4326").to_crs(
            "EPSG:3857"
        ).to_file(path, layer="riverheadforest", driver="GPKG")

        boundary = GeoPackageBoundaryProvider(path).load_boundary()
        assert boundary.centroid.x == pytest.approx(forest_100ha.centroid.x, abs=1e-6)
        assert boundary.centroid.y == pytest.approx(forest_100ha.centroid.y, abs=1e-6)

    def test_missing_boundary(self, tmp_path):
        """A missing file raises SourceUnavailable."""
        from scent_coverage.errors import SourceUnavailable
        from scent_coverage.sources.boundary import GeoPackageBoundaryProvider

        with pytest.raises(SourceUnavailable):
            GeoPackageBoundaryProvider(tmp_path / "missing.gpkg").load_boundary()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
