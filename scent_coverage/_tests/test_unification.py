"""
Unit tests for the unification engine.

Tests:
1. Empty / single input edge cases
2. Order invariance of unify_polygons
3. Overlapping vs disjoint area accounting
4. Alpha + Bravo cross-rover scenario
5. Incremental merge_into_rover (versioning, dedupe, ordering)
6. Vertex budget simplification, repair and union fallback
7. Exact merge base with a simplified display copy

Run with: python -m pytest scent_coverage/_tests/test_unification.py -v
"""

import random

import pytest
import shapely


@pytest.fixture
def builder():
    from scent_coverage.scent.polygon_builder import PolygonBuilder

    return PolygonBuilder()


@pytest.fixture
def engine():
    from scent_coverage.scent.unification import UnificationEngine

    return UnificationEngine()


@pytest.fixture
def walk(make_observation, builder):
    """Ten detections along a zig-zag walk with veering wind."""
    detections = []
    for i in range(10):
        obs = make_observation(
            sequence=i + 1,
            east_m=25.0 * i,
            north_m=15.0 * (i % 3),
            wind_direction_deg=30.0 * i,
            wind_speed_mps=0.8 * i,
        )
        detections.append(builder.build(obs))
    return detections


class TestEdgeCases:
    """Empty and single inputs."""

    def test_empty_input(self, engine):
        """No polygons → empty geometry, zero area, zero count, no error."""
        result = engine.unify_polygons([])
        assert result.is_empty
        assert result.geometry.is_empty
        assert result.total_area_m2 == 0.0
        assert result.polygon_count == 0

    def test_single_input_unchanged(self, engine, walk):
        """One polygon → same geometry, count 1."""
        result = engine.unify_polygons([walk[3]])
        assert result.polygon_count == 1
        assert result.geometry.equals(walk[3].geometry)
        assert result.total_area_m2 == pytest.approx(walk[3].area_m2)

    def test_empty_rover_set(self, engine):
        """No rovers → empty global aggregate with the given version."""
        result = engine.unify_rover_polygons([], version=4)
        assert result.is_empty
        assert result.polygon_count == 0
        assert result.version == 4
        assert result.rover_names == frozenset()

    def test_module_level_functions(self, walk):
        """Module-level helpers use a default engine."""
        from scent_coverage.scent.unification import unify_polygons

        assert unify_polygons(walk).polygon_count == 10


class TestOrderInvariance:
    """Union result does not depend on input order."""

    def test_reversed_and_shuffled(self, engine, walk):
        """Area and geometry agree for permutations of the input."""
        forward = engine.unify_polygons(walk)
        backward = engine.unify_polygons(list(reversed(walk)))
        shuffled_input = list(walk)
        random.Random(7).shuffle(shuffled_input)
        shuffled = engine.unify_polygons(shuffled_input)

        for other in (backward, shuffled):
            rel = abs(other.total_area_m2 - forward.total_area_m2) / forward.total_area_m2
            assert rel < 1e-9
            assert other.polygon_count == forward.polygon_count
            diff = forward.geometry.symmetric_difference(other.geometry).area
            assert diff < forward.geometry.area * 1e-7


class TestAreaAccounting:
    """Areas come from the merged geometry."""

    def test_overlap_smaller_than_sum(self, engine, walk):
        """Overlapping detections are not double counted."""
        result = engine.unify_polygons(walk)
        total = sum(d.area_m2 for d in walk)
        assert 0 < result.total_area_m2 < total
        assert result.individual_areas_sum_m2 == pytest.approx(total)
        assert 0 < result.coverage_efficiency < 1

    def test_disjoint_equals_sum(self, engine, builder, make_observation):
        """Far-apart detections keep their full area."""
        detections = [
            builder.build(make_observation(sequence=i, east_m=2000.0 * i))
            for i in range(3)
        ]
        result = engine.unify_polygons(detections)
        total = sum(d.area_m2 for d in detections)
        assert result.total_area_m2 == pytest.approx(total, rel=1e-6)
        assert isinstance(result.geometry, shapely.MultiPolygon)
        assert result.is_valid

    def test_metadata(self, engine, walk):
        """Time span, wind statistics and identifiers are aggregated."""
        result = engine.unify_polygons(walk)
        assert result.earliest_at == walk[0].recorded_at
        assert result.latest_at == walk[-1].recorded_at
        assert result.wind_speed_range == (pytest.approx(0.0), pytest.approx(7.2))
        assert result.average_wind_speed_mps == pytest.approx(3.6)
        assert result.session_ids == ("s1",)
        assert result.rover_names == ("Alpha",)
        assert result.vertex_count > 0
        assert shapely.get_srid(result.geometry) == 4326


class TestCrossRover:
    """Global aggregate over several rovers."""

    def test_alpha_bravo(self, engine, builder, make_observation):
        """Alpha (3) + Bravo (2) → count 5, both names, area ≤ A + B."""
        alpha = [
            builder.build(make_observation(sequence=i, east_m=20.0 * i))
            for i in range(1, 4)
        ]
        bravo = [
            builder.build(
                make_observation(
                    sequence=10 + i,
                    rover_id="rover-b",
                    rover_name="Bravo",
                    north_m=60.0 * i,
                )
            )
            for i in range(1, 3)
        ]
        rover_a = engine.merge_into_rover(None, alpha)
        rover_b = engine.merge_into_rover(None, bravo)

        result = engine.unify_rover_polygons([rover_a, rover_b], version=1)

        assert result.polygon_count == 5
        assert result.rover_names == frozenset({"Alpha", "Bravo"})
        assert result.rover_count == 2
        assert 0 < result.total_area_m2 <= (rover_a.total_area_m2 + rover_b.total_area_m2) * (1 + 1e-9)
        assert result.geometry.is_valid
        assert result.version == 1

    def test_single_rover_geometry_unchanged(self, engine, walk):
        """A single rover's geometry passes through."""
        rover = engine.merge_into_rover(None, walk)
        result = engine.unify_rover_polygons([rover])
        assert result.geometry.equals(rover.geometry)
        assert result.polygon_count == 10


class TestMergeIntoRover:
    """Incremental per-rover merge."""

    def test_first_merge_creates_version_one(self, engine, walk):
        """A new rover starts at version 1 with the highest sequence."""
        rover = engine.merge_into_rover(None, walk[:4])
        assert rover.version == 1
        assert rover.polygon_count == 4
        assert rover.latest_sequence == 4
        assert rover.earliest_at == walk[0].recorded_at
        assert rover.latest_at == walk[3].recorded_at

    def test_incremental_equals_one_shot(self, engine, walk):
        """Merging in two steps yields the same area as one union."""
        step = engine.merge_into_rover(None, walk[:5])
        step = engine.merge_into_rover(step, walk[5:])
        one_shot = engine.unify_polygons(walk)
        assert step.version == 2
        assert step.polygon_count == 10
        assert step.geometry.symmetric_difference(one_shot.geometry).area < one_shot.geometry.area * 1e-7

    def test_old_and_duplicate_sequences_ignored(self, engine, walk):
        """Sequences ≤ latest and repeats are dropped; nothing new → same object."""
        rover = engine.merge_into_rover(None, walk[:5])
        again = engine.merge_into_rover(rover, walk[:5])
        assert again is rover

        merged = engine.merge_into_rover(rover, [walk[5], walk[5], walk[2]])
        assert merged.polygon_count == 6
        assert merged.latest_sequence == 6
        assert merged.version == 2

    def test_unordered_batch_merged_by_sequence(self, engine, walk):
        """Batch order does not matter; latest_sequence is the maximum."""
        rover = engine.merge_into_rover(None, list(reversed(walk)))
        assert rover.latest_sequence == 10
        assert rover.polygon_count == 10

    def test_mean_latitude_weighted(self, engine, walk):
        """Mean latitude is the mean over all merged observations."""
        rover = engine.merge_into_rover(None, walk[:3])
        rover = engine.merge_into_rover(rover, walk[3:])
        expected = sum(d.latitude for d in walk) / len(walk)
        assert rover.mean_latitude == pytest.approx(expected)

    def test_mixed_rovers_rejected(self, engine, builder, make_observation):
        """Detections of another rover cannot be merged."""
        a = builder.build(make_observation(sequence=1))
        b = builder.build(make_observation(sequence=2, rover_id="rover-b", rover_name="Bravo"))
        with pytest.raises(ValueError):
            engine.merge_into_rover(None, [a, b])

    def test_nothing_to_merge(self, engine):
        """No existing aggregate and no detections → None."""
        assert engine.merge_into_rover(None, []) is None


class TestSimplifyAndRepair:
    """Vertex budget, validity repair and union fallback."""

    def test_simplify_over_budget(self, walk):
        """Geometries above max_vertices are simplified and stay valid."""
        from scent_coverage.config_types import UnificationConfig
        from scent_coverage.scent.unification import UnificationEngine

        engine = UnificationEngine(UnificationConfig(max_vertices=20))
        geometry = walk[0].geometry
        simplified = engine.simplify(geometry, walk[0].latitude)
        assert simplified.is_valid
        assert shapely.get_num_coordinates(simplified) < shapely.get_num_coordinates(geometry)

    def test_simplify_disabled(self, walk):
        """simplify_enabled=False leaves geometry untouched."""
        from scent_coverage.config_types import UnificationConfig
        from scent_coverage.scent.unification import UnificationEngine

        engine = UnificationEngine(UnificationConfig(max_vertices=20, simplify_enabled=False))
        assert engine.simplify(walk[0].geometry, walk[0].latitude) is walk[0].geometry

    def test_repair_bowtie(self):
        """A self-intersecting ring is repaired and counted."""
        from shapely.geometry import Polygon

        from scent_coverage.scent.scent_geo import REPAIR_STATS, repair_geometry

        REPAIR_STATS.reset()
        bowtie = Polygon([(0, 0), (1, 1), (1, 0), (0, 1)])
        assert not bowtie.is_valid

        fixed = repair_geometry(bowtie, "test")
        assert fixed.is_valid
        assert not fixed.is_empty
        counts = REPAIR_STATS.to_dict()
        assert counts["zero_buffer_repairs"] + counts["make_valid_repairs"] == 1

    def test_valid_geometry_not_counted(self):
        """Valid input is returned as-is."""
        from shapely.geometry import box

        from scent_coverage.scent.scent_geo import REPAIR_STATS, repair_geometry

        REPAIR_STATS.reset()
        square = box(0, 0, 1, 1)
        assert repair_geometry(square, "test") is square
        assert REPAIR_STATS.to_dict()["failures"] == 0

    def test_progressive_fallback(self, monkeypatch, walk):
        """A failing unary_union falls back to batched pairwise union."""
        from scent_coverage.config_types import UnificationConfig
        from scent_coverage.scent import unification

        expected = unification.UnificationEngine().unify_polygons(walk)

        def broken_union(geometries):
            raise shapely.errors.GEOSException("TopologyException: simulated")

        monkeypatch.setattr(unification, "unary_union", broken_union)
        engine = unification.UnificationEngine(UnificationConfig(union_batch_size=3))
        result = engine.unify_polygons(walk)

        assert result.geometry.is_valid
        assert result.total_area_m2 == pytest.approx(expected.total_area_m2, rel=1e-7)

    def test_pairwise_failure_raises_invalid_geometry(self, monkeypatch, walk):
        """When every union path fails, the GEOS error surfaces as InvalidGeometry."""
        from shapely.geometry.base import BaseGeometry

        from scent_coverage.config_types import UnificationConfig
        from scent_coverage.errors import InvalidGeometry
        from scent_coverage.scent import unification

        def broken_union(*args, **kwargs):
            raise shapely.errors.GEOSException("TopologyException: simulated")

        monkeypatch.setattr(unification, "unary_union", broken_union)
        monkeypatch.setattr(BaseGeometry, "union", broken_union)
        engine = unification.UnificationEngine(UnificationConfig(union_batch_size=3))

        with pytest.raises(InvalidGeometry) as excinfo:
            engine.unify_polygons(walk)
        assert excinfo.value.operation == "unify_polygons"
        assert isinstance(excinfo.value.__cause__, shapely.errors.GEOSException)

        with pytest.raises(InvalidGeometry):
            engine.merge_into_rover(None, walk)


class TestExactMergeBase:
    """Simplification never feeds back into later merges."""

    def test_many_small_merges_match_one_shot_area(self, walk):
        """Single-detection merges under a tight vertex budget keep the exact area."""
        from scent_coverage.config_types import UnificationConfig
        from scent_coverage.scent.unification import UnificationEngine

        engine = UnificationEngine(UnificationConfig(max_vertices=20))
        rover = None
        for detection in walk:
            rover = engine.merge_into_rover(rover, [detection])
        one_shot = engine.unify_polygons(walk)

        assert rover.version == len(walk)
        assert rover.total_area_m2 == pytest.approx(one_shot.total_area_m2, rel=1e-6)
        assert rover.geometry.symmetric_difference(one_shot.geometry).area < one_shot.geometry.area * 1e-6

    def test_display_geometry_within_budget(self, walk):
        """The display copy is simplified; the exact geometry is not."""
        from scent_coverage.config_types import UnificationConfig
        from scent_coverage.scent.unification import UnificationEngine

        engine = UnificationEngine(UnificationConfig(max_vertices=20))
        rover = engine.merge_into_rover(None, walk)

        assert rover.display_geometry is not None
        assert rover.export_geometry is rover.display_geometry
        assert shapely.get_num_coordinates(rover.export_geometry) < shapely.get_num_coordinates(rover.geometry)
        assert rover.display_geometry.is_valid

        global_polygon = engine.unify_rover_polygons([rover], version=1)
        assert global_polygon.display_geometry is not None
        assert global_polygon.total_area_m2 == pytest.approx(rover.total_area_m2)

    def test_no_display_copy_within_budget(self, engine, walk):
        """Small aggregates export their exact geometry."""
        rover = engine.merge_into_rover(None, walk[:1])
        assert rover.display_geometry is None
        assert rover.export_geometry is rover.geometry


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
