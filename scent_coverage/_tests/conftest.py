"""Shared fixtures for scent coverage tests."""

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest
from shapely.geometry import Polygon

from scent_coverage.models.data_models import Observation
from scent_coverage.scent.scent_geo import meters_per_degree

BASE_LAT = -36.85
BASE_LON = 174.76
BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def square_m(lon: float, lat: float, side_m: float) -> Polygon:
    """Axis-aligned square of side_m meters centered on (lon, lat)."""
    m_lat, m_lon = meters_per_degree(lat)
    half_lon = side_m / 2.0 / m_lon
    half_lat = side_m / 2.0 / m_lat
    return Polygon(
        [
            (lon - half_lon, lat - half_lat),
            (lon + half_lon, lat - half_lat),
            (lon + half_lon, lat + half_lat),
            (lon - half_lon, lat + half_lat),
        ]
    )


@pytest.fixture
def make_observation() -> Callable[..., Observation]:
    """Factory for observations; positions are offsets in meters from the base."""

    def _make(
        sequence: int = 1,
        rover_id: str = "rover-a",
        rover_name: str = "Alpha",
        session_id: str = "s1",
        east_m: float = 0.0,
        north_m: float = 0.0,
        wind_direction_deg: float = 45.0,
        wind_speed_mps: float = 3.0,
    ) -> Observation:
        m_lat, m_lon = meters_per_degree(BASE_LAT)
        return Observation(
            rover_id=rover_id,
            rover_name=rover_name,
            session_id=session_id,
            sequence=sequence,
            recorded_at=BASE_TIME + timedelta(seconds=sequence),
            latitude=BASE_LAT + north_m / m_lat,
            longitude=BASE_LON + east_m / m_lon,
            wind_direction_deg=wind_direction_deg,
            wind_speed_mps=wind_speed_mps,
        )

    return _make


@pytest.fixture
def forest_100ha() -> Polygon:
    """1000 m × 1000 m boundary (100 ha) centered on the base position."""
    return square_m(BASE_LON, BASE_LAT, 1000.0)


@pytest.fixture
def make_square() -> Callable[..., Polygon]:
    """square_m() as a fixture; positions are offsets in meters from the base."""

    def _make(side_m: float, east_m: float = 0.0, north_m: float = 0.0) -> Polygon:
        m_lat, m_lon = meters_per_degree(BASE_LAT)
        return square_m(BASE_LON + east_m / m_lon, BASE_LAT + north_m / m_lat, side_m)

    return _make
