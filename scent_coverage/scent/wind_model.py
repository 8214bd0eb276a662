"""
Wind Model - wind speed → detection lobe shape.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Map a wind speed to the two shape parameters of the upwind
detection lobe: the fan half-angle (how wide) and the reach (how far).

Light wind spreads scent widely but not far; strong wind carries it further
in a narrow plume. Both laws are piecewise-linear tables evaluated with
numpy.interp, flat outside the table range:

    half-angle: (0 m/s, 30°) (1, 30°) (3, 15°) (6, 9°) (14, 5°)
    reach:      min_reach + (max_reach - min_reach) * shape(speed / max_ws)

The reach shape passes through the field-calibrated breakpoints
0 / 0.5 / 2 / 5 / 8 m/s → 60 / 100 / 160 / 250 / 280 m at the default
settings and stays flat at max_reach beyond max_wind_speed_mps.

Any object implementing the WindModel protocol can be handed to
PolygonBuilder instead of PiecewiseWindModel.
"""

from typing import Protocol, Sequence

import numpy as np

from scent_coverage.config_types import ScentPolygonConfig
from scent_coverage.errors import ConfigurationError

# Fan half-angle table (wind speed m/s → degrees)
HALF_ANGLE_SPEEDS = (0.0, 1.0, 3.0, 6.0, 14.0)
HALF_ANGLE_DEGREES = (30.0, 30.0, 15.0, 9.0, 5.0)

# Normalized reach shape (speed / max_wind_speed → fraction of reach span)
REACH_SHAPE_X = (0.0, 0.0625, 0.25, 0.625, 1.0)
REACH_SHAPE_Y = (0.0, 40.0 / 220.0, 100.0 / 220.0, 190.0 / 220.0, 1.0)


class WindModel(Protocol):
    """Shape law for the upwind lobe."""

    def fan_half_angle_deg(self, wind_speed_mps: float) -> float:
        """Half-width of the fan; non-increasing in wind speed."""
        ...

    def reach_m(self, wind_speed_mps: float) -> float:
        """Lobe reach in meters; non-decreasing in wind speed."""
        ...


def _check_table(xs: Sequence[float], ys: Sequence[float], name: str) -> None:
    if len(xs) != len(ys) or len(xs) < 2:
        raise ConfigurationError(f"{name}: table needs >= 2 matching points")
    if any(b <= a for a, b in zip(xs, xs[1:])):
        raise ConfigurationError(f"{name}: breakpoints must be strictly increasing")


class PiecewiseWindModel:
    """
    Default wind law built from piecewise-linear tables.

    Args:
        config: Polygon settings providing max_wind_speed_mps and the reach span
        half_angle_speeds: Wind speed breakpoints of the half-angle table
        half_angle_degrees: Half-angles at those breakpoints (non-increasing)
        reach_shape_x: Normalized speed breakpoints of the reach shape
        reach_shape_y: Reach fraction at those breakpoints (non-decreasing)

    Raises:
        ConfigurationError: If a table is malformed or violates monotonicity
    """

    def __init__(
        self,
        config: ScentPolygonConfig,
        half_angle_speeds: Sequence[float] = HALF_ANGLE_SPEEDS,
        half_angle_degrees: Sequence[float] = HALF_ANGLE_DEGREES,
        reach_shape_x: Sequence[float] = REACH_SHAPE_X,
        reach_shape_y: Sequence[float] = REACH_SHAPE_Y,
    ):
        _check_table(half_angle_speeds, half_angle_degrees, "half-angle")
        _check_table(reach_shape_x, reach_shape_y, "reach shape")
        if any(b > a for a, b in zip(half_angle_degrees, half_angle_degrees[1:])):
            raise ConfigurationError("half-angle table must be non-increasing")
        if any(b < a for a, b in zip(reach_shape_y, reach_shape_y[1:])):
            raise ConfigurationError("reach shape must be non-decreasing")
        if not 0.0 < min(half_angle_degrees) <= max(half_angle_degrees) < 180.0:
            raise ConfigurationError("half-angles must lie in (0, 180)")

        self.config = config
        self._ha_x = np.asarray(half_angle_speeds, dtype=float)
        self._ha_y = np.asarray(half_angle_degrees, dtype=float)
        self._shape_x = np.asarray(reach_shape_x, dtype=float)
        self._shape_y = np.asarray(reach_shape_y, dtype=float)

    def fan_half_angle_deg(self, wind_speed_mps: float) -> float:
        speed = max(0.0, float(wind_speed_mps))
        return float(np.interp(speed, self._ha_x, self._ha_y))

    def reach_m(self, wind_speed_mps: float) -> float:
        cfg = self.config
        ratio = min(1.0, max(0.0, float(wind_speed_mps)) / cfg.max_wind_speed_mps)
        shape = float(np.interp(ratio, self._shape_x, self._shape_y))
        reach = cfg.min_reach_m + (cfg.max_reach_m - cfg.min_reach_m) * shape
        return max(reach, cfg.min_extent_m)
