from __future__ import annotations

from typing import Callable, List, Optional, Sequence

import numpy as np

from .loess import DEFAULT_BANDWIDTH, loess_smooth, loess_smooth_weighted
from .points import Point
from .regression import RegressionResult

DEFAULT_CURVE_POINTS = 100


def sample_function(fn: Callable[[float], float], x_min: float, x_max: float, n: int) -> List[Point]:
    """Evaluate ``fn`` at ``n`` evenly spaced x values over ``[x_min, x_max]``."""
    if n <= 0:
        return []
    if n == 1:
        xs = [float(x_min)]
    else:
        xs = np.linspace(float(x_min), float(x_max), int(n)).tolist()
    return [Point(x, float(fn(x))) for x in xs]


def generate_curve_points(
    regression: RegressionResult,
    x_min: float,
    x_max: float,
    n: int = DEFAULT_CURVE_POINTS,
) -> List[Point]:
    return sample_function(regression.predict, x_min, x_max, n)


def generate_loess_curve_points(
    points: Sequence[Point],
    x_min: float,
    x_max: float,
    n: int = DEFAULT_CURVE_POINTS,
    bandwidth: float = DEFAULT_BANDWIDTH,
    weights: Optional[Sequence[float]] = None,
) -> List[Point]:
    """Sample a LOESS fit of ``points``; ``[]`` when there are fewer than three."""
    if weights is None:
        smoother = loess_smooth(points, bandwidth)
    else:
        smoother = loess_smooth_weighted(points, weights, bandwidth)
    if smoother is None:
        return []
    return sample_function(smoother, x_min, x_max, n)
