"""LOESS: locally weighted linear regression with a tricube kernel."""

from __future__ import annotations

import math
from functools import lru_cache
from typing import Callable, Optional, Sequence

import numpy as np

from .points import Point, as_arrays

DEFAULT_BANDWIDTH = 0.3
MIN_POINTS = 3
# A local line needs at least this many neighbours to be identifiable.
MIN_NEIGHBOURS = 3

Smoother = Callable[[float], float]


def neighbourhood_size(n: int, bandwidth: float) -> int:
    # Rounding keeps 0.3 * 20 at 6 rather than 6.000000000000001 -> 7.
    k = math.ceil(round(bandwidth * n, 9))
    return min(n, max(k, MIN_NEIGHBOURS))


def tricube(u: np.ndarray) -> np.ndarray:
    u = np.clip(np.abs(u), 0.0, 1.0)
    return (1.0 - u ** 3) ** 3


def _weighted_mean(values: np.ndarray, weights: np.ndarray) -> float:
    total = float(np.sum(weights))
    if total <= 0:
        return float(np.mean(values))
    return float(np.sum(weights * values)) / total


def _local_linear(x: np.ndarray, y: np.ndarray, w: np.ndarray, x0: float) -> float:
    mean_x = _weighted_mean(x, w)
    mean_y = _weighted_mean(y, w)
    dx = x - mean_x
    denominator = float(np.sum(w * dx * dx))
    if denominator == 0.0:
        return mean_y
    slope = float(np.sum(w * dx * (y - mean_y))) / denominator
    return mean_y + slope * (x0 - mean_x)


def loess_smooth_weighted(
    points: Sequence[Point],
    weights: Sequence[float],
    bandwidth: float = DEFAULT_BANDWIDTH,
) -> Optional[Smoother]:
    """Build a LOESS smoother where each point also carries its own weight.

    Args:
        points: Observations.
        weights: One non-negative weight per point, multiplied into the
            tricube kernel (e.g. how much of a year a point covers).
        bandwidth: Fraction of points in each neighbourhood, in ``(0, 1]``.

    Returns:
        A callable evaluating the local fit at any x, or ``None`` for fewer
        than three points. Outside the observed x-range it extrapolates the
        nearest local line.

    Raises:
        ValueError: If ``bandwidth`` is outside ``(0, 1]`` or the weights do
            not line up with the points.
    """
    if not 0 < bandwidth <= 1:
        raise ValueError(f"bandwidth must be in (0, 1], got {bandwidth!r}")
    if points is None or len(points) < MIN_POINTS:
        return None
    if len(weights) != len(points):
        raise ValueError(f"Got {len(weights)} weights for {len(points)} points")

    x, y = as_arrays(points)
    point_weights = np.clip(np.asarray(weights, dtype=float), 0.0, None)
    k = neighbourhood_size(len(x), bandwidth)

    @lru_cache(maxsize=4096)
    def smoother(x0: float) -> float:
        distances = np.abs(x - x0)
        idx = np.argsort(distances, kind="stable")[:k]
        d = distances[idx]
        xs, ys, ws = x[idx], y[idx], point_weights[idx]

        d_max = float(d.max())
        if d_max == 0.0:
            return _weighted_mean(ys, ws)

        w = tricube(d / d_max) * ws
        if float(np.sum(w)) <= 0:
            return float(np.mean(ys))
        return _local_linear(xs, ys, w, float(x0))

    return smoother


def loess_smooth(points: Sequence[Point], bandwidth: float = DEFAULT_BANDWIDTH) -> Optional[Smoother]:
    """LOESS smoother with equal point weights; ``None`` below three points."""
    if points is None:
        return None
    return loess_smooth_weighted(points, [1.0] * len(points), bandwidth)
