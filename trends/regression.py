"""Robust linear regression for temperature/performance curve fitting.

The fit starts from ordinary least squares and is refined with iteratively
re-weighted least squares (IRLS) using Huber weights, so a few gross
measurement errors do not dominate the slope.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .points import Point, as_arrays

DEFAULT_MAX_ITERATIONS = 10
DEFAULT_TOLERANCE = 1e-4
# Huber threshold as a multiple of the median absolute residual.
DEFAULT_HUBER_K = 1.5
# Lower bound for the residual scale when most residuals are exactly zero.
DEFAULT_MIN_SCALE = 1e-9


@dataclass(frozen=True)
class RegressionResult:
    slope: float
    intercept: float
    r_squared: float
    sample_size: int
    mean_absolute_error: float

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept


def median(values: Sequence[float]) -> float:
    """Median of ``values``; 0.0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    return float(np.median(np.asarray(values, dtype=float)))


def ordinary_least_squares(x: np.ndarray, y: np.ndarray) -> Tuple[float, float]:
    return weighted_least_squares(x, y, np.ones_like(x))


def weighted_least_squares(x: np.ndarray, y: np.ndarray, w: np.ndarray) -> Tuple[float, float]:
    """Return ``(slope, intercept)``; zero x-variance gives a flat line at the weighted mean."""
    sum_w = float(np.sum(w))
    if sum_w <= 0:
        w = np.ones_like(x)
        sum_w = float(len(x))

    mean_x = float(np.sum(w * x)) / sum_w
    mean_y = float(np.sum(w * y)) / sum_w

    dx = x - mean_x
    denominator = float(np.sum(w * dx * dx))
    if denominator == 0.0:
        return 0.0, mean_y

    slope = float(np.sum(w * dx * (y - mean_y))) / denominator
    return slope, mean_y - slope * mean_x


def huber_weights(abs_residuals: np.ndarray, threshold: float) -> np.ndarray:
    weights = np.ones_like(abs_residuals)
    large = abs_residuals > threshold
    weights[large] = threshold / abs_residuals[large]
    return weights


def robust_linear_regression(
    points: Sequence[Point],
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE,
    huber_k: float = DEFAULT_HUBER_K,
    min_scale: float = DEFAULT_MIN_SCALE,
) -> Optional[RegressionResult]:
    """Fit ``y = slope * x + intercept`` resistant to outliers.

    Returns ``None`` for fewer than two points. ``r_squared`` and
    ``mean_absolute_error`` describe the final line against the original,
    unweighted points, so an outlier that no longer steers the slope still
    lowers ``r_squared``. It is not clamped and can go negative.
    """
    if points is None or len(points) < 2:
        return None

    x, y = as_arrays(points)
    n = len(x)

    slope, intercept = ordinary_least_squares(x, y)

    for _ in range(max_iterations):
        abs_res = np.abs(y - (slope * x + intercept))
        scale = max(median(abs_res), min_scale)
        weights = huber_weights(abs_res, huber_k * scale)

        prev_slope, prev_intercept = slope, intercept
        slope, intercept = weighted_least_squares(x, y, weights)

        if abs(slope - prev_slope) + abs(intercept - prev_intercept) < tolerance:
            break

    residuals = y - (slope * x + intercept)
    ss_res = float(np.sum(residuals ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0

    return RegressionResult(
        slope=slope,
        intercept=intercept,
        r_squared=r_squared,
        sample_size=n,
        mean_absolute_error=float(np.mean(np.abs(residuals))),
    )
