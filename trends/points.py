from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from filters.resolve import FilterValueResolver, default_resolver

OUTDOOR_FIELD = "outdoor_temperature_c"
FLOW_FIELD = "flow_temperature_c"

TEMPERATURE_MODES = ("outdoor", "flow", "delta")

# Temperatures at which a fitted COP trend is reported, per x-axis mode.
REFERENCE_TEMPERATURES = {
    "outdoor": (-10.0, -7.0, 2.0, 7.0),
    "flow": (30.0, 35.0, 40.0, 45.0),
    "delta": (25.0, 30.0, 35.0, 40.0),
}

# Plausible heating operation; readings outside are sensor or entry errors.
HEATING_OUTDOOR_BOUNDS = (-30.0, 40.0)
HEATING_FLOW_BOUNDS = (15.0, 80.0)


@dataclass(frozen=True)
class Point:
    x: float
    y: float


def as_arrays(points: Iterable[Point]) -> Tuple[np.ndarray, np.ndarray]:
    pts = list(points)
    x = np.array([p.x for p in pts], dtype=float)
    y = np.array([p.y for p in pts], dtype=float)
    return x, y


def finite_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, numbers.Real):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def x_domain(points: Iterable[Point]) -> Optional[Tuple[float, float]]:
    xs = [p.x for p in points]
    if not xs:
        return None
    return min(xs), max(xs)


def extract_points(
    rows: Iterable[Mapping[str, Any]],
    x_field: str,
    y_field: str,
) -> List[Point]:
    """Pairs of finite numbers from two fields; incomplete rows are skipped."""
    points: List[Point] = []
    for row in rows:
        x = finite_or_none(row.get(x_field))
        y = finite_or_none(row.get(y_field))
        if x is not None and y is not None:
            points.append(Point(x, y))
    return points


def temperature_points(
    rows: Iterable[Mapping[str, Any]],
    metric_field: str,
    mode: str = "outdoor",
    outdoor_field: str = OUTDOOR_FIELD,
    flow_field: str = FLOW_FIELD,
    resolver: Optional[FilterValueResolver] = None,
) -> List[Point]:
    """Points of ``metric_field`` (must be > 0) against a temperature.

    ``mode`` picks the x value: outdoor temperature, flow temperature, or
    ``delta`` = flow minus outdoor. ``resolver`` reads the metric, so it can
    be computed from other fields.
    """
    if mode not in TEMPERATURE_MODES:
        raise ValueError(f"Unknown temperature mode: {mode!r}")
    value_of = resolver or default_resolver

    points: List[Point] = []
    for row in rows:
        y = finite_or_none(value_of(row, metric_field))
        if y is None or y <= 0:
            continue
        outdoor = finite_or_none(row.get(outdoor_field))
        flow = finite_or_none(row.get(flow_field))

        if mode == "outdoor":
            x = outdoor
        elif mode == "flow":
            x = flow
        else:
            x = flow - outdoor if flow is not None and outdoor is not None else None

        if x is not None:
            points.append(Point(x, y))
    return points


def heating_curve_points(
    rows: Iterable[Mapping[str, Any]],
    outdoor_bounds: Tuple[float, float] = HEATING_OUTDOOR_BOUNDS,
    flow_bounds: Tuple[float, float] = HEATING_FLOW_BOUNDS,
    outdoor_field: str = OUTDOOR_FIELD,
    flow_field: str = FLOW_FIELD,
) -> List[Point]:
    """Flow temperature against outdoor temperature, within plausible bounds."""
    points: List[Point] = []
    for p in extract_points(rows, outdoor_field, flow_field):
        if outdoor_bounds[0] <= p.x <= outdoor_bounds[1] and flow_bounds[0] <= p.y <= flow_bounds[1]:
            points.append(p)
    return points


def reference_temperatures(mode: str) -> Tuple[float, ...]:
    if mode not in REFERENCE_TEMPERATURES:
        raise ValueError(f"Unknown temperature mode: {mode!r}")
    return REFERENCE_TEMPERATURES[mode]
