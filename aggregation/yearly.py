"""Yearly efficiency points: seasonal COP against specific annual heat demand.

Most systems do not have a complete year of monthly readings. A year with,
say, only the summer months would report a tiny heat demand, so observed
thermal energy is scaled up by the share of a typical year's heat demand the
observed months cover ("coverage"). The typical seasonal profile is learned
from complete years in the data, blended with the pooled monthly totals while
few complete years exist.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from log_config import get_logger
from trends.curves import sample_function
from trends.loess import Smoother, loess_smooth_weighted
from trends.points import Point, x_domain

logger = get_logger(__name__)

MONTHS = tuple(range(1, 13))
# Complete years needed before the local profile fully replaces the pooled one.
FULL_LOCAL_PROFILE_YEARS = 8
MIN_LOESS_COVERAGE = 0.4
SMALL_SAMPLE = 20
YEARLY_CURVE_POINTS = 120


@dataclass(frozen=True)
class YearlyPoint:
    x: float
    y: float
    heating_id: str
    year: int
    coverage: float
    month_count: int
    name: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def extrapolated(self) -> bool:
        return self.coverage < 0.999

    def as_point(self) -> Point:
        return Point(self.x, self.y)


def normalize_month_profile(profile: Mapping[int, float]) -> Dict[int, float]:
    """Clip negatives and scale to sum 1; uniform when nothing is positive."""
    clipped = {m: max(0.0, float(profile.get(m, 0.0) or 0.0)) for m in MONTHS}
    total = sum(clipped.values())
    if total <= 0:
        return {m: 1.0 / 12 for m in MONTHS}
    return {m: v / total for m, v in clipped.items()}


def _first_valid(values: pd.Series) -> Optional[Any]:
    valid = values.dropna()
    return valid.iloc[0] if len(valid) else None


def _monthly_frame(
    rows: Iterable[Mapping[str, Any]],
    exclude: Optional[Tuple[int, int]],
) -> pd.DataFrame:
    df = pd.DataFrame.from_records(list(rows))
    if df.empty or not {"heating_id", "year", "month"}.issubset(df.columns):
        return pd.DataFrame()

    for col in ("year", "month", "thermal_energy_heating_kwh", "electrical_energy_heating_kwh", "heated_area_m2"):
        df[col] = pd.to_numeric(df[col], errors="coerce") if col in df.columns else np.nan
    for col in ("name", "user_id"):
        if col not in df.columns:
            df[col] = None

    df = df[df["heating_id"].notna() & (df["heating_id"] != "") & df["year"].notna() & df["month"].between(1, 12)]
    df = df.assign(year=df["year"].astype(int), month=df["month"].astype(int))

    if exclude is not None:
        df = df[~((df["year"] == exclude[0]) & (df["month"] == exclude[1]))]

    return df.assign(
        thermal=df["thermal_energy_heating_kwh"].fillna(0.0),
        electrical=df["electrical_energy_heating_kwh"].fillna(0.0),
    )


def seasonal_profile(df: pd.DataFrame, monthly: pd.DataFrame) -> Dict[int, float]:
    """Share of annual heat demand per month."""
    months_seen = monthly.groupby(level=["heating_id", "year"]).size()
    complete = months_seen[months_seen == 12].index

    shares: Dict[int, List[float]] = {m: [] for m in MONTHS}
    for key in complete:
        thermal = monthly.loc[key, "thermal"]
        annual = float(thermal.sum())
        if annual <= 0:
            continue
        for month in MONTHS:
            shares[month].append(float(thermal.get(month, 0.0)) / annual)

    local = normalize_month_profile(
        {m: float(np.median(v)) if v else 0.0 for m, v in shares.items()}
    )
    pooled = normalize_month_profile(df["thermal"].clip(lower=0).groupby(df["month"]).sum().to_dict())

    local_weight = min(1.0, len(complete) / FULL_LOCAL_PROFILE_YEARS)
    return normalize_month_profile(
        {m: local_weight * local[m] + (1 - local_weight) * pooled[m] for m in MONTHS}
    )


def yearly_efficiency_points(
    rows: Iterable[Mapping[str, Any]],
    exclude: Optional[Tuple[int, int]] = None,
) -> List[YearlyPoint]:
    """One point per system and year from monthly rows.

    ``x`` is the estimated annual heat demand per heated m² and ``y`` the
    seasonal COP over the observed months. ``exclude`` drops one
    ``(year, month)``, typically the month still in progress.
    """
    df = _monthly_frame(rows, exclude)
    if df.empty:
        return []

    monthly = df.groupby(["heating_id", "year", "month"])[["thermal", "electrical"]].sum()
    profile = seasonal_profile(df, monthly)

    points: List[YearlyPoint] = []
    for (heating_id, year), group in df.groupby(["heating_id", "year"], sort=False):
        area = group["heated_area_m2"]
        area = area[area > 0]
        if area.empty:
            continue

        observed = sorted(group["month"].unique().tolist())
        thermal = float(group["thermal"].sum())
        electrical = float(group["electrical"].sum())
        if thermal <= 0 or electrical <= 0:
            continue

        coverage = sum(profile[m] for m in observed)
        if coverage <= 0:
            continue

        points.append(
            YearlyPoint(
                x=thermal / coverage / float(area.iloc[0]),
                y=thermal / electrical,
                heating_id=str(heating_id),
                year=int(year),
                coverage=coverage,
                month_count=len(observed),
                name=_first_valid(group["name"]),
                user_id=_first_valid(group["user_id"]),
            )
        )

    logger.debug("Built %d yearly points from %d monthly rows", len(points), len(df))
    return points


def yearly_trend_curve(
    points: Sequence[YearlyPoint],
    n: int = YEARLY_CURVE_POINTS,
) -> Tuple[Optional[Smoother], List[Point]]:
    """Coverage-weighted LOESS through the yearly points.

    Points covering less than 40 % of a typical year are left out when at
    least three better ones exist. Weights are ``coverage ** 2``.
    """
    source = [p for p in points if p.coverage >= MIN_LOESS_COVERAGE]
    fit_points = source if len(source) >= 3 else list(points)
    if len(fit_points) < 3:
        return None, []

    bandwidth = 1.0 if len(fit_points) < SMALL_SAMPLE else 0.8
    smoother = loess_smooth_weighted(
        [p.as_point() for p in fit_points],
        [p.coverage ** 2 for p in fit_points],
        bandwidth,
    )
    x_min, x_max = x_domain([p.as_point() for p in fit_points])
    return smoother, sample_function(smoother, x_min, x_max, n)
