"""Distribution of per-system COP (or electrical energy) across fixed-width bins.

Each system contributes one value per series: its COP over all of its rows
(ratio of summed energies) or, in energy mode, its summed electrical
energy. Unrealistic COPs are left out, as in the bar charts.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from log_config import get_logger

from .dataset import METRIC_MODES
from .quality import DEFAULT_COP_BOUNDS, is_realistic_cop

logger = get_logger(__name__)

COP_BIN_SIZE = 0.5
# Auto-sized energy bins aim for about this many bars.
TARGET_BIN_COUNT = 20


@dataclass(frozen=True)
class HistogramBin:
    label: str
    start: float
    end: float
    count: int = 0
    count_heating: int = 0
    system_ids: Tuple[str, ...] = ()
    system_ids_heating: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SeriesStats:
    mean: float = 0.0
    median: float = 0.0
    count: int = 0


@dataclass(frozen=True)
class Histogram:
    bins: List[HistogramBin] = field(default_factory=list)
    total_stats: SeriesStats = SeriesStats()
    heating_stats: SeriesStats = SeriesStats()
    bin_size: float = COP_BIN_SIZE


def _stats(values: Iterable[float]) -> SeriesStats:
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return SeriesStats()
    return SeriesStats(mean=float(arr.mean()), median=float(np.median(arr)), count=int(arr.size))


def nice_bin_size(span: float, target: int = TARGET_BIN_COUNT) -> float:
    """Smallest 1/2/5 x 10^k width that splits ``span`` into at most ``target`` bins."""
    if span <= 0 or not math.isfinite(span):
        return 1.0
    raw = span / target
    magnitude = 10 ** math.floor(math.log10(raw))
    for step in (1, 2, 5, 10):
        if step * magnitude >= raw:
            return float(step * magnitude)
    return float(10 * magnitude)


def _numeric(df: pd.DataFrame, column: str) -> pd.Series:
    if column not in df.columns:
        return pd.Series(np.nan, index=df.index, dtype=float)
    return pd.to_numeric(df[column], errors="coerce").astype(float)


def system_values(
    rows: Iterable[Mapping[str, Any]],
    metric_mode: str = "cop",
    group_field: str = "heating_id",
    bounds: Tuple[float, float] = DEFAULT_COP_BOUNDS,
) -> Tuple[Dict[str, float], Dict[str, float]]:
    """One total and one heating value per system.

    Rows without ``group_field`` in the data are treated as one system each.
    """
    if metric_mode not in METRIC_MODES:
        raise ValueError(f"Unknown metric mode: {metric_mode!r}")
    df = pd.DataFrame.from_records(list(rows))
    if df.empty:
        return {}, {}

    if group_field in df.columns:
        keys = df[group_field].where(df[group_field].notna() & (df[group_field] != ""))
    else:
        keys = pd.Series(df.index.astype(str), index=df.index)
    df = df.assign(_system=keys.astype(object))
    df = df[df["_system"].notna()]

    def _series(thermal_field: str, electrical_field: str) -> Dict[str, float]:
        thermal = _numeric(df, thermal_field)
        electrical = _numeric(df, electrical_field)
        out: Dict[str, float] = {}
        if metric_mode == "energy":
            sums = electrical.groupby(df["_system"]).sum(min_count=1)
            for system, total in sums.items():
                if pd.notna(total) and total > 0:
                    out[str(system)] = float(total)
            return out

        both = thermal.notna() & electrical.notna()
        sums = pd.DataFrame({"num": thermal.where(both), "den": electrical.where(both)}).groupby(df["_system"]).sum()
        for system, r in sums.iterrows():
            if r["den"] <= 0:
                continue
            cop = r["num"] / r["den"]
            if is_realistic_cop(cop, bounds):
                out[str(system)] = float(cop)
        return out

    return (
        _series("thermal_energy_kwh", "electrical_energy_kwh"),
        _series("thermal_energy_heating_kwh", "electrical_energy_heating_kwh"),
    )


def _bin_index(value: float, size: float) -> int:
    return math.floor(round(value / size, 9))


def _label(start: float, end: float, metric_mode: str) -> str:
    if metric_mode == "energy":
        return f"{start:.0f}-{end:.0f}"
    return f"{start:.1f}-{end:.1f}"


def build_histogram(
    rows: Iterable[Mapping[str, Any]],
    metric_mode: str = "cop",
    bin_size: Optional[float] = None,
    group_field: str = "heating_id",
    bounds: Tuple[float, float] = DEFAULT_COP_BOUNDS,
) -> Histogram:
    """Contiguous bins from the lowest to the highest system value.

    ``bin_size`` defaults to 0.5 for COP and to a rounded width giving about
    twenty bins for energy.
    """
    totals, heating = system_values(rows, metric_mode, group_field, bounds)
    values = list(totals.values()) + list(heating.values())
    if not values:
        return Histogram(bin_size=bin_size or COP_BIN_SIZE)

    if bin_size is None:
        bin_size = COP_BIN_SIZE if metric_mode == "cop" else nice_bin_size(max(values) - min(values))
    if bin_size <= 0:
        raise ValueError(f"bin_size must be positive, got {bin_size!r}")

    first = _bin_index(min(values), bin_size)
    last = _bin_index(max(values), bin_size)

    members: Dict[int, List[str]] = {}
    members_heating: Dict[int, List[str]] = {}
    for system, value in totals.items():
        members.setdefault(_bin_index(value, bin_size), []).append(system)
    for system, value in heating.items():
        members_heating.setdefault(_bin_index(value, bin_size), []).append(system)

    bins = []
    for i in range(first, last + 1):
        start, end = i * bin_size, (i + 1) * bin_size
        ids = tuple(sorted(members.get(i, [])))
        ids_heating = tuple(sorted(members_heating.get(i, [])))
        bins.append(
            HistogramBin(
                label=_label(start, end, metric_mode),
                start=start,
                end=end,
                count=len(ids),
                count_heating=len(ids_heating),
                system_ids=ids,
                system_ids_heating=ids_heating,
            )
        )

    logger.debug("Binned %d systems into %d bins of %s", len(totals), len(bins), bin_size)
    return Histogram(
        bins=bins,
        total_stats=_stats(totals.values()),
        heating_stats=_stats(heating.values()),
        bin_size=bin_size,
    )
