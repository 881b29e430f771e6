"""Chart data preparation: bucket rows by an index and compute COP per bucket.

COP per bucket is the ratio of summed thermal energy to summed electrical
energy. Averaging per-row COPs instead would over-weight buckets made of
many short, low-energy periods.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from log_config import get_logger

logger = get_logger(__name__)

METRIC_MODES = ("cop", "energy")

OUTDOOR_KEY = "outdoor_temp"
FLOW_KEY = "flow_temp"

DEFAULT_TEMPERATURE_SCALE = {"min": 0, "max": 40}
MONTH_INDEX_VALUES = [str(m) for m in range(1, 13)]

Rows = Union[pd.DataFrame, Iterable[Mapping[str, Any]]]


@dataclass(frozen=True)
class DatasetOptions:
    """How to bucket rows and which fields feed each series."""

    index_field: str
    index_values: Optional[Sequence[str]] = None
    index_formatter: Optional[Callable[[str], Any]] = None
    total_key: str = "AZ"
    heating_key: str = "AZ Heating"
    group_suffix: str = ""
    aggregate: bool = True
    metric_mode: str = "cop"

    thermal_total_field: str = "thermal_energy_kwh"
    electrical_total_field: str = "electrical_energy_kwh"
    thermal_heating_field: str = "thermal_energy_heating_kwh"
    electrical_heating_field: str = "electrical_energy_heating_kwh"
    # Per-row metrics used when a row carries no energy readings.
    total_metric_field: str = "az"
    heating_metric_field: str = "az_heating"
    outdoor_field: str = "outdoor_temperature_c"
    flow_field: str = "flow_temperature_c"

    def __post_init__(self) -> None:
        if self.metric_mode not in METRIC_MODES:
            raise ValueError(f"Unknown metric mode: {self.metric_mode!r}")

    @property
    def total_series(self) -> str:
        return f"{self.total_key}{self.group_suffix}"

    @property
    def heating_series(self) -> str:
        return f"{self.heating_key}{self.group_suffix}"

    def format_index(self, key: str) -> Any:
        return self.index_formatter(key) if self.index_formatter else key


def index_key(value: Any) -> Optional[str]:
    """Bucket key for an index value; integral floats lose their ``.0``."""
    if value is None:
        return None
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return None
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    if isinstance(value, (pd.Timestamp,)):
        return value.date().isoformat() if value == value.normalize() else value.isoformat()
    return str(value)


def natural_sort_key(key: str) -> Tuple[int, Any]:
    """Numbers first in numeric order, then strings (ISO dates sort chronologically)."""
    try:
        return (0, float(key))
    except (TypeError, ValueError):
        return (1, str(key))


def _to_frame(rows: Rows) -> pd.DataFrame:
    if isinstance(rows, pd.DataFrame):
        return rows.copy()
    return pd.DataFrame.from_records(list(rows))


def _numeric(df: pd.DataFrame, column: str) -> pd.Series:
    if column not in df.columns:
        return pd.Series(np.nan, index=df.index, dtype=float)
    return pd.to_numeric(df[column], errors="coerce").astype(float)


def _ratio(numerator: float, denominator: float) -> float:
    if not denominator or denominator <= 0 or not math.isfinite(numerator):
        return 0.0
    value = numerator / denominator
    return round(value, 2) if math.isfinite(value) else 0.0


def _rounded_or_none(value: Any, digits: int) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return round(float(value), digits)


def _positive_or_zero(value: Any, digits: int = 2) -> float:
    if value is None or pd.isna(value) or value <= 0:
        return 0.0
    return round(float(value), digits)


def _finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def compute_az(row: Mapping[str, Any]) -> Tuple[Optional[float], Optional[float]]:
    """Total and heating COP of one row from its energy readings.

    A series without a non-zero electrical reading has no COP; a missing
    thermal reading counts as 0.
    """

    def _one(thermal_field: str, electrical_field: str) -> Optional[float]:
        electrical = _finite(row.get(electrical_field))
        if not electrical:
            return None
        return (_finite(row.get(thermal_field)) or 0.0) / electrical

    return (
        _one("thermal_energy_kwh", "electrical_energy_kwh"),
        _one("thermal_energy_heating_kwh", "electrical_energy_heating_kwh"),
    )


AZ_FIELDS = ("az", "az_heating")


def az_value(row: Mapping[str, Any], field: str) -> Optional[float]:
    """The row's stored ``az``/``az_heating``, else the one computed from energies."""
    stored = _finite(row.get(field))
    if stored is not None:
        return stored
    return compute_az(row)[AZ_FIELDS.index(field)]


def _row_metrics(row: pd.Series, opts: DatasetOptions) -> Tuple[float, float]:
    if opts.metric_mode == "energy":
        return (
            _positive_or_zero(row[opts.electrical_total_field]),
            _positive_or_zero(row[opts.electrical_heating_field]),
        )

    def _one(thermal_field: str, electrical_field: str, metric_field: str) -> float:
        thermal, electrical = row[thermal_field], row[electrical_field]
        if not pd.isna(thermal) and not pd.isna(electrical) and electrical > 0:
            return _ratio(thermal, electrical)
        return _positive_or_zero(row[metric_field])

    return (
        _one(opts.thermal_total_field, opts.electrical_total_field, opts.total_metric_field),
        _one(opts.thermal_heating_field, opts.electrical_heating_field, opts.heating_metric_field),
    )


def _numeric_frame(rows: Rows, opts: DatasetOptions) -> pd.DataFrame:
    df = _to_frame(rows)
    out = pd.DataFrame(index=df.index)
    if opts.index_field in df.columns:
        out["_key"] = df[opts.index_field].map(index_key)
    else:
        out["_key"] = None
    for column in (
        opts.thermal_total_field,
        opts.electrical_total_field,
        opts.thermal_heating_field,
        opts.electrical_heating_field,
        opts.total_metric_field,
        opts.heating_metric_field,
        opts.outdoor_field,
        opts.flow_field,
    ):
        out[column] = _numeric(df, column)
    return out


def _empty_row(key: str, opts: DatasetOptions) -> Dict[str, Any]:
    return {
        opts.index_field: opts.format_index(key),
        opts.total_series: 0.0,
        opts.heating_series: 0.0,
        OUTDOOR_KEY: None,
        FLOW_KEY: None,
    }


def _paired_sum(frame: pd.DataFrame, numerator: str, denominator: str) -> pd.DataFrame:
    """Sum numerator and denominator over rows carrying both readings."""
    both = frame[numerator].notna() & frame[denominator].notna()
    return pd.DataFrame(
        {
            "num": frame[numerator].where(both),
            "den": frame[denominator].where(both),
            "pairs": both.astype(int),
        }
    ).groupby(frame["_key"], sort=False).sum()


def _positive_mean(frame: pd.DataFrame, column: str) -> Dict[str, float]:
    values = frame[column].where(frame[column] > 0)
    return values.groupby(frame["_key"], sort=False).mean().to_dict()


def _bucket_cop(sums: pd.DataFrame, fallback: Mapping[str, float]) -> Dict[str, float]:
    # Buckets without a single energy pair use the mean of the rows' own COPs.
    out: Dict[str, float] = {}
    for key, r in sums.iterrows():
        if r["pairs"] > 0:
            out[key] = _ratio(r["num"], r["den"])
        else:
            out[key] = _positive_or_zero(fallback.get(key))
    return out


def _aggregate(frame: pd.DataFrame, opts: DatasetOptions) -> Dict[str, Dict[str, Any]]:
    frame = frame[frame["_key"].notna()]
    if frame.empty:
        return {}

    grouped = frame.groupby("_key", sort=False)
    temps = grouped[[opts.outdoor_field, opts.flow_field]].mean()

    if opts.metric_mode == "energy":
        sums = grouped[[opts.electrical_total_field, opts.electrical_heating_field]].sum()
        totals = {k: _positive_or_zero(v) for k, v in sums[opts.electrical_total_field].items()}
        heating = {k: _positive_or_zero(v) for k, v in sums[opts.electrical_heating_field].items()}
    else:
        total_sums = _paired_sum(frame, opts.thermal_total_field, opts.electrical_total_field)
        heating_sums = _paired_sum(frame, opts.thermal_heating_field, opts.electrical_heating_field)
        totals = _bucket_cop(total_sums, _positive_mean(frame, opts.total_metric_field))
        heating = _bucket_cop(heating_sums, _positive_mean(frame, opts.heating_metric_field))

    buckets: Dict[str, Dict[str, Any]] = {}
    for key in grouped.groups.keys():
        buckets[key] = {
            opts.index_field: opts.format_index(key),
            opts.total_series: totals.get(key, 0.0),
            opts.heating_series: heating.get(key, 0.0),
            OUTDOOR_KEY: _rounded_or_none(temps.at[key, opts.outdoor_field], 2),
            FLOW_KEY: _rounded_or_none(temps.at[key, opts.flow_field], 2),
        }
    return buckets


def _keyed_rows(rows: Rows, opts: DatasetOptions) -> List[Tuple[Optional[str], Dict[str, Any]]]:
    frame = _numeric_frame(rows, opts)
    if frame.empty:
        return []

    if not opts.aggregate:
        out = []
        for _, row in frame.iterrows():
            key = row["_key"]
            total, heating = _row_metrics(row, opts)
            out.append(
                (
                    key,
                    {
                        opts.index_field: opts.format_index(key) if key is not None else None,
                        opts.total_series: total,
                        opts.heating_series: heating,
                        OUTDOOR_KEY: _rounded_or_none(row[opts.outdoor_field], 1),
                        FLOW_KEY: _rounded_or_none(row[opts.flow_field], 1),
                    },
                )
            )
        return out

    buckets = _aggregate(frame, opts)
    if opts.index_values is not None:
        keys = [str(v) for v in opts.index_values]
    else:
        keys = sorted(buckets, key=natural_sort_key)
    return [(key, buckets.get(key) or _empty_row(key, opts)) for key in keys]


def process_dataset(rows: Rows, options: DatasetOptions) -> List[Dict[str, Any]]:
    """One chart row per index value (or per input row when not aggregating).

    With ``index_values`` the output follows that order exactly and missing
    buckets get zero metrics and no temperatures. Otherwise the discovered
    index values are sorted numerically where possible.
    """
    if rows is None:
        return []
    return [row for _, row in _keyed_rows(rows, options)]


def has_positive_metric(row: Mapping[str, Any], keys: Iterable[str]) -> bool:
    return any((row.get(k) or 0) > 0 for k in keys)


def drop_empty_rows(rows: Iterable[Dict[str, Any]], keys: Sequence[str]) -> List[Dict[str, Any]]:
    """Keep chart rows with at least one positive value under ``keys``."""
    return [row for row in rows if has_positive_metric(row, keys)]


def _merge_into(target: Dict[str, Any], source: Mapping[str, Any]) -> None:
    for k, v in source.items():
        if v is None and target.get(k) is not None:
            continue
        target[k] = v


def merge_comparison_datasets(groups: Sequence[Any], options: DatasetOptions) -> List[Dict[str, Any]]:
    """Aggregate each comparison group and merge them into one table.

    ``groups`` are objects with ``name`` and ``rows`` attributes. Each group's
    metrics land under ``"<key> (<name>)"``. Index rows where no group has a
    positive metric are dropped; the rest follow ``options.index_values``
    or the natural order of all index values seen.
    """
    combined: Dict[str, Dict[str, Any]] = {}
    series_keys: List[str] = []

    for group in groups:
        group_opts = replace(options, group_suffix=f" ({group.name})")
        series_keys.extend([group_opts.total_series, group_opts.heating_series])

        for key, row in _keyed_rows(group.rows, group_opts):
            if key is None:
                continue
            merged = combined.setdefault(key, {options.index_field: row[options.index_field]})
            _merge_into(merged, row)

    if options.index_values is not None:
        ordered = [str(v) for v in options.index_values]
    else:
        ordered = sorted(combined, key=natural_sort_key)

    result = [combined[k] for k in ordered if k in combined and has_positive_metric(combined[k], series_keys)]
    logger.debug("Merged %d comparison groups into %d index rows", len(groups), len(result))
    return result


def calculate_temperature_scale(
    rows: Iterable[Mapping[str, Any]],
    fields: Sequence[str] = (OUTDOOR_KEY, FLOW_KEY),
    fallback: Optional[Mapping[str, int]] = None,
) -> Dict[str, int]:
    """Axis range spanning every temperature in ``rows``, padded by 10 %."""
    default = dict(fallback or DEFAULT_TEMPERATURE_SCALE)
    if rows is None:
        return default

    temps: List[float] = []
    for row in rows:
        for f in fields:
            value = row.get(f)
            if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
                continue
            value = float(value)
            if math.isfinite(value):
                temps.append(value)

    if not temps:
        return default

    lo, hi = min(temps), max(temps)
    padding = (hi - lo) * 0.1 or 5
    return {"min": math.floor(lo - padding), "max": math.ceil(hi + padding)}
