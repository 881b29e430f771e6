"""Turn cumulative meter readings into per-interval energies and COPs.

Intraday exports log the meters' running totals. Consecutive readings of the
same system are differenced: the energy consumed and delivered between two
readings gives that interval's COP. The first reading of each system has no
predecessor and carries no energies.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

from filters.resolve import flatten_nested_fields
from log_config import get_logger

logger = get_logger(__name__)

METER_FIELDS = (
    "thermal_energy_kwh",
    "electrical_energy_kwh",
    "thermal_energy_heating_kwh",
    "electrical_energy_heating_kwh",
)
OFFSET_FIELD = "thermometer_offset_k"


def apply_thermometer_offset(temperature: Any, offset: Any) -> Optional[float]:
    """Correct a reading by the sensor's known offset (added, in kelvin)."""
    if temperature is None or pd.isna(temperature):
        return None
    if offset is None or pd.isna(offset):
        return float(temperature)
    return float(temperature) + float(offset)


def _ratio_where_positive(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    return (numerator / denominator.where(denominator > 0)).replace([np.inf, -np.inf], np.nan)


def meter_deltas(
    rows: Iterable[Mapping[str, Any]],
    time_field: str = "created_at",
    group_field: str = "heating_id",
    outdoor_field: str = "outdoor_temperature_c",
) -> List[Dict[str, Any]]:
    """Per-interval energies and ``az``/``az_heating`` from cumulative readings.

    Readings are ordered by ``time_field`` within each ``group_field``. A
    missing meter value counts as 0. Non-positive deltas become ``None``, and
    a COP needs a positive electrical delta. The outdoor temperature is
    corrected by the system's ``thermometer_offset_k`` when one is set. Rows
    come back newest first with an ``hour`` column for hourly charts.
    """
    df = pd.DataFrame.from_records([flatten_nested_fields(r) for r in rows])
    if df.empty or time_field not in df.columns or group_field not in df.columns:
        return []

    df["_ts"] = pd.to_datetime(df[time_field], errors="coerce")
    unparsed = int(df["_ts"].isna().sum())
    if unparsed:
        logger.warning("Skipping %d readings without a parsable %s", unparsed, time_field)
    df = df[df["_ts"].notna()].sort_values([group_field, "_ts"], kind="stable")

    deltas = {}
    for column in METER_FIELDS:
        totals = pd.to_numeric(df[column], errors="coerce").fillna(0.0) if column in df.columns else pd.Series(0.0, index=df.index)
        deltas[column] = totals - totals.groupby(df[group_field]).shift(1)

    df["az"] = _ratio_where_positive(deltas["thermal_energy_kwh"], deltas["electrical_energy_kwh"])
    df["az_heating"] = _ratio_where_positive(
        deltas["thermal_energy_heating_kwh"], deltas["electrical_energy_heating_kwh"]
    )
    for column, delta in deltas.items():
        df[column] = delta.where(delta > 0)

    if outdoor_field in df.columns:
        offsets = df[OFFSET_FIELD] if OFFSET_FIELD in df.columns else pd.Series(None, index=df.index, dtype=object)
        df[outdoor_field] = [apply_thermometer_offset(t, o) for t, o in zip(df[outdoor_field], offsets)]

    df["hour"] = df["_ts"].dt.hour
    df = df.sort_values("_ts", ascending=False, kind="stable").drop(columns=["_ts"])
    return df.astype(object).where(df.notna(), None).to_dict("records")
