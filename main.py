# -*- coding: utf-8 -*-
# Heat-pump efficiency dashboard (Streamlit + Plotly)
# Run with: streamlit run main.py
from __future__ import annotations
import datetime as _dt
import functools
import io
import json
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
import plotly.graph_objects as go
import streamlit as st
from plotly.subplots import make_subplots

from aggregation.daily import meter_deltas
from aggregation.dataset import (
    AZ_FIELDS,
    MONTH_INDEX_VALUES,
    az_value,
    DatasetOptions,
    calculate_temperature_scale,
    drop_empty_rows,
    merge_comparison_datasets,
    process_dataset,
)
from aggregation.histogram import build_histogram
from aggregation.quality import filter_realistic_rows
from aggregation.yearly import yearly_efficiency_points, yearly_trend_curve
from filters.comparison import COMPARISON_COLORS, ComparisonGroupState
from filters.resolve import NESTED_SYSTEM_KEY, flatten_nested_rows, make_value_resolver
from filters.ui import render_comparison_controls, reset_editor_widgets
from log_config import configure_logging, get_logger
from scenario_state import build_preset, load_preset
from settings import get_settings
from trends.curves import generate_curve_points, generate_loess_curve_points
from trends.points import heating_curve_points, reference_temperatures, temperature_points, x_domain
from trends.regression import robust_linear_regression

settings = get_settings()
configure_logging(settings.log_level)
logger = get_logger("main")

INDEX_CHOICES = {
    "month": "Month of year",
    "date": "Calendar date",
    "day": "Day of month",
    "hour": "Hour of day",
}
# az/az_heating come from the export when present, else from its energies.
AZ_RESOLVER = make_value_resolver({f: functools.partial(az_value, field=f) for f in AZ_FIELDS})

# ----------------------------------
# Page config
# ----------------------------------
st.set_page_config(page_title="Heat Pump Efficiency", layout="wide")
st.markdown("""
<h1 style="display:flex;align-items:center;gap:.5rem;margin:0">
  ♨️ Heat Pump Efficiency
</h1>
<p style="color:#6b7280;margin:.25rem 0 0">
  Upload measurement exports, filter them into one or two groups, and compare COP trends.
</p>
""", unsafe_allow_html=True)


# ----------------------------------
# Cached readers
# ----------------------------------

@st.cache_data(show_spinner=False)
def _read_table_from_bytes(name: str, data: bytes, sheet: Optional[str]) -> pd.DataFrame:
    lname = name.lower()
    bio = io.BytesIO(data)

    if lname.endswith((".csv", ".tsv")):
        # Multiple separators and encodings to be robust to spreadsheet exports
        seps = ["\t"] if lname.endswith(".tsv") else [",", ";", "\t"]
        encs = ["utf-8", "utf-8-sig", "cp1252", "latin1"]
        last_err = None
        for sep in seps:
            for enc in encs:
                bio.seek(0)
                try:
                    df = pd.read_csv(bio, sep=sep, encoding=enc)
                except (UnicodeDecodeError, pd.errors.ParserError) as e:
                    last_err = e
                    continue
                if df.shape[1] > 1:
                    return df
        raise RuntimeError(f"CSV/TSV parse failed. Last error: {last_err}")

    if lname.endswith(".parquet"):
        return pd.read_parquet(bio)

    if lname.endswith((".xls", ".xlsx")):
        return pd.read_excel(bio, sheet_name=sheet) if sheet else pd.read_excel(bio)

    if lname.endswith(".json"):
        payload = json.loads(data.decode("utf-8"))
        if isinstance(payload, dict) and "rows" in payload:
            payload = payload["rows"]
        return pd.DataFrame.from_records(flatten_nested_rows(payload))

    raise ValueError(f"Unsupported file type: {name}")


def _add_index_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Derive month/day/hour/date index columns from a timestamp where missing."""
    out = df.copy()
    ts_col = next((c for c in ("date", "timestamp", "time", "created_at") if c in out.columns), None)
    if ts_col is None:
        return out
    ts = pd.to_datetime(out[ts_col], errors="coerce")
    if "month" not in out.columns:
        out["month"] = ts.dt.month
    if "year" not in out.columns:
        out["year"] = ts.dt.year
    if "day" not in out.columns:
        out["day"] = ts.dt.day
    if "hour" not in out.columns:
        out["hour"] = ts.dt.hour
    out["date"] = ts.dt.date.astype(str).where(ts.notna(), None)
    return out


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    return df.replace({np.nan: None}).to_dict("records")


def _csv_bytes(rows: List[Dict[str, Any]]) -> bytes:
    return pd.DataFrame(rows).to_csv(index=False).encode("utf-8")


# ----------------------------------
# Session state
# ----------------------------------
if "raw_df" not in st.session_state:
    st.session_state.raw_df = None
if "comparison_state" not in st.session_state:
    st.session_state.comparison_state = ComparisonGroupState()

state: ComparisonGroupState = st.session_state.comparison_state

# ----------------------------------
# Sidebar - Upload (cached)
# ----------------------------------
st.sidebar.header("📥 1) Upload")
up = st.sidebar.file_uploader(
    "Measurement export",
    type=["csv", "tsv", "xls", "xlsx", "parquet", "json"],
    accept_multiple_files=False,
)

sheet = None
if up and up.name.lower().endswith((".xls", ".xlsx")):
    sheet = st.sidebar.text_input("Excel sheet (optional)") or None

if up:
    try:
        st.session_state.raw_df = _read_table_from_bytes(up.name, up.getvalue(), sheet)
    except (RuntimeError, ValueError, OSError) as e:
        logger.warning("Reading %s failed: %s", up.name, e)
        st.sidebar.error(f"Read failed: {e}")

raw_df = st.session_state.raw_df
if raw_df is None:
    st.info("Upload a measurement export to begin.")
    st.stop()


# ----------------------------------
# Sidebar - Presets
# ----------------------------------
st.sidebar.header("💾 2) Presets")
st.sidebar.download_button(
    "Download preset",
    data=json.dumps(build_preset(st.session_state, state), indent=2).encode("utf-8"),
    file_name="heat_pump_preset.json",
    mime="application/json",
)
preset_up = st.sidebar.file_uploader("Load preset", type=["json"], key="preset_upload")
if preset_up is not None and st.sidebar.button("Apply preset"):
    try:
        restored = load_preset(json.loads(preset_up.getvalue()), st.session_state)
        reset_editor_widgets(st.session_state)
        st.session_state.comparison_state = restored
        st.rerun()
    except (ValueError, KeyError, TypeError) as e:
        st.sidebar.error(f"Preset rejected: {e}")

prepared_df = raw_df.drop(columns=[NESTED_SYSTEM_KEY], errors="ignore")
time_col = next((c for c in ("created_at", "timestamp", "time", "date") if c in prepared_df.columns), None)
if time_col is not None and "heating_id" in prepared_df.columns:
    cumulative = st.sidebar.checkbox(
        "Energies are cumulative meter readings",
        value=False,
        key="day_cumulative",
        help="Difference consecutive readings per system to get per-interval energies and COP.",
    )
    if cumulative:
        prepared_df = pd.DataFrame.from_records(meter_deltas(_records(prepared_df), time_field=time_col))
prepared_df = _add_index_columns(prepared_df)
st.sidebar.success(f"Loaded {len(prepared_df):,} rows, {prepared_df.shape[1]} columns.")

# ----------------------------------
#  FILTERS
# ----------------------------------
st.header("Filters")
all_rows = _records(prepared_df)
editor_df = prepared_df.copy()
for az_field in AZ_FIELDS:
    if az_field not in editor_df.columns:
        editor_df[az_field] = [AZ_RESOLVER(r, az_field) for r in all_rows]
render_comparison_controls(editor_df, state)

exclude_implausible = st.checkbox(
    "Exclude implausible readings (COP outside 0–8, negative electrical energy)",
    value=True,
    key="dq_exclude",
)

if exclude_implausible:
    all_rows = filter_realistic_rows(all_rows, bounds=settings.cop_bounds, resolver=AZ_RESOLVER)

comparison_groups = state.comparison_rows(all_rows, AZ_RESOLVER)
single_rows = state.filtered_rows(all_rows, AZ_RESOLVER)

if comparison_groups:
    st.caption(" · ".join(f"{g.name}: **{len(g.rows):,}** rows" for g in comparison_groups))
else:
    st.caption(f"Filters applied. Rows kept: **{len(single_rows):,}** of {len(all_rows):,}.")

# ----------------------------------
# COP by period
# ----------------------------------
st.header("📈 Plots")

with st.expander("COP by period", expanded=True):
    available = [k for k in INDEX_CHOICES if k in prepared_df.columns]
    if not available:
        st.info("No month/day/hour/date columns found.")
    else:
        c1, c2, c3 = st.columns(3)
        index_field = c1.selectbox("Group by", available, format_func=INDEX_CHOICES.get, key="bar_index")
        metric_mode = c2.selectbox(
            "Metric",
            ["cop", "energy"],
            format_func={"cop": "COP (thermal / electrical)", "energy": "Electrical energy (kWh)"}.get,
            key="bar_metric",
        )
        aggregate = c3.checkbox("Aggregate rows per period", value=True, key="bar_aggregate")

        total_key, heating_key = ("AZ", "AZ Heating") if metric_mode == "cop" else ("Electrical", "Electrical Heating")
        options = DatasetOptions(
            index_field=index_field,
            index_values=MONTH_INDEX_VALUES if index_field == "month" and aggregate else None,
            total_key=total_key,
            heating_key=heating_key,
            aggregate=aggregate,
            metric_mode=metric_mode,
        )

        if comparison_groups:
            chart_rows = merge_comparison_datasets(comparison_groups, options)
            series = [
                (f"{key} ({g.name})", g.color)
                for g in comparison_groups
                for key in (total_key, heating_key)
            ]
        else:
            chart_rows = drop_empty_rows(process_dataset(single_rows, options), [total_key, heating_key])
            series = [(total_key, COMPARISON_COLORS["group1"]), (heating_key, COMPARISON_COLORS["group2"])]

        if not chart_rows:
            st.info("No data for the current filters.")
        else:
            x_vals = [r[index_field] for r in chart_rows]
            fig = make_subplots(specs=[[{"secondary_y": True}]])
            for i, (name, color) in enumerate(series):
                fig.add_trace(
                    go.Bar(
                        x=x_vals,
                        y=[r.get(name, 0) for r in chart_rows],
                        name=name,
                        marker_color=color,
                        opacity=1.0 if i % 2 == 0 else 0.6,
                    ),
                    secondary_y=False,
                )
            for key, label, color in (
                ("outdoor_temp", "Outdoor temperature", COMPARISON_COLORS["outdoor"]),
                ("flow_temp", "Flow temperature", COMPARISON_COLORS["flow"]),
            ):
                fig.add_trace(
                    go.Scatter(x=x_vals, y=[r.get(key) for r in chart_rows], name=label, mode="lines+markers", line=dict(color=color)),
                    secondary_y=True,
                )
            scale = calculate_temperature_scale(chart_rows, fallback=settings.temperature_fallback)
            fig.update_layout(barmode="group", height=460, margin=dict(l=10, r=10, t=30, b=10))
            fig.update_yaxes(title_text=total_key, secondary_y=False)
            fig.update_yaxes(title_text="°C", range=[scale["min"], scale["max"]], secondary_y=True)
            fig.update_xaxes(type="category")
            st.plotly_chart(fig, use_container_width=True)

            st.download_button(
                "Download chart data (CSV)",
                data=_csv_bytes(chart_rows),
                file_name=f"cop_by_{index_field}.csv",
                mime="text/csv",
                key="export_bar_csv",
            )

# ----------------------------------
# COP vs temperature
# ----------------------------------
with st.expander("COP vs temperature", expanded=True):
    c1, c2, c3 = st.columns(3)
    metric_field = c1.selectbox("Metric", ["az", "az_heating"], format_func={"az": "AZ", "az_heating": "AZ Heating"}.get, key="sc_metric")
    temp_mode = c2.selectbox("Temperature", ["outdoor", "flow", "delta"], format_func={"outdoor": "Outdoor", "flow": "Flow", "delta": "Flow − outdoor"}.get, key="sc_mode")
    show_loess = c3.checkbox("Show LOESS trend", value=False, key="sc_loess")

    groups_for_scatter = comparison_groups or [None]
    fig = go.Figure()
    stats_rows = []
    for g in groups_for_scatter:
        rows = g.rows if g is not None else single_rows
        label = g.name if g is not None else "All"
        color = g.color if g is not None else COMPARISON_COLORS["group1"]
        pts = temperature_points(rows, metric_field, temp_mode, resolver=AZ_RESOLVER)
        if not pts:
            continue
        fig.add_trace(go.Scatter(x=[p.x for p in pts], y=[p.y for p in pts], mode="markers", name=label, marker=dict(color=color, opacity=0.6)))

        reg = robust_linear_regression(
            pts,
            max_iterations=settings.regression_max_iterations,
            tolerance=settings.regression_tolerance,
            huber_k=settings.huber_k,
        )
        x_min, x_max = x_domain(pts)
        if reg is not None:
            curve = generate_curve_points(reg, x_min, x_max, settings.curve_points)
            fig.add_trace(go.Scatter(x=[p.x for p in curve], y=[p.y for p in curve], mode="lines", name=f"Trend ({label})", line=dict(color=color, width=3)))
            stats_rows.append({
                "group": label,
                "slope": round(reg.slope, 4),
                "intercept": round(reg.intercept, 3),
                "r²": round(reg.r_squared, 3),
                "n": reg.sample_size,
                "MAE": round(reg.mean_absolute_error, 3),
                **{f"COP @ {t} °C": round(reg.predict(t), 2) for t in reference_temperatures(temp_mode)},
            })
        if show_loess:
            curve = generate_loess_curve_points(pts, x_min, x_max, settings.curve_points, settings.loess_bandwidth)
            if curve:
                fig.add_trace(go.Scatter(x=[p.x for p in curve], y=[p.y for p in curve], mode="lines", name=f"LOESS ({label})", line=dict(color=color, dash="dot")))

    if not fig.data:
        st.info("No points with both a positive COP and a temperature.")
    else:
        fig.update_layout(height=460, xaxis_title="°C", yaxis_title=metric_field.upper(), margin=dict(l=10, r=10, t=30, b=10))
        st.plotly_chart(fig, use_container_width=True)
        if stats_rows:
            st.dataframe(pd.DataFrame(stats_rows), hide_index=True)

# ----------------------------------
# Heating curve
# ----------------------------------
with st.expander("Heating curve (flow vs outdoor temperature)", expanded=False):
    pts = heating_curve_points(single_rows)
    reg = robust_linear_regression(
        pts,
        max_iterations=settings.regression_max_iterations,
        tolerance=settings.regression_tolerance,
        huber_k=settings.huber_k,
    )
    if reg is None:
        st.info("Need at least two readings with outdoor −30…40 °C and flow 15…80 °C.")
    else:
        x_min, x_max = x_domain(pts)
        curve = generate_curve_points(reg, x_min, x_max, settings.curve_points)
        fig = go.Figure()
        fig.add_trace(go.Scatter(x=[p.x for p in pts], y=[p.y for p in pts], mode="markers", name="Readings", marker=dict(color=COMPARISON_COLORS["group1"], opacity=0.5)))
        fig.add_trace(go.Scatter(x=[p.x for p in curve], y=[p.y for p in curve], mode="lines", name="Heating curve", line=dict(color="#176f50", width=3)))
        fig.update_layout(height=420, xaxis_title="Outdoor °C", yaxis_title="Flow °C", margin=dict(l=10, r=10, t=30, b=10))
        st.plotly_chart(fig, use_container_width=True)
        st.caption(
            f"n = {reg.sample_size}, r² = {reg.r_squared:.2f}, "
            + ", ".join(f"{t} °C → {reg.predict(t):.1f} °C flow" for t in reference_temperatures("outdoor"))
        )

# ----------------------------------
# Yearly efficiency
# ----------------------------------
with st.expander("Seasonal COP vs specific heat demand", expanded=False):
    today = _dt.date.today()
    skip_current = st.checkbox("Ignore the current month", value=True, key="yr_skip_current")
    yearly = yearly_efficiency_points(single_rows, exclude=(today.year, today.month) if skip_current else None)
    if not yearly:
        st.info("Needs monthly rows with heating_id, year, month, heated_area_m2 and heating energies.")
    else:
        smoother, curve = yearly_trend_curve(yearly)
        fig = go.Figure()
        fig.add_trace(go.Scatter(
            x=[p.x for p in yearly],
            y=[p.y for p in yearly],
            mode="markers",
            name="System-years",
            text=[f"{p.name or p.heating_id} {p.year} ({p.month_count} months, coverage {p.coverage:.0%})" for p in yearly],
            marker=dict(color=[COMPARISON_COLORS["group2"] if p.extrapolated else COMPARISON_COLORS["group1"] for p in yearly]),
        ))
        if curve:
            fig.add_trace(go.Scatter(x=[p.x for p in curve], y=[p.y for p in curve], mode="lines", name="Trend", line=dict(color="#176f50", width=3)))
        fig.update_layout(height=420, xaxis_title="kWh/m²·a", yaxis_title="Seasonal COP", margin=dict(l=10, r=10, t=30, b=10))
        st.plotly_chart(fig, use_container_width=True)
        if smoother is not None:
            st.caption(" · ".join(f"{e} kWh/m²·a → COP {smoother(e):.2f}" for e in (30, 60, 90, 120)))

# ----------------------------------
# Distribution per system
# ----------------------------------
with st.expander("Distribution per system", expanded=False):
    c1, c2, c3 = st.columns(3)
    hist_mode = c1.selectbox(
        "Metric",
        ["cop", "energy"],
        format_func={"cop": "COP", "energy": "Electrical energy (kWh)"}.get,
        key="hist_metric",
    )
    hist_series = c2.radio("Series", ["Heating", "Total"], horizontal=True, key="hist_series")
    hist_bin = c3.number_input(
        "Bin width (0 = automatic)",
        min_value=0.0,
        value=0.0,
        step=0.5,
        key="hist_bin",
    )

    fig = go.Figure()
    stats_rows = []
    for g in comparison_groups or [None]:
        rows = g.rows if g is not None else single_rows
        label = g.name if g is not None else "All"
        color = g.color if g is not None else COMPARISON_COLORS["group1"]
        hist = build_histogram(
            rows,
            metric_mode=hist_mode,
            bin_size=hist_bin or None,
            bounds=settings.cop_bounds,
        )
        if not hist.bins:
            continue
        heating = hist_series == "Heating"
        stats = hist.heating_stats if heating else hist.total_stats
        fig.add_trace(go.Bar(
            x=[b.label for b in hist.bins],
            y=[b.count_heating if heating else b.count for b in hist.bins],
            name=label,
            marker_color=color,
            customdata=[", ".join(b.system_ids_heating if heating else b.system_ids) for b in hist.bins],
            hovertemplate="%{x}: %{y} systems<br>%{customdata}<extra></extra>",
        ))
        stats_rows.append({"group": label, "systems": stats.count, "mean": round(stats.mean, 2), "median": round(stats.median, 2)})

    if not fig.data:
        st.info("No systems with realistic values for the current filters.")
    else:
        unit = "kWh" if hist_mode == "energy" else "COP"
        fig.update_layout(barmode="group", height=420, xaxis_title=unit, yaxis_title="Systems", margin=dict(l=10, r=10, t=30, b=10))
        fig.update_xaxes(type="category")
        st.plotly_chart(fig, use_container_width=True)
        st.dataframe(pd.DataFrame(stats_rows), hide_index=True)
