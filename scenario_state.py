"""Save and restore dashboard presets: chart widget values plus both filter groups."""

from __future__ import annotations

import datetime as _dt
from typing import Any, Dict, Mapping, MutableMapping, Sequence

import numpy as np
import pandas as pd

from filters.comparison import ComparisonGroupState
from filters.core import filter_model_from_dict, filter_model_to_dict

PRESET_VERSION = 1

SCENARIO_WIDGET_PREFIXES: Sequence[str] = (
    "bar_",
    "sc_",
    "hc_",
    "yr_",
    "dq_",
    "hist_",
    "day_",
)

# Buttons and uploaders cannot be assigned through session state.
NON_RESTORABLE_SUFFIXES: Sequence[str] = ("_download", "_upload", "_apply", "_button")


def json_safe_value(value: Any) -> Any:
    """Convert complex values to JSON-serialisable equivalents."""

    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (np.floating,)):
        return None if np.isnan(value) else float(value)
    if isinstance(value, (np.bool_,)):
        return bool(value)
    if isinstance(value, float) and value != value:
        return None
    if isinstance(value, (pd.Timestamp, _dt.datetime, _dt.date, _dt.time)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [json_safe_value(v) for v in value]
    if isinstance(value, set):
        return [json_safe_value(v) for v in sorted(value, key=str)]
    if isinstance(value, dict):
        return {str(k): json_safe_value(v) for k, v in value.items()}
    return value


def collect_widget_state(
    session_state: Mapping[str, Any],
    prefixes: Sequence[str] = SCENARIO_WIDGET_PREFIXES,
) -> Dict[str, Any]:
    """Filter widget entries that should be persisted into a session preset."""

    saved: Dict[str, Any] = {}
    for key, value in session_state.items():
        if key.endswith(tuple(NON_RESTORABLE_SUFFIXES)):
            continue
        if any(key.startswith(prefix) for prefix in prefixes):
            saved[key] = json_safe_value(value)
    return saved


def apply_widget_state(
    widget_state: Mapping[str, Any],
    session_state: MutableMapping[str, Any],
) -> None:
    """Populate ``session_state`` with persisted widget values."""

    for key, value in widget_state.items():
        if key.endswith(tuple(NON_RESTORABLE_SUFFIXES)):
            continue
        session_state[key] = value


def comparison_state_to_dict(state: ComparisonGroupState) -> Dict[str, Any]:
    return {
        "active_group": state.active_group,
        "filter_group1": json_safe_value(filter_model_to_dict(state.filter_group1)),
        "filter_group2": json_safe_value(filter_model_to_dict(state.filter_group2)),
    }


def comparison_state_from_dict(data: Mapping[str, Any]) -> ComparisonGroupState:
    group2 = filter_model_from_dict(data.get("filter_group2"))
    active = int(data.get("active_group", 1))
    # A preset without group 2 conditions cannot have group 2 focused.
    if not group2.items:
        active = 1
    return ComparisonGroupState(
        filter_group1=filter_model_from_dict(data.get("filter_group1")),
        filter_group2=group2,
        active_group=active,
    )


def build_preset(session_state: Mapping[str, Any], state: ComparisonGroupState) -> Dict[str, Any]:
    return {
        "version": PRESET_VERSION,
        "widgets": collect_widget_state(session_state),
        "filters": comparison_state_to_dict(state),
    }


def load_preset(
    preset: Mapping[str, Any],
    session_state: MutableMapping[str, Any],
) -> ComparisonGroupState:
    """Apply a preset's widgets to ``session_state`` and return its filter state."""
    version = preset.get("version")
    if version != PRESET_VERSION:
        raise ValueError(f"Unsupported preset version: {version!r}")
    apply_widget_state(preset.get("widgets", {}), session_state)
    return comparison_state_from_dict(preset.get("filters", {}))
