from __future__ import annotations

from typing import Any, List, MutableMapping, Optional

import pandas as pd
import streamlit as st

from .comparison import GROUP_NAMES, ComparisonGroupState
from .core import (
    PRESENCE_OPERATORS,
    FilterCondition,
    FilterModel,
    infer_filterable_columns,
    operators_for_kind,
)

MAX_CONDITIONS = 10
MAX_CHOICES = 100


def _float_or_none(s: str) -> Optional[float]:
    s = s.strip()
    if not s:
        return None
    try:
        return float(s)
    except ValueError:
        return None


def _index_of(options: List[Any], value: Any) -> int:
    try:
        return options.index(value)
    except ValueError:
        return 0


def _render_condition(
    df: pd.DataFrame,
    info: dict,
    existing: Optional[FilterCondition],
    key: str,
) -> Optional[FilterCondition]:
    options = info["options"]
    field = st.selectbox(
        "Variable",
        options=options,
        index=_index_of(options, existing.field) if existing else 0,
        key=f"{key}_var",
    )
    kind = "numeric" if field in info["numeric"] else "text"
    ops = operators_for_kind(kind)
    op = st.selectbox(
        "Operator",
        ops,
        index=_index_of(ops, existing.operator) if existing else 0,
        key=f"{key}_op_{kind}",
    )

    if op in PRESENCE_OPERATORS:
        return FilterCondition(field, op)

    old_value = existing.value if existing and existing.field == field else None

    if kind == "numeric":
        txt = st.text_input(
            "Value",
            value="" if old_value is None else str(old_value),
            key=f"{key}_num",
        )
        value = _float_or_none(txt)
        return FilterCondition(field, op, value) if value is not None else None

    uniq = pd.unique(df[field].dropna())
    if op == "is" and len(uniq) <= MAX_CHOICES:
        choices = sorted(uniq.tolist(), key=str)
        if not choices:
            return None
        value = st.selectbox(
            "Value",
            options=choices,
            index=_index_of(choices, old_value),
            format_func=str,
            key=f"{key}_choice",
        )
        return FilterCondition(field, op, value)

    value = st.text_input(
        "Text",
        value="" if old_value is None else str(old_value),
        key=f"{key}_txt",
    )
    return FilterCondition(field, op, value) if value else None


def render_comparison_controls(
    df: pd.DataFrame,
    state: ComparisonGroupState,
    key_prefix: str = "cmp",
) -> None:
    """Render the filter editor for the active group and store its conditions.

    Widgets for each group are seeded from the stored model, so switching
    groups (which unmounts the other group's widgets) never loses conditions.
    """
    info = infer_filterable_columns(df)

    left, right = st.columns([3, 1])
    with left:
        group = st.radio(
            "Editing",
            options=[1, 2],
            index=state.active_group - 1,
            format_func=GROUP_NAMES.get,
            horizontal=True,
            help="Add conditions to Filter 2 to compare two subsets side by side.",
        )
    with right:
        st.button(
            "Clear Filter 2",
            on_click=state.clear_filter_group2,
            disabled=not state.comparison_mode,
            key=f"{key_prefix}_clear2",
        )
    if group != state.active_group:
        state.set_active_group(group)

    model = state.active_filter_model
    prefix = f"{key_prefix}_g{state.active_group}"

    n_filters = st.number_input(
        "Number of filtering conditions",
        min_value=0,
        max_value=MAX_CONDITIONS,
        value=min(len(model.items), MAX_CONDITIONS),
        step=1,
        key=f"{prefix}_n",
        help="All conditions must hold (AND). Conditions without a value are ignored.",
    )

    conditions: List[FilterCondition] = []
    for i in range(int(n_filters)):
        existing = model.items[i] if i < len(model.items) else None
        with st.expander(f"Condition {i + 1}", expanded=True):
            cond = _render_condition(df, info, existing, f"{prefix}_{i}")
        if cond is not None:
            conditions.append(cond)

    if list(model.items) != conditions:
        state.update_active_filter(FilterModel(conditions))


def reset_editor_widgets(session_state: MutableMapping[str, Any], key_prefix: str = "cmp") -> None:
    """Forget the editor's widget values so the next run seeds them from the stored models.

    Call this before replacing the comparison state (e.g. when loading a
    preset); otherwise the old widget values rebuild the old conditions.
    """
    for key in [k for k in session_state.keys() if str(k).startswith(f"{key_prefix}_")]:
        del session_state[key]
