from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

import numpy as np
import pandas as pd

from log_config import get_logger

from .resolve import FilterValueResolver, default_resolver

logger = get_logger(__name__)

TEXT_OPERATORS = ("contains", "equals", "is", "startsWith", "endsWith")
NUMERIC_OPERATORS = (">", ">=", "<", "<=")
PRESENCE_OPERATORS = ("isEmpty", "isNotEmpty")
OPERATORS = TEXT_OPERATORS + NUMERIC_OPERATORS + PRESENCE_OPERATORS

_warned_operators: Set[str] = set()


@dataclass(frozen=True)
class FilterCondition:
    field: str
    operator: str
    value: Any = None


@dataclass(frozen=True)
class FilterModel:
    """Conditions combined with AND. No conditions means every row matches."""

    items: Sequence[FilterCondition] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))

    def __len__(self) -> int:
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0


EMPTY_FILTER_MODEL = FilterModel()


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    return bool(pd.api.types.is_scalar(value) and pd.isna(value))


def _is_empty(value: Any) -> bool:
    return _is_missing(value) or (isinstance(value, str) and value == "")


def _to_number(value: Any) -> float:
    """Coerce a cell to float; anything that is not a number becomes NaN."""
    if _is_missing(value):
        return math.nan
    if isinstance(value, (bool, np.bool_)):
        return float(value)
    if isinstance(value, numbers.Real):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return math.nan
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _strict_equals(value: Any, expected: Any) -> bool:
    if isinstance(value, bool) != isinstance(expected, bool):
        return False
    if value is None or expected is None:
        return value is expected
    try:
        return bool(value == expected)
    except (TypeError, ValueError):
        return False


def _text_match(value: Any, pattern: Any, op: str) -> bool:
    if _is_missing(value):
        return False
    text = str(value).lower()
    patt = "" if pattern is None else str(pattern).lower()
    if op == "contains":
        return patt in text
    if op == "startsWith":
        return text.startswith(patt)
    return text.endswith(patt)


def _numeric_match(value: Any, threshold: Any, op: str) -> bool:
    left = _to_number(value)
    right = _to_number(threshold)
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right
    if op == "<":
        return left < right
    return left <= right


def _warn_unknown_operator(op: str) -> None:
    if op not in _warned_operators:
        _warned_operators.add(op)
        logger.warning("Unknown filter operator %r; condition treated as a match", op)


def matches(
    row: Mapping[str, Any],
    condition: FilterCondition,
    resolver: Optional[FilterValueResolver] = None,
) -> bool:
    """Evaluate one condition against a row. Never raises."""
    value = (resolver or default_resolver)(row, condition.field)
    op = condition.operator

    if op in ("contains", "startsWith", "endsWith"):
        return _text_match(value, condition.value, op)
    if op in ("equals", "is"):
        return _strict_equals(value, condition.value)
    if op in NUMERIC_OPERATORS:
        return _numeric_match(value, condition.value, op)
    if op == "isEmpty":
        return _is_empty(value)
    if op == "isNotEmpty":
        return not _is_empty(value)

    _warn_unknown_operator(op)
    return True


def matches_all(
    row: Mapping[str, Any],
    model: FilterModel,
    resolver: Optional[FilterValueResolver] = None,
) -> bool:
    return all(matches(row, cond, resolver) for cond in model.items)


def apply_filter_model(
    rows: List[Mapping[str, Any]],
    model: Optional[FilterModel],
    resolver: Optional[FilterValueResolver] = None,
) -> List[Mapping[str, Any]]:
    """Return the rows matching ``model``; an empty model returns ``rows`` itself."""
    if model is None or model.is_empty:
        return rows
    return [row for row in rows if matches_all(row, model, resolver)]


def _condition_mask(series: pd.Series, cond: FilterCondition) -> pd.Series:
    op = cond.operator

    if op in ("contains", "startsWith", "endsWith"):
        present = ~series.map(_is_missing).astype(bool)
        text = series.astype(str).str.lower()
        patt = "" if cond.value is None else str(cond.value).lower()
        if op == "contains":
            base = text.str.contains(patt, regex=False)
        elif op == "startsWith":
            base = text.str.startswith(patt)
        else:
            base = text.str.endswith(patt)
        return base.fillna(False).astype(bool) & present

    if op in ("equals", "is"):
        return series.map(lambda v: _strict_equals(v, cond.value)).astype(bool)

    if op in NUMERIC_OPERATORS:
        numbers_ = series.map(_to_number).astype(float)
        threshold = _to_number(cond.value)
        if op == ">":
            return numbers_ > threshold
        if op == ">=":
            return numbers_ >= threshold
        if op == "<":
            return numbers_ < threshold
        return numbers_ <= threshold

    if op in PRESENCE_OPERATORS:
        empty = series.map(_is_empty).astype(bool)
        return empty if op == "isEmpty" else ~empty

    _warn_unknown_operator(op)
    return pd.Series(True, index=series.index)


def build_mask(df: pd.DataFrame, model: Optional[FilterModel]) -> pd.Series:
    """Vectorised ``matches_all`` over every row of ``df``."""
    mask = pd.Series(True, index=df.index)
    if model is None:
        return mask

    for cond in model.items:
        if cond.field in df.columns:
            series = df[cond.field]
        else:
            series = pd.Series([None] * len(df), index=df.index, dtype=object)
        mask = mask & _condition_mask(series, cond)

    return mask


def infer_filterable_columns(df: pd.DataFrame) -> dict:
    """Return the filterable columns grouped by the operators they support."""
    num_cols = df.select_dtypes(include=[np.number]).columns.tolist()
    text_cols = [c for c in df.columns if c not in num_cols]

    return {
        "numeric": num_cols,
        "text": text_cols,
        "options": list(df.columns),
    }


def operators_for_kind(kind: str) -> List[str]:
    if kind == "numeric":
        return list(NUMERIC_OPERATORS) + ["equals"] + list(PRESENCE_OPERATORS)
    return ["is", "contains", "startsWith", "endsWith"] + list(PRESENCE_OPERATORS)


def condition_to_dict(cond: FilterCondition) -> Dict[str, Any]:
    """Serialize a condition into the data-grid item shape."""
    return {"field": cond.field, "operator": cond.operator, "value": cond.value}


def condition_from_dict(data: Mapping[str, Any]) -> FilterCondition:
    if not data.get("field"):
        raise ValueError(f"Filter item has no field: {dict(data)!r}")
    return FilterCondition(
        field=str(data["field"]),
        operator=str(data.get("operator", "")),
        value=data.get("value"),
    )


def filter_model_to_dict(model: FilterModel) -> Dict[str, Any]:
    return {"items": [condition_to_dict(c) for c in model.items]}


def filter_model_from_dict(data: Optional[Mapping[str, Any]]) -> FilterModel:
    """Deserialize ``{"items": [...]}``; ``None`` gives the empty model."""
    if not data:
        return EMPTY_FILTER_MODEL
    items: Iterable[Mapping[str, Any]] = data.get("items") or []
    return FilterModel([condition_from_dict(item) for item in items])
