from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

FilterValueResolver = Callable[[Mapping[str, Any], str], Any]

NESTED_SYSTEM_KEY = "heating_systems"
# These exist on both the measurement row and the nested system record.
PARENT_OWNED_FIELDS = frozenset({"created_at", "user_id", "heating_id"})


def default_resolver(row: Mapping[str, Any], field: str) -> Any:
    return row.get(field)


def make_value_resolver(
    getters: Mapping[str, Callable[[Mapping[str, Any]], Any]],
) -> FilterValueResolver:
    """Build a resolver that computes some fields from the whole row.

    ``getters`` maps a field name to a callable receiving the row; fields
    without a getter are read straight from the row.
    """
    getters = dict(getters)

    def _resolve(row: Mapping[str, Any], field: str) -> Any:
        getter = getters.get(field)
        if getter is not None:
            return getter(row)
        return row.get(field)

    return _resolve


def flatten_nested_fields(
    row: Mapping[str, Any],
    nested_key: str = NESTED_SYSTEM_KEY,
    excluded: Iterable[str] = PARENT_OWNED_FIELDS,
) -> Dict[str, Any]:
    """Copy the fields of a nested mapping onto the row so filters can reach them.

    The nested mapping itself is kept. Fields listed in ``excluded`` are never
    copied, so the row's own ``created_at``/``user_id``/``heating_id`` win.
    """
    nested = row.get(nested_key)
    if not isinstance(nested, Mapping):
        return dict(row)

    skip = set(excluded)
    flat = dict(row)
    for key, value in nested.items():
        if key not in skip:
            flat[key] = value
    return flat


def flatten_nested_rows(
    rows: Iterable[Mapping[str, Any]],
    nested_key: str = NESTED_SYSTEM_KEY,
    excluded: Optional[Iterable[str]] = None,
) -> List[Dict[str, Any]]:
    skip = PARENT_OWNED_FIELDS if excluded is None else frozenset(excluded)
    return [flatten_nested_fields(r, nested_key, skip) for r in rows]
