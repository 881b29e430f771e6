"""Two independently editable filter groups for side-by-side comparison.

Group 1 is always present. Comparison mode switches on as soon as group 2
has at least one condition. The filter editor only ever shows the active
group's model; switching the active group never touches the stored models.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from log_config import get_logger

from .core import EMPTY_FILTER_MODEL, FilterModel, apply_filter_model
from .resolve import FilterValueResolver

logger = get_logger(__name__)

COMPARISON_COLORS = {
    "group1": "#23a477",
    "group2": "#86efac",
    "outdoor": "#3b82f6",
    "flow": "#ef4444",
}

GROUP_NAMES = {1: "Filter 1", 2: "Filter 2"}


@dataclass(frozen=True)
class ComparisonGroup:
    id: int
    name: str
    color: str
    filter_model: FilterModel


@dataclass(frozen=True)
class ComparisonDataGroup:
    id: int
    name: str
    color: str
    rows: List[Mapping[str, Any]]


class ComparisonGroupState:
    """Owned filter state for one dashboard session. Not thread-safe."""

    def __init__(
        self,
        filter_group1: FilterModel = EMPTY_FILTER_MODEL,
        filter_group2: FilterModel = EMPTY_FILTER_MODEL,
        active_group: int = 1,
    ) -> None:
        self._filter_group1 = filter_group1
        self._filter_group2 = filter_group2
        self._active_group = 1
        self.set_active_group(active_group)

    def __repr__(self) -> str:
        return (
            f"ComparisonGroupState(active_group={self._active_group}, "
            f"group1={len(self._filter_group1)} items, group2={len(self._filter_group2)} items)"
        )

    @property
    def filter_group1(self) -> FilterModel:
        return self._filter_group1

    @property
    def filter_group2(self) -> FilterModel:
        return self._filter_group2

    @property
    def active_group(self) -> int:
        return self._active_group

    @property
    def comparison_mode(self) -> bool:
        return len(self._filter_group2.items) > 0

    @property
    def active_filter_model(self) -> FilterModel:
        return self._filter_group1 if self._active_group == 1 else self._filter_group2

    def update_filter_group1(self, model: FilterModel) -> None:
        self._filter_group1 = model

    def update_filter_group2(self, model: FilterModel) -> None:
        self._filter_group2 = model

    def update_filter_group(self, group: int, model: FilterModel) -> None:
        if group == 1:
            self.update_filter_group1(model)
        elif group == 2:
            self.update_filter_group2(model)
        else:
            raise ValueError(f"Comparison group must be 1 or 2, got {group!r}")

    def update_active_filter(self, model: FilterModel) -> None:
        """Store an edit from the filter editor into whichever group is active."""
        self.update_filter_group(self._active_group, model)

    def set_active_group(self, group: int) -> None:
        if group not in (1, 2):
            raise ValueError(f"Comparison group must be 1 or 2, got {group!r}")
        self._active_group = group

    def clear_filter_group2(self) -> None:
        """Leave comparison mode; focus always returns to group 1."""
        self._filter_group2 = EMPTY_FILTER_MODEL
        self._active_group = 1

    def get_comparison_groups(self) -> List[ComparisonGroup]:
        groups = [ComparisonGroup(1, GROUP_NAMES[1], COMPARISON_COLORS["group1"], self._filter_group1)]
        if self.comparison_mode:
            groups.append(ComparisonGroup(2, GROUP_NAMES[2], COMPARISON_COLORS["group2"], self._filter_group2))
        return groups

    def filtered_rows(
        self,
        rows: List[Mapping[str, Any]],
        resolver: Optional[FilterValueResolver] = None,
    ) -> List[Mapping[str, Any]]:
        """Rows matching group 1, for single-series charts."""
        return apply_filter_model(rows, self._filter_group1, resolver)

    def comparison_rows(
        self,
        rows: List[Mapping[str, Any]],
        resolver: Optional[FilterValueResolver] = None,
    ) -> Optional[List[ComparisonDataGroup]]:
        """Each group's matching rows, or ``None`` outside comparison mode."""
        if not self.comparison_mode:
            return None
        out = []
        for group in self.get_comparison_groups():
            matched = apply_filter_model(rows, group.filter_model, resolver)
            logger.debug("%s keeps %d of %d rows", group.name, len(matched), len(rows))
            out.append(ComparisonDataGroup(group.id, group.name, group.color, matched))
        return out
