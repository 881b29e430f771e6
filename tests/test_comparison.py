import pytest

from filters.comparison import COMPARISON_COLORS, ComparisonGroupState
from filters.core import FilterCondition, FilterModel


F1 = FilterModel([FilterCondition("heating_type", "is", "Floor")])
F2 = FilterModel([FilterCondition("heating_type", "is", "Radiator")])

ROWS = [
    {"heating_type": "Floor", "az": 4.0},
    {"heating_type": "Radiator", "az": 3.1},
    {"heating_type": "Floor", "az": 4.4},
]


def test_initial_state():
    state = ComparisonGroupState()
    assert state.active_group == 1
    assert state.comparison_mode is False
    assert state.active_filter_model.is_empty


def test_switching_groups_never_perturbs_stored_filters():
    state = ComparisonGroupState()
    state.update_filter_group1(F1)
    state.set_active_group(2)
    assert state.active_filter_model.is_empty
    state.update_filter_group2(F2)
    state.set_active_group(1)

    assert state.active_filter_model is F1
    assert state.filter_group2 is F2
    assert state.comparison_mode is True

    state.set_active_group(2)
    assert state.active_filter_model is F2


def test_update_does_not_change_active_group():
    state = ComparisonGroupState()
    state.update_filter_group2(F2)
    assert state.active_group == 1


def test_update_active_filter_targets_the_active_group():
    state = ComparisonGroupState()
    state.update_active_filter(F1)
    state.set_active_group(2)
    state.update_active_filter(F2)
    assert state.filter_group1 is F1
    assert state.filter_group2 is F2


def test_clear_filter_group2_exits_comparison_mode():
    state = ComparisonGroupState()
    state.update_filter_group1(F1)
    state.update_filter_group2(F2)
    state.set_active_group(2)

    state.clear_filter_group2()

    assert state.active_group == 1
    assert state.comparison_mode is False
    assert state.filter_group2.is_empty
    assert state.filter_group1 is F1


def test_invalid_group_is_rejected():
    state = ComparisonGroupState()
    with pytest.raises(ValueError):
        state.set_active_group(3)
    with pytest.raises(ValueError):
        state.update_filter_group(0, F1)
    assert state.active_group == 1


def test_comparison_groups_only_include_group2_in_comparison_mode():
    state = ComparisonGroupState()
    state.update_filter_group1(F1)
    groups = state.get_comparison_groups()
    assert [g.id for g in groups] == [1]
    assert groups[0].name == "Filter 1"
    assert groups[0].color == COMPARISON_COLORS["group1"]

    state.update_filter_group2(F2)
    groups = state.get_comparison_groups()
    assert [(g.id, g.name) for g in groups] == [(1, "Filter 1"), (2, "Filter 2")]
    assert groups[1].filter_model is F2


def test_row_views_follow_the_mode():
    state = ComparisonGroupState(filter_group1=F1)
    assert state.comparison_rows(ROWS) is None
    assert state.filtered_rows(ROWS) == [ROWS[0], ROWS[2]]

    state.update_filter_group2(F2)
    groups = state.comparison_rows(ROWS)
    assert [g.name for g in groups] == ["Filter 1", "Filter 2"]
    assert groups[0].rows == [ROWS[0], ROWS[2]]
    assert groups[1].rows == [ROWS[1]]


def test_unfiltered_group1_returns_input_rows():
    state = ComparisonGroupState()
    assert state.filtered_rows(ROWS) is ROWS
