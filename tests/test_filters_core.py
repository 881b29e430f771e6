import logging
import math

import pandas as pd
import pytest

from filters.core import (
    FilterCondition,
    FilterModel,
    apply_filter_model,
    build_mask,
    condition_from_dict,
    filter_model_from_dict,
    filter_model_to_dict,
    infer_filterable_columns,
    matches,
    matches_all,
    operators_for_kind,
)


ROWS = [
    {"model": "Vitocal 250-A", "heating_type": "Floor", "outdoor_temperature_c": -2.5, "az": 3.4},
    {"model": "Arotherm plus", "heating_type": "Radiator", "outdoor_temperature_c": 7.0, "az": 4.1},
    {"model": "WH-MDC09J", "heating_type": "Floor", "outdoor_temperature_c": None, "az": "n/a"},
    {"model": "", "heating_type": None, "outdoor_temperature_c": 12.0, "az": 5.2},
]


def test_is_and_equals_are_equivalent():
    for row in ROWS:
        for value in ("Floor", "Radiator", "floor", None):
            is_cond = FilterCondition("heating_type", "is", value)
            eq_cond = FilterCondition("heating_type", "equals", value)
            assert matches(row, is_cond) == matches(row, eq_cond)


def test_equals_is_strict():
    assert matches({"n": 1}, FilterCondition("n", "equals", 1))
    assert not matches({"n": 1}, FilterCondition("n", "equals", "1"))
    assert not matches({"n": 1}, FilterCondition("n", "equals", True))
    assert not matches({"t": "Floor"}, FilterCondition("t", "is", "floor"))


def test_text_operators_ignore_case():
    row = ROWS[0]
    assert matches(row, FilterCondition("model", "contains", "VITOCAL"))
    assert matches(row, FilterCondition("model", "startsWith", "vito"))
    assert matches(row, FilterCondition("model", "endsWith", "250-a"))
    assert not matches(row, FilterCondition("model", "startsWith", "250"))


def test_text_operators_never_match_missing_values():
    row = {"name": None}
    assert not matches(row, FilterCondition("name", "contains", ""))
    assert not matches(row, FilterCondition("name", "startsWith", "a"))
    assert not matches({}, FilterCondition("name", "endsWith", "a"))


def test_text_operators_stringify_numbers():
    assert matches({"year": 2024}, FilterCondition("year", "contains", "202"))


def test_numeric_operators_coerce_strings():
    row = {"t": "5.5"}
    assert matches(row, FilterCondition("t", ">", 5))
    assert matches(row, FilterCondition("t", ">=", "5.5"))
    assert not matches(row, FilterCondition("t", "<", 5))
    assert matches(row, FilterCondition("t", "<=", 6))


def test_numeric_operators_are_false_for_non_numbers():
    for value in ("abc", None, "", math.nan):
        row = {"t": value}
        for op in (">", ">=", "<", "<="):
            assert not matches(row, FilterCondition("t", op, 0))
    assert not matches({"t": 3}, FilterCondition("t", ">", "abc"))


def test_empty_operators():
    for value in (None, "", math.nan):
        assert matches({"v": value}, FilterCondition("v", "isEmpty"))
        assert not matches({"v": value}, FilterCondition("v", "isNotEmpty"))
    assert matches({}, FilterCondition("v", "isEmpty"))
    for value in (0, "x", False):
        assert not matches({"v": value}, FilterCondition("v", "isEmpty"))
        assert matches({"v": value}, FilterCondition("v", "isNotEmpty"))


def test_unknown_operator_matches_and_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="filters.core"):
        for row in ROWS:
            assert matches(row, FilterCondition("model", "fuzzyish-unknown-op", "zzz"))
    assert sum("fuzzyish-unknown-op" in r.getMessage() for r in caplog.records) == 1


def test_empty_model_is_identity():
    assert apply_filter_model(ROWS, FilterModel()) is ROWS
    assert apply_filter_model(ROWS, None) is ROWS
    assert all(matches_all(row, FilterModel()) for row in ROWS)


def test_conditions_are_anded():
    floor = FilterCondition("heating_type", "is", "Floor")
    cold = FilterCondition("outdoor_temperature_c", "<", 0)

    both = apply_filter_model(ROWS, FilterModel([floor, cold]))
    assert both == [ROWS[0]]

    for remaining in ([floor], [cold]):
        fewer = apply_filter_model(ROWS, FilterModel(remaining))
        assert all(row in fewer for row in both)
        assert len(fewer) >= len(both)


def test_filter_model_is_immutable_value():
    items = [FilterCondition("a", "is", 1)]
    model = FilterModel(items)
    items.append(FilterCondition("b", "is", 2))
    assert len(model) == 1
    assert isinstance(model.items, tuple)


def test_build_mask_agrees_with_row_evaluation():
    df = pd.DataFrame(
        {
            "model": ["Vitocal 250-A", "Arotherm plus", None, ""],
            "heating_type": ["Floor", "Radiator", "Floor", None],
            "outdoor": [-2.5, 7.0, None, 12.0],
            "az": ["3.4", "4.1", "n/a", "5.2"],
        }
    )
    models = [
        FilterModel([FilterCondition("model", "contains", "o")]),
        FilterModel([FilterCondition("heating_type", "is", "Floor"), FilterCondition("outdoor", "<", 0)]),
        FilterModel([FilterCondition("az", ">=", 4)]),
        FilterModel([FilterCondition("model", "isEmpty")]),
        FilterModel([FilterCondition("outdoor", "isNotEmpty"), FilterCondition("model", "endsWith", "PLUS")]),
        FilterModel([FilterCondition("missing_column", "isEmpty")]),
        FilterModel([FilterCondition("model", "not-a-real-operator", "x")]),
    ]
    records = df.to_dict("records")
    for model in models:
        expected = [matches_all(r, model) for r in records]
        assert build_mask(df, model).tolist() == expected


def test_build_mask_empty_model_keeps_everything():
    df = pd.DataFrame({"a": [1, 2, 3]})
    assert build_mask(df, FilterModel()).tolist() == [True, True, True]


def test_filter_model_dict_round_trip():
    data = {
        "items": [
            {"id": 1, "field": "heating_type", "operator": "is", "value": "Floor"},
            {"id": 2, "field": "az", "operator": ">", "value": "3"},
            {"id": 3, "field": "model", "operator": "isEmpty"},
        ]
    }
    model = filter_model_from_dict(data)
    assert model.items[0] == FilterCondition("heating_type", "is", "Floor")
    assert model.items[2].value is None
    assert filter_model_from_dict(filter_model_to_dict(model)) == model


def test_filter_model_from_dict_handles_empty_and_invalid():
    assert filter_model_from_dict(None).is_empty
    assert filter_model_from_dict({"items": []}).is_empty
    with pytest.raises(ValueError):
        condition_from_dict({"operator": "is", "value": "x"})


def test_infer_filterable_columns_splits_numeric_and_text():
    df = pd.DataFrame({"num": [1.0, 2.0], "cat": ["a", "b"], "when": pd.date_range("2024-01-01", periods=2)})
    info = infer_filterable_columns(df)
    assert info["numeric"] == ["num"]
    assert info["text"] == ["cat", "when"]
    assert info["options"] == ["num", "cat", "when"]
    assert ">" in operators_for_kind("numeric")
    assert "contains" in operators_for_kind("text")
