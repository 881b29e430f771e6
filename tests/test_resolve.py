from filters.core import FilterCondition, FilterModel, apply_filter_model
from filters.resolve import flatten_nested_fields, flatten_nested_rows, make_value_resolver


ROW = {
    "heating_id": "h-1",
    "user_id": "u-1",
    "created_at": "2024-01-01",
    "az": 3.9,
    "heating_systems": {
        "heating_id": "h-other",
        "user_id": "u-other",
        "created_at": "2020-05-05",
        "heat_pump_manufacturer": "Vaillant",
        "heated_area_m2": 140,
    },
}


def test_flatten_copies_nested_fields_but_keeps_parent_ids():
    flat = flatten_nested_fields(ROW)

    assert flat["heat_pump_manufacturer"] == "Vaillant"
    assert flat["heated_area_m2"] == 140
    assert flat["heating_id"] == "h-1"
    assert flat["user_id"] == "u-1"
    assert flat["created_at"] == "2024-01-01"
    assert flat["heating_systems"] is ROW["heating_systems"]
    assert "heat_pump_manufacturer" not in ROW


def test_flatten_without_nested_mapping_returns_a_copy():
    row = {"az": 3.0, "heating_systems": None}
    flat = flatten_nested_fields(row)
    assert flat == row
    assert flat is not row


def test_flatten_rows_with_custom_exclusions():
    [flat] = flatten_nested_rows([ROW], excluded=["heated_area_m2"])
    assert "heated_area_m2" not in flat
    assert flat["heating_id"] == "h-other"


def test_value_resolver_computes_fields():
    resolver = make_value_resolver({"manufacturer": lambda r: r["heating_systems"]["heat_pump_manufacturer"]})
    assert resolver(ROW, "manufacturer") == "Vaillant"
    assert resolver(ROW, "az") == 3.9
    assert resolver(ROW, "missing") is None


def test_filters_can_use_a_resolver():
    resolver = make_value_resolver({"area": lambda r: r["heating_systems"]["heated_area_m2"]})
    model = FilterModel([FilterCondition("area", ">", 100)])
    assert apply_filter_model([ROW, {"heating_systems": {"heated_area_m2": 80}}], model, resolver) == [ROW]
