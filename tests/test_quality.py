from aggregation.dataset import compute_az
from aggregation.quality import filter_realistic_rows, is_realistic_cop, validate_measurement
from filters.resolve import make_value_resolver


def test_realistic_cop_bounds_are_inclusive():
    assert is_realistic_cop(0.0)
    assert is_realistic_cop(8.0)
    assert not is_realistic_cop(8.1)
    assert not is_realistic_cop(-0.5)
    assert is_realistic_cop(12.0, bounds=(0.0, 15.0))


def test_missing_cop_counts_as_realistic():
    assert is_realistic_cop(None)
    assert is_realistic_cop(float("nan"))
    assert is_realistic_cop("n/a")


def test_clean_row_is_valid():
    result = validate_measurement({"az": 3.8, "az_heating": 4.1, "electrical_energy_kwh": 120.0})
    assert result.is_valid
    assert result.issues == []


def test_unrealistic_cop_is_an_error():
    result = validate_measurement({"az": 9.5, "az_heating": -1.0})
    assert not result.is_valid
    assert [i.kind for i in result.issues] == ["unrealistic_cop", "unrealistic_cop"]
    assert "high" in result.issues[0].message
    assert "low" in result.issues[1].message
    assert {i.severity for i in result.issues} == {"error"}


def test_negative_thermal_energy_is_only_a_warning():
    result = validate_measurement({"thermal_energy_kwh": -2.0, "electrical_energy_kwh": -1.0})
    severities = sorted(i.severity for i in result.issues)
    assert severities == ["error", "warning"]


def test_filter_realistic_rows():
    rows = [
        {"az": 3.5},
        {"az": 11.0},
        {"az_heating": -0.2},
        {"az": None, "electrical_energy_kwh": -5.0},
        {"thermal_energy_kwh": -3.0},
    ]
    assert filter_realistic_rows(rows) == [rows[0], rows[4]]


def test_screening_can_use_computed_cops():
    rows = [
        {"thermal_energy_kwh": 95.0, "electrical_energy_kwh": 10.0},
        {"thermal_energy_kwh": 40.0, "electrical_energy_kwh": 10.0},
    ]
    resolver = make_value_resolver({"az": lambda r: compute_az(r)[0]})
    assert filter_realistic_rows(rows) == rows
    assert filter_realistic_rows(rows, resolver=resolver) == [rows[1]]
    assert not validate_measurement(rows[0], resolver=resolver).is_valid
