import logging

import pytest
from pydantic import ValidationError

from aggregation.quality import filter_realistic_rows
from log_config import configure_logging, get_logger
from settings import Settings


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.loess_bandwidth == 0.3
    assert settings.regression_max_iterations == 10
    assert settings.cop_bounds == (0.0, 8.0)
    assert settings.temperature_fallback == {"min": 0, "max": 40}


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AZ_LOESS_BANDWIDTH", "0.5")
    monkeypatch.setenv("AZ_COP_MAX_REALISTIC", "10")
    settings = Settings(_env_file=None)
    assert settings.loess_bandwidth == 0.5
    assert settings.cop_bounds == (0.0, 10.0)


def test_bandwidth_is_validated(monkeypatch):
    monkeypatch.setenv("AZ_LOESS_BANDWIDTH", "1.5")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_configure_logging_is_idempotent():
    configure_logging("DEBUG", force=True)
    configure_logging("DEBUG")
    handlers = get_logger("trends").handlers
    assert len(handlers) == 1
    assert get_logger("trends").level == logging.DEBUG
    configure_logging("WARNING", force=True)


def test_engine_logs_dropped_rows(caplog):
    caplog.set_level(logging.INFO, logger="aggregation")
    filter_realistic_rows([{"az": 20.0}, {"az": 3.0}])
    assert "Excluded 1 rows" in caplog.text
