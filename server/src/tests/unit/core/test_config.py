"""
Unit tests for Settings validation and logging configuration.
"""

import pytest
from pydantic import ValidationError

from server.src.core.config import Settings
from server.src.core.logging_config import get_logger, get_logging_config


def test_update_template_allowed_in_development():
    settings = Settings(ENVIRONMENT="development", UPDATE_TEMPLATE=True)

    assert settings.UPDATE_TEMPLATE is True


def test_update_template_refused_outside_development():
    with pytest.raises(ValidationError):
        Settings(ENVIRONMENT="production", UPDATE_TEMPLATE=True)


def test_session_timings_are_numbers():
    settings = Settings()

    assert settings.SESSION_IDLE_TIMEOUT > 0
    assert settings.SESSION_SWEEP_INTERVAL > 0


@pytest.mark.parametrize(
    "module, expected",
    [
        ("server.src.api.router", "skirmish.router"),
        ("server.src.api.handlers.asset_handlers", "skirmish.handlers"),
        ("server.src.services.login_service", "skirmish.services"),
        ("skirmish.store", "skirmish.store"),
    ],
)
def test_get_logger_maps_modules_under_skirmish(module, expected):
    assert get_logger(module).name == expected


def test_production_logging_is_json(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")

    config = get_logging_config()

    assert config["formatters"]["default"]["class"] == "pythonjsonlogger.jsonlogger.JsonFormatter"
    assert "handlers" not in config["loggers"]["skirmish"]
