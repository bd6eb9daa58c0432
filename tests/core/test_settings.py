"""Tests for core.settings module.

Covers:
- RetrySettings defaults
- FIBRETRY_* environment override
- Field validation
- Conversion to RetryConfiguration
"""

import pytest
from pydantic import ValidationError

from fibretry.core.settings import RetrySettings
from fibretry.execution import RetryConfiguration


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep a developer's .env and FIBRETRY_* variables out of the tests."""
    monkeypatch.chdir(tmp_path)
    for var in (
        "FIBRETRY_MAX_ATTEMPTS",
        "FIBRETRY_INITIAL_DELAY_MS",
        "FIBRETRY_JITTER_FACTOR",
        "FIBRETRY_FAILURE_THRESHOLD",
        "FIBRETRY_CIRCUIT_OPEN_MS",
        "FIBRETRY_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


class TestRetrySettingsDefaults:
    def test_defaults(self):
        s = RetrySettings()
        assert s.max_attempts == 5
        assert s.initial_delay_ms == 100
        assert s.jitter_factor == 0.1
        assert s.failure_threshold == 5
        assert s.circuit_open_ms == 60_000
        assert s.shutdown_grace_seconds == 5.0
        assert s.log_level == "INFO"
        assert s.log_json is None


class TestRetrySettingsEnvOverride:
    def test_attempts_from_env(self, monkeypatch):
        monkeypatch.setenv("FIBRETRY_MAX_ATTEMPTS", "7")
        assert RetrySettings().max_attempts == 7

    def test_jitter_from_env(self, monkeypatch):
        monkeypatch.setenv("FIBRETRY_JITTER_FACTOR", "0.25")
        assert RetrySettings().jitter_factor == 0.25

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("FIBRETRY_INITIAL_DELAY_MS=250\n")
        assert RetrySettings().initial_delay_ms == 250

    def test_unprefixed_variables_ignored(self, monkeypatch):
        monkeypatch.setenv("MAX_ATTEMPTS", "9")
        assert RetrySettings().max_attempts == 5


class TestRetrySettingsValidation:
    @pytest.mark.parametrize("value", ["0", "31", "abc"])
    def test_invalid_attempts(self, monkeypatch, value):
        monkeypatch.setenv("FIBRETRY_MAX_ATTEMPTS", value)
        with pytest.raises(ValidationError):
            RetrySettings()

    def test_negative_jitter(self):
        with pytest.raises(ValidationError):
            RetrySettings(jitter_factor=-1)


class TestToConfiguration:
    def test_builds_engine_configuration(self):
        config = RetrySettings(max_attempts=3, initial_delay_ms=50, failure_threshold=None).to_configuration()
        assert isinstance(config, RetryConfiguration)
        assert config.max_attempts == 3
        assert config.initial_delay_ms == 50
        assert config.breaker_enabled is False
