# tests/unit/core/test_capture_settings.py
"""Tests for CaptureSettings validation and load_settings (Dynaconf)."""

from dataclasses import replace
from pathlib import Path

import pytest
from pydantic import ValidationError

from apicapture.contracts.config import RuntimeCaptureConfig
from apicapture.core.config import CaptureSettings, CollectorSettings, load_settings


class TestCaptureSettings:
    def test_defaults(self) -> None:
        settings = CaptureSettings()
        assert settings.enabled is True
        assert settings.max_api_events_to_hold_in_memory == 100
        assert settings.max_batch_time_ms == 2000
        assert settings.static_sampling_percentage == 100.0
        assert settings.config_refresh_interval_seconds == 300.0
        assert settings.collector == CollectorSettings(name="http", options={})
        assert settings.logging.level == "INFO"

    def test_frozen(self) -> None:
        settings = CaptureSettings()
        with pytest.raises(ValidationError):
            settings.debug = True  # type: ignore[misc]

    @pytest.mark.parametrize(
        "field",
        ["max_api_events_to_hold_in_memory", "max_batch_time_ms", "config_refresh_interval_seconds"],
    )
    def test_positive_fields(self, field: str) -> None:
        with pytest.raises(ValidationError, match=field):
            CaptureSettings(**{field: 0})

    @pytest.mark.parametrize("value", [-0.1, 100.1])
    def test_static_percentage_range(self, value: float) -> None:
        with pytest.raises(ValidationError, match="static_sampling_percentage"):
            CaptureSettings(static_sampling_percentage=value)

    def test_endpoint_must_be_http(self) -> None:
        with pytest.raises(ValidationError, match="collector_endpoint"):
            CaptureSettings(collector_endpoint="api.example.com")

    def test_endpoint_trailing_slash_stripped(self) -> None:
        assert CaptureSettings(collector_endpoint="https://api.example.com/").collector_endpoint == "https://api.example.com"

    def test_empty_collector_name_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CollectorSettings(name="")

    def test_invalid_log_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CaptureSettings(logging={"level": "CHATTY"})


class TestLoadSettings:
    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")

    def test_loads_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "capture.yaml"
        config_file.write_text(
            """
application_id: app-123
collector_endpoint: https://collector.example.com/
max_api_events_to_hold_in_memory: 25
max_batch_time_ms: 500
debug: true
collector:
  name: console
  options:
    output: stderr
logging:
  level: DEBUG
  json_output: true
"""
        )

        settings = load_settings(config_file)

        assert settings.application_id == "app-123"
        assert settings.collector_endpoint == "https://collector.example.com"
        assert settings.max_api_events_to_hold_in_memory == 25
        assert settings.max_batch_time_ms == 500
        assert settings.debug is True
        assert settings.collector.name == "console"
        assert settings.collector.options == {"output": "stderr"}
        assert settings.logging.json_output is True

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "capture.yaml"
        config_file.write_text("application_id: from-file\nmax_batch_time_ms: 500\n")
        monkeypatch.setenv("APICAPTURE_APPLICATION_ID", "from-env")
        monkeypatch.setenv("APICAPTURE_MAX_BATCH_TIME_MS", "750")

        settings = load_settings(config_file)

        assert settings.application_id == "from-env"
        assert settings.max_batch_time_ms == 750

    def test_invalid_file_values_raise(self, tmp_path: Path) -> None:
        config_file = tmp_path / "capture.yaml"
        config_file.write_text("max_api_events_to_hold_in_memory: 0\n")
        with pytest.raises(ValidationError):
            load_settings(config_file)


class TestRuntimeCaptureConfig:
    def test_from_settings_converts_units(self) -> None:
        settings = CaptureSettings(
            application_id="app",
            max_batch_time_ms=1500,
            collector=CollectorSettings(name="console", options={"output": "stderr"}),
        )

        runtime = RuntimeCaptureConfig.from_settings(settings)

        assert runtime.max_batch_time_seconds == 1.5
        assert runtime.max_events_in_memory == 100
        assert runtime.collector.name == "console"
        assert runtime.collector.options == {"output": "stderr"}

    def test_default_is_disabled(self) -> None:
        assert RuntimeCaptureConfig.default().enabled is False

    def test_rejects_invalid_values(self) -> None:
        with pytest.raises(ValueError, match="max_events_in_memory"):
            replace(RuntimeCaptureConfig.default(), max_events_in_memory=0)
