# src/apicapture/core/config.py
"""
Configuration schema and loading for apicapture.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction and loaded once; the
runtime view is contracts.config.RuntimeCaptureConfig.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class CollectorSettings(BaseModel):
    """Collector plugin selection.

    Example YAML:
        collector:
          name: http
          options:
            timeout_seconds: 10
    """

    model_config = {"frozen": True}

    name: str = Field(default="http", min_length=1, description="Registered collector plugin name")
    options: dict[str, Any] = Field(default_factory=dict, description="Collector-specific options")


class LoggingSettings(BaseModel):
    """Log rendering for hosts that let apicapture configure logging."""

    model_config = {"frozen": True}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_output: bool = Field(default=False, description="Render JSON instead of console lines")


class CaptureSettings(BaseModel):
    """Top-level capture configuration.

    Example YAML:
        enabled: true
        application_id: ${APICAPTURE_APPLICATION_ID}
        collector_endpoint: https://api.moesif.net
        max_api_events_to_hold_in_memory: 100
        max_batch_time_ms: 2000
        static_sampling_percentage: 100
        collector:
          name: http
    """

    model_config = {"frozen": True}

    enabled: bool = Field(default=True, description="Capture events at all")
    application_id: str = Field(default="", description="Collector application id sent with every request")
    collector_endpoint: str = Field(default="https://api.moesif.net", description="Collector base URL")
    max_api_events_to_hold_in_memory: int = Field(
        default=100,
        gt=0,
        description="Buffer capacity; reaching it triggers an immediate send",
    )
    max_batch_time_ms: int = Field(
        default=2000,
        gt=0,
        description="Maximum time an event waits in the buffer before a send is attempted",
    )
    request_body_processing_enabled: bool = Field(default=True, description="Host integrations capture request bodies")
    debug: bool = Field(default=False, description="Verbose capture logging")
    static_sampling_percentage: float = Field(
        default=100.0,
        ge=0,
        le=100,
        description="Local sampling percentage applied before the collector's adaptive rate",
    )
    config_refresh_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="How often the sampling config is re-fetched",
    )
    collector: CollectorSettings = Field(default_factory=CollectorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("collector_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"collector_endpoint must be an http(s) URL, got {v!r}")
        return v.rstrip("/")


def load_settings(config_path: Path) -> CaptureSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (APICAPTURE_*) - highest priority
    2. Config file
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: APICAPTURE_COLLECTOR__NAME for nested keys.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated CaptureSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="APICAPTURE",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; Pydantic fields are lowercase
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    for section in ("collector", "logging"):
        if isinstance(raw_config.get(section), dict):
            raw_config[section] = {k.lower(): v for k, v in raw_config[section].items()}

    return CaptureSettings(**raw_config)
