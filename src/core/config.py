"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

from src.core.types import Region

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class ConfigError(Exception):
    """Configuration could not be read or failed validation."""


class CarbonApiConfig(BaseModel):
    """Carbon Intensity API (GB) configuration."""

    base_url: str = "https://api.carbonintensity.org.uk"
    timeout_secs: float = Field(default=10.0, gt=0)


class MqttConfig(BaseModel):
    """MQTT broker connection and topic configuration."""

    host: str = "localhost"
    port: int = Field(default=1883, ge=1, le=65535)
    username: str = ""
    password: SecretStr = SecretStr("")
    client_id: str = "carbon-alert"
    tls: bool = False
    keepalive_secs: int = Field(default=30, ge=1)
    topic_prefix: str = "carbon-alert"
    qos: int = Field(default=1, ge=0, le=2)
    retain: bool = False
    connect_timeout_secs: float = Field(default=10.0, gt=0)
    ack_timeout_secs: float = Field(default=5.0, gt=0)

    @field_validator("topic_prefix")
    @classmethod
    def _strip_prefix(cls, v: str) -> str:
        return v.strip("/")


class PublishConfig(BaseModel):
    """Retry policy for publishing alert events."""

    max_attempts: int = Field(default=5, ge=1)
    base_delay_secs: float = Field(default=0.5, ge=0)
    max_delay_secs: float = Field(default=30.0, ge=0)
    max_elapsed_secs: float = Field(default=120.0, gt=0)
    jitter: float = Field(default=0.2, ge=0, le=1)


class SchedulerConfig(BaseModel):
    """Poll scheduling configuration."""

    poll_interval_secs: float = Field(default=1800.0, gt=0)
    failure_threshold: int = Field(default=3, ge=1)
    poll_on_start: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["json", "console"] = "json"


class Settings(BaseModel):
    """Root settings container."""

    carbon_api: CarbonApiConfig = CarbonApiConfig()
    mqtt: MqttConfig = MqttConfig()
    publish: PublishConfig = PublishConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    regions: list[Region] = Field(default_factory=list)
    logging: LoggingConfig = LoggingConfig()

    @field_validator("regions")
    @classmethod
    def _unique_region_ids(cls, v: list[Region]) -> list[Region]:
        seen: set[str] = set()
        for region in v:
            if region.id in seen:
                raise ValueError(f"duplicate region id: {region.id}")
            seen.add(region.id)
        return v


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.

    Raises:
        ConfigError: If the file is not valid YAML or fails validation.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path) as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"{config_path}: invalid YAML: {exc}") from exc
        if isinstance(raw, dict):
            data = raw
        elif raw is not None:
            raise ConfigError(f"{config_path}: top level must be a mapping")

    try:
        _settings = Settings(**data)
    except ValidationError as exc:
        raise ConfigError(f"{config_path}: {exc}") from exc
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
