"""Tests for src/core/config.py — YAML loading, defaults, validation."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from src.core.config import (
    CarbonApiConfig,
    ConfigError,
    LoggingConfig,
    MqttConfig,
    PublishConfig,
    SchedulerConfig,
    Settings,
    get_settings,
    load_settings,
    reset_settings,
)
from src.core.types import Comparison


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    """Reset the global settings cache before each test."""
    reset_settings()


def _write(tmp_path: Path, data: object) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(data))
    return path


def _region(**overrides: object) -> dict[str, object]:
    region: dict[str, object] = {
        "id": "GB",
        "label": "Great Britain",
        "rules": [{"level": "high", "op": ">", "bound": 200}],
    }
    region.update(overrides)
    return region


class TestDefaults:
    """Settings should have sensible defaults when no YAML is provided."""

    def test_default_carbon_api_config(self) -> None:
        cfg = CarbonApiConfig()
        assert cfg.base_url == "https://api.carbonintensity.org.uk"
        assert cfg.timeout_secs == 10.0

    def test_default_mqtt_config(self) -> None:
        cfg = MqttConfig()
        assert cfg.port == 1883
        assert cfg.qos == 1
        assert cfg.topic_prefix == "carbon-alert"
        assert cfg.password.get_secret_value() == ""

    def test_default_publish_config(self) -> None:
        cfg = PublishConfig()
        assert cfg.max_attempts == 5
        assert cfg.base_delay_secs == 0.5
        assert cfg.max_delay_secs == 30.0

    def test_default_scheduler_config(self) -> None:
        cfg = SchedulerConfig()
        assert cfg.poll_interval_secs == 1800.0
        assert cfg.failure_threshold == 3
        assert cfg.poll_on_start is True

    def test_default_logging_config(self) -> None:
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.format == "json"

    def test_default_settings_have_no_regions(self) -> None:
        assert Settings().regions == []

    def test_topic_prefix_slashes_stripped(self) -> None:
        assert MqttConfig(topic_prefix="/alerts/carbon/").topic_prefix == "alerts/carbon"


class TestYamlLoading:
    def test_load_from_yaml(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {
            "mqtt": {"host": "broker.local", "password": "s3cret", "qos": 2},
            "scheduler": {"poll_interval_secs": 30},
            "regions": [
                _region(),
                _region(
                    id="london",
                    label="London",
                    provider_region_id=13,
                    rules=[
                        {"level": "above", "op": ">=", "bound": 300},
                        {"level": "below", "op": "<=", "bound": 50},
                    ],
                ),
            ],
            "logging": {"level": "DEBUG", "format": "console"},
        })
        s = load_settings(path)
        assert s.mqtt.host == "broker.local"
        assert s.mqtt.password.get_secret_value() == "s3cret"
        assert s.mqtt.qos == 2
        assert s.scheduler.poll_interval_secs == 30
        assert [r.id for r in s.regions] == ["GB", "london"]
        london = s.regions[1]
        assert london.provider_region_id == 13
        assert [r.op for r in london.rules] == [Comparison.GE, Comparison.LE]
        assert s.logging.format == "console"

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        s = load_settings(tmp_path / "nope.yaml")
        assert s == Settings()

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("")
        assert load_settings(path).regions == []

    def test_settings_are_cached(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"regions": [_region()]})
        loaded = load_settings(path)
        assert get_settings() is loaded

    def test_reset_clears_cache(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"regions": [_region()]})
        loaded = load_settings(path)
        reset_settings()
        assert get_settings() is not loaded


class TestValidation:
    """Malformed configuration is a fatal ConfigError, never a silent default."""

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("regions: [unclosed")
        with pytest.raises(ConfigError, match="invalid YAML"):
            load_settings(path)

    def test_non_mapping_top_level(self, tmp_path: Path) -> None:
        path = _write(tmp_path, ["a", "b"])
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path)

    def test_empty_rule_list_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"regions": [_region(rules=[])]})
        with pytest.raises(ConfigError, match="at least one threshold rule"):
            load_settings(path)

    def test_unknown_operator_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {
            "regions": [_region(rules=[{"level": "high", "op": "==", "bound": 1}])],
        })
        with pytest.raises(ConfigError):
            load_settings(path)

    def test_reserved_level_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {
            "regions": [_region(rules=[{"level": "unknown", "op": ">", "bound": 1}])],
        })
        with pytest.raises(ConfigError, match="reserved"):
            load_settings(path)

    def test_duplicate_region_ids_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"regions": [_region(), _region()]})
        with pytest.raises(ConfigError, match="duplicate region id"):
            load_settings(path)

    def test_provider_region_out_of_range(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"regions": [_region(provider_region_id=18)]})
        with pytest.raises(ConfigError):
            load_settings(path)

    def test_non_positive_interval_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"scheduler": {"poll_interval_secs": 0}})
        with pytest.raises(ConfigError):
            load_settings(path)

    def test_qos_out_of_range(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"mqtt": {"qos": 3}})
        with pytest.raises(ConfigError):
            load_settings(path)

    def test_bad_log_format(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"logging": {"format": "xml"}})
        with pytest.raises(ConfigError):
            load_settings(path)
