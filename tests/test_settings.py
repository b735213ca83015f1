"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from auctionbot.config.settings import create_default_config, load_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("REDIS_URL", "API_PASSWORD", "LOG_LEVEL", "CONFIG_PATH"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_when_file_missing(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "missing.yaml")
    assert settings.redis.url == "redis://localhost:6379/0"
    assert settings.auction.min_increment_cents == 100
    assert settings.api.port == 8080
    assert settings.api.password == ""
    assert settings.api.ping_interval_sec == 45


def test_yaml_values_and_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "redis:\n"
        "  url: redis://cache:6379/2\n"
        "auction:\n"
        "  min_increment_cents: 250\n"
        "api:\n"
        "  password: from-file\n"
    )
    settings = load_settings(config_path)
    assert settings.redis.url == "redis://cache:6379/2"
    assert settings.auction.min_increment_cents == 250
    assert settings.api.password == "from-file"

    monkeypatch.setenv("API_PASSWORD", "from-env")
    monkeypatch.setenv("REDIS_URL", "redis://override:6379/0")
    settings = load_settings(config_path)
    assert settings.api.password == "from-env"
    assert settings.redis.url == "redis://override:6379/0"
    assert settings.auction.min_increment_cents == 250


def test_invalid_values_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("auction:\n  min_increment_cents: 0\n")
    with pytest.raises(ValidationError):
        load_settings(config_path)


def test_default_config_file_loads(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    create_default_config(config_path)
    settings = load_settings(config_path)
    assert settings.auction.subscriber_queue_size == 100
    assert settings.monitoring.metrics_port == 0
