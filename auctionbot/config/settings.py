"""
Configuration management with Pydantic validation.

Loads settings from YAML config file and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class RedisConfig(BaseModel):
    """Connection to the store holding auction state."""

    url: str = "redis://localhost:6379/0"


class AuctionConfig(BaseModel):
    """Bidding rules and event delivery tuning."""

    min_increment_cents: int = Field(default=100, ge=1)
    max_transaction_retries: int = Field(default=50, ge=1, le=1000)
    # 0 means unbounded.
    subscriber_queue_size: int = Field(default=100, ge=0)
    subscribe_timeout_sec: float = Field(default=5.0, gt=0, le=60)
    poll_interval_sec: float = Field(default=1.0, gt=0, le=30)


class ApiConfig(BaseModel):
    """HTTP API configuration."""

    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    # Empty disables the password check.
    password: str = ""
    ping_interval_sec: float = Field(default=45.0, gt=0, le=600)


class MonitoringConfig(BaseModel):
    """Logging and metrics configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    logs_path: str | None = None
    # 0 disables the Prometheus endpoint.
    metrics_port: int = Field(default=0, ge=0, le=65535)
    error_log_max_bytes: int = Field(default=5_000_000, ge=100_000, le=50_000_000)
    error_log_backup_count: int = Field(default=3, ge=1, le=20)


class Settings(BaseSettings):
    """Main application settings."""

    redis: RedisConfig = Field(default_factory=RedisConfig)
    auction: AuctionConfig = Field(default_factory=AuctionConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "env_nested_delimiter": "__",
        "populate_by_name": True,
    }


_ENV_OVERRIDES = {
    "REDIS_URL": ("redis", "url"),
    "API_PASSWORD": ("api", "password"),
    "LOG_LEVEL": ("monitoring", "log_level"),
}


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings from YAML config file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file values
    3. Default values
    """
    config_data: dict = {}

    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config.yaml")

    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            config_data = yaml.safe_load(f) or {}

    for env_name, (section, field) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is not None:
            config_data.setdefault(section, {})[field] = value

    env_path = config_file.parent / ".env"
    return Settings(**config_data, _env_file=env_path)


def create_default_config(path: str | Path = "config.yaml") -> None:
    """Create a default configuration file."""
    default_config = {
        "redis": {"url": "redis://localhost:6379/0"},
        "auction": {
            "min_increment_cents": 100,
            "max_transaction_retries": 50,
            "subscriber_queue_size": 100,
        },
        "api": {
            "host": "0.0.0.0",
            "port": 8080,
            "password": "",
            "ping_interval_sec": 45,
        },
        "monitoring": {
            "log_level": "INFO",
            "metrics_port": 0,
        },
    }
    with open(path, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)
