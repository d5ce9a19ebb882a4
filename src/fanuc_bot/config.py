"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class TelegramConfig(BaseModel):
    token: str
    drop_pending_updates: bool = True


class StorageConfig(BaseModel):
    db_path: str = "./data/fanuc_bot.db"


class KafkaConfig(BaseModel):
    client_id: str = "fanuc-bot"
    request_timeout_ms: int = Field(default=5000, gt=0)
    scan_window: int = Field(default=50, gt=0)  # records per partition searched for a key


class FanucApiConfig(BaseModel):
    timeout: float = Field(default=10.0, gt=0)
    api_prefix: str = "/api/v1"
    api_key_header: str = "X-API-Key"


class LiveConfig(BaseModel):
    refresh_interval: float = Field(default=1.5, gt=0)
    fetch_timeout: float = Field(default=5.0, gt=0)
    max_render_chars: int = Field(default=3500, gt=0)


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    data_dir: str = "./data"
    telegram: TelegramConfig
    storage: StorageConfig = Field(default_factory=StorageConfig)
    kafka: KafkaConfig = Field(default_factory=KafkaConfig)
    fanuc: FanucApiConfig = Field(default_factory=FanucApiConfig)
    live: LiveConfig = Field(default_factory=LiveConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # data_dir may be referenced as ${data_dir} elsewhere in the file
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
