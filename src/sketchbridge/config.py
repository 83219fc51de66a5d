"""Configuration helpers for YAML configs and environment settings."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_ORIGINS: tuple[str, ...] = (
    "http://localhost",
    "http://127.0.0.1",
    "http://localhost:5173",
    "http://localhost:3030",
    "http://localhost:8080",
)

DEFAULTS: dict[str, Any] = {
    "transpile": {"namespace": "_p", "rename_prefix": "_", "symbols_path": None},
    "channel": {
        "allowed_origins": list(DEFAULT_ALLOWED_ORIGINS),
        "throttle_ms": 150,
        "require_sketch_id": False,
    },
    "scaffold": {"container_id": "sketch-container", "context_lines": 2},
}


def _merge_dict(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: str | Path | None, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    config = copy.deepcopy(DEFAULTS)
    if path:
        with Path(path).open("r", encoding="utf-8") as fh:
            file_cfg = yaml.safe_load(fh) or {}
        if not isinstance(file_cfg, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        config = _merge_dict(config, file_cfg)
    if overrides:
        config = _merge_dict(config, overrides)
    return config


class BridgeSettings(BaseSettings):
    """Environment driven settings for the sketch runner and message channel."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    allowed_origins: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS), alias="SKETCHBRIDGE_ALLOWED_ORIGINS"
    )
    resize_throttle_ms: int = Field(default=150, ge=0, alias="SKETCHBRIDGE_RESIZE_THROTTLE_MS")
    instance_namespace: str = Field(default="_p", alias="SKETCHBRIDGE_INSTANCE_NAMESPACE")
    rename_prefix: str = Field(default="_", min_length=1, alias="SKETCHBRIDGE_RENAME_PREFIX")
    require_sketch_id: bool = Field(default=False, alias="SKETCHBRIDGE_REQUIRE_SKETCH_ID")
    symbols_path: str | None = Field(default=None, alias="SKETCHBRIDGE_SYMBOLS_PATH")


def load_settings() -> BridgeSettings:
    """Return settings initialised from environment."""

    return BridgeSettings()


def settings_from_config(config: dict[str, Any]) -> BridgeSettings:
    """Build settings from a merged YAML config dictionary."""

    transpile = config.get("transpile", {})
    channel = config.get("channel", {})
    return BridgeSettings(
        SKETCHBRIDGE_ALLOWED_ORIGINS=channel.get("allowed_origins", list(DEFAULT_ALLOWED_ORIGINS)),
        SKETCHBRIDGE_RESIZE_THROTTLE_MS=channel.get("throttle_ms", 150),
        SKETCHBRIDGE_INSTANCE_NAMESPACE=transpile.get("namespace", "_p"),
        SKETCHBRIDGE_RENAME_PREFIX=transpile.get("rename_prefix", "_"),
        SKETCHBRIDGE_REQUIRE_SKETCH_ID=channel.get("require_sketch_id", False),
        SKETCHBRIDGE_SYMBOLS_PATH=transpile.get("symbols_path"),
    )
