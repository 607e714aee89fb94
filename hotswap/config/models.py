# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Hotswap, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Central configuration module for Hotswap.

Defines Pydantic models for config.json and provides load / save helpers.
The launcher state file (launcher-state.json) is *not* configuration; it
lives in :mod:`hotswap.supervisor.state`.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from hotswap.exceptions import ConfigError
from hotswap.paths import get_data_dir, validate_instance_id

logger = logging.getLogger("hotswap.config")

CONFIG_FILENAME = "config.json"

# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class LauncherSettings(BaseModel):
    """Supervisor loop tuning that is not part of the persisted state."""

    shutdown_grace_seconds: int = 30  # grace hint sent in the shutdown message
    stop_timeout_seconds: float = 35.0  # wait for child exit before SIGKILL
    retry_backoff_seconds: float = 2.0  # pause between handshake retries
    connect_timeout_seconds: float = 5.0  # IPC client connect timeout

    @model_validator(mode="after")
    def _validate_windows(self) -> LauncherSettings:
        if self.stop_timeout_seconds <= self.shutdown_grace_seconds:
            raise ValueError(
                f"stop_timeout_seconds ({self.stop_timeout_seconds}) must be "
                f"greater than shutdown_grace_seconds ({self.shutdown_grace_seconds})"
            )
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must not be negative")
        return self


class HotswapConfig(BaseModel):
    instance_id: str = "default"
    socket_dir: str | None = None
    log_level: str = "INFO"
    launcher: LauncherSettings = LauncherSettings()

    @field_validator("instance_id")
    @classmethod
    def _check_instance_id(cls, value: str) -> str:
        return validate_instance_id(value)

    def resolved_instance_id(self) -> str:
        """Instance id with the HOTSWAP_INSTANCE_ID override applied."""
        env_val = os.environ.get("HOTSWAP_INSTANCE_ID")
        if env_val:
            return validate_instance_id(env_val)
        return self.instance_id


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def get_config_path() -> Path:
    return get_data_dir() / CONFIG_FILENAME


def load_config(path: Path | None = None) -> HotswapConfig:
    """Load configuration from disk.

    When the file does not exist the default configuration is returned.
    Invalid JSON or invalid values raise :class:`ConfigError`.
    """
    if path is None:
        path = get_config_path()

    if not path.is_file():
        logger.debug("Config file not found at %s; using defaults", path)
        return HotswapConfig()

    logger.debug("Loading config from %s", path)
    try:
        data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
        return HotswapConfig.model_validate(data)
    except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
        logger.error("Failed to parse %s: %s", path, exc)
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc


def save_config(config: HotswapConfig, path: Path | None = None) -> None:
    """Persist *config* to disk as pretty-printed JSON."""
    if path is None:
        path = get_config_path()

    path.parent.mkdir(parents=True, exist_ok=True)
    payload = config.model_dump(mode="json")
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    logger.debug("Config saved to %s", path)
