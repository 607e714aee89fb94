# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from hotswap.config.models import (
    HotswapConfig,
    LauncherSettings,
    get_config_path,
    load_config,
    save_config,
)

__all__ = [
    "HotswapConfig",
    "LauncherSettings",
    "get_config_path",
    "load_config",
    "save_config",
]
