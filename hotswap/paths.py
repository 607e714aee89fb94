# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Hotswap, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Centralized path resolution for Hotswap.

All modules import file locations from here instead of computing them ad-hoc.
The runtime data directory can be overridden via the HOTSWAP_DATA_DIR
environment variable; the IPC socket directory via HOTSWAP_SOCKET_DIR.
"""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

STATE_FILENAME = "launcher-state.json"
SOCKET_PREFIX = "hotswap-"

_DEFAULT_DATA_DIR = Path.home() / ".hotswap"
_INSTANCE_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def get_data_dir() -> Path:
    """Return the runtime data directory, respecting HOTSWAP_DATA_DIR env var."""
    env_val = os.environ.get("HOTSWAP_DATA_DIR")
    if env_val:
        return Path(env_val).expanduser().resolve()
    return _DEFAULT_DATA_DIR


def get_log_dir() -> Path:
    return get_data_dir() / "logs"


def get_state_path(app_data_dir: Path | str) -> Path:
    """Return the launcher state file inside *app_data_dir*."""
    return Path(app_data_dir) / STATE_FILENAME


def validate_instance_id(instance_id: str) -> str:
    """Return *instance_id* unchanged, or raise ValueError if unusable in a path."""
    if not instance_id or not _INSTANCE_ID_RE.match(instance_id) or instance_id in (".", ".."):
        raise ValueError(f"Invalid instance id: {instance_id!r}")
    return instance_id


def get_socket_dir(socket_dir: Path | str | None = None) -> Path:
    if socket_dir is not None:
        return Path(socket_dir)
    env_val = os.environ.get("HOTSWAP_SOCKET_DIR")
    if env_val:
        return Path(env_val).expanduser()
    return Path(tempfile.gettempdir())


def get_socket_path(instance_id: str, socket_dir: Path | str | None = None) -> Path:
    """Return the per-instance Unix socket path.

    The instance id is part of the file name so several supervised
    instances can share one host without colliding.
    """
    validate_instance_id(instance_id)
    return get_socket_dir(socket_dir) / f"{SOCKET_PREFIX}{instance_id}.sock"
