# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""
Decide at process start whether this process must become the launcher.

``check()`` only reads the file system; it never writes state or spawns
anything, so every branch can be exercised with a temporary directory.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from hotswap.exceptions import StateNotFoundError
from hotswap.paths import get_state_path
from hotswap.supervisor.state import LauncherState, load_state

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """Outcome of :func:`check`."""

    should_be_launcher: bool
    current_version: str
    state_path: Path
    target_binary_path: Path | None = None
    target_version: str = ""
    state: LauncherState | None = None


def resolve_binary_path(binary_path: str | Path, app_data_dir: Path | str) -> Path:
    """Return *binary_path* as an absolute path, relative paths anchored at *app_data_dir*."""
    path = Path(binary_path)
    if not path.is_absolute():
        path = Path(app_data_dir) / path
    return Path(os.path.abspath(path))


def same_file(path1: Path | str, path2: Path | str) -> bool:
    """Compare two paths after making them absolute.

    Only the normalized paths are compared; symlinks and bind mounts are
    not resolved.
    """
    return os.path.abspath(path1) == os.path.abspath(path2)


def check(
    app_data_dir: Path | str,
    current_version: str,
    current_exe_path: Path | str,
) -> CheckResult:
    """Decide whether the current process should run as the launcher.

    Each rule short-circuits to a normal start:

    1. no state file
    2. ``prefer_entry_binary`` is set
    3. no active version or binary recorded
    4. the active version is the one already running
    5. the active binary does not exist (failed or partial update)
    6. the active binary is the running executable

    Otherwise the active binary must be started under supervision.

    Raises:
        StateCorruptedError: If the state file exists but cannot be parsed.
    """
    state_path = get_state_path(app_data_dir)
    result = CheckResult(
        should_be_launcher=False,
        current_version=current_version,
        state_path=state_path,
    )
    logger.debug(
        "Launcher check: state=%s current_version=%r current_exe=%s",
        state_path, current_version, current_exe_path,
    )

    try:
        state = load_state(state_path)
    except StateNotFoundError:
        logger.debug("No state file; normal start")
        return result
    result.state = state

    if state.prefer_entry_binary:
        logger.debug("prefer_entry_binary set; normal start")
        return result

    if not state.active_version or not state.active_binary_path:
        logger.debug("No active target recorded; normal start")
        return result

    if state.active_version == current_version:
        logger.debug("Active version %r already running; normal start", current_version)
        return result

    target_path = resolve_binary_path(state.active_binary_path, app_data_dir)
    if not target_path.exists():
        logger.warning("Active binary missing (%s); normal start", target_path)
        return result

    if same_file(current_exe_path, target_path):
        logger.debug("Active binary is the running executable; normal start")
        return result

    logger.info(
        "Launcher mode required: target version %s at %s",
        state.active_version, target_path,
    )
    result.should_be_launcher = True
    result.target_binary_path = target_path
    result.target_version = state.active_version
    return result
