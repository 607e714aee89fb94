# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""
Persisted launcher state (``launcher-state.json``).

The file records which version is active, which is the backup, and the
supervisor tuning parameters.  It is read on every process start and
rewritten by the launcher (failure counter, rollback) as well as by the
supervised process itself when it wants a new version to be started.
No locking is done here; callers serialize access.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hotswap.exceptions import StateCorruptedError, StateNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_STARTUP_TIMEOUT = 60
DEFAULT_MAX_RETRIES = 3


class LauncherState(BaseModel):
    """Which binary the launcher should run, and how patiently."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    active_version: str = ""
    active_binary_path: str = ""  # absolute, or relative to the app data dir
    backup_version: str = ""
    backup_binary_path: str = ""
    prefer_entry_binary: bool = False  # always run the originally deployed binary
    startup_timeout: int = Field(default=DEFAULT_STARTUP_TIMEOUT, gt=0)  # seconds
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1)
    last_update_time: int = 0  # unix seconds
    failure_count: int = Field(default=0, ge=0)

    def target_key(self) -> tuple[str, str, bool]:
        """Fields whose change means a different binary must be started."""
        return (self.active_version, self.active_binary_path, self.prefer_entry_binary)


def default_state() -> LauncherState:
    return LauncherState()


def load_state(path: Path) -> LauncherState:
    """Load the state file.

    Missing keys take their defaults and unknown keys are ignored.

    Raises:
        StateNotFoundError: If the file does not exist.
        StateCorruptedError: If it is unreadable, not JSON, or holds invalid values.
    """
    try:
        raw_text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise StateNotFoundError(f"State file not found: {path}") from e
    except OSError as e:
        raise StateCorruptedError(f"Cannot read state file {path}: {e}") from e
    except UnicodeDecodeError as e:
        logger.error("State file %s is not valid UTF-8: %s", path, e)
        raise StateCorruptedError(f"Corrupted state file {path}: {e}") from e

    try:
        return LauncherState.model_validate_json(raw_text)
    except ValidationError as e:
        logger.error("Failed to parse %s: %s", path, e)
        raise StateCorruptedError(f"Corrupted state file {path}: {e}") from e


def save_state(state: LauncherState, path: Path) -> None:
    """Write *state* as indented JSON, atomically (temp + rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = state.model_dump_json(indent=2) + "\n"

    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent, suffix=".tmp", prefix=f".{path.name}.",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, 0o644)  # mkstemp creates 0600
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            logger.debug("Failed to unlink temp file %s", tmp_path, exc_info=True)
        raise
    logger.debug("State saved to %s", path)
