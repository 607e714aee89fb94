# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""Global test fixtures for Hotswap tests.

Provides filesystem isolation (data dir, app data dir, short socket dir)
and the environment supervised Python children need to import hotswap.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest

from hotswap.config import LauncherSettings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent

_SUPERVISION_VARS = (
    "HOTSWAP_LAUNCHER",
    "HOTSWAP_INSTANCE_ID",
    "HOTSWAP_LAUNCHER_PID",
    "HOTSWAP_LAUNCHER_EXE",
    "HOTSWAP_SOCKET_PATH",
)


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's real data dir and launcher variables out of tests."""
    monkeypatch.setenv("HOTSWAP_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("HOTSWAP_SOCKET_DIR", raising=False)
    for name in _SUPERVISION_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def app_data(tmp_path: Path) -> Path:
    """Application data directory holding launcher-state.json."""
    d = tmp_path / "app"
    d.mkdir()
    return d


@pytest.fixture
def socket_dir() -> Iterator[Path]:
    """Short directory for Unix sockets.

    pytest's tmp_path easily exceeds the ~108 byte limit on socket paths.
    """
    d = Path(tempfile.mkdtemp(prefix="hs-"))
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def child_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Let spawned Python children import hotswap from this checkout."""
    existing = os.environ.get("PYTHONPATH")
    value = str(PROJECT_ROOT) if not existing else os.pathsep.join([str(PROJECT_ROOT), existing])
    monkeypatch.setenv("PYTHONPATH", value)


@pytest.fixture
def fast_settings() -> LauncherSettings:
    """Launcher settings with short grace, stop and backoff windows."""
    return LauncherSettings(
        shutdown_grace_seconds=1,
        stop_timeout_seconds=2.0,
        retry_backoff_seconds=0.05,
        connect_timeout_seconds=2.0,
    )
