# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for hotswap/supervisor/bootstrap.py: run_launcher_if_needed."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from hotswap.config import HotswapConfig, LauncherSettings
from hotswap.paths import get_state_path
from hotswap.supervisor.bootstrap import run_launcher, run_launcher_if_needed
from hotswap.supervisor.checker import check
from hotswap.supervisor.state import LauncherState, save_state


@pytest.fixture
def exe(tmp_path: Path) -> Path:
    path = tmp_path / "install" / "app"
    path.parent.mkdir()
    path.write_text("", encoding="utf-8")
    return path


def _with_target(app_data: Path) -> None:
    target = app_data / "versions" / "2.0" / "bin"
    target.parent.mkdir(parents=True)
    target.write_text("", encoding="utf-8")
    save_state(
        LauncherState(active_version="2.0", active_binary_path="versions/2.0/bin"),
        get_state_path(app_data),
    )


class TestRunLauncherIfNeeded:
    def test_normal_start_without_state(self, app_data: Path, exe: Path):
        with patch("hotswap.supervisor.bootstrap.Runner") as runner_cls:
            assert run_launcher_if_needed(app_data, "1.9", exe) is False
        runner_cls.assert_not_called()

    def test_supervised_process_skips_check(
        self, app_data: Path, exe: Path, monkeypatch: pytest.MonkeyPatch,
    ):
        _with_target(app_data)
        monkeypatch.setenv("HOTSWAP_LAUNCHER", "1")
        with patch("hotswap.supervisor.bootstrap.check") as check_mock:
            assert run_launcher_if_needed(app_data, "1.9", exe) is False
        check_mock.assert_not_called()

    def test_runs_launcher_with_config(self, app_data: Path, exe: Path, socket_dir: Path):
        _with_target(app_data)
        settings = LauncherSettings(shutdown_grace_seconds=5, stop_timeout_seconds=6.0)
        config = HotswapConfig(instance_id="blue", socket_dir=str(socket_dir), launcher=settings)

        with patch("hotswap.supervisor.bootstrap.Runner") as runner_cls:
            runner_cls.return_value.run = AsyncMock(return_value=0)
            assert run_launcher_if_needed(app_data, "1.9", exe, ["--serve"], config) is True

        args, kwargs = runner_cls.call_args
        assert args[0].active_version == "2.0"
        assert args[1] == get_state_path(app_data)
        assert args[2] == app_data / "versions" / "2.0" / "bin"
        assert args[3] == "blue"
        assert kwargs["entry_binary"] == exe
        assert kwargs["settings"] is settings
        assert kwargs["socket_dir"] == str(socket_dir)
        runner_cls.return_value.run.assert_awaited_once_with(["--serve"])

    def test_explicit_instance_id_wins(
        self, app_data: Path, exe: Path, monkeypatch: pytest.MonkeyPatch,
    ):
        _with_target(app_data)
        monkeypatch.setenv("HOTSWAP_INSTANCE_ID", "from-env")
        with patch("hotswap.supervisor.bootstrap.Runner") as runner_cls:
            runner_cls.return_value.run = AsyncMock(return_value=0)
            run_launcher_if_needed(app_data, "1.9", exe, instance_id="cli")
        assert runner_cls.call_args.args[3] == "cli"

    def test_env_instance_id_overrides_config(
        self, app_data: Path, exe: Path, monkeypatch: pytest.MonkeyPatch,
    ):
        _with_target(app_data)
        monkeypatch.setenv("HOTSWAP_INSTANCE_ID", "from-env")
        with patch("hotswap.supervisor.bootstrap.Runner") as runner_cls:
            runner_cls.return_value.run = AsyncMock(return_value=0)
            run_launcher_if_needed(app_data, "1.9", exe, config=HotswapConfig(instance_id="cfg"))
        assert runner_cls.call_args.args[3] == "from-env"


class TestRunLauncher:
    @pytest.mark.asyncio
    async def test_rejects_normal_start_result(self, app_data: Path, exe: Path):
        result = check(app_data, "1.9", exe)
        with pytest.raises(ValueError):
            await run_launcher(result, app_data, exe)
