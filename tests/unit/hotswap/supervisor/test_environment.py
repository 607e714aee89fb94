# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for hotswap/supervisor/environment.py: supervision variables."""

from __future__ import annotations

from pathlib import Path

import pytest

from hotswap.exceptions import ConfigError
from hotswap.supervisor.environment import (
    ENV_INSTANCE_ID,
    ENV_LAUNCHER,
    ENV_LAUNCHER_EXE,
    ENV_LAUNCHER_PID,
    ENV_SOCKET_PATH,
    SupervisedEnvironment,
    is_supervised,
)


def _env(**overrides: str) -> dict[str, str]:
    env = {
        ENV_LAUNCHER: "1",
        ENV_INSTANCE_ID: "main",
        ENV_LAUNCHER_PID: "4321",
        ENV_LAUNCHER_EXE: "/opt/app/bin",
        ENV_SOCKET_PATH: "/tmp/hotswap-main.sock",
    }
    env.update(overrides)
    return {k: v for k, v in env.items() if v is not None}


class TestIsSupervised:
    def test_marker_absent(self):
        assert is_supervised({}) is False

    def test_marker_present(self):
        assert is_supervised({ENV_LAUNCHER: "1"}) is True

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch):
        assert is_supervised() is False
        monkeypatch.setenv(ENV_LAUNCHER, "1")
        assert is_supervised() is True


class TestFromEnv:
    def test_unsupervised_returns_none(self):
        assert SupervisedEnvironment.from_env({}) is None

    def test_round_trip_through_to_env(self):
        env = SupervisedEnvironment(
            instance_id="main",
            launcher_pid=99,
            launcher_exe="/opt/app/bin",
            socket_path=Path("/tmp/hotswap-main.sock"),
        )
        assert SupervisedEnvironment.from_env(env.to_env()) == env

    def test_socket_path_falls_back_to_instance_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HOTSWAP_SOCKET_DIR", "/run/hs")
        environ = _env()
        del environ[ENV_SOCKET_PATH]
        env = SupervisedEnvironment.from_env(environ)
        assert env.socket_path == Path("/run/hs/hotswap-main.sock")

    @pytest.mark.parametrize("value", ["", "../evil", "a b"])
    def test_bad_instance_id(self, value: str):
        with pytest.raises(ConfigError):
            SupervisedEnvironment.from_env(_env(**{ENV_INSTANCE_ID: value}))

    @pytest.mark.parametrize("value", ["", "abc", "0", "-5"])
    def test_bad_launcher_pid(self, value: str):
        with pytest.raises(ConfigError):
            SupervisedEnvironment.from_env(_env(**{ENV_LAUNCHER_PID: value}))

    def test_missing_launcher_exe(self):
        with pytest.raises(ConfigError):
            SupervisedEnvironment.from_env(_env(**{ENV_LAUNCHER_EXE: ""}))
