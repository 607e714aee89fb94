"""Unit tests for hotswap/paths.py: data dir, state file and socket paths."""
# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from hotswap.paths import (
    STATE_FILENAME,
    get_data_dir,
    get_log_dir,
    get_socket_dir,
    get_socket_path,
    get_state_path,
    validate_instance_id,
)


class TestDataDir:
    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HOTSWAP_DATA_DIR", str(tmp_path / "custom"))
        assert get_data_dir() == (tmp_path / "custom").resolve()
        assert get_log_dir() == (tmp_path / "custom").resolve() / "logs"

    def test_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("HOTSWAP_DATA_DIR", raising=False)
        assert get_data_dir() == Path.home() / ".hotswap"


class TestStatePath:
    def test_state_file_in_app_data(self, tmp_path: Path):
        assert get_state_path(tmp_path) == tmp_path / STATE_FILENAME
        assert STATE_FILENAME == "launcher-state.json"


class TestSocketPath:
    def test_instance_in_file_name(self):
        assert get_socket_path("blue", "/run/hs") == Path("/run/hs/hotswap-blue.sock")

    def test_instances_do_not_collide(self):
        assert get_socket_path("a", "/x") != get_socket_path("b", "/x")

    def test_env_socket_dir(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HOTSWAP_SOCKET_DIR", "/var/run/hs")
        assert get_socket_dir() == Path("/var/run/hs")

    def test_default_socket_dir_is_tempdir(self):
        assert get_socket_dir() == Path(tempfile.gettempdir())

    def test_explicit_dir_beats_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HOTSWAP_SOCKET_DIR", "/var/run/hs")
        assert get_socket_dir("/explicit") == Path("/explicit")


class TestInstanceId:
    @pytest.mark.parametrize("value", ["default", "blue-2", "app_v1.0"])
    def test_valid(self, value: str):
        assert validate_instance_id(value) == value

    @pytest.mark.parametrize("value", ["", ".", "..", "a/b", "a b", "ü"])
    def test_invalid(self, value: str):
        with pytest.raises(ValueError):
            validate_instance_id(value)
