# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""
Environment variables identifying a supervised child.

The launcher sets these when spawning a child; the child reads them to
find its way back to the launcher's IPC endpoint.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from hotswap.exceptions import ConfigError
from hotswap.paths import get_socket_path, validate_instance_id

ENV_LAUNCHER = "HOTSWAP_LAUNCHER"
ENV_INSTANCE_ID = "HOTSWAP_INSTANCE_ID"
ENV_LAUNCHER_PID = "HOTSWAP_LAUNCHER_PID"
ENV_LAUNCHER_EXE = "HOTSWAP_LAUNCHER_EXE"
ENV_SOCKET_PATH = "HOTSWAP_SOCKET_PATH"


def is_supervised(environ: Mapping[str, str] | None = None) -> bool:
    """True when this process was spawned by a launcher."""
    environ = os.environ if environ is None else environ
    return bool(environ.get(ENV_LAUNCHER))


@dataclass(frozen=True)
class SupervisedEnvironment:
    instance_id: str
    launcher_pid: int
    launcher_exe: str
    socket_path: Path

    def to_env(self) -> dict[str, str]:
        return {
            ENV_LAUNCHER: "1",
            ENV_INSTANCE_ID: self.instance_id,
            ENV_LAUNCHER_PID: str(self.launcher_pid),
            ENV_LAUNCHER_EXE: self.launcher_exe,
            ENV_SOCKET_PATH: str(self.socket_path),
        }

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SupervisedEnvironment | None:
        """Read the supervision variables.

        Returns None when the process is not supervised.

        Raises:
            ConfigError: If the marker is set but the other variables are
                missing or malformed.
        """
        environ = os.environ if environ is None else environ
        if not is_supervised(environ):
            return None

        instance_id = environ.get(ENV_INSTANCE_ID, "")
        try:
            validate_instance_id(instance_id)
        except ValueError as e:
            raise ConfigError(f"{ENV_INSTANCE_ID} is missing or invalid: {instance_id!r}") from e

        pid_text = environ.get(ENV_LAUNCHER_PID, "")
        try:
            launcher_pid = int(pid_text)
        except ValueError as e:
            raise ConfigError(f"{ENV_LAUNCHER_PID} is missing or not an integer: {pid_text!r}") from e
        if launcher_pid <= 0:
            raise ConfigError(f"{ENV_LAUNCHER_PID} must be positive: {launcher_pid}")

        launcher_exe = environ.get(ENV_LAUNCHER_EXE, "")
        if not launcher_exe:
            raise ConfigError(f"{ENV_LAUNCHER_EXE} is missing")

        socket_text = environ.get(ENV_SOCKET_PATH)
        socket_path = Path(socket_text) if socket_text else get_socket_path(instance_id)

        return cls(
            instance_id=instance_id,
            launcher_pid=launcher_pid,
            launcher_exe=launcher_exe,
            socket_path=socket_path,
        )
