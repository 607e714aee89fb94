# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""Executable child programs for runner tests.

Each helper writes a small script into a directory and marks it
executable.  Shell children cover crash and hang cases; Python children
speak the launcher protocol through :class:`LauncherNotifier`.
"""

from __future__ import annotations

import stat
import sys
import textwrap
from pathlib import Path


def write_executable(directory: Path, name: str, content: str) -> Path:
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def shell_child(directory: Path, name: str, body: str) -> Path:
    """``#!/bin/sh`` script, e.g. ``exit 1`` or ``exec sleep 30``."""
    return write_executable(directory, name, "#!/bin/sh\n" + body + "\n")


def crashing_child(directory: Path, name: str = "crash.sh", code: int = 1) -> Path:
    return shell_child(directory, name, f"exit {code}")


def hanging_child(directory: Path, name: str = "hang.sh") -> Path:
    """Never confirms startup; exits on SIGTERM."""
    return shell_child(directory, name, "exec sleep 30")


_NOTIFYING_TEMPLATE = '''\
import asyncio
import os
import signal
import sys
from pathlib import Path

from hotswap.supervisor.environment import SupervisedEnvironment
from hotswap.supervisor.notifier import LauncherNotifier
from hotswap.supervisor.state import load_state, save_state

VERSION = {version!r}
LINGER = {linger!r}
EXIT_CODE = {exit_code!r}
HONOR_SHUTDOWN = {honor_shutdown!r}
MARKER = {marker!r}
NEXT_TARGET = {next_target!r}
STATE_PATH = {state_path!r}


async def main() -> None:
    if not HONOR_SHUTDOWN:
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    env = SupervisedEnvironment.from_env()
    stop = asyncio.Event()

    def on_shutdown(payload):
        if HONOR_SHUTDOWN:
            stop.set()

    notifier = LauncherNotifier.from_environment(env, on_shutdown=on_shutdown)
    await notifier.connect()
    await notifier.notify_startup_success(VERSION)

    if MARKER:
        Path(MARKER).write_text(str(os.getpid()), encoding="utf-8")

    if NEXT_TARGET:
        path = Path(STATE_PATH)
        state = load_state(path)
        state.active_version, state.active_binary_path = NEXT_TARGET
        save_state(state, path)

    try:
        await asyncio.wait_for(stop.wait(), timeout=LINGER)
    except asyncio.TimeoutError:
        pass
    await notifier.disconnect()


asyncio.run(main())
sys.exit(EXIT_CODE)
'''


def notifying_child(
    directory: Path,
    name: str,
    version: str,
    *,
    linger: float = 0.0,
    exit_code: int = 0,
    honor_shutdown: bool = True,
    marker: Path | None = None,
    next_target: tuple[str, str] | None = None,
    state_path: Path | None = None,
) -> Path:
    """Python child that confirms startup as *version*.

    Args:
        linger: Seconds to stay alive after confirming (ends early on
            shutdown when *honor_shutdown* is set).
        honor_shutdown: When False the child ignores the shutdown request
            and SIGTERM, so only a kill stops it.
        marker: File written with the child's PID once startup is confirmed.
        next_target: ``(version, binary_path)`` written to *state_path*
            before exiting, requesting a hot-swap.
    """
    source = _NOTIFYING_TEMPLATE.format(
        version=version,
        linger=float(linger),
        exit_code=exit_code,
        honor_shutdown=honor_shutdown,
        marker=str(marker) if marker else "",
        next_target=list(next_target) if next_target else None,
        state_path=str(state_path) if state_path else "",
    )
    return write_executable(directory, name, f"#!{sys.executable}\n" + textwrap.dedent(source))


_FAILING_TEMPLATE = '''\
import asyncio
import sys

from hotswap.supervisor.environment import SupervisedEnvironment
from hotswap.supervisor.notifier import LauncherNotifier


async def main() -> None:
    notifier = LauncherNotifier.from_environment(SupervisedEnvironment.from_env())
    await notifier.connect()
    await notifier.notify_startup_failed({version!r}, {error!r})
    await notifier.disconnect()


asyncio.run(main())
sys.exit({exit_code!r})
'''


def failing_child(
    directory: Path,
    name: str,
    version: str,
    error: str,
    exit_code: int = 1,
) -> Path:
    """Python child that reports ``startup_failed`` and exits."""
    source = _FAILING_TEMPLATE.format(version=version, error=error, exit_code=exit_code)
    return write_executable(directory, name, f"#!{sys.executable}\n" + source)
