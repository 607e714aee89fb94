# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""
Process entry hook.

Call :func:`run_launcher_if_needed` first thing in ``main``: when it
returns True this process has acted as the launcher and should exit;
when it returns False, start the application normally.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

from hotswap.config.models import HotswapConfig
from hotswap.supervisor.checker import CheckResult, check
from hotswap.supervisor.environment import is_supervised
from hotswap.supervisor.runner import Runner

logger = logging.getLogger(__name__)


async def run_launcher(
    result: CheckResult,
    app_data_dir: Path | str,
    current_exe_path: Path | str,
    args: Sequence[str] = (),
    config: HotswapConfig | None = None,
    instance_id: str | None = None,
) -> int | None:
    """Supervise the target named by a positive :func:`check` result."""
    if not result.should_be_launcher or result.state is None or result.target_binary_path is None:
        raise ValueError("check result does not call for launcher mode")

    config = config or HotswapConfig()
    runner = Runner(
        result.state,
        result.state_path,
        result.target_binary_path,
        instance_id or config.resolved_instance_id(),
        app_data_dir=Path(app_data_dir),
        entry_binary=Path(current_exe_path),
        settings=config.launcher,
        socket_dir=config.socket_dir,
    )
    return await runner.run(args)


def run_launcher_if_needed(
    app_data_dir: Path | str,
    current_version: str,
    current_exe_path: Path | str,
    args: Sequence[str] = (),
    config: HotswapConfig | None = None,
    instance_id: str | None = None,
) -> bool:
    """Become the launcher if the state file asks for another version.

    *instance_id* overrides the configured (and environment) instance id.

    Returns:
        True if this process ran as the launcher (the caller should exit),
        False for a normal start.

    Raises:
        StateCorruptedError: If the state file cannot be parsed.
        TransportError: If the IPC endpoint cannot be opened.
        RollbackUnavailableError: If no version could be started.
    """
    if is_supervised():
        logger.debug("Running under a launcher; skipping launcher check")
        return False

    result = check(app_data_dir, current_version, current_exe_path)
    if not result.should_be_launcher:
        return False

    asyncio.run(run_launcher(
        result, app_data_dir, current_exe_path, args, config, instance_id=instance_id,
    ))
    return True
