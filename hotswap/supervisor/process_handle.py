"""
Owned handle for one spawned child version.
"""

# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from hotswap.exceptions import StartupError

logger = logging.getLogger(__name__)


class ChildState(Enum):
    """State of a child process."""
    PENDING = "pending"     # Handle created, not spawned yet
    RUNNING = "running"     # Process spawned and not yet reaped
    EXITED = "exited"       # Exit status collected


@dataclass
class ChildStats:
    """Per-spawn statistics."""
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    exit_code: int | None = None
    kill_count: int = 0


class ChildProcess:
    """
    Handle for a single spawn of a target binary.

    Single use: one handle per spawn.  A watcher task reaps the process
    exactly once and resolves an exit future; every ``wait()`` call awaits
    that same future (shielded), so the OS-level wait is never repeated
    and a cancelled waiter cannot disturb other waiters.
    """

    def __init__(
        self,
        binary_path: Path | str,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
    ):
        self.binary_path = Path(binary_path)
        self.args = list(args)
        self.env = dict(env) if env is not None else None

        self.process: asyncio.subprocess.Process | None = None
        self.stats = ChildStats()
        self._exited: asyncio.Future[int] | None = None
        self._watcher: asyncio.Task | None = None

    @property
    def state(self) -> ChildState:
        if self._exited is None:
            return ChildState.PENDING
        if self._exited.done():
            return ChildState.EXITED
        return ChildState.RUNNING

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    @property
    def returncode(self) -> int | None:
        return self.stats.exit_code

    def is_running(self) -> bool:
        return self.state is ChildState.RUNNING

    async def start(self) -> None:
        """Spawn the binary with inherited stdio.

        Raises:
            RuntimeError: If this handle was already started.
            StartupError: If the OS cannot execute the binary.
        """
        if self.process is not None:
            raise RuntimeError(f"Child {self.binary_path} already started (handles are single-use)")

        logger.debug("Command: %s %s", self.binary_path, " ".join(self.args))
        try:
            self.process = await asyncio.create_subprocess_exec(
                str(self.binary_path),
                *self.args,
                env=self.env,
            )
        except OSError as e:
            raise StartupError(f"Cannot execute {self.binary_path}: {e}") from e

        self.stats.started_at = datetime.now()
        self._exited = asyncio.get_running_loop().create_future()
        self._watcher = asyncio.create_task(self._watch(self.process, self._exited))
        logger.info("Child started: %s (PID %s)", self.binary_path, self.process.pid)

    async def _watch(
        self,
        process: asyncio.subprocess.Process,
        exited: asyncio.Future[int],
    ) -> None:
        code = await process.wait()
        self.stats.exit_code = code
        self.stats.stopped_at = datetime.now()
        logger.info("Child exited: PID %s (code=%s)", process.pid, code)
        if not exited.done():
            exited.set_result(code)

    async def wait(self) -> int:
        """Wait (unbounded) for the child to exit and return its exit code."""
        if self._exited is None:
            raise RuntimeError("Child not started")
        return await asyncio.shield(self._exited)

    async def wait_for_exit(self, timeout: float) -> int | None:
        """Wait up to *timeout* seconds; return the exit code or None if still running."""
        try:
            async with asyncio.timeout(timeout):
                return await self.wait()
        except TimeoutError:
            return None

    def terminate(self) -> None:
        """Send SIGTERM if the child is still running."""
        if self.process is None or not self.is_running():
            return
        try:
            self.process.terminate()
        except ProcessLookupError:
            logger.debug("terminate(): PID %s already gone", self.process.pid)

    async def kill(self) -> bool:
        """Force kill with SIGKILL and wait for the exit to be reaped.

        Returns:
            True if a kill signal was sent, False if the child had already exited.
        """
        if self.process is None or not self.is_running():
            return False

        logger.warning("Killing child: %s (PID %s)", self.binary_path, self.process.pid)
        try:
            self.process.kill()
        except ProcessLookupError:
            logger.debug("kill(): PID %s already gone", self.process.pid)
        self.stats.kill_count += 1
        await self.wait()
        return True
