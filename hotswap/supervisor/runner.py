# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""
Launcher supervisor loop.

The Runner keeps the launcher's OS process alive while it starts the
active version as a child, waits for the child to confirm startup over
IPC, and then supervises it.  Failed startups are retried up to
``max_retries`` and then rolled back to the backup version.  When the
child exits, the state file is re-read: if the child asked for another
version, that version is started without the launcher itself exiting.

Phases::

    IDLE → SPAWNING → AWAITING_HANDSHAKE → SUPERVISING → CHILD_EXITED
         → RETRYING | ROLLING_BACK | RELOADING | STOPPED

Only the control loop mutates ``self.state``; IPC handlers hand startup
reports over through ``self._events``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from hotswap.config.models import LauncherSettings
from hotswap.exceptions import (
    HandshakeCrashError,
    HandshakeTimeoutError,
    LauncherError,
    ProtocolError,
    RollbackUnavailableError,
    StartupError,
    StateError,
    TransportError,
)
from hotswap.logging_config import bind_instance
from hotswap.paths import get_socket_path
from hotswap.supervisor.checker import resolve_binary_path
from hotswap.supervisor.environment import SupervisedEnvironment
from hotswap.supervisor.ipc import Connection, IPCServer
from hotswap.supervisor.messages import (
    Message,
    MessageType,
    ShutdownPayload,
    StartupFailedPayload,
    StartupSuccessPayload,
)
from hotswap.supervisor.process_handle import ChildProcess
from hotswap.supervisor.state import LauncherState, load_state, save_state

logger = logging.getLogger(__name__)

DEFAULT_STOP_REASON = "launcher_shutdown"
EXIT_SETTLE_SECONDS = 0.2


class RunnerPhase(Enum):
    IDLE = "idle"
    SPAWNING = "spawning"
    AWAITING_HANDSHAKE = "awaiting_handshake"
    SUPERVISING = "supervising"
    CHILD_EXITED = "child_exited"
    RETRYING = "retrying"
    ROLLING_BACK = "rolling_back"
    RELOADING = "reloading"
    STOPPED = "stopped"


class HandshakeOutcome(Enum):
    SUCCESS = "success"
    CRASHED = "crashed"        # child exited before confirming
    TIMED_OUT = "timed_out"    # no confirmation within startup_timeout
    CANCELLED = "cancelled"    # stop requested while waiting


@dataclass
class HandshakeResult:
    outcome: HandshakeOutcome
    reported_version: str = ""
    error: str = ""            # last startup_failed report, if any


@dataclass
class _StartupReport:
    """Startup message handed from the IPC handler to the control loop."""
    type: MessageType
    pid: int
    version: str = ""
    error: str = ""


def _from_other_child(report: _StartupReport, child: ChildProcess) -> bool:
    # pid 0 means the sender did not say
    return report.pid != 0 and report.pid != child.pid


class Runner:
    """
    Supervisor for one launcher instance.

    Args:
        state: State loaded by the checker.
        state_path: Location of ``launcher-state.json``.
        target_path: Resolved path of the binary to start.
        instance_id: Names the IPC endpoint of this instance.
        app_data_dir: Base for relative binary paths (default: state file dir).
        entry_binary: The originally deployed binary, started when the
            state asks for it (``prefer_entry_binary`` or no active target).
        settings: Grace window, backoff and timeout tuning.
        socket_dir: Directory holding the IPC socket.
        handle_signals: Translate SIGINT/SIGTERM into a graceful stop.
        launcher_exe: Reported to the child; defaults to this program.
    """

    def __init__(
        self,
        state: LauncherState,
        state_path: Path,
        target_path: Path,
        instance_id: str = "default",
        *,
        app_data_dir: Path | None = None,
        entry_binary: Path | None = None,
        settings: LauncherSettings | None = None,
        socket_dir: Path | str | None = None,
        handle_signals: bool = True,
        launcher_exe: str | None = None,
    ):
        self.state = state
        self.state_path = Path(state_path)
        self.target_path = Path(target_path)
        self.target_version = state.active_version
        self.instance_id = instance_id
        self.app_data_dir = Path(app_data_dir) if app_data_dir else self.state_path.parent
        self.entry_binary = Path(entry_binary) if entry_binary else None
        self.settings = settings or LauncherSettings()
        self.socket_path = get_socket_path(instance_id, socket_dir)
        self.handle_signals = handle_signals
        self.launcher_exe = launcher_exe or (
            os.path.abspath(sys.argv[0]) if sys.argv and sys.argv[0] else sys.executable
        )

        self.phase = RunnerPhase.IDLE
        self.child: ChildProcess | None = None
        self.server: IPCServer | None = None

        self._stop_event = asyncio.Event()
        self._stop_reason = DEFAULT_STOP_REASON
        self._events: asyncio.Queue[_StartupReport] = asyncio.Queue()
        self._rolled_back = False
        self._installed_signals: list[signal.Signals] = []

    # ── Public API ─────────────────────────────────────────────

    def request_stop(self, reason: str = DEFAULT_STOP_REASON) -> None:
        """Ask the loop to stop the child gracefully and return."""
        if not self._stop_event.is_set():
            logger.info("Stop requested: %s", reason)
            self._stop_reason = reason
            self._stop_event.set()

    async def run(self, args: Sequence[str] = ()) -> int | None:
        """Supervise until the child exits with no pending version change.

        Args:
            args: Command line arguments passed to every spawned child.

        Returns:
            Exit code of the last child, or None if it was stopped before
            producing one.

        Raises:
            TransportError: If the IPC endpoint cannot be opened.
            RollbackUnavailableError: Retry budget exhausted with no usable backup.
        """
        bind_instance(self.instance_id)
        self.server = IPCServer(
            self.socket_path,
            on_message=self._handle_message,
            on_connect=self._on_connect,
            on_disconnect=self._on_disconnect,
        )
        await self.server.start()
        self._install_signal_handlers()
        logger.info("Launcher ready; target %s (%s)", self.target_version, self.target_path)

        try:
            return await self._run_loop(list(args))
        finally:
            self._remove_signal_handlers()
            if self.child is not None and self.child.is_running():
                logger.warning("Launcher exiting with child still running (PID %s)", self.child.pid)
                await self.child.kill()
            await self.server.stop()
            self._set_phase(RunnerPhase.STOPPED)
            logger.info("Launcher exited")

    # ── Control loop ───────────────────────────────────────────

    async def _run_loop(self, args: list[str]) -> int | None:
        while True:
            if self._stop_event.is_set():
                return await self._stop_child(self.child)

            baseline = self.state.target_key()
            self._set_phase(RunnerPhase.SPAWNING)
            child = self._new_child(args)
            self._drain_events()
            try:
                await child.start()
            except StartupError as e:
                logger.error("Failed to start %s: %s", self.target_path, e)
                await self._record_failure(e)
                continue
            self.child = child

            self._set_phase(RunnerPhase.AWAITING_HANDSHAKE)
            timeout = self.state.startup_timeout
            result = await self.await_handshake(child, timeout)

            if result.outcome is HandshakeOutcome.CANCELLED:
                return await self._stop_child(child)

            if result.outcome is HandshakeOutcome.TIMED_OUT:
                logger.warning("No startup confirmation from PID %s within %ss", child.pid, timeout)
                await child.kill()
                await self._record_failure(HandshakeTimeoutError(
                    f"Version {self._target_label()} never started: "
                    f"no startup confirmation within {timeout}s"
                ))
                continue

            if result.outcome is HandshakeOutcome.CRASHED:
                detail = f" (reported: {result.error})" if result.error else ""
                await self._record_failure(HandshakeCrashError(
                    f"Version {self._target_label()} crashed before confirming startup "
                    f"(exit code {child.returncode}){detail}"
                ))
                continue

            self._on_handshake_success(child, result)

            self._set_phase(RunnerPhase.SUPERVISING)
            exit_code, stopped = await self._supervise(child)
            if stopped:
                return await self._stop_child(child)

            self._set_phase(RunnerPhase.CHILD_EXITED)
            logger.info("Child exited (code=%s)", exit_code)

            if self._reload_state(baseline):
                continue

            logger.info("No pending version change; launcher exiting")
            return exit_code

    def _new_child(self, args: list[str]) -> ChildProcess:
        env = os.environ.copy()
        env.update(SupervisedEnvironment(
            instance_id=self.instance_id,
            launcher_pid=os.getpid(),
            launcher_exe=self.launcher_exe,
            socket_path=self.socket_path,
        ).to_env())
        return ChildProcess(self.target_path, args, env)

    async def await_handshake(self, child: ChildProcess, timeout: float) -> HandshakeResult:
        """Race startup reports, child exit, stop request and one deadline.

        ``startup_failed`` does not end the wait; the child's exit does.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        exit_task = asyncio.ensure_future(child.wait())
        stop_task = asyncio.ensure_future(self._stop_event.wait())
        event_task: asyncio.Future | None = None
        reported_error = ""

        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return HandshakeResult(HandshakeOutcome.TIMED_OUT, error=reported_error)

                event_task = asyncio.ensure_future(self._events.get())
                done, _ = await asyncio.wait(
                    {event_task, exit_task, stop_task},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if event_task in done:
                    report = event_task.result()
                    if _from_other_child(report, child):
                        logger.debug("Ignoring %s from PID %s", report.type.value, report.pid)
                    elif report.type is MessageType.STARTUP_SUCCESS:
                        return HandshakeResult(HandshakeOutcome.SUCCESS, reported_version=report.version)
                    else:
                        reported_error = report.error
                else:
                    event_task.cancel()

                if stop_task in done:
                    return HandshakeResult(HandshakeOutcome.CANCELLED, error=reported_error)
                if exit_task in done:
                    # Frames written just before exit may still be unread
                    version, reported_error = await self._collect_late_reports(child, reported_error)
                    if version is not None:
                        return HandshakeResult(HandshakeOutcome.SUCCESS, reported_version=version)
                    return HandshakeResult(HandshakeOutcome.CRASHED, error=reported_error)
                if not done:
                    return HandshakeResult(HandshakeOutcome.TIMED_OUT, error=reported_error)
        finally:
            for task in (event_task, exit_task, stop_task):
                if task is not None and not task.done():
                    task.cancel()

    async def _collect_late_reports(self, child: ChildProcess, error: str) -> tuple[str | None, str]:
        """Wait EXIT_SETTLE_SECONDS for startup reports still in flight.

        Returns:
            (reported version or None if no success arrived, last failure text)
        """
        try:
            async with asyncio.timeout(EXIT_SETTLE_SECONDS):
                while True:
                    report = await self._events.get()
                    if _from_other_child(report, child):
                        continue
                    if report.type is MessageType.STARTUP_SUCCESS:
                        return report.version, error
                    error = report.error
        except TimeoutError:
            pass
        return None, error

    async def _supervise(self, child: ChildProcess) -> tuple[int | None, bool]:
        """Wait for the child to exit (unbounded) or for a stop request.

        Returns:
            (exit code, stopped) where stopped means a stop was requested first.
        """
        exit_task = asyncio.ensure_future(child.wait())
        stop_task = asyncio.ensure_future(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {exit_task, stop_task}, return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (exit_task, stop_task):
                if not task.done():
                    task.cancel()

        if exit_task in done:
            return exit_task.result(), False
        return None, True

    async def _stop_child(self, child: ChildProcess | None) -> int | None:
        """Ask the child to shut down, then kill it if the grace window passes."""
        self._set_phase(RunnerPhase.STOPPED)
        if child is None:
            return None
        if not child.is_running():
            return child.returncode

        grace = self.settings.shutdown_grace_seconds
        message = Message.new(
            MessageType.SHUTDOWN,
            ShutdownPayload(reason=self._stop_reason, grace_period_seconds=grace),
        )
        delivered = 0
        try:
            delivered = await self.server.broadcast(message)
        except TransportError as e:
            logger.warning("Shutdown broadcast incomplete: %s", e)

        if delivered == 0:
            # Child not connected yet; ask via signal instead
            logger.info("No IPC peer to notify; sending SIGTERM to PID %s", child.pid)
            child.terminate()

        code = await child.wait_for_exit(self.settings.stop_timeout_seconds)
        if code is not None:
            logger.info("Child exited gracefully (code=%s)", code)
            return code

        logger.warning(
            "Child PID %s did not exit within %.1fs, killing",
            child.pid, self.settings.stop_timeout_seconds,
        )
        await child.kill()
        return child.returncode

    # ── Failure handling ───────────────────────────────────────

    async def _record_failure(self, error: LauncherError) -> None:
        """Count a failed startup; retry after a backoff or roll back.

        Raises:
            RollbackUnavailableError: Budget exhausted and rollback impossible.
        """
        self.state.failure_count += 1
        self._persist()
        logger.warning(
            "Startup failure %d/%d: %s",
            self.state.failure_count, self.state.max_retries, error,
        )

        if self.state.failure_count >= self.state.max_retries:
            self._rollback(error)
            return

        self._set_phase(RunnerPhase.RETRYING)
        await self._backoff()

    def _rollback(self, cause: LauncherError) -> None:
        """Swap active and backup versions and persist.

        Raises:
            RollbackUnavailableError: No backup configured, backup binary
                missing, or the backup already failed in this run.
        """
        self._set_phase(RunnerPhase.ROLLING_BACK)
        summary = (
            f"Giving up on version {self._target_label()} after "
            f"{self.state.failure_count} consecutive failures "
            f"({_failure_summary(cause)})"
        )

        if not self.state.backup_binary_path:
            raise RollbackUnavailableError(
                f"{summary}; no rollback configured", last_failure=cause,
            ) from cause

        backup_path = resolve_binary_path(self.state.backup_binary_path, self.app_data_dir)
        if not backup_path.exists():
            raise RollbackUnavailableError(
                f"{summary}; backup binary missing: {backup_path}", last_failure=cause,
            ) from cause

        if self._rolled_back:
            raise RollbackUnavailableError(
                f"{summary}; already rolled back once without a successful start",
                last_failure=cause,
            ) from cause

        logger.warning(
            "Rolling back from %s to backup version %s",
            self.state.active_version, self.state.backup_version,
        )
        s = self.state
        s.active_version, s.backup_version = s.backup_version, s.active_version
        s.active_binary_path, s.backup_binary_path = s.backup_binary_path, s.active_binary_path
        s.failure_count = 0
        s.last_update_time = int(time.time())
        self._persist()

        self.target_path = backup_path
        self.target_version = s.active_version
        self._rolled_back = True
        logger.info("Rolled back to version %s (%s)", self.target_version, self.target_path)

    async def _backoff(self) -> None:
        """Pause before a retry, returning early on a stop request."""
        try:
            async with asyncio.timeout(self.settings.retry_backoff_seconds):
                await self._stop_event.wait()
        except TimeoutError:
            pass

    def _on_handshake_success(self, child: ChildProcess, result: HandshakeResult) -> None:
        logger.info("Startup confirmed by PID %s (version %s)", child.pid, result.reported_version)
        if result.reported_version and self.target_version and result.reported_version != self.target_version:
            logger.warning(
                "Child reports version %s but %s was requested",
                result.reported_version, self.target_version,
            )
        self._rolled_back = False
        self.state.failure_count = 0
        self.state.last_update_time = int(time.time())
        self._persist_unless_retargeted()

    # ── State reload / hot-swap ────────────────────────────────

    def _reload_state(self, baseline: tuple[str, str, bool]) -> bool:
        """Re-read the state file; adopt a newly requested target.

        Returns:
            True if a different target must be started.
        """
        self._set_phase(RunnerPhase.RELOADING)
        try:
            new_state = load_state(self.state_path)
        except StateError as e:
            logger.warning("Cannot reload state, treating as unchanged: %s", e)
            return False

        if new_state.target_key() == baseline:
            return False

        if new_state.prefer_entry_binary or not new_state.active_version or not new_state.active_binary_path:
            if self.entry_binary is None:
                logger.warning("State asks for the entry binary but none is known; exiting")
                return False
            target = self.entry_binary
        else:
            target = resolve_binary_path(new_state.active_binary_path, self.app_data_dir)

        logger.info(
            "State changed: %s -> %s (%s)",
            self.state.active_version or "-", new_state.active_version or "entry", target,
        )
        self.state = new_state
        self.target_path = target
        self.target_version = new_state.active_version if target != self.entry_binary else ""
        self._rolled_back = False
        return True

    def _persist(self) -> None:
        try:
            save_state(self.state, self.state_path)
        except OSError:
            logger.exception("Failed to persist launcher state to %s", self.state_path)

    def _persist_unless_retargeted(self) -> None:
        """Persist bookkeeping unless the file already names another target.

        A freshly started child may rewrite the state file right after
        confirming startup; its request must not be overwritten.
        """
        try:
            on_disk = load_state(self.state_path)
        except StateError:
            on_disk = None
        if on_disk is not None and on_disk.target_key() != self.state.target_key():
            logger.debug("State file retargeted by child; keeping its version")
            return
        self._persist()

    # ── IPC callbacks ──────────────────────────────────────────

    async def _handle_message(self, conn: Connection, msg: Message) -> None:
        """Handle one message from a supervised child (runs in the IPC task)."""
        try:
            if msg.type is MessageType.STARTUP_SUCCESS:
                payload = msg.parse_payload(StartupSuccessPayload)
                logger.info("Child reports startup success: version %s, PID %s", payload.version, payload.pid)
                self._events.put_nowait(_StartupReport(msg.type, payload.pid, version=payload.version))

            elif msg.type is MessageType.STARTUP_FAILED:
                payload = msg.parse_payload(StartupFailedPayload)
                logger.warning("Child reports startup failure: %s", payload.error)
                self._events.put_nowait(_StartupReport(msg.type, payload.pid, error=payload.error))

            elif msg.type is MessageType.HEARTBEAT:
                await conn.send(Message.new(MessageType.HEARTBEAT_ACK))

            elif msg.type is MessageType.SHUTDOWN_ACK:
                logger.info("Child acknowledged shutdown")

            elif msg.type is MessageType.UPDATE_REQUEST:
                logger.info("Ignoring deprecated update_request; updates go through the state file")

            elif msg.type is MessageType.HEARTBEAT_ACK:
                logger.debug("Heartbeat ack from %s", conn.peer)

            else:
                logger.warning("Unexpected message from child: %s", msg.type.value)
        except ProtocolError as e:
            logger.warning("Malformed %s message: %s", msg.type.value, e)

    def _on_connect(self, conn: Connection) -> None:
        logger.info("Child connected to launcher IPC")

    def _on_disconnect(self, conn: Connection, error: Exception | None) -> None:
        if error is not None:
            logger.info("Child disconnected: %s", error)
        else:
            logger.info("Child disconnected")

    # ── Helpers ────────────────────────────────────────────────

    def _set_phase(self, phase: RunnerPhase) -> None:
        if phase is not self.phase:
            logger.debug("Runner phase: %s -> %s", self.phase.value, phase.value)
            self.phase = phase

    def _drain_events(self) -> None:
        while not self._events.empty():
            self._events.get_nowait()

    def _target_label(self) -> str:
        return self.target_version or str(self.target_path)

    def _install_signal_handlers(self) -> None:
        if not self.handle_signals:
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop, f"signal_{sig.name.lower()}")
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("Signal handler for %s unavailable", sig.name)
                continue
            self._installed_signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        if not self._installed_signals:
            return
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            loop.remove_signal_handler(sig)
        self._installed_signals.clear()


def _failure_summary(error: LauncherError) -> str:
    if isinstance(error, HandshakeTimeoutError):
        return "it never confirmed startup"
    if isinstance(error, HandshakeCrashError):
        return "it crashed repeatedly during startup"
    if isinstance(error, StartupError):
        return "it could not be executed"
    return str(error)
