# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""
Supervised-process side of the launcher protocol.

A program started by the launcher creates a :class:`LauncherNotifier`
from its environment, connects, and reports the outcome of its startup::

    env = SupervisedEnvironment.from_env()
    if env is not None:
        notifier = LauncherNotifier(env.socket_path, on_shutdown=stop_event_setter)
        await notifier.connect()
        await notifier.notify_startup_success(__version__)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from hotswap.config import LauncherSettings, load_config
from hotswap.exceptions import NotConnectedError, ProtocolError
from hotswap.supervisor.environment import SupervisedEnvironment
from hotswap.supervisor.ipc import DEFAULT_CONNECT_TIMEOUT, IPCClient, invoke_callback
from hotswap.supervisor.messages import (
    Message,
    MessageType,
    ShutdownPayload,
    StartupFailedPayload,
    StartupSuccessPayload,
)

logger = logging.getLogger(__name__)

ShutdownCallback = Callable[[ShutdownPayload], Any]


class LauncherNotifier:
    """
    IPC client that reports startup to the launcher and follows its requests.

    Replies to ``heartbeat`` automatically, acknowledges ``shutdown`` and
    then calls *on_shutdown* with the request payload.
    """

    def __init__(
        self,
        socket_path: Path,
        on_shutdown: ShutdownCallback | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        self.socket_path = Path(socket_path)
        self.on_shutdown = on_shutdown
        self.connect_timeout = connect_timeout
        self.client = IPCClient(
            self.socket_path,
            on_message=self._handle_message,
            on_disconnect=self._handle_disconnect,
        )
        self._heartbeat_acked = asyncio.Event()

    @classmethod
    def from_environment(
        cls,
        env: SupervisedEnvironment,
        on_shutdown: ShutdownCallback | None = None,
        settings: LauncherSettings | None = None,
    ) -> LauncherNotifier:
        """Build a notifier for *env*.

        The connect timeout comes from *settings*, or from the launcher
        section of ``config.json`` when none are given.
        """
        if settings is None:
            settings = load_config().launcher
        return cls(
            env.socket_path,
            on_shutdown=on_shutdown,
            connect_timeout=settings.connect_timeout_seconds,
        )

    @property
    def is_connected(self) -> bool:
        return self.client.is_connected

    async def connect(self, timeout: float | None = None) -> None:
        if self.client.is_connected:
            return
        await self.client.connect(timeout=self.connect_timeout if timeout is None else timeout)
        logger.info("Connected to launcher at %s", self.socket_path)

    async def disconnect(self) -> None:
        await self.client.disconnect()

    async def _send(self, message: Message) -> None:
        if not self.client.is_connected:
            raise NotConnectedError("Not connected to launcher")
        await self.client.send(message)

    async def notify_startup_success(self, version: str, pid: int | None = None) -> None:
        """Complete the startup handshake."""
        await self._send(Message.new(
            MessageType.STARTUP_SUCCESS,
            StartupSuccessPayload(version=version, pid=pid if pid is not None else os.getpid()),
        ))

    async def notify_startup_failed(self, version: str, error: str, pid: int | None = None) -> None:
        """Report a startup failure (the launcher still waits for the exit)."""
        await self._send(Message.new(
            MessageType.STARTUP_FAILED,
            StartupFailedPayload(
                version=version,
                error=error,
                pid=pid if pid is not None else os.getpid(),
            ),
        ))

    async def send_shutdown_ack(self) -> None:
        await self._send(Message.new(MessageType.SHUTDOWN_ACK))

    async def ping(self, timeout: float = 5.0) -> bool:
        """Heartbeat round trip; True if the launcher answered in time."""
        self._heartbeat_acked.clear()
        await self._send(Message.new(MessageType.HEARTBEAT))
        try:
            async with asyncio.timeout(timeout):
                await self._heartbeat_acked.wait()
        except TimeoutError:
            logger.warning("Launcher heartbeat timeout after %.1fs", timeout)
            return False
        return True

    async def _handle_message(self, msg: Message) -> None:
        if msg.type is MessageType.HEARTBEAT:
            await self.client.send(Message.new(MessageType.HEARTBEAT_ACK))

        elif msg.type is MessageType.HEARTBEAT_ACK:
            self._heartbeat_acked.set()

        elif msg.type is MessageType.SHUTDOWN:
            try:
                payload = msg.parse_payload(ShutdownPayload)
            except ProtocolError as e:
                logger.warning("Malformed shutdown request, using defaults: %s", e)
                payload = ShutdownPayload(reason="unknown")
            logger.info(
                "Launcher requested shutdown: %s (grace %ss)",
                payload.reason, payload.grace_period_seconds,
            )
            await self.send_shutdown_ack()
            await invoke_callback(self.on_shutdown, payload)

        else:
            logger.debug("Ignoring %s from launcher", msg.type.value)

    def _handle_disconnect(self, error: Exception | None) -> None:
        logger.warning("Lost connection to launcher: %s", error or "closed")
