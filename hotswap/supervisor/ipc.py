"""
IPC communication layer using Unix Domain Sockets and JSON Lines framing.
"""

# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from hotswap.exceptions import (
    ConnectionClosedError,
    IPCConnectionError,
    NotConnectedError,
    ProtocolError,
    TransportError,
)
from hotswap.supervisor.messages import Message

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────
IPC_BUFFER_LIMIT = 16 * 1024 * 1024  # 16MB; asyncio defaults to 64KB
IPC_CHUNK_MAX = 1 * 1024 * 1024      # 1MB max chunk per socket write
DEFAULT_CONNECT_TIMEOUT = 5.0

MessageHandler = Callable[["Connection", Message], Awaitable[None]]
ConnectHandler = Callable[["Connection"], Any]
DisconnectHandler = Callable[["Connection", Exception | None], Any]


async def invoke_callback(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call a sync or async callback."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class _Sentinel:
    """Inbox termination marker."""

    __slots__ = ()


_SENTINEL = _Sentinel()


# ── Connection ─────────────────────────────────────────────────

class Connection:
    """
    One framed IPC connection.

    Owns the underlying stream pair exclusively and exposes whole-message
    send/receive.  Concurrent ``send()`` calls are serialized so frames
    never interleave.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ):
        self.reader = reader
        self.writer = writer
        self.peer = writer.get_extra_info("peername") or "unix-peer"
        self._send_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self.writer.is_closing()

    async def _chunked_write(self, data: bytes) -> None:
        """Write *data*, splitting into IPC_CHUNK_MAX-sized pieces.

        Draining between pieces keeps a large frame from overflowing the
        OS send buffer.
        """
        offset = 0
        while offset < len(data):
            end = min(offset + IPC_CHUNK_MAX, len(data))
            self.writer.write(data[offset:end])
            await self.writer.drain()
            offset = end

    async def send(self, message: Message) -> None:
        """Send one message.

        Raises:
            ConnectionClosedError: If the connection is already closed.
            TransportError: On socket write failure.
        """
        if self.closed:
            raise ConnectionClosedError("IPC connection is closed")

        data = (message.to_json() + "\n").encode("utf-8")
        async with self._send_lock:
            try:
                await self._chunked_write(data)
            except (ConnectionError, OSError) as e:
                raise TransportError(f"IPC send failed: {e}") from e
        logger.debug("IPC message sent: %s", message.type.value)

    async def receive(self) -> Message:
        """Block until one message arrives.

        Raises:
            ConnectionClosedError: Peer closed the connection.
            ProtocolError: The frame could not be decoded (the stream stays usable).
            TransportError: On socket read failure.
        """
        while True:
            try:
                line_bytes = await self.reader.readline()
            except ValueError as e:
                # Frame exceeded IPC_BUFFER_LIMIT; asyncio discards it.
                raise ProtocolError(f"IPC frame too large: {e}") from e
            except (ConnectionError, OSError) as e:
                raise TransportError(f"IPC receive failed: {e}") from e

            if not line_bytes:
                raise ConnectionClosedError("IPC connection closed by peer")

            line = line_bytes.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            return Message.from_json(line)

    async def close(self) -> None:
        """Close the connection (idempotent)."""
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            logger.debug("IPC close error for %s", self.peer, exc_info=True)


# ── IPC Server (Launcher) ──────────────────────────────────────

class IPCServer:
    """
    Unix Domain Socket server run by the launcher.

    Accepts any number of connections over its lifetime (a restarted or
    reconnecting child simply connects again).  Each connection gets its
    own receive loop that dispatches messages to one shared handler.
    A failure on one connection never affects the others.
    """

    def __init__(
        self,
        socket_path: Path,
        on_message: MessageHandler | None = None,
        on_connect: ConnectHandler | None = None,
        on_disconnect: DisconnectHandler | None = None,
    ):
        self.socket_path = Path(socket_path)
        self.on_message = on_message
        self.on_connect = on_connect
        self.on_disconnect = on_disconnect
        self.server: asyncio.Server | None = None
        self._connections: set[Connection] = set()
        self._handler_tasks: set[asyncio.Task] = set()
        self._stopped = False

    @property
    def connections(self) -> list[Connection]:
        """Snapshot of currently open connections."""
        return list(self._connections)

    async def start(self) -> None:
        """Start listening.

        Raises:
            TransportError: If the socket cannot be bound (fatal for the launcher).
        """
        if self.server is not None:
            raise RuntimeError("IPC server already started")
        if not hasattr(asyncio, "start_unix_server"):
            raise TransportError("Unix domain sockets are not available on this platform")

        try:
            self.socket_path.parent.mkdir(parents=True, exist_ok=True)
            # Remove stale socket file left by a previous launcher
            if self.socket_path.exists() or self.socket_path.is_symlink():
                self.socket_path.unlink()

            self.server = await asyncio.start_unix_server(
                self._handle_connection,
                path=str(self.socket_path),
                limit=IPC_BUFFER_LIMIT,
            )
        except OSError as e:
            raise TransportError(f"Cannot listen on {self.socket_path}: {e}") from e
        logger.info("IPC server started on %s", self.socket_path)

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Receive loop for a single client connection."""
        conn = Connection(reader, writer)
        if self._stopped:
            await conn.close()
            return

        task = asyncio.current_task()
        self._connections.add(conn)
        if task is not None:
            self._handler_tasks.add(task)
        logger.debug("IPC connection from %s", conn.peer)

        error: Exception | None = None
        try:
            try:
                await invoke_callback(self.on_connect, conn)
            except Exception:
                logger.exception("IPC on_connect callback failed")

            while True:
                try:
                    message = await conn.receive()
                except ProtocolError as e:
                    logger.warning("Dropping malformed IPC frame: %s", e)
                    continue

                logger.debug("IPC message received: %s", message.type.value)
                try:
                    await invoke_callback(self.on_message, conn, message)
                except Exception:
                    logger.exception("Error handling IPC message %s", message.type.value)

        except ConnectionClosedError:
            pass
        except TransportError as e:
            logger.warning("IPC connection error: %s", e)
            error = e
        finally:
            self._connections.discard(conn)
            if task is not None:
                self._handler_tasks.discard(task)
            await conn.close()
            try:
                await invoke_callback(self.on_disconnect, conn, error)
            except Exception:
                logger.exception("IPC on_disconnect callback failed")
            logger.debug("IPC connection closed: %s", conn.peer)

    async def broadcast(self, message: Message) -> int:
        """Send *message* to every open connection (best effort).

        Every connection is attempted even if some fail.

        Returns:
            Number of peers the message was written to.

        Raises:
            TransportError: After trying all peers, chained to the last failure.
        """
        sent = 0
        last_error: TransportError | None = None
        for conn in self.connections:
            try:
                await conn.send(message)
                sent += 1
            except TransportError as e:
                logger.warning("Broadcast to %s failed: %s", conn.peer, e)
                last_error = e

        if last_error is not None:
            raise TransportError(
                f"Broadcast of {message.type.value} failed for at least one peer "
                f"({sent} delivered)"
            ) from last_error
        return sent

    async def stop(self) -> None:
        """Stop the server, closing the listener and all connections (idempotent)."""
        if self._stopped:
            return
        self._stopped = True

        if self.server is not None:
            self.server.close()

        for conn in self.connections:
            await conn.close()

        tasks = list(self._handler_tasks)
        if tasks:
            await asyncio.wait(tasks, timeout=5.0)

        if self.server is not None:
            try:
                async with asyncio.timeout(5.0):
                    await self.server.wait_closed()
            except TimeoutError:
                logger.warning("IPC server did not close within 5s: %s", self.socket_path)
            logger.info("IPC server stopped")

        # Clean up socket file
        if self.socket_path.exists():
            try:
                self.socket_path.unlink()
            except OSError:
                logger.debug("Failed to remove socket %s", self.socket_path, exc_info=True)


# ── IPC Client (Supervised process) ────────────────────────────

class IPCClient:
    """
    Unix Domain Socket client used by the supervised process.

    Maintains exactly one connection.  Incoming messages go to
    ``on_message`` when set, otherwise they are queued for ``receive()``.
    Reconnection policy is left to the caller.
    """

    def __init__(
        self,
        socket_path: Path,
        on_message: Callable[[Message], Any] | None = None,
        on_disconnect: Callable[[Exception | None], Any] | None = None,
    ):
        self.socket_path = Path(socket_path)
        self.on_message = on_message
        self.on_disconnect = on_disconnect
        self.connection: Connection | None = None
        self._receive_task: asyncio.Task | None = None
        self._inbox: asyncio.Queue[Message | _Sentinel] = asyncio.Queue()
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and not self.connection.closed

    async def connect(self, timeout: float = DEFAULT_CONNECT_TIMEOUT) -> None:
        """Connect to the Unix socket, failing fast if nobody is listening.

        Raises:
            IPCConnectionError: Already connected, socket missing/refused, or timeout.
        """
        async with self._lock:
            if self.connection is not None:
                raise IPCConnectionError("Already connected to IPC server")

            try:
                async with asyncio.timeout(timeout):
                    reader, writer = await asyncio.open_unix_connection(
                        path=str(self.socket_path),
                        limit=IPC_BUFFER_LIMIT,
                    )
            except TimeoutError as e:
                raise IPCConnectionError(
                    f"Timed out connecting to {self.socket_path} after {timeout}s"
                ) from e
            except OSError as e:
                raise IPCConnectionError(
                    f"Cannot connect to {self.socket_path}: {e}"
                ) from e

            conn = Connection(reader, writer)
            self.connection = conn
            self._inbox = asyncio.Queue()
            self._receive_task = asyncio.create_task(self._receive_loop(conn))
            logger.debug("IPC client connected to %s", self.socket_path)

    async def _receive_loop(self, conn: Connection) -> None:
        error: Exception | None = None
        try:
            while True:
                try:
                    message = await conn.receive()
                except ProtocolError as e:
                    logger.warning("Dropping malformed IPC frame: %s", e)
                    continue

                if self.on_message is None:
                    self._inbox.put_nowait(message)
                    continue
                try:
                    await invoke_callback(self.on_message, message)
                except Exception:
                    logger.exception("Error handling IPC message %s", message.type.value)

        except ConnectionClosedError:
            pass
        except TransportError as e:
            logger.warning("IPC client connection error: %s", e)
            error = e
        finally:
            self._inbox.put_nowait(_SENTINEL)

        # Reached only when the peer went away, not on local disconnect()
        if self.connection is conn:
            self.connection = None
            self._receive_task = None
            await conn.close()
            logger.info("IPC server closed the connection: %s", self.socket_path)
            try:
                await invoke_callback(self.on_disconnect, error)
            except Exception:
                logger.exception("IPC on_disconnect callback failed")

    async def send(self, message: Message) -> None:
        """Send a message to the server.

        Raises:
            NotConnectedError: If not connected.
            TransportError: On socket failure.
        """
        conn = self.connection
        if conn is None:
            raise NotConnectedError("Not connected to IPC server")
        await conn.send(message)

    async def receive(self) -> Message:
        """Block until the next message arrives.

        Raises:
            RuntimeError: If an ``on_message`` handler consumes messages instead.
            NotConnectedError: If never connected.
            ConnectionClosedError: If the connection closed.
        """
        if self.on_message is not None:
            raise RuntimeError("receive() is unavailable while on_message is set")
        if self.connection is None and self._inbox.empty():
            raise NotConnectedError("Not connected to IPC server")

        item = await self._inbox.get()
        if isinstance(item, _Sentinel):
            # Leave the marker for any other waiter
            self._inbox.put_nowait(item)
            raise ConnectionClosedError("IPC connection closed")
        return item

    async def disconnect(self) -> None:
        """Close the connection (idempotent)."""
        async with self._lock:
            conn, self.connection = self.connection, None
            task, self._receive_task = self._receive_task, None
            if conn is None:
                return

            await conn.close()
            if task is not None and task is not asyncio.current_task():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            logger.debug("IPC client disconnected from %s", self.socket_path)
