from __future__ import annotations
# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Hotswap, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Unified exception hierarchy for Hotswap.

All domain-specific exceptions derive from :class:`HotswapError`,
enabling callers to catch the entire family with a single clause::

    try:
        ...
    except HotswapError as e:
        logger.error("Launcher error: %s", e)
"""


class HotswapError(Exception):
    """Base exception for all Hotswap errors."""


# ── State file ───────────────────────────────────────────────


class StateError(HotswapError):
    """Launcher state file errors."""


class StateNotFoundError(StateError):
    """State file does not exist."""


class StateCorruptedError(StateError):
    """State file is unreadable (JSON decode failure, invalid values)."""


# ── Transport / IPC ──────────────────────────────────────────


class TransportError(HotswapError):
    """Socket I/O failure on the local IPC channel."""


class IPCConnectionError(TransportError):
    """Could not connect to the IPC endpoint (socket missing, timeout)."""


class NotConnectedError(IPCConnectionError):
    """Operation requires an established IPC connection."""


class ConnectionClosedError(TransportError):
    """Peer closed the IPC connection."""


class ProtocolError(TransportError):
    """Frame could not be decoded into a message."""


# ── Launcher ─────────────────────────────────────────────────


class LauncherError(HotswapError):
    """Errors raised while supervising a child version."""


class StartupError(LauncherError):
    """The child binary could not be executed."""


class HandshakeTimeoutError(LauncherError):
    """The child did not confirm startup within the startup timeout."""


class HandshakeCrashError(LauncherError):
    """The child exited before confirming startup."""


class RollbackUnavailableError(LauncherError):
    """Retry budget exhausted and no usable backup version exists.

    ``last_failure`` holds the failure that exhausted the budget (also
    available as ``__cause__``), so callers can tell a target that never
    started from one that crashed repeatedly.
    """

    def __init__(
        self,
        message: str,
        *,
        last_failure: LauncherError | None = None,
    ) -> None:
        super().__init__(message)
        self.last_failure = last_failure


# ── Configuration ────────────────────────────────────────────


class ConfigError(HotswapError):
    """Configuration errors (config.json, supervision environment)."""
