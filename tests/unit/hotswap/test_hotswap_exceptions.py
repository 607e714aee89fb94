"""Unit tests for hotswap/exceptions.py: exception hierarchy."""
# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import pytest

from hotswap.exceptions import (
    ConfigError,
    ConnectionClosedError,
    HandshakeCrashError,
    HandshakeTimeoutError,
    HotswapError,
    IPCConnectionError,
    LauncherError,
    NotConnectedError,
    ProtocolError,
    RollbackUnavailableError,
    StartupError,
    StateCorruptedError,
    StateError,
    StateNotFoundError,
    TransportError,
)


@pytest.mark.parametrize(
    ("exc", "parent"),
    [
        (StateError, HotswapError),
        (StateNotFoundError, StateError),
        (StateCorruptedError, StateError),
        (TransportError, HotswapError),
        (IPCConnectionError, TransportError),
        (NotConnectedError, IPCConnectionError),
        (ConnectionClosedError, TransportError),
        (ProtocolError, TransportError),
        (LauncherError, HotswapError),
        (StartupError, LauncherError),
        (HandshakeTimeoutError, LauncherError),
        (HandshakeCrashError, LauncherError),
        (RollbackUnavailableError, LauncherError),
        (ConfigError, HotswapError),
    ],
)
def test_hierarchy(exc: type[Exception], parent: type[Exception]):
    assert issubclass(exc, parent)


def test_rollback_unavailable_carries_last_failure():
    cause = HandshakeTimeoutError("late")
    err = RollbackUnavailableError("giving up", last_failure=cause)
    assert err.last_failure is cause
    assert str(err) == "giving up"
    assert RollbackUnavailableError("x").last_failure is None
