# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""
Launcher supervision: state file, startup check, child runner and IPC.
"""

from hotswap.supervisor.bootstrap import run_launcher, run_launcher_if_needed
from hotswap.supervisor.checker import CheckResult, check
from hotswap.supervisor.environment import SupervisedEnvironment, is_supervised
from hotswap.supervisor.ipc import Connection, IPCClient, IPCServer
from hotswap.supervisor.messages import (
    Message,
    MessageType,
    ShutdownPayload,
    StartupFailedPayload,
    StartupSuccessPayload,
    UpdateRequestPayload,
)
from hotswap.supervisor.notifier import LauncherNotifier
from hotswap.supervisor.process_handle import ChildProcess, ChildState
from hotswap.supervisor.runner import HandshakeOutcome, Runner, RunnerPhase
from hotswap.supervisor.state import LauncherState, default_state, load_state, save_state

__all__ = [
    "CheckResult",
    "ChildProcess",
    "ChildState",
    "Connection",
    "HandshakeOutcome",
    "IPCClient",
    "IPCServer",
    "LauncherNotifier",
    "LauncherState",
    "Message",
    "MessageType",
    "Runner",
    "RunnerPhase",
    "ShutdownPayload",
    "StartupFailedPayload",
    "StartupSuccessPayload",
    "SupervisedEnvironment",
    "UpdateRequestPayload",
    "check",
    "default_state",
    "is_supervised",
    "load_state",
    "run_launcher",
    "run_launcher_if_needed",
    "save_state",
]
