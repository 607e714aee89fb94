"""
Message types exchanged between the launcher and the supervised process.
"""

# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import json
import time
from enum import StrEnum
from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from hotswap.exceptions import ProtocolError

P = TypeVar("P", bound=BaseModel)


class MessageType(StrEnum):
    """Closed set of message types understood on the IPC channel."""

    STARTUP_SUCCESS = "startup_success"    # child → launcher, completes handshake
    STARTUP_FAILED = "startup_failed"      # child → launcher
    SHUTDOWN = "shutdown"                  # launcher → child
    SHUTDOWN_ACK = "shutdown_ack"          # child → launcher
    HEARTBEAT = "heartbeat"                # either direction
    HEARTBEAT_ACK = "heartbeat_ack"        # reply to heartbeat
    UPDATE_REQUEST = "update_request"      # deprecated, accepted and ignored


# ── Payloads ──────────────────────────────────────────────────


class StartupSuccessPayload(BaseModel):
    version: str
    pid: int
    start_time: int = 0


class StartupFailedPayload(BaseModel):
    version: str = ""
    error: str
    pid: int = 0


class ShutdownPayload(BaseModel):
    reason: str
    grace_period_seconds: int = 30


class UpdateRequestPayload(BaseModel):
    """Deprecated: updates are requested by rewriting the state file."""

    new_version: str = ""
    download_path: str = ""
    sha256_checksum: str = ""
    changelog: str | None = None


# ── Envelope ──────────────────────────────────────────────────


def _now_ms() -> int:
    return int(time.time() * 1000)


class Message(BaseModel):
    """IPC envelope: one JSON object per line on the wire."""

    type: MessageType
    timestamp: int = Field(default_factory=_now_ms)
    payload: dict[str, Any] | None = None

    @classmethod
    def new(cls, msg_type: MessageType, payload: BaseModel | None = None) -> Message:
        """Build a message, serializing *payload* to plain JSON data."""
        data = payload.model_dump(mode="json") if payload is not None else None
        return cls(type=msg_type, payload=data)

    def parse_payload(self, model: type[P]) -> P:
        """Validate the opaque payload as *model*.

        Raises:
            ProtocolError: If the payload does not match the model.
        """
        try:
            return model.model_validate(self.payload or {})
        except ValidationError as e:
            raise ProtocolError(
                f"Invalid {self.type.value} payload: {e}"
            ) from e

    def to_json(self) -> str:
        """Serialize to JSON line (without the trailing newline)."""
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def from_json(cls, line: str) -> Message:
        """Deserialize from JSON line.

        Raises:
            ProtocolError: On invalid JSON or an unknown message type.
        """
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Invalid JSON frame: {e}") from e
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(f"Invalid message: {e}") from e
