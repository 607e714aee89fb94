# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from hotswap.config import HotswapConfig

logger = logging.getLogger(__name__)

EXIT_NORMAL_START = 3


# ── Check ─────────────────────────────────────────────────


def cmd_check(args: argparse.Namespace, config: HotswapConfig) -> int:
    """Print the launcher decision for the given binary as JSON."""
    from hotswap.supervisor.checker import check

    result = check(Path(args.app_data), args.version, Path(args.exe))
    print(json.dumps({
        "should_be_launcher": result.should_be_launcher,
        "current_version": result.current_version,
        "target_version": result.target_version,
        "target_binary_path": str(result.target_binary_path) if result.target_binary_path else None,
        "state_path": str(result.state_path),
        "state": result.state.model_dump() if result.state is not None else None,
    }, indent=2, ensure_ascii=False))
    return 0


# ── Launch ────────────────────────────────────────────────


def cmd_launch(args: argparse.Namespace, config: HotswapConfig) -> int:
    """Supervise the active version, or report that a normal start is due.

    Returns 0 after supervising and EXIT_NORMAL_START when this binary
    should simply start.  Launcher failures propagate to the caller.
    """
    from hotswap.supervisor.bootstrap import run_launcher_if_needed

    ran = run_launcher_if_needed(
        Path(args.app_data),
        args.version,
        Path(args.exe),
        args=list(args.child_args),
        config=config,
        instance_id=args.instance_id,
    )
    if not ran:
        logger.info("No launcher needed; start %s normally", args.exe)
        return EXIT_NORMAL_START
    return 0
