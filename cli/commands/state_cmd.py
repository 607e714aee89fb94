# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import sys
from pathlib import Path


def cmd_state_show(args: argparse.Namespace) -> int:
    """Print launcher-state.json with defaults applied."""
    from hotswap.paths import get_state_path
    from hotswap.supervisor.state import load_state

    state = load_state(get_state_path(Path(args.app_data)))
    print(state.model_dump_json(indent=2))
    return 0


def cmd_state_init(args: argparse.Namespace) -> int:
    """Write a default state file unless one exists (or --force)."""
    from hotswap.paths import get_state_path
    from hotswap.supervisor.state import default_state, save_state

    path = get_state_path(Path(args.app_data))
    if path.exists() and not args.force:
        print(f"State file already exists: {path} (use --force to overwrite)", file=sys.stderr)
        return 1

    save_state(default_state(), path)
    print(f"State file written: {path}")
    return 0
