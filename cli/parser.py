# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hotswap",
        description="Hotswap - Self-hosted Launcher",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Override runtime data directory (default: ~/.hotswap or HOTSWAP_DATA_DIR)",
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: from config)")
    sub = parser.add_subparsers(dest="command")

    # ── Check ─────────────────────────────────────────────
    p_check = sub.add_parser("check", help="Show whether launcher mode is required")
    _add_target_args(p_check)
    p_check.set_defaults(func=_lazy_check)

    # ── Launch ────────────────────────────────────────────
    p_launch = sub.add_parser(
        "launch", help="Run as launcher if the state file asks for another version",
    )
    _add_target_args(p_launch)
    p_launch.add_argument(
        "--instance-id", default=None,
        type=_instance_id,
        help="IPC instance identifier (default: from config or HOTSWAP_INSTANCE_ID)",
    )
    p_launch.add_argument(
        "child_args", nargs="*", metavar="ARGS",
        help="Arguments passed to the child (after --)",
    )
    p_launch.set_defaults(func=_lazy_launch)

    # ── State ─────────────────────────────────────────────
    p_state = sub.add_parser("state", help="Inspect or create launcher-state.json")
    state_sub = p_state.add_subparsers(dest="state_command")

    p_show = state_sub.add_parser("show", help="Print the state file")
    p_show.add_argument("--app-data", required=True, help="Application data directory")
    p_show.set_defaults(func=_lazy_state_show)

    p_init = state_sub.add_parser("init", help="Write a default state file")
    p_init.add_argument("--app-data", required=True, help="Application data directory")
    p_init.add_argument(
        "--force", action="store_true", help="Overwrite an existing state file",
    )
    p_init.set_defaults(func=_lazy_state_init)

    return parser


def _instance_id(value: str) -> str:
    from hotswap.paths import validate_instance_id

    try:
        return validate_instance_id(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _add_target_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--app-data", required=True, help="Application data directory")
    p.add_argument("--version", required=True, help="Version of the running binary")
    p.add_argument("--exe", required=True, help="Path of the running binary")


def cli_main(argv: Sequence[str] | None = None) -> None:
    from dotenv import load_dotenv

    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    # Apply --data-dir override before any command
    if args.data_dir:
        os.environ["HOTSWAP_DATA_DIR"] = args.data_dir

    from hotswap.config import load_config
    from hotswap.exceptions import HotswapError
    from hotswap.logging_config import setup_logging
    from hotswap.paths import get_log_dir

    try:
        config = load_config()
    except HotswapError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(
        level=args.log_level or os.environ.get("HOTSWAP_LOG_LEVEL") or config.log_level,
        log_dir=get_log_dir(),
    )

    if not hasattr(args, "func"):
        parser.print_help()
        return

    try:
        code = args.func(args, config)
    except HotswapError as e:
        logger.error("%s", e)
        sys.exit(1)
    if code:
        sys.exit(code)


# ── Lazy import wrappers ──────────────────────────────────


def _lazy_check(args: argparse.Namespace, config) -> int:
    from cli.commands.launcher import cmd_check

    return cmd_check(args, config)


def _lazy_launch(args: argparse.Namespace, config) -> int:
    from cli.commands.launcher import cmd_launch

    return cmd_launch(args, config)


def _lazy_state_show(args: argparse.Namespace, config) -> int:
    from cli.commands.state_cmd import cmd_state_show

    return cmd_state_show(args)


def _lazy_state_init(args: argparse.Namespace, config) -> int:
    from cli.commands.state_cmd import cmd_state_init

    return cmd_state_init(args)
