# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
"""Self-hosted launcher and process supervisor for in-place updates."""

__version__ = "0.4.0"
