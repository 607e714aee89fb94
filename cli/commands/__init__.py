# Hotswap - Self-hosted Launcher
# Copyright (C) 2026 Hotswap Authors
# SPDX-License-Identifier: Apache-2.0
