#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

"""
Cluster management package.
"""

from .commands import app, main
from .environment import assemble_environment, load_environment
from .errors import ClusterError, SwarmRequiredError, UsageError
from .manager import ClusterManager
from .models import ClusterContext, ClusterSettings, load_settings
from .stack import Stack, resolve_stack

__all__ = [
    # Commands
    "app",
    "main",
    # Manager
    "ClusterManager",
    # Stacks
    "Stack",
    "resolve_stack",
    "assemble_environment",
    "load_environment",
    # Models
    "ClusterContext",
    "ClusterSettings",
    "load_settings",
    # Errors
    "ClusterError",
    "UsageError",
    "SwarmRequiredError",
]
