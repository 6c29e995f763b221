#!/usr/bin/env python3
# -*- coding: utf-8 -*-
#
# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

"""
Error types raised by cluster operations.

Failures of delegated commands are not wrapped: ``subprocess.CalledProcessError``
propagates to the CLI, which exits with the command's own status.
"""


class ClusterError(Exception):
    """Base class for errors reported to the user"""

    exit_code: int = 1


class UsageError(ClusterError):
    """Raised for a missing or unknown command-line argument"""


class SwarmRequiredError(ClusterError):
    """Raised when a swarm-only operation runs outside swarm mode"""

    def __init__(self, operation: str):
        super().__init__(f"--{operation} requires swarm mode")
        self.operation = operation
