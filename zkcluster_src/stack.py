#!/usr/bin/env python3
# -*- coding: utf-8 -*-
#
# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

"""
Stack resolution: map a stack token to a directory and a normalized name.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .errors import UsageError

NAME_JOINER = "-"

DESCRIPTOR_NAMES = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
    "stack.yml",
)


class Stack(BaseModel):
    """A directory-scoped deployment unit"""

    name: str = Field(description="Normalized stack/project name")
    directory: Path = Field(description="Absolute stack directory")
    mode: Optional[str] = Field(default=None, description="Deployment profile")

    @property
    def env_path(self) -> Path:
        """Assembled environment file consumed by the orchestrator"""
        return self.directory / ".env"

    @property
    def volumes_path(self) -> Path:
        return self.directory / "volumes"

    @property
    def bootstrap_path(self) -> Path:
        return self.directory / "bootstrap.sh"

    @property
    def descriptor_path(self) -> Path:
        """First existing orchestration descriptor, docker-compose.yml otherwise"""
        for name in DESCRIPTOR_NAMES:
            candidate = self.directory / name
            if candidate.is_file():
                return candidate
        return self.directory / DESCRIPTOR_NAMES[0]


def resolve_stack(
    token: Optional[str], data_dir: Path, mode: Optional[str] = None
) -> Stack:
    """Resolve a raw stack token under the cluster-data root.

    Tokens with a path separator are named by joining their segments, so
    symlinks never change the name. Bare tokens take the name of the
    directory they point to after resolving symlinks.
    """
    if not token:
        raise UsageError("Missing stack argument")

    if ".." in token.split("/"):
        raise UsageError(f"Stack path must stay under {data_dir}: {token}")

    # Always joined under the data root, like "$CLUSTER_DATA/$token"
    directory = (data_dir / token.lstrip("/")).absolute()

    if "/" in token:
        name = token.replace("/", NAME_JOINER)
    else:
        name = directory.resolve().name

    return Stack(name=name, directory=directory, mode=mode or None)
