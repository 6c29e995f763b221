#!/usr/bin/env python3
# -*- coding: utf-8 -*-
#
# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

"""
Environment assembly for stack deployments.
"""

from pathlib import Path
from typing import Optional

from dotenv import dotenv_values

from .stack import Stack


def environment_sources(stack: Stack, arch: str, global_env: Path) -> list[Path]:
    """Candidate env files in precedence order (later overrides earlier)"""
    sources = [
        global_env,
        stack.directory / "env",
        stack.directory / f"env.{arch}",
    ]
    if stack.mode:
        sources.append(stack.directory / f"env.{stack.mode}")
    return sources


def assemble_environment(stack: Stack, arch: str, global_env: Path) -> Path:
    """Write the stack's .env from the existing sources.

    Contents are concatenated verbatim; duplicate keys are left for the
    consumer to resolve with last-write-wins.
    """
    output_path = stack.env_path
    output_path.unlink(missing_ok=True)

    chunks: list[str] = []
    for source in environment_sources(stack, arch, global_env):
        if not source.is_file():
            continue
        content = source.read_text(encoding="utf-8")
        if content and not content.endswith("\n"):
            content += "\n"
        chunks.append(content)

    output_path.write_text("".join(chunks), encoding="utf-8")
    return output_path


def load_environment(path: Path) -> dict[str, str]:
    """Parse an assembled env file, later duplicates winning"""
    if not path.is_file():
        return {}
    values: dict[str, Optional[str]] = dotenv_values(path)
    return {key: value for key, value in values.items() if value is not None}
