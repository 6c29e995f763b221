#!/usr/bin/env python3
# -*- coding: utf-8 -*-
#
# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

"""
Configuration models for cluster management.
"""

import os
import platform
import shlex
import socket
import subprocess
from pathlib import Path
from typing import Any, Optional, Tuple, Type

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
    PydanticBaseSettingsSource,
)

DEFAULT_CONFIG_PATH = Path("/etc/zkcluster.yaml")

# ============================================================================
# Pydantic Models for Configuration
# ============================================================================


class ClusterSettings(BaseSettings):
    """Cluster-wide settings"""

    model_config = SettingsConfigDict(
        env_prefix="CLUSTER_",
        case_sensitive=False,
        extra="forbid",
    )

    data: Path = Field(
        default=Path("/data/cluster"),
        description="Cluster-data root holding one directory per stack",
    )
    backup: Path = Field(
        default=Path("/data/backup"), description="Directory for backup archives"
    )
    name: str = Field(
        default_factory=socket.gethostname,
        description="Cluster name (defaults to the host name)",
    )
    backup_key: Optional[str] = Field(
        default=None, description="GPG recipient used to encrypt backups"
    )
    backup_exclude: list[str] = Field(
        default_factory=lambda: ["storage"],
        description="Subtrees of the data root left out of backups",
    )
    stats_command: str = Field(
        default="docker stats --no-stream",
        description="Status snapshot command run on every node",
    )
    ssh_command: str = Field(
        default="ssh", description="Remote shell used to reach other nodes"
    )

    @field_validator("data", "backup")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        """Expand '~' so paths from YAML behave like shell paths"""
        return v.expanduser()

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Cluster name must not be empty")
        return v

    @field_validator("stats_command", "ssh_command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        """Reject commands that split into nothing"""
        if not shlex.split(v):
            raise ValueError("Command must not be empty")
        return v

    @property
    def global_env_path(self) -> Path:
        return self.data / "env"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """
        Customize settings sources priority.
        Priority: env vars > YAML (init) > file secrets > defaults
        """
        return env_settings, init_settings, file_secret_settings


def load_settings(config_path: Optional[Path] = None) -> ClusterSettings:
    """Load settings from the optional YAML file and the environment"""
    if config_path is None:
        config_path = Path(os.environ.get("CLUSTER_CONFIG", DEFAULT_CONFIG_PATH))

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"{config_path} must contain a mapping")

    return ClusterSettings(**data)


# ============================================================================
# Host detection
# ============================================================================


def detect_arch(machine: Optional[str] = None) -> str:
    """Architecture tag used to pick env.<arch> files"""
    if machine is None:
        machine = platform.machine()
    if machine.startswith("armv"):
        return "armhf"
    return machine


def detect_swarm() -> bool:
    """Swarm mode is active when this node can list cluster nodes"""
    try:
        result = subprocess.run(
            ["docker", "node", "ls"],
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return False
    return result.returncode == 0


class ClusterContext(BaseModel):
    """Process-wide facts, computed once at startup and passed to every operation"""

    settings: ClusterSettings
    arch: str
    swarm: bool
    cluster_name: str

    @classmethod
    def detect(cls, settings: ClusterSettings) -> "ClusterContext":
        return cls(
            settings=settings,
            arch=detect_arch(),
            swarm=detect_swarm(),
            cluster_name=settings.name,
        )
