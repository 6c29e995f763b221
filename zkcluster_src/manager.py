#!/usr/bin/env python3
# -*- coding: utf-8 -*-
#
# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

"""
Cluster manager for swarm stack and compose project operations.
"""

import json
import os
import shlex
import socket
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .environment import assemble_environment, load_environment
from .errors import ClusterError, SwarmRequiredError, UsageError
from .models import ClusterContext
from .stack import Stack, resolve_stack

# Rich Console for beautiful output
console = Console()

DEFAULT_INSTALL_TARGET = Path("/usr/bin/zkcluster")

# Listing queries: command, columns shown, default sort field
LISTINGS: dict[str, tuple[list[str], list[str], str]] = {
    "services": (
        ["docker", "service", "ls"],
        ["ID", "Name", "Mode", "Replicas", "Image", "Ports"],
        "Name",
    ),
    "tasks": (
        ["docker", "service", "ps"],
        ["ID", "Name", "Image", "Node", "DesiredState", "CurrentState", "Error"],
        "Name",
    ),
    "stacks": (
        ["docker", "stack", "ls"],
        ["Name", "Services", "Orchestrator"],
        "Name",
    ),
    "nodes": (
        ["docker", "node", "ls"],
        ["ID", "Hostname", "Status", "Availability", "ManagerStatus", "EngineVersion"],
        "Hostname",
    ),
}


# ============================================================================
# Core Cluster Manager
# ============================================================================


class ClusterManager:
    """Translates cluster operations into orchestrator invocations"""

    def __init__(self, context: ClusterContext, source_dir: Optional[Path] = None):
        self.context = context
        self.settings = context.settings
        if source_dir is None:
            source_dir = Path(__file__).parent.parent.resolve()
        self.source_dir = source_dir

    # ------------------------------------------------------------------------
    # Command helpers
    # ------------------------------------------------------------------------

    def run(
        self,
        cmd: list[str],
        cwd: Optional[Path] = None,
        env: Optional[dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        """Run a delegated command, aborting on a non-zero exit"""
        console.print(f"\n[dim]Running: {shlex.join(cmd)}[/dim]\n")
        return subprocess.run(cmd, cwd=cwd, env=env, check=True)

    def capture(self, cmd: list[str]) -> list[str]:
        """Run a query command and return its non-empty output lines"""
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def require_swarm(self, operation: str) -> None:
        if not self.context.swarm:
            raise SwarmRequiredError(operation)

    def stack(self, token: Optional[str], mode: Optional[str] = None) -> Stack:
        """Resolve a stack token and check its directory exists"""
        stack = resolve_stack(token, self.settings.data, mode)
        if not stack.directory.is_dir():
            raise UsageError(f"Stack directory not found: {stack.directory}")
        return stack

    def stack_environment(self, stack: Stack) -> dict[str, str]:
        """Environment snapshot handed to the bootstrap hook and swarm deploys"""
        env = dict(os.environ)
        env.update(load_environment(stack.env_path))
        env.update(
            {
                "STACK_NAME": stack.name,
                "STACK_DIR": str(stack.directory),
                "STACK_MODE": stack.mode or "",
                "CLUSTER_ARCH": self.context.arch,
                "CLUSTER_NAME": self.context.cluster_name,
            }
        )
        return env

    def compose_cmd(self, stack: Stack, *args: str) -> list[str]:
        return [
            "docker",
            "compose",
            "-p",
            stack.name,
            "-f",
            str(stack.descriptor_path),
            *args,
        ]

    def service_names(self, stack_name: Optional[str] = None) -> list[str]:
        """Names of swarm services, optionally limited to one stack"""
        if stack_name is None:
            cmd = ["docker", "service", "ls", "--format", "{{.Name}}"]
        else:
            cmd = ["docker", "stack", "services", "--format", "{{.Name}}", stack_name]
        return self.capture(cmd)

    # ------------------------------------------------------------------------
    # Stack lifecycle
    # ------------------------------------------------------------------------

    def run_bootstrap(self, stack: Stack, env: dict[str, str]) -> None:
        """Run the stack's bootstrap hook, if any, as a separate child process.

        The hook sees an explicit copy of the deploy environment. It cannot
        change the environment of the deploy that follows.
        """
        hook = stack.bootstrap_path
        if not hook.is_file():
            return

        if os.access(hook, os.X_OK):
            cmd = [str(hook)]
        else:
            cmd = ["sh", str(hook)]
        self.run(cmd, cwd=stack.directory, env=env)

    def deploy(self, token: Optional[str], mode: Optional[str] = None) -> Stack:
        """Deploy a stack with its assembled environment"""
        stack = self.stack(token, mode)
        stack.volumes_path.mkdir(parents=True, exist_ok=True)

        assemble_environment(stack, self.context.arch, self.settings.global_env_path)
        env = self.stack_environment(stack)
        self.run_bootstrap(stack, env)

        if self.context.swarm:
            cmd = [
                "docker",
                "stack",
                "deploy",
                "--with-registry-auth",
                "--resolve-image",
                "never",
                "-c",
                str(stack.descriptor_path),
                stack.name,
            ]
            # docker stack deploy does not read .env on its own
            self.run(cmd, cwd=stack.directory, env=env)
        else:
            self.run(self.compose_cmd(stack, "up", "-d"), cwd=stack.directory)

        console.print(f"[green]✓[/green] Deployed {stack.name}")
        return stack

    def remove(self, token: Optional[str]) -> Stack:
        stack = self.stack(token)
        if self.context.swarm:
            self.run(["docker", "stack", "rm", stack.name], cwd=stack.directory)
        else:
            self.run(self.compose_cmd(stack, "down"), cwd=stack.directory)
        return stack

    def start(self, token: Optional[str], mode: Optional[str] = None) -> Stack:
        """Start a stack; swarm stacks are redeployed to restore their replicas"""
        if self.context.swarm:
            return self.deploy(token, mode)

        stack = self.stack(token, mode)
        self.run(self.compose_cmd(stack, "start"), cwd=stack.directory)
        return stack

    def stop(self, token: Optional[str]) -> Stack:
        """Stop a stack; swarm services are scaled to zero"""
        stack = self.stack(token)
        if not self.context.swarm:
            self.run(self.compose_cmd(stack, "stop"), cwd=stack.directory)
            return stack

        services = self.service_names(stack.name)
        if not services:
            console.print(f"[yellow]No services found for stack {stack.name}[/yellow]")
            return stack

        cmd = ["docker", "service", "scale"] + [f"{name}=0" for name in services]
        self.run(cmd, cwd=stack.directory)
        return stack

    # ------------------------------------------------------------------------
    # Swarm queries and maintenance
    # ------------------------------------------------------------------------

    def query(self, selector: str) -> list[dict[str, Any]]:
        """Rows of a listing query, one dict per JSON line"""
        base_cmd = LISTINGS[selector][0]
        cmd = list(base_cmd)
        if selector == "tasks":
            service_ids = self.capture(["docker", "service", "ls", "-q"])
            if not service_ids:
                return []
            cmd.extend(service_ids)
        cmd.extend(["--format", "{{json .}}"])
        return [json.loads(line) for line in self.capture(cmd)]

    def listing(
        self, selector: Optional[str], sort: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Render a swarm listing sorted by a field and return its rows"""
        self.require_swarm("list")
        if selector not in LISTINGS:
            raise UsageError(
                f"Unknown list selector: {selector or ''}. "
                f"Available: {', '.join(LISTINGS)}"
            )

        _, columns, default_sort = LISTINGS[selector]
        rows = self.query(selector)

        sort_key = default_sort
        if sort:
            fields = {column.lower(): column for column in columns}
            fields.update({key.lower(): key for row in rows for key in row})
            if sort.lower() not in fields:
                raise UsageError(
                    f"Unknown sort column: {sort}. Available: {', '.join(columns)}"
                )
            sort_key = fields[sort.lower()]

        rows.sort(key=lambda row: str(row.get(sort_key, "")))

        table = Table(
            title=f"Swarm {selector.capitalize()}",
            show_header=True,
            header_style="bold magenta",
        )
        for column in columns:
            table.add_column(column, style="cyan" if column == sort_key else None)
        for row in rows:
            table.add_row(*[str(row.get(column, "")) for column in columns])

        console.print()
        console.print(table)
        if not rows:
            console.print(f"[dim]No {selector} found[/dim]")
        return rows

    def balance(self, target: Optional[str]) -> list[str]:
        """Force a rolling redeploy of one service, or of every service"""
        self.require_swarm("balance")
        if not target:
            raise UsageError("Missing service argument (or 'all')")

        if target == "all":
            services = self.service_names()
        else:
            services = [target]

        for service in services:
            self.run(["docker", "service", "update", "--force", service])
        return services

    def logs(self, service: Optional[str]) -> None:
        self.require_swarm("logs")
        if not service:
            raise UsageError("Missing service argument")
        self.run(["docker", "service", "logs", "--follow", service])

    def nodes(self) -> list[str]:
        if self.context.swarm:
            return self.capture(["docker", "node", "ls", "--format", "{{.Hostname}}"])
        return [socket.gethostname()]

    def stats(self) -> list[str]:
        """Status snapshot of every node, over the remote shell for other hosts"""
        local_host = socket.gethostname()
        stats_cmd = shlex.split(self.settings.stats_command)
        nodes = self.nodes()

        for node in nodes:
            console.print(f"\n[bold cyan]== {node} ==[/bold cyan]")
            if is_local_host(node, local_host):
                self.run(stats_cmd)
            else:
                self.run(shlex.split(self.settings.ssh_command) + [node] + stats_cmd)
        return nodes

    # ------------------------------------------------------------------------
    # Backup and self-management
    # ------------------------------------------------------------------------

    def backup_archive_path(self, timestamp: Optional[datetime] = None) -> Path:
        if timestamp is None:
            timestamp = datetime.now()
        stamp = timestamp.strftime("%Y%m%d_%H%M%S")
        return self.settings.backup / (
            f"{self.context.cluster_name}-cluster-{stamp}.tar.xz"
        )

    def backup(self) -> Optional[Path]:
        """Archive the cluster-data tree, encrypting it when a key is set.

        A failing archiver is reported but not fatal; encryption failures are.
        """
        self.settings.backup.mkdir(parents=True, exist_ok=True)
        archive = self.backup_archive_path()

        cmd = ["tar", "-cJf", str(archive)]
        cmd += [f"--exclude=./{subtree}" for subtree in self.settings.backup_exclude]
        cmd += ["-C", str(self.settings.data), "."]

        console.print(f"\n[dim]Running: {shlex.join(cmd)}[/dim]\n")
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task(f"Archiving {self.settings.data}...", total=None)
            try:
                returncode = subprocess.run(cmd).returncode
            except OSError as e:
                console.print(f"[yellow]Archive step failed: {escape(str(e))}[/yellow]")
                returncode = None

        if returncode:
            console.print(
                f"[yellow]Archive step exited with status {returncode}[/yellow]"
            )
        if not archive.exists():
            console.print("[yellow]No backup archive was written[/yellow]")
            return None

        if not self.settings.backup_key:
            console.print(f"[green]✓[/green] Backup written to {archive}")
            return archive

        encrypted = archive.with_name(archive.name + ".gpg")
        self.run(
            [
                "gpg",
                "--batch",
                "--yes",
                "--encrypt",
                "--recipient",
                self.settings.backup_key,
                "--output",
                str(encrypted),
                str(archive),
            ]
        )
        archive.unlink()
        console.print(f"[green]✓[/green] Encrypted backup written to {encrypted}")
        return encrypted

    def upgrade(self) -> None:
        """Pull the latest revision of this tool's own checkout"""
        if not (self.source_dir / ".git").exists():
            raise ClusterError(f"{self.source_dir} is not a git checkout")
        self.run(["git", "-C", str(self.source_dir), "pull", "--ff-only"])

    def install(self, target: Optional[str] = None) -> Path:
        """Link the launcher script onto PATH, replacing any existing link"""
        launcher = self.source_dir / "zkcluster.py"
        if not launcher.is_file():
            raise ClusterError(f"Launcher not found: {launcher}")

        link = Path(target) if target else DEFAULT_INSTALL_TARGET
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(launcher)
        console.print(f"[green]✓[/green] Linked {link} -> {launcher}")
        return link


def is_local_host(node: str, local_host: str) -> bool:
    """Match node names with or without a domain suffix"""
    if node == local_host:
        return True
    return node.split(".")[0] == local_host.split(".")[0]
