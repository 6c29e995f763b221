#!/usr/bin/env python3
# -*- coding: utf-8 -*-
#
# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

"""
CLI commands for cluster management.
"""

import subprocess
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from .errors import ClusterError, UsageError
from .manager import ClusterManager
from .models import ClusterContext, load_settings

console = Console()
app = typer.Typer(
    name="zkcluster",
    help="Stack deployment helper for swarm and compose clusters",
    add_completion=False,
)

USAGE = """\
Usage: zkcluster OPERATION [ARGS...]

Operations:
  --deploy <stack> [mode]       Deploy a stack (optionally with env.<mode>)
  --remove <stack>              Remove a stack
  --start <stack> [mode]        Start a stack
  --stop <stack>                Stop a stack
  --list <services|tasks|stacks|nodes> [sort-column]
                                List swarm resources (swarm mode only)
  --stats                       Show container stats on every node
  --backup                      Archive the cluster-data directory
  --logs <service>              Follow logs of a service or task (swarm mode only)
  --balance <service|all>       Force a rolling redeploy (swarm mode only)
  --upgrade                     Update zkcluster from its git origin
  --install [path]              Link zkcluster onto PATH (default /usr/bin/zkcluster)
  --help                        Show this message
"""

# Operations whose first argument is mandatory
REQUIRED_ARGUMENTS = {
    "deploy": "stack",
    "remove": "stack",
    "start": "stack",
    "stop": "stack",
    "list": "selector",
    "logs": "service",
    "balance": "service",
}


def print_usage() -> None:
    console.print(USAGE, markup=False, highlight=False)


def dispatch(manager: ClusterManager, operation: str, args: list[str]) -> None:
    """Run one operation with its positional arguments"""

    def arg(index: int) -> Optional[str]:
        return args[index] if len(args) > index else None

    if operation == "deploy":
        manager.deploy(arg(0), arg(1))
    elif operation == "remove":
        manager.remove(arg(0))
    elif operation == "start":
        manager.start(arg(0), arg(1))
    elif operation == "stop":
        manager.stop(arg(0))
    elif operation == "list":
        manager.listing(arg(0), arg(1))
    elif operation == "stats":
        manager.stats()
    elif operation == "backup":
        manager.backup()
    elif operation == "logs":
        manager.logs(arg(0))
    elif operation == "balance":
        manager.balance(arg(0))
    elif operation == "upgrade":
        manager.upgrade()
    elif operation == "install":
        manager.install(arg(0))
    else:
        raise UsageError(f"Unknown operation: {operation}")


def build_manager() -> ClusterManager:
    """Detect the cluster context once for this invocation"""
    settings = load_settings()
    return ClusterManager(ClusterContext.detect(settings))


# ============================================================================
# CLI Commands
# ============================================================================


@app.command(add_help_option=False)
def cli(
    show_help: Annotated[
        bool, typer.Option("--help", "-h", help="Show usage and exit")
    ] = False,
    deploy: Annotated[bool, typer.Option("--deploy", help="Deploy a stack")] = False,
    remove: Annotated[bool, typer.Option("--remove", help="Remove a stack")] = False,
    start: Annotated[bool, typer.Option("--start", help="Start a stack")] = False,
    stop: Annotated[bool, typer.Option("--stop", help="Stop a stack")] = False,
    list_: Annotated[
        bool, typer.Option("--list", help="List swarm resources")
    ] = False,
    stats: Annotated[bool, typer.Option("--stats", help="Show node stats")] = False,
    backup: Annotated[
        bool, typer.Option("--backup", help="Back up cluster data")
    ] = False,
    logs: Annotated[bool, typer.Option("--logs", help="Follow service logs")] = False,
    balance: Annotated[
        bool, typer.Option("--balance", help="Rebalance services")
    ] = False,
    upgrade: Annotated[
        bool, typer.Option("--upgrade", help="Update zkcluster")
    ] = False,
    install: Annotated[
        bool, typer.Option("--install", help="Link zkcluster onto PATH")
    ] = False,
    args: Annotated[
        Optional[list[str]], typer.Argument(help="Operation arguments")
    ] = None,
):
    """Deploy and manage stacks on a swarm or compose cluster"""
    flags = {
        "deploy": deploy,
        "remove": remove,
        "start": start,
        "stop": stop,
        "list": list_,
        "stats": stats,
        "backup": backup,
        "logs": logs,
        "balance": balance,
        "upgrade": upgrade,
        "install": install,
    }
    selected = [operation for operation, enabled in flags.items() if enabled]

    if show_help or not selected:
        print_usage()
        raise typer.Exit(1)

    if len(selected) > 1:
        console.print(
            f"[red]Error: only one operation per invocation "
            f"(got {', '.join('--' + s for s in selected)})[/red]"
        )
        raise typer.Exit(1)

    operation = selected[0]
    args = args or []

    if operation in REQUIRED_ARGUMENTS and not args:
        console.print(
            f"[red]Error: --{operation} requires a "
            f"{REQUIRED_ARGUMENTS[operation]} argument[/red]"
        )
        print_usage()
        raise typer.Exit(1)

    try:
        manager = build_manager()
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    try:
        dispatch(manager, operation, args)
    except UsageError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    except ClusterError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(e.exit_code)
    except subprocess.CalledProcessError as e:
        console.print(f"[red]Error: command exited with status {e.returncode}[/red]")
        raise typer.Exit(e.returncode)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {escape(str(e.filename or e))} not found[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        raise typer.Exit(130)


def main():
    """Main entry point"""
    app()
