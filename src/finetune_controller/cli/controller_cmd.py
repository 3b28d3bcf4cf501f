# Copyright (c) Syntropy Systems
"""ftctl reconcile and controller commands."""
from __future__ import annotations

import logging
import signal

import typer
from rich.console import Console
from rich.logging import RichHandler

from finetune_controller.cli.common import open_store
from finetune_controller.config import load_config, require_project_dir
from finetune_controller.errors import ControllerError
from finetune_controller.manager import ControllerManager
from finetune_controller.reconciler import Reconciler, Request

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def reconcile(
    name: str = typer.Argument(..., help="Experiment name"),
    namespace: str = typer.Option(
        "default",
        "--namespace", "-n",
        help="Experiment namespace",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable debug logging",
    ),
) -> None:
    """Run a single reconcile pass for one experiment."""
    _setup_logging(verbose)
    client = open_store(console)

    request = Request(namespace, name)
    try:
        result = Reconciler(client).reconcile(request)
    except ControllerError as e:
        console.print(f"[red]Reconcile failed:[/red] {e}")
        console.print("[dim]Run again to retry with a fresh read[/dim]")
        raise typer.Exit(1) from e

    if result.done:
        console.print(f"[green]Reconciled[/green] {request}")
    else:
        console.print(f"[yellow]Reconciled[/yellow] {request} (requeue requested)")


def controller(
    workers: int = typer.Option(
        0,
        "--workers", "-w",
        help="Concurrent reconciles (default: max_concurrent_reconciles from config)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable debug logging",
    ),
) -> None:
    """
    Run the controller until interrupted.

    Polls the store for changed experiments and jobs, and reconciles each
    affected experiment.
    """
    _setup_logging(verbose)
    client = open_store(console)
    config = load_config(require_project_dir())
    if workers > 0:
        config.max_concurrent_reconciles = workers

    manager = ControllerManager(client, config=config)

    def _signal_handler(signum, frame):
        console.print("\n[yellow]Shutdown requested, stopping controller...[/yellow]")
        manager.request_stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    console.print(
        f"[green]Controller running[/green] "
        f"({config.max_concurrent_reconciles} worker(s), poll every {config.poll_interval}s)"
    )
    try:
        manager.run()
    except ControllerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    console.print("[dim]Controller stopped[/dim]")
