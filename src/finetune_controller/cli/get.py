# Copyright (c) Syntropy Systems
"""ftctl get and jobs commands."""
from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from finetune_controller.cli.common import open_store
from finetune_controller.errors import ControllerError
from finetune_controller.models.resources import FinetuneExperiment, FinetuneJob

console = Console()


def get(
    name: Optional[str] = typer.Argument(
        None,
        help="Experiment name to show details for",
    ),
    namespace: Optional[str] = typer.Option(
        None,
        "--namespace", "-n",
        help="Namespace (default: all namespaces for listings, 'default' for a name)",
    ),
) -> None:
    """
    Show experiments.

    Without arguments, lists every experiment.
    With a name, shows the experiment's spec and per-job status.
    """
    client = open_store(console)

    try:
        if name is not None:
            experiment = client.get(None, FinetuneExperiment, namespace or "default", name)
            _show_experiment_details(experiment)
        else:
            _show_experiment_table(client.list(None, FinetuneExperiment, namespace))
    except ControllerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def jobs(
    namespace: Optional[str] = typer.Option(
        None,
        "--namespace", "-n",
        help="Only list jobs in this namespace",
    ),
) -> None:
    """List fine-tuning jobs and their owners."""
    client = open_store(console)

    try:
        items = client.list(None, FinetuneJob, namespace)
    except ControllerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if not items:
        console.print("[dim]No jobs[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Namespace", style="dim")
    table.add_column("Name")
    table.add_column("Owner")
    table.add_column("State")
    table.add_column("Created")

    for job in items:
        ref = job.metadata.controller_reference()
        table.add_row(
            job.metadata.namespace,
            job.metadata.name,
            ref.name if ref is not None else "-",
            _format_state(job.status.state),
            job.metadata.creation_timestamp or "-",
        )

    console.print(table)


def _format_state(state: Optional[str]) -> str:
    if not state:
        return "[dim]-[/dim]"
    colors = {
        "PENDING": "yellow",
        "PROCESSING": "blue",
        "RUNNING": "blue",
        "SUCCESS": "green",
        "SUCCESSFUL": "green",
        "FAILED": "red",
    }
    color = colors.get(state.upper(), "white")
    return f"[{color}]{state}[/{color}]"


def _show_experiment_table(experiments: list[FinetuneExperiment]) -> None:
    """Display experiments in a table."""
    if not experiments:
        console.print("[dim]No experiments[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Namespace", style="dim")
    table.add_column("Name")
    table.add_column("State")
    table.add_column("Jobs")
    table.add_column("Created")

    for experiment in experiments:
        state = experiment.status.state.value if experiment.status.state else None
        if experiment.metadata.deletion_timestamp is not None:
            state = "DELETING"
        table.add_row(
            experiment.metadata.namespace,
            experiment.metadata.name,
            _format_state(state),
            f"{len(experiment.status.jobs_status)}/{len(experiment.spec.finetune_jobs)}",
            experiment.metadata.creation_timestamp or "-",
        )

    console.print(table)


def _show_experiment_details(experiment: FinetuneExperiment) -> None:
    """Display detailed information about an experiment."""
    state = experiment.status.state.value if experiment.status.state else None
    console.print(f"\n[bold]FinetuneExperiment {experiment.key}[/bold]")
    console.print(f"  State: {_format_state(state)}")
    console.print(f"  Pending: {experiment.spec.pending}")
    console.print(f"  Resource version: {experiment.metadata.resource_version}")
    if experiment.metadata.finalizers:
        console.print(f"  Finalizers: {', '.join(experiment.metadata.finalizers)}")
    if experiment.metadata.deletion_timestamp:
        console.print(f"  Deletion requested: {experiment.metadata.deletion_timestamp}")

    if not experiment.status.jobs_status:
        console.print("  [dim]No job status recorded[/dim]")
        return

    console.print("  Jobs:")
    for job_name, job_status in experiment.status.jobs_status.items():
        console.print(f"    {job_name}: {_format_state(job_status.state)}")
