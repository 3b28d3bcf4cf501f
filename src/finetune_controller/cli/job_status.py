# Copyright (c) Syntropy Systems
"""ftctl set-job-status command."""
from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from finetune_controller.cli.common import open_store
from finetune_controller.errors import ControllerError
from finetune_controller.models.resources import FinetuneJob

console = Console()


def set_job_status(
    name: str = typer.Argument(..., help="Job name"),
    state: str = typer.Argument(..., help="New job state, e.g. RUNNING or SUCCESSFUL"),
    stats: Optional[str] = typer.Option(
        None,
        "--stats",
        help="Free-form progress summary",
    ),
    namespace: str = typer.Option(
        "default",
        "--namespace", "-n",
        help="Job namespace",
    ),
) -> None:
    """Write a job's status, as the job-level controller would.

    The experiment controller picks the change up on its next pass.
    """
    client = open_store(console)

    try:
        job = client.get(None, FinetuneJob, namespace, name)
        job.status.state = state
        if stats is not None:
            job.status.stats = stats
        client.update_status(None, job)
    except ControllerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(f"[green]Updated[/green] finetunejob {job.key}: {state}")
