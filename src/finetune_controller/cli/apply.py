# Copyright (c) Syntropy Systems
"""ftctl apply and delete commands."""
from __future__ import annotations

from pathlib import Path
from typing import cast

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from finetune_controller.cli.common import open_store
from finetune_controller.errors import ControllerError, NotFoundError
from finetune_controller.models.resources import FinetuneExperiment

console = Console()


def apply(
    manifest: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        help="YAML manifest of a FinetuneExperiment",
    ),
) -> None:
    """Create an experiment, or replace the spec of an existing one."""
    with manifest.open() as f:
        data = cast("dict[str, object]", yaml.safe_load(f) or {})

    try:
        desired = FinetuneExperiment.model_validate(data)
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid manifest {manifest}:\n{escape(str(e))}")
        raise typer.Exit(1) from e

    client = open_store(console)
    namespace = desired.metadata.namespace
    name = desired.metadata.name

    try:
        try:
            current = client.get(None, FinetuneExperiment, namespace, name)
        except NotFoundError:
            client.create(None, desired)
            console.print(f"[green]Created[/green] finetuneexperiment {desired.key}")
            return

        current.spec = desired.spec
        current.metadata.labels = desired.metadata.labels
        client.update(None, current)
        console.print(f"[green]Configured[/green] finetuneexperiment {current.key}")
    except ControllerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def delete(
    name: str = typer.Argument(..., help="Experiment name"),
    namespace: str = typer.Option(
        "default",
        "--namespace", "-n",
        help="Experiment namespace",
    ),
) -> None:
    """Request deletion of an experiment.

    If the experiment carries a finalizer it is removed once the
    controller has run its cleanup.
    """
    client = open_store(console)

    try:
        removed = client.delete(None, FinetuneExperiment, namespace, name)
    except ControllerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if removed:
        console.print(f"[green]Deleted[/green] finetuneexperiment {namespace}/{name}")
    else:
        console.print(
            f"[yellow]Deletion requested[/yellow] for finetuneexperiment {namespace}/{name}"
        )
        console.print("[dim]Waiting for the controller to release its finalizer[/dim]")
