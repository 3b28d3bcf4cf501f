# Copyright (c) Syntropy Systems
"""Helpers shared by ftctl commands."""
from __future__ import annotations

import typer
from rich.console import Console

from finetune_controller.config import get_db_path, require_project_dir
from finetune_controller.store import StoreClient


def open_store(console: Console) -> StoreClient:
    """Return a client for the current project or exit with an error."""
    try:
        project_dir = require_project_dir()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    return StoreClient(get_db_path(project_dir))
