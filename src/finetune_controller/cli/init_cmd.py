# Copyright (c) Syntropy Systems
"""ftctl init command."""

from pathlib import Path

import typer
import yaml
from rich.console import Console

from finetune_controller.config import PROJECT_DIR_NAME, default_config_dict
from finetune_controller.db import init_db

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new controller project.

    Creates a .finetune directory with configuration and the state store.
    """
    target = path.resolve()
    project_dir = target / PROJECT_DIR_NAME

    if project_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {project_dir}")
        return

    project_dir.mkdir(parents=True)

    config_path = project_dir / "config.yaml"
    with config_path.open("w") as f:
        yaml.dump(default_config_dict(), f, default_flow_style=False)

    db_path = project_dir / "store.db"
    init_db(db_path)

    console.print(f"[green]Initialized project:[/green] {project_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]store:[/dim] {db_path}")
