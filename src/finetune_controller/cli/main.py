# Copyright (c) Syntropy Systems
"""Main CLI entry point for ftctl."""

import typer

from finetune_controller.cli.apply import apply, delete
from finetune_controller.cli.controller_cmd import controller, reconcile
from finetune_controller.cli.get import get, jobs
from finetune_controller.cli.init_cmd import init
from finetune_controller.cli.job_status import set_job_status

app = typer.Typer(
    name="ftctl",
    help=(
        "Fine-tuning experiment controller. Declare experiments, "
        "let the controller create and track their jobs."
    ),
    no_args_is_help=True,
    add_completion=False,
)

# Register commands
_ = app.command()(init)
_ = app.command()(apply)
_ = app.command()(delete)
_ = app.command()(get)
_ = app.command()(jobs)
_ = app.command(name="set-job-status")(set_job_status)
_ = app.command()(reconcile)
_ = app.command()(controller)


if __name__ == "__main__":
    app()
