# Copyright (c) Syntropy Systems
"""Pytest fixtures for finetune-controller tests."""

import os
import sqlite3
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from finetune_controller.models.resources import (
    FinetuneExperiment,
    FinetuneJobTemplate,
    ObjectMeta,
)
from finetune_controller.store import StoreClient

# Store original cwd at module load time
_original_cwd = Path.cwd()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary controller project directory."""
    from finetune_controller.db import init_db

    project_dir = temp_dir / ".finetune"
    project_dir.mkdir()

    # Initialize the state store
    db_path = project_dir / "store.db"
    init_db(db_path)

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def db_path(project: Path) -> Path:
    """Path to the project's state store."""
    return project / ".finetune" / "store.db"


@pytest.fixture
def db_connection(db_path: Path) -> Generator[sqlite3.Connection, None, None]:
    """Get a database connection for the test project."""
    from finetune_controller.db import get_connection

    conn = get_connection(db_path)
    yield conn
    conn.close()


@pytest.fixture
def store(db_path: Path) -> StoreClient:
    """A store client for the test project."""
    return StoreClient(db_path)


def make_experiment(
    name: str = "exp1",
    namespace: str = "default",
    job_names: tuple = ("custom-job", None),
    pending: bool = False,
) -> FinetuneExperiment:
    """Build an unsaved experiment with one template per entry in job_names."""
    return FinetuneExperiment(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec={
            "pending": pending,
            "finetuneJobs": [
                FinetuneJobTemplate(
                    name=job_name,
                    spec={"llm": "llama2-7b", "dataset": "alpaca", "epochs": 3},
                )
                for job_name in job_names
            ],
        },
    )
