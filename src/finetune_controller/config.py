# Copyright (c) Syntropy Systems
"""Configuration management for finetune-controller."""
from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import cast

import yaml

PROJECT_DIR_NAME = ".finetune"


@dataclass
class ControllerConfig:
    """Configuration for the controller manager."""

    # Worker threads running reconciles for distinct experiments
    max_concurrent_reconciles: int = 1

    # Seconds to wait for the first listing before giving up
    cache_sync_timeout: float = 10.0

    # Seconds between full resyncs of every experiment
    resync_period: float = 30.0

    # Seconds between store polls for changed objects
    poll_interval: float = 1.0

    # Per-experiment retry backoff (seconds)
    base_backoff: float = 0.5
    max_backoff: float = 300.0

    # Upper bound on one reconcile pass (seconds)
    reconcile_timeout: float = 60.0


def default_config_dict() -> dict[str, float | int]:
    """Return the defaults as a plain dict, for writing config.yaml."""
    config = ControllerConfig()
    return {f.name: getattr(config, f.name) for f in fields(config)}


def find_project_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .finetune directory by walking up from start_path.

    Returns None if no .finetune directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        project_dir = current / PROJECT_DIR_NAME
        if project_dir.is_dir():
            return project_dir
        current = current.parent

    # Check root
    project_dir = current / PROJECT_DIR_NAME
    if project_dir.is_dir():
        return project_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global config directory (~/.finetune)."""
    return Path.home() / PROJECT_DIR_NAME


def load_config(project_dir: Path | None = None) -> ControllerConfig:
    """Load configuration from .finetune/config.yaml or defaults.

    Looks for config in:
    1. Provided project_dir
    2. Nearest .finetune directory walking up
    3. ~/.finetune/config.yaml
    4. Defaults

    Unknown keys and values of the wrong type are ignored.
    """
    config = ControllerConfig()

    # Find config file
    config_path = None

    if project_dir is not None:
        config_path = project_dir / "config.yaml"
    else:
        found_dir = find_project_dir()
        if found_dir is not None:
            config_path = found_dir / "config.yaml"
        else:
            global_config = get_global_config_dir() / "config.yaml"
            if global_config.exists():
                config_path = global_config

    if config_path is not None and config_path.exists():
        with config_path.open() as f:
            loaded = yaml.safe_load(f)

        # A file whose top level is not a mapping holds no settings
        data = cast("dict[str, object]", loaded) if isinstance(loaded, dict) else {}

        for field in fields(config):
            value = data.get(field.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if field.name == "max_concurrent_reconciles":
                config.max_concurrent_reconciles = max(1, int(value))
            else:
                setattr(config, field.name, float(value))

    return config


def get_db_path(project_dir: Path | None = None) -> Path:
    """Get the path to the SQLite state store."""
    if project_dir is None:
        project_dir = find_project_dir()

    if project_dir is None:
        msg = "No .finetune directory found. Run 'ftctl init' first."
        raise RuntimeError(
            msg
        )

    return project_dir / "store.db"


def require_project_dir() -> Path:
    """Get the project directory or raise an error if not found."""
    project_dir = find_project_dir()
    if project_dir is None:
        msg = "No .finetune directory found. Run 'ftctl init' first."
        raise RuntimeError(
            msg
        )
    return project_dir
