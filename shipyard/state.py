"""
Run directory management.
"""

import os
from pathlib import Path
from typing import List

from .ids import is_valid_run_id


def get_shipyard_home() -> Path:
    """
    Get the Shipyard home directory.

    Returns:
        Path: Shipyard home directory
    """
    shipyard_home = os.environ.get("SHIPYARD_HOME", ".shipyard")
    return Path(shipyard_home).resolve()


def get_run_dir(run_id: str) -> Path:
    """
    Get the directory for a specific run.

    Args:
        run_id: Run ID

    Returns:
        Path: Run directory

    Raises:
        ValueError: If run ID is invalid
    """
    if not is_valid_run_id(run_id):
        raise ValueError(f"Invalid run ID: {run_id}")

    return get_shipyard_home() / run_id


def create_run_dir(run_id: str) -> Path:
    """
    Create run directory and return its path.

    Args:
        run_id: Run ID

    Returns:
        Path: Created run directory
    """
    run_dir = get_run_dir(run_id)
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def run_exists(run_id: str) -> bool:
    try:
        return get_run_dir(run_id).exists()
    except ValueError:
        return False


def list_runs() -> List[str]:
    """
    List known run IDs, newest first.

    Returns:
        List of run IDs found under the home directory
    """
    home = get_shipyard_home()
    if not home.exists():
        return []
    runs = [p.name for p in home.iterdir() if p.is_dir() and is_valid_run_id(p.name)]
    return sorted(runs, reverse=True)
