# exitcast/scenarios/scenario_manager.py
"""
Functions for saving, loading, and listing simulation input scenarios stored as JSON files.
Errors are raised to the caller; app.py turns them into Streamlit messages.
"""

import json
import logging
import numpy as np
from typing import List, Optional
from pathlib import Path

from ..core.constants import SCENARIO_DIR
from ..core.inputs import SimulationInputs

logger = logging.getLogger(__name__)


def _ensure_scenario_dir_exists(scenario_dir: Path = SCENARIO_DIR) -> Path:
    """Creates the scenario directory if it doesn't exist."""
    scenario_dir = Path(scenario_dir)
    scenario_dir.mkdir(parents=True, exist_ok=True)
    return scenario_dir


def _numpy_converter(obj):
    """Helper function to convert NumPy types for JSON serialization."""
    if isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, np.bool_):
        return bool(obj)
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


def save_scenario(inputs: SimulationInputs, filename: str, scenario_dir: Path = SCENARIO_DIR) -> Path:
    """
    Saves simulation inputs to a JSON file.

    Args:
        inputs: The SimulationInputs to save.
        filename: The desired filename (e.g., "my_scenario.json"), saved in scenario_dir.

    Returns:
        Path of the written file.
    """
    if not filename.endswith(".json"):
        filename = f"{filename}.json"
    filepath = _ensure_scenario_dir_exists(scenario_dir) / filename
    with open(filepath, 'w') as f:
        json.dump({"inputs": inputs.to_dict()}, f, indent=4, default=_numpy_converter)
    logger.info(f"Scenario saved successfully: {filepath}")
    return filepath


def load_scenario(filename: str, scenario_dir: Path = SCENARIO_DIR) -> Optional[SimulationInputs]:
    """
    Loads simulation inputs from a scenario file.

    Returns:
        SimulationInputs, or None if the file does not exist.

    Raises:
        ValueError: if the file is not valid JSON or lacks an 'inputs' object.
    """
    filepath = Path(scenario_dir) / filename
    if not filepath.is_file():
        logger.info(f"Scenario file not found during load attempt: {filepath}")
        return None

    try:
        with open(filepath, 'r') as f:
            loaded_data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Error decoding JSON from '{filepath}'. File might be corrupted.") from e

    if not isinstance(loaded_data, dict) or not isinstance(loaded_data.get("inputs"), dict):
        raise ValueError(f"Invalid format in '{filepath}'. Expected a JSON object with an 'inputs' key.")
    logger.info(f"Scenario loaded successfully: {filepath}")
    return SimulationInputs.from_dict(loaded_data["inputs"])


def list_saved_scenarios(scenario_dir: Path = SCENARIO_DIR) -> List[str]:
    """
    Lists the names of saved scenario files (with .json extension), sorted.
    """
    scenario_dir = _ensure_scenario_dir_exists(scenario_dir)
    return sorted(f.name for f in scenario_dir.iterdir() if f.is_file() and f.suffix == ".json")


def delete_scenario(filename: str, scenario_dir: Path = SCENARIO_DIR) -> None:
    """Deletes a saved scenario file."""
    filepath = Path(scenario_dir) / filename
    filepath.unlink()
    logger.info(f"Scenario deleted: {filepath}")
