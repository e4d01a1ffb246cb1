# PATH: config/__init__.py
"""
Configuration loading utilities for FLASHARB.
"""

from pathlib import Path
from typing import Any, Dict, Union

import yaml


CONFIG_DIR = Path(__file__).parent


def load_yaml(filename: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        filename: Name of a file in the config directory, or a path

    Returns:
        Parsed YAML as dict
    """
    filepath = Path(filename)
    if not filepath.is_absolute() and not filepath.exists():
        filepath = CONFIG_DIR / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_orchestrator_config() -> Dict[str, Any]:
    """Load orchestrator configuration."""
    return load_yaml("orchestrator.yaml")


def load_paper_market() -> Dict[str, Any]:
    """Load the demo market used in paper mode."""
    return load_yaml("paper_market.yaml")
