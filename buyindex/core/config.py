"""Configuration module for loading project settings and environment variables."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def load_config(config_path: str | Path = "config.yaml") -> Dict[str, Any]:
    """
    Load configuration from the specified YAML file.

    Args:
        config_path (str | Path): Path to the configuration file. Defaults to "config.yaml".

    Returns:
        Dict[str, Any]: A dictionary containing the configuration settings.
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    with open(config_file, "r", encoding="utf-8") as file:
        config_data = yaml.safe_load(file)

    if not config_data or not isinstance(config_data, dict):
        raise ValueError(f"Configuration file {config_path} is empty or invalid.")

    return config_data


def get_section(config: Optional[Dict[str, Any]], *path: str) -> Dict[str, Any]:
    """Return the nested mapping at ``path`` (e.g. ``"providers", "serpapi"``), or ``{}``."""
    node: Any = config or {}
    for key in path:
        if not isinstance(node, dict):
            return {}
        node = node.get(key) or {}
    return node if isinstance(node, dict) else {}


def get_secret(name: str) -> Optional[str]:
    """Read an API key from the environment; blank values count as missing."""
    value = os.getenv(name, "").strip()
    return value or None
