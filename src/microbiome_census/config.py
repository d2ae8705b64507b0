# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Dict, Union

# Third-Party Imports
import yaml

# Local Imports
from microbiome_census import constants

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("microbiome_census")

# ==================================== FUNCTIONS ===================================== #

def resolve_relative_paths(config: Dict, config_dir: Path) -> Dict:
    """Converts any relative paths in the configuration to absolute paths based on
    the directory of the config file."""
    for key, value in config.items():
        if isinstance(value, str):
            if value.startswith("./") or value.startswith("../"):
                config[key] = (config_dir / value).resolve()
        elif isinstance(value, dict):
            config[key] = resolve_relative_paths(value, config_dir)
    return config


def get_config(
    config_path: Union[str, Path] = constants.DEFAULT_CONFIG
) -> Dict:
    """Load the YAML configuration file and resolve its relative paths.

    Args:
        config_path: Path to a YAML configuration file.

    Returns:
        Configuration dictionary (empty if the file is empty).
    """
    with open(config_path, "r") as file:
        config = yaml.safe_load(file) or {}

    config_dir = Path(config_path).resolve().parent
    config = resolve_relative_paths(config, config_dir)
    logger.debug(f"Loaded configuration from '{config_path}'")
    return config


def is_enabled(config: Dict, section: str, default: bool = False) -> bool:
    return bool(config.get(section, {}).get("enabled", default))
