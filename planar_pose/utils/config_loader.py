"""
Config Loader - loading of YAML configuration files.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_SOLVER_CONFIG: Dict[str, Dict[str, Any]] = {
    'square_homography': {
        'collinearity_tolerance': 1e-9,
    },
    'homography_dlt': {
        'degeneracy_tolerance': 1e-8,
    },
    'pose_from_homography': {
        'degeneracy_tolerance': 1e-12,
        'forward_axis': 1,
    },
}


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        config_path: Path to the YAML file

    Returns:
        Dictionary with the configuration (empty for an empty file)

    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the file is not valid YAML
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, 'r') as f:
        try:
            config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Error parsing YAML file {config_path}: {e}") from e

    return config or {}


def load_all_configs(config_dir: str = "config") -> Dict[str, Dict[str, Any]]:
    """
    Load every known configuration file from a directory.

    Args:
        config_dir: Directory with the configuration files

    Returns:
        Dictionary with all configurations:
        {
            'solver_config': {...},
            'camera_config': {...}
        }
    """
    config_path = Path(config_dir)

    configs = {}
    config_files = {
        'solver_config': 'solver_config.yaml',
        'camera_config': 'camera_config.yaml',
    }

    for key, filename in config_files.items():
        file_path = config_path / filename
        if file_path.exists():
            configs[key] = load_config(str(file_path))
        else:
            logger.warning("configuration file %s not found in %s", filename, config_dir)
            configs[key] = {}

    return configs


def load_solver_config(config_path: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    """
    Solver configuration with defaults filled in per section.

    Args:
        config_path: Optional YAML file overriding DEFAULT_SOLVER_CONFIG

    Returns:
        Dictionary with the 'square_homography', 'homography_dlt' and
        'pose_from_homography' sections
    """
    overrides = load_config(config_path) if config_path else {}

    config = {}
    for section, defaults in DEFAULT_SOLVER_CONFIG.items():
        config[section] = {**defaults, **(overrides.get(section) or {})}
    return config


def get_nested_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get a nested value from a dictionary using a dot separated path.

    Args:
        config: Configuration dictionary
        key_path: Dot notation path (e.g. "homography_dlt.degeneracy_tolerance")
        default: Value returned if the key does not exist

    Returns:
        Value found or default

    Example:
        >>> config = {'pose_from_homography': {'forward_axis': -1}}
        >>> get_nested_value(config, 'pose_from_homography.forward_axis')
        -1
    """
    keys = key_path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value
