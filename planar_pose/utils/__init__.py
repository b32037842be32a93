"""
Utility functions for configuration and data I/O.
"""

from .config_loader import load_config, load_all_configs, load_solver_config, get_nested_value
from .data_io import (
    load_correspondences,
    save_homography,
    load_homography,
    save_pose,
    load_pose,
    save_all_poses,
    load_all_poses,
)

__all__ = [
    'load_config',
    'load_all_configs',
    'load_solver_config',
    'get_nested_value',
    'load_correspondences',
    'save_homography',
    'load_homography',
    'save_pose',
    'load_pose',
    'save_all_poses',
    'load_all_poses',
]
