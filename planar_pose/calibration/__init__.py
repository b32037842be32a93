"""
Calibration module - Camera intrinsics loading and inversion
"""

from .load_calibration import (
    CameraParameters,
    invert_intrinsics,
    load_camera_calibration,
    load_camera_from_config,
)


__all__ = [
    'CameraParameters',
    'invert_intrinsics',
    'load_camera_calibration',
    'load_camera_from_config',
]
