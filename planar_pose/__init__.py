"""
Planar Pose Package
Homography estimation and metric pose recovery for planar targets.
"""

__version__ = "1.0.0"

from planar_pose.exceptions import (
    PlanarPoseError,
    InvalidInput,
    InsufficientCorrespondences,
    DegenerateConfiguration,
    SingularIntrinsics,
    DegenerateHomography,
)
from planar_pose.pose_estimation import (
    Pose,
    solve_square_homography,
    solve_homography_dlt,
    pose_from_homography,
)

__all__ = [
    'PlanarPoseError',
    'InvalidInput',
    'InsufficientCorrespondences',
    'DegenerateConfiguration',
    'SingularIntrinsics',
    'DegenerateHomography',
    'Pose',
    'solve_square_homography',
    'solve_homography_dlt',
    'pose_from_homography',
]
