"""
Homography estimation and pose recovery from planar targets.
"""

# Closed form solver for square targets
from .square_homography import SquareHomographySolver, solve_square_homography, SQUARE_CORNERS

# General normalised DLT
from .homography_dlt import HomographyDLTSolver, HomographyEstimate, solve_homography_dlt

# Homography -> rigid pose
from .pose_from_homography import PoseFromHomography, PoseEstimate, pose_from_homography

from .pose import Pose, linear_interpolate
from .planar_pose_estimator import PlanarPoseEstimator

__all__ = [
    'SquareHomographySolver',
    'solve_square_homography',
    'SQUARE_CORNERS',
    'HomographyDLTSolver',
    'HomographyEstimate',
    'solve_homography_dlt',
    'PoseFromHomography',
    'PoseEstimate',
    'pose_from_homography',
    'Pose',
    'linear_interpolate',
    'PlanarPoseEstimator',
]
