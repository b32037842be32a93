"""
Pose From Homography - rigid pose of a plane from its image homography.

For a plane Z = 0 seen by a camera with intrinsics K:

    H = lambda * K * [r1 r2 t]

so [r1 r2 t] = lambda^-1 * K^-1 * H. The scale is fixed by ||r1|| = 1, the
sign by requiring the plane origin to lie in front of the camera, and the
rotation is completed with r3 = r1 x r2.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from planar_pose.exceptions import DegenerateHomography, InvalidInput, SingularIntrinsics
from planar_pose.pose_estimation.pose import Pose
from planar_pose.pose_estimation.projective import as_matrix3x3
from planar_pose.pose_estimation.rotation import rotation_matrix_to_quaternion

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PoseEstimate:
    """
    Decomposition result.

    Attributes:
        pose:                Plane-to-camera pose
        scale:               Signed lambda applied to K^-1 * H
        column_norm_ratio:   ||M[:, 1]|| / ||M[:, 0]||, 1 for a perfect homography
        orthogonality_error: |r1 . r2| of the unit columns before correction
    """
    pose: Pose
    scale: float
    column_norm_ratio: float
    orthogonality_error: float


def check_inverse_intrinsics(inv_intrinsics, tolerance: float = 1e-12) -> np.ndarray:
    """
    Validate K^-1.

    Raises:
        SingularIntrinsics: if the matrix is non-finite or not invertible
    """
    K_inv = np.asarray(inv_intrinsics, dtype=np.float64)
    if K_inv.shape != (3, 3):
        raise SingularIntrinsics(f"inverse intrinsics must be (3, 3), got {K_inv.shape}")
    if not np.all(np.isfinite(K_inv)):
        raise SingularIntrinsics("inverse intrinsics contain non-finite values")

    norm = np.linalg.norm(K_inv)
    if norm == 0.0 or abs(np.linalg.det(K_inv)) <= tolerance * norm ** 3:
        raise SingularIntrinsics("inverse intrinsics matrix is singular")
    return K_inv


def orthonormalize_columns(r1: np.ndarray, r2: np.ndarray):
    """
    Closest orthonormal pair to two unit vectors, correcting both equally.

    The pair is rebuilt around its bisector c and the in-plane direction d
    perpendicular to it, so r1 and r2 each move by half the angular error.

    Args:
        r1, r2: Unit vectors (3,), not parallel

    Returns:
        Tuple (r1, r2) of orthonormal vectors
    """
    c = r1 + r2
    c /= np.linalg.norm(c)
    n = np.cross(r1, r2)
    n /= np.linalg.norm(n)
    d = np.cross(n, c)

    r1_ortho = (c - d) / np.sqrt(2.0)
    r2_ortho = (c + d) / np.sqrt(2.0)
    return r1_ortho, r2_ortho


class PoseFromHomography:
    """
    Decomposes a plane-to-image homography into rotation and translation.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Args:
            config: 'pose_from_homography' section of the solver configuration
                    forward_axis: sign of the camera Z coordinate of the
                                  plane origin. +1 (default) keeps the plane
                                  at positive depth, also for intrinsics with a
                                  negated last column. -1 selects the mirrored
                                  solution at negative Z
        """
        config = config or {}
        self.degeneracy_tolerance = float(config.get('degeneracy_tolerance', 1e-12))
        forward_axis = config.get('forward_axis', 1)
        if forward_axis not in (1, -1):
            raise InvalidInput(f"forward_axis must be 1 or -1, got {forward_axis}")
        self.forward_axis = forward_axis

    def decompose(self, H, inv_intrinsics) -> PoseEstimate:
        """
        Recover the plane pose.

        Args:
            H: Homography (3, 3) mapping plane coordinates to pixels
            inv_intrinsics: K^-1 (3, 3)

        Returns:
            PoseEstimate

        Raises:
            SingularIntrinsics: K^-1 not invertible
            DegenerateHomography: first columns of K^-1 * H vanish
        """
        K_inv = check_inverse_intrinsics(inv_intrinsics)
        H = as_matrix3x3(H, 'homography')

        M = K_inv @ H
        m_norm = np.linalg.norm(M)
        col0_norm = np.linalg.norm(M[:, 0])
        col1_norm = np.linalg.norm(M[:, 1])

        if m_norm == 0.0 or col0_norm <= self.degeneracy_tolerance * m_norm:
            raise DegenerateHomography("first column of K^-1 * H has zero length")
        if col1_norm <= self.degeneracy_tolerance * m_norm:
            raise DegenerateHomography("second column of K^-1 * H has zero length")

        scale = 1.0 / col0_norm
        t = scale * M[:, 2]

        # Both signs of lambda satisfy H; keep the plane in front of the camera
        depth = self.forward_axis * t[2]
        if depth < 0:
            scale = -scale
            t = -t
        elif depth == 0:
            logger.warning("plane origin lies in the camera's principal plane; "
                           "sign of the pose is ambiguous")

        r1 = scale * M[:, 0]
        r2 = np.sign(scale) * M[:, 1] / col1_norm

        orthogonality_error = abs(float(np.dot(r1, r2)))
        if 1.0 - orthogonality_error <= self.degeneracy_tolerance:
            raise DegenerateHomography("first two columns of K^-1 * H are parallel")

        r1, r2 = orthonormalize_columns(r1, r2)
        r3 = np.cross(r1, r2)
        R = np.column_stack([r1, r2, r3])

        pose = Pose(rotation_matrix_to_quaternion(R), t)
        ratio = col1_norm / col0_norm
        logger.debug("pose from homography: scale=%.6g column ratio=%.6g ortho err=%.3g",
                     scale, ratio, orthogonality_error)

        return PoseEstimate(
            pose=pose,
            scale=float(scale),
            column_norm_ratio=float(ratio),
            orthogonality_error=orthogonality_error,
        )


def pose_from_homography(H, inv_intrinsics) -> Pose:
    """
    Rigid pose (plane frame -> camera frame) from H and K^-1.

    Args:
        H: Plane-to-image homography (3, 3), any scale
        inv_intrinsics: Inverse camera matrix (3, 3)

    Returns:
        Pose with positive depth along the optical axis
    """
    return PoseFromHomography().decompose(H, inv_intrinsics).pose
