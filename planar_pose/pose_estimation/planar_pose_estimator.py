"""
Planar Pose Estimator - pose of a known planar target from one image.

Pipeline:
1. Receives 2D image points of a planar target (optionally undistorted)
2. Pairs them with the known plane coordinates of the target (Z = 0)
3. Computes the homography H (normalised DLT, or the closed form solver
   for square markers)
4. Decomposes K⁻¹ * H into [r1 r2 t] and completes R with r3 = r1 × r2
5. Validates the pose with the reprojection error
"""

import logging
from typing import Dict, Optional

import cv2
import numpy as np

from planar_pose.calibration.load_calibration import CameraParameters
from planar_pose.exceptions import InvalidInput
from planar_pose.pose_estimation.homography_dlt import HomographyDLTSolver
from planar_pose.pose_estimation.pose import Pose
from planar_pose.pose_estimation.pose_from_homography import PoseEstimate, PoseFromHomography
from planar_pose.pose_estimation.projective import as_point_array
from planar_pose.pose_estimation.square_homography import SQUARE_CORNERS, SquareHomographySolver

logger = logging.getLogger(__name__)


class PlanarPoseEstimator:
    """
    Camera-bound pipeline from point correspondences to a metric pose.
    """

    def __init__(self, camera_params: CameraParameters, solver_config: Optional[Dict] = None):
        """
        Initialize estimator.

        Args:
            camera_params: Camera intrinsics and distortion
            solver_config: Solver configuration (see config/solver_config.yaml)
        """
        solver_config = solver_config or {}

        self.K = camera_params.camera_matrix
        self.K_inv = camera_params.inverse_camera_matrix()
        self.dist_coeffs = camera_params.dist_coeffs
        self.undistort = camera_params.has_distortion

        self.square_solver = SquareHomographySolver(solver_config.get('square_homography'))
        self.dlt_solver = HomographyDLTSolver(solver_config.get('homography_dlt'))
        self.decomposer = PoseFromHomography(solver_config.get('pose_from_homography'))

    def undistort_points(self, image_points: np.ndarray) -> np.ndarray:
        """
        Remove lens distortion, keeping pixel units.

        Args:
            image_points: (N, 2) distorted pixel coordinates

        Returns:
            (N, 2) ideal pixel coordinates
        """
        if not self.undistort:
            return image_points

        undistorted = cv2.undistortPoints(
            image_points.reshape(-1, 1, 2),
            self.K,
            self.dist_coeffs,
            P=self.K
        )
        return undistorted.reshape(-1, 2)

    @staticmethod
    def plane_coordinates(object_points) -> np.ndarray:
        """
        Plane coordinates (N, 2) of the target points.

        3D points are accepted when they all lie on Z = 0.
        """
        points = np.asarray(object_points, dtype=np.float64)
        if points.ndim == 2 and points.shape[1] == 3:
            if not np.allclose(points[:, 2], 0.0):
                raise InvalidInput("3D object points must lie on the plane Z = 0")
            points = points[:, :2]
        return as_point_array(points, 'object points')

    def estimate(self, object_points, image_points) -> Dict:
        """
        Full pose estimation from N >= 4 correspondences.

        Args:
            object_points: Target points in plane coordinates (N, 2) or (N, 3) with Z = 0
            image_points: Observed pixel coordinates (N, 2)

        Returns:
            Dictionary with pose data
            {
                'pose': Pose (plane -> camera),
                'H': homography (3x3, plane -> undistorted pixels),
                'R': rotation matrix (3x3),
                'rvec': rotation vector (3x1),
                'tvec': translation vector (3x1),
                'distance': ||t||,
                'reprojection_error': mean pixel error,
                'conditioning': DLT conditioning indicator,
                'orthogonality_error': |r1 . r2| before correction,
                'method': 'homography_dlt'
            }
        """
        plane_points = self.plane_coordinates(object_points)
        image_points = as_point_array(image_points, 'image points')

        estimate = self.dlt_solver.estimate(plane_points, self.undistort_points(image_points))
        decomposition = self.decomposer.decompose(estimate.homography, self.K_inv)

        error = self.compute_reprojection_error(plane_points, image_points, decomposition.pose)
        return self._build_result(
            decomposition,
            estimate.homography,
            error,
            conditioning=estimate.conditioning,
            method='homography_dlt',
        )

    def estimate_square_marker(self, corners, marker_size: float) -> Dict:
        """
        Pose of a square marker from its 4 image corners.

        The corners must follow the canonical square order: counter-clockwise
        in plane coordinates, starting at (-s/2, -s/2).

        Args:
            corners: 4 image corners (4, 2)
            marker_size: Side length of the marker (metric units of the result)

        Returns:
            Dictionary with pose data (same keys as ``estimate``)
        """
        if marker_size <= 0:
            raise InvalidInput(f"marker_size must be positive, got {marker_size}")

        corners = as_point_array(corners, 'corners')
        H_unit = self.square_solver.solve(self.undistort_points(corners))

        # Plane coordinates in metres: unit square scaled by marker_size
        H = H_unit @ np.diag([1.0 / marker_size, 1.0 / marker_size, 1.0])
        decomposition = self.decomposer.decompose(H, self.K_inv)

        plane_points = SQUARE_CORNERS * marker_size
        error = self.compute_reprojection_error(plane_points, corners, decomposition.pose)

        return self._build_result(
            decomposition,
            H,
            error,
            conditioning=None,
            method='square_homography',
        )

    def compute_reprojection_error(
        self,
        object_points: np.ndarray,
        image_points: np.ndarray,
        pose: Pose
    ) -> float:
        """
        Compute reprojection error to validate pose.

        Args:
            object_points: Plane coordinates (N, 2)
            image_points: Observed 2D points (N, 2)
            pose: Plane-to-camera pose

        Returns:
            Mean reprojection error in pixels
        """
        object_points_3d = np.hstack([object_points, np.zeros((object_points.shape[0], 1))])

        projected, _ = cv2.projectPoints(
            object_points_3d,
            pose.rvec,
            pose.tvec,
            self.K,
            self.dist_coeffs
        )

        projected = projected.reshape(-1, 2)
        errors = np.linalg.norm(image_points - projected, axis=1)
        return float(np.mean(errors))

    @staticmethod
    def _build_result(
        decomposition: PoseEstimate,
        H: np.ndarray,
        error: float,
        conditioning: Optional[float],
        method: str
    ) -> Dict:
        pose = decomposition.pose
        logger.debug("%s pose: %r (reprojection error %.3f px)", method, pose, error)

        return {
            'pose': pose,
            'H': H,
            'R': pose.rotation_matrix,
            'rvec': pose.rvec,
            'tvec': pose.tvec,
            'distance': float(np.linalg.norm(pose.translation)),
            'reprojection_error': error,
            'conditioning': conditioning,
            'orthogonality_error': decomposition.orthogonality_error,
            'method': method,
        }
