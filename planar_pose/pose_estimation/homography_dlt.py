"""
Homography DLT Solver - normalised Direct Linear Transform.

Estimates H from N >= 4 correspondences such that

    destination ~ H * source        (homogeneous coordinates)

Pipeline:
1. Condition both point sets (centroid at origin, mean distance sqrt(2))
2. Stack two cross-product constraints per correspondence (2N x 9)
3. Take the right singular vector of the smallest singular value
4. Undo the conditioning: H = T_dst^-1 * H_n * T_src
5. Fix the scale (H[2, 2] = 1)

The conditioning step is required for accuracy with pixel coordinates, not
an optimisation.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from planar_pose.exceptions import DegenerateConfiguration, InsufficientCorrespondences, InvalidInput
from planar_pose.pose_estimation.projective import as_point_array, normalize_homography

logger = logging.getLogger(__name__)

MIN_CORRESPONDENCES = 4
NORMALIZED_MEAN_DISTANCE = np.sqrt(2.0)


@dataclass(frozen=True, eq=False)
class HomographyEstimate:
    """
    DLT result with conditioning information.

    Attributes:
        homography:          H (3, 3), H[2, 2] = 1 where possible
        singular_values:     Singular values of the conditioned system,
                             descending, always 9 entries (0 padded for N = 4)
        conditioning:        sigma_8 / sigma_1. Close to 0 means the
                             solution is barely determined
        residual:            sigma_9 / sigma_1, algebraic fit error (0 for an
                             exact fit)
        num_correspondences: N
    """
    homography: np.ndarray
    singular_values: np.ndarray
    conditioning: float
    residual: float
    num_correspondences: int


def normalizing_transform(points: np.ndarray) -> np.ndarray:
    """
    Similarity moving the centroid to the origin with mean distance sqrt(2).

    Args:
        points: (N, 2)

    Returns:
        T (3, 3)

    Raises:
        DegenerateConfiguration: if all points coincide
    """
    centroid = points.mean(axis=0)
    mean_distance = np.mean(np.linalg.norm(points - centroid, axis=1))

    scale_ref = max(1.0, float(np.max(np.abs(points))))
    if mean_distance <= 1e-12 * scale_ref:
        raise DegenerateConfiguration("all points coincide")

    s = NORMALIZED_MEAN_DISTANCE / mean_distance
    return np.array([
        [s,   0.0, -s * centroid[0]],
        [0.0, s,   -s * centroid[1]],
        [0.0, 0.0, 1.0],
    ])


def apply_similarity(T: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply an affine 3x3 transform (last row [0, 0, 1]) to (N, 2) points."""
    return points @ T[:2, :2].T + T[:2, 2]


def build_dlt_system(source: np.ndarray, destination: np.ndarray) -> np.ndarray:
    """
    Coefficient matrix (2N, 9) of destination x (H * source) = 0.

    H is flattened row-major. For (x, y) -> (u, v) the rows are

        [0, 0, 0, -x, -y, -1,  v*x,  v*y,  v]
        [x, y, 1,  0,  0,  0, -u*x, -u*y, -u]
    """
    n = source.shape[0]
    x, y = source[:, 0], source[:, 1]
    u, v = destination[:, 0], destination[:, 1]
    zeros = np.zeros(n)
    ones = np.ones(n)

    A = np.empty((2 * n, 9))
    A[0::2] = np.column_stack([zeros, zeros, zeros, -x, -y, -ones, v * x, v * y, v])
    A[1::2] = np.column_stack([x, y, ones, zeros, zeros, zeros, -u * x, -u * y, -u])
    return A


class HomographyDLTSolver:
    """
    General homography estimation from four or more correspondences.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Args:
            config: 'homography_dlt' section of the solver configuration
        """
        config = config or {}
        self.degeneracy_tolerance = float(config.get('degeneracy_tolerance', 1e-8))

    def _validate(self, source, destination) -> Tuple[np.ndarray, np.ndarray]:
        source = as_point_array(source, 'source points')
        destination = as_point_array(destination, 'destination points')

        if source.shape[0] != destination.shape[0]:
            raise InvalidInput(
                f"correspondence sets differ in length: "
                f"{source.shape[0]} source vs {destination.shape[0]} destination"
            )
        if source.shape[0] < MIN_CORRESPONDENCES:
            raise InsufficientCorrespondences(
                f"at least {MIN_CORRESPONDENCES} correspondences are required, "
                f"got {source.shape[0]}"
            )
        return source, destination

    def estimate(self, source, destination) -> HomographyEstimate:
        """
        Estimate H with conditioning diagnostics.

        Args:
            source: Points in the source plane (N, 2)
            destination: Corresponding points (N, 2)

        Returns:
            HomographyEstimate

        Raises:
            InvalidInput, InsufficientCorrespondences, DegenerateConfiguration
        """
        source, destination = self._validate(source, destination)
        n = source.shape[0]

        T_src = normalizing_transform(source)
        T_dst = normalizing_transform(destination)

        A = build_dlt_system(
            apply_similarity(T_src, source),
            apply_similarity(T_dst, destination),
        )

        _, s, Vt = np.linalg.svd(A, full_matrices=True)
        H_n = Vt[-1].reshape(3, 3)

        # For N = 4 the system is 8 x 9 and the 9th singular value is 0
        singular_values = np.zeros(9)
        singular_values[:s.shape[0]] = s

        conditioning = singular_values[7] / singular_values[0]
        residual = singular_values[8] / singular_values[0]
        logger.debug("DLT with %d points: conditioning=%.3g residual=%.3g",
                     n, conditioning, residual)

        if conditioning < self.degeneracy_tolerance:
            raise DegenerateConfiguration(
                f"correspondences do not determine a unique homography "
                f"(conditioning {conditioning:.3g}); are the points collinear?"
            )

        # H_n has unit Frobenius norm, so |det| compares against 1
        if abs(np.linalg.det(H_n)) < self.degeneracy_tolerance:
            raise DegenerateConfiguration(
                "estimated homography is singular; destination points may be collinear"
            )

        H = np.linalg.inv(T_dst) @ H_n @ T_src
        H = normalize_homography(H)

        return HomographyEstimate(
            homography=H,
            singular_values=singular_values,
            conditioning=float(conditioning),
            residual=float(residual),
            num_correspondences=n,
        )

    def solve(self, source, destination) -> np.ndarray:
        """Homography (3, 3) mapping source points to destination points."""
        return self.estimate(source, destination).homography


def solve_homography_dlt(source_points, destination_points) -> np.ndarray:
    """
    Normalised DLT homography from N >= 4 correspondences.

    Args:
        source_points: (N, 2)
        destination_points: (N, 2), index i pairs with source_points[i]

    Returns:
        Homography (3, 3), defined up to scale (returned with H[2, 2] = 1)
    """
    return HomographyDLTSolver().solve(source_points, destination_points)
