"""
Square Homography Solver - closed form homography for square targets.

The source plane is the canonical unit square centred on the origin, so
only the four destination corners are needed (e.g. the corners of a
detected square marker). Fixing H[2, 2] = 1 leaves 8 unknowns, and the
four corners give exactly 8 linear equations:

    [u v 1 0 0 0 -u*x -v*x] h = x
    [0 0 0 u v 1 -u*y -v*y] h = y

with (u, v) a square corner and (x, y) its image.
"""

import logging
from itertools import combinations
from typing import Dict, Optional

import numpy as np

from planar_pose.exceptions import DegenerateConfiguration, InvalidInput
from planar_pose.pose_estimation.projective import as_point_array, triangle_area

logger = logging.getLogger(__name__)


# Canonical square, counter-clockwise starting bottom-left
SQUARE_CORNERS = np.array([
    [-0.5, -0.5],
    [ 0.5, -0.5],
    [ 0.5,  0.5],
    [-0.5,  0.5],
], dtype=np.float64)
SQUARE_CORNERS.flags.writeable = False


def _square_system_rows() -> np.ndarray:
    """
    Corner-only part of the 8x8 coefficient matrix.

    Columns 6 and 7 depend on the destination and are filled per call.
    """
    rows = np.zeros((8, 8))
    for i, (u, v) in enumerate(SQUARE_CORNERS):
        rows[2 * i, 0:3] = [u, v, 1.0]
        rows[2 * i + 1, 3:6] = [u, v, 1.0]
    return rows


_SQUARE_ROWS = _square_system_rows()


class SquareHomographySolver:
    """
    Computes the homography mapping the canonical square onto 4 image points.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Args:
            config: 'square_homography' section of the solver configuration
        """
        config = config or {}
        # Triangles smaller than this fraction of extent**2 count as collinear
        self.collinearity_tolerance = float(config.get('collinearity_tolerance', 1e-9))

    def check_corners(self, corners: np.ndarray):
        """
        Reject corner sets where three points are collinear or coincident.

        Args:
            corners: Destination corners (4, 2)

        Raises:
            DegenerateConfiguration
        """
        extent = np.max(np.ptp(corners, axis=0))
        if extent == 0.0:
            raise DegenerateConfiguration("all four corners coincide")

        limit = self.collinearity_tolerance * extent * extent
        for i, j, k in combinations(range(4), 3):
            area = triangle_area(corners[i], corners[j], corners[k])
            if area <= limit:
                raise DegenerateConfiguration(
                    f"corners {i}, {j}, {k} are collinear or coincident "
                    f"(triangle area {area:.3g})"
                )

    def solve(self, corners) -> np.ndarray:
        """
        Solve for H such that H maps SQUARE_CORNERS[i] to corners[i].

        Args:
            corners: 4 destination points (4, 2), same order as SQUARE_CORNERS

        Returns:
            Homography (3, 3) with H[2, 2] = 1
        """
        corners = as_point_array(corners, 'corners')
        if corners.shape[0] != 4:
            raise InvalidInput(f"exactly 4 corners are required, got {corners.shape[0]}")

        self.check_corners(corners)

        A = _SQUARE_ROWS.copy()
        b = corners.reshape(-1)
        for i, (u, v) in enumerate(SQUARE_CORNERS):
            x, y = corners[i]
            A[2 * i, 6:8] = [-u * x, -v * x]
            A[2 * i + 1, 6:8] = [-u * y, -v * y]

        try:
            h = np.linalg.solve(A, b)
        except np.linalg.LinAlgError as e:
            # Reachable when the square centre maps to infinity
            raise DegenerateConfiguration(f"square homography system is singular: {e}") from e

        H = np.append(h, 1.0).reshape(3, 3)
        logger.debug("square homography:\n%s", H)
        return H


def solve_square_homography(corners) -> np.ndarray:
    """
    Homography from the canonical unit square to 4 destination corners.

    Args:
        corners: (4, 2) points matching SQUARE_CORNERS order

    Returns:
        Homography (3, 3), H[2, 2] = 1
    """
    return SquareHomographySolver().solve(corners)
