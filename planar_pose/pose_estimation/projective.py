"""
Projective helpers shared by the homography solvers.

Point sequences are (N, 2) float64 arrays. OpenCV style (N, 1, 2) arrays and
plain lists of pairs are accepted and flattened.
"""

import numpy as np

from planar_pose.exceptions import InvalidInput

# Below this fraction of the Frobenius norm, H[2, 2] is not used for scaling
_BOTTOM_RIGHT_EPS = 1e-12


def as_point_array(points, name: str = 'points') -> np.ndarray:
    """
    Validate and convert a point sequence to an (N, 2) float64 array.

    Raises:
        InvalidInput: if the data is not a list of finite 2D points
    """
    array = np.asarray(points, dtype=np.float64)

    if array.ndim == 3 and array.shape[1] == 1:
        array = array.reshape(-1, array.shape[2])

    if array.ndim != 2 or array.shape[1] != 2:
        raise InvalidInput(f"{name} must have shape (N, 2), got {array.shape}")

    if not np.all(np.isfinite(array)):
        raise InvalidInput(f"{name} contains non-finite coordinates")

    return array


def as_matrix3x3(matrix, name: str = 'matrix') -> np.ndarray:
    array = np.asarray(matrix, dtype=np.float64)
    if array.shape != (3, 3):
        raise InvalidInput(f"{name} must be (3, 3), got {array.shape}")
    if not np.all(np.isfinite(array)):
        raise InvalidInput(f"{name} contains non-finite values")
    return array


def to_homogeneous(points: np.ndarray) -> np.ndarray:
    """(N, 2) -> (N, 3) with a trailing column of ones."""
    return np.hstack([points, np.ones((points.shape[0], 1))])


def transform_points(H: np.ndarray, points) -> np.ndarray:
    """
    Map 2D points through a homography.

    Args:
        H: Homography (3, 3)
        points: Points (N, 2)

    Returns:
        Transformed points (N, 2)
    """
    H = as_matrix3x3(H, 'homography')
    points = as_point_array(points)

    mapped = to_homogeneous(points) @ H.T
    return mapped[:, :2] / mapped[:, 2:3]


def normalize_homography(H: np.ndarray) -> np.ndarray:
    """
    Fix the free scale of a homography.

    The package convention is H[2, 2] == 1. When H[2, 2] is negligible
    (the origin maps to infinity) the matrix is scaled to unit Frobenius
    norm instead, with the sign chosen so the largest entry is positive.
    """
    H = np.asarray(H, dtype=np.float64)
    frobenius = np.linalg.norm(H)

    if abs(H[2, 2]) > _BOTTOM_RIGHT_EPS * frobenius:
        return H / H[2, 2]

    largest = H.flat[np.argmax(np.abs(H))]
    return H / (frobenius * np.sign(largest))


def homography_difference(H1: np.ndarray, H2: np.ndarray) -> float:
    """
    Scale-independent distance between two homographies.

    Both matrices are scaled to unit Frobenius norm; the result is the
    Frobenius norm of their difference under the better of the two signs.
    """
    A = np.asarray(H1, dtype=np.float64)
    B = np.asarray(H2, dtype=np.float64)
    A = A / np.linalg.norm(A)
    B = B / np.linalg.norm(B)
    return float(min(np.linalg.norm(A - B), np.linalg.norm(A + B)))


def triangle_area(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray) -> float:
    """Unsigned area of the triangle p0, p1, p2."""
    u = p1 - p0
    v = p2 - p0
    return 0.5 * abs(u[0] * v[1] - u[1] * v[0])
