"""
Rotation helpers - conversions between 3x3 rotation matrices and unit quaternions.

Quaternions are stored scalar-last, ``[x, y, z, w]``, which is the order used
by ``scipy.spatial.transform.Rotation`` and by the pose vector form.
"""

import numpy as np
from scipy.spatial.transform import Rotation

from planar_pose.exceptions import InvalidInput


def rotation_matrix_to_quaternion(R: np.ndarray) -> np.ndarray:
    """
    Convert a proper rotation matrix to a unit quaternion.

    The branch is chosen on the largest of the trace and the three diagonal
    entries so the square root argument never falls near zero. Rotations
    close to 180 degrees (trace near -1) always land in one of the diagonal
    branches.

    Args:
        R: Rotation matrix (3, 3), orthonormal with det = +1

    Returns:
        Quaternion [x, y, z, w] with w >= 0
    """
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3):
        raise InvalidInput(f"rotation matrix must be (3, 3), got {R.shape}")

    trace = R[0, 0] + R[1, 1] + R[2, 2]
    candidates = (trace, R[0, 0], R[1, 1], R[2, 2])
    branch = int(np.argmax(candidates))

    if branch == 0:
        s = 2.0 * np.sqrt(1.0 + trace)
        w = 0.25 * s
        x = (R[2, 1] - R[1, 2]) / s
        y = (R[0, 2] - R[2, 0]) / s
        z = (R[1, 0] - R[0, 1]) / s
    elif branch == 1:
        s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        w = (R[2, 1] - R[1, 2]) / s
        x = 0.25 * s
        y = (R[0, 1] + R[1, 0]) / s
        z = (R[0, 2] + R[2, 0]) / s
    elif branch == 2:
        s = 2.0 * np.sqrt(1.0 - R[0, 0] + R[1, 1] - R[2, 2])
        w = (R[0, 2] - R[2, 0]) / s
        x = (R[0, 1] + R[1, 0]) / s
        y = 0.25 * s
        z = (R[1, 2] + R[2, 1]) / s
    else:
        s = 2.0 * np.sqrt(1.0 - R[0, 0] - R[1, 1] + R[2, 2])
        w = (R[1, 0] - R[0, 1]) / s
        x = (R[0, 2] + R[2, 0]) / s
        y = (R[1, 2] + R[2, 1]) / s
        z = 0.25 * s

    q = np.array([x, y, z, w], dtype=np.float64)
    q /= np.linalg.norm(q)

    # q and -q are the same rotation
    if q[3] < 0:
        q = -q
    return q


def quaternion_to_rotation_matrix(q: np.ndarray) -> np.ndarray:
    """Rotation matrix (3, 3) of a quaternion [x, y, z, w]."""
    return Rotation.from_quat(np.asarray(q, dtype=np.float64)).as_matrix()


def orthonormality_error(R: np.ndarray) -> float:
    """Largest absolute entry of R @ R.T - I."""
    R = np.asarray(R, dtype=np.float64)
    return float(np.max(np.abs(R @ R.T - np.eye(3))))
