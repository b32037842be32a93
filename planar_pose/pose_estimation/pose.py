"""
Pose - 6D rigid transform composed from a unit quaternion and a translation.

A pose P maps coordinates from a frame B into a frame A:

    x_A = R_P x_B + t_P

The vector form used for persistence is ordered
[tx, ty, tz, qx, qy, qz, qw].
"""

from dataclasses import dataclass
from typing import Union

import cv2
import numpy as np
from scipy.spatial.transform import Rotation, Slerp

from planar_pose.exceptions import InvalidInput
from planar_pose.pose_estimation.rotation import (
    quaternion_to_rotation_matrix,
    rotation_matrix_to_quaternion,
)


def _frozen(array: np.ndarray) -> np.ndarray:
    array = np.array(array, dtype=np.float64)
    array.flags.writeable = False
    return array


@dataclass(frozen=True, eq=False)
class Pose:
    """
    Immutable rigid pose.

    Attributes:
        rotation:    Unit quaternion [x, y, z, w], read-only array (4,)
        translation: Translation vector, read-only array (3,)
    """
    rotation: np.ndarray
    translation: np.ndarray

    def __post_init__(self):
        q = np.asarray(self.rotation, dtype=np.float64).reshape(-1)
        t = np.asarray(self.translation, dtype=np.float64).reshape(-1)

        if q.shape != (4,):
            raise InvalidInput(f"rotation must be a quaternion (4,), got {q.shape}")
        if t.shape != (3,):
            raise InvalidInput(f"translation must be (3,), got {t.shape}")
        if not (np.all(np.isfinite(q)) and np.all(np.isfinite(t))):
            raise InvalidInput("pose contains non-finite values")

        norm = np.linalg.norm(q)
        if norm < 1e-12:
            raise InvalidInput("rotation quaternion has zero norm")

        object.__setattr__(self, 'rotation', _frozen(q / norm))
        object.__setattr__(self, 'translation', _frozen(t))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def identity(cls) -> 'Pose':
        return cls(np.array([0.0, 0.0, 0.0, 1.0]), np.zeros(3))

    @classmethod
    def from_rotation_matrix(cls, R: np.ndarray, translation: np.ndarray) -> 'Pose':
        """Build a pose from a 3x3 rotation matrix and a translation."""
        return cls(rotation_matrix_to_quaternion(R), translation)

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> 'Pose':
        """
        Build a pose from a homogeneous 4x4 (or 3x4) transform.

        Args:
            matrix: [R | t] with R a proper rotation

        Returns:
            Pose
        """
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.shape not in ((3, 4), (4, 4)):
            raise InvalidInput(f"pose matrix must be (3, 4) or (4, 4), got {matrix.shape}")
        return cls.from_rotation_matrix(matrix[:3, :3], matrix[:3, 3])

    @classmethod
    def from_rvec_tvec(cls, rvec: np.ndarray, tvec: np.ndarray) -> 'Pose':
        """Build a pose from OpenCV Rodrigues rotation and translation vectors."""
        R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
        return cls.from_rotation_matrix(R, np.asarray(tvec).reshape(3))

    @classmethod
    def from_vector(cls, vector) -> 'Pose':
        """Inverse of ``to_vector``: [tx, ty, tz, qx, qy, qz, qw]."""
        v = np.asarray(vector, dtype=np.float64).reshape(-1)
        if v.shape != (7,):
            raise InvalidInput(f"pose vector must have 7 elements, got {v.shape}")
        return cls(v[3:7], v[0:3])

    # ------------------------------------------------------------------
    # Representations
    # ------------------------------------------------------------------

    @property
    def rotation_matrix(self) -> np.ndarray:
        return quaternion_to_rotation_matrix(self.rotation)

    @property
    def rvec(self) -> np.ndarray:
        """Rodrigues rotation vector (3, 1), OpenCV convention."""
        rvec, _ = cv2.Rodrigues(self.rotation_matrix)
        return rvec

    @property
    def tvec(self) -> np.ndarray:
        """Translation as an OpenCV column vector (3, 1)."""
        return self.translation.reshape(3, 1).copy()

    def matrix(self) -> np.ndarray:
        """Homogeneous 4x4 transform."""
        T = np.eye(4)
        T[:3, :3] = self.rotation_matrix
        T[:3, 3] = self.translation
        return T

    def to_vector(self) -> np.ndarray:
        """Ordered fields [tx, ty, tz, qx, qy, qz, qw]."""
        return np.concatenate([self.translation, self.rotation])

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def compose(self, other: 'Pose') -> 'Pose':
        """
        Chain two poses.

        If self maps B to A and other maps C to B, the result maps C to A.
        """
        r_self = Rotation.from_quat(self.rotation)
        rotation = r_self * Rotation.from_quat(other.rotation)
        translation = r_self.apply(np.array(other.translation)) + self.translation
        return Pose(rotation.as_quat(), translation)

    def transform(self, points: np.ndarray) -> np.ndarray:
        """
        Apply the pose to a point (3,) or to an array of points (N, 3).
        """
        points = np.asarray(points, dtype=np.float64)
        if points.shape[-1] != 3:
            raise InvalidInput(f"points must have 3 coordinates, got shape {points.shape}")
        return Rotation.from_quat(self.rotation).apply(points) + self.translation

    def inverse(self) -> 'Pose':
        r_inv = Rotation.from_quat(self.rotation).inv()
        return Pose(r_inv.as_quat(), -r_inv.apply(np.array(self.translation)))

    def scaled(self, factor: float) -> 'Pose':
        """Same rotation, translation multiplied by ``factor``."""
        return Pose(self.rotation, self.translation * factor)

    def __mul__(self, other: Union['Pose', np.ndarray]):
        if isinstance(other, Pose):
            return self.compose(other)
        return self.transform(other)

    def __invert__(self) -> 'Pose':
        return self.inverse()

    def isclose(self, other: 'Pose', atol: float = 1e-6) -> bool:
        """
        Compare two poses, treating q and -q as the same rotation.
        """
        same_translation = np.allclose(self.translation, other.translation, atol=atol)
        dot = abs(float(np.dot(self.rotation, other.rotation)))
        return bool(same_translation and dot >= 1.0 - atol)

    def __repr__(self) -> str:
        t = ', '.join(f"{v:.6g}" for v in self.translation)
        q = ', '.join(f"{v:.6g}" for v in self.rotation)
        return f"Pose(translation=[{t}], rotation=[{q}])"


def linear_interpolate(first: Pose, second: Pose, t: float) -> Pose:
    """
    Interpolate between two poses.

    Rotation uses SLERP, translation is interpolated linearly.

    Args:
        first:  Pose at t = 0
        second: Pose at t = 1
        t:      Interpolation point in [0, 1]

    Returns:
        Interpolated pose
    """
    if not 0.0 <= t <= 1.0:
        raise InvalidInput(f"interpolation point must be in [0, 1], got {t}")

    rotations = Rotation.from_quat(np.vstack([first.rotation, second.rotation]))
    slerp = Slerp([0.0, 1.0], rotations)
    rotation = slerp([t])[0]

    translation = (1.0 - t) * first.translation + t * second.translation
    return Pose(rotation.as_quat(), translation)
