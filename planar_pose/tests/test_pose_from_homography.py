"""
Tests for homography decomposition and the planar pose pipeline.
"""

import pytest
import numpy as np
import cv2
from scipy.spatial.transform import Rotation

from planar_pose.calibration.load_calibration import CameraParameters
from planar_pose.exceptions import (
    DegenerateHomography,
    InvalidInput,
    SingularIntrinsics,
)
from planar_pose.pose_estimation.homography_dlt import solve_homography_dlt
from planar_pose.pose_estimation.planar_pose_estimator import PlanarPoseEstimator
from planar_pose.pose_estimation.pose import Pose
from planar_pose.pose_estimation.pose_from_homography import (
    PoseEstimate,
    PoseFromHomography,
    orthonormalize_columns,
    pose_from_homography,
)
from planar_pose.pose_estimation.rotation import orthonormality_error
from planar_pose.pose_estimation.square_homography import SQUARE_CORNERS


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(1009)


@pytest.fixture
def camera_params():
    """Test camera parameters."""
    camera_matrix = np.array([
        [800.0, 0, 320.0],
        [0, 800.0, 240.0],
        [0, 0, 1]
    ], dtype=np.float64)

    return CameraParameters(
        camera_matrix=camera_matrix,
        dist_coeffs=np.zeros(5),
        resolution=(640, 480),
        fps=30.0
    )


def random_intrinsics(rng):
    K = np.eye(3)
    K[0, 0] = rng.uniform(500, 800)
    K[1, 1] = rng.uniform(500, 800)
    K[0, 2] = 320.0
    K[1, 2] = 240.0
    return K


def random_visible_pose(rng):
    """Random pose of a plane facing the camera with all of [-1, 1]^2 in front."""
    tilt = Rotation.from_rotvec(np.append(rng.uniform(-0.7, 0.7, 2), 0.0))
    spin = Rotation.from_euler('z', rng.uniform(-np.pi, np.pi))
    rotation = tilt * spin

    translation = np.append(rng.uniform(-2, 2, 2), rng.uniform(3, 10))
    return Pose(rotation.as_quat(), translation)


def project_plane_points(K, pose, plane_points):
    """Pinhole projection of (N, 2) plane points (Z = 0)."""
    points_3d = np.hstack([plane_points, np.zeros((plane_points.shape[0], 1))])
    camera_points = pose.transform(points_3d)
    pixels = camera_points @ K.T
    return pixels[:, :2] / pixels[:, 2:3]


def plane_homography(K, pose):
    """H = K [r1 r2 t] for a pose of the Z = 0 plane."""
    R = pose.rotation_matrix
    return K @ np.column_stack([R[:, 0], R[:, 1], pose.translation])


class TestPoseFromHomography:
    """Tests for PoseFromHomography."""

    def test_round_trip_through_dlt(self, rng):
        """Random pose -> projected points -> DLT -> decomposition -> same pose."""
        for _ in range(200):
            K = random_intrinsics(rng)
            pose_true = random_visible_pose(rng)
            n = rng.integers(10, 31)
            plane_points = rng.uniform(-1, 1, (n, 2))
            image_points = project_plane_points(K, pose_true, plane_points)

            H = solve_homography_dlt(plane_points, image_points)
            pose = pose_from_homography(H, np.linalg.inv(K))

            np.testing.assert_allclose(pose.translation, pose_true.translation, atol=1e-6)
            assert abs(np.dot(pose.rotation, pose_true.rotation)) > 1.0 - 1e-9

    def test_exact_homography(self, rng):
        """Decomposing K [r1 r2 t] returns the generating pose."""
        K = random_intrinsics(rng)
        pose_true = random_visible_pose(rng)

        pose = pose_from_homography(plane_homography(K, pose_true), np.linalg.inv(K))

        assert pose.isclose(pose_true, atol=1e-9)

    def test_orthonormal_rotation(self, rng):
        """R R^T = I and det R = +1, also for noisy homographies."""
        K = random_intrinsics(rng)
        K_inv = np.linalg.inv(K)

        for _ in range(100):
            H = plane_homography(K, random_visible_pose(rng))
            H = H * (1.0 + rng.normal(0, 0.02, (3, 3)))

            R = pose_from_homography(H, K_inv).rotation_matrix

            assert orthonormality_error(R) < 1e-6
            assert np.linalg.det(R) == pytest.approx(1.0, abs=1e-6)

    @pytest.mark.parametrize("scale", [1.0, 3.5, 1e-4, -1.0, -250.0])
    def test_scale_and_sign_of_h(self, rng, scale):
        """H is only defined up to scale and sign; the pose is not."""
        K = random_intrinsics(rng)
        pose_true = random_visible_pose(rng)

        pose = pose_from_homography(scale * plane_homography(K, pose_true), np.linalg.inv(K))

        assert pose.isclose(pose_true, atol=1e-8)
        assert pose.translation[2] > 0

    def test_positive_depth_selected(self, camera_params):
        """The mirrored solution behind the camera is rejected."""
        pose_true = Pose.from_rotation_matrix(np.diag([1.0, -1.0, -1.0]), [0.1, -0.2, 4.0])
        H = -plane_homography(camera_params.camera_matrix, pose_true)

        estimate = PoseFromHomography().decompose(H, camera_params.inverse_camera_matrix())

        assert isinstance(estimate, PoseEstimate)
        assert estimate.scale < 0
        assert estimate.pose.isclose(pose_true, atol=1e-9)

    def test_round_trip_with_negated_last_column(self, rng):
        """Intrinsics with negated principal point and K[2, 2] = -1, any orientation."""
        for _ in range(200):
            K = np.eye(3)
            K[0, 0] = rng.uniform(500, 800)
            K[1, 1] = rng.uniform(500, 800)
            K[0, 2] = -320.0
            K[1, 2] = -240.0
            K[2, 2] = -1.0

            rotation = Rotation.from_quat(rng.normal(size=4))
            translation = np.append(rng.uniform(-10, 10, 2), rng.uniform(1, 10))
            pose_true = Pose(rotation.as_quat(), translation)

            n = rng.integers(10, 31)
            plane_points = rng.uniform(-100, 100, (n, 2))
            image_points = project_plane_points(K, pose_true, plane_points)

            H = solve_homography_dlt(plane_points, image_points)
            pose = pose_from_homography(H, np.linalg.inv(K))

            difference = pose.matrix()[:3] - pose_true.matrix()[:3]
            assert np.max(np.abs(difference)) < 1e-6

    def test_forward_axis_selects_mirrored_solution(self, camera_params):
        """forward_axis = -1 returns the solution with the plane at negative Z."""
        rotation = Rotation.from_rotvec([0.2, -0.1, 0.4])
        pose_true = Pose(rotation.as_quat(), [0.3, 0.1, 6.0])
        H = plane_homography(camera_params.camera_matrix, pose_true)

        decomposer = PoseFromHomography({'forward_axis': -1})
        estimate = decomposer.decompose(H, camera_params.inverse_camera_matrix())

        np.testing.assert_allclose(estimate.pose.translation, -pose_true.translation, atol=1e-9)
        expected_R = pose_true.rotation_matrix @ np.diag([-1.0, -1.0, 1.0])
        np.testing.assert_allclose(estimate.pose.rotation_matrix, expected_R, atol=1e-9)
        assert estimate.scale < 0

    def test_rotation_near_180_degrees(self, camera_params):
        """Plane rotated by ~180 degrees about the optical axis."""
        R = Rotation.from_rotvec([0.0, 0.0, np.pi - 1e-9]).as_matrix()
        pose_true = Pose.from_rotation_matrix(R, [0.0, 0.0, 5.0])
        K = camera_params.camera_matrix

        pose = pose_from_homography(plane_homography(K, pose_true), np.linalg.inv(K))

        assert pose.isclose(pose_true, atol=1e-8)

    def test_diagnostics(self, rng):
        """Column ratio and orthogonality error report homography quality."""
        K = random_intrinsics(rng)
        H = plane_homography(K, random_visible_pose(rng))
        decomposer = PoseFromHomography()

        exact = decomposer.decompose(H, np.linalg.inv(K))
        assert exact.column_norm_ratio == pytest.approx(1.0)
        assert exact.orthogonality_error < 1e-9

        skewed = H.copy()
        skewed[:, 1] += 0.1 * H[:, 0]
        noisy = decomposer.decompose(skewed, np.linalg.inv(K))
        assert noisy.orthogonality_error > 0.05

    def test_singular_intrinsics(self):
        """A rank deficient K^-1 is rejected."""
        K_inv = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 0.0]])

        with pytest.raises(SingularIntrinsics):
            pose_from_homography(np.eye(3), K_inv)

    def test_non_finite_intrinsics(self):
        K_inv = np.eye(3)
        K_inv[0, 0] = np.inf

        with pytest.raises(SingularIntrinsics):
            pose_from_homography(np.eye(3), K_inv)

    def test_degenerate_homography(self):
        """A zero first column leaves the scale undefined."""
        H = np.array([[0.0, 1.0, 0.0], [0.0, 0.0, 0.0], [0.0, 0.0, 1.0]])

        with pytest.raises(DegenerateHomography):
            pose_from_homography(H, np.eye(3))

    def test_parallel_columns(self):
        """r1 and r2 cannot span a plane when parallel."""
        H = np.array([[1.0, 2.0, 0.0], [0.0, 0.0, 0.0], [0.0, 0.0, 1.0]])

        with pytest.raises(DegenerateHomography):
            pose_from_homography(H, np.eye(3))

    def test_invalid_homography_shape(self):
        with pytest.raises(InvalidInput):
            pose_from_homography(np.eye(2), np.eye(3))

    def test_invalid_forward_axis(self):
        with pytest.raises(InvalidInput):
            PoseFromHomography({'forward_axis': 0})


class TestOrthonormalizeColumns:
    """Tests for the symmetric column correction."""

    def test_orthonormal_input_unchanged(self):
        r1, r2 = orthonormalize_columns(np.array([1.0, 0.0, 0.0]), np.array([0.0, 1.0, 0.0]))

        np.testing.assert_allclose(r1, [1.0, 0.0, 0.0], atol=1e-15)
        np.testing.assert_allclose(r2, [0.0, 1.0, 0.0], atol=1e-15)

    def test_error_split_evenly(self):
        """Both vectors rotate by the same angle towards orthogonality."""
        angle = np.deg2rad(80.0)
        a = np.array([1.0, 0.0, 0.0])
        b = np.array([np.cos(angle), np.sin(angle), 0.0])

        r1, r2 = orthonormalize_columns(a, b)

        assert np.dot(r1, r2) == pytest.approx(0.0, abs=1e-15)
        assert np.linalg.norm(r1) == pytest.approx(1.0)
        assert np.linalg.norm(r2) == pytest.approx(1.0)
        assert np.arccos(np.dot(r1, a)) == pytest.approx(np.arccos(np.dot(r2, b)))
        assert np.arccos(np.dot(r1, a)) == pytest.approx(np.deg2rad(5.0))


class TestPlanarPoseEstimator:
    """Tests for the end-to-end estimator."""

    def test_estimate_from_correspondences(self, camera_params, rng):
        """Pose, homography and reprojection error from projected points."""
        estimator = PlanarPoseEstimator(camera_params)
        pose_true = random_visible_pose(rng)
        plane_points = rng.uniform(-1, 1, (12, 2))
        image_points = project_plane_points(camera_params.camera_matrix, pose_true, plane_points)

        result = estimator.estimate(plane_points, image_points)

        assert result['method'] == 'homography_dlt'
        assert result['pose'].isclose(pose_true, atol=1e-6)
        assert result['rvec'].shape == (3, 1)
        assert result['tvec'].shape == (3, 1)
        assert result['R'].shape == (3, 3)
        assert result['distance'] == pytest.approx(np.linalg.norm(pose_true.translation))
        assert result['reprojection_error'] < 1e-6
        assert result['conditioning'] > 0

    def test_accepts_3d_object_points(self, camera_params, rng):
        """Object points on Z = 0 can be given in 3D."""
        estimator = PlanarPoseEstimator(camera_params)
        pose_true = random_visible_pose(rng)
        plane_points = rng.uniform(-1, 1, (8, 2))
        image_points = project_plane_points(camera_params.camera_matrix, pose_true, plane_points)
        object_points = np.hstack([plane_points, np.zeros((8, 1))])

        result = estimator.estimate(object_points, image_points)

        assert result['pose'].isclose(pose_true, atol=1e-6)

    def test_rejects_non_planar_object_points(self, camera_params):
        estimator = PlanarPoseEstimator(camera_params)
        object_points = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0.5], [0, 1, 0]], dtype=float)

        with pytest.raises(InvalidInput):
            estimator.estimate(object_points, np.zeros((4, 2)))

    def test_square_marker(self, camera_params, rng):
        """Metric pose of a 5 cm square marker from its corners."""
        estimator = PlanarPoseEstimator(camera_params)
        marker_size = 0.05
        rotation = Rotation.from_rotvec([0.3, -0.2, 0.9]).as_quat()
        pose_true = Pose(rotation, [0.02, -0.01, 0.4])
        corners = project_plane_points(
            camera_params.camera_matrix, pose_true, SQUARE_CORNERS * marker_size
        )

        result = estimator.estimate_square_marker(corners, marker_size)

        assert result['method'] == 'square_homography'
        assert result['pose'].isclose(pose_true, atol=1e-8)
        assert result['reprojection_error'] < 1e-6
        assert result['conditioning'] is None

    def test_square_marker_size_must_be_positive(self, camera_params):
        estimator = PlanarPoseEstimator(camera_params)

        with pytest.raises(InvalidInput):
            estimator.estimate_square_marker(SQUARE_CORNERS, 0.0)

    def test_distorted_image_points(self, rng):
        """Lens distortion is removed before estimating the homography."""
        camera_params = CameraParameters(
            camera_matrix=np.array([[700.0, 0, 320.0], [0, 700.0, 240.0], [0, 0, 1]]),
            dist_coeffs=np.array([-0.05, 0.01, 0.0, 0.0]),
        )
        estimator = PlanarPoseEstimator(camera_params)
        pose_true = Pose(Rotation.from_rotvec([0.1, 0.2, 0.0]).as_quat(), [0.1, 0.0, 5.0])
        plane_points = rng.uniform(-1, 1, (20, 2))

        image_points, _ = cv2.projectPoints(
            np.hstack([plane_points, np.zeros((20, 1))]),
            pose_true.rvec,
            pose_true.tvec,
            camera_params.camera_matrix,
            camera_params.dist_coeffs
        )
        result = estimator.estimate(plane_points, image_points.reshape(-1, 2))

        np.testing.assert_allclose(result['pose'].translation, pose_true.translation, atol=1e-3)
        assert result['reprojection_error'] < 1e-2

    def test_singular_camera_matrix(self):
        camera_params = CameraParameters(camera_matrix=np.zeros((3, 3)), dist_coeffs=np.zeros(5))

        with pytest.raises(SingularIntrinsics):
            PlanarPoseEstimator(camera_params)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
