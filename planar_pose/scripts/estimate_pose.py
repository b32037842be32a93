#!/usr/bin/env python3
"""
Script to estimate homographies and planar poses from point correspondences.

Usage:
    python -m planar_pose.scripts.estimate_pose --correspondences data/frames.npz \
                                                --camera-config config/camera_config.yaml \
                                                --output results/poses.npz

    python -m planar_pose.scripts.estimate_pose --correspondences corners.txt \
                                                --calibration camera1.npz \
                                                --marker-size 0.05
"""

import argparse
import logging
import sys
from typing import List, Optional

import numpy as np
from tqdm import tqdm

from planar_pose.calibration.load_calibration import (
    CameraParameters,
    load_camera_calibration,
    load_camera_from_config,
)
from planar_pose.exceptions import PlanarPoseError
from planar_pose.pose_estimation.homography_dlt import HomographyDLTSolver
from planar_pose.pose_estimation.planar_pose_estimator import PlanarPoseEstimator
from planar_pose.utils.config_loader import load_config, load_solver_config
from planar_pose.utils.data_io import load_correspondences, save_all_poses

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Estimate homographies and planar target poses from correspondences',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--correspondences',
        type=str,
        required=True,
        help='.npz with source/destination arrays (N, 2) or (F, N, 2), '
             'or a text file with columns x y u v'
    )

    camera = parser.add_mutually_exclusive_group()
    camera.add_argument(
        '--calibration',
        type=str,
        help='Camera calibration file (.npy / .npz)'
    )
    camera.add_argument(
        '--camera-config',
        type=str,
        help='Camera configuration YAML (camera_config.yaml)'
    )

    parser.add_argument(
        '--solver-config',
        type=str,
        default=None,
        help='Solver tolerances YAML (default: built-in values)'
    )

    parser.add_argument(
        '--marker-size',
        type=float,
        default=None,
        help='Treat destinations as 4 corners of a square marker of this side length'
    )

    parser.add_argument(
        '--output',
        type=str,
        default=None,
        help='Output .npz with poses and homographies'
    )

    parser.add_argument(
        '--fail-fast',
        action='store_true',
        help='Stop at the first frame that cannot be solved'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Debug logging'
    )

    return parser.parse_args(argv)


def load_camera(args) -> Optional[CameraParameters]:
    """Camera parameters from the command line, None if no camera was given."""
    if args.calibration:
        return load_camera_calibration(args.calibration)
    if args.camera_config:
        return load_camera_from_config(load_config(args.camera_config))
    return None


def as_frames(source: np.ndarray, destination: np.ndarray):
    """Split correspondences into a list of (source, destination) frames."""
    if destination.ndim == 2:
        return [(source, destination)]
    return list(zip(source, destination))


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    try:
        source, destination = load_correspondences(args.correspondences)
        camera_params = load_camera(args)
        solver_config = load_solver_config(args.solver_config)
    except (FileNotFoundError, ValueError) as e:
        print(f"\n❌ ERROR: {e}")
        return 1

    if args.marker_size is not None and camera_params is None:
        print("\n❌ ERROR: --marker-size requires --calibration or --camera-config")
        return 1

    frames = as_frames(source, destination)

    print("=" * 60)
    print("PLANAR POSE ESTIMATION")
    print("=" * 60)
    print(f"Correspondences: {args.correspondences}")
    print(f"Frames: {len(frames)}")
    print(f"Camera: {'yes' if camera_params is not None else 'no (homography only)'}")
    print("=" * 60)

    estimator = None
    if camera_params is not None:
        try:
            estimator = PlanarPoseEstimator(camera_params, solver_config)
        except PlanarPoseError as e:
            print(f"\n❌ ERROR: {e}")
            return 1
    dlt_solver = HomographyDLTSolver(solver_config['homography_dlt'])

    poses = []
    homographies = []
    errors = []
    failed = 0

    for frame_idx, (src, dst) in enumerate(tqdm(frames, desc="Estimating", unit="frame")):
        try:
            if estimator is None:
                result = {'H': dlt_solver.solve(src, dst), 'pose': None}
            elif args.marker_size is not None:
                result = estimator.estimate_square_marker(dst, args.marker_size)
            else:
                result = estimator.estimate(src, dst)
        except PlanarPoseError as e:
            logger.warning("frame %d: %s: %s", frame_idx, type(e).__name__, e)
            failed += 1
            poses.append(None)
            homographies.append(None)
            if args.fail_fast:
                break
            continue

        poses.append(result['pose'])
        homographies.append(result['H'])
        if 'reprojection_error' in result:
            errors.append(result['reprojection_error'])

    if len(frames) == 1 and homographies and homographies[0] is not None:
        print("\nH =")
        print(np.array2string(homographies[0], precision=6, suppress_small=True))
        if poses[0] is not None:
            print(f"\n{poses[0]!r}")

    print("\n" + "=" * 60)
    print(f"Solved: {len(frames) - failed}/{len(frames)}")
    if errors:
        print(f"Mean reprojection error: {np.mean(errors):.3f} px")
    print("=" * 60)

    if args.output:
        save_all_poses(poses, args.output, homographies)
        print(f"Results saved to: {args.output}")

    return 0 if failed == 0 else 1


if __name__ == '__main__':
    sys.exit(main())
