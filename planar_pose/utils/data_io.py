"""
Data I/O - loading correspondences, saving and loading estimation results.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from planar_pose.pose_estimation.pose import Pose

logger = logging.getLogger(__name__)


def load_correspondences(input_path: str) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load point correspondences.

    Supported formats:
        .npz  – arrays 'source' and 'destination', shape (N, 2) for a single
                frame or (F, N, 2) for a batch of frames
        other – text file with 4 columns 'x y u v' (whitespace or comma
                separated, '#' comments), one correspondence per row

    Args:
        input_path: Path of the correspondence file

    Returns:
        Tuple (source, destination)

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file content has the wrong layout
    """
    input_file = Path(input_path)
    if not input_file.exists():
        raise FileNotFoundError(f"Correspondence file not found: {input_path}")

    if input_file.suffix == '.npz':
        with np.load(input_file) as data:
            missing = {'source', 'destination'} - set(data.files)
            if missing:
                raise ValueError(f"{input_path} is missing arrays: {sorted(missing)}")
            source = np.asarray(data['source'], dtype=np.float64)
            destination = np.asarray(data['destination'], dtype=np.float64)
    else:
        delimiter = ',' if input_file.suffix == '.csv' else None
        table = np.loadtxt(input_file, delimiter=delimiter, comments='#', ndmin=2)
        if table.shape[1] != 4:
            raise ValueError(
                f"{input_path} must have 4 columns (x y u v), got {table.shape[1]}"
            )
        source, destination = table[:, :2], table[:, 2:]

    if source.shape != destination.shape:
        raise ValueError(
            f"source {source.shape} and destination {destination.shape} shapes differ"
        )

    return source, destination


def save_homography(H: np.ndarray, output_path: str, metadata: Optional[dict] = None):
    """
    Save a homography matrix.

    Args:
        H: Homography (3, 3) or stack of homographies (F, 3, 3)
        output_path: Output file path (.npz)
        metadata: Optional metadata stored as JSON
    """
    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    save_dict = {'homography': np.asarray(H, dtype=np.float64)}
    if metadata:
        save_dict['metadata'] = np.array([json.dumps(metadata)])

    np.savez_compressed(output_file, **save_dict)
    logger.info("homography saved to %s", output_path)


def load_homography(input_path: str) -> Tuple[np.ndarray, Optional[dict]]:
    """
    Load a homography saved by ``save_homography``.

    Returns:
        Tuple (H, metadata)
    """
    with np.load(input_path, allow_pickle=False) as data:
        H = data['homography']
        metadata = None
        if 'metadata' in data.files:
            metadata = json.loads(str(data['metadata'][0]))

    return H, metadata


def save_pose(pose: Pose, output_path: str, frame_idx: Optional[int] = None):
    """
    Save a pose as its ordered vector [tx, ty, tz, qx, qy, qz, qw].

    Args:
        pose: Pose to store
        output_path: Output file path (.npz)
        frame_idx: Frame index (optional)
    """
    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    save_dict = {'pose': pose.to_vector()}

    if frame_idx is not None:
        save_dict['frame_idx'] = frame_idx

    np.savez_compressed(output_file, **save_dict)


def load_pose(input_path: str) -> Tuple[Pose, Optional[int]]:
    """
    Load a pose saved by ``save_pose``.

    Returns:
        Tuple (pose, frame_idx)
    """
    with np.load(input_path) as data:
        pose = Pose.from_vector(data['pose'])

        frame_idx = None
        if 'frame_idx' in data.files:
            frame_idx = int(data['frame_idx'])

    return pose, frame_idx


def save_all_poses(poses: List[Optional[Pose]], output_path: str,
                   homographies: Optional[List[Optional[np.ndarray]]] = None):
    """
    Save the poses of a batch of frames in a single file.

    Frames without a pose are stored as rows of NaN and flagged in 'valid'.

    Args:
        poses: One pose (or None) per frame
        output_path: Output file path (.npz)
        homographies: Optional homography (or None) per frame
    """
    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    vectors = np.full((len(poses), 7), np.nan)
    valid = np.zeros(len(poses), dtype=bool)

    for i, pose in enumerate(poses):
        if pose is not None:
            vectors[i] = pose.to_vector()
            valid[i] = True

    save_dict = {'poses': vectors, 'valid': valid}

    if homographies is not None:
        stack = np.full((len(homographies), 3, 3), np.nan)
        for i, H in enumerate(homographies):
            if H is not None:
                stack[i] = H
        save_dict['homographies'] = stack

    np.savez_compressed(output_file, **save_dict)
    logger.info("%d/%d poses saved to %s", int(valid.sum()), len(poses), output_file)


def load_all_poses(input_path: str) -> List[Optional[Pose]]:
    """Inverse of ``save_all_poses`` (poses only)."""
    with np.load(input_path) as data:
        vectors = data['poses']
        valid = data['valid']

    return [Pose.from_vector(v) if ok else None for v, ok in zip(vectors, valid)]
