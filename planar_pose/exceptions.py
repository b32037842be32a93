"""
Exception hierarchy for homography estimation and pose recovery.

Every error derives from ``PlanarPoseError``, itself a ``ValueError``, so
callers that already guard numeric code with ``except ValueError`` keep
working.
"""


class PlanarPoseError(ValueError):
    """Base class for all errors raised by planar_pose."""


class InvalidInput(PlanarPoseError):
    """Input arrays have the wrong shape, mismatched lengths or non-finite values."""


class InsufficientCorrespondences(PlanarPoseError):
    """Fewer than four point correspondences were supplied."""


class DegenerateConfiguration(PlanarPoseError):
    """The points lack the geometric rank needed for a unique homography."""


class SingularIntrinsics(PlanarPoseError):
    """The (inverse) camera intrinsics matrix is not invertible."""


class DegenerateHomography(PlanarPoseError):
    """The homography cannot be decomposed into a rigid pose."""
