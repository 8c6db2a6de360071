"""Left-to-right association of live tracks in a synchronized stereo pair."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .backends.base import CorrespondenceBackend
from .camera import CameraModel
from .consistency import forward_backward_check, in_border
from .velocity import compute_velocities, points_by_id

logger = logging.getLogger(__name__)


@dataclass
class StereoObservations:
    """Right-image observations for a subset of the live left tracks.

    Attributes:
        ids: M track ids (subset of the left ids, same relative order)
        pixels: Mx2 pixel coordinates in the right image
        undistorted: Mx2 normalized coordinates from the right camera
        velocities: Mx2 normalized-plane velocities
    """

    ids: np.ndarray
    pixels: np.ndarray
    undistorted: np.ndarray
    velocities: np.ndarray

    def __len__(self) -> int:
        """Return number of right-image observations."""
        return len(self.ids)

    @classmethod
    def empty(cls) -> StereoObservations:
        """Return an empty observation set."""
        return cls(
            ids=np.empty(0, dtype=np.int64),
            pixels=np.empty((0, 2), dtype=np.float32),
            undistorted=np.empty((0, 2), dtype=np.float64),
            velocities=np.empty((0, 2), dtype=np.float64),
        )

    def undistorted_by_id(self) -> dict[int, np.ndarray]:
        """Return id -> normalized coordinate map for velocity on the next frame."""
        return points_by_id(self.ids, self.undistorted)


class StereoAssociator:
    """Finds each live left track in the right image.

    Uses a full search from left to right, optionally validated by
    searching back from right to left. The right point must also lie
    inside the image border. The left track set is never modified.
    """

    def __init__(
        self,
        backend: CorrespondenceBackend,
        right_camera: CameraModel,
        flow_back: bool = True,
        flow_back_threshold: float = 0.5,
        border_margin: int = 1,
    ) -> None:
        """Initialize stereo associator.

        Args:
            backend: Correspondence backend for left/right searches
            right_camera: Distortion adapter of the right camera
            flow_back: Validate with a right-to-left search
            flow_back_threshold: Max round-trip distance in pixels
            border_margin: Minimum distance of right points from the border
        """
        self._backend = backend
        self._camera = right_camera
        self._flow_back = flow_back
        self._threshold = flow_back_threshold
        self._border_margin = border_margin

    def associate(
        self,
        left_image: np.ndarray,
        right_image: np.ndarray,
        left_ids: np.ndarray,
        left_pixels: np.ndarray,
        prev_undistorted_by_id: dict[int, np.ndarray],
        dt: float,
    ) -> StereoObservations:
        """Associate the live left tracks with right-image points.

        Args:
            left_image: Current left image
            right_image: Current right image
            left_ids: N live track ids
            left_pixels: Nx2 live left pixel coordinates
            prev_undistorted_by_id: Previous frame's right id -> normalized map
            dt: Time since the previous frame (seconds)

        Returns:
            StereoObservations for the tracks found in the right image
        """
        left_ids = np.asarray(left_ids, dtype=np.int64).reshape(-1)
        left_pixels = np.asarray(left_pixels, dtype=np.float32).reshape(-1, 2)
        if len(left_ids) == 0:
            return StereoObservations.empty()

        forward = self._backend.track(left_image, right_image, left_pixels)
        if self._flow_back:
            keep = forward_backward_check(
                self._backend,
                left_image,
                right_image,
                left_pixels,
                forward,
                threshold=self._threshold,
                seeded=False,
            )
        else:
            keep = forward.status.copy()
        keep &= in_border(forward.points, right_image.shape, self._border_margin)

        ids = left_ids[keep]
        pixels = forward.points[keep]
        undistorted = self._camera.undistort(pixels)
        velocities = compute_velocities(ids, undistorted, prev_undistorted_by_id, dt)

        logger.debug("Stereo association: %d of %d tracks", len(ids), len(left_ids))
        return StereoObservations(
            ids=ids,
            pixels=pixels,
            undistorted=undistorted,
            velocities=velocities,
        )
