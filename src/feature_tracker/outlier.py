"""Epipolar outlier rejection with a RANSAC fundamental matrix."""

from __future__ import annotations

import logging

import cv2
import numpy as np

from .camera import CameraModel
from .errors import BackendError

logger = logging.getLogger(__name__)

# Virtual focal length used to express the RANSAC threshold in pixels
FOCAL_LENGTH = 460.0
MIN_POINTS = 8


class FundamentalMatrixFilter:
    """Rejects temporal correspondences inconsistent with the epipolar geometry.

    Both point sets are undistorted and re-projected onto a virtual pinhole
    camera (focal length ``FOCAL_LENGTH``, centred on the image) so that the
    RANSAC threshold has the same meaning regardless of the lens.
    """

    def __init__(
        self,
        camera: CameraModel,
        threshold: float = 1.0,
        confidence: float = 0.99,
    ) -> None:
        """Initialize filter.

        Args:
            camera: Distortion adapter of the tracked camera
            threshold: RANSAC distance threshold in virtual pixels
            confidence: RANSAC confidence level
        """
        self._camera = camera
        self._threshold = threshold
        self._confidence = confidence

    def inliers(
        self,
        prev_pixels: np.ndarray,
        cur_pixels: np.ndarray,
        image_shape: tuple[int, ...],
    ) -> np.ndarray:
        """Return which correspondences agree with a RANSAC fundamental matrix.

        With fewer than eight correspondences no model can be fitted and all
        points are kept.

        Args:
            prev_pixels: Nx2 points in the previous image
            cur_pixels: Nx2 matching points in the current image
            image_shape: Image shape (height, width[, channels])

        Returns:
            N boolean inlier mask
        """
        n = len(cur_pixels)
        if n < MIN_POINTS:
            return np.ones(n, dtype=bool)

        height, width = image_shape[:2]
        center = np.array([width / 2.0, height / 2.0])
        un_prev = FOCAL_LENGTH * self._camera.undistort(prev_pixels) + center
        un_cur = FOCAL_LENGTH * self._camera.undistort(cur_pixels) + center

        try:
            _F, status = cv2.findFundamentalMat(
                un_cur, un_prev, cv2.FM_RANSAC, self._threshold, self._confidence
            )
        except cv2.error as e:
            raise BackendError(f"Fundamental matrix estimation failed: {e}") from e

        # Degenerate configurations yield no model; keep everything
        if status is None:
            return np.ones(n, dtype=bool)

        keep = status.reshape(-1).astype(bool)
        logger.debug("FM ransac: %d -> %d", n, int(np.count_nonzero(keep)))
        return keep
