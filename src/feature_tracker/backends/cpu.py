"""CPU pyramidal Lucas-Kanade tracking and Shi-Tomasi corner detection."""

from __future__ import annotations

import cv2
import numpy as np

from ..errors import BackendError
from .base import FlowResult, as_points, check_seed

LK_CRITERIA = (cv2.TERM_CRITERIA_COUNT | cv2.TERM_CRITERIA_EPS, 30, 0.01)


class CpuFlowBackend:
    """Sparse optical flow using ``cv2.calcOpticalFlowPyrLK``.

    A full search runs over ``max_level`` pyramid levels. A seeded search
    uses ``cv2.OPTFLOW_USE_INITIAL_FLOW`` and a single pyramid level, since
    the seed is expected to be close to the true location already.
    """

    def __init__(self, window: int = 21, max_level: int = 3) -> None:
        """Initialize CPU optical flow backend.

        Args:
            window: Search window size in pixels (square)
            max_level: Number of pyramid levels for a full search
        """
        self._win_size = (window, window)
        self._max_level = max_level

    def track(
        self,
        prev_image: np.ndarray,
        cur_image: np.ndarray,
        prev_points: np.ndarray,
        seed: np.ndarray | None = None,
    ) -> FlowResult:
        """Track points from prev_image into cur_image.

        Args:
            prev_image: Source grayscale image
            cur_image: Target grayscale image
            prev_points: Nx2 array of points in the source image
            seed: Optional Nx2 initial guesses in the target image

        Returns:
            FlowResult with N tracked points and success flags

        Raises:
            BackendError: If OpenCV fails
        """
        prev = as_points(prev_points)
        seed = check_seed(prev, seed)
        if len(prev) == 0:
            return FlowResult.empty()

        try:
            if seed is None:
                cur, status, _err = cv2.calcOpticalFlowPyrLK(
                    prev_image,
                    cur_image,
                    prev.reshape(-1, 1, 2),
                    None,
                    winSize=self._win_size,
                    maxLevel=self._max_level,
                    criteria=LK_CRITERIA,
                )
            else:
                cur, status, _err = cv2.calcOpticalFlowPyrLK(
                    prev_image,
                    cur_image,
                    prev.reshape(-1, 1, 2),
                    seed.reshape(-1, 1, 2).copy(),
                    winSize=self._win_size,
                    maxLevel=1,
                    criteria=LK_CRITERIA,
                    flags=cv2.OPTFLOW_USE_INITIAL_FLOW,
                )
        except cv2.error as e:
            raise BackendError(f"CPU optical flow failed: {e}") from e

        return FlowResult(
            points=cur.reshape(-1, 2).astype(np.float32),
            status=status.reshape(-1).astype(bool),
        )


class CpuCornerDetector:
    """Shi-Tomasi corner detector (``cv2.goodFeaturesToTrack``)."""

    def __init__(self, quality_level: float = 0.01, min_distance: float = 30) -> None:
        """Initialize detector.

        Args:
            quality_level: Minimal accepted corner quality relative to the
                best corner in the image
            min_distance: Minimum distance (pixels) between returned corners
        """
        self._quality_level = quality_level
        self._min_distance = min_distance

    def detect(
        self, image: np.ndarray, mask: np.ndarray | None, max_count: int
    ) -> np.ndarray:
        """Detect up to max_count corners where mask is non-zero.

        Returns:
            Mx2 float32 array of corner coordinates, M <= max_count
        """
        if max_count <= 0:
            return np.empty((0, 2), dtype=np.float32)

        try:
            corners = cv2.goodFeaturesToTrack(
                image,
                maxCorners=int(max_count),
                qualityLevel=self._quality_level,
                minDistance=self._min_distance,
                mask=mask,
            )
        except cv2.error as e:
            raise BackendError(f"CPU corner detection failed: {e}") from e

        # OpenCV returns None when nothing is found
        if corners is None:
            return np.empty((0, 2), dtype=np.float32)
        return corners.reshape(-1, 2).astype(np.float32)
