"""CUDA-accelerated tracking and detection through OpenCV's ``cv2.cuda`` module.

Requires an OpenCV build with CUDA support and at least one CUDA device.
"""

from __future__ import annotations

import cv2
import numpy as np

from ..errors import BackendError, BackendUnavailableError
from .base import FlowResult, as_points, check_seed

LK_ITERS = 30


def _cuda_device_count() -> int:
    """Return the number of CUDA devices usable by OpenCV."""
    cuda = getattr(cv2, "cuda", None)
    if cuda is None:
        return 0
    try:
        return int(cuda.getCudaEnabledDeviceCount())
    except cv2.error:
        return 0


def _require_cuda() -> None:
    if _cuda_device_count() == 0:
        raise BackendUnavailableError(
            "GPU backend requested but OpenCV reports no CUDA-enabled device"
        )


def _upload(array: np.ndarray) -> "cv2.cuda.GpuMat":
    gpu = cv2.cuda_GpuMat()
    gpu.upload(array)
    return gpu


class GpuFlowBackend:
    """Sparse pyramidal Lucas-Kanade on the GPU."""

    def __init__(self, window: int = 21, max_level: int = 3) -> None:
        """Initialize GPU optical flow backend.

        Args:
            window: Search window size in pixels (square)
            max_level: Number of pyramid levels for a full search

        Raises:
            BackendUnavailableError: If no CUDA device is available
        """
        _require_cuda()
        win_size = (window, window)
        self._full = cv2.cuda.SparsePyrLKOpticalFlow_create(
            winSize=win_size, maxLevel=max_level, iters=LK_ITERS, useInitialFlow=False
        )
        self._seeded = cv2.cuda.SparsePyrLKOpticalFlow_create(
            winSize=win_size, maxLevel=1, iters=LK_ITERS, useInitialFlow=True
        )

    def track(
        self,
        prev_image: np.ndarray,
        cur_image: np.ndarray,
        prev_points: np.ndarray,
        seed: np.ndarray | None = None,
    ) -> FlowResult:
        """Track points from prev_image into cur_image on the GPU."""
        prev = as_points(prev_points)
        seed = check_seed(prev, seed)
        if len(prev) == 0:
            return FlowResult.empty()

        try:
            prev_gpu = _upload(prev_image)
            cur_gpu = _upload(cur_image)
            # GPU point sets are 1xN two-channel rows
            prev_pts_gpu = _upload(prev.reshape(1, -1, 2))
            if seed is None:
                flow = self._full
                next_pts_gpu = cv2.cuda_GpuMat()
            else:
                flow = self._seeded
                next_pts_gpu = _upload(seed.reshape(1, -1, 2))

            next_pts_gpu, status_gpu, _err = flow.calc(
                prev_gpu, cur_gpu, prev_pts_gpu, next_pts_gpu
            )
            points = next_pts_gpu.download()
            status = status_gpu.download()
        except cv2.error as e:
            raise BackendError(f"GPU optical flow failed: {e}") from e

        return FlowResult(
            points=points.reshape(-1, 2).astype(np.float32),
            status=status.reshape(-1).astype(bool),
        )


class GpuCornerDetector:
    """Shi-Tomasi corner detector on the GPU."""

    def __init__(self, quality_level: float = 0.01, min_distance: float = 30) -> None:
        """Initialize detector.

        Raises:
            BackendUnavailableError: If no CUDA device is available
        """
        _require_cuda()
        self._quality_level = quality_level
        self._min_distance = min_distance

    def detect(
        self, image: np.ndarray, mask: np.ndarray | None, max_count: int
    ) -> np.ndarray:
        """Detect up to max_count corners where mask is non-zero."""
        if max_count <= 0:
            return np.empty((0, 2), dtype=np.float32)

        try:
            # The corner budget is fixed at creation, so build per call
            detector = cv2.cuda.createGoodFeaturesToTrackDetector(
                cv2.CV_8UC1, int(max_count), self._quality_level, self._min_distance
            )
            image_gpu = _upload(image)
            if mask is None:
                corners_gpu = detector.detect(image_gpu)
            else:
                corners_gpu = detector.detect(image_gpu, mask=_upload(mask))
            if corners_gpu is None or corners_gpu.empty():
                return np.empty((0, 2), dtype=np.float32)
            corners = corners_gpu.download()
        except cv2.error as e:
            raise BackendError(f"GPU corner detection failed: {e}") from e

        return corners.reshape(-1, 2).astype(np.float32)
