"""Hardware-accelerated tracking and Harris detection via NVIDIA VPI.

The VPI Python bindings ship with JetPack / the VPI SDK and are not
installable from PyPI; this variant is only usable on such systems.
"""

from __future__ import annotations

import numpy as np

from ..errors import BackendError, BackendUnavailableError
from .base import FlowResult, as_points, check_seed

_VPI_BACKENDS = {"cpu": "CPU", "cuda": "CUDA", "pva": "PVA"}

HARRIS_SENSITIVITY = 0.01


def _import_vpi():
    try:
        import vpi
    except ImportError as e:
        raise BackendUnavailableError(
            "Hardware backend requested but the VPI Python bindings are not installed"
        ) from e
    return vpi


def _vpi_backend(vpi, name: str):
    try:
        return getattr(vpi.Backend, _VPI_BACKENDS[name])
    except (KeyError, AttributeError) as e:
        raise BackendUnavailableError(f"VPI backend '{name}' is not available") from e


class HardwareFlowBackend:
    """Pyramidal Lucas-Kanade through VPI.

    VPI's tracker has no initial-flow mode, so seeds are validated but
    otherwise ignored; every call is a full pyramidal search.
    """

    def __init__(self, backend: str = "cuda", pyramid_levels: int = 3) -> None:
        """Initialize VPI optical flow backend.

        Args:
            backend: VPI backend to run on (cpu, cuda or pva)
            pyramid_levels: Number of pyramid levels

        Raises:
            BackendUnavailableError: If VPI or the backend is unavailable
        """
        self._vpi = _import_vpi()
        self._backend = _vpi_backend(self._vpi, backend)
        self._levels = max(1, pyramid_levels)

    def track(
        self,
        prev_image: np.ndarray,
        cur_image: np.ndarray,
        prev_points: np.ndarray,
        seed: np.ndarray | None = None,
    ) -> FlowResult:
        """Track points from prev_image into cur_image with VPI."""
        vpi = self._vpi
        prev = as_points(prev_points)
        check_seed(prev, seed)
        if len(prev) == 0:
            return FlowResult.empty()

        try:
            with self._backend:
                prev_frame = vpi.asimage(prev_image)
                cur_frame = vpi.asimage(cur_image)
                features = vpi.asarray(prev, vpi.Type.KEYPOINT_F32)
                optflow = vpi.OpticalFlowPyrLK(prev_frame, features, self._levels)
                cur_features, status = optflow(cur_frame)
            with cur_features.rlock_cpu() as data:
                points = np.array(data, dtype=np.float32).reshape(-1, 2)
            with status.rlock_cpu() as data:
                # VPI flags lost points with a non-zero status
                tracked = np.array(data).reshape(-1) == 0
        except Exception as e:
            raise BackendError(f"VPI optical flow failed: {e}") from e

        return FlowResult(points=points, status=tracked)


class HardwareCornerDetector:
    """Harris corner detector through VPI.

    Corners are ranked by Harris score (stable, descending) and the
    mask is applied to the ranked list. Harris output has no minimum
    spacing, so every masked corner is returned and the caller caps the
    count after its own spacing check.
    """

    def __init__(self, backend: str = "cuda") -> None:
        """Initialize detector.

        Raises:
            BackendUnavailableError: If VPI or the backend is unavailable
        """
        self._vpi = _import_vpi()
        self._backend = _vpi_backend(self._vpi, backend)

    def detect(
        self, image: np.ndarray, mask: np.ndarray | None, max_count: int
    ) -> np.ndarray:
        """Detect ranked corners where mask is non-zero.

        max_count only short-circuits an empty request; the full ranked
        list is returned otherwise.
        """
        vpi = self._vpi
        if max_count <= 0:
            return np.empty((0, 2), dtype=np.float32)

        try:
            with self._backend:
                frame = vpi.asimage(image).convert(vpi.Format.S16)
                keypoints, scores = frame.harriscorners(sensitivity=HARRIS_SENSITIVITY)
            with keypoints.rlock_cpu() as data:
                points = np.array(data, dtype=np.float32).reshape(-1, 2)
            with scores.rlock_cpu() as data:
                score_values = np.array(data).reshape(-1)
        except Exception as e:
            raise BackendError(f"VPI Harris detection failed: {e}") from e

        order = np.argsort(-score_values.astype(np.float64), kind="stable")
        points = points[order]

        if mask is not None and len(points) > 0:
            h, w = mask.shape[:2]
            cols = np.clip(np.rint(points[:, 0]).astype(int), 0, w - 1)
            rows = np.clip(np.rint(points[:, 1]).astype(int), 0, h - 1)
            points = points[mask[rows, cols] != 0]

        return points
