"""Shared fixtures: scripted backends, cameras and synthetic images."""

import cv2
import numpy as np
import pytest

from feature_tracker.backends.base import FlowResult, as_points
from feature_tracker.camera import CameraIntrinsics, CameraModel, DistortionCoeffs

WIDTH = 640
HEIGHT = 480


class FakeFlowBackend:
    """Moves every point horizontally by the brightness difference of two images.

    Test images are uniform, so ``cur[0, 0] - prev[0, 0]`` encodes the shift
    between them. Tracking back from the shifted image undoes the shift
    exactly, so the forward/backward check passes unless ``backward_error``
    is set.

    Attributes:
        calls: One dict per call with keys "seed" (array or None) and "n"
        lost: Callable(points) -> bool mask of points to report as lost
        seeded_status: If set, forces the status of seeded searches
        backward_error: Extra x offset added when tracking to a darker image
    """

    def __init__(self) -> None:
        self.calls = []
        self.lost = None
        self.seeded_status = None
        self.backward_error = 0.0

    def track(self, prev_image, cur_image, prev_points, seed=None) -> FlowResult:
        prev = as_points(prev_points)
        self.calls.append({"seed": None if seed is None else as_points(seed).copy(), "n": len(prev)})
        shift = float(cur_image[0, 0]) - float(prev_image[0, 0])
        if shift < 0:
            shift += self.backward_error
        points = prev.copy()
        points[:, 0] += shift

        status = np.ones(len(prev), dtype=bool)
        if self.lost is not None and len(prev) > 0:
            status &= ~np.asarray(self.lost(prev), dtype=bool)
        if seed is not None and self.seeded_status is not None:
            status[:] = self.seeded_status
        return FlowResult(points=points.astype(np.float32), status=status)


class FakeDetector:
    """Returns a scripted list of corners, honouring the mask and budget.

    With ``capped=False`` the budget is ignored, as for Harris detection.
    """

    def __init__(self, corners=None, capped=True) -> None:
        self.corners = [] if corners is None else list(corners)
        self.capped = capped
        self.calls = []

    def detect(self, image, mask, max_count):
        self.calls.append({"max_count": max_count, "mask": None if mask is None else mask.copy()})
        found = []
        for u, v in self.corners:
            if mask is not None and mask[int(round(v)), int(round(u))] == 0:
                continue
            found.append((u, v))
            if self.capped and len(found) >= max_count:
                break
        return np.array(found, dtype=np.float32).reshape(-1, 2)


def uniform_image(value: int) -> np.ndarray:
    """Return a uniform test image whose brightness encodes its position."""
    return np.full((HEIGHT, WIDTH), value, dtype=np.uint8)


@pytest.fixture
def camera() -> CameraModel:
    """Distortion-free pinhole camera for 640x480 images."""
    return CameraModel(CameraIntrinsics(400.0, 400.0, 320.0, 240.0), image_size=(WIDTH, HEIGHT))


@pytest.fixture
def distorted_camera() -> CameraModel:
    """EuRoC-like radial-tangential camera."""
    return CameraModel(
        CameraIntrinsics(458.654, 457.296, 367.215, 248.375),
        DistortionCoeffs(-0.28340811, 0.07395907, 0.00019359, 1.76187114e-05),
        image_size=(752, 480),
    )


@pytest.fixture
def fake_backend() -> FakeFlowBackend:
    """Scripted correspondence backend."""
    return FakeFlowBackend()


@pytest.fixture
def fake_detector() -> FakeDetector:
    """Scripted corner detector."""
    return FakeDetector()


@pytest.fixture
def textured_image() -> np.ndarray:
    """Smooth random texture suitable for real Lucas-Kanade tracking."""
    rng = np.random.default_rng(42)
    noise = rng.integers(0, 256, size=(HEIGHT, WIDTH)).astype(np.uint8)
    blurred = cv2.GaussianBlur(noise, (0, 0), 3)
    return cv2.normalize(blurred, None, 0, 255, cv2.NORM_MINMAX)
