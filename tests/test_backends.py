"""Tests for correspondence backends and corner detectors."""

import sys
from contextlib import nullcontext
from types import SimpleNamespace

import numpy as np
import pytest

from feature_tracker.backends import (
    CpuCornerDetector,
    CpuFlowBackend,
    FlowResult,
    GpuFlowBackend,
    HardwareCornerDetector,
    HardwareFlowBackend,
    create_backend,
)
from feature_tracker.backends import gpu as gpu_module
from feature_tracker.config import BackendVariant, TrackerConfig
from feature_tracker.errors import BackendUnavailableError


@pytest.fixture
def interior_points() -> np.ndarray:
    """Grid of points well inside a 640x480 image."""
    us, vs = np.meshgrid(np.arange(100, 541, 110), np.arange(100, 381, 70))
    return np.stack([us.ravel(), vs.ravel()], axis=1).astype(np.float32)


class TestFlowResult:
    """Test suite for FlowResult."""

    def test_empty(self):
        """Test the empty result."""
        result = FlowResult.empty()

        assert len(result) == 0
        assert result.num_tracked == 0

    def test_num_tracked(self):
        """Test counting successful points."""
        result = FlowResult(np.zeros((3, 2), dtype=np.float32), np.array([True, False, True]))

        assert result.num_tracked == 2


class TestCpuFlowBackend:
    """Test suite for CpuFlowBackend class."""

    def test_full_search_recovers_shift(self, textured_image, interior_points):
        """Test that a pure horizontal shift is recovered."""
        shifted = np.roll(textured_image, 3, axis=1)
        backend = CpuFlowBackend()

        result = backend.track(textured_image, shifted, interior_points)

        assert len(result) == len(interior_points)
        assert result.status.all()
        np.testing.assert_allclose(result.points, interior_points + [3.0, 0.0], atol=0.1)

    def test_seeded_search(self, textured_image, interior_points):
        """Test that a good seed converges to the true location."""
        shifted = np.roll(textured_image, 12, axis=1)
        seed = interior_points + [11.0, 0.5]
        backend = CpuFlowBackend()

        result = backend.track(textured_image, shifted, interior_points, seed=seed)

        assert result.status.all()
        np.testing.assert_allclose(result.points, interior_points + [12.0, 0.0], atol=0.1)

    def test_empty_points(self, textured_image):
        """Test that no input points give an empty result."""
        result = CpuFlowBackend().track(textured_image, textured_image, np.empty((0, 2)))

        assert len(result) == 0

    def test_seed_length_mismatch(self, textured_image, interior_points):
        """Test that seeds must align with the input points."""
        with pytest.raises(ValueError, match="Seed"):
            CpuFlowBackend().track(
                textured_image, textured_image, interior_points, seed=interior_points[:2]
            )


class TestCpuCornerDetector:
    """Test suite for CpuCornerDetector class."""

    def test_detects_up_to_max_count(self, textured_image):
        """Test that the corner budget is respected."""
        corners = CpuCornerDetector(0.01, 10).detect(textured_image, None, 25)

        assert 0 < len(corners) <= 25
        assert corners.shape[1] == 2
        assert corners.dtype == np.float32

    def test_respects_mask(self, textured_image):
        """Test that no corner is found in masked-out regions."""
        mask = np.zeros(textured_image.shape, dtype=np.uint8)
        mask[:, 320:] = 255

        corners = CpuCornerDetector(0.01, 10).detect(textured_image, mask, 50)

        assert len(corners) > 0
        assert np.all(corners[:, 0] >= 319.5)

    def test_zero_budget(self, textured_image):
        """Test that a zero budget returns no corners."""
        assert CpuCornerDetector().detect(textured_image, None, 0).shape == (0, 2)

    def test_flat_image(self):
        """Test that a textureless image yields no corners."""
        flat = np.full((100, 100), 128, dtype=np.uint8)

        assert CpuCornerDetector().detect(flat, None, 10).shape == (0, 2)


class TestCreateBackend:
    """Test suite for the backend factory."""

    def test_cpu_default(self):
        """Test that the default config builds the CPU variant."""
        backend, detector = create_backend(TrackerConfig())

        assert isinstance(backend, CpuFlowBackend)
        assert isinstance(detector, CpuCornerDetector)

    def test_gpu_unavailable(self, monkeypatch):
        """Test that the GPU variant fails cleanly without CUDA."""
        monkeypatch.setattr(gpu_module, "_cuda_device_count", lambda: 0)

        with pytest.raises(BackendUnavailableError, match="CUDA"):
            create_backend(TrackerConfig(backend_variant=BackendVariant.GPU))
        with pytest.raises(BackendUnavailableError):
            GpuFlowBackend()

    def test_hardware_unavailable(self, monkeypatch):
        """Test that the hardware variant fails cleanly without VPI."""
        monkeypatch.setitem(sys.modules, "vpi", None)

        with pytest.raises(BackendUnavailableError, match="VPI"):
            create_backend(TrackerConfig(backend_variant=BackendVariant.HARDWARE))
        with pytest.raises(BackendUnavailableError):
            HardwareFlowBackend()
        with pytest.raises(BackendUnavailableError):
            HardwareCornerDetector()


class _LockedArray:
    """Array handle exposing the VPI rlock_cpu() interface."""

    def __init__(self, data) -> None:
        self._data = np.asarray(data)

    def rlock_cpu(self):
        return nullcontext(self._data)


def fake_vpi(keypoints, scores) -> SimpleNamespace:
    """Minimal VPI module whose Harris call returns scripted corners."""
    frame = SimpleNamespace(
        harriscorners=lambda sensitivity: (_LockedArray(keypoints), _LockedArray(scores))
    )
    image = SimpleNamespace(convert=lambda fmt: frame)
    return SimpleNamespace(
        Backend=SimpleNamespace(CUDA=nullcontext()),
        Format=SimpleNamespace(S16="S16"),
        asimage=lambda array: image,
    )


class TestHardwareCornerDetector:
    """Tests for Harris ranking and masking with a scripted VPI module."""

    def test_returns_all_masked_corners_ranked(self, monkeypatch):
        """Test that clustered corners are all returned, best score first."""
        keypoints = [[100.0, 100.0], [102.0, 100.0], [104.0, 100.0], [300.0, 200.0], [10.0, 10.0]]
        scores = [5.0, 9.0, 7.0, 1.0, 8.0]
        monkeypatch.setitem(sys.modules, "vpi", fake_vpi(keypoints, scores))
        mask = np.full((480, 640), 255, dtype=np.uint8)
        mask[:20, :20] = 0

        corners = HardwareCornerDetector().detect(np.zeros((480, 640), np.uint8), mask, 2)

        np.testing.assert_array_equal(
            corners, [[102.0, 100.0], [104.0, 100.0], [100.0, 100.0], [300.0, 200.0]]
        )

    def test_zero_budget(self, monkeypatch):
        """Test that a zero budget skips detection."""
        monkeypatch.setitem(sys.modules, "vpi", fake_vpi([[1.0, 1.0]], [1.0]))

        corners = HardwareCornerDetector().detect(np.zeros((480, 640), np.uint8), None, 0)

        assert corners.shape == (0, 2)
