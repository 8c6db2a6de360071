"""Tests for StereoAssociator class."""

import numpy as np
import pytest

from conftest import FakeFlowBackend, uniform_image
from feature_tracker.camera import CameraModel
from feature_tracker.stereo import StereoAssociator, StereoObservations


@pytest.fixture
def left_tracks():
    """Three live left tracks; id 3 sits near the left border."""
    ids = np.array([1, 2, 3])
    pixels = np.array([[320.0, 240.0], [500.0, 300.0], [5.0, 100.0]], dtype=np.float32)
    return ids, pixels


class TestStereoAssociator:
    """Test suite for StereoAssociator class."""

    def test_associates_with_disparity(self, fake_backend, camera: CameraModel, left_tracks):
        """Test that right points are found at the expected disparity."""
        ids, pixels = left_tracks
        associator = StereoAssociator(fake_backend, camera)

        right = associator.associate(uniform_image(100), uniform_image(90), ids, pixels, {}, 0.0)

        # id 3 lands at u = -5 and is dropped by the border filter
        assert right.ids.tolist() == [1, 2]
        np.testing.assert_allclose(right.pixels, [[310.0, 240.0], [490.0, 300.0]])
        np.testing.assert_allclose(right.undistorted[0], [-10.0 / 400.0, 0.0])
        assert np.all(right.velocities == 0)

    def test_left_set_untouched(self, fake_backend, camera: CameraModel, left_tracks):
        """Test that association does not modify the left arrays."""
        ids, pixels = left_tracks
        before = pixels.copy()

        StereoAssociator(fake_backend, camera).associate(
            uniform_image(100), uniform_image(90), ids, pixels, {}, 0.0
        )

        np.testing.assert_array_equal(pixels, before)

    def test_right_velocity(self, fake_backend, camera: CameraModel, left_tracks):
        """Test velocities against the previous right-side map."""
        ids, pixels = left_tracks
        prev = {1: np.array([-10.0 / 400.0 - 0.01, 0.0])}

        right = StereoAssociator(fake_backend, camera).associate(
            uniform_image(100), uniform_image(90), ids, pixels, prev, 0.1
        )

        np.testing.assert_allclose(right.velocities[0], [0.1, 0.0], atol=1e-9)
        np.testing.assert_array_equal(right.velocities[1], [0.0, 0.0])

    def test_backward_check_rejects(self, camera: CameraModel, left_tracks):
        """Test that inconsistent right-to-left flow removes observations."""
        backend = FakeFlowBackend()
        backend.lost = lambda pts: pts[:, 0] > 400
        ids, pixels = left_tracks

        right = StereoAssociator(backend, camera).associate(
            uniform_image(100), uniform_image(90), ids, pixels, {}, 0.0
        )

        assert right.ids.tolist() == [1]
        # Forward and backward searches are both full searches
        assert all(call["seed"] is None for call in backend.calls)

    def test_without_backward_check(self, fake_backend, camera: CameraModel, left_tracks):
        """Test that disabling the check runs a single search."""
        ids, pixels = left_tracks

        right = StereoAssociator(fake_backend, camera, flow_back=False).associate(
            uniform_image(100), uniform_image(90), ids, pixels, {}, 0.0
        )

        assert len(fake_backend.calls) == 1
        assert right.ids.tolist() == [1, 2]

    def test_no_tracks(self, fake_backend, camera: CameraModel):
        """Test that an empty left set gives empty observations."""
        right = StereoAssociator(fake_backend, camera).associate(
            uniform_image(100), uniform_image(90), np.empty(0), np.empty((0, 2)), {}, 0.0
        )

        assert len(right) == 0
        assert fake_backend.calls == []

    def test_undistorted_by_id(self):
        """Test the id -> normalized coordinate map."""
        obs = StereoObservations(
            ids=np.array([4]),
            pixels=np.zeros((1, 2)),
            undistorted=np.array([[0.1, 0.2]]),
            velocities=np.zeros((1, 2)),
        )

        np.testing.assert_array_equal(obs.undistorted_by_id()[4], [0.1, 0.2])
