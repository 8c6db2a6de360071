"""Tests for border and forward/backward consistency filters."""

import numpy as np

from conftest import FakeFlowBackend, uniform_image
from feature_tracker.consistency import forward_backward_check, in_border

SHAPE = (480, 640)


class TestInBorder:
    """Test suite for in_border."""

    def test_margin(self):
        """Test points on and next to the one-pixel border."""
        points = np.array(
            [[0.0, 100.0], [1.0, 100.0], [638.0, 100.0], [639.0, 100.0], [100.0, 478.4], [100.0, 478.6]]
        )

        assert in_border(points, SHAPE).tolist() == [False, True, True, False, True, False]

    def test_rounding(self):
        """Test that coordinates are rounded before the check."""
        assert in_border(np.array([[0.6, 10.0], [0.4, 10.0]]), SHAPE).tolist() == [True, False]

    def test_non_finite(self):
        """Test that NaN and infinite points are outside."""
        points = np.array([[np.nan, 10.0], [10.0, np.inf]])

        assert not in_border(points, SHAPE).any()

    def test_empty(self):
        """Test that no points give an empty mask."""
        assert in_border(np.empty((0, 2)), SHAPE).shape == (0,)


class TestForwardBackwardCheck:
    """Test suite for forward_backward_check."""

    def test_consistent_flow_passes(self):
        """Test that an exactly reversible flow passes."""
        backend = FakeFlowBackend()
        prev, cur = uniform_image(100), uniform_image(104)
        points = np.array([[100.0, 100.0], [200.0, 150.0]], dtype=np.float32)
        forward = backend.track(prev, cur, points)

        keep = forward_backward_check(backend, prev, cur, points, forward)

        assert keep.tolist() == [True, True]
        assert backend.calls[-1]["seed"] is not None

    def test_round_trip_error_rejects(self):
        """Test that a back-tracked point more than 0.5 px away fails."""
        backend = FakeFlowBackend()
        backend.backward_error = 0.6
        prev, cur = uniform_image(100), uniform_image(104)
        points = np.array([[100.0, 100.0]], dtype=np.float32)
        forward = backend.track(prev, cur, points)

        assert not forward_backward_check(backend, prev, cur, points, forward).any()

    def test_threshold_is_inclusive(self):
        """Test that a round-trip error of exactly the threshold passes."""
        backend = FakeFlowBackend()
        backend.backward_error = 0.5
        prev, cur = uniform_image(100), uniform_image(104)
        points = np.array([[100.0, 100.0]], dtype=np.float32)
        forward = backend.track(prev, cur, points)

        assert forward_backward_check(backend, prev, cur, points, forward).all()

    def test_lost_forward_rejects(self):
        """Test that a point lost in the forward search fails."""
        backend = FakeFlowBackend()
        prev, cur = uniform_image(100), uniform_image(104)
        points = np.array([[100.0, 100.0], [300.0, 100.0]], dtype=np.float32)
        backend.lost = lambda pts: pts[:, 0] < 150
        forward = backend.track(prev, cur, points)
        backend.lost = None

        assert forward_backward_check(backend, prev, cur, points, forward).tolist() == [False, True]

    def test_unseeded_backward_search(self):
        """Test that the backward search can run without seeds."""
        backend = FakeFlowBackend()
        prev, cur = uniform_image(100), uniform_image(90)
        points = np.array([[100.0, 100.0]], dtype=np.float32)
        forward = backend.track(prev, cur, points)

        forward_backward_check(backend, prev, cur, points, forward, seeded=False)

        assert backend.calls[-1]["seed"] is None
