"""Tests for id-keyed velocity computation."""

import numpy as np
import pytest

from feature_tracker.velocity import compute_velocities, points_by_id


def test_points_by_id():
    """Test building an id -> point map."""
    mapping = points_by_id(np.array([4, 9]), np.array([[1.0, 2.0], [3.0, 4.0]]))

    assert set(mapping) == {4, 9}
    np.testing.assert_array_equal(mapping[9], [3.0, 4.0])


def test_no_previous_frame_gives_zero():
    """Test that an empty previous map gives zero velocity even with dt 0."""
    velocities = compute_velocities(np.array([1, 2]), np.ones((2, 2)), {}, 0.0)

    np.testing.assert_array_equal(velocities, np.zeros((2, 2)))


def test_velocity_by_id_not_slot():
    """Test that velocities pair observations by id after reordering."""
    prev = {1: np.array([0.0, 0.0]), 2: np.array([1.0, 1.0])}
    ids = np.array([2, 1, 3])
    points = np.array([[1.2, 1.0], [0.0, -0.1], [5.0, 5.0]])

    velocities = compute_velocities(ids, points, prev, 0.1)

    np.testing.assert_allclose(velocities, [[2.0, 0.0], [0.0, -1.0], [0.0, 0.0]])


def test_non_positive_dt():
    """Test that a non-positive time step is rejected when history exists."""
    with pytest.raises(ValueError, match="Time step"):
        compute_velocities(np.array([1]), np.zeros((1, 2)), {1: np.zeros(2)}, 0.0)
