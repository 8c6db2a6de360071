"""Tests for DensityController class."""

import numpy as np

from feature_tracker.density import FREE, OCCUPIED, DensityController
from feature_tracker.track_store import TrackStore

SHAPE = (480, 640)


def min_pairwise_distance(points: np.ndarray) -> float:
    """Smallest distance between any two points (inf for fewer than two)."""
    if len(points) < 2:
        return float("inf")
    diff = points[:, None, :] - points[None, :, :]
    dist = np.linalg.norm(diff, axis=2)
    np.fill_diagonal(dist, np.inf)
    return float(dist.min())


class TestDensityController:
    """Test suite for DensityController class."""

    def test_empty_store_gives_free_mask(self):
        """Test that an empty store leaves the mask fully free."""
        controller = DensityController(30)
        mask = controller.apply(TrackStore(), SHAPE)

        assert mask.shape == SHAPE
        assert mask.dtype == np.uint8
        assert np.all(mask == FREE)

    def test_older_track_wins(self):
        """Test that the older of two close tracks survives."""
        store = TrackStore(ids=[1, 2], pixels=[[100, 100], [110, 100]], ages=[1, 5])
        DensityController(30).apply(store, SHAPE)

        assert store.ids.tolist() == [2]

    def test_ties_keep_current_order(self):
        """Test that equal ages fall back to the existing order."""
        store = TrackStore(ids=[4, 8], pixels=[[100, 100], [110, 100]], ages=[3, 3])
        DensityController(30).apply(store, SHAPE)

        assert store.ids.tolist() == [4]

    def test_sorted_by_age_descending(self):
        """Test that survivors are reordered by age."""
        store = TrackStore(
            ids=[1, 2, 3],
            pixels=[[100, 100], [300, 100], [500, 100]],
            ages=[1, 7, 3],
        )
        DensityController(30).apply(store, SHAPE)

        assert store.ids.tolist() == [2, 3, 1]
        assert store.ages.tolist() == [7, 3, 1]

    def test_mask_marks_occupied_disks(self):
        """Test that each kept track blocks a disk around its location."""
        store = TrackStore(ids=[1], pixels=[[200, 150]])
        mask = DensityController(30).apply(store, SHAPE)

        assert mask[150, 200] == OCCUPIED
        assert mask[150, 225] == OCCUPIED
        assert mask[150, 240] == FREE

    def test_min_separation_after_apply(self):
        """Test that kept tracks are farther apart than the exclusion radius."""
        rng = np.random.default_rng(0)
        pixels = rng.uniform([0, 0], [640, 480], size=(300, 2))
        store = TrackStore(
            ids=np.arange(300),
            pixels=pixels,
            ages=rng.integers(1, 10, size=300),
        )
        DensityController(30).apply(store, SHAPE)

        assert 0 < len(store) < 300
        # Rounding to the pixel grid and disk rasterization cost up to two pixels
        assert min_pairwise_distance(store.pixels) > 28.0

    def test_admit_filters_candidates(self):
        """Test that new candidates respect existing tracks and each other."""
        controller = DensityController(30)
        store = TrackStore(ids=[1], pixels=[[100, 100]])
        mask = controller.apply(store, SHAPE)

        admitted = controller.admit(
            np.array([[105, 100], [300, 300], [310, 300], [-5, 10], [500, 400]]),
            mask,
        )

        np.testing.assert_array_equal(admitted, [[300, 300], [500, 400]])
        assert mask[400, 500] == OCCUPIED

    def test_admit_empty(self):
        """Test that no candidates gives an empty result."""
        controller = DensityController(30)
        mask = np.full(SHAPE, FREE, dtype=np.uint8)

        assert controller.admit(np.empty((0, 2)), mask).shape == (0, 2)
