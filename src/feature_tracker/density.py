"""Spatial density control for live tracks and new detections."""

from __future__ import annotations

import cv2
import numpy as np

from .track_store import TrackStore

FREE = 255
OCCUPIED = 0


def _pixel_index(point: np.ndarray, width: int, height: int) -> tuple[int, int]:
    """Return (col, row) of the pixel containing a sub-pixel point."""
    col = min(max(int(np.rint(point[0])), 0), width - 1)
    row = min(max(int(np.rint(point[1])), 0), height - 1)
    return col, row


class DensityController:
    """Keeps live tracks at least ``min_distance`` pixels apart.

    Long-lived tracks take priority: tracks are visited by age
    (descending, ties keep their current order) and a track is kept only
    if no higher-priority track has already claimed its location. Each
    kept track stamps a disk of radius ``min_distance`` into an occupancy
    mask, which then gates new detections.
    """

    def __init__(self, min_distance: int = 30) -> None:
        """Initialize density controller.

        Args:
            min_distance: Radius (pixels) of the exclusion disk around a track
        """
        self._min_distance = int(min_distance)

    def apply(self, store: TrackStore, image_shape: tuple[int, ...]) -> np.ndarray:
        """Reorder and thin the live set; return the occupancy mask.

        The store is updated in place: survivors end up sorted by age
        (descending) and redundant tracks are removed.

        Args:
            store: Live track set to thin
            image_shape: Shape of the image (height, width[, channels])

        Returns:
            HxW uint8 mask, 255 where new features may be placed, 0 elsewhere
        """
        height, width = image_shape[:2]
        mask = np.full((height, width), FREE, dtype=np.uint8)

        priority = np.argsort(-store.ages, kind="stable")
        pixels = store.pixels
        kept = []
        for idx in priority:
            col, row = _pixel_index(pixels[idx], width, height)
            if mask[row, col] == FREE:
                kept.append(idx)
                self._stamp(mask, col, row)

        store.reorder(np.asarray(kept, dtype=np.int64))
        return mask

    def admit(self, points: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Filter candidate detections against the occupancy mask.

        Candidates are visited in the given order; a candidate is admitted
        only if its location is still free, and then stamps its own disk
        so later candidates respect it too. The mask is updated in place.

        Args:
            points: Mx2 candidate pixel coordinates
            mask: Occupancy mask from ``apply``

        Returns:
            Kx2 float32 array of admitted points (K <= M), in input order
        """
        points = np.asarray(points, dtype=np.float32).reshape(-1, 2)
        height, width = mask.shape[:2]
        admitted = []
        for point in points:
            if not (0 <= point[0] < width and 0 <= point[1] < height):
                continue
            col, row = _pixel_index(point, width, height)
            if mask[row, col] == FREE:
                admitted.append(point)
                self._stamp(mask, col, row)

        if len(admitted) == 0:
            return np.empty((0, 2), dtype=np.float32)
        return np.array(admitted, dtype=np.float32)

    def _stamp(self, mask: np.ndarray, col: int, row: int) -> None:
        cv2.circle(mask, (col, row), self._min_distance, OCCUPIED, -1)

    @property
    def min_distance(self) -> int:
        """Return the exclusion radius in pixels."""
        return self._min_distance
