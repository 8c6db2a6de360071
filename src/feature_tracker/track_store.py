"""Live feature-track storage.

Tracks are held as parallel arrays indexed by track slot (ids, pixels,
ages, undistorted positions, velocities). Slots are compacted and
reordered every frame, so a slot index is only meaningful within one
frame; the id is the stable handle across frames.

The same data is also available as a list of ``Track`` records; the two
representations are interchangeable (``records`` / ``from_records``).
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .errors import TrackInvariantError


@dataclass
class Track:
    """A single live feature track.

    Attributes:
        id: Globally unique, never reused feature identifier
        pixel: Current pixel coordinates (u, v) in the left image
        age: Number of consecutive frames this track has survived (>= 1)
        undistorted: Normalized ray projection (x/z, y/z)
        velocity: Normalized-plane velocity (vx, vy) per second
    """

    id: int
    pixel: np.ndarray  # (2,) float32
    age: int = 1
    undistorted: np.ndarray = field(default_factory=lambda: np.zeros(2))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(2))

    def __post_init__(self) -> None:
        """Ensure vector fields are proper arrays."""
        self.pixel = np.asarray(self.pixel, dtype=np.float32).reshape(2)
        self.undistorted = np.asarray(self.undistorted, dtype=np.float64).reshape(2)
        self.velocity = np.asarray(self.velocity, dtype=np.float64).reshape(2)


class TrackStore:
    """Parallel-array store of the live track set.

    Every mutating operation applies to all sequences at once, so index
    ``i`` always describes the same track across ids, pixels, ages,
    undistorted positions and velocities.
    """

    def __init__(
        self,
        ids: np.ndarray | None = None,
        pixels: np.ndarray | None = None,
        ages: np.ndarray | None = None,
        undistorted: np.ndarray | None = None,
        velocities: np.ndarray | None = None,
    ) -> None:
        """Initialize store, empty by default.

        Args:
            ids: N int array of track ids
            pixels: Nx2 pixel coordinates
            ages: N track ages (default: all ones)
            undistorted: Nx2 normalized coordinates (default: zeros)
            velocities: Nx2 velocities (default: zeros)

        Raises:
            TrackInvariantError: If the arrays are inconsistent
        """
        self._ids = np.asarray(ids if ids is not None else [], dtype=np.int64).reshape(-1)
        n = len(self._ids)
        self._pixels = _as_vectors(pixels, n, np.float32)
        self._ages = (
            np.ones(n, dtype=np.int64)
            if ages is None
            else np.asarray(ages, dtype=np.int64).reshape(-1)
        )
        self._undistorted = _as_vectors(undistorted, n, np.float64)
        self._velocities = _as_vectors(velocities, n, np.float64)
        self.check_invariants()

    @classmethod
    def from_records(cls, tracks: list[Track]) -> TrackStore:
        """Build a store from a list of Track records, keeping their order."""
        if len(tracks) == 0:
            return cls()
        return cls(
            ids=np.array([t.id for t in tracks], dtype=np.int64),
            pixels=np.array([t.pixel for t in tracks], dtype=np.float32),
            ages=np.array([t.age for t in tracks], dtype=np.int64),
            undistorted=np.array([t.undistorted for t in tracks], dtype=np.float64),
            velocities=np.array([t.velocity for t in tracks], dtype=np.float64),
        )

    def records(self) -> list[Track]:
        """Return the live set as a list of Track records (copies)."""
        return [
            Track(
                id=int(self._ids[i]),
                pixel=self._pixels[i].copy(),
                age=int(self._ages[i]),
                undistorted=self._undistorted[i].copy(),
                velocity=self._velocities[i].copy(),
            )
            for i in range(len(self))
        ]

    def copy(self) -> TrackStore:
        """Return an independent copy of the store."""
        return TrackStore(
            ids=self._ids.copy(),
            pixels=self._pixels.copy(),
            ages=self._ages.copy(),
            undistorted=self._undistorted.copy(),
            velocities=self._velocities.copy(),
        )

    def compact(self, keep: np.ndarray) -> int:
        """Drop every track whose keep flag is False, preserving order.

        Args:
            keep: N boolean array aligned with the live set

        Returns:
            Number of tracks removed

        Raises:
            TrackInvariantError: If keep is not aligned with the live set
        """
        keep = np.asarray(keep, dtype=bool).reshape(-1)
        if len(keep) != len(self):
            raise TrackInvariantError(
                f"Keep mask has {len(keep)} entries for {len(self)} tracks"
            )
        removed = len(self) - int(np.count_nonzero(keep))
        if removed == 0:
            return 0

        self._ids = self._ids[keep]
        self._pixels = self._pixels[keep]
        self._ages = self._ages[keep]
        self._undistorted = self._undistorted[keep]
        self._velocities = self._velocities[keep]
        return removed

    def reorder(self, order: np.ndarray) -> None:
        """Rearrange (and possibly subset) tracks by slot indices.

        Args:
            order: Array of distinct slot indices giving the new order

        Raises:
            TrackInvariantError: If order repeats or exceeds slot indices
        """
        order = np.asarray(order, dtype=np.int64).reshape(-1)
        if len(np.unique(order)) != len(order):
            raise TrackInvariantError("Reorder indices must be distinct")
        if len(order) > 0 and (order.min() < 0 or order.max() >= len(self)):
            raise TrackInvariantError("Reorder index out of range")

        self._ids = self._ids[order]
        self._pixels = self._pixels[order]
        self._ages = self._ages[order]
        self._undistorted = self._undistorted[order]
        self._velocities = self._velocities[order]

    def remove_ids(self, ids) -> int:
        """Drop every track whose id is in ids.

        Returns:
            Number of tracks removed
        """
        ids = np.fromiter((int(i) for i in ids), dtype=np.int64)
        return self.compact(~np.isin(self._ids, ids))

    def append_new(self, pixels: np.ndarray, first_id: int) -> np.ndarray:
        """Append newly detected tracks with consecutive ids and age 1.

        Args:
            pixels: Mx2 pixel coordinates of the new tracks
            first_id: Id assigned to the first new track

        Returns:
            M int array of the assigned ids
        """
        pixels = np.asarray(pixels, dtype=np.float32).reshape(-1, 2)
        m = len(pixels)
        new_ids = np.arange(first_id, first_id + m, dtype=np.int64)
        if m == 0:
            return new_ids
        if len(self) > 0 and first_id <= int(self._ids.max()):
            raise TrackInvariantError(
                f"New id {first_id} does not exceed live id {int(self._ids.max())}"
            )

        self._ids = np.concatenate([self._ids, new_ids])
        self._pixels = np.concatenate([self._pixels, pixels])
        self._ages = np.concatenate([self._ages, np.ones(m, dtype=np.int64)])
        self._undistorted = np.concatenate([self._undistorted, np.zeros((m, 2))])
        self._velocities = np.concatenate([self._velocities, np.zeros((m, 2))])
        return new_ids

    def set_pixels(self, pixels: np.ndarray) -> None:
        """Replace all pixel coordinates (one row per live track)."""
        pixels = np.asarray(pixels, dtype=np.float32).reshape(-1, 2)
        if len(pixels) != len(self):
            raise TrackInvariantError(
                f"Got {len(pixels)} pixels for {len(self)} tracks"
            )
        self._pixels = pixels.copy()

    def set_geometry(self, undistorted: np.ndarray, velocities: np.ndarray) -> None:
        """Replace undistorted positions and velocities for all live tracks."""
        undistorted = np.asarray(undistorted, dtype=np.float64).reshape(-1, 2)
        velocities = np.asarray(velocities, dtype=np.float64).reshape(-1, 2)
        if len(undistorted) != len(self) or len(velocities) != len(self):
            raise TrackInvariantError(
                f"Geometry rows ({len(undistorted)}, {len(velocities)}) "
                f"do not match {len(self)} tracks"
            )
        self._undistorted = undistorted.copy()
        self._velocities = velocities.copy()

    def increment_ages(self) -> None:
        """Add one to the age of every live track."""
        self._ages = self._ages + 1

    def index_of(self, track_id: int) -> int | None:
        """Return the slot index of a track id, or None if not live."""
        hits = np.flatnonzero(self._ids == track_id)
        if len(hits) == 0:
            return None
        return int(hits[0])

    def check_invariants(self) -> None:
        """Verify alignment, id uniqueness and age bounds.

        Raises:
            TrackInvariantError: If any invariant is violated
        """
        n = len(self._ids)
        lengths = {
            "pixels": len(self._pixels),
            "ages": len(self._ages),
            "undistorted": len(self._undistorted),
            "velocities": len(self._velocities),
        }
        for name, length in lengths.items():
            if length != n:
                raise TrackInvariantError(
                    f"Sequence '{name}' has {length} entries for {n} ids"
                )
        if len(np.unique(self._ids)) != n:
            raise TrackInvariantError("Duplicate track ids in live set")
        if n > 0 and self._ages.min() < 1:
            raise TrackInvariantError("Track age must be at least 1")

    @property
    def ids(self) -> np.ndarray:
        """Return N int64 array of track ids (read-only view)."""
        return _readonly(self._ids)

    @property
    def pixels(self) -> np.ndarray:
        """Return Nx2 float32 array of pixel coordinates (read-only view)."""
        return _readonly(self._pixels)

    @property
    def ages(self) -> np.ndarray:
        """Return N int64 array of track ages (read-only view)."""
        return _readonly(self._ages)

    @property
    def undistorted(self) -> np.ndarray:
        """Return Nx2 float64 array of undistorted positions (read-only view)."""
        return _readonly(self._undistorted)

    @property
    def velocities(self) -> np.ndarray:
        """Return Nx2 float64 array of velocities (read-only view)."""
        return _readonly(self._velocities)

    def __len__(self) -> int:
        """Return number of live tracks."""
        return len(self._ids)

    def __contains__(self, track_id: object) -> bool:
        """Return True if a track with this id is live."""
        return bool(np.any(self._ids == track_id))


def _as_vectors(values: np.ndarray | None, n: int, dtype) -> np.ndarray:
    if values is None:
        return np.zeros((n, 2), dtype=dtype)
    return np.asarray(values, dtype=dtype).reshape(-1, 2).copy()


def _readonly(array: np.ndarray) -> np.ndarray:
    view = array.view()
    view.flags.writeable = False
    return view
