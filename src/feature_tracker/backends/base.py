"""Interfaces shared by all correspondence backends and corner detectors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np


@dataclass
class FlowResult:
    """Output of a point-tracking call.

    Attributes:
        points: Nx2 array of tracked point coordinates in the target image
        status: N boolean array, True where the point was tracked
    """

    points: np.ndarray  # (N, 2) float32
    status: np.ndarray  # (N,) bool

    def __len__(self) -> int:
        """Return number of input points."""
        return len(self.points)

    @property
    def num_tracked(self) -> int:
        """Return number of successfully tracked points."""
        return int(np.count_nonzero(self.status))

    @classmethod
    def empty(cls) -> FlowResult:
        """Return a result for zero input points."""
        return cls(
            points=np.empty((0, 2), dtype=np.float32),
            status=np.empty(0, dtype=bool),
        )


class CorrespondenceBackend(Protocol):
    """Tracks points from one image to another.

    ``seed=None`` requests a full pyramidal search. A seed array (same
    length as ``prev_points``) requests initial-guess mode, where the
    search starts at the seeded location and only refines it.
    """

    def track(
        self,
        prev_image: np.ndarray,
        cur_image: np.ndarray,
        prev_points: np.ndarray,
        seed: np.ndarray | None = None,
    ) -> FlowResult: ...


class CornerDetector(Protocol):
    """Detects new corners where ``mask`` is non-zero, best first.

    ``max_count`` is the number of tracks wanted. Detectors that enforce
    their own spacing return at most that many; others may return more
    and leave the cap to the caller.
    """

    def detect(
        self, image: np.ndarray, mask: np.ndarray | None, max_count: int
    ) -> np.ndarray: ...


def as_points(points: np.ndarray | None) -> np.ndarray:
    """Return points as a contiguous Nx2 float32 array."""
    if points is None:
        return np.empty((0, 2), dtype=np.float32)
    return np.ascontiguousarray(np.asarray(points, dtype=np.float32).reshape(-1, 2))


def check_seed(prev_points: np.ndarray, seed: np.ndarray | None) -> np.ndarray | None:
    """Validate that a seed array matches the input points.

    Raises:
        ValueError: If seed and prev_points have different lengths
    """
    if seed is None:
        return None
    seed = as_points(seed)
    if len(seed) != len(prev_points):
        raise ValueError(
            f"Seed has {len(seed)} points but {len(prev_points)} points are tracked"
        )
    return seed
