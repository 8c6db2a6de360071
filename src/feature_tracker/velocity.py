"""Finite-difference feature velocities keyed by track id.

Track slots are compacted and reordered every frame, so the previous
observation of a feature is looked up by id, never by slot index.
"""

from __future__ import annotations

import numpy as np


def points_by_id(ids: np.ndarray, points: np.ndarray) -> dict[int, np.ndarray]:
    """Build an id -> point map for one frame.

    Args:
        ids: N track ids
        points: Nx2 coordinates aligned with ids

    Returns:
        Dictionary mapping each id to a (2,) float64 copy of its point
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    return {int(i): points[k].copy() for k, i in enumerate(ids)}


def compute_velocities(
    ids: np.ndarray,
    points: np.ndarray,
    prev_points_by_id: dict[int, np.ndarray],
    dt: float,
) -> np.ndarray:
    """Velocity of each point relative to its previous observation.

    Points whose id has no previous observation get zero velocity.

    Args:
        ids: N track ids
        points: Nx2 current coordinates aligned with ids
        prev_points_by_id: Previous frame's id -> coordinate map
        dt: Time elapsed since the previous frame (seconds)

    Returns:
        Nx2 float64 array of velocities (units per second)

    Raises:
        ValueError: If dt is not positive while previous observations exist
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    velocities = np.zeros_like(points)
    if not prev_points_by_id or len(points) == 0:
        return velocities
    if dt <= 0:
        raise ValueError(f"Time step must be positive, got {dt}")

    for k, track_id in enumerate(ids):
        prev = prev_points_by_id.get(int(track_id))
        if prev is not None:
            velocities[k] = (points[k] - prev) / dt
    return velocities
