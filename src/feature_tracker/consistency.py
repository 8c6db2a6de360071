"""Per-point validity checks applied after each correspondence search."""

from __future__ import annotations

import numpy as np

from .backends.base import CorrespondenceBackend, FlowResult


def in_border(points: np.ndarray, image_shape: tuple[int, ...], margin: int = 1) -> np.ndarray:
    """Return which points lie at least ``margin`` pixels inside the image.

    Coordinates are rounded to the nearest pixel first.

    Args:
        points: Nx2 array of (u, v) coordinates
        image_shape: Image shape (height, width[, channels])
        margin: Border width in pixels

    Returns:
        N boolean array
    """
    height, width = image_shape[:2]
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if len(points) == 0:
        return np.empty(0, dtype=bool)
    finite = np.isfinite(points).all(axis=1)
    rounded = np.rint(np.where(finite[:, None], points, -1.0))
    u = rounded[:, 0]
    v = rounded[:, 1]
    return (
        finite
        & (u >= margin)
        & (u < width - margin)
        & (v >= margin)
        & (v < height - margin)
    )


def forward_backward_check(
    backend: CorrespondenceBackend,
    source_image: np.ndarray,
    target_image: np.ndarray,
    source_points: np.ndarray,
    forward: FlowResult,
    threshold: float = 0.5,
    seeded: bool = True,
) -> np.ndarray:
    """Validate a forward search by tracking the results back to the source.

    A point passes only if the forward search succeeded, the backward
    search succeeded, and the back-tracked point lands within
    ``threshold`` pixels of the original source point.

    Args:
        backend: Correspondence backend used for the backward search
        source_image: Image the forward search started from
        target_image: Image the forward search ended in
        source_points: Nx2 original points in source_image
        forward: Result of the forward search
        threshold: Maximum round-trip distance in pixels
        seeded: Seed the backward search with the source points

    Returns:
        N boolean array of points passing the check
    """
    source_points = np.asarray(source_points, dtype=np.float32).reshape(-1, 2)
    if len(source_points) == 0:
        return np.empty(0, dtype=bool)

    backward = backend.track(
        target_image,
        source_image,
        forward.points,
        seed=source_points if seeded else None,
    )
    distance = np.linalg.norm(
        source_points.astype(np.float64) - backward.points.astype(np.float64), axis=1
    )
    return forward.status & backward.status & (distance <= threshold)
