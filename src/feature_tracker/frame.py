"""Per-frame tracker state and outputs."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

import numpy as np

from .stereo import StereoObservations
from .track_store import TrackStore

LEFT = 0
RIGHT = 1

# id -> [(camera index, [x, y, 1, u, v, vx, vy]), ...]
FeatureFrame = dict[int, list[tuple[int, np.ndarray]]]


@dataclass(frozen=True)
class FrameSnapshot:
    """Everything carried from one frame to the next.

    A snapshot is never mutated by the tracker: each processed frame
    produces a new one, so several snapshots (or several trackers) can
    coexist without shared mutable state.

    Attributes:
        timestamp: Time of the frame (seconds), None before the first frame
        image: Preprocessed left image of the frame
        store: Live track set after the frame
        next_id: Next unused track id
        left_undistorted_by_id: Left id -> normalized coordinates
        right_undistorted_by_id: Right id -> normalized coordinates
        left_pixels_by_id: Left id -> pixel coordinates
        prediction: Pending id -> seed pixel for the next search, or None
        frame_index: Number of frames processed so far
    """

    timestamp: float | None = None
    image: np.ndarray | None = None
    store: TrackStore = field(default_factory=TrackStore)
    next_id: int = 0
    left_undistorted_by_id: dict[int, np.ndarray] = field(default_factory=dict)
    right_undistorted_by_id: dict[int, np.ndarray] = field(default_factory=dict)
    left_pixels_by_id: dict[int, np.ndarray] = field(default_factory=dict)
    prediction: dict[int, np.ndarray] | None = None
    frame_index: int = 0

    @property
    def has_prediction(self) -> bool:
        """Return True if a prediction is pending for the next frame."""
        return self.prediction is not None

    @property
    def num_tracks(self) -> int:
        """Return number of live tracks."""
        return len(self.store)

    def with_prediction(self, seeds: dict[int, np.ndarray]) -> FrameSnapshot:
        """Return a copy with seed pixels for the next correspondence search."""
        return replace(
            self,
            prediction={int(k): np.asarray(v, dtype=np.float32) for k, v in seeds.items()},
        )

    def without_ids(self, ids) -> FrameSnapshot:
        """Return a copy with the given track ids removed from the live set."""
        ids = {int(i) for i in ids}
        store = self.store.copy()
        store.remove_ids(ids)
        prediction = None
        if self.prediction is not None:
            prediction = {k: v for k, v in self.prediction.items() if k not in ids}
        return replace(self, store=store, prediction=prediction)

    def seed_points(self) -> np.ndarray | None:
        """Return seed pixels aligned with the live set, or None.

        Tracks without a predicted pixel are seeded at their last position.
        """
        if self.prediction is None:
            return None
        seeds = self.store.pixels.copy()
        for k, track_id in enumerate(self.store.ids):
            seed = self.prediction.get(int(track_id))
            if seed is not None:
                seeds[k] = seed
        return seeds


@dataclass
class TrackTiming:
    """Timing breakdown for a single frame."""

    flow_ms: float = 0.0
    mask_ms: float = 0.0
    detect_ms: float = 0.0
    stereo_ms: float = 0.0
    total_ms: float = 0.0


@dataclass
class TrackResult:
    """Output of the tracker for a single frame.

    Attributes:
        features: id -> list of (camera index, 7-vector) observations
        snapshot: State to feed into the next frame
        right: Right-image observations, None for mono frames
        num_tracked: Tracks carried over from the previous frame
        num_new: Tracks created in this frame
        timing: Processing time breakdown
    """

    features: FeatureFrame
    snapshot: FrameSnapshot
    right: StereoObservations | None = None
    num_tracked: int = 0
    num_new: int = 0
    timing: TrackTiming = field(default_factory=TrackTiming)

    @property
    def num_features(self) -> int:
        """Return number of live left tracks."""
        return self.snapshot.num_tracks

    @property
    def num_right(self) -> int:
        """Return number of right-image observations."""
        return 0 if self.right is None else len(self.right)


def add_observations(
    features: FeatureFrame,
    camera_id: int,
    ids: np.ndarray,
    undistorted: np.ndarray,
    pixels: np.ndarray,
    velocities: np.ndarray,
) -> None:
    """Append one camera's observations to a feature frame in place.

    Each observation is the 7-vector ``[x, y, 1, u, v, vx, vy]``.
    """
    for k, track_id in enumerate(ids):
        vector = np.array(
            [
                undistorted[k][0],
                undistorted[k][1],
                1.0,
                pixels[k][0],
                pixels[k][1],
                velocities[k][0],
                velocities[k][1],
            ],
            dtype=np.float64,
        )
        features.setdefault(int(track_id), []).append((camera_id, vector))
