"""Per-frame feature tracking pipeline."""

from __future__ import annotations

import logging
import math
import time
from pathlib import Path

import cv2
import numpy as np

from .backends import CornerDetector, CorrespondenceBackend, create_backend
from .camera import CameraModel, load_camera
from .config import TrackerConfig
from .consistency import forward_backward_check, in_border
from .density import DensityController
from .errors import BackendError, ConfigError, InputError, TrackInvariantError
from .frame import (
    LEFT,
    RIGHT,
    FeatureFrame,
    FrameSnapshot,
    TrackResult,
    TrackTiming,
    add_observations,
)
from .outlier import FundamentalMatrixFilter
from .stereo import StereoAssociator, StereoObservations
from .track_store import Track, TrackStore
from .velocity import compute_velocities, points_by_id

logger = logging.getLogger(__name__)


class FeatureTracker:
    """Maintains persistent, uniquely identified feature tracks across frames.

    Orchestrates the per-frame pipeline:
    1. Propagate previous tracks into the new image (optionally seeded by
       a motion prediction, with a full-search fallback)
    2. Forward/backward consistency check and border filter
    3. Age update and optional epipolar (fundamental matrix) rejection
    4. Density control, prioritising long-lived tracks
    5. Replenish with new detections up to ``max_track_count``
    6. Undistort and compute velocities against the previous frame
    7. Associate tracks with the right image (stereo only)

    One instance serves one camera stream. Frames must be processed one at
    a time, and ``set_prediction`` / ``remove_outliers`` must not be called
    while ``track_image`` runs; use a single caller thread per instance or
    external locking.

    Example:
        >>> tracker = FeatureTracker.from_yaml("config/euroc/euroc_stereo.yaml")
        >>> features = tracker.track_image(timestamp, left, right)
        >>> for feature_id, observations in features.items():
        ...     for camera_id, xyz_uv_velocity in observations:
        ...         pass
    """

    def __init__(
        self,
        config: TrackerConfig,
        cameras: list[CameraModel],
        backend: CorrespondenceBackend | None = None,
        detector: CornerDetector | None = None,
    ) -> None:
        """Initialize tracker.

        Args:
            config: Tracker configuration
            cameras: One camera model (mono) or two (stereo: left, right)
            backend: Correspondence backend; built from config if None
            detector: Corner detector; built from config if None

        Raises:
            ConfigError: If the configuration or camera list is invalid
            BackendUnavailableError: If the configured backend cannot run
        """
        config.validate()
        if not 1 <= len(cameras) <= 2:
            raise ConfigError(f"Expected one or two cameras, got {len(cameras)}")

        self._config = config
        self._cameras = list(cameras)

        if backend is None or detector is None:
            default_backend, default_detector = create_backend(config)
            backend = backend or default_backend
            detector = detector or default_detector
        self._backend = backend
        self._detector = detector

        self._density = DensityController(config.min_pixel_separation)
        self._stereo = None
        if len(self._cameras) == 2:
            self._stereo = StereoAssociator(
                backend,
                self._cameras[1],
                flow_back=config.forward_backward_check,
                flow_back_threshold=config.flow_back_threshold,
                border_margin=config.border_margin,
            )
        self._fundamental_filter = None
        if config.reject_with_fundamental:
            self._fundamental_filter = FundamentalMatrixFilter(
                self._cameras[0], threshold=config.fundamental_threshold
            )
        self._clahe = cv2.createCLAHE(3.0, (8, 8)) if config.equalize else None

        self._snapshot = FrameSnapshot()
        self._last_result: TrackResult | None = None
        self._warned_mono_right = False

    @classmethod
    def from_config(
        cls,
        config: TrackerConfig,
        backend: CorrespondenceBackend | None = None,
        detector: CornerDetector | None = None,
    ) -> FeatureTracker:
        """Create a tracker, loading cameras from ``config.calibration_files``.

        Raises:
            ConfigError: If no calibration file is configured
            FileNotFoundError: If a calibration file doesn't exist
        """
        if not config.calibration_files:
            raise ConfigError("No calibration files configured")
        cameras = [load_camera(path) for path in config.calibration_files]
        return cls(config, cameras, backend=backend, detector=detector)

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> FeatureTracker:
        """Create a tracker from a VINS-style configuration file."""
        return cls.from_config(TrackerConfig.from_yaml(yaml_path))

    def track_image(
        self,
        timestamp: float,
        left: np.ndarray,
        right: np.ndarray | None = None,
    ) -> FeatureFrame:
        """Process one frame and return the observations of all live features.

        On any error the tracker state is left as it was before the call.

        Args:
            timestamp: Frame time in seconds (strictly increasing)
            left: Left (or only) camera image, 8-bit grayscale or BGR
            right: Right camera image for stereo trackers

        Returns:
            Mapping id -> list of (camera index, [x, y, 1, u, v, vx, vy]);
            camera index 0 is the left image, 1 the right image
        """
        result = self.step(self._snapshot, timestamp, left, right)
        self._snapshot = result.snapshot
        self._last_result = result
        return result.features

    def step(
        self,
        snapshot: FrameSnapshot,
        timestamp: float,
        left: np.ndarray,
        right: np.ndarray | None = None,
    ) -> TrackResult:
        """Run the pipeline on an explicit previous-frame snapshot.

        The input snapshot is not modified; the returned result carries the
        snapshot for the next frame.

        Args:
            snapshot: State after the previous frame
            timestamp: Frame time in seconds
            left: Left (or only) camera image
            right: Right camera image for stereo trackers

        Returns:
            TrackResult with features, next snapshot and statistics
        """
        timing = TrackTiming()
        t_start = time.perf_counter()

        timestamp, left, right = self._prepare_inputs(snapshot, timestamp, left, right)
        store = snapshot.store.copy()

        # Stage 1: Propagate previous tracks
        t0 = time.perf_counter()
        prev_pixels = np.empty((0, 2), dtype=np.float32)
        if len(store) > 0:
            prev_pixels = self._propagate(snapshot, store, left)
        store.increment_ages()
        timing.flow_ms = (time.perf_counter() - t0) * 1000

        if self._fundamental_filter is not None and len(store) > 0:
            keep = self._fundamental_filter.inliers(prev_pixels, store.pixels, left.shape)
            store.compact(keep)
        num_tracked = len(store)

        # Stage 2: Density control
        t0 = time.perf_counter()
        mask = self._density.apply(store, left.shape)
        timing.mask_ms = (time.perf_counter() - t0) * 1000
        logger.debug(
            "Frame %d: %d of %d tracks survived, %d after density control",
            snapshot.frame_index,
            num_tracked,
            len(snapshot.store),
            len(store),
        )

        # Stage 3: Replenish
        t0 = time.perf_counter()
        new_ids = self._replenish(store, left, mask, snapshot.next_id)
        next_id = snapshot.next_id + len(new_ids)
        timing.detect_ms = (time.perf_counter() - t0) * 1000

        # Stage 4: Undistort and velocity
        dt = 0.0 if snapshot.timestamp is None else timestamp - snapshot.timestamp
        undistorted = self._cameras[0].undistort(store.pixels)
        velocities = compute_velocities(
            store.ids, undistorted, snapshot.left_undistorted_by_id, dt
        )
        store.set_geometry(undistorted, velocities)
        store.check_invariants()

        # Stage 5: Stereo association
        t0 = time.perf_counter()
        right_obs: StereoObservations | None = None
        right_by_id: dict[int, np.ndarray] = {}
        if right is not None and self._stereo is not None:
            right_obs = self._stereo.associate(
                left,
                right,
                store.ids,
                store.pixels,
                snapshot.right_undistorted_by_id,
                dt,
            )
            right_by_id = right_obs.undistorted_by_id()
        timing.stereo_ms = (time.perf_counter() - t0) * 1000

        # Stage 6: Emit
        features: FeatureFrame = {}
        add_observations(
            features, LEFT, store.ids, store.undistorted, store.pixels, store.velocities
        )
        if right_obs is not None:
            add_observations(
                features,
                RIGHT,
                right_obs.ids,
                right_obs.undistorted,
                right_obs.pixels,
                right_obs.velocities,
            )

        next_snapshot = FrameSnapshot(
            timestamp=timestamp,
            image=left,
            store=store,
            next_id=next_id,
            left_undistorted_by_id=points_by_id(store.ids, store.undistorted),
            right_undistorted_by_id=right_by_id,
            left_pixels_by_id=points_by_id(store.ids, store.pixels),
            prediction=None,
            frame_index=snapshot.frame_index + 1,
        )
        timing.total_ms = (time.perf_counter() - t_start) * 1000

        return TrackResult(
            features=features,
            snapshot=next_snapshot,
            right=right_obs,
            num_tracked=num_tracked,
            num_new=len(new_ids),
            timing=timing,
        )

    def set_prediction(self, predicted_points: dict[int, np.ndarray]) -> int:
        """Seed the next search with predicted 3D feature positions.

        Each point is given in the left camera frame and is projected
        through the left camera model. Live tracks without a prediction
        are seeded at their current pixel. The prediction applies to the
        next frame only.

        Args:
            predicted_points: id -> (3,) point in the left camera frame

        Returns:
            Number of live tracks that received a projected seed
        """
        store = self._snapshot.store
        ids = []
        points = []
        for track_id, point in predicted_points.items():
            point = np.asarray(point, dtype=np.float64).reshape(3)
            if int(track_id) not in store:
                continue
            if not point[2] > 0:
                logger.debug("Ignoring prediction behind camera for id %d", track_id)
                continue
            ids.append(int(track_id))
            points.append(point)

        seeds = {}
        if ids:
            pixels = self._cameras[0].space_to_plane(np.array(points))
            seeds = dict(zip(ids, pixels))
        self._snapshot = self._snapshot.with_prediction(seeds)
        return len(seeds)

    def remove_outliers(self, ids) -> int:
        """Drop the given track ids from the live set immediately.

        Removed ids are retired for good; they are never assigned again.

        Args:
            ids: Iterable of track ids flagged as outliers

        Returns:
            Number of tracks removed
        """
        before = len(self._snapshot.store)
        self._snapshot = self._snapshot.without_ids(ids)
        removed = before - len(self._snapshot.store)
        logger.debug("Removed %d outlier tracks", removed)
        return removed

    def reset(self) -> None:
        """Forget all tracks and history. Track ids keep increasing."""
        self._snapshot = FrameSnapshot(next_id=self._snapshot.next_id)
        self._last_result = None

    def tracks(self) -> list[Track]:
        """Return the live track set as records."""
        return self._snapshot.store.records()

    def _propagate(
        self, snapshot: FrameSnapshot, store: TrackStore, image: np.ndarray
    ) -> np.ndarray:
        """Track the live set into the new image and compact it.

        Returns:
            Previous-frame pixels of the surviving tracks (aligned with store)
        """
        if snapshot.image is None:
            raise TrackInvariantError("Live tracks exist but no previous image is stored")

        config = self._config
        prev_image = snapshot.image
        prev_pixels = store.pixels.copy()

        seed = snapshot.seed_points()
        if seed is not None:
            flow = self._backend.track(prev_image, image, prev_pixels, seed=seed)
            if flow.num_tracked < config.min_seeded_successes:
                logger.debug(
                    "Seeded search tracked %d points, retrying full search",
                    flow.num_tracked,
                )
                flow = self._backend.track(prev_image, image, prev_pixels)
        else:
            flow = self._backend.track(prev_image, image, prev_pixels)

        if len(flow) != len(prev_pixels):
            raise BackendError(
                f"Backend returned {len(flow)} points for {len(prev_pixels)} inputs"
            )

        if config.forward_backward_check:
            keep = forward_backward_check(
                self._backend,
                prev_image,
                image,
                prev_pixels,
                flow,
                threshold=config.flow_back_threshold,
                seeded=True,
            )
        else:
            keep = flow.status.copy()
        keep &= in_border(flow.points, image.shape, config.border_margin)

        store.set_pixels(flow.points)
        store.compact(keep)
        return prev_pixels[keep]

    def _replenish(
        self, store: TrackStore, image: np.ndarray, mask: np.ndarray, next_id: int
    ) -> np.ndarray:
        """Add new tracks until the live set reaches max_track_count.

        Returns:
            Ids assigned to the new tracks
        """
        deficit = self._config.max_track_count - len(store)
        if deficit <= 0:
            return np.empty(0, dtype=np.int64)

        candidates = self._detector.detect(image, mask, deficit)
        candidates = candidates[in_border(candidates, image.shape, self._config.border_margin)]
        admitted = self._density.admit(candidates, mask)[:deficit]
        new_ids = store.append_new(admitted, next_id)
        logger.debug("Detected %d candidates, added %d tracks", len(candidates), len(new_ids))
        return new_ids

    def _prepare_inputs(
        self,
        snapshot: FrameSnapshot,
        timestamp: float,
        left: np.ndarray,
        right: np.ndarray | None,
    ) -> tuple[float, np.ndarray, np.ndarray | None]:
        """Validate and preprocess the frame inputs.

        Returns:
            Timestamp as float seconds and the grayscale images

        Raises:
            InputError: If the timestamp or an image is invalid
        """
        try:
            timestamp = float(timestamp)
        except (TypeError, ValueError) as e:
            raise InputError(f"Invalid timestamp: {timestamp!r}") from e
        if not math.isfinite(timestamp):
            raise InputError(f"Timestamp must be finite, got {timestamp}")
        if snapshot.timestamp is not None and timestamp <= snapshot.timestamp:
            raise InputError(
                f"Timestamp {timestamp} does not follow previous frame at {snapshot.timestamp}"
            )

        expected = self._config.image_size or self._cameras[0].image_size
        left = self._prepare_image(left, "Left", expected)
        if snapshot.image is not None and snapshot.image.shape != left.shape:
            raise InputError(
                f"Left image shape {left.shape} differs from previous frame "
                f"{snapshot.image.shape}"
            )

        if right is None:
            return timestamp, left, None

        if self._stereo is None:
            if not self._warned_mono_right:
                logger.warning("Right image supplied to a mono tracker; ignoring it")
                self._warned_mono_right = True
            return timestamp, left, None

        right = self._prepare_image(right, "Right", self._cameras[1].image_size or expected)
        if right.shape != left.shape:
            raise InputError(
                f"Right image shape {right.shape} differs from left image {left.shape}"
            )
        return timestamp, left, right

    def _prepare_image(
        self, image: np.ndarray, name: str, expected_size: tuple[int, int] | None
    ) -> np.ndarray:
        if image is None or not isinstance(image, np.ndarray) or image.size == 0:
            raise InputError(f"{name} image is empty")
        if image.dtype != np.uint8:
            raise InputError(f"{name} image must be 8-bit, got {image.dtype}")

        if image.ndim == 3 and image.shape[2] == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        elif image.ndim == 3 and image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        elif image.ndim == 3 and image.shape[2] == 1:
            image = image[:, :, 0]
        elif image.ndim != 2:
            raise InputError(f"{name} image has unsupported shape {image.shape}")

        if expected_size is not None:
            width, height = expected_size
            if image.shape != (height, width):
                raise InputError(
                    f"{name} image is {image.shape[1]}x{image.shape[0]}, "
                    f"calibration expects {width}x{height}"
                )

        if self._clahe is not None:
            image = self._clahe.apply(image)
        return np.ascontiguousarray(image)

    @property
    def config(self) -> TrackerConfig:
        """Return the tracker configuration."""
        return self._config

    @property
    def cameras(self) -> list[CameraModel]:
        """Return the camera models (left first)."""
        return list(self._cameras)

    @property
    def is_stereo(self) -> bool:
        """Return True if the tracker associates a right image."""
        return self._stereo is not None

    @property
    def snapshot(self) -> FrameSnapshot:
        """Return the state after the last processed frame."""
        return self._snapshot

    @property
    def last_result(self) -> TrackResult | None:
        """Return the full result of the last processed frame."""
        return self._last_result

    @property
    def num_tracks(self) -> int:
        """Return number of live tracks."""
        return len(self._snapshot.store)
