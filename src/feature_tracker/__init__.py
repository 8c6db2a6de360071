"""Feature tracker - persistent 2D feature tracks for visual(-inertial) odometry."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .errors import (
    BackendError,
    BackendUnavailableError,
    CalibrationError,
    ConfigError,
    FeatureTrackerError,
    InputError,
    TrackInvariantError,
)
from .config import BackendVariant, TrackerConfig
from .camera import CameraIntrinsics, CameraModel, DistortionCoeffs, load_camera
from .backends import (
    CornerDetector,
    CorrespondenceBackend,
    CpuCornerDetector,
    CpuFlowBackend,
    FlowResult,
    GpuCornerDetector,
    GpuFlowBackend,
    HardwareCornerDetector,
    HardwareFlowBackend,
    create_backend,
)
from .track_store import Track, TrackStore
from .density import DensityController
from .stereo import StereoAssociator, StereoObservations
from .outlier import FundamentalMatrixFilter
from .frame import LEFT, RIGHT, FeatureFrame, FrameSnapshot, TrackResult, TrackTiming
from .tracker import FeatureTracker
from .dataset_reader import DatasetReader

__all__ = [
    "__version__",
    # Tracker
    "FeatureTracker",
    "FrameSnapshot",
    "TrackResult",
    "TrackTiming",
    "FeatureFrame",
    "LEFT",
    "RIGHT",
    # Configuration
    "TrackerConfig",
    "BackendVariant",
    # Camera
    "CameraModel",
    "CameraIntrinsics",
    "DistortionCoeffs",
    "load_camera",
    # Backends
    "create_backend",
    "CorrespondenceBackend",
    "CornerDetector",
    "FlowResult",
    "CpuFlowBackend",
    "CpuCornerDetector",
    "GpuFlowBackend",
    "GpuCornerDetector",
    "HardwareFlowBackend",
    "HardwareCornerDetector",
    # Tracks
    "Track",
    "TrackStore",
    "DensityController",
    "StereoAssociator",
    "StereoObservations",
    "FundamentalMatrixFilter",
    # Dataset
    "DatasetReader",
    # Errors
    "FeatureTrackerError",
    "InputError",
    "ConfigError",
    "CalibrationError",
    "BackendError",
    "BackendUnavailableError",
    "TrackInvariantError",
]
