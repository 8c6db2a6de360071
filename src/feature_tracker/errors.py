"""Exception types raised by the feature tracker."""


class FeatureTrackerError(Exception):
    """Base class for all feature tracker errors."""


class InputError(FeatureTrackerError, ValueError):
    """Frame inputs are malformed; the frame is not processed."""


class ConfigError(FeatureTrackerError, ValueError):
    """Tracker configuration is invalid."""


class CalibrationError(FeatureTrackerError, ValueError):
    """Camera calibration file is malformed."""


class BackendError(FeatureTrackerError, RuntimeError):
    """Correspondence backend or detector call failed."""


class BackendUnavailableError(BackendError):
    """Requested backend variant cannot run on this machine."""


class TrackInvariantError(FeatureTrackerError, AssertionError):
    """Track store invariant was violated (programming error)."""
