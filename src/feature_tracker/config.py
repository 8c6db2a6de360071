"""Tracker configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .yaml_io import load_yaml


class BackendVariant(Enum):
    """Correspondence backend / detector implementation."""

    CPU = "cpu"
    GPU = "gpu"
    HARDWARE = "hardware"


HARDWARE_BACKENDS = ("cpu", "cuda", "pva")


@dataclass
class TrackerConfig:
    """Options recognised by the feature tracker.

    Attributes:
        max_track_count: Target number of live tracks (replenishment cap)
        min_pixel_separation: Minimum distance (pixels) between two live tracks
        forward_backward_check: Validate flow by tracking back to the source image
        flow_back_threshold: Max distance (pixels) between original and
            back-tracked point for a track to survive the check
        border_margin: Tracks closer than this to any image edge are dropped
        backend_variant: Which correspondence backend and detector to use
        hardware_backend: VPI backend for the hardware variant (cpu, cuda, pva)
        calibration_files: One (mono) or two (stereo) camera calibration files
        image_width: Expected image width; None accepts any size
        image_height: Expected image height; None accepts any size
        min_seeded_successes: If a seeded search tracks fewer points than this,
            a full search replaces it
        reject_with_fundamental: Enable fundamental-matrix RANSAC rejection
        fundamental_threshold: RANSAC reprojection threshold (pixels)
        lk_window: Optical flow window size (pixels, square)
        lk_max_level: Pyramid levels used by a full (unseeded) search
        quality_level: Minimal accepted corner quality for detection
        equalize: Apply CLAHE to input images before tracking
    """

    max_track_count: int = 150
    min_pixel_separation: int = 30
    forward_backward_check: bool = True
    flow_back_threshold: float = 0.5
    border_margin: int = 1
    backend_variant: BackendVariant = BackendVariant.CPU
    hardware_backend: str = "cuda"
    calibration_files: list[str] = field(default_factory=list)
    image_width: int | None = None
    image_height: int | None = None
    min_seeded_successes: int = 10
    reject_with_fundamental: bool = False
    fundamental_threshold: float = 1.0
    lk_window: int = 21
    lk_max_level: int = 3
    quality_level: float = 0.01
    equalize: bool = False

    def __post_init__(self) -> None:
        """Accept plain strings for the backend variant."""
        if isinstance(self.backend_variant, str):
            try:
                self.backend_variant = BackendVariant(self.backend_variant.lower())
            except ValueError as e:
                raise ConfigError(
                    f"Unknown backend_variant '{self.backend_variant}', "
                    f"expected one of {[v.value for v in BackendVariant]}"
                ) from e

    @property
    def is_stereo(self) -> bool:
        """Return True if two cameras are configured."""
        return len(self.calibration_files) == 2

    @property
    def image_size(self) -> tuple[int, int] | None:
        """Return expected image size as (width, height), or None."""
        if self.image_width is None or self.image_height is None:
            return None
        return (self.image_width, self.image_height)

    def validate(self) -> None:
        """Check option ranges.

        Raises:
            ConfigError: If any option is out of range
        """
        if self.max_track_count <= 0:
            raise ConfigError("max_track_count must be positive")
        if self.min_pixel_separation < 0:
            raise ConfigError("min_pixel_separation must be non-negative")
        if self.flow_back_threshold < 0:
            raise ConfigError("flow_back_threshold must be non-negative")
        if self.border_margin < 0:
            raise ConfigError("border_margin must be non-negative")
        if self.min_seeded_successes < 0:
            raise ConfigError("min_seeded_successes must be non-negative")
        if self.lk_window < 3 or self.lk_window % 2 == 0:
            raise ConfigError("lk_window must be an odd number >= 3")
        if self.lk_max_level < 0:
            raise ConfigError("lk_max_level must be non-negative")
        if not 0.0 < self.quality_level < 1.0:
            raise ConfigError("quality_level must be in (0, 1)")
        if self.fundamental_threshold <= 0:
            raise ConfigError("fundamental_threshold must be positive")
        if len(self.calibration_files) > 2:
            raise ConfigError("At most two calibration files are supported")
        if self.hardware_backend not in HARDWARE_BACKENDS:
            raise ConfigError(
                f"hardware_backend must be one of {HARDWARE_BACKENDS}, "
                f"got '{self.hardware_backend}'"
            )
        if (self.image_width is None) != (self.image_height is None):
            raise ConfigError("image_width and image_height must be set together")

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> TrackerConfig:
        """Load configuration from a VINS-style YAML file.

        Recognises the VINS key names (``max_cnt``, ``min_dist``,
        ``flow_back``, ``F_threshold``, ``cam0_calib``, ...) as well as the
        attribute names of this class. Calibration paths are resolved
        relative to the configuration file.

        Args:
            yaml_path: Path to the configuration file

        Returns:
            Validated TrackerConfig

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigError: If the file or an option is invalid
        """
        path = Path(yaml_path)
        try:
            data = load_yaml(path)
        except ValueError as e:
            raise ConfigError(str(e)) from e

        config = cls(**_options_from_mapping(data, path.parent))
        config.validate()
        return config


_VINS_KEYS = {
    "max_cnt": "max_track_count",
    "min_dist": "min_pixel_separation",
    "flow_back": "forward_backward_check",
    "F_threshold": "fundamental_threshold",
    "image_width": "image_width",
    "image_height": "image_height",
}

_BOOL_OPTIONS = ("forward_backward_check", "reject_with_fundamental", "equalize")
_INT_OPTIONS = (
    "max_track_count",
    "min_pixel_separation",
    "border_margin",
    "image_width",
    "image_height",
    "min_seeded_successes",
    "lk_window",
    "lk_max_level",
)
_FLOAT_OPTIONS = ("flow_back_threshold", "fundamental_threshold", "quality_level")


def _options_from_mapping(data: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    """Translate a parsed YAML mapping into TrackerConfig keyword arguments."""
    options: dict[str, Any] = {}

    for key, name in _VINS_KEYS.items():
        if key in data:
            options[name] = data[key]

    native = set(TrackerConfig.__dataclass_fields__)
    for key, value in data.items():
        if key in native:
            options[key] = value

    # Legacy per-backend flags, most specific first
    if "backend_variant" not in data:
        if data.get("use_vpi"):
            options["backend_variant"] = BackendVariant.HARDWARE
        elif data.get("use_gpu") or data.get("use_gpu_acc_flow"):
            options["backend_variant"] = BackendVariant.GPU

    if "vpi_backend" in data and "hardware_backend" not in data:
        vpi_backend = data["vpi_backend"]
        if isinstance(vpi_backend, int):
            if not 0 <= vpi_backend < len(HARDWARE_BACKENDS):
                raise ConfigError(f"Invalid vpi_backend index {vpi_backend}")
            vpi_backend = HARDWARE_BACKENDS[vpi_backend]
        options["hardware_backend"] = str(vpi_backend).lower()

    if "calibration_files" not in data:
        num_cams = int(data.get("num_of_cam", 2 if "cam1_calib" in data else 1))
        files = []
        for i in range(num_cams):
            key = f"cam{i}_calib"
            if key not in data:
                if i == 0:
                    break
                raise ConfigError(f"num_of_cam is {num_cams} but '{key}' is missing")
            files.append(data[key])
        options["calibration_files"] = files

    options["calibration_files"] = [
        str(_resolve(base_dir, f)) for f in options.get("calibration_files", [])
    ]

    try:
        for name in _BOOL_OPTIONS:
            if name in options:
                options[name] = bool(options[name])
        for name in _INT_OPTIONS:
            if options.get(name) is not None:
                options[name] = int(options[name])
        for name in _FLOAT_OPTIONS:
            if name in options:
                options[name] = float(options[name])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid option value: {e}") from e

    return options


def _resolve(base_dir: Path, filename: str) -> Path:
    path = Path(filename)
    if path.is_absolute():
        return path
    return base_dir / path
