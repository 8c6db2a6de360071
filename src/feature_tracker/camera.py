"""Calibrated camera models mapping pixels to normalized rays and back."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from .errors import CalibrationError
from .yaml_io import load_yaml

logger = logging.getLogger(__name__)

PINHOLE = "pinhole"
EQUIDISTANT = "equidistant"

# Iterative undistortion stops on count or on sub-nano-pixel reprojection error
_UNDISTORT_CRITERIA = (cv2.TERM_CRITERIA_COUNT | cv2.TERM_CRITERIA_EPS, 100, 1e-10)


@dataclass
class CameraIntrinsics:
    """Camera intrinsic parameters (pinhole projection)."""

    fx: float  # Focal length x (pixels)
    fy: float  # Focal length y (pixels)
    cx: float  # Principal point x (pixels)
    cy: float  # Principal point y (pixels)

    def to_matrix(self) -> np.ndarray:
        """Return 3x3 camera intrinsic matrix K."""
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )


@dataclass
class DistortionCoeffs:
    """Four lens distortion coefficients.

    For the pinhole model these are radial-tangential (k1, k2, p1, p2);
    for the equidistant model they are the fisheye terms (k1, k2, k3, k4).
    """

    c1: float = 0.0
    c2: float = 0.0
    c3: float = 0.0
    c4: float = 0.0

    def to_array(self) -> np.ndarray:
        """Return distortion coefficients as (4,) array for OpenCV."""
        return np.array([self.c1, self.c2, self.c3, self.c4], dtype=np.float64)


class CameraModel:
    """Distortion adapter for a single calibrated camera.

    Provides the two mappings the tracker needs:
    - ``lift_projective``: distorted pixel -> undistorted projective ray
    - ``space_to_plane``: 3D point in camera frame -> distorted pixel

    Example:
        >>> camera = CameraModel(CameraIntrinsics(458.6, 457.3, 367.2, 248.4),
        ...                      DistortionCoeffs(-0.28, 0.07, 0.0002, 0.00002),
        ...                      image_size=(752, 480))
        >>> rays = camera.lift_projective(np.array([[100.0, 120.0]]))
    """

    def __init__(
        self,
        intrinsics: CameraIntrinsics,
        distortion: DistortionCoeffs | None = None,
        image_size: tuple[int, int] | None = None,
        model: str = PINHOLE,
        name: str = "camera",
    ) -> None:
        """Initialize camera model.

        Args:
            intrinsics: Focal lengths and principal point
            distortion: Distortion coefficients (zeros if None)
            image_size: Calibrated resolution as (width, height), if known
            model: ``"pinhole"`` (radial-tangential) or ``"equidistant"``
            name: Human-readable camera name used in log messages
        """
        if model not in (PINHOLE, EQUIDISTANT):
            raise CalibrationError(f"Unsupported camera model: {model}")

        self._intrinsics = intrinsics
        self._distortion = distortion or DistortionCoeffs()
        self._image_size = image_size
        self._model = model
        self._name = name

        self._K = intrinsics.to_matrix()
        self._D = self._distortion.to_array()

    def lift_projective(self, pixels: np.ndarray) -> np.ndarray:
        """Lift distorted pixels to undistorted projective rays.

        Args:
            pixels: Nx2 array of pixel coordinates (u, v)

        Returns:
            Nx3 array of rays (x, y, 1) in the camera frame
        """
        normalized = self.undistort(pixels)
        return np.hstack([normalized, np.ones((len(normalized), 1))])

    def undistort(self, pixels: np.ndarray) -> np.ndarray:
        """Return undistorted normalized coordinates (x/z, y/z) for pixels.

        Args:
            pixels: Nx2 array of pixel coordinates (u, v)

        Returns:
            Nx2 float64 array of normalized image-plane coordinates
        """
        pts = np.asarray(pixels, dtype=np.float64).reshape(-1, 1, 2)
        if len(pts) == 0:
            return np.empty((0, 2), dtype=np.float64)

        if self._model == EQUIDISTANT:
            out = cv2.fisheye.undistortPoints(pts, self._K, self._D)
        else:
            out = cv2.undistortPointsIter(
                pts, self._K, self._D, None, None, _UNDISTORT_CRITERIA
            )
        return out.reshape(-1, 2).astype(np.float64)

    def space_to_plane(self, points: np.ndarray) -> np.ndarray:
        """Project 3D points in the camera frame to distorted pixels.

        Args:
            points: Nx3 array of points (z > 0)

        Returns:
            Nx2 float64 array of pixel coordinates
        """
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 1, 3)
        if len(pts) == 0:
            return np.empty((0, 2), dtype=np.float64)

        rvec = np.zeros(3, dtype=np.float64)
        tvec = np.zeros(3, dtype=np.float64)
        if self._model == EQUIDISTANT:
            out, _ = cv2.fisheye.projectPoints(pts, rvec, tvec, self._K, self._D)
        else:
            out, _ = cv2.projectPoints(pts, rvec, tvec, self._K, self._D)
        return out.reshape(-1, 2).astype(np.float64)

    @property
    def intrinsics(self) -> CameraIntrinsics:
        """Return the pinhole intrinsics."""
        return self._intrinsics

    @property
    def distortion(self) -> DistortionCoeffs:
        """Return the distortion coefficients."""
        return self._distortion

    @property
    def image_size(self) -> tuple[int, int] | None:
        """Return calibrated image size as (width, height), or None."""
        return self._image_size

    @property
    def model(self) -> str:
        """Return the projection model name."""
        return self._model

    @property
    def name(self) -> str:
        """Return the camera name."""
        return self._name


def _require(data: dict, key: str, path: Path, length: int | None = None):
    value = data.get(key)
    if value is None:
        raise CalibrationError(f"Missing '{key}' in {path}")
    if length is not None and (not isinstance(value, list) or len(value) != length):
        raise CalibrationError(f"Invalid '{key}' in {path}: expected {length} values")
    return value


def _load_euroc(data: dict, path: Path) -> CameraModel:
    """Parse a EuRoC/Kalibr ``sensor.yaml`` camera description."""
    fx, fy, cx, cy = _require(data, "intrinsics", path, 4)
    coeffs = _require(data, "distortion_coefficients", path, 4)
    width, height = _require(data, "resolution", path, 2)

    distortion_model = str(data.get("distortion_model", "radial-tangential")).lower()
    model = EQUIDISTANT if distortion_model in ("equidistant", "fisheye") else PINHOLE

    return CameraModel(
        CameraIntrinsics(float(fx), float(fy), float(cx), float(cy)),
        DistortionCoeffs(*(float(c) for c in coeffs)),
        image_size=(int(width), int(height)),
        model=model,
        name=str(data.get("comment", path.stem)),
    )


def _load_camodocal(data: dict, path: Path) -> CameraModel:
    """Parse a camodocal-style camera description (PINHOLE or KANNALA_BRANDT)."""
    model_type = str(data["model_type"]).upper()
    proj = _require(data, "projection_parameters", path)
    size = (int(_require(data, "image_width", path)), int(_require(data, "image_height", path)))
    name = str(data.get("camera_name", path.stem))

    try:
        if model_type == "PINHOLE":
            dist = data.get("distortion_parameters") or {}
            return CameraModel(
                CameraIntrinsics(
                    float(proj["fx"]), float(proj["fy"]), float(proj["cx"]), float(proj["cy"])
                ),
                DistortionCoeffs(
                    float(dist.get("k1", 0.0)),
                    float(dist.get("k2", 0.0)),
                    float(dist.get("p1", 0.0)),
                    float(dist.get("p2", 0.0)),
                ),
                image_size=size,
                model=PINHOLE,
                name=name,
            )
        if model_type == "KANNALA_BRANDT":
            return CameraModel(
                CameraIntrinsics(
                    float(proj["mu"]), float(proj["mv"]), float(proj["u0"]), float(proj["v0"])
                ),
                DistortionCoeffs(
                    float(proj["k2"]), float(proj["k3"]), float(proj["k4"]), float(proj["k5"])
                ),
                image_size=size,
                model=EQUIDISTANT,
                name=name,
            )
    except KeyError as e:
        raise CalibrationError(f"Missing projection parameter {e} in {path}") from e

    raise CalibrationError(f"Unsupported model_type '{model_type}' in {path}")


def load_camera(yaml_path: str | Path) -> CameraModel:
    """Load a camera model from a calibration file.

    Both EuRoC ``sensor.yaml`` files and camodocal-style files (as shipped
    with VINS configurations) are recognised.

    Args:
        yaml_path: Path to the calibration file

    Returns:
        Configured CameraModel

    Raises:
        FileNotFoundError: If the file doesn't exist
        CalibrationError: If the file format is invalid
    """
    path = Path(yaml_path)
    if not path.exists():
        raise FileNotFoundError(f"Calibration file not found: {yaml_path}")

    try:
        data = load_yaml(path)
    except ValueError as e:
        raise CalibrationError(f"Could not parse {path}: {e}") from e

    logger.info("Reading camera parameters from %s", path)
    if "model_type" in data:
        return _load_camodocal(data, path)
    if "intrinsics" in data:
        return _load_euroc(data, path)
    raise CalibrationError(f"Unrecognised calibration format in {path}")
