"""YAML loading for OpenCV-style configuration and calibration files.

Files written by ``cv::FileStorage`` start with a ``%YAML:1.0`` line and
tag matrices with ``!!opencv-matrix``, neither of which PyYAML accepts as-is.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np
import yaml


class _OpenCVLoader(yaml.SafeLoader):
    """SafeLoader that understands ``!!opencv-matrix`` nodes."""


def _construct_opencv_matrix(loader: yaml.SafeLoader, node: yaml.Node) -> np.ndarray:
    mapping = loader.construct_mapping(node, deep=True)
    rows = int(mapping["rows"])
    cols = int(mapping["cols"])
    data = np.asarray(mapping["data"], dtype=np.float64)
    if data.size != rows * cols:
        raise ValueError(
            f"opencv-matrix expects {rows}x{cols} values, got {data.size}"
        )
    return data.reshape(rows, cols)


_OpenCVLoader.add_constructor(
    "tag:yaml.org,2002:opencv-matrix", _construct_opencv_matrix
)


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML file, tolerating the OpenCV ``%YAML:1.0`` header.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed top-level mapping

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not valid YAML or not a mapping
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    text = path.read_text()
    if text.startswith("%YAML:"):
        # Drop the non-standard directive line
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.lstrip().startswith("---"):
            text = text.lstrip()[3:]

    try:
        data = yaml.load(text, Loader=_OpenCVLoader)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top level of {path}")
    return data
