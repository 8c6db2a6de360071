"""EuRoC MAV camera streams as (left, right or None, timestamp_ns) frames."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterator, NamedTuple

import cv2
import numpy as np

Frame = tuple[np.ndarray, "np.ndarray | None", int]


class FrameEntry(NamedTuple):
    """One row of a camera index: capture time and image file name."""

    timestamp_ns: int
    filename: str


def read_camera_index(csv_path: Path) -> list[FrameEntry]:
    """Parse a EuRoC ``camN/data.csv`` into entries sorted by timestamp.

    Comment lines (the ``#timestamp [ns],filename`` header) and blank lines
    are skipped; fields may carry surrounding whitespace.

    Raises:
        ValueError: If a row is not ``timestamp,filename``
    """
    entries = []
    with csv_path.open("r", newline="") as f:
        for line_no, row in enumerate(csv.reader(f), start=1):
            if not row or not "".join(row).strip() or row[0].lstrip().startswith("#"):
                continue
            if len(row) != 2:
                raise ValueError(f"{csv_path}:{line_no}: expected 'timestamp,filename', got {row}")
            try:
                timestamp_ns = int(row[0].strip())
            except ValueError as e:
                raise ValueError(f"{csv_path}:{line_no}: invalid timestamp {row[0]!r}") from e
            entries.append(FrameEntry(timestamp_ns, row[1].strip()))

    entries.sort(key=lambda entry: entry.timestamp_ns)
    return entries


def timestamp_seconds(timestamp_ns: int) -> float:
    """Convert a EuRoC nanosecond timestamp to seconds."""
    return timestamp_ns * 1e-9


class DatasetReader:
    """Frame source over a EuRoC ``mav0`` folder.

    cam0 drives the frame list. cam1 images are looked up by the same file
    name; without a cam1 folder (or with ``stereo=False``) frames are mono
    and ``right`` is None.
    """

    def __init__(self, dataset_path: str | Path, stereo: bool = True) -> None:
        """Index the cam0 stream of a dataset.

        Args:
            dataset_path: Path to the mav0 directory
            stereo: Load cam1 images when the dataset has them

        Raises:
            FileNotFoundError: If the dataset, cam0/data or cam0/data.csv is missing
            ValueError: If the cam0 index is malformed or lists no images
        """
        self.dataset_path = Path(dataset_path)
        if not self.dataset_path.is_dir():
            raise FileNotFoundError(f"Dataset path does not exist: {self.dataset_path}")

        self.left_dir = self._required(self.dataset_path / "cam0" / "data")
        index_path = self._required(self.dataset_path / "cam0" / "data.csv")
        right_dir = self.dataset_path / "cam1" / "data"
        self.right_dir = right_dir if stereo and right_dir.is_dir() else None

        self.entries = read_camera_index(index_path)
        if not self.entries:
            raise ValueError(f"No images listed in {index_path}")
        self._position = 0

    def _required(self, path: Path) -> Path:
        if not path.exists():
            relative = path.relative_to(self.dataset_path).as_posix()
            raise FileNotFoundError(f"{relative} not found in dataset: {path}")
        return path

    @property
    def stereo(self) -> bool:
        """Whether frames carry a right image."""
        return self.right_dir is not None

    def load(self, entry: FrameEntry) -> Frame:
        """Read the images of one index entry.

        Raises:
            FileNotFoundError: If an image file is missing or unreadable
        """
        left = _read_gray(self.left_dir / entry.filename)
        right = None if self.right_dir is None else _read_gray(self.right_dir / entry.filename)
        return left, right, entry.timestamp_ns

    def get_next_frame(self) -> Frame | None:
        """Return the next frame, or None once the dataset is exhausted."""
        if self._position >= len(self.entries):
            return None
        frame = self.load(self.entries[self._position])
        self._position += 1
        return frame

    def reset(self) -> None:
        """Rewind to the first frame."""
        self._position = 0

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Frame]:
        """Iterate over all frames from the start."""
        self.reset()
        while (frame := self.get_next_frame()) is not None:
            yield frame


def _read_gray(path: Path) -> np.ndarray:
    image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
    if image is None:
        raise FileNotFoundError(f"Failed to read image: {path}")
    return image
