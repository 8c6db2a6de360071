#!/usr/bin/env python3
"""Run the feature tracker over a EuRoC sequence.

Prints track statistics every 50 frames and a summary at the end.

Usage:
    python examples/track_euroc.py config/euroc/euroc_stereo.yaml \\
        data/euroc/MH_01_easy/mav0 --max-frames 200

Requirements:
    - EuRoC dataset downloaded to data/euroc/MH_01_easy/mav0/
"""

import argparse
import logging

import numpy as np

from feature_tracker import DatasetReader, FeatureTracker
from feature_tracker.dataset_reader import timestamp_seconds


def main() -> None:
    """Run the tracker demo."""
    parser = argparse.ArgumentParser(description="Track features over a EuRoC sequence")
    parser.add_argument("config", help="VINS-style tracker config (YAML)")
    parser.add_argument("dataset", help="Path to EuRoC mav0 directory")
    parser.add_argument("--max-frames", type=int, default=None)
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    tracker = FeatureTracker.from_yaml(args.config)
    reader = DatasetReader(args.dataset, stereo=tracker.is_stereo)

    print(f"Backend: {tracker.config.backend_variant.value}")
    print(f"Processing {len(reader)} frames ({'stereo' if reader.stereo else 'mono'})...")
    print()

    frame_times = []
    for i, (left, right, timestamp_ns) in enumerate(reader):
        if args.max_frames is not None and i >= args.max_frames:
            break

        tracker.track_image(timestamp_seconds(timestamp_ns), left, right)
        result = tracker.last_result
        frame_times.append(result.timing.total_ms)

        if i % 50 == 0:
            print(
                f"Frame {i:4d}: "
                f"{result.num_features:4d} tracks, "
                f"{result.num_tracked:4d} carried, "
                f"{result.num_new:3d} new, "
                f"{result.num_right:4d} right, "
                f"{result.timing.total_ms:6.1f} ms"
            )

    ages = [track.age for track in tracker.tracks()]
    print()
    print(f"Frames processed: {len(frame_times)}")
    if frame_times:
        print(f"Mean frame time: {np.mean(frame_times):.1f} ms")
    if ages:
        print(f"Final tracks: {len(ages)}, median age {np.median(ages):.0f}")
    print("Done!")


if __name__ == "__main__":
    main()
