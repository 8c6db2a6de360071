"""Interchangeable correspondence backends and corner detectors.

Variants:
- cpu: OpenCV pyramidal Lucas-Kanade + Shi-Tomasi corners
- gpu: OpenCV CUDA equivalents
- hardware: NVIDIA VPI Lucas-Kanade + Harris corners
"""

from __future__ import annotations

from ..config import BackendVariant, TrackerConfig
from .base import CornerDetector, CorrespondenceBackend, FlowResult
from .cpu import CpuCornerDetector, CpuFlowBackend
from .gpu import GpuCornerDetector, GpuFlowBackend
from .hardware import HardwareCornerDetector, HardwareFlowBackend


def create_backend(
    config: TrackerConfig,
) -> tuple[CorrespondenceBackend, CornerDetector]:
    """Build the backend and detector selected by the configuration.

    Args:
        config: Tracker configuration

    Returns:
        Tuple of (correspondence backend, corner detector)

    Raises:
        BackendUnavailableError: If the selected variant cannot run here
    """
    variant = config.backend_variant
    if variant == BackendVariant.CPU:
        return (
            CpuFlowBackend(window=config.lk_window, max_level=config.lk_max_level),
            CpuCornerDetector(config.quality_level, config.min_pixel_separation),
        )
    if variant == BackendVariant.GPU:
        return (
            GpuFlowBackend(window=config.lk_window, max_level=config.lk_max_level),
            GpuCornerDetector(config.quality_level, config.min_pixel_separation),
        )
    if variant == BackendVariant.HARDWARE:
        return (
            HardwareFlowBackend(
                backend=config.hardware_backend, pyramid_levels=config.lk_max_level
            ),
            HardwareCornerDetector(backend=config.hardware_backend),
        )
    raise ValueError(f"Unknown backend variant: {variant}")


__all__ = [
    "create_backend",
    # Interfaces
    "CorrespondenceBackend",
    "CornerDetector",
    "FlowResult",
    # CPU
    "CpuFlowBackend",
    "CpuCornerDetector",
    # GPU
    "GpuFlowBackend",
    "GpuCornerDetector",
    # Hardware
    "HardwareFlowBackend",
    "HardwareCornerDetector",
]
