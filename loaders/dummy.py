"""
Synthetic FOCT-like volumes for testing and dry runs.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

import numpy as np

from core.base import BaseLoader, VolumeData
from loaders.dimensions import VolumeShape

logger = logging.getLogger(__name__)

DEFAULT_SYNTHETIC_SHAPE = VolumeShape(64, 48, 40)


def synthetic_foct_volume(shape: Sequence[int] = DEFAULT_SYNTHETIC_SHAPE,
                          seed: int = 0,
                          scale: float = 1000.0) -> np.ndarray:
    """
    Background-dominated float32 volume with a few bright layers along depth.

    Mimics a retinal OCT scan: most voxels sit in a noisy background mode near
    35% of the range, tissue layers are brighter, and a thin layer of dark and
    saturated voxels pins the range to [0, scale].
    """
    depth, width, height = (int(v) for v in shape)
    rng = np.random.default_rng(seed)

    volume = rng.normal(0.35, 0.03, size=(depth, width, height)).astype(np.float32)

    # Tissue layers, each a slab of consecutive depth indices.
    n_layers = max(1, depth // 16)
    centers = np.linspace(depth * 0.25, depth * 0.75, n_layers)
    for i, center in enumerate(centers):
        lo = int(center)
        hi = min(depth, lo + max(1, depth // 32))
        level = 0.65 + 0.2 * (i % 2)
        volume[lo:hi] += np.float32(level - 0.35)

    # Pin the range.
    volume[0] = 0.0
    volume[-1] = 1.0
    np.clip(volume, 0.0, 1.0, out=volume)
    return volume * np.float32(scale)


class SyntheticFoctLoader(BaseLoader):
    """Generates a synthetic volume instead of reading a file."""

    def __init__(self, shape: Sequence[int] = DEFAULT_SYNTHETIC_SHAPE, seed: int = 0):
        self.shape = VolumeShape(*(int(v) for v in shape))
        self.seed = seed

    def load(self, source: str = "", callback: Optional[Callable[[int, str], None]] = None) -> VolumeData:
        logger.info("Generating synthetic FOCT volume %s (seed=%d)", self.shape, self.seed)
        if callback: callback(0, f"Generating synthetic {self.shape} volume...")
        volume = synthetic_foct_volume(self.shape, self.seed)
        if callback: callback(100, "Generation complete.")
        return VolumeData(
            raw_data=volume,
            metadata={
                "Type": "Synthetic",
                "SourceFile": source or "synthetic",
                "Shape": tuple(self.shape),
                "ShapeSource": "synthetic",
                "NonFiniteCount": 0,
            },
        )


__all__ = ["DEFAULT_SYNTHETIC_SHAPE", "synthetic_foct_volume", "SyntheticFoctLoader"]
