"""
PNG preview of the middle slice of a volume.
"""

from __future__ import annotations

import numpy as np
from skimage import io

from config import SLICE_AXIS
from processors.normalize import normalize_volume, quantize_uint8


def middle_slice(volume: np.ndarray, axis: int = SLICE_AXIS) -> np.ndarray:
    index = volume.shape[axis] // 2
    return np.take(volume, index, axis=axis)


def preview_image(volume: np.ndarray, axis: int = SLICE_AXIS) -> np.ndarray:
    """Middle slice as uint8; non-uint8 data is min-max scaled first."""
    image = middle_slice(volume, axis)
    if image.dtype == np.uint8:
        return image
    return quantize_uint8(normalize_volume(image).data)


def save_preview(volume: np.ndarray, path: str, axis: int = SLICE_AXIS) -> str:
    io.imsave(path, preview_image(volume, axis), check_contrast=False)
    return path


__all__ = ["middle_slice", "preview_image", "save_preview"]
