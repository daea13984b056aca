"""
Post-processing of matched 8-bit volumes: per-slice median filtering and an
optional 1-2-1 blend across neighbouring slices.
"""

from __future__ import annotations

import concurrent.futures
from typing import Callable, Optional

import numpy as np
from scipy import ndimage

from config import MEDIAN_FILTER_SIZE
from core.base import BaseProcessor, VolumeData
from core.dto import HistogramParams


def median_filter_slices(volume: np.ndarray,
                         size: int = MEDIAN_FILTER_SIZE,
                         axis: int = 2,
                         max_workers: int = 4) -> np.ndarray:
    """
    ``size x size`` median filter applied to every slice along ``axis``.

    Borders are zero padded.  Slices are filtered concurrently into a new
    array; the input is not modified.
    """
    source = np.moveaxis(volume, axis, 0)
    out = np.empty_like(volume)
    dest = np.moveaxis(out, axis, 0)

    def _filter(index: int) -> None:
        dest[index] = ndimage.median_filter(source[index], size=size, mode="constant", cval=0)

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        list(executor.map(_filter, range(source.shape[0])))
    return out


def blend_adjacent_slices(volume: np.ndarray, axis: int = 2) -> np.ndarray:
    """
    ``out[i] = round((in[i-1] + 2*in[i] + in[i+1]) / 4)`` for interior slices.

    Every blended slice reads the unblended input, so the pass can only start
    once all of its input slices are final.  The first and last slices are
    copied unchanged; volumes with two or fewer slices are returned as a copy.
    """
    out = volume.copy()
    source = np.moveaxis(volume, axis, 0)
    dest = np.moveaxis(out, axis, 0)
    n = source.shape[0]
    if n <= 2:
        return out

    integer = np.issubdtype(volume.dtype, np.integer)
    for i in range(1, n - 1):
        if integer:
            total = source[i - 1].astype(np.int64) + 2 * source[i].astype(np.int64) + source[i + 1]
            dest[i] = (total + 2) // 4
        else:
            total = source[i - 1].astype(np.float64) + 2.0 * source[i] + source[i + 1]
            dest[i] = np.floor(total / 4.0 + 0.5)
    return out


def post_process_volume(volume: np.ndarray,
                        params: Optional[HistogramParams] = None,
                        callback: Optional[Callable[[int, str], None]] = None) -> np.ndarray:
    """Median filter every slice, then (optionally) blend across slices."""
    params = params or HistogramParams()
    if callback: callback(0, "Median filtering slices...")
    filtered = median_filter_slices(volume, MEDIAN_FILTER_SIZE, params.slice_axis, params.max_workers)
    if params.inter_slice_smoothing:
        if callback: callback(60, "Blending adjacent slices...")
        filtered = blend_adjacent_slices(filtered, params.slice_axis)
    if callback: callback(100, "Post-processing complete.")
    return filtered


class PostProcessor(BaseProcessor):
    """BaseProcessor wrapper around ``post_process_volume``."""

    def __init__(self, params: Optional[HistogramParams] = None):
        self.params = params or HistogramParams()

    def process(self, data: VolumeData, callback: Optional[Callable[[int, str], None]] = None, **kwargs) -> VolumeData:
        if data.raw_data is None:
            raise ValueError("Post-processing requires voxel data (raw_data).")
        smoothed = post_process_volume(data.raw_data, self.params, callback)
        return data.derive(smoothed, PostProcessed=True)


__all__ = [
    "median_filter_slices",
    "blend_adjacent_slices",
    "post_process_volume",
    "PostProcessor",
]
