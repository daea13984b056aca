"""
Volume sanitizing and min-max normalization.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class NormalizedVolume:
    """
    Volume mapped into [0, 1] together with the range needed to invert it.

    Attributes:
        data: Normalized array, same shape as the source.
        vmin, vmax: Global minimum / maximum of the source volume.
    """
    data: np.ndarray
    vmin: float
    vmax: float

    @property
    def degenerate(self) -> bool:
        """True for constant volumes, which normalize to all zeros."""
        return not self.vmax > self.vmin


def _storage_dtype(volume: np.ndarray) -> np.dtype:
    return np.result_type(volume.dtype, np.float32)


def sanitize_volume(volume: np.ndarray) -> Tuple[np.ndarray, int]:
    """
    Replace NaN / Inf samples by 0.

    Returns:
        (clean volume, number of replaced samples).  The input is returned
        untouched when it is already finite.
    """
    if not np.issubdtype(volume.dtype, np.floating):
        return volume, 0
    finite = np.isfinite(volume)
    n_bad = int(volume.size - np.count_nonzero(finite))
    if n_bad == 0:
        return volume, 0
    clean = np.where(finite, volume, volume.dtype.type(0))
    return clean, n_bad


def normalize_volume(volume: np.ndarray) -> NormalizedVolume:
    """
    Map a volume onto [0, 1] using its global min / max.

    Arithmetic is carried out in float64 so finite float32 volumes whose
    range exceeds the float32 maximum stay finite.  The result is stored in
    float32 (float64 for float64 input).  A constant volume carries no
    contrast information and normalizes to the all-zero volume of the same
    shape.
    """
    volume = np.asarray(volume)
    work = volume.astype(np.float64, copy=False)
    vmin = float(work.min())
    vmax = float(work.max())

    if vmax > vmin:
        data = (work - vmin) / (vmax - vmin)
    else:
        data = np.zeros(work.shape)
    return NormalizedVolume(data=data.astype(_storage_dtype(volume), copy=False), vmin=vmin, vmax=vmax)


def denormalize_volume(data: np.ndarray, vmin: float, vmax: float) -> np.ndarray:
    """
    Inverse of ``normalize_volume``: ``x * (vmax - vmin) + vmin``.

    Computed in float64 and clipped to ``[vmin, vmax]`` before the cast back,
    so rounding can not push values past the float32 range.
    """
    data = np.asarray(data)
    work = data.astype(np.float64, copy=False)
    restored = np.clip(work * (vmax - vmin) + vmin, min(vmin, vmax), max(vmin, vmax))
    return restored.astype(_storage_dtype(data), copy=False)


def quantize_uint8(data: np.ndarray) -> np.ndarray:
    """
    Convert [0, 1] data to 8-bit levels.

    Values are clipped to [0, 1] and ``x * 255`` is rounded half away from
    zero, the usual double-to-uint8 image conversion.
    """
    arr = np.asarray(data)
    work = np.clip(arr.astype(_storage_dtype(arr), copy=False), 0.0, 1.0)
    return np.floor(work * 255.0 + 0.5).astype(np.uint8)


__all__ = [
    "NormalizedVolume",
    "sanitize_volume",
    "normalize_volume",
    "denormalize_volume",
    "quantize_uint8",
]
