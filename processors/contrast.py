"""
Adaptive contrast enhancement of normalized FOCT volumes.

OCT-like volumes are dominated by a single background mode.  The peak-shift
method moves that mode to zero and stretches the remaining range to [0, 1];
the percentile stretch is used when the mode sits at an extreme, and the
blended variant mixes both for non-standard (recovered) files where the peak
heuristic is less reliable.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple

import numpy as np

from config import (
    BLEND_STRETCH_PERCENTILES,
    BLEND_STRETCH_WEIGHT,
    PEAK_SHIFT_MAX,
    PEAK_SHIFT_MIN,
    STRETCH_PERCENTILES,
)
from core.base import BaseProcessor, VolumeData
from core.errors import ErrorKind, Issue
from processors.histogram import histogram_256
from processors.normalize import NormalizedVolume, denormalize_volume, normalize_volume, quantize_uint8

logger = logging.getLogger(__name__)

ENHANCEMENT_METHODS = ("adaptive", "peak_shift", "percentile", "blended")


def _is_flat(volume: np.ndarray) -> bool:
    return not float(volume.max()) > float(volume.min())


def histogram_peak(volume: np.ndarray) -> float:
    """Normalized value ``p / 255`` of the most populated 8-bit level."""
    hist = histogram_256(quantize_uint8(volume))
    return int(np.argmax(hist)) / 255.0


def peak_shift(
    volume: np.ndarray,
    lower: float = PEAK_SHIFT_MIN,
    upper: float = PEAK_SHIFT_MAX,
) -> Optional[np.ndarray]:
    """
    Shift the histogram peak to zero and rescale to [0, 1].

    Returns ``None`` when the peak lies outside ``(lower, upper)``; callers
    choose their own fallback.
    """
    peak = histogram_peak(volume)
    if not lower < peak < upper:
        return None
    dtype = np.result_type(volume.dtype, np.float32)
    v = dtype.type(peak)
    scale = dtype.type(1.0) - v
    return np.clip((volume.astype(dtype, copy=False) - v) / scale, 0.0, 1.0)


def percentile_stretch(
    volume: np.ndarray,
    percentiles: Tuple[float, float] = STRETCH_PERCENTILES,
) -> np.ndarray:
    """Linear stretch between two percentiles, clamped to [0, 1]."""
    p_lo, p_hi = np.percentile(volume, percentiles, method="hazen")
    if not p_hi > p_lo:
        return volume
    dtype = np.result_type(volume.dtype, np.float32)
    lo = dtype.type(p_lo)
    span = dtype.type(p_hi - p_lo)
    return np.clip((volume.astype(dtype, copy=False) - lo) / span, 0.0, 1.0)


def enhance_contrast(volume: np.ndarray) -> np.ndarray:
    """
    Standard enhancement: peak shift, or a 1/99 percentile stretch when the
    peak lies in the excluded extremes.  Constant input is returned unchanged.
    """
    if _is_flat(volume):
        return volume
    shifted = peak_shift(volume)
    if shifted is not None:
        return shifted
    return percentile_stretch(volume, STRETCH_PERCENTILES)


def enhance_contrast_blended(volume: np.ndarray, stretch_weight: float = BLEND_STRETCH_WEIGHT) -> np.ndarray:
    """
    Recovery enhancement: ``w * stretch + (1 - w) * peak_shift``, clamped.

    The stretch uses the 2/98 percentiles; when the peak is unusable the
    stretch result stands in for the peak-shift term.
    """
    if _is_flat(volume):
        return volume
    stretched = percentile_stretch(volume, BLEND_STRETCH_PERCENTILES)
    shifted = peak_shift(volume)
    if shifted is None:
        shifted = stretched
    dtype = np.result_type(stretched.dtype, np.float32)
    w = dtype.type(stretch_weight)
    blended = w * stretched + (dtype.type(1.0) - w) * shifted
    return np.clip(blended, 0.0, 1.0)


def _peak_shift_only(volume: np.ndarray) -> np.ndarray:
    if _is_flat(volume):
        return volume
    shifted = peak_shift(volume)
    return volume if shifted is None else shifted


def _stretch_only(volume: np.ndarray) -> np.ndarray:
    if _is_flat(volume):
        return volume
    return percentile_stretch(volume, STRETCH_PERCENTILES)


_METHODS: dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "adaptive": enhance_contrast,
    "blended": enhance_contrast_blended,
    "percentile": _stretch_only,
    "peak_shift": _peak_shift_only,
}


def enhance(volume: np.ndarray, method: str = "adaptive") -> np.ndarray:
    """Dispatch to one of ``ENHANCEMENT_METHODS``."""
    try:
        fn = _METHODS[method]
    except KeyError:
        allowed = ", ".join(ENHANCEMENT_METHODS)
        raise ValueError(f"Unknown enhancement method {method!r}. Expected one of: {allowed}.") from None
    return fn(volume)


class ContrastEnhancementProcessor(BaseProcessor):
    """
    Normalize -> enhance -> restore original value range.

    The output keeps the numeric scale of the input so enhanced volumes stay
    comparable across files.  Pass ``normalized`` (a ``NormalizedVolume`` of
    ``data.raw_data``) to reuse an existing normalization; the constant-volume
    issue is then assumed to be recorded already.
    """

    def __init__(self, method: str = "adaptive"):
        if method not in ENHANCEMENT_METHODS:
            allowed = ", ".join(ENHANCEMENT_METHODS)
            raise ValueError(f"Unknown enhancement method {method!r}. Expected one of: {allowed}.")
        self.method = method

    def process(self, data: VolumeData, callback: Optional[Callable[[int, str], None]] = None,
                normalized: Optional[NormalizedVolume] = None, **kwargs) -> VolumeData:
        if data.raw_data is None:
            raise ValueError("Contrast enhancement requires voxel data (raw_data).")

        issues = []
        if normalized is None:
            if callback: callback(0, "Normalizing volume...")
            normalized = normalize_volume(data.raw_data)
            if normalized.degenerate:
                logger.warning("Constant volume (value %.4g); emitting all-zero result", normalized.vmin)
                issues.append(Issue(ErrorKind.DEGENERATE_RANGE, f"Constant volume with value {normalized.vmin:.6g}"))

        if callback: callback(30, f"Enhancing contrast ({self.method})...")
        enhanced = enhance(normalized.data, self.method)

        if callback: callback(80, "Restoring value range...")
        if normalized.degenerate:
            restored = enhanced
        else:
            restored = denormalize_volume(enhanced, normalized.vmin, normalized.vmax)

        result = data.derive(
            restored,
            Enhancement=self.method,
            SourceRange=(normalized.vmin, normalized.vmax),
        )
        result.issues.extend(issues)
        if callback: callback(100, "Enhancement complete.")
        return result


__all__ = [
    "ENHANCEMENT_METHODS",
    "histogram_peak",
    "peak_shift",
    "percentile_stretch",
    "enhance_contrast",
    "enhance_contrast_blended",
    "enhance",
    "ContrastEnhancementProcessor",
]
