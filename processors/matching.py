"""
Histogram specification (matching) of 8-bit slices against a target
distribution.

A 256-entry lookup table is built per slice by aligning the source CDF with
the smoothed target CDF, damping large jumps between neighbouring entries,
forcing the table to be non-decreasing and finally smoothing it with a small
moving average.
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np

from config import HIST_BINS
from core.base import BaseProcessor, VolumeData
from core.dto import HistogramParams
from core.errors import ErrorKind, Issue
from processors.histogram import cumulative_distribution, histogram_256, smooth_histogram
from processors.normalize import NormalizedVolume, normalize_volume, quantize_uint8
from processors.postprocess import PostProcessor

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class MappingTable:
    """
    256-entry intensity lookup table.

    ``values[i]`` is the output level for input level ``i``.
    """
    values: np.ndarray

    def __post_init__(self):
        values = np.asarray(self.values)
        if values.shape != (HIST_BINS,):
            raise ValueError(f"MappingTable needs {HIST_BINS} entries, got shape {values.shape}")
        if values.min() < 0 or values.max() > 255:
            raise ValueError("MappingTable entries must lie in [0, 255]")
        object.__setattr__(self, "values", values.astype(np.uint8))

    def __len__(self) -> int:
        return HIST_BINS

    def __getitem__(self, index):
        return self.values[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, MappingTable):
            return NotImplemented
        return bool(np.array_equal(self.values, other.values))

    def is_monotonic(self) -> bool:
        return bool(np.all(np.diff(self.values.astype(np.int16)) >= 0))

    def apply(self, levels: np.ndarray) -> np.ndarray:
        """Direct lookup of every uint8 level."""
        arr = np.asarray(levels)
        if arr.dtype != np.uint8:
            raise TypeError(f"MappingTable.apply expects uint8 levels, got {arr.dtype}")
        return self.values[arr]

    def to_list(self) -> List[int]:
        return [int(v) for v in self.values]


# ---------------------------------------------------------------------------
# Table construction steps
# ---------------------------------------------------------------------------

def _round_half_up(x):
    return np.floor(np.asarray(x, dtype=np.float64) + 0.5)


def target_cdf(target_hist: np.ndarray, sigma: float) -> np.ndarray:
    """CDF of the Gaussian-smoothed target histogram."""
    return cumulative_distribution(smooth_histogram(target_hist, sigma))


def compute_base_mapping(source_cdf: np.ndarray, target_cdf: np.ndarray) -> np.ndarray:
    """For each source level, the first target level with the closest CDF value."""
    s = np.asarray(source_cdf, dtype=np.float64)
    t = np.asarray(target_cdf, dtype=np.float64)
    return np.abs(t[np.newaxis, :] - s[:, np.newaxis]).argmin(axis=1)


def damp_jumps(base: np.ndarray, alpha: float, threshold: float) -> np.ndarray:
    """
    Pull entries that jump more than ``threshold`` levels away from the
    previous (already damped) entry towards it:
    ``alpha * base[i] + (1 - alpha) * table[i-1]``, rounded and clamped.
    """
    table = np.empty(len(base), dtype=np.int64)
    prev = None
    for i, b in enumerate(np.asarray(base, dtype=np.float64)):
        if prev is not None and abs(b - prev) > threshold:
            b = alpha * b + (1.0 - alpha) * prev
        value = min(255, max(0, int(_round_half_up(b))))
        table[i] = value
        prev = value
    return table


def enforce_monotonicity(table: np.ndarray) -> np.ndarray:
    """Running maximum: ``table[i] = max(table[i], table[i-1])``."""
    return np.maximum.accumulate(np.asarray(table, dtype=np.int64))


def smooth_mapping_table(table: np.ndarray, window: int = 5) -> np.ndarray:
    """
    Centered moving average over the interior of the table.

    The pass runs left to right and updates in place, so each average sees
    the already-smoothed entries to its left.  Ends (``window // 2`` entries
    on each side) are left untouched.
    """
    out = np.array(table, dtype=np.int64)
    half = window // 2
    if len(out) < window:
        return out
    for i in range(half, len(out) - half):
        out[i] = int(_round_half_up(out[i - half:i + half + 1].mean()))
    return out


def build_mapping_from_cdf(source_cdf: np.ndarray,
                           target_cdf: np.ndarray,
                           params: HistogramParams) -> MappingTable:
    base = compute_base_mapping(source_cdf, target_cdf)
    table = damp_jumps(base, params.mapping_smooth_factor, params.jump_threshold)
    table = enforce_monotonicity(table)
    table = smooth_mapping_table(table, params.smoothing_window)
    if params.reclamp_after_smoothing:
        table = enforce_monotonicity(table)
    return MappingTable(table)


def build_mapping_table(source_hist: np.ndarray,
                        target_hist: np.ndarray,
                        params: Optional[HistogramParams] = None) -> MappingTable:
    """
    Mapping table sending ``source_hist`` onto ``target_hist``.

    The target is smoothed with ``params.smoothing_sigma`` before its CDF is
    taken.
    """
    params = params or HistogramParams()
    return build_mapping_from_cdf(
        cumulative_distribution(source_hist),
        target_cdf(target_hist, params.smoothing_sigma),
        params,
    )


# ---------------------------------------------------------------------------
# Slice / volume application
# ---------------------------------------------------------------------------

def match_slice(image: np.ndarray,
                target_hist: np.ndarray,
                params: Optional[HistogramParams] = None) -> Tuple[np.ndarray, MappingTable]:
    """Match one uint8 slice; returns the mapped slice and its table."""
    table = build_mapping_table(histogram_256(image), target_hist, params)
    return table.apply(image), table


def match_volume(volume: np.ndarray,
                 target_hist: np.ndarray,
                 params: Optional[HistogramParams] = None,
                 callback: Optional[Callable[[int, str], None]] = None) -> Tuple[np.ndarray, Tuple[MappingTable, ...]]:
    """
    Match every slice of a uint8 volume along ``params.slice_axis``.

    Slices are independent and are processed in a thread pool.

    Returns:
        (matched uint8 volume, one MappingTable per slice in slice order)
    """
    params = params or HistogramParams()
    if volume.dtype != np.uint8:
        raise TypeError(f"match_volume expects a uint8 volume, got {volume.dtype}")

    tcdf = target_cdf(target_hist, params.smoothing_sigma)
    source = np.moveaxis(volume, params.slice_axis, 0)
    out = np.empty_like(volume)
    dest = np.moveaxis(out, params.slice_axis, 0)
    n_slices = source.shape[0]
    tables: List[Optional[MappingTable]] = [None] * n_slices

    def _match(index: int) -> int:
        image = source[index]
        table = build_mapping_from_cdf(cumulative_distribution(histogram_256(image)), tcdf, params)
        dest[index] = table.apply(image)
        tables[index] = table
        return index

    done = 0
    with concurrent.futures.ThreadPoolExecutor(max_workers=params.max_workers) as executor:
        for _ in executor.map(_match, range(n_slices)):
            done += 1
            if callback and (done % 50 == 0 or done == n_slices):
                callback(int(100 * done / n_slices), f"Matched slice {done}/{n_slices}")

    return out, tuple(tables)


class HistogramMatchingProcessor(BaseProcessor):
    """
    Normalize a volume to 8 bits, match it slice by slice to a target and
    post-process the result when ``params.enable_post_processing`` is set.

    The result is a uint8 volume; the per-slice tables are stored in
    ``metadata['MappingTables']``.  Pass ``normalized`` to reuse an existing
    normalization of ``data.raw_data``; the constant-volume issue is then
    assumed to be recorded already.
    """

    def __init__(self, target_hist: np.ndarray, params: Optional[HistogramParams] = None, target_name: str = "target"):
        self.target_hist = np.asarray(target_hist, dtype=np.float64)
        self.params = params or HistogramParams()
        self.target_name = target_name

    def process(self, data: VolumeData, callback: Optional[Callable[[int, str], None]] = None,
                normalized: Optional[NormalizedVolume] = None, **kwargs) -> VolumeData:
        if data.raw_data is None:
            raise ValueError("Histogram matching requires voxel data (raw_data).")

        if callback: callback(0, f"Quantizing volume for '{self.target_name}'...")
        issues = []
        if normalized is None:
            normalized = normalize_volume(data.raw_data)
            if normalized.degenerate:
                logger.warning("Constant volume (value %.4g); matching an all-zero volume", normalized.vmin)
                issues.append(Issue(ErrorKind.DEGENERATE_RANGE, f"Constant volume with value {normalized.vmin:.6g}"))
        levels = quantize_uint8(normalized.data)

        post = self.params.enable_post_processing
        span = 0.6 if post else 0.9

        def _slice_progress(percent, message):
            if callback: callback(5 + int(percent * span), message)

        matched, tables = match_volume(levels, self.target_hist, self.params, _slice_progress)
        result = data.derive(matched, MatchedTarget=self.target_name, MappingTables=tables)
        result.issues.extend(issues)

        if post:
            def _post_progress(percent, message):
                if callback: callback(65 + int(percent * 0.3), message)

            result = PostProcessor(self.params).process(result, callback=_post_progress)

        if callback: callback(100, f"Matched to '{self.target_name}'.")
        return result


__all__ = [
    "MappingTable",
    "target_cdf",
    "compute_base_mapping",
    "damp_jumps",
    "enforce_monotonicity",
    "smooth_mapping_table",
    "build_mapping_from_cdf",
    "build_mapping_table",
    "match_slice",
    "match_volume",
    "HistogramMatchingProcessor",
]
