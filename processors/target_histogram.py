"""
Target intensity distribution sampled from a reference image corpus.

The sampler draws a seeded random subset of the corpus, decodes the images
concurrently, accumulates their 8-bit histograms and conditions the result
(outlier clipping, Gaussian smoothing, density floor) so it can serve as a
histogram-specification target.
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numpy as np

from config import HIST_BINS
from core.dto import HistogramParams
from loaders.reference import ReferenceCorpus, load_reference_image
from processors.histogram import smooth_histogram

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetHistogram:
    """
    Conditioned target distribution plus sampling bookkeeping.

    Attributes:
        histogram: Processed 256-bin histogram (every bin above the floor).
        raw_histogram: Aggregated counts before conditioning.
        files_selected: Paths drawn from the corpus, in draw order.
        files_used: Number of selected images that passed decoding and the
            uniformity check.
    """
    histogram: np.ndarray
    raw_histogram: np.ndarray
    files_selected: tuple
    files_used: int

    @property
    def pixel_count(self) -> int:
        return int(self.raw_histogram.sum())


# ---------------------------------------------------------------------------
# Histogram conditioning
# ---------------------------------------------------------------------------

def clip_outliers(hist: np.ndarray, n_sigma: float = 3.0) -> np.ndarray:
    """
    Clip bins to ``median +/- n_sigma * std`` of the non-zero bins.

    The lower bound never goes below zero.  Empty bins are raised to the
    lower bound like any other bin below it.
    """
    h = np.asarray(hist, dtype=np.float64)
    nonzero = h[h > 0]
    if nonzero.size == 0:
        return h.copy()
    median = float(np.median(nonzero))
    std = float(np.std(nonzero, ddof=1)) if nonzero.size > 1 else 0.0
    upper = median + n_sigma * std
    lower = max(0.0, median - n_sigma * std)
    return np.clip(h, lower, upper)


def apply_density_floor(hist: np.ndarray, fraction: float) -> np.ndarray:
    """
    Raise every bin to at least ``fraction`` of the *returned* total mass.

    Flooring adds mass, so a floor computed from the incoming total can end
    up below ``fraction`` of the new total.  Using
    ``fraction * mass / (1 - fraction * bins)`` bounds the new total and keeps
    the guarantee.
    """
    h = np.asarray(hist, dtype=np.float64)
    if not 0.0 <= fraction * h.size < 1.0:
        raise ValueError(f"density floor {fraction} too large for {h.size} bins")
    floor = fraction * h.sum() / (1.0 - fraction * h.size)
    return np.maximum(h, floor)


def preprocess_target_histogram(hist: np.ndarray, params: HistogramParams) -> np.ndarray:
    """
    Outlier clipping, mass-preserving Gaussian smoothing and density floor.
    """
    raw = np.asarray(hist, dtype=np.float64)
    clipped = clip_outliers(raw, params.outlier_sigma)
    smoothed = smooth_histogram(clipped, params.smoothing_sigma, reference_mass=raw.sum())
    return apply_density_floor(smoothed, params.density_floor)


# ---------------------------------------------------------------------------
# Sampling
# ---------------------------------------------------------------------------

def select_sample(files: Sequence[str], sample_size: int, seed: int) -> List[str]:
    """Seeded selection of ``min(sample_size, len(files))`` files without replacement."""
    total = len(files)
    if total == 0:
        return []
    k = min(int(sample_size), total)
    rng = np.random.default_rng(seed)
    indices = rng.choice(total, size=k, replace=False)
    return [files[int(i)] for i in indices]


class TargetHistogramSampler:
    """
    Build a TargetHistogram from a ReferenceCorpus.

    Selection is single-threaded and seeded; decoding and per-image histogram
    computation run in a thread pool.  Accumulation is an integer sum, so the
    result does not depend on completion order.
    """

    def __init__(self,
                 params: Optional[HistogramParams] = None,
                 image_reader: Callable[[str], np.ndarray] = load_reference_image):
        self.params = params or HistogramParams()
        self.image_reader = image_reader

    def _image_histogram(self, path: str) -> Optional[np.ndarray]:
        try:
            img = self.image_reader(path)
        except Exception as exc:
            logger.warning("Skipping unreadable reference image %s: %s", path, exc)
            return None
        if img.size < 2 or float(np.std(img, dtype=np.float64, ddof=1)) <= self.params.min_image_std:
            logger.debug("Skipping near-uniform reference image %s", path)
            return None
        return np.bincount(img.ravel(), minlength=HIST_BINS).astype(np.int64)

    def sample(self,
               corpus: ReferenceCorpus,
               callback: Optional[Callable[[int, str], None]] = None) -> Optional[TargetHistogram]:
        """
        Sample the corpus.

        Returns:
            TargetHistogram, or None when the corpus is missing or yields no
            usable image.
        """
        if not corpus.exists:
            logger.warning("Reference corpus not found: %s", corpus.root)
            return None

        files = corpus.list_images()
        selected = select_sample(files, self.params.sample_size, self.params.seed)
        if not selected:
            logger.warning("Reference corpus %s contains no images", corpus.root)
            return None

        if callback: callback(0, f"Sampling {len(selected)}/{len(files)} reference images...")

        total = np.zeros(HIST_BINS, dtype=np.int64)
        used = 0
        done = 0
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.params.max_workers) as executor:
            futures = [executor.submit(self._image_histogram, path) for path in selected]
            for future in concurrent.futures.as_completed(futures):
                counts = future.result()
                done += 1
                if counts is not None:
                    total += counts
                    used += 1
                if callback and (done % 20 == 0 or done == len(selected)):
                    callback(int(90 * done / len(selected)), f"Decoded {done}/{len(selected)} images")

        if used == 0:
            logger.warning("No usable reference images in %s", corpus.root)
            return None

        raw = total.astype(np.float64)
        processed = preprocess_target_histogram(raw, self.params)
        logger.info("Target histogram from %s: %d/%d images, %d pixels",
                    corpus.root, used, len(selected), int(total.sum()))
        if callback: callback(100, f"Target ready ({used}/{len(selected)} images)")
        return TargetHistogram(
            histogram=processed,
            raw_histogram=raw,
            files_selected=tuple(selected),
            files_used=used,
        )


__all__ = [
    "TargetHistogram",
    "clip_outliers",
    "apply_density_floor",
    "preprocess_target_histogram",
    "select_sample",
    "TargetHistogramSampler",
]
