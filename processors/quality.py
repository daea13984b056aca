"""
Histogram similarity metrics used to score a matched volume against its
target distribution.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict

import numpy as np

from processors.histogram import histogram_256


@dataclass(frozen=True)
class QualityMetrics:
    correlation: float
    bhattacharyya_distance: float
    kl_divergence: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "correlation": self.correlation,
            "bhattacharyya_distance": self.bhattacharyya_distance,
            "kl_divergence": self.kl_divergence,
        }


def _checked(hist: np.ndarray, name: str) -> np.ndarray:
    h = np.asarray(hist, dtype=np.float64).ravel()
    if np.any(h < 0) or not np.all(np.isfinite(h)):
        raise ValueError(f"{name} must contain finite, non-negative counts")
    if not h.sum() > 0:
        raise ValueError(f"{name} must contain at least one non-zero bin")
    return h


def _pair(hist1, hist2):
    h1 = _checked(hist1, "hist1")
    h2 = _checked(hist2, "hist2")
    if h1.shape != h2.shape:
        raise ValueError(f"Histogram lengths differ: {h1.size} vs {h2.size}")
    return h1, h2


def histogram_correlation(hist1: np.ndarray, hist2: np.ndarray) -> float:
    """Pearson correlation; 0.0 when either histogram has no variance."""
    h1, h2 = _pair(hist1, hist2)
    if h1.std() == 0 or h2.std() == 0:
        return 0.0
    return float(np.corrcoef(h1, h2)[0, 1])


def bhattacharyya_distance(hist1: np.ndarray, hist2: np.ndarray) -> float:
    """``-ln(sum(sqrt(p * q)))``; infinite for disjoint supports."""
    h1, h2 = _pair(hist1, hist2)
    bc = float(np.sum(np.sqrt((h1 / h1.sum()) * (h2 / h2.sum()))))
    if bc <= 0:
        return math.inf
    # rounding can push bc slightly above 1 for identical inputs
    return max(0.0, -math.log(bc))


def kl_divergence(hist1: np.ndarray, hist2: np.ndarray) -> float:
    """``sum(p * ln(p / q))`` with both distributions floored at machine epsilon."""
    h1, h2 = _pair(hist1, hist2)
    eps = np.finfo(np.float64).eps
    p = np.maximum(h1 / h1.sum(), eps)
    q = np.maximum(h2 / h2.sum(), eps)
    return float(np.sum(p * np.log(p / q)))


def evaluate_histograms(hist1: np.ndarray, hist2: np.ndarray) -> QualityMetrics:
    return QualityMetrics(
        correlation=histogram_correlation(hist1, hist2),
        bhattacharyya_distance=bhattacharyya_distance(hist1, hist2),
        kl_divergence=kl_divergence(hist1, hist2),
    )


def compute_quality_metrics(matched: np.ndarray, target_hist: np.ndarray) -> QualityMetrics:
    """Score a matched uint8 volume against a target histogram."""
    return evaluate_histograms(histogram_256(matched), target_hist)


__all__ = [
    "QualityMetrics",
    "histogram_correlation",
    "bhattacharyya_distance",
    "kl_divergence",
    "evaluate_histograms",
    "compute_quality_metrics",
]
