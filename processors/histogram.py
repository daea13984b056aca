"""
256-level histogram helpers shared by target sampling, matching and evaluation.
"""

from __future__ import annotations

import math

import numpy as np

from config import HIST_BINS


def histogram_256(levels: np.ndarray) -> np.ndarray:
    """Counts of each 8-bit level (float64, length 256)."""
    arr = np.asarray(levels)
    if arr.dtype != np.uint8:
        raise TypeError(f"histogram_256 expects uint8 levels, got {arr.dtype}")
    return np.bincount(arr.ravel(), minlength=HIST_BINS).astype(np.float64)


def cumulative_distribution(hist: np.ndarray) -> np.ndarray:
    """Prefix sum divided by total mass; non-decreasing and ending at 1."""
    h = np.asarray(hist, dtype=np.float64)
    total = h.sum()
    if not total > 0:
        raise ValueError("Cannot build a CDF from a histogram without mass")
    return np.cumsum(h) / total


def gaussian_kernel(sigma: float) -> np.ndarray:
    """Unit-sum Gaussian of length ``2 * ceil(3 * sigma) + 1``."""
    if sigma <= 0:
        raise ValueError(f"sigma must be positive, got {sigma}")
    radius = int(math.ceil(3.0 * sigma))
    x = np.arange(-radius, radius + 1, dtype=np.float64)
    kernel = np.exp(-x ** 2 / (2.0 * sigma ** 2))
    return kernel / kernel.sum()


def smooth_histogram(hist: np.ndarray, sigma: float, reference_mass: float | None = None) -> np.ndarray:
    """
    Gaussian-smooth a histogram and rescale it to a reference mass.

    The convolution keeps the histogram length ('same' mode).  The result is
    rescaled so its sum equals ``reference_mass`` (the input mass by default)
    and negative values are clamped to zero.
    """
    h = np.asarray(hist, dtype=np.float64)
    smoothed = np.convolve(h, gaussian_kernel(sigma), mode="same")
    mass = h.sum() if reference_mass is None else float(reference_mass)
    smoothed_mass = smoothed.sum()
    if smoothed_mass > 0:
        smoothed = smoothed * (mass / smoothed_mass)
    return np.maximum(smoothed, 0.0)


__all__ = [
    "histogram_256",
    "cumulative_distribution",
    "gaussian_kernel",
    "smooth_histogram",
]
