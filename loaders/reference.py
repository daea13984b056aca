"""
Reference image corpus used to build target intensity distributions.
"""

from __future__ import annotations

import os
from glob import glob
from typing import List, Sequence

import numpy as np
from skimage import color, io, util

from config import TARGET_IMAGE_PATTERNS


class ReferenceCorpus:
    """
    A directory of 2-D reference images.

    Image identifiers are file paths sorted by name, so a seeded sample over
    the same directory always selects the same files.
    """

    def __init__(self, root: str, patterns: Sequence[str] = TARGET_IMAGE_PATTERNS):
        self.root = root
        self.patterns = tuple(patterns)

    def __repr__(self) -> str:
        return f"ReferenceCorpus({self.root!r})"

    @property
    def exists(self) -> bool:
        return os.path.isdir(self.root)

    def list_images(self) -> List[str]:
        if not self.exists:
            return []
        files = set()
        for pattern in self.patterns:
            files.update(f for f in glob(os.path.join(self.root, pattern)) if os.path.isfile(f))
        return sorted(files)


def to_gray_uint8(image: np.ndarray) -> np.ndarray:
    """Collapse colour channels and convert to 8-bit levels."""
    img = np.asarray(image)
    if img.ndim == 3:
        channels = img.shape[-1]
        if channels == 4:
            img = img[..., :3]
            channels = 3
        if channels == 3:
            img = color.rgb2gray(img)
        else:
            img = img[..., 0]
    if img.ndim != 2:
        raise ValueError(f"Expected a 2-D image, got shape {img.shape}")
    if img.dtype != np.uint8:
        img = util.img_as_ubyte(img)
    return img


def load_reference_image(path: str) -> np.ndarray:
    """Decode an image file into a 2-D uint8 intensity array."""
    return to_gray_uint8(io.imread(path))


__all__ = ["ReferenceCorpus", "to_gray_uint8", "load_reference_image"]
