"""
Raw FOCT volume loader.

FOCT files are headerless little-endian sample streams written in
column-major order (depth varies fastest).  The loader reads the whole
buffer, recovers the shape from its length, reshapes, restores the depth
orientation of canonical files and replaces non-finite samples.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional

import numpy as np

from config import FOCT_ELEMENT_SIZE, FOCT_FLIP_DEPTH
from core.base import BaseLoader, VolumeData
from core.errors import ErrorKind, Issue, VolumeReadError
from loaders.dimensions import ProbeStrategy, ShapeSource, VolumeShape, probe_shape
from processors.normalize import sanitize_volume

logger = logging.getLogger(__name__)

# Little-endian sample type per element size
ELEMENT_DTYPES = {
    1: np.dtype("u1"),
    2: np.dtype("<u2"),
    4: np.dtype("<f4"),
    8: np.dtype("<f8"),
}


def element_dtype(element_size: int) -> np.dtype:
    try:
        return ELEMENT_DTYPES[int(element_size)]
    except KeyError:
        raise ValueError(
            f"Unsupported element size {element_size}; expected one of {sorted(ELEMENT_DTYPES)}"
        ) from None


def read_raw_buffer(path: str) -> bytes:
    """Read a file completely.  Any OS-level failure becomes VolumeReadError."""
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as exc:
        raise VolumeReadError(f"Cannot read {path}: {exc}") from exc


def decode_volume(buffer: bytes, shape: VolumeShape, element_size: int = FOCT_ELEMENT_SIZE) -> np.ndarray:
    """
    Interpret ``buffer`` as a column-major volume of the given shape.

    The buffer must hold exactly ``shape.byte_length(element_size)`` bytes.
    """
    dtype = element_dtype(element_size)
    expected = shape.byte_length(element_size)
    if len(buffer) != expected:
        raise ValueError(f"Buffer holds {len(buffer)} bytes, shape {shape} needs {expected}")
    flat = np.frombuffer(buffer, dtype=dtype, count=shape.element_count)
    return flat.reshape(tuple(shape), order="F")


def encode_volume(volume: np.ndarray, element_size: int = FOCT_ELEMENT_SIZE) -> bytes:
    """Inverse of ``decode_volume``: column-major bytes of the given element type."""
    dtype = element_dtype(element_size)
    return np.asarray(volume).astype(dtype).tobytes(order="F")


class FoctLoader(BaseLoader):
    """
    Loader for FOCT volumes.

    Args:
        strategy: ``STRICT`` accepts only the canonical shape (standard
            conversion); ``FULL`` also tries curated and generic shapes
            (recovery of non-standard files).
        element_size: Bytes per sample.
        flip_depth: Reverse the depth axis of canonical-shape volumes.
    """

    def __init__(self,
                 strategy: ProbeStrategy = ProbeStrategy.STRICT,
                 element_size: int = FOCT_ELEMENT_SIZE,
                 flip_depth: bool = FOCT_FLIP_DEPTH):
        element_dtype(element_size)
        self.strategy = strategy
        self.element_size = int(element_size)
        self.flip_depth = flip_depth

    def load(self, source: str, callback: Optional[Callable[[int, str], None]] = None) -> VolumeData:
        name = os.path.basename(source)
        if callback: callback(0, f"Reading {name}...")
        buffer = read_raw_buffer(source)

        if callback: callback(30, "Recovering volume shape...")
        probe = probe_shape(len(buffer), self.element_size, strategy=self.strategy)
        logger.info("%s: %d bytes -> %s (%s, %d probes)",
                    name, len(buffer), probe.shape, probe.source.value, probe.probes)

        if callback: callback(50, f"Decoding {probe.shape} volume...")
        volume = decode_volume(buffer, probe.shape, self.element_size)
        if self.flip_depth and probe.source is ShapeSource.EXACT:
            volume = volume[::-1]

        clean, n_bad = sanitize_volume(volume)
        issues = []
        if n_bad:
            logger.warning("%s: replaced %d non-finite samples with 0", name, n_bad)
            issues.append(Issue(ErrorKind.DATA_INTEGRITY, f"{n_bad} NaN/Inf samples replaced by 0"))

        metadata = {
            "Type": "FOCT",
            "SourceFile": source,
            "ByteLength": len(buffer),
            "Shape": tuple(probe.shape),
            "ShapeSource": probe.source.value,
            "ProbeCount": probe.probes,
            "NonFiniteCount": n_bad,
        }
        if callback: callback(100, "Volume loaded.")
        return VolumeData(raw_data=clean, metadata=metadata, issues=issues)


__all__ = [
    "ELEMENT_DTYPES",
    "element_dtype",
    "read_raw_buffer",
    "decode_volume",
    "encode_volume",
    "FoctLoader",
]
