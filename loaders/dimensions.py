"""
Dimension recovery for raw FOCT byte streams.

A FOCT file carries no header: the volume shape has to be inferred from the
byte length alone.  The canonical 640x304x304 float32 layout is accepted
directly; anything else goes through a curated table of shapes observed in
anomalous exports, then a generic search for an exact factorization near a
cube.  Every accepted shape must account for *all* bytes of the file:
a shape that merely fits inside the buffer would silently drop or misalign
samples and is never accepted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional, Sequence, Tuple

from config import (
    FOCT_ELEMENT_SIZE,
    FOCT_STANDARD_SHAPE,
    PROBE_HEIGHT_RADIUS,
    PROBE_WIDTH_RADIUS,
)
from core.errors import FormatUnrecognized


class VolumeShape(NamedTuple):
    """Volume shape in file order (depth, width, height); depth varies fastest."""
    depth: int
    width: int
    height: int

    @property
    def element_count(self) -> int:
        return self.depth * self.width * self.height

    def byte_length(self, element_size: int) -> int:
        return self.element_count * int(element_size)

    def is_exact(self, byte_length: int, element_size: int) -> bool:
        """True when the shape accounts for every byte of the buffer."""
        return min(self) > 0 and self.byte_length(element_size) == int(byte_length)

    def __str__(self) -> str:
        return f"{self.depth}x{self.width}x{self.height}"


class ShapeSource(Enum):
    """Which recovery path produced a shape."""
    EXACT = "exact"
    CURATED = "curated"
    GENERIC = "generic"


class ProbeStrategy(Enum):
    """How far the prober may go before giving up."""
    STRICT = "strict"      # canonical shape only
    CURATED = "curated"    # canonical + curated table
    FULL = "full"          # canonical + curated table + generic search


@dataclass(frozen=True)
class CandidateShape:
    """Curated alternate shape observed in non-standard exports."""
    depth: int
    width: int
    height: int
    note: str = ""

    @property
    def shape(self) -> VolumeShape:
        return VolumeShape(self.depth, self.width, self.height)


# Evaluated in order; the first exact match wins.
CANDIDATE_SHAPES: Tuple[CandidateShape, ...] = (
    CandidateShape(160, 400, 400, "SSADA angiography export"),
    CandidateShape(160, 120, 41, "3.0 MB export"),
    CandidateShape(140, 140, 40, "3.0 MB export"),
    CandidateShape(128, 128, 48, "3.0 MB export"),
    CandidateShape(144, 144, 38, "3.0 MB export"),
    CandidateShape(160, 120, 34, "2.5 MB export"),
    CandidateShape(120, 120, 45, "2.5 MB export"),
    CandidateShape(128, 128, 40, "2.5 MB export"),
    CandidateShape(140, 140, 33, "2.5 MB export"),
)


@dataclass(frozen=True)
class ProbeResult:
    """Recovered shape plus how it was found."""
    shape: VolumeShape
    source: ShapeSource
    probes: int = 0   # candidate shapes evaluated before the match


def integer_cube_root(n: int) -> int:
    """Largest integer c with c**3 <= n."""
    if n < 0:
        raise ValueError("integer_cube_root requires a non-negative integer")
    c = int(round(n ** (1.0 / 3.0)))
    while c > 0 and c ** 3 > n:
        c -= 1
    while (c + 1) ** 3 <= n:
        c += 1
    return c


def _aspect_ratio(shape: VolumeShape) -> float:
    return max(shape) / min(shape)


def generic_shape_search(
    element_count: int,
    width_radius: int = PROBE_WIDTH_RADIUS,
    height_radius: int = PROBE_HEIGHT_RADIUS,
) -> Tuple[Optional[VolumeShape], int]:
    """
    Search exact (width, height, depth) factorizations near the cube root.

    Widths expand outwards from the cube-root seed, heights outwards from
    ``sqrt(n / width)``.  Depth is the exact quotient.  Among all exact
    triples in the neighborhood the one closest to a cube wins, smallest
    depth breaking ties.

    Returns:
        (shape or None, number of (width, height) pairs evaluated)
    """
    n = int(element_count)
    if n <= 0:
        return None, 0

    seed = max(1, integer_cube_root(n))
    found: dict[VolumeShape, None] = {}
    probes = 0

    for offset in range(width_radius + 1):
        for width in sorted({seed - offset, seed + offset}):
            if width <= 0 or n % width:
                continue
            remaining = n // width
            h_root = math.isqrt(remaining)
            for h_offset in range(height_radius + 1):
                for height in sorted({h_root - h_offset, h_root + 1 + h_offset}):
                    if height <= 0:
                        continue
                    probes += 1
                    if remaining % height:
                        continue
                    depth = remaining // height
                    found.setdefault(VolumeShape(depth, width, height), None)

    if not found:
        return None, probes

    best = min(found, key=lambda s: (_aspect_ratio(s), s.depth, s.width, s.height))
    return best, probes


def probe_shape(
    byte_length: int,
    element_size: int = FOCT_ELEMENT_SIZE,
    *,
    strategy: ProbeStrategy = ProbeStrategy.FULL,
    standard_shape: Sequence[int] = FOCT_STANDARD_SHAPE,
    candidates: Sequence[CandidateShape] = CANDIDATE_SHAPES,
    width_radius: int = PROBE_WIDTH_RADIUS,
    height_radius: int = PROBE_HEIGHT_RADIUS,
) -> ProbeResult:
    """
    Recover the volume shape of a raw buffer from its byte length.

    Args:
        byte_length: Total number of bytes in the buffer.
        element_size: Bytes per sample (4 for float32).
        strategy: How far to search before giving up.
        standard_shape: Canonical (depth, width, height).
        candidates: Curated alternate shapes, in priority order.
        width_radius, height_radius: Generic search neighborhood.

    Returns:
        ProbeResult with the recovered shape.

    Raises:
        FormatUnrecognized: No exact shape within the allowed strategy.
    """
    byte_length = int(byte_length)
    element_size = int(element_size)
    if element_size <= 0:
        raise ValueError(f"element_size must be positive, got {element_size}")

    standard = VolumeShape(*(int(v) for v in standard_shape))
    if standard.is_exact(byte_length, element_size):
        return ProbeResult(shape=standard, source=ShapeSource.EXACT, probes=0)

    if strategy is ProbeStrategy.STRICT:
        raise FormatUnrecognized(
            byte_length, element_size,
            f"Expected {standard.byte_length(element_size)} bytes for {standard}, got {byte_length}",
        )

    probes = 0
    for candidate in candidates:
        probes += 1
        if candidate.shape.is_exact(byte_length, element_size):
            return ProbeResult(shape=candidate.shape, source=ShapeSource.CURATED, probes=probes)

    if strategy is ProbeStrategy.CURATED or byte_length % element_size:
        raise FormatUnrecognized(byte_length, element_size)

    shape, searched = generic_shape_search(byte_length // element_size, width_radius, height_radius)
    if shape is None:
        raise FormatUnrecognized(
            byte_length, element_size,
            f"No exact factorization of {byte_length // element_size} elements near a cube",
        )
    return ProbeResult(shape=shape, source=ShapeSource.GENERIC, probes=probes + searched)


__all__ = [
    "VolumeShape",
    "ShapeSource",
    "ProbeStrategy",
    "CandidateShape",
    "CANDIDATE_SHAPES",
    "ProbeResult",
    "integer_cube_root",
    "generic_shape_search",
    "probe_shape",
]
