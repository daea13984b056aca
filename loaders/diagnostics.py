"""
Diagnostics for FOCT files that fail standard conversion.

Reports the size mismatch, plausible alternative layouts built from common
imaging dimensions, value statistics of the first samples under several
interpretations, the shape the recovery prober would pick, and a list of
suggestions.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional

import numpy as np

from config import (
    DIAGNOSTIC_COMMON_SIZES,
    DIAGNOSTIC_MAX_DEPTH,
    DIAGNOSTIC_MAX_FORMATS,
    FOCT_ELEMENT_SIZE,
    FOCT_STANDARD_SHAPE,
)
from core.errors import FormatUnrecognized
from loaders.dimensions import ProbeResult, ProbeStrategy, VolumeShape, probe_shape
from loaders.foct import read_raw_buffer


class PossibleFormat(NamedTuple):
    width: int
    height: int
    depth: int
    dtype: str

    def __str__(self) -> str:
        return f"{self.width}x{self.height}x{self.depth} ({self.dtype})"


@dataclass(frozen=True)
class SampleStatistics:
    """Range and mean of the leading samples under one interpretation."""
    dtype: str
    count: int
    minimum: float
    maximum: float
    mean: float
    has_nan: bool = False
    has_inf: bool = False


@dataclass
class FileDiagnosis:
    name: str
    byte_length: int
    expected_length: int
    possible_formats: List[PossibleFormat] = field(default_factory=list)
    samples: Dict[str, SampleStatistics] = field(default_factory=dict)
    probe: Optional[ProbeResult] = None
    suggestions: List[str] = field(default_factory=list)

    @property
    def size_match(self) -> bool:
        return self.byte_length == self.expected_length

    @property
    def size_difference(self) -> int:
        return self.byte_length - self.expected_length


def analyze_possible_formats(byte_length: int,
                             common_sizes=DIAGNOSTIC_COMMON_SIZES,
                             max_depth: int = DIAGNOSTIC_MAX_DEPTH,
                             limit: int = DIAGNOSTIC_MAX_FORMATS) -> List[PossibleFormat]:
    """
    Candidate float32 layouts ``width x height x depth`` built from common
    in-plane sizes, closest in-plane area to the canonical one first.

    When the length is not a whole number of float32 samples but is of
    uint16 samples, a single flat uint16 interpretation is returned.
    """
    byte_length = int(byte_length)
    if byte_length % 4:
        if byte_length % 2 == 0 and byte_length > 0:
            return [PossibleFormat(byte_length // 2, 1, 1, "uint16")]
        return []

    n = byte_length // 4
    _, std_w, std_h = FOCT_STANDARD_SHAPE
    std_area = std_w * std_h

    formats = []
    for w in common_sizes:
        for h in common_sizes:
            if n % (w * h):
                continue
            d = n // (w * h)
            if 0 < d < max_depth:
                formats.append(PossibleFormat(w, h, d, "float32"))

    formats.sort(key=lambda f: abs(math.log(f.width * f.height / std_area)))
    return formats[:limit]


def _stats(values: np.ndarray, dtype: str) -> Optional[SampleStatistics]:
    if values.size == 0:
        return None
    as_float = values.astype(np.float64)
    finite = as_float[np.isfinite(as_float)]
    if finite.size:
        lo, hi, mean = float(finite.min()), float(finite.max()), float(finite.mean())
    else:
        lo = hi = mean = float("nan")
    return SampleStatistics(
        dtype=dtype,
        count=int(values.size),
        minimum=lo,
        maximum=hi,
        mean=mean,
        has_nan=bool(np.isnan(as_float).any()),
        has_inf=bool(np.isinf(as_float).any()),
    )


def sample_buffer_statistics(buffer: bytes) -> Dict[str, SampleStatistics]:
    """Statistics of the first 100 float32, 200 uint16 and 400 uint8 values."""
    samples = {}
    for dtype, name, count in (("<f4", "float32", 100), ("<u2", "uint16", 200), ("u1", "uint8", 400)):
        itemsize = np.dtype(dtype).itemsize
        available = min(count, len(buffer) // itemsize)
        if available == 0:
            continue
        values = np.frombuffer(buffer, dtype=dtype, count=available)
        stats = _stats(values, name)
        if stats is not None:
            samples[name] = stats
    return samples


def _suggestions(diagnosis: FileDiagnosis) -> List[str]:
    tips = []
    if diagnosis.size_match:
        tips.append("File size matches the standard format; check the data content for corruption")
        tips.append("Try reading with a different element type")
    else:
        tips.append("File size deviates from the standard format; probably a non-standard export")
        if diagnosis.possible_formats:
            tips.append(f"Try the {diagnosis.possible_formats[0]} layout")
        if diagnosis.probe is not None:
            tips.append(f"Run the recovery conversion (shape {diagnosis.probe.shape} "
                        f"via {diagnosis.probe.source.value} search)")
        elif not diagnosis.possible_formats:
            tips.append("No plausible layout found; the file may be truncated or corrupt")

    f32 = diagnosis.samples.get("float32")
    if f32 is not None:
        if f32.has_nan:
            tips.append("NaN values detected; they will be replaced by 0")
        if f32.has_inf:
            tips.append("Infinite values detected; they will be replaced by 0")
    tips.append("Confirm the file format and acquisition settings with the data provider")
    return tips


def diagnose_buffer(name: str, buffer: bytes, element_size: int = FOCT_ELEMENT_SIZE) -> FileDiagnosis:
    expected = VolumeShape(*FOCT_STANDARD_SHAPE).byte_length(element_size)
    diagnosis = FileDiagnosis(name=name, byte_length=len(buffer), expected_length=expected)
    if not diagnosis.size_match:
        diagnosis.possible_formats = analyze_possible_formats(len(buffer))
    diagnosis.samples = sample_buffer_statistics(buffer)
    try:
        diagnosis.probe = probe_shape(len(buffer), element_size, strategy=ProbeStrategy.FULL)
    except FormatUnrecognized:
        diagnosis.probe = None
    diagnosis.suggestions = _suggestions(diagnosis)
    return diagnosis


def diagnose_file(path: str, element_size: int = FOCT_ELEMENT_SIZE) -> FileDiagnosis:
    return diagnose_buffer(os.path.basename(path), read_raw_buffer(path), element_size)


def format_diagnosis(diagnosis: FileDiagnosis) -> str:
    """Human-readable multi-line summary."""
    mb = 1024 * 1024
    lines = [
        f"File: {diagnosis.name}",
        f"  Size:     {diagnosis.byte_length} bytes ({diagnosis.byte_length / mb:.2f} MB)",
        f"  Standard: {diagnosis.expected_length} bytes ({diagnosis.expected_length / mb:.2f} MB)",
    ]
    if diagnosis.size_match:
        lines.append("  Size matches the standard format")
    else:
        pct = 100.0 * diagnosis.size_difference / diagnosis.expected_length
        lines.append(f"  Size mismatch: {diagnosis.size_difference:+d} bytes ({pct:.1f}%)")
        for fmt in diagnosis.possible_formats:
            lines.append(f"    possible: {fmt}")
    for stats in diagnosis.samples.values():
        flags = "".join(f for f, on in ((" [NaN]", stats.has_nan), (" [Inf]", stats.has_inf)) if on)
        lines.append(f"  {stats.dtype:>7} sample: range [{stats.minimum:.3f}, {stats.maximum:.3f}], "
                     f"mean {stats.mean:.3f}{flags}")
    if diagnosis.probe is not None:
        lines.append(f"  Recovered shape: {diagnosis.probe.shape} ({diagnosis.probe.source.value})")
    else:
        lines.append("  Recovered shape: none")
    lines.append("  Suggestions:")
    lines.extend(f"    {i}. {tip}" for i, tip in enumerate(diagnosis.suggestions, 1))
    return "\n".join(lines)


__all__ = [
    "PossibleFormat",
    "SampleStatistics",
    "FileDiagnosis",
    "analyze_possible_formats",
    "sample_buffer_statistics",
    "diagnose_buffer",
    "diagnose_file",
    "format_diagnosis",
]
