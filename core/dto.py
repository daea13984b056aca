"""
Data Transfer Objects (DTOs) for the FOCT conversion pipeline.

Design rules
------------
* All DTOs are immutable (frozen=True).  Numerical components receive the
  parameters they need explicitly; nothing reads ambient state.
* ``from_dict`` / ``from_yaml`` / ``from_json`` keep serialisation in one place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple, Optional, Dict, Any

from config import (
    BATCH_MAX_WORKERS,
    DEFAULT_EXPORT_FORMATS,
    ENABLE_POST_PROCESSING,
    FOCT_ELEMENT_SIZE,
    FOCT_FLIP_DEPTH,
    INTER_SLICE_SMOOTHING,
    MAPPING_JUMP_THRESHOLD,
    MAPPING_RECLAMP,
    MAPPING_SMOOTH_FACTOR,
    MAPPING_SMOOTH_WINDOW,
    MAX_WORKERS,
    SLICE_AXIS,
    SMOOTHING_SIGMA,
    TARGET_DENSITY_FLOOR,
    TARGET_MIN_IMAGE_STD,
    TARGET_OUTLIER_SIGMA,
    TARGET_SAMPLE_SEED,
    TARGET_SAMPLE_SIZE,
    WRITE_PREVIEW,
)


CONVERSION_MODES = ("enhance", "recover", "match")


# ---------------------------------------------------------------------------
# Histogram parameters DTO
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HistogramParams:
    """
    Immutable knobs for target sampling, histogram matching and post-processing.
    """

    sample_size:             int   = TARGET_SAMPLE_SIZE
    seed:                    int   = TARGET_SAMPLE_SEED
    min_image_std:           float = TARGET_MIN_IMAGE_STD
    outlier_sigma:           float = TARGET_OUTLIER_SIGMA
    density_floor:           float = TARGET_DENSITY_FLOOR
    smoothing_sigma:         float = SMOOTHING_SIGMA
    mapping_smooth_factor:   float = MAPPING_SMOOTH_FACTOR
    jump_threshold:          int   = MAPPING_JUMP_THRESHOLD
    smoothing_window:        int   = MAPPING_SMOOTH_WINDOW
    reclamp_after_smoothing: bool  = MAPPING_RECLAMP
    enable_post_processing:  bool  = ENABLE_POST_PROCESSING
    inter_slice_smoothing:   bool  = INTER_SLICE_SMOOTHING
    slice_axis:              int   = SLICE_AXIS
    max_workers:             int   = MAX_WORKERS

    def __post_init__(self) -> None:
        if self.smoothing_sigma <= 0:
            raise ValueError(f"smoothing_sigma must be positive, got {self.smoothing_sigma}")
        if not 0.0 <= self.mapping_smooth_factor <= 1.0:
            raise ValueError(f"mapping_smooth_factor must be in [0, 1], got {self.mapping_smooth_factor}")
        if self.smoothing_window < 1 or self.smoothing_window % 2 == 0:
            raise ValueError(f"smoothing_window must be a positive odd number, got {self.smoothing_window}")
        if self.sample_size < 1:
            raise ValueError(f"sample_size must be >= 1, got {self.sample_size}")

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "HistogramParams":
        return HistogramParams(
            sample_size             = int(d.get("sample_size",             TARGET_SAMPLE_SIZE)),
            seed                    = int(d.get("seed",                    TARGET_SAMPLE_SEED)),
            min_image_std           = float(d.get("min_image_std",         TARGET_MIN_IMAGE_STD)),
            outlier_sigma           = float(d.get("outlier_sigma",         TARGET_OUTLIER_SIGMA)),
            density_floor           = float(d.get("density_floor",         TARGET_DENSITY_FLOOR)),
            smoothing_sigma         = float(d.get("smoothing_sigma",       SMOOTHING_SIGMA)),
            mapping_smooth_factor   = float(d.get("mapping_smooth_factor", MAPPING_SMOOTH_FACTOR)),
            jump_threshold          = int(d.get("jump_threshold",          MAPPING_JUMP_THRESHOLD)),
            smoothing_window        = int(d.get("smoothing_window",        MAPPING_SMOOTH_WINDOW)),
            reclamp_after_smoothing = bool(d.get("reclamp_after_smoothing", MAPPING_RECLAMP)),
            enable_post_processing  = bool(d.get("enable_post_processing", ENABLE_POST_PROCESSING)),
            inter_slice_smoothing   = bool(d.get("inter_slice_smoothing",  INTER_SLICE_SMOOTHING)),
            slice_axis              = int(d.get("slice_axis",              SLICE_AXIS)),
            max_workers             = int(d.get("max_workers",             MAX_WORKERS)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sample_size":             self.sample_size,
            "seed":                    self.seed,
            "min_image_std":           self.min_image_std,
            "outlier_sigma":           self.outlier_sigma,
            "density_floor":           self.density_floor,
            "smoothing_sigma":         self.smoothing_sigma,
            "mapping_smooth_factor":   self.mapping_smooth_factor,
            "jump_threshold":          self.jump_threshold,
            "smoothing_window":        self.smoothing_window,
            "reclamp_after_smoothing": self.reclamp_after_smoothing,
            "enable_post_processing":  self.enable_post_processing,
            "inter_slice_smoothing":   self.inter_slice_smoothing,
            "slice_axis":              self.slice_axis,
            "max_workers":             self.max_workers,
        }


# ---------------------------------------------------------------------------
# Conversion DTO
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConversionDTO:
    """
    Immutable configuration for a headless conversion run.

    Used by the CLI and by unit tests.  ``targets`` is an ordered tuple of
    ``(name, corpus_directory)`` pairs, only read in ``match`` mode.
    """

    # Input
    input_path:      str                         = ""
    loader_type:     str                         = "foct"     # "foct" | "dummy"
    mode:            str                         = "enhance"  # "enhance" | "recover" | "match"
    element_size:    int                         = FOCT_ELEMENT_SIZE
    flip_depth:      bool                        = FOCT_FLIP_DEPTH
    recover_failed:  bool                        = True       # re-route FormatUnrecognized to "recover"

    # Matching
    targets:         Tuple[Tuple[str, str], ...] = ()
    histogram:       HistogramParams             = field(default_factory=HistogramParams)

    # Output
    output_dir:      Optional[str]               = None
    export_formats:  Tuple[str, ...]             = DEFAULT_EXPORT_FORMATS
    write_preview:   bool                        = WRITE_PREVIEW

    # Execution
    max_workers:     int                         = BATCH_MAX_WORKERS

    def __post_init__(self) -> None:
        if self.mode not in CONVERSION_MODES:
            allowed = ", ".join(CONVERSION_MODES)
            raise ValueError(f"Unknown mode {self.mode!r}. Expected one of: {allowed}.")
        if self.element_size <= 0:
            raise ValueError(f"element_size must be positive, got {self.element_size}")

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "ConversionDTO":
        targets_raw = d.get("targets") or {}
        if isinstance(targets_raw, dict):
            targets = tuple((str(k), str(v)) for k, v in targets_raw.items())
        else:
            targets = tuple((str(k), str(v)) for k, v in targets_raw)
        return ConversionDTO(
            input_path     = str(d.get("input_path",     "")),
            loader_type    = str(d.get("loader_type",    "foct")),
            mode           = str(d.get("mode",           "enhance")),
            element_size   = int(d.get("element_size",   FOCT_ELEMENT_SIZE)),
            flip_depth     = bool(d.get("flip_depth",    FOCT_FLIP_DEPTH)),
            recover_failed = bool(d.get("recover_failed", True)),
            targets        = targets,
            histogram      = HistogramParams.from_dict(d.get("histogram") or {}),
            output_dir     = d.get("output_dir"),
            export_formats = tuple(d.get("export_formats", DEFAULT_EXPORT_FORMATS)),
            write_preview  = bool(d.get("write_preview", WRITE_PREVIEW)),
            max_workers    = int(d.get("max_workers",    BATCH_MAX_WORKERS)),
        )

    @staticmethod
    def from_yaml(path: str) -> "ConversionDTO":
        """Load config from a YAML file."""
        import yaml  # soft dependency, only needed for CLI
        with open(path, encoding="utf-8") as fh:
            d = yaml.safe_load(fh)
        return ConversionDTO.from_dict(d or {})

    @staticmethod
    def from_json(path: str) -> "ConversionDTO":
        """Load config from a JSON file."""
        import json
        with open(path, encoding="utf-8") as fh:
            d = json.load(fh)
        return ConversionDTO.from_dict(d)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_path":     self.input_path,
            "loader_type":    self.loader_type,
            "mode":           self.mode,
            "element_size":   self.element_size,
            "flip_depth":     self.flip_depth,
            "recover_failed": self.recover_failed,
            "targets":        {name: path for name, path in self.targets},
            "histogram":      self.histogram.to_dict(),
            "output_dir":     self.output_dir,
            "export_formats": list(self.export_formats),
            "write_preview":  self.write_preview,
            "max_workers":    self.max_workers,
        }
