"""
Core data structures and abstract base classes.
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass, field
from abc import ABC, abstractmethod
from typing import Tuple, Dict, Any, Optional, Callable, List, TYPE_CHECKING

from core.errors import ErrorKind, Issue

if TYPE_CHECKING:
    from processors.matching import MappingTable
    from processors.quality import QualityMetrics


@dataclass
class VolumeData:
    """
    Unified Data Transfer Object (DTO) for volumetric data.

    Attributes:
        raw_data (Optional[np.ndarray]): 3D Matrix (depth, width, height).
        spacing (Tuple[float, float, float]): Voxel spacing along the three axes.
        origin (Tuple[float, float, float]): Origin coordinates.
        metadata (Dict[str, Any]): Arbitrary metadata (SourceFile, ShapeSource, etc.).
        issues (List[Issue]): Non-fatal corrections applied while producing this data.
    """
    raw_data: Optional[np.ndarray] = None
    spacing: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    metadata: Dict[str, Any] = field(default_factory=dict)
    issues: List[Issue] = field(default_factory=list)

    @property
    def dimensions(self) -> Tuple[int, int, int]:
        """Returns the shape of the volume (depth, width, height) if raw_data exists."""
        if self.raw_data is not None:
            return self.raw_data.shape
        return (0, 0, 0)

    def derive(self, raw_data: np.ndarray, **metadata: Any) -> "VolumeData":
        """New VolumeData sharing geometry, metadata and issues with this one."""
        merged = dict(self.metadata)
        merged.update(metadata)
        return VolumeData(
            raw_data=raw_data,
            spacing=self.spacing,
            origin=self.origin,
            metadata=merged,
            issues=list(self.issues),
        )


@dataclass
class FileOutcome:
    """
    Per-file result handed to persistence and report collaborators.

    Either ``ok`` with an output volume, or failed with an ``error_kind`` and
    ``message``.  ``issues`` lists corrections applied on the way (NaN
    substitution, constant volume, skipped targets).  Matching runs produce
    one volume per target in ``matched``.
    """
    source: str
    ok: bool
    output: Optional[VolumeData] = None
    matched: Dict[str, VolumeData] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    issues: List[Issue] = field(default_factory=list)
    metrics: Dict[str, "QualityMetrics"] = field(default_factory=dict)
    mapping_tables: Dict[str, Tuple["MappingTable", ...]] = field(default_factory=dict)
    written: List[str] = field(default_factory=list)
    mode: str = ""

    @classmethod
    def success(cls, source: str, output: Optional[VolumeData], **kwargs: Any) -> "FileOutcome":
        return cls(source=source, ok=True, output=output, **kwargs)

    @classmethod
    def failed(cls, source: str, error_kind: ErrorKind, message: str, **kwargs: Any) -> "FileOutcome":
        return cls(source=source, ok=False, error_kind=error_kind, message=message, **kwargs)


class BaseLoader(ABC):
    """Abstract base class for data acquisition strategies."""

    @abstractmethod
    def load(self, source: str, callback: Optional[Callable[[int, str], None]] = None) -> VolumeData:
        """
        Load data from a source path.

        Args:
            source (str): Path to file.
            callback: Optional progress callback (percent, message).

        Returns:
            VolumeData: Loaded data object.
        """
        pass


class BaseProcessor(ABC):
    """Abstract base class for volumetric processing algorithms."""

    @abstractmethod
    def process(self, data: VolumeData, callback: Optional[Callable[[int, str], None]] = None, **kwargs) -> VolumeData:
        """
        Process volume data.

        Args:
            data (VolumeData): Input data.
            callback (Optional[Callable]): Progress callback (percent, message).
            **kwargs: Algorithm specific parameters.

        Returns:
            VolumeData: Processed result.
        """
        pass
